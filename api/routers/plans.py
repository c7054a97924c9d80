"""Plan catalog API endpoints."""

from fastapi import APIRouter, Depends

from schemas import PlanCreate, PlanResponse
from services import plan_catalog
from services.auth import require_manager
from storage import DirectoryStorage, get_storage

router = APIRouter()


@router.get("", response_model=list[PlanResponse])
async def list_plans(storage: DirectoryStorage = Depends(get_storage)):
    """Plans available for purchase, cheapest first."""
    return await plan_catalog.list_plans(storage)


@router.get("/all", response_model=list[PlanResponse], dependencies=[Depends(require_manager)])
async def list_all_plans(storage: DirectoryStorage = Depends(get_storage)):
    """Every plan including retired ones (manager view)."""
    return await plan_catalog.list_plans(storage, include_inactive=True)


@router.post("", response_model=PlanResponse, status_code=201, dependencies=[Depends(require_manager)])
async def create_plan(data: PlanCreate, storage: DirectoryStorage = Depends(get_storage)):
    return await plan_catalog.create_plan(storage, data)


@router.put("/{plan_id}", response_model=PlanResponse, dependencies=[Depends(require_manager)])
async def update_plan(plan_id: int, data: PlanCreate, storage: DirectoryStorage = Depends(get_storage)):
    """Replace a plan's fields. Setting active=false retires it for new subscriptions."""
    return await plan_catalog.update_plan(storage, plan_id, data)
