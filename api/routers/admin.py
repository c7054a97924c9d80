"""Admin dashboard API endpoints."""

from fastapi import APIRouter, Depends

from schemas import DashboardStats
from services.auth import require_manager
from services.dashboard import gather_stats
from storage import DirectoryStorage, get_storage

router = APIRouter(dependencies=[Depends(require_manager)])


@router.get("/stats", response_model=DashboardStats)
async def get_dashboard_stats(storage: DirectoryStorage = Depends(get_storage)):
    """Directory-wide counters for the manager dashboard."""
    return await gather_stats(storage)
