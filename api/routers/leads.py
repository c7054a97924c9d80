"""Lead intake and status pipeline API endpoints."""

from fastapi import APIRouter, Depends

from schemas import LeadCreate, LeadResponse, LeadStats, LeadStatusUpdate
from services import lead_intake
from services.auth import require_manager
from storage import DirectoryStorage, get_storage

router = APIRouter()


@router.post("", response_model=LeadResponse, status_code=201)
async def submit_lead(data: LeadCreate, storage: DirectoryStorage = Depends(get_storage)):
    """
    Customer quote request.

    409 when the contractor's plan quota is used up; the body carries
    leads_used and monthly_lead_quota so the client can explain why.
    """
    return await lead_intake.submit_lead(storage, data)


@router.get("", response_model=list[LeadResponse], dependencies=[Depends(require_manager)])
async def list_leads(contractor_id: int | None = None, storage: DirectoryStorage = Depends(get_storage)):
    return await lead_intake.list_leads(storage, contractor_id)


@router.get("/stats", response_model=LeadStats, dependencies=[Depends(require_manager)])
async def get_lead_stats(contractor_id: int | None = None, storage: DirectoryStorage = Depends(get_storage)):
    """Counts by status and this calendar month, globally or for one contractor."""
    return await lead_intake.lead_stats(storage, contractor_id)


@router.get("/{lead_id}", response_model=LeadResponse, dependencies=[Depends(require_manager)])
async def get_lead(lead_id: int, storage: DirectoryStorage = Depends(get_storage)):
    return await lead_intake.get_lead(storage, lead_id)


@router.patch("/{lead_id}/status", response_model=LeadResponse, dependencies=[Depends(require_manager)])
async def update_lead_status(
    lead_id: int,
    data: LeadStatusUpdate,
    storage: DirectoryStorage = Depends(get_storage),
):
    """Set a lead's status (new, contacted, quoted, won, lost)."""
    return await lead_intake.update_lead_status(storage, lead_id, data.status)
