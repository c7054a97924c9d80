"""Contractor directory API endpoints: search, CRUD, reviews, subscription, leads."""

from fastapi import APIRouter, Depends, Query

from errors import NotFound
from schemas import (
    ContractorCreate, ContractorResponse, ContractorSearchResult, ImportResult,
    LeadResponse, ReviewCreate, ReviewResponse,
    SubscriptionCreate, SubscriptionResponse, SubscriptionWithPlan,
)
from services import contractor_directory, contractor_import, lead_intake, subscription_ledger
from services.auth import require_manager
from storage import DirectoryStorage, get_storage

router = APIRouter()


# ── Directory ──────────────────────────────────────────────

@router.get("", response_model=list[ContractorSearchResult])
async def search_contractors(
    category: str | None = None,
    location: str | None = None,
    search: str | None = None,
    radius: float | None = Query(None, gt=0, description="Miles from the geocoded location"),
    storage: DirectoryStorage = Depends(get_storage),
):
    """Public directory listing with optional filters."""
    return await contractor_directory.search_contractors(storage, category, location, search, radius)


@router.post("", response_model=ContractorResponse, status_code=201, dependencies=[Depends(require_manager)])
async def create_contractor(data: ContractorCreate, storage: DirectoryStorage = Depends(get_storage)):
    return await contractor_directory.create_contractor(storage, data)


@router.post("/import", response_model=ImportResult, dependencies=[Depends(require_manager)])
async def import_contractors(items: list[dict], storage: DirectoryStorage = Depends(get_storage)):
    """Bulk-load contractors, skipping names already in the directory."""
    return await contractor_import.import_contractors(storage, items)


@router.get("/{contractor_id}", response_model=ContractorResponse)
async def get_contractor(contractor_id: int, storage: DirectoryStorage = Depends(get_storage)):
    return await contractor_directory.get_contractor(storage, contractor_id)


@router.put("/{contractor_id}", response_model=ContractorResponse, dependencies=[Depends(require_manager)])
async def update_contractor(
    contractor_id: int,
    data: ContractorCreate,
    storage: DirectoryStorage = Depends(get_storage),
):
    return await contractor_directory.update_contractor(storage, contractor_id, data)


@router.delete("/{contractor_id}", status_code=204, dependencies=[Depends(require_manager)])
async def delete_contractor(contractor_id: int, storage: DirectoryStorage = Depends(get_storage)):
    """Remove a listing and its reviews. 409 while leads or subscriptions reference it."""
    await contractor_directory.delete_contractor(storage, contractor_id)


# ── Reviews ────────────────────────────────────────────────

@router.get("/{contractor_id}/reviews", response_model=list[ReviewResponse])
async def list_reviews(contractor_id: int, storage: DirectoryStorage = Depends(get_storage)):
    return await contractor_directory.list_reviews(storage, contractor_id)


@router.post("/{contractor_id}/reviews", response_model=ReviewResponse, status_code=201)
async def create_review(contractor_id: int, data: ReviewCreate, storage: DirectoryStorage = Depends(get_storage)):
    return await contractor_directory.create_review(storage, contractor_id, data)


# ── Subscription ───────────────────────────────────────────

@router.get("/{contractor_id}/subscription", response_model=SubscriptionWithPlan)
async def get_subscription(contractor_id: int, storage: DirectoryStorage = Depends(get_storage)):
    """Active subscription with its plan and usage against the quota."""
    await contractor_directory.get_contractor(storage, contractor_id)
    joined = await subscription_ledger.get_subscription_with_plan(storage, contractor_id)
    if joined is None:
        raise NotFound("Active subscription for contractor", contractor_id)
    subscription, plan = joined
    return SubscriptionWithPlan(
        subscription=subscription,
        plan=plan,
        usage=subscription_ledger.usage_summary(subscription, plan),
    )


@router.put("/{contractor_id}/subscription", response_model=SubscriptionResponse, dependencies=[Depends(require_manager)])
async def put_subscription(
    contractor_id: int,
    data: SubscriptionCreate,
    storage: DirectoryStorage = Depends(get_storage),
):
    """Start a new subscription; any current one becomes inactive and usage restarts at 0."""
    return await subscription_ledger.create_or_replace_subscription(
        storage, contractor_id, data.plan_id, data.billing_cycle_start, data.billing_cycle_end,
    )


@router.get(
    "/{contractor_id}/subscriptions",
    response_model=list[SubscriptionResponse],
    dependencies=[Depends(require_manager)],
)
async def list_subscriptions(contractor_id: int, storage: DirectoryStorage = Depends(get_storage)):
    return await subscription_ledger.list_subscriptions(storage, contractor_id)


# ── Leads ──────────────────────────────────────────────────

@router.get("/{contractor_id}/leads", response_model=list[LeadResponse], dependencies=[Depends(require_manager)])
async def list_contractor_leads(contractor_id: int, storage: DirectoryStorage = Depends(get_storage)):
    await contractor_directory.get_contractor(storage, contractor_id)
    return await lead_intake.list_leads(storage, contractor_id)
