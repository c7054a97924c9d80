"""
Lead Intake & Status Pipeline.

Admission (submit_lead):
  1. validate the input shape          → ValidationError
  2. open the contractor's ledger      → NotFound if the contractor is gone
  3. quota check on the active plan    → QuotaExceeded (pre-increment count)
  4. insert the lead, bump leads_used  → one unit of work, all or nothing

Status workflow: new → contacted → quoted → won | lost, but any status may
be set from any other by a manager. Nothing moves on its own.
"""

import logging
from datetime import datetime

from pydantic import ValidationError as PydanticValidationError

from errors import NotFound, QuotaExceeded, ValidationError
from schemas import LeadCreate, LeadResponse, LeadStats, LeadStatus
from services.clock import utcnow
from services.subscription_ledger import plan_for
from storage import DirectoryStorage

logger = logging.getLogger(__name__)

LEAD_STATUSES = tuple(s.value for s in LeadStatus)


def validate_lead_input(payload: LeadCreate | dict) -> LeadCreate:
    """Coerce a raw payload into LeadCreate, raising errors.ValidationError."""
    if isinstance(payload, LeadCreate):
        return payload
    try:
        return LeadCreate.model_validate(payload)
    except PydanticValidationError as e:
        errors = [
            {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
            for err in e.errors()
        ]
        raise ValidationError("Invalid lead data", errors=errors) from e


async def submit_lead(storage: DirectoryStorage, payload: LeadCreate | dict) -> LeadResponse:
    """Admit a customer lead for a contractor, enforcing its plan quota."""
    data = validate_lead_input(payload)
    now = utcnow()

    async with storage.ledger(data.contractor_id) as session:
        subscription = await session.active_subscription()
        if subscription is not None:
            plan = await plan_for(session, subscription)
            if subscription.leads_used >= plan.monthly_lead_quota:
                logger.warning(
                    "Lead rejected: contractor=%s quota reached (%s/%s, plan=%s)",
                    data.contractor_id, subscription.leads_used, plan.monthly_lead_quota, plan.name,
                )
                raise QuotaExceeded(data.contractor_id, subscription.leads_used, plan.monthly_lead_quota)

        lead = await session.add_lead(data, now)
        if subscription is not None:
            subscription = await session.increment_lead_usage(subscription.id, now)

    if subscription is not None:
        logger.info(
            "Lead admitted: id=%s contractor=%s leads_used=%s",
            lead.id, lead.contractor_id, subscription.leads_used,
        )
    else:
        logger.info("Lead admitted: id=%s contractor=%s (unmetered)", lead.id, lead.contractor_id)
    return lead


async def list_leads(storage: DirectoryStorage, contractor_id: int | None = None) -> list[LeadResponse]:
    """Leads newest first, optionally for a single contractor."""
    return await storage.list_leads(contractor_id)


async def get_lead(storage: DirectoryStorage, lead_id: int) -> LeadResponse:
    lead = await storage.get_lead(lead_id)
    if lead is None:
        raise NotFound("Lead", lead_id)
    return lead


async def update_lead_status(
    storage: DirectoryStorage, lead_id: int, new_status: LeadStatus | str,
) -> LeadResponse:
    """Move a lead to new_status; any recognized status is reachable from any other."""
    status = new_status.value if isinstance(new_status, LeadStatus) else new_status
    if status not in LEAD_STATUSES:
        raise ValidationError(
            f"Unknown lead status {status!r}. Expected one of: {', '.join(LEAD_STATUSES)}",
            errors=[{"loc": ["status"], "msg": "unknown lead status", "type": "enum"}],
        )

    lead = await storage.update_lead_status(lead_id, status, utcnow())
    if lead is None:
        raise NotFound("Lead", lead_id)
    logger.info("Lead status changed: id=%s contractor=%s status=%s", lead.id, lead.contractor_id, status)
    return lead


async def lead_stats(
    storage: DirectoryStorage,
    contractor_id: int | None = None,
    now: datetime | None = None,
) -> LeadStats:
    """Lead counts by status plus the number created in the current calendar month."""
    now = now or utcnow()
    leads = await storage.list_leads(contractor_id)
    by_status = {status: 0 for status in LEAD_STATUSES}
    this_month = 0
    for lead in leads:
        by_status[lead.status.value] += 1
        if lead.created_at.year == now.year and lead.created_at.month == now.month:
            this_month += 1
    return LeadStats(
        contractor_id=contractor_id,
        total=len(leads),
        by_status=by_status,
        this_month=this_month,
    )
