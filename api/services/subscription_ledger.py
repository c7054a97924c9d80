"""
Subscription Ledger: one active plan per contractor and its lead counter.

Rules:
  - At most one active subscription per contractor. Replacing a plan marks
    the current subscription inactive (kept as history) and inserts the new
    one with leads_used = 0, inside the contractor's ledger session.
  - leads_used goes up by exactly one per admitted lead and never goes down.
    There is no automatic rollover at billing_cycle_end; a new cycle starts
    only through create_or_replace_subscription.
  - A contractor without an active subscription is unmetered.
"""

import logging
from datetime import datetime, timedelta

from config import settings
from errors import NotFound, ValidationError
from schemas import PlanResponse, SubscriptionResponse, UsageSummary
from services.clock import utcnow
from storage import DirectoryStorage, LedgerSession

logger = logging.getLogger(__name__)


async def get_active_subscription(
    storage: DirectoryStorage, contractor_id: int,
) -> SubscriptionResponse | None:
    return await storage.get_active_subscription(contractor_id)


async def get_subscription_with_plan(
    storage: DirectoryStorage, contractor_id: int,
) -> tuple[SubscriptionResponse, PlanResponse] | None:
    """
    Join the active subscription to its plan.

    Raises NotFound when the subscription points at a plan that is no longer
    in the catalog.
    """
    subscription = await storage.get_active_subscription(contractor_id)
    if subscription is None:
        return None
    plan = await storage.get_plan(subscription.plan_id)
    if plan is None:
        logger.error(
            "Active subscription %s of contractor %s references missing plan %s",
            subscription.id, contractor_id, subscription.plan_id,
        )
        raise NotFound("Plan", subscription.plan_id)
    return subscription, plan


async def plan_for(session: LedgerSession, subscription: SubscriptionResponse) -> PlanResponse:
    """Same join as get_subscription_with_plan, inside a ledger session."""
    plan = await session.get_plan(subscription.plan_id)
    if plan is None:
        logger.error(
            "Active subscription %s of contractor %s references missing plan %s",
            subscription.id, subscription.contractor_id, subscription.plan_id,
        )
        raise NotFound("Plan", subscription.plan_id)
    return plan


def resolve_billing_cycle(
    cycle_start: datetime | None, cycle_end: datetime | None,
) -> tuple[datetime, datetime]:
    """Default a missing start to now and a missing end to start + one cycle."""
    start = cycle_start or utcnow()
    end = cycle_end or start + timedelta(days=settings.DEFAULT_BILLING_CYCLE_DAYS)
    if end <= start:
        raise ValidationError(
            "billing_cycle_end must be after billing_cycle_start",
            errors=[{
                "loc": ["billing_cycle_end"],
                "msg": "must be after billing_cycle_start",
                "type": "value_error",
            }],
        )
    return start, end


async def create_or_replace_subscription(
    storage: DirectoryStorage,
    contractor_id: int,
    plan_id: int,
    cycle_start: datetime | None = None,
    cycle_end: datetime | None = None,
) -> SubscriptionResponse:
    """Bind the contractor to plan_id, deactivating any current subscription."""
    start, end = resolve_billing_cycle(cycle_start, cycle_end)
    now = utcnow()

    async with storage.ledger(contractor_id) as session:
        plan = await session.get_plan(plan_id)
        if plan is None:
            raise NotFound("Plan", plan_id)
        if not plan.active:
            raise ValidationError(f"Plan {plan_id} is not available for new subscriptions")

        current = await session.active_subscription()
        if current is not None:
            await session.deactivate_subscription(current.id, now)
        subscription = await session.add_subscription(plan_id, start, end, now)

    if current is not None:
        logger.info(
            "Subscription replaced: contractor=%s plan %s -> %s (old=%s leads_used=%s, new=%s)",
            contractor_id, current.plan_id, plan_id, current.id, current.leads_used, subscription.id,
        )
    else:
        logger.info(
            "Subscription created: contractor=%s plan=%s id=%s cycle=%s..%s",
            contractor_id, plan_id, subscription.id, start.isoformat(), end.isoformat(),
        )
    return subscription


async def increment_lead_usage(
    storage: DirectoryStorage, contractor_id: int,
) -> SubscriptionResponse | None:
    """Add one lead to the active subscription's counter; no-op when unmetered."""
    async with storage.ledger(contractor_id) as session:
        subscription = await session.active_subscription()
        if subscription is None:
            return None
        return await session.increment_lead_usage(subscription.id, utcnow())


async def list_subscriptions(storage: DirectoryStorage, contractor_id: int) -> list[SubscriptionResponse]:
    """Subscription history for a contractor, newest first."""
    if await storage.get_contractor(contractor_id) is None:
        raise NotFound("Contractor", contractor_id)
    return await storage.list_subscriptions(contractor_id)


def usage_summary(subscription: SubscriptionResponse, plan: PlanResponse) -> UsageSummary:
    quota = plan.monthly_lead_quota
    used = subscription.leads_used
    return UsageSummary(
        leads_used=used,
        monthly_lead_quota=quota,
        leads_remaining=max(quota - used, 0),
        usage_percentage=round(used / quota * 100, 1) if quota else 0.0,
    )
