"""Plan Catalog: the purchasable subscription tiers."""

import logging

from errors import NotFound
from schemas import PlanCreate, PlanResponse
from services.clock import utcnow
from storage import DirectoryStorage

logger = logging.getLogger(__name__)


async def list_plans(storage: DirectoryStorage, include_inactive: bool = False) -> list[PlanResponse]:
    """Plans ordered by price (cheapest first), ties by id."""
    plans = await storage.list_plans()
    if not include_inactive:
        plans = [p for p in plans if p.active]
    return sorted(plans, key=lambda p: (p.price, p.id))


async def get_plan(storage: DirectoryStorage, plan_id: int) -> PlanResponse:
    plan = await storage.get_plan(plan_id)
    if plan is None:
        raise NotFound("Plan", plan_id)
    return plan


async def create_plan(storage: DirectoryStorage, data: PlanCreate) -> PlanResponse:
    plan = await storage.create_plan(data, utcnow())
    logger.info("Plan created: id=%s name=%s quota=%s", plan.id, plan.name, plan.monthly_lead_quota)
    return plan


async def update_plan(storage: DirectoryStorage, plan_id: int, data: PlanCreate) -> PlanResponse:
    plan = await storage.update_plan(plan_id, data)
    if plan is None:
        raise NotFound("Plan", plan_id)
    logger.info("Plan updated: id=%s quota=%s active=%s", plan.id, plan.monthly_lead_quota, plan.active)
    return plan
