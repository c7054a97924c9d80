"""Admin dashboard counters."""

from schemas import DashboardStats, SubscriptionStatus
from services.lead_intake import lead_stats
from storage import DirectoryStorage


async def gather_stats(storage: DirectoryStorage) -> DashboardStats:
    contractors = await storage.list_contractors()
    plans = {p.id: p for p in await storage.list_plans()}

    active = [s for s in await storage.list_subscriptions() if s.status == SubscriptionStatus.ACTIVE]
    at_quota = sum(
        1 for s in active
        if s.plan_id in plans and s.leads_used >= plans[s.plan_id].monthly_lead_quota
    )

    leads = await lead_stats(storage)
    return DashboardStats(
        total_contractors=len(contractors),
        active_subscriptions=len(active),
        total_leads=leads.total,
        leads_this_month=leads.this_month,
        leads_by_status=leads.by_status,
        contractors_at_quota=at_quota,
    )
