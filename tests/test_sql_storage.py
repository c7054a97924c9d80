"""
SQL storage backend against an in-memory SQLite database (aiosqlite).

SQLite ignores SELECT ... FOR UPDATE, so these tests cover the ledger's
transactional behaviour and the partial unique index, not row locking.
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from db.database import build_engine
from errors import ContractorInUse, NotFound, QuotaExceeded, ValidationError
from schemas import ContractorCreate, LeadStatus, PlanCreate, ReviewCreate, SubscriptionStatus
from services.clock import utcnow
from services.lead_intake import get_lead, list_leads, submit_lead, update_lead_status
from services.subscription_ledger import (
    create_or_replace_subscription, get_active_subscription, list_subscriptions,
)
from storage.sql import SqlStorage


@pytest_asyncio.fixture
async def sql_storage():
    engine = build_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    storage = SqlStorage(engine)
    await storage.init()
    yield storage
    await storage.close()


@pytest_asyncio.fixture
async def catalog(sql_storage):
    now = utcnow()
    basic = await sql_storage.create_plan(PlanCreate(name="Basic", monthly_lead_quota=2, price=29.99), now)
    pro = await sql_storage.create_plan(PlanCreate(name="Professional", monthly_lead_quota=15, price=79.99), now)
    contractor = await sql_storage.create_contractor(
        ContractorCreate(name="Gulf Coast Builders", category="General Contractors", specialties=["Roofing"]),
        now, latitude=30.2266, longitude=-93.2174,
    )
    return basic, pro, contractor


def _lead(contractor_id):
    return {
        "contractor_id": contractor_id,
        "customer_name": "Dana Homeowner",
        "customer_email": "dana@example.com",
        "project_type": "garage-building",
    }


@pytest.mark.asyncio
async def test_round_trip_types(sql_storage, catalog):
    basic, _, contractor = catalog

    plan = await sql_storage.get_plan(basic.id)
    assert plan.price == pytest.approx(29.99)
    assert plan.created_at.tzinfo is not None

    fetched = await sql_storage.get_contractor(contractor.id)
    assert fetched.specialties == ["Roofing"]
    assert fetched.latitude == pytest.approx(30.2266)


@pytest.mark.asyncio
async def test_quota_admission(sql_storage, catalog):
    basic, _, contractor = catalog
    await create_or_replace_subscription(sql_storage, contractor.id, basic.id)

    await submit_lead(sql_storage, _lead(contractor.id))
    await submit_lead(sql_storage, _lead(contractor.id))
    with pytest.raises(QuotaExceeded):
        await submit_lead(sql_storage, _lead(contractor.id))

    assert (await get_active_subscription(sql_storage, contractor.id)).leads_used == 2
    assert len(await list_leads(sql_storage, contractor.id)) == 2


@pytest.mark.asyncio
async def test_unmetered_and_missing_contractor(sql_storage, catalog):
    _, _, contractor = catalog
    lead = await submit_lead(sql_storage, _lead(contractor.id))
    assert lead.status == LeadStatus.NEW

    with pytest.raises(NotFound):
        await submit_lead(sql_storage, _lead(999))


@pytest.mark.asyncio
async def test_replace_subscription(sql_storage, catalog):
    basic, pro, contractor = catalog
    await create_or_replace_subscription(sql_storage, contractor.id, basic.id)
    await submit_lead(sql_storage, _lead(contractor.id))
    await create_or_replace_subscription(sql_storage, contractor.id, pro.id)

    history = await list_subscriptions(sql_storage, contractor.id)
    statuses = sorted((s.plan_id, s.status, s.leads_used) for s in history)
    assert statuses == [
        (basic.id, SubscriptionStatus.INACTIVE, 1),
        (pro.id, SubscriptionStatus.ACTIVE, 0),
    ]


@pytest.mark.asyncio
async def test_partial_unique_index_rejects_second_active(sql_storage, catalog):
    basic, pro, contractor = catalog
    now = utcnow()

    with pytest.raises(IntegrityError):
        async with sql_storage.ledger(contractor.id) as session:
            await session.add_subscription(basic.id, now, now, now)
            await session.add_subscription(pro.id, now, now, now)

    assert await get_active_subscription(sql_storage, contractor.id) is None


@pytest.mark.asyncio
async def test_failed_ledger_session_rolls_back(sql_storage, catalog):
    basic, _, contractor = catalog
    await create_or_replace_subscription(sql_storage, contractor.id, basic.id)

    with pytest.raises(RuntimeError):
        async with sql_storage.ledger(contractor.id) as session:
            sub = await session.active_subscription()
            await session.increment_lead_usage(sub.id, utcnow())
            raise RuntimeError("abort")

    assert (await get_active_subscription(sql_storage, contractor.id)).leads_used == 0


@pytest.mark.asyncio
async def test_inactive_plan_rejected(sql_storage, catalog):
    basic, _, contractor = catalog
    await sql_storage.update_plan(
        basic.id, PlanCreate(name="Basic", monthly_lead_quota=2, price=29.99, active=False),
    )
    with pytest.raises(ValidationError):
        await create_or_replace_subscription(sql_storage, contractor.id, basic.id)


@pytest.mark.asyncio
async def test_status_update_persists(sql_storage, catalog):
    basic, _, contractor = catalog
    await create_or_replace_subscription(sql_storage, contractor.id, basic.id)
    lead = await submit_lead(sql_storage, _lead(contractor.id))

    updated = await update_lead_status(sql_storage, lead.id, "quoted")
    assert updated.status == LeadStatus.QUOTED
    assert (await get_lead(sql_storage, lead.id)).status == LeadStatus.QUOTED


@pytest.mark.asyncio
async def test_delete_keeps_leads_and_subscription_history(sql_storage, catalog):
    basic, pro, contractor = catalog
    await create_or_replace_subscription(sql_storage, contractor.id, basic.id)
    lead = await submit_lead(sql_storage, _lead(contractor.id))
    await create_or_replace_subscription(sql_storage, contractor.id, pro.id)

    with pytest.raises(ContractorInUse) as exc:
        await sql_storage.delete_contractor(contractor.id)

    assert (exc.value.lead_count, exc.value.subscription_count) == (1, 2)
    assert (await sql_storage.get_contractor(contractor.id)).id == contractor.id
    assert [row.id for row in await sql_storage.list_leads()] == [lead.id]
    history = await sql_storage.list_subscriptions(contractor.id)
    assert sorted(s.status for s in history) == [SubscriptionStatus.ACTIVE, SubscriptionStatus.INACTIVE]


@pytest.mark.asyncio
async def test_delete_listing_without_history(sql_storage, catalog):
    _, _, contractor = catalog
    now = utcnow()
    other = await sql_storage.create_contractor(
        ContractorCreate(name="Westlake Handyman", category="Handyman"), now,
    )
    await sql_storage.create_review(other.id, ReviewCreate(customer_name="Sam", rating=5), now)

    assert await sql_storage.delete_contractor(other.id) is True
    assert await sql_storage.get_contractor(other.id) is None
    assert await sql_storage.list_reviews(other.id) == []
    assert await sql_storage.delete_contractor(other.id) is False
    assert (await sql_storage.get_contractor(contractor.id)) is not None


@pytest.mark.asyncio
async def test_lead_fields_round_trip_verbatim(sql_storage, catalog):
    _, _, contractor = catalog
    lead = await submit_lead(
        sql_storage,
        {**_lead(contractor.id), "customer_email": "Dana@Example.COM", "customer_name": "  Dana  "},
    )

    fetched = await get_lead(sql_storage, lead.id)
    assert fetched.customer_email == "Dana@Example.COM"
    assert fetched.customer_name == "  Dana  "


@pytest.mark.asyncio
async def test_users(sql_storage):
    user = await sql_storage.create_user("manager", "hash", "manager", utcnow())
    assert (await sql_storage.get_user_by_username("manager")).id == user.id
    assert await sql_storage.get_user_by_username("nobody") is None
