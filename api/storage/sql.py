"""
SQLAlchemy storage backend (PostgreSQL via asyncpg in production).

A ledger session is one transaction that starts with
SELECT ... FOR UPDATE on the contractor row, so subscription replacement
and lead admission for the same contractor run one at a time. The partial
unique index on contractor_subscriptions backs the one-active-subscription
rule at the database level.
"""

from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

import models as orm
from db.database import build_session_factory, create_tables
from errors import ContractorInUse, NotFound
from schemas import (
    ContractorCreate, ContractorResponse, LeadCreate, LeadResponse, LeadStatus,
    PlanCreate, PlanResponse, ProjectTypeCreate, ProjectTypeResponse,
    ReviewCreate, ReviewResponse, SubscriptionResponse, SubscriptionStatus, UserRecord,
)
from storage.base import DirectoryStorage, LedgerSession

logger = logging.getLogger(__name__)


class SqlLedgerSession(LedgerSession):

    def __init__(self, db: AsyncSession, contractor: ContractorResponse):
        self._db = db
        self.contractor = contractor

    async def active_subscription(self) -> SubscriptionResponse | None:
        result = await self._db.execute(
            select(orm.Subscription).where(
                orm.Subscription.contractor_id == self.contractor.id,
                orm.Subscription.status == SubscriptionStatus.ACTIVE.value,
            )
        )
        row = result.scalar_one_or_none()
        return SubscriptionResponse.model_validate(row) if row else None

    async def get_plan(self, plan_id: int) -> PlanResponse | None:
        row = await self._db.get(orm.Plan, plan_id)
        return PlanResponse.model_validate(row) if row else None

    async def deactivate_subscription(self, subscription_id: int, now: datetime) -> None:
        await self._db.execute(
            update(orm.Subscription)
            .where(orm.Subscription.id == subscription_id)
            .values(status=SubscriptionStatus.INACTIVE.value, updated_at=now)
        )

    async def add_subscription(
        self, plan_id: int, cycle_start: datetime, cycle_end: datetime, now: datetime,
    ) -> SubscriptionResponse:
        row = orm.Subscription(
            contractor_id=self.contractor.id,
            plan_id=plan_id,
            billing_cycle_start=cycle_start,
            billing_cycle_end=cycle_end,
            leads_used=0,
            status=SubscriptionStatus.ACTIVE.value,
            created_at=now,
            updated_at=now,
        )
        self._db.add(row)
        await self._db.flush()
        return SubscriptionResponse.model_validate(row)

    async def increment_lead_usage(self, subscription_id: int, now: datetime) -> SubscriptionResponse:
        await self._db.execute(
            update(orm.Subscription)
            .where(orm.Subscription.id == subscription_id)
            .values(leads_used=orm.Subscription.leads_used + 1, updated_at=now)
        )
        row = await self._db.get(orm.Subscription, subscription_id, populate_existing=True)
        return SubscriptionResponse.model_validate(row)

    async def add_lead(self, data: LeadCreate, now: datetime) -> LeadResponse:
        row = orm.Lead(
            **data.model_dump(),
            status=LeadStatus.NEW.value,
            created_at=now,
            updated_at=now,
        )
        self._db.add(row)
        await self._db.flush()
        return LeadResponse.model_validate(row)


class SqlStorage(DirectoryStorage):

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._session_factory = build_session_factory(engine)

    async def init(self) -> None:
        await create_tables(self.engine)

    async def close(self) -> None:
        await self.engine.dispose()

    # ── Plans ──────────────────────────────────────────────

    async def list_plans(self) -> list[PlanResponse]:
        async with self._session_factory() as db:
            result = await db.execute(select(orm.Plan).order_by(orm.Plan.id))
            return [PlanResponse.model_validate(row) for row in result.scalars().all()]

    async def get_plan(self, plan_id: int) -> PlanResponse | None:
        async with self._session_factory() as db:
            row = await db.get(orm.Plan, plan_id)
            return PlanResponse.model_validate(row) if row else None

    async def create_plan(self, data: PlanCreate, now: datetime) -> PlanResponse:
        async with self._session_factory() as db, db.begin():
            row = orm.Plan(**data.model_dump(), created_at=now)
            db.add(row)
            await db.flush()
            return PlanResponse.model_validate(row)

    async def update_plan(self, plan_id: int, data: PlanCreate) -> PlanResponse | None:
        async with self._session_factory() as db, db.begin():
            row = await db.get(orm.Plan, plan_id)
            if row is None:
                return None
            for field, value in data.model_dump().items():
                setattr(row, field, value)
            await db.flush()
            return PlanResponse.model_validate(row)

    # ── Contractors ────────────────────────────────────────

    async def list_contractors(self) -> list[ContractorResponse]:
        async with self._session_factory() as db:
            result = await db.execute(select(orm.Contractor).order_by(orm.Contractor.id))
            return [ContractorResponse.model_validate(row) for row in result.scalars().all()]

    async def get_contractor(self, contractor_id: int) -> ContractorResponse | None:
        async with self._session_factory() as db:
            row = await db.get(orm.Contractor, contractor_id)
            return ContractorResponse.model_validate(row) if row else None

    async def create_contractor(
        self, data: ContractorCreate, now: datetime,
        latitude: float | None = None, longitude: float | None = None,
    ) -> ContractorResponse:
        async with self._session_factory() as db, db.begin():
            row = orm.Contractor(
                **data.model_dump(),
                latitude=latitude,
                longitude=longitude,
                created_at=now,
                updated_at=now,
            )
            db.add(row)
            await db.flush()
            return ContractorResponse.model_validate(row)

    async def update_contractor(
        self, contractor_id: int, data: ContractorCreate, now: datetime,
        latitude: float | None = None, longitude: float | None = None,
    ) -> ContractorResponse | None:
        async with self._session_factory() as db, db.begin():
            row = await db.get(orm.Contractor, contractor_id)
            if row is None:
                return None
            for field, value in data.model_dump().items():
                setattr(row, field, value)
            row.latitude = latitude
            row.longitude = longitude
            row.updated_at = now
            await db.flush()
            return ContractorResponse.model_validate(row)

    async def delete_contractor(self, contractor_id: int) -> bool:
        async with self._session_factory() as db, db.begin():
            result = await db.execute(
                select(orm.Contractor).where(orm.Contractor.id == contractor_id).with_for_update()
            )
            row = result.scalar_one_or_none()
            if row is None:
                return False

            lead_count = await db.scalar(
                select(func.count(orm.Lead.id)).where(orm.Lead.contractor_id == contractor_id)
            )
            subscription_count = await db.scalar(
                select(func.count(orm.Subscription.id)).where(orm.Subscription.contractor_id == contractor_id)
            )
            if lead_count or subscription_count:
                raise ContractorInUse(contractor_id, lead_count, subscription_count)

            # Reviews belong to the listing; not every dialect enforces ON DELETE CASCADE
            await db.execute(delete(orm.Review).where(orm.Review.contractor_id == contractor_id))
            await db.delete(row)
            return True

    # ── Project types & reviews ────────────────────────────

    async def list_project_types(self) -> list[ProjectTypeResponse]:
        async with self._session_factory() as db:
            result = await db.execute(select(orm.ProjectType).order_by(orm.ProjectType.id))
            return [ProjectTypeResponse.model_validate(row) for row in result.scalars().all()]

    async def create_project_type(self, data: ProjectTypeCreate, now: datetime) -> ProjectTypeResponse:
        async with self._session_factory() as db, db.begin():
            row = orm.ProjectType(**data.model_dump(), created_at=now)
            db.add(row)
            await db.flush()
            return ProjectTypeResponse.model_validate(row)

    async def list_reviews(self, contractor_id: int) -> list[ReviewResponse]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(orm.Review)
                .where(orm.Review.contractor_id == contractor_id)
                .order_by(orm.Review.created_at.desc(), orm.Review.id.desc())
            )
            return [ReviewResponse.model_validate(row) for row in result.scalars().all()]

    async def create_review(self, contractor_id: int, data: ReviewCreate, now: datetime) -> ReviewResponse:
        async with self._session_factory() as db, db.begin():
            row = orm.Review(contractor_id=contractor_id, **data.model_dump(), created_at=now)
            db.add(row)
            await db.flush()
            return ReviewResponse.model_validate(row)

    # ── Subscriptions ──────────────────────────────────────

    async def get_active_subscription(self, contractor_id: int) -> SubscriptionResponse | None:
        async with self._session_factory() as db:
            result = await db.execute(
                select(orm.Subscription).where(
                    orm.Subscription.contractor_id == contractor_id,
                    orm.Subscription.status == SubscriptionStatus.ACTIVE.value,
                )
            )
            row = result.scalar_one_or_none()
            return SubscriptionResponse.model_validate(row) if row else None

    async def list_subscriptions(self, contractor_id: int | None = None) -> list[SubscriptionResponse]:
        query = select(orm.Subscription).order_by(
            orm.Subscription.created_at.desc(), orm.Subscription.id.desc()
        )
        if contractor_id is not None:
            query = query.where(orm.Subscription.contractor_id == contractor_id)
        async with self._session_factory() as db:
            result = await db.execute(query)
            return [SubscriptionResponse.model_validate(row) for row in result.scalars().all()]

    @asynccontextmanager
    async def ledger(self, contractor_id: int) -> AsyncIterator[SqlLedgerSession]:
        async with self._session_factory() as db, db.begin():
            result = await db.execute(
                select(orm.Contractor).where(orm.Contractor.id == contractor_id).with_for_update()
            )
            row = result.scalar_one_or_none()
            if row is None:
                raise NotFound("Contractor", contractor_id)
            yield SqlLedgerSession(db, ContractorResponse.model_validate(row))

    # ── Leads ──────────────────────────────────────────────

    async def list_leads(self, contractor_id: int | None = None) -> list[LeadResponse]:
        query = select(orm.Lead).order_by(orm.Lead.created_at.desc(), orm.Lead.id.desc())
        if contractor_id is not None:
            query = query.where(orm.Lead.contractor_id == contractor_id)
        async with self._session_factory() as db:
            result = await db.execute(query)
            return [LeadResponse.model_validate(row) for row in result.scalars().all()]

    async def get_lead(self, lead_id: int) -> LeadResponse | None:
        async with self._session_factory() as db:
            row = await db.get(orm.Lead, lead_id)
            return LeadResponse.model_validate(row) if row else None

    async def update_lead_status(self, lead_id: int, status: str, now: datetime) -> LeadResponse | None:
        async with self._session_factory() as db, db.begin():
            row = await db.get(orm.Lead, lead_id)
            if row is None:
                return None
            row.status = status
            row.updated_at = now
            await db.flush()
            return LeadResponse.model_validate(row)

    # ── Manager users ──────────────────────────────────────

    async def get_user_by_username(self, username: str) -> UserRecord | None:
        async with self._session_factory() as db:
            result = await db.execute(select(orm.User).where(orm.User.username == username))
            row = result.scalar_one_or_none()
            return UserRecord.model_validate(row) if row else None

    async def create_user(self, username: str, password_hash: str, role: str, now: datetime) -> UserRecord:
        async with self._session_factory() as db, db.begin():
            row = orm.User(username=username, password_hash=password_hash, role=role, created_at=now)
            db.add(row)
            await db.flush()
            logger.info("Manager user created: username=%s role=%s", username, role)
            return UserRecord.model_validate(row)
