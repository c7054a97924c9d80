"""
In-memory storage backend.

Used by the test-suite and by STORAGE_BACKEND=memory for local demos.
Every record is a pydantic model; updates replace the stored model with a
copy. Ledger sessions hold a per-contractor asyncio.Lock and keep an undo
log so a failed unit of work leaves nothing behind.
"""

from __future__ import annotations
import asyncio
import itertools
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable

from errors import ContractorInUse, NotFound
from schemas import (
    ContractorCreate, ContractorResponse, LeadCreate, LeadResponse, LeadStatus,
    PlanCreate, PlanResponse, ProjectTypeCreate, ProjectTypeResponse,
    ReviewCreate, ReviewResponse, SubscriptionResponse, SubscriptionStatus, UserRecord,
)
from storage.base import DirectoryStorage, LedgerSession


async def _io() -> None:
    """Yield to the event loop the way a driver round-trip would."""
    await asyncio.sleep(0)


def _newest_first(records: list) -> list:
    return sorted(records, key=lambda r: (r.created_at, r.id), reverse=True)


class MemoryLedgerSession(LedgerSession):

    def __init__(self, storage: MemoryStorage, contractor: ContractorResponse):
        self._storage = storage
        self.contractor = contractor
        self._undo: list[Callable[[], None]] = []

    def rollback(self) -> None:
        while self._undo:
            self._undo.pop()()

    async def active_subscription(self) -> SubscriptionResponse | None:
        await _io()
        return self._storage._active_subscription(self.contractor.id)

    async def get_plan(self, plan_id: int) -> PlanResponse | None:
        await _io()
        return self._storage._plans.get(plan_id)

    def _replace_subscription(self, updated: SubscriptionResponse) -> None:
        subscriptions = self._storage._subscriptions
        previous = subscriptions[updated.id]
        subscriptions[updated.id] = updated
        self._undo.append(lambda: subscriptions.__setitem__(previous.id, previous))

    async def deactivate_subscription(self, subscription_id: int, now: datetime) -> None:
        await _io()
        current = self._storage._subscriptions[subscription_id]
        self._replace_subscription(
            current.model_copy(update={"status": SubscriptionStatus.INACTIVE, "updated_at": now})
        )

    async def add_subscription(
        self, plan_id: int, cycle_start: datetime, cycle_end: datetime, now: datetime,
    ) -> SubscriptionResponse:
        await _io()
        subscription = SubscriptionResponse(
            id=next(self._storage._subscription_ids),
            contractor_id=self.contractor.id,
            plan_id=plan_id,
            billing_cycle_start=cycle_start,
            billing_cycle_end=cycle_end,
            leads_used=0,
            status=SubscriptionStatus.ACTIVE,
            created_at=now,
            updated_at=now,
        )
        subscriptions = self._storage._subscriptions
        subscriptions[subscription.id] = subscription
        self._undo.append(lambda: subscriptions.pop(subscription.id, None))
        return subscription

    async def increment_lead_usage(self, subscription_id: int, now: datetime) -> SubscriptionResponse:
        await _io()
        current = self._storage._subscriptions[subscription_id]
        updated = current.model_copy(update={"leads_used": current.leads_used + 1, "updated_at": now})
        self._replace_subscription(updated)
        return updated

    async def add_lead(self, data: LeadCreate, now: datetime) -> LeadResponse:
        await _io()
        lead = LeadResponse(
            id=next(self._storage._lead_ids),
            **data.model_dump(),
            status=LeadStatus.NEW,
            created_at=now,
            updated_at=now,
        )
        leads = self._storage._leads
        leads[lead.id] = lead
        self._undo.append(lambda: leads.pop(lead.id, None))
        return lead


class MemoryStorage(DirectoryStorage):
    """Dict-backed storage; one instance per application (or per test)."""

    def __init__(self):
        self._plans: dict[int, PlanResponse] = {}
        self._contractors: dict[int, ContractorResponse] = {}
        self._subscriptions: dict[int, SubscriptionResponse] = {}
        self._leads: dict[int, LeadResponse] = {}
        self._project_types: dict[int, ProjectTypeResponse] = {}
        self._reviews: dict[int, ReviewResponse] = {}
        self._users: dict[int, UserRecord] = {}

        self._plan_ids = itertools.count(1)
        self._contractor_ids = itertools.count(1)
        self._subscription_ids = itertools.count(1)
        self._lead_ids = itertools.count(1)
        self._project_type_ids = itertools.count(1)
        self._review_ids = itertools.count(1)
        self._user_ids = itertools.count(1)

        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ── Plans ──────────────────────────────────────────────

    async def list_plans(self) -> list[PlanResponse]:
        return sorted(self._plans.values(), key=lambda p: p.id)

    async def get_plan(self, plan_id: int) -> PlanResponse | None:
        return self._plans.get(plan_id)

    async def create_plan(self, data: PlanCreate, now: datetime) -> PlanResponse:
        plan = PlanResponse(id=next(self._plan_ids), **data.model_dump(), created_at=now)
        self._plans[plan.id] = plan
        return plan

    async def update_plan(self, plan_id: int, data: PlanCreate) -> PlanResponse | None:
        existing = self._plans.get(plan_id)
        if existing is None:
            return None
        updated = existing.model_copy(update=data.model_dump())
        self._plans[plan_id] = updated
        return updated

    # ── Contractors ────────────────────────────────────────

    async def list_contractors(self) -> list[ContractorResponse]:
        return sorted(self._contractors.values(), key=lambda c: c.id)

    async def get_contractor(self, contractor_id: int) -> ContractorResponse | None:
        return self._contractors.get(contractor_id)

    async def create_contractor(
        self, data: ContractorCreate, now: datetime,
        latitude: float | None = None, longitude: float | None = None,
    ) -> ContractorResponse:
        contractor = ContractorResponse(
            id=next(self._contractor_ids),
            **data.model_dump(),
            latitude=latitude,
            longitude=longitude,
            created_at=now,
            updated_at=now,
        )
        self._contractors[contractor.id] = contractor
        return contractor

    async def update_contractor(
        self, contractor_id: int, data: ContractorCreate, now: datetime,
        latitude: float | None = None, longitude: float | None = None,
    ) -> ContractorResponse | None:
        existing = self._contractors.get(contractor_id)
        if existing is None:
            return None
        updated = existing.model_copy(update={
            **data.model_dump(),
            "latitude": latitude,
            "longitude": longitude,
            "updated_at": now,
        })
        self._contractors[contractor_id] = updated
        return updated

    async def delete_contractor(self, contractor_id: int) -> bool:
        # Same lock as the ledger, so no lead can be admitted mid-delete
        async with self._locks[contractor_id]:
            if contractor_id not in self._contractors:
                return False
            lead_count = sum(1 for v in self._leads.values() if v.contractor_id == contractor_id)
            subscription_count = sum(1 for v in self._subscriptions.values() if v.contractor_id == contractor_id)
            if lead_count or subscription_count:
                raise ContractorInUse(contractor_id, lead_count, subscription_count)

            del self._contractors[contractor_id]
            for key in [k for k, v in self._reviews.items() if v.contractor_id == contractor_id]:
                del self._reviews[key]
            return True

    # ── Project types & reviews ────────────────────────────

    async def list_project_types(self) -> list[ProjectTypeResponse]:
        return sorted(self._project_types.values(), key=lambda p: p.id)

    async def create_project_type(self, data: ProjectTypeCreate, now: datetime) -> ProjectTypeResponse:
        project_type = ProjectTypeResponse(id=next(self._project_type_ids), **data.model_dump(), created_at=now)
        self._project_types[project_type.id] = project_type
        return project_type

    async def list_reviews(self, contractor_id: int) -> list[ReviewResponse]:
        return _newest_first([r for r in self._reviews.values() if r.contractor_id == contractor_id])

    async def create_review(self, contractor_id: int, data: ReviewCreate, now: datetime) -> ReviewResponse:
        review = ReviewResponse(
            id=next(self._review_ids), contractor_id=contractor_id, **data.model_dump(), created_at=now,
        )
        self._reviews[review.id] = review
        return review

    # ── Subscriptions ──────────────────────────────────────

    def _active_subscription(self, contractor_id: int) -> SubscriptionResponse | None:
        for subscription in self._subscriptions.values():
            if subscription.contractor_id == contractor_id and subscription.status == SubscriptionStatus.ACTIVE:
                return subscription
        return None

    async def get_active_subscription(self, contractor_id: int) -> SubscriptionResponse | None:
        return self._active_subscription(contractor_id)

    async def list_subscriptions(self, contractor_id: int | None = None) -> list[SubscriptionResponse]:
        subscriptions = [
            s for s in self._subscriptions.values()
            if contractor_id is None or s.contractor_id == contractor_id
        ]
        return _newest_first(subscriptions)

    @asynccontextmanager
    async def ledger(self, contractor_id: int) -> AsyncIterator[MemoryLedgerSession]:
        async with self._locks[contractor_id]:
            contractor = self._contractors.get(contractor_id)
            if contractor is None:
                raise NotFound("Contractor", contractor_id)
            session = MemoryLedgerSession(self, contractor)
            try:
                yield session
            except BaseException:
                session.rollback()
                raise

    # ── Leads ──────────────────────────────────────────────

    async def list_leads(self, contractor_id: int | None = None) -> list[LeadResponse]:
        leads = [
            lead for lead in self._leads.values()
            if contractor_id is None or lead.contractor_id == contractor_id
        ]
        return _newest_first(leads)

    async def get_lead(self, lead_id: int) -> LeadResponse | None:
        return self._leads.get(lead_id)

    async def update_lead_status(self, lead_id: int, status: str, now: datetime) -> LeadResponse | None:
        existing = self._leads.get(lead_id)
        if existing is None:
            return None
        updated = existing.model_copy(update={"status": LeadStatus(status), "updated_at": now})
        self._leads[lead_id] = updated
        return updated

    # ── Manager users ──────────────────────────────────────

    async def get_user_by_username(self, username: str) -> UserRecord | None:
        for user in self._users.values():
            if user.username == username:
                return user
        return None

    async def create_user(self, username: str, password_hash: str, role: str, now: datetime) -> UserRecord:
        user = UserRecord(
            id=next(self._user_ids), username=username, password_hash=password_hash, role=role, created_at=now,
        )
        self._users[user.id] = user
        return user
