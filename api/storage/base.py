"""
Storage interface shared by the memory and SQL backends.

Reads go straight through DirectoryStorage. Anything that touches a
contractor's subscription or admits a lead runs inside a LedgerSession:
    async with storage.ledger(contractor_id) as session:
        ...
The ledger context serializes callers for the same contractor and commits
on clean exit; an exception rolls back every write made in the session.
It raises errors.NotFound when the contractor does not exist.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime

from schemas import (
    ContractorCreate, ContractorResponse, LeadCreate, LeadResponse,
    PlanCreate, PlanResponse, ProjectTypeCreate, ProjectTypeResponse,
    ReviewCreate, ReviewResponse, SubscriptionResponse, UserRecord,
)


class LedgerSession(ABC):
    """Unit of work scoped to one contractor, held under its lock."""

    contractor: ContractorResponse

    @abstractmethod
    async def active_subscription(self) -> SubscriptionResponse | None: ...

    @abstractmethod
    async def get_plan(self, plan_id: int) -> PlanResponse | None: ...

    @abstractmethod
    async def deactivate_subscription(self, subscription_id: int, now: datetime) -> None: ...

    @abstractmethod
    async def add_subscription(
        self, plan_id: int, cycle_start: datetime, cycle_end: datetime, now: datetime,
    ) -> SubscriptionResponse: ...

    @abstractmethod
    async def increment_lead_usage(self, subscription_id: int, now: datetime) -> SubscriptionResponse: ...

    @abstractmethod
    async def add_lead(self, data: LeadCreate, now: datetime) -> LeadResponse: ...


class DirectoryStorage(ABC):
    """Persistence for plans, contractors, subscriptions, leads and managers."""

    # ── Lifecycle ──────────────────────────────────────────

    async def init(self) -> None:
        """Prepare the backend (create tables etc.)."""

    async def close(self) -> None:
        """Release connections."""

    # ── Plans ──────────────────────────────────────────────

    @abstractmethod
    async def list_plans(self) -> list[PlanResponse]: ...

    @abstractmethod
    async def get_plan(self, plan_id: int) -> PlanResponse | None: ...

    @abstractmethod
    async def create_plan(self, data: PlanCreate, now: datetime) -> PlanResponse: ...

    @abstractmethod
    async def update_plan(self, plan_id: int, data: PlanCreate) -> PlanResponse | None: ...

    # ── Contractors ────────────────────────────────────────

    @abstractmethod
    async def list_contractors(self) -> list[ContractorResponse]: ...

    @abstractmethod
    async def get_contractor(self, contractor_id: int) -> ContractorResponse | None: ...

    @abstractmethod
    async def create_contractor(
        self, data: ContractorCreate, now: datetime,
        latitude: float | None = None, longitude: float | None = None,
    ) -> ContractorResponse: ...

    @abstractmethod
    async def update_contractor(
        self, contractor_id: int, data: ContractorCreate, now: datetime,
        latitude: float | None = None, longitude: float | None = None,
    ) -> ContractorResponse | None: ...

    @abstractmethod
    async def delete_contractor(self, contractor_id: int) -> bool:
        """
        Remove a contractor and its reviews. Returns False when it does not exist.

        Raises errors.ContractorInUse while any lead or subscription (active or
        historical) references it; those rows are never deleted.
        """

    # ── Project types & reviews ────────────────────────────

    @abstractmethod
    async def list_project_types(self) -> list[ProjectTypeResponse]: ...

    @abstractmethod
    async def create_project_type(self, data: ProjectTypeCreate, now: datetime) -> ProjectTypeResponse: ...

    @abstractmethod
    async def list_reviews(self, contractor_id: int) -> list[ReviewResponse]: ...

    @abstractmethod
    async def create_review(self, contractor_id: int, data: ReviewCreate, now: datetime) -> ReviewResponse: ...

    # ── Subscriptions ──────────────────────────────────────

    @abstractmethod
    async def get_active_subscription(self, contractor_id: int) -> SubscriptionResponse | None: ...

    @abstractmethod
    async def list_subscriptions(self, contractor_id: int | None = None) -> list[SubscriptionResponse]:
        """Newest first."""

    @abstractmethod
    def ledger(self, contractor_id: int) -> AbstractAsyncContextManager[LedgerSession]: ...

    # ── Leads ──────────────────────────────────────────────

    @abstractmethod
    async def list_leads(self, contractor_id: int | None = None) -> list[LeadResponse]:
        """Newest first by created_at, then by id."""

    @abstractmethod
    async def get_lead(self, lead_id: int) -> LeadResponse | None: ...

    @abstractmethod
    async def update_lead_status(self, lead_id: int, status: str, now: datetime) -> LeadResponse | None: ...

    # ── Manager users ──────────────────────────────────────

    @abstractmethod
    async def get_user_by_username(self, username: str) -> UserRecord | None: ...

    @abstractmethod
    async def create_user(self, username: str, password_hash: str, role: str, now: datetime) -> UserRecord: ...
