"""Pydantic schemas for API request/response models."""

from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated
from email_validator import EmailNotValidError, validate_email
from pydantic import AfterValidator, BaseModel, EmailStr, Field, field_validator


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes (e.g. read back from SQLite) are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


# ── Enums ──────────────────────────────────────────────────

class LeadStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    QUOTED = "quoted"
    WON = "won"
    LOST = "lost"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


# ── Plan Schemas ───────────────────────────────────────────

class PlanCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    monthly_lead_quota: int = Field(..., gt=0)
    price: float = Field(..., ge=0)
    features: list[str] = Field(default_factory=list)
    active: bool = True


class PlanResponse(BaseModel):
    id: int
    name: str
    monthly_lead_quota: int
    price: float
    features: list[str]
    active: bool
    created_at: UtcDatetime

    class Config:
        from_attributes = True


# ── Contractor Schemas ─────────────────────────────────────

class ContractorCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    category: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    location: str = ""
    address: str | None = None
    phone: str | None = None
    email: EmailStr | None = None
    website: str | None = None
    image_url: str | None = None
    rating: float = Field(0.0, ge=0, le=5)
    review_count: int = Field(0, ge=0)
    years_experience: int = Field(0, ge=0)
    project_types: list[str] = Field(default_factory=list)
    specialties: list[str] = Field(default_factory=list)
    service_radius: int = Field(50, ge=1)
    free_estimate: bool = False
    licensed: bool = False

    class Config:
        str_strip_whitespace = True

    @field_validator("email", "website", "image_url", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class ContractorResponse(BaseModel):
    id: int
    name: str
    category: str
    description: str
    location: str
    address: str | None
    phone: str | None
    email: str | None
    website: str | None
    image_url: str | None
    rating: float
    review_count: int
    years_experience: int
    project_types: list[str]
    specialties: list[str]
    service_radius: int
    free_estimate: bool
    licensed: bool
    latitude: float | None = None
    longitude: float | None = None
    created_at: UtcDatetime
    updated_at: UtcDatetime

    class Config:
        from_attributes = True


class ContractorSearchResult(ContractorResponse):
    distance_miles: float | None = None


class ImportResult(BaseModel):
    added: int
    skipped: int
    total: int
    contractor_ids: list[int] = Field(default_factory=list)


# ── Project Type / Review Schemas ──────────────────────────

class ProjectTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    slug: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    icon: str | None = None
    description: str | None = None


class ProjectTypeResponse(BaseModel):
    id: int
    name: str
    slug: str
    icon: str | None
    description: str | None
    created_at: UtcDatetime

    class Config:
        from_attributes = True


class ReviewCreate(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=255)
    rating: int = Field(..., ge=1, le=5)
    comment: str | None = None
    project_type: str | None = None


class ReviewResponse(BaseModel):
    id: int
    contractor_id: int
    customer_name: str
    rating: int
    comment: str | None
    project_type: str | None
    created_at: UtcDatetime

    class Config:
        from_attributes = True


# ── Subscription Schemas ───────────────────────────────────

class SubscriptionCreate(BaseModel):
    plan_id: int
    billing_cycle_start: UtcDatetime | None = None
    billing_cycle_end: UtcDatetime | None = None


class SubscriptionResponse(BaseModel):
    id: int
    contractor_id: int
    plan_id: int
    billing_cycle_start: UtcDatetime
    billing_cycle_end: UtcDatetime
    leads_used: int
    status: SubscriptionStatus
    created_at: UtcDatetime
    updated_at: UtcDatetime

    class Config:
        from_attributes = True


class UsageSummary(BaseModel):
    leads_used: int
    monthly_lead_quota: int
    leads_remaining: int
    usage_percentage: float


class SubscriptionWithPlan(BaseModel):
    subscription: SubscriptionResponse
    plan: PlanResponse
    usage: UsageSummary


# ── Lead Schemas ───────────────────────────────────────────

def _valid_email(value: str) -> str:
    """Check the address shape; the stored value stays exactly as submitted."""
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValueError(f"value is not a valid email address: {e}") from e
    return value


RawEmail = Annotated[str, AfterValidator(_valid_email)]


class LeadCreate(BaseModel):
    contractor_id: int
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_email: RawEmail
    customer_phone: str | None = None
    project_type: str = Field(..., min_length=1, max_length=255)
    project_description: str | None = None
    budget: str | None = None
    timeline: str | None = None

    @field_validator("customer_name", "project_type")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class LeadResponse(BaseModel):
    id: int
    contractor_id: int
    customer_name: str
    customer_email: str
    customer_phone: str | None
    project_type: str
    project_description: str | None
    budget: str | None
    timeline: str | None
    status: LeadStatus
    created_at: UtcDatetime
    updated_at: UtcDatetime

    class Config:
        from_attributes = True


class LeadStatusUpdate(BaseModel):
    status: str


class LeadStats(BaseModel):
    contractor_id: int | None
    total: int
    by_status: dict[str, int]
    this_month: int


# ── Auth Schemas ───────────────────────────────────────────

class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime


class UserRecord(BaseModel):
    id: int
    username: str
    password_hash: str
    role: str
    created_at: UtcDatetime

    class Config:
        from_attributes = True


class ManagerResponse(BaseModel):
    id: int
    username: str
    role: str

    class Config:
        from_attributes = True


# ── Admin Schemas ──────────────────────────────────────────

class DashboardStats(BaseModel):
    total_contractors: int
    active_subscriptions: int
    total_leads: int
    leads_this_month: int
    leads_by_status: dict[str, int]
    contractors_at_quota: int
