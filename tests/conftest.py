"""Shared fixtures: an in-memory store and small factories for catalog rows."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

import pytest
from unittest.mock import AsyncMock, patch

from schemas import ContractorCreate, PlanCreate
from services.clock import utcnow
from storage import MemoryStorage


@pytest.fixture(autouse=True)
def no_geocoding():
    """Keep every test off the network; tests needing coordinates patch again."""
    with patch("services.contractor_directory.geocode", new=AsyncMock(return_value=None)) as mock:
        yield mock


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def make_plan(storage):
    async def _make(quota=5, price=29.99, name="Basic", active=True):
        data = PlanCreate(name=name, monthly_lead_quota=quota, price=price, active=active)
        return await storage.create_plan(data, utcnow())
    return _make


@pytest.fixture
def make_contractor(storage):
    async def _make(name="Gulf Coast Builders", latitude=None, longitude=None, **fields):
        fields.setdefault("category", "General Contractors")
        fields.setdefault("location", "Lake Charles, LA")
        data = ContractorCreate(name=name, **fields)
        return await storage.create_contractor(data, utcnow(), latitude=latitude, longitude=longitude)
    return _make


@pytest.fixture
def subscribe(storage):
    """Give a contractor an active subscription, optionally with leads already used."""
    from services.subscription_ledger import create_or_replace_subscription

    async def _subscribe(contractor_id, plan_id, leads_used=0):
        sub = await create_or_replace_subscription(storage, contractor_id, plan_id)
        if leads_used:
            sub = sub.model_copy(update={"leads_used": leads_used})
            storage._subscriptions[sub.id] = sub
        return sub
    return _subscribe


def lead_payload(contractor_id, **overrides):
    payload = {
        "contractor_id": contractor_id,
        "customer_name": "Dana Homeowner",
        "customer_email": "dana@example.com",
        "customer_phone": "(337) 555-0199",
        "project_type": "kitchen-remodeling",
        "project_description": "Replace cabinets and countertops",
        "budget": "$10k-$25k",
        "timeline": "1-3 months",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def payload():
    return lead_payload
