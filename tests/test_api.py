"""HTTP-level tests against the FastAPI app with in-memory storage."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from services.auth import ensure_manager_user


@pytest_asyncio.fixture
async def client(storage):
    from main import app

    # ASGITransport does not run the lifespan; wire storage directly.
    app.state.storage = storage
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def manager(client, storage):
    await ensure_manager_user(storage, "manager", "s3cret")
    resp = await client.post("/api/auth/login", json={"username": "manager", "password": "s3cret"})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def _lead(contractor_id, **overrides):
    body = {
        "contractor_id": contractor_id,
        "customer_name": "Dana Homeowner",
        "customer_email": "dana@example.com",
        "project_type": "kitchen-remodeling",
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


# ── Auth ───────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_login_and_me(client, manager):
    resp = await client.get("/api/auth/me", headers=manager)
    assert resp.status_code == 200
    assert resp.json()["username"] == "manager"
    assert "password_hash" not in resp.json()


@pytest.mark.asyncio
async def test_bad_login(client, storage):
    await ensure_manager_user(storage, "manager", "s3cret")
    resp = await client.post("/api/auth/login", json={"username": "manager", "password": "guess"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_manager_routes_require_token(client):
    assert (await client.get("/api/plans/all")).status_code == 401
    assert (await client.get("/api/leads")).status_code == 401
    assert (await client.get("/api/admin/stats")).status_code == 401
    resp = await client.post(
        "/api/contractors", json={"name": "X", "category": "Y"},
        headers={"Authorization": "Bearer forged"},
    )
    assert resp.status_code == 401


# ── Plans ──────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_plans_public_and_manager_views(client, manager):
    for body in [
        {"name": "Premium", "monthly_lead_quota": 50, "price": 149.99},
        {"name": "Basic", "monthly_lead_quota": 5, "price": 29.99},
        {"name": "Legacy", "monthly_lead_quota": 3, "price": 9.99, "active": False},
    ]:
        resp = await client.post("/api/plans", json=body, headers=manager)
        assert resp.status_code == 201

    public = (await client.get("/api/plans")).json()
    assert [p["name"] for p in public] == ["Basic", "Premium"]

    everything = (await client.get("/api/plans/all", headers=manager)).json()
    assert [p["name"] for p in everything] == ["Legacy", "Basic", "Premium"]


@pytest.mark.asyncio
async def test_update_missing_plan(client, manager):
    resp = await client.put(
        "/api/plans/99", json={"name": "X", "monthly_lead_quota": 1, "price": 0}, headers=manager,
    )
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


# ── Contractors ────────────────────────────────────────────

@pytest.mark.asyncio
async def test_contractor_crud(client, manager):
    resp = await client.post(
        "/api/contractors",
        json={"name": "Gulf Coast Builders", "category": "General Contractors", "location": "Lake Charles, LA"},
        headers=manager,
    )
    assert resp.status_code == 201
    contractor = resp.json()
    assert contractor["service_radius"] == 50

    listed = (await client.get("/api/contractors", params={"category": "general"})).json()
    assert [c["id"] for c in listed] == [contractor["id"]]

    resp = await client.put(
        f"/api/contractors/{contractor['id']}",
        json={"name": "Gulf Coast Builders", "category": "Roofing", "location": "Lake Charles, LA"},
        headers=manager,
    )
    assert resp.json()["category"] == "Roofing"

    assert (await client.delete(f"/api/contractors/{contractor['id']}", headers=manager)).status_code == 204
    resp = await client.get(f"/api/contractors/{contractor['id']}")
    assert resp.status_code == 404
    assert resp.json()["detail"] == f"Contractor {contractor['id']} not found"


@pytest.mark.asyncio
async def test_delete_contractor_with_leads_conflicts(client, manager, make_contractor):
    contractor = await make_contractor()
    lead = (await client.post("/api/leads", json=_lead(contractor.id))).json()

    resp = await client.delete(f"/api/contractors/{contractor.id}", headers=manager)

    assert resp.status_code == 409
    body = resp.json()
    assert body["error"] == "contractor_in_use"
    assert (body["lead_count"], body["subscription_count"]) == (1, 0)
    assert (await client.get(f"/api/contractors/{contractor.id}")).status_code == 200
    assert (await client.get(f"/api/leads/{lead['id']}", headers=manager)).status_code == 200


@pytest.mark.asyncio
async def test_contractor_import_endpoint(client, manager, make_contractor):
    await make_contractor(name="Gulf Coast Builders")
    resp = await client.post(
        "/api/contractors/import",
        json=[
            {"name": "Gulf Coast Builders", "category": "General Contractors"},
            {"name": "Bayou State Renovations", "category": "Kitchen & Bath"},
        ],
        headers=manager,
    )
    assert resp.status_code == 200
    assert resp.json()["added"] == 1
    assert resp.json()["skipped"] == 1


@pytest.mark.asyncio
async def test_reviews(client, make_contractor):
    contractor = await make_contractor()
    resp = await client.post(
        f"/api/contractors/{contractor.id}/reviews",
        json={"customer_name": "Sam", "rating": 5, "comment": "Great work"},
    )
    assert resp.status_code == 201
    reviews = (await client.get(f"/api/contractors/{contractor.id}/reviews")).json()
    assert [r["comment"] for r in reviews] == ["Great work"]

    resp = await client.post("/api/contractors/99/reviews", json={"customer_name": "Sam", "rating": 5})
    assert resp.status_code == 404


# ── Subscription & lead admission ──────────────────────────

@pytest.mark.asyncio
async def test_quota_enforced_over_http(client, manager, make_plan, make_contractor):
    plan = await make_plan(quota=2)
    contractor = await make_contractor()

    assert (await client.get(f"/api/contractors/{contractor.id}/subscription")).status_code == 404

    resp = await client.put(
        f"/api/contractors/{contractor.id}/subscription", json={"plan_id": plan.id}, headers=manager,
    )
    assert resp.status_code == 200
    assert resp.json()["leads_used"] == 0

    for _ in range(2):
        resp = await client.post("/api/leads", json=_lead(contractor.id))
        assert resp.status_code == 201
        assert resp.json()["status"] == "new"

    resp = await client.post("/api/leads", json=_lead(contractor.id))
    assert resp.status_code == 409
    body = resp.json()
    assert body["error"] == "quota_exceeded"
    assert body["contractor_id"] == contractor.id
    assert (body["leads_used"], body["monthly_lead_quota"]) == (2, 2)

    summary = (await client.get(f"/api/contractors/{contractor.id}/subscription")).json()
    assert summary["usage"] == {
        "leads_used": 2, "monthly_lead_quota": 2, "leads_remaining": 0, "usage_percentage": 100.0,
    }
    assert summary["plan"]["id"] == plan.id


@pytest.mark.asyncio
async def test_replace_subscription_over_http(client, manager, make_plan, make_contractor):
    basic = await make_plan(name="Basic", quota=5)
    pro = await make_plan(name="Professional", quota=15, price=79.99)
    contractor = await make_contractor()

    for plan in (basic, pro):
        resp = await client.put(
            f"/api/contractors/{contractor.id}/subscription", json={"plan_id": plan.id}, headers=manager,
        )
        assert resp.status_code == 200

    history = (await client.get(f"/api/contractors/{contractor.id}/subscriptions", headers=manager)).json()
    assert [(s["plan_id"], s["status"]) for s in history] == [(pro.id, "active"), (basic.id, "inactive")]


@pytest.mark.asyncio
async def test_subscription_bad_cycle_and_unknown_plan(client, manager, make_contractor):
    contractor = await make_contractor()
    resp = await client.put(
        f"/api/contractors/{contractor.id}/subscription", json={"plan_id": 42}, headers=manager,
    )
    assert resp.status_code == 404

    resp = await client.put(
        f"/api/contractors/{contractor.id}/subscription",
        json={
            "plan_id": 42,
            "billing_cycle_start": "2026-05-01T00:00:00Z",
            "billing_cycle_end": "2026-04-01T00:00:00Z",
        },
        headers=manager,
    )
    assert resp.status_code == 422
    assert resp.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_lead_validation_and_unknown_contractor(client):
    resp = await client.post("/api/leads", json=_lead(1, customer_email="nope"))
    assert resp.status_code == 422

    resp = await client.post("/api/leads", json=_lead(999))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_lead_contact_details_returned_verbatim(client, manager, make_contractor):
    contractor = await make_contractor()
    resp = await client.post(
        "/api/leads", json=_lead(contractor.id, customer_email="Dana@Example.COM", customer_name="  Dana  "),
    )
    assert resp.status_code == 201

    fetched = (await client.get(f"/api/leads/{resp.json()['id']}", headers=manager)).json()
    assert fetched["customer_email"] == "Dana@Example.COM"
    assert fetched["customer_name"] == "  Dana  "


@pytest.mark.asyncio
async def test_lead_status_pipeline(client, manager, make_contractor):
    contractor = await make_contractor()
    lead = (await client.post("/api/leads", json=_lead(contractor.id))).json()

    resp = await client.patch(f"/api/leads/{lead['id']}/status", json={"status": "archived"}, headers=manager)
    assert resp.status_code == 422
    assert (await client.get(f"/api/leads/{lead['id']}", headers=manager)).json()["status"] == "new"

    resp = await client.patch(f"/api/leads/{lead['id']}/status", json={"status": "contacted"}, headers=manager)
    assert resp.status_code == 200
    assert resp.json()["status"] == "contacted"

    resp = await client.patch("/api/leads/999/status", json={"status": "won"}, headers=manager)
    assert resp.status_code == 404

    leads = (await client.get("/api/leads", params={"contractor_id": contractor.id}, headers=manager)).json()
    assert [item["id"] for item in leads] == [lead["id"]]
    by_contractor = (await client.get(f"/api/contractors/{contractor.id}/leads", headers=manager)).json()
    assert by_contractor == leads


# ── Admin ──────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_admin_stats(client, manager, make_plan, make_contractor, subscribe):
    plan = await make_plan(quota=1)
    full = await make_contractor(name="Full Co")
    await make_contractor(name="Free Co")
    await subscribe(full.id, plan.id)
    await client.post("/api/leads", json=_lead(full.id))

    stats = (await client.get("/api/admin/stats", headers=manager)).json()
    assert stats["total_contractors"] == 2
    assert stats["active_subscriptions"] == 1
    assert stats["total_leads"] == 1
    assert stats["contractors_at_quota"] == 1
    assert stats["leads_by_status"]["new"] == 1


@pytest.mark.asyncio
async def test_project_types(client, manager):
    resp = await client.post(
        "/api/project-types", json={"name": "Garage Building", "slug": "garage-building"}, headers=manager,
    )
    assert resp.status_code == 201
    resp = await client.post(
        "/api/project-types", json={"name": "Bad", "slug": "Not A Slug"}, headers=manager,
    )
    assert resp.status_code == 422
    assert [p["slug"] for p in (await client.get("/api/project-types")).json()] == ["garage-building"]
