import pytest
from httpx import ASGITransport, AsyncClient

from payroll_backend.main import create_app
from payroll_backend.saga.integration import LiquidationService
from payroll_backend.store.client import Collections
from payroll_backend.store.sql_store import SQLStoreClient

from .conftest import ACTOR_ID, COMPANY_ID, StubCalculator, seed_payrolls, seed_period


def _client(services) -> AsyncClient:
    app = create_app()
    app.state.services = services
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture
async def client(store):
    services = {"liquidation_service": LiquidationService(store), "consistency_monitor": None}
    async with _client(services) as ac:
        yield ac


@pytest.mark.asyncio
async def test_liquidate_endpoint_closes_period(client, store):
    period = await seed_period(store)
    await seed_payrolls(store, period, [1000, 2000])

    resp = await client.post(
        f"/api/payroll/periods/{period['id']}/liquidate",
        json={"company_id": COMPANY_ID, "actor_id": ACTOR_ID},
    )

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["success"] is True
    assert data["transaction_id"].startswith(f"liquidation_{period['id']}_")
    assert data["details"]["vouchers_generated"] == 2


@pytest.mark.asyncio
async def test_liquidate_endpoint_rejects_closed_period_with_409(client, store):
    period = await seed_period(store, state="closed")
    await seed_payrolls(store, period, [1000])

    resp = await client.post(
        f"/api/payroll/periods/{period['id']}/liquidate",
        json={"company_id": COMPANY_ID, "actor_id": ACTOR_ID},
    )

    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["success"] is False
    assert detail["details"]["errors"] == ["Period is already closed"]


@pytest.mark.asyncio
async def test_liquidate_endpoint_reports_rolled_back_saga_as_500(database):
    store = SQLStoreClient(StubCalculator(fail_on=["emp-1"]))
    period = await seed_period(store)
    await seed_payrolls(store, period, [1000])

    async with _client({"liquidation_service": LiquidationService(store)}) as ac:
        resp = await ac.post(
            f"/api/payroll/periods/{period['id']}/liquidate",
            json={"company_id": COMPANY_ID, "actor_id": ACTOR_ID},
        )

    assert resp.status_code == 500
    detail = resp.json()["detail"]
    assert detail["rollback_completed"] is True
    assert detail["transaction_id"]


@pytest.mark.asyncio
async def test_liquidate_endpoint_validates_body(client):
    resp = await client.post("/api/payroll/periods/p-1/liquidate", json={"company_id": COMPANY_ID})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_consistency_and_recovery_endpoints(client, store):
    period = await seed_period(store, state="closed")
    await seed_payrolls(store, period, [1000, 2000])

    report = (await client.get(f"/api/payroll/companies/{COMPANY_ID}/consistency")).json()["data"]
    assert report["overall_health"] == "critical"
    assert report["issues"][0]["type"] == "state_mismatch"

    plans = (await client.get(f"/api/payroll/companies/{COMPANY_ID}/recovery-plans")).json()["data"]
    assert plans["count"] == 1
    plan = plans["plans"][0]
    assert plan["priority"] == "critical"

    resp = await client.post(
        f"/api/payroll/companies/{COMPANY_ID}/recovery-plans/execute",
        json={"plan": plan, "actor_id": ACTOR_ID},
    )
    assert resp.status_code == 200
    execution = resp.json()["data"]
    assert execution["success"] is True
    assert execution["actions_completed"] == 1

    payrolls = await store.query(Collections.PAYROLLS, {"period_id": period["id"]})
    assert {record["state"] for record in payrolls} == {"processed"}


@pytest.mark.asyncio
async def test_execute_rejects_malformed_plan(client):
    resp = await client.post(
        f"/api/payroll/companies/{COMPANY_ID}/recovery-plans/execute",
        json={"plan": {"actions": [{"type": "explode"}]}, "actor_id": ACTOR_ID},
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_saga_maintenance_endpoints(client):
    active = (await client.get("/api/payroll/sagas/active")).json()["data"]
    assert active == {"transactions": [], "count": 0}

    cleanup = await client.post("/api/payroll/sagas/cleanup", params={"max_age_hours": 1})
    assert cleanup.status_code == 200
    assert cleanup.json()["data"]["removed"] == []


@pytest.mark.asyncio
async def test_health_endpoint_without_monitor(client):
    resp = await client.get("/api/payroll/health")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "ok"
    assert data["monitor"] is None


@pytest.mark.asyncio
async def test_routes_answer_503_before_startup():
    async with _client({}) as ac:
        resp = await ac.get(f"/api/payroll/companies/{COMPANY_ID}/consistency")
    assert resp.status_code == 503
