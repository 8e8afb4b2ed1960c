from datetime import timedelta

import pytest

from payroll_backend.saga.context import SagaContext, SagaRegistry
from payroll_backend.saga.integration import LiquidationService
from payroll_backend.saga.monitor import ConsistencyMonitor
from payroll_backend.store.client import Collections
from payroll_backend.utils.datetime import utc_now

from .conftest import ACTOR_ID, COMPANY_ID, seed_payrolls, seed_period


def _context(transaction_id: str, age_hours: float) -> SagaContext:
    return SagaContext(
        transaction_id=transaction_id,
        period_id="p-1",
        company_id=COMPANY_ID,
        actor_id=ACTOR_ID,
        started_at=utc_now() - timedelta(hours=age_hours),
    )


def test_registry_cleanup_drops_only_old_contexts():
    registry = SagaRegistry()
    registry.register(_context("old", 3))
    registry.register(_context("fresh", 0.5))

    removed = registry.cleanup_abandoned(max_age_hours=2)

    assert removed == ["old"]
    assert "old" not in registry
    assert [context.transaction_id for context in registry.active()] == ["fresh"]


@pytest.mark.asyncio
async def test_service_exposes_active_transactions_and_cleanup(store):
    service = LiquidationService(store)
    service.registry.register(_context("liquidation_p-1_1", 5))

    active = service.get_active_transactions()
    assert [entry["transaction_id"] for entry in active] == ["liquidation_p-1_1"]
    assert active[0]["operations_completed"] == 0

    assert service.cleanup_abandoned_saga_contexts(2) == ["liquidation_p-1_1"]
    assert service.get_active_transactions() == []


@pytest.mark.asyncio
async def test_service_liquidates_and_diagnoses(store):
    period = await seed_period(store)
    await seed_payrolls(store, period, [1000, 2000])
    service = LiquidationService(store)

    result = await service.liquidate(period["id"], COMPANY_ID, ACTOR_ID)
    report = await service.diagnose(COMPANY_ID)
    plans = await service.plan_recovery(COMPANY_ID)

    assert result.success
    assert report.overall_health.value == "healthy"
    assert plans == []


@pytest.mark.asyncio
async def test_sweep_scans_companies_and_drops_abandoned_sagas(store):
    now = utc_now()
    await seed_period(store, state="processing", last_activity_at=now - timedelta(hours=30))
    await seed_period(store, company_id="company-2")
    registry = SagaRegistry()
    registry.register(_context("stuck", 4))
    monitor = ConsistencyMonitor(store, registry)

    sweep = await monitor.run_sweep(now=now)

    assert sweep["abandoned_sagas_dropped"] == ["stuck"]
    assert sweep["companies"][COMPANY_ID]["overall_health"] == "minor_issues"
    assert sweep["companies"]["company-2"]["overall_health"] == "healthy"

    report = monitor.get_health_report()
    assert report["health_status"] == "minor_issues"
    assert report["active_sagas"] == 0
    assert len(report["issues"]) == 1


@pytest.mark.asyncio
async def test_sweep_with_auto_repair_fixes_state_mismatch(store):
    period = await seed_period(store, state="closed")
    await seed_payrolls(store, period, [1000])
    monitor = ConsistencyMonitor(store, SagaRegistry(), company_ids=[COMPANY_ID], auto_repair=True)

    sweep = await monitor.run_sweep()

    assert sweep["companies"][COMPANY_ID]["overall_health"] == "critical"
    assert sweep["companies"][COMPANY_ID]["repairs"][0]["success"] is True
    payrolls = await store.query(Collections.PAYROLLS, {"period_id": period["id"]})
    assert payrolls[0]["state"] == "processed"


@pytest.mark.asyncio
async def test_health_report_before_first_sweep(store):
    monitor = ConsistencyMonitor(store, SagaRegistry())
    report = monitor.get_health_report()
    assert report["health_status"] == "unknown"
    assert report["last_sweep"] is None


@pytest.mark.asyncio
async def test_monitor_start_and_stop(store):
    monitor = ConsistencyMonitor(store, SagaRegistry(), company_ids=[COMPANY_ID])

    await monitor.start_monitoring(check_interval_seconds=3600)
    assert monitor.is_running
    await monitor.stop_monitoring()

    assert not monitor.is_running
