from datetime import timedelta

import pytest

from payroll_backend.consistency.models import (
    ConsistencyIssue,
    ConsistencyReport,
    IssueType,
    Severity,
)
from payroll_backend.consistency.scanner import ConsistencyScanner
from payroll_backend.recovery.executor import RecoveryExecutor
from payroll_backend.recovery.models import (
    Priority,
    RecoveryAction,
    RecoveryActionType,
    RecoveryPlan,
    RiskLevel,
)
from payroll_backend.recovery.planner import RecoveryPlanner, estimate_duration
from payroll_backend.recovery.service import RecoveryService
from payroll_backend.saga.orchestrator import LiquidationOrchestrator
from payroll_backend.store.client import Collections
from payroll_backend.utils.datetime import utc_now

from .conftest import ACTOR_ID, COMPANY_ID, seed_payrolls, seed_period


def _issue(issue_type: IssueType, severity: Severity, period_id: str, name: str = "Marzo") -> ConsistencyIssue:
    return ConsistencyIssue(
        issue_type=issue_type,
        severity=severity,
        period_id=period_id,
        period_name=name,
        description="",
        auto_repairable=True,
    )


def test_plans_group_issues_by_period_and_sort_by_priority():
    report = ConsistencyReport(company_id=COMPANY_ID, issues=[
        _issue(IssueType.MISSING_VOUCHERS, Severity.MEDIUM, "p-low"),
        _issue(IssueType.MISSING_VOUCHERS, Severity.HIGH, "p-high"),
        _issue(IssueType.STATE_MISMATCH, Severity.CRITICAL, "p-critical"),
        _issue(IssueType.MISSING_VOUCHERS, Severity.MEDIUM, "p-critical"),
    ])

    plans = RecoveryPlanner().plan(report)

    assert [plan.period_id for plan in plans] == ["p-critical", "p-high", "p-low"]
    assert [plan.priority for plan in plans] == [Priority.CRITICAL, Priority.HIGH, Priority.LOW]
    assert [plan.risk_level for plan in plans] == [RiskLevel.HIGH, RiskLevel.MODERATE, RiskLevel.SAFE]
    assert [action.action_type for action in plans[0].actions] == [
        RecoveryActionType.REPAIR,
        RecoveryActionType.REGENERATE,
    ]


def test_many_medium_issues_raise_priority_to_medium():
    report = ConsistencyReport(company_id=COMPANY_ID, issues=[
        _issue(IssueType.ORPHANED_PAYROLLS, Severity.MEDIUM, "orphaned", name=label)
        for label in ("A", "B", "C")
    ])

    [plan] = RecoveryPlanner().plan(report)

    assert plan.priority == Priority.MEDIUM
    assert [action.params["period_label"] for action in plan.actions] == ["A", "B", "C"]
    assert len({action.action_id for action in plan.actions}) == 3


def test_incomplete_liquidation_maps_to_confirmed_cleanup():
    report = ConsistencyReport(company_id=COMPANY_ID, issues=[
        _issue(IssueType.INCOMPLETE_LIQUIDATION, Severity.MEDIUM, "p-1"),
    ])

    [plan] = RecoveryPlanner().plan(report)

    [action] = plan.actions
    assert action.action_type == RecoveryActionType.CLEANUP
    assert action.requires_confirmation is True


def test_duration_estimate():
    assert estimate_duration(0) == "30 seconds"
    assert estimate_duration(1) == "50 seconds"
    assert estimate_duration(2) == "2 minutes"
    assert estimate_duration(4) == "2 minutes"
    assert estimate_duration(5) == "3 minutes"


def test_plan_round_trips_through_dict():
    report = ConsistencyReport(company_id=COMPANY_ID, issues=[
        _issue(IssueType.STATE_MISMATCH, Severity.CRITICAL, "p-1"),
    ])
    [plan] = RecoveryPlanner().plan(report)

    restored = RecoveryPlan.from_dict(plan.to_dict())

    assert restored == plan


@pytest.mark.asyncio
async def test_state_mismatch_repair_is_idempotent(store):
    period = await seed_period(store, state="closed")
    await seed_payrolls(store, period, [1000, 2000])
    service = RecoveryService(store)

    [plan] = await service.analyze_and_plan(COMPANY_ID)
    first = await service.execute(plan, COMPANY_ID, ACTOR_ID)
    second = await service.execute(plan, COMPANY_ID, ACTOR_ID)

    assert first.success and second.success
    assert first.results == ["Sync payroll record states with the closed period: 2 payroll records synced"]
    assert second.results == ["Sync payroll record states with the closed period: 0 payroll records synced"]
    payrolls = await store.query(Collections.PAYROLLS, {"period_id": period["id"]})
    assert {record["state"] for record in payrolls} == {"processed"}


@pytest.mark.asyncio
async def test_voucher_regeneration_twice_creates_no_duplicates(store):
    period = await seed_period(store, state="closed", employee_count=3)
    records = await seed_payrolls(store, period, [1000, 2000, 3000], state="processed", net_pay=900)
    await store.insert(Collections.VOUCHERS, {
        "company_id": COMPANY_ID,
        "period_id": period["id"],
        "employee_id": records[0]["employee_id"],
        "payroll_id": records[0]["id"],
    })
    service = RecoveryService(store)
    [plan] = await service.analyze_and_plan(COMPANY_ID)

    await service.execute(plan, COMPANY_ID, ACTOR_ID)
    once = await store.query(Collections.VOUCHERS, {"period_id": period["id"]})
    await service.execute(plan, COMPANY_ID, ACTOR_ID)
    twice = await store.query(Collections.VOUCHERS, {"period_id": period["id"]})

    assert len(once) == len(twice) == 3
    assert sorted(v["payroll_id"] for v in twice) == sorted(r["id"] for r in records)
    assert (await ConsistencyScanner(store).diagnose(COMPANY_ID)).issues == []


@pytest.mark.asyncio
async def test_orphans_are_relinked_by_period_label(store):
    period = await seed_period(store, label="16-31 Marzo 2025")
    orphans = await seed_payrolls(store, None, [1000, 2000], period_label="16-31 Marzo 2025")
    service = RecoveryService(store)

    [plan] = await service.analyze_and_plan(COMPANY_ID)
    execution = await service.execute(plan, COMPANY_ID, ACTOR_ID)

    assert execution.success
    relinked = await store.query(Collections.PAYROLLS, {"period_id": period["id"]})
    assert sorted(r["id"] for r in relinked) == sorted(r["id"] for r in orphans)


@pytest.mark.asyncio
async def test_orphans_without_matching_period_are_reported(store):
    await seed_payrolls(store, None, [1000], period_label="Periodo inexistente")
    service = RecoveryService(store)

    [plan] = await service.analyze_and_plan(COMPANY_ID)
    execution = await service.execute(plan, COMPANY_ID, ACTOR_ID)

    assert execution.success is False
    assert execution.actions_completed == 0
    assert "No period named 'Periodo inexistente' found" in execution.errors[0]


@pytest.mark.asyncio
async def test_cleanup_resets_only_periods_still_processing(store):
    now = utc_now()
    period = await seed_period(store, state="processing", last_activity_at=now - timedelta(hours=40))
    service = RecoveryService(store)
    [plan] = await service.analyze_and_plan(COMPANY_ID)

    execution = await service.execute(plan, COMPANY_ID, ACTOR_ID)
    assert execution.success
    assert (await store.get(Collections.PERIODS, {"id": period["id"]}))["state"] == "draft"

    await store.update(Collections.PERIODS, {"id": period["id"]}, {"state": "closed"})
    again = await service.execute(plan, COMPANY_ID, ACTOR_ID)
    assert again.success
    assert "nothing to reset" in again.results[0]
    assert (await store.get(Collections.PERIODS, {"id": period["id"]}))["state"] == "closed"


@pytest.mark.asyncio
async def test_confirmation_required_actions_can_be_skipped(store):
    now = utc_now()
    period = await seed_period(store, state="processing", last_activity_at=now - timedelta(hours=40))
    service = RecoveryService(store)
    [plan] = await service.analyze_and_plan(COMPANY_ID)

    execution = await service.execute(plan, COMPANY_ID, ACTOR_ID, include_confirmation_required=False)

    assert execution.success
    assert execution.actions_skipped == 1
    assert execution.actions_completed == 0
    assert (await store.get(Collections.PERIODS, {"id": period["id"]}))["state"] == "processing"


@pytest.mark.asyncio
async def test_failed_action_does_not_stop_the_plan(store):
    period = await seed_period(store, state="closed")
    await seed_payrolls(store, period, [1000])
    plan = RecoveryPlan(
        period_id=period["id"],
        period_name=period["label"],
        actions=[
            RecoveryAction("manual", RecoveryActionType.ROLLBACK, "Manual rollback", False),
            RecoveryAction(
                "sync", RecoveryActionType.REPAIR, "Sync states", False,
                params={"issue_type": "state_mismatch", "period_id": period["id"]},
            ),
        ],
        priority=Priority.CRITICAL,
        risk_level=RiskLevel.HIGH,
        estimated_duration="70 seconds",
    )

    execution = await RecoveryExecutor(store).execute(plan, COMPANY_ID, ACTOR_ID)

    assert execution.success is False
    assert execution.actions_completed == 1
    assert execution.actions_total == 2
    assert execution.errors == ["Manual rollback: Rollback actions require manual intervention"]
    payrolls = await store.query(Collections.PAYROLLS, {"period_id": period["id"]})
    assert payrolls[0]["state"] == "processed"


@pytest.mark.asyncio
async def test_recovery_writes_start_and_end_audit_records(store):
    period = await seed_period(store, state="closed")
    await seed_payrolls(store, period, [1000])
    service = RecoveryService(store)
    [plan] = await service.analyze_and_plan(COMPANY_ID)

    await service.execute(plan, COMPANY_ID, ACTOR_ID)

    logs = await store.query(Collections.SYNC_LOG, {"sync_type": "recovery_operation"})
    assert [log["status"] for log in logs] == ["processing", "completed"]
    assert logs[0]["reference_id"] == logs[1]["reference_id"]
    assert logs[1]["records_created"] == 1
    assert logs[1]["period_id"] == period["id"]
    assert logs[1]["error_message"] is None


@pytest.mark.asyncio
async def test_auto_repair_skips_plans_that_need_confirmation(store):
    now = utc_now()
    stale = await seed_period(store, label="Stale", state="processing", last_activity_at=now - timedelta(hours=30))
    closed = await seed_period(store, label="Closed", state="closed")
    await seed_payrolls(store, closed, [1000])

    executions = await RecoveryService(store).auto_repair(COMPANY_ID, ACTOR_ID)

    assert [execution.plan_id for execution in executions] == [closed["id"]]
    assert (await store.get(Collections.PERIODS, {"id": stale["id"]}))["state"] == "processing"
    payrolls = await store.query(Collections.PAYROLLS, {"period_id": closed["id"]})
    assert payrolls[0]["state"] == "processed"


@pytest.mark.asyncio
async def test_reliquidating_after_cleanup_keeps_one_voucher_per_employee(store):
    now = utc_now()
    period = await seed_period(
        store, state="processing", employee_count=2, last_activity_at=now - timedelta(hours=30)
    )
    records = await seed_payrolls(store, period, [1000, 2000], state="processed", net_pay=920)
    await store.insert(Collections.VOUCHERS, {
        "company_id": COMPANY_ID,
        "period_id": period["id"],
        "employee_id": records[0]["employee_id"],
        "payroll_id": records[0]["id"],
        "net_pay": 920,
    })
    service = RecoveryService(store)

    [plan] = await service.analyze_and_plan(COMPANY_ID)
    assert [action.action_type for action in plan.actions] == [RecoveryActionType.CLEANUP]
    assert (await service.execute(plan, COMPANY_ID, ACTOR_ID)).success

    result = await LiquidationOrchestrator(store).liquidate(period["id"], COMPANY_ID, ACTOR_ID)

    assert result.success is True
    vouchers = await store.query(Collections.VOUCHERS, {"period_id": period["id"]})
    closed = await store.get(Collections.PERIODS, {"id": period["id"]})
    assert len(vouchers) == closed["employee_count"] == 2
    assert sorted(v["payroll_id"] for v in vouchers) == sorted(r["id"] for r in records)
    assert (await ConsistencyScanner(store).diagnose(COMPANY_ID)).issues == []
