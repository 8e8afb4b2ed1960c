"""
Read-only consistency scanner.

Four independent checks look for the ways a liquidation can leave the store
inconsistent. They run concurrently; a check whose queries fail is logged and
contributes no issues, so one bad query never hides what the others find.
"""

import asyncio
import logging
import math
from collections import defaultdict
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..config.thresholds import LiquidationThresholds
from ..db.models import PayrollState, PeriodState
from ..store.client import Collections, StoreClient
from ..utils.datetime import hours_since, isoformat_utc, parse_datetime, utc_now
from .models import (
    ORPHANED_PERIOD_ID,
    UNNAMED_PERIOD_LABEL,
    ConsistencyIssue,
    ConsistencyReport,
    IssueType,
    Severity,
)

logger = logging.getLogger("payroll.consistency.scanner")


class ConsistencyScanner:
    """Detects invariant violations between periods, payroll records and vouchers."""

    def __init__(self, store: StoreClient):
        self.store = store

    async def diagnose(self, company_id: str, now: Optional[datetime] = None) -> ConsistencyReport:
        """
        Scan one company's payroll data.

        Args:
            company_id: Company to scan
            now: Reference time for staleness (defaults to the current time)

        Returns:
            ConsistencyReport with issues in a stable order
        """
        now = now or utc_now()
        checks: Dict[str, Callable[[], Awaitable[List[ConsistencyIssue]]]] = {
            "state_mismatch": lambda: self.check_state_mismatch(company_id),
            "missing_vouchers": lambda: self.check_missing_vouchers(company_id),
            "orphaned_payrolls": lambda: self.check_orphaned_payrolls(company_id),
            "incomplete_liquidation": lambda: self.check_incomplete_liquidations(company_id, now),
        }

        results = await asyncio.gather(
            *(check() for check in checks.values()),
            return_exceptions=True
        )

        report = ConsistencyReport(company_id=company_id, timestamp=now)
        for name, result in zip(checks, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error(f"Consistency check {name} failed for company {company_id}: {result}")
                report.failed_checks.append(name)
                continue
            report.issues.extend(result)

        report.issues.sort(key=ConsistencyIssue.sort_key)
        logger.info(
            f"Consistency scan for company {company_id}: {report.overall_health.value} "
            f"({len(report.issues)} issues)"
        )
        return report

    async def check_state_mismatch(self, company_id: str) -> List[ConsistencyIssue]:
        """Closed periods that still have draft payroll records."""
        closed = await self._closed_periods(company_id)
        if not closed:
            return []

        drafts = await self.store.query(Collections.PAYROLLS, {
            "company_id": company_id,
            "period_id": [period["id"] for period in closed],
            "state": PayrollState.DRAFT.value,
        })
        drafts_by_period = defaultdict(list)
        for payroll in drafts:
            drafts_by_period[payroll["period_id"]].append(payroll["id"])

        issues = []
        for period in closed:
            draft_ids = drafts_by_period.get(period["id"])
            if not draft_ids:
                continue
            issues.append(ConsistencyIssue(
                issue_type=IssueType.STATE_MISMATCH,
                severity=Severity.CRITICAL,
                period_id=period["id"],
                period_name=period.get("label"),
                description="Closed period still has draft payroll records",
                auto_repairable=True,
                repair_action="Sync payroll record states with the period",
                details={
                    "period_state": period["state"],
                    "payrolls_in_draft": len(draft_ids),
                    "payroll_ids": sorted(draft_ids),
                },
            ))
        return issues

    async def check_missing_vouchers(self, company_id: str) -> List[ConsistencyIssue]:
        """Closed periods with fewer vouchers than employees."""
        closed = [
            period for period in await self._closed_periods(company_id)
            if (period.get("employee_count") or 0) > 0
        ]
        if not closed:
            return []

        vouchers = await self.store.query(Collections.VOUCHERS, {
            "company_id": company_id,
            "period_id": [period["id"] for period in closed],
        })
        voucher_counts: Dict[str, int] = defaultdict(int)
        for voucher in vouchers:
            voucher_counts[voucher["period_id"]] += 1

        issues = []
        for period in closed:
            expected = period["employee_count"]
            actual = voucher_counts.get(period["id"], 0)
            if actual >= expected:
                continue
            if actual == 0:
                severity = Severity.HIGH
                description = "Closed period has no vouchers"
            else:
                severity = Severity.MEDIUM
                description = "Closed period has incomplete vouchers"
            issues.append(ConsistencyIssue(
                issue_type=IssueType.MISSING_VOUCHERS,
                severity=severity,
                period_id=period["id"],
                period_name=period.get("label"),
                description=description,
                auto_repairable=True,
                repair_action="Generate missing vouchers",
                details={
                    "expected_vouchers": expected,
                    "actual_vouchers": actual,
                    "missing_vouchers": expected - actual,
                },
            ))
        return issues

    async def check_orphaned_payrolls(self, company_id: str) -> List[ConsistencyIssue]:
        """Payroll records without a period, grouped by their period label."""
        orphans = await self.store.query(
            Collections.PAYROLLS,
            {"company_id": company_id, "period_id": None}
        )
        groups: Dict[str, List[str]] = defaultdict(list)
        for payroll in orphans:
            groups[payroll.get("period_label") or UNNAMED_PERIOD_LABEL].append(payroll["id"])

        return [
            ConsistencyIssue(
                issue_type=IssueType.ORPHANED_PAYROLLS,
                severity=Severity.MEDIUM,
                period_id=ORPHANED_PERIOD_ID,
                period_name=label,
                description="Payroll records without an owning period",
                auto_repairable=True,
                repair_action="Link records to the matching period",
                details={
                    "orphaned_count": len(payroll_ids),
                    "payroll_ids": sorted(payroll_ids),
                },
            )
            for label, payroll_ids in sorted(groups.items())
        ]

    async def check_incomplete_liquidations(
        self,
        company_id: str,
        now: Optional[datetime] = None
    ) -> List[ConsistencyIssue]:
        """Periods stuck in processing past the staleness threshold."""
        now = now or utc_now()
        processing = await self.store.query(
            Collections.PERIODS,
            {"company_id": company_id, "state": PeriodState.PROCESSING.value}
        )

        issues = []
        for period in processing:
            last_activity = period.get("last_activity_at") or period.get("created_at")
            if last_activity is None:
                continue
            age_hours = hours_since(last_activity, now)
            if age_hours <= LiquidationThresholds.STALE_LIQUIDATION_HOURS:
                continue

            hours_stale = math.floor(age_hours)
            severity = (
                Severity.HIGH
                if hours_stale > LiquidationThresholds.STALE_LIQUIDATION_HIGH_HOURS
                else Severity.MEDIUM
            )
            issues.append(ConsistencyIssue(
                issue_type=IssueType.INCOMPLETE_LIQUIDATION,
                severity=severity,
                period_id=period["id"],
                period_name=period.get("label"),
                description=f"Liquidation abandoned {hours_stale} hours ago",
                auto_repairable=True,
                repair_action="Reset period to draft",
                details={
                    "hours_stale": hours_stale,
                    "last_activity": isoformat_utc(parse_datetime(last_activity)),
                },
            ))
        return issues

    async def _closed_periods(self, company_id: str) -> List[Dict[str, Any]]:
        return await self.store.query(
            Collections.PERIODS,
            {"company_id": company_id, "state": PeriodState.CLOSED.value}
        )
