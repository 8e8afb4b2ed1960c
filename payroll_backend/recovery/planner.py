"""
Turns a consistency report into per-period recovery plans.
"""

import logging
import math
from collections import OrderedDict
from typing import List

from ..config.thresholds import LiquidationThresholds
from ..consistency.models import ConsistencyIssue, ConsistencyReport, IssueType, Severity
from .models import Priority, RecoveryAction, RecoveryActionType, RecoveryPlan, RiskLevel

logger = logging.getLogger("payroll.recovery.planner")

# issue type -> (action type, description, requires confirmation)
_REMEDIATIONS = {
    IssueType.STATE_MISMATCH: (
        RecoveryActionType.REPAIR, "Sync payroll record states with the closed period", False
    ),
    IssueType.MISSING_VOUCHERS: (
        RecoveryActionType.REGENERATE, "Generate missing vouchers", False
    ),
    IssueType.ORPHANED_PAYROLLS: (
        RecoveryActionType.REPAIR, "Link orphaned payroll records to their period", False
    ),
    IssueType.INCOMPLETE_LIQUIDATION: (
        RecoveryActionType.CLEANUP, "Reset abandoned liquidation to draft", True
    ),
}

_RISK_BY_PRIORITY = {
    Priority.CRITICAL: RiskLevel.HIGH,
    Priority.HIGH: RiskLevel.MODERATE,
}


def plan_priority(issues: List[ConsistencyIssue]) -> Priority:
    if any(issue.severity == Severity.CRITICAL for issue in issues):
        return Priority.CRITICAL
    if any(issue.severity == Severity.HIGH for issue in issues):
        return Priority.HIGH
    if len(issues) > LiquidationThresholds.MEDIUM_PRIORITY_ISSUE_COUNT:
        return Priority.MEDIUM
    return Priority.LOW


def estimate_duration(action_count: int) -> str:
    """Operator-facing duration estimate; not used for scheduling."""
    total_seconds = (
        LiquidationThresholds.RECOVERY_BASE_SECONDS
        + action_count * LiquidationThresholds.RECOVERY_SECONDS_PER_ACTION
    )
    if total_seconds < 60:
        return f"{total_seconds} seconds"
    minutes = math.ceil(total_seconds / 60)
    return f"{minutes} minute{'s' if minutes > 1 else ''}"


class RecoveryPlanner:
    """Groups issues by period and maps each issue to one remediation action."""

    def plan(self, report: ConsistencyReport) -> List[RecoveryPlan]:
        groups: "OrderedDict[str, List[ConsistencyIssue]]" = OrderedDict()
        for issue in report.issues:
            groups.setdefault(issue.period_id, []).append(issue)

        plans = [self._plan_for_period(period_id, issues) for period_id, issues in groups.items()]
        plans.sort(key=lambda plan: -plan.priority.rank)

        if plans:
            logger.info(
                f"Built {len(plans)} recovery plans for company {report.company_id} "
                f"({sum(1 for p in plans if p.priority == Priority.CRITICAL)} critical)"
            )
        return plans

    def _plan_for_period(self, period_id: str, issues: List[ConsistencyIssue]) -> RecoveryPlan:
        actions = []
        for index, issue in enumerate(issues):
            action_type, description, requires_confirmation = _REMEDIATIONS[issue.issue_type]
            params = {"issue_type": issue.issue_type.value, "period_id": period_id}
            if issue.issue_type == IssueType.ORPHANED_PAYROLLS:
                params["period_label"] = issue.period_name
                params["payroll_ids"] = list(issue.details.get("payroll_ids", []))
            actions.append(RecoveryAction(
                action_id=f"{action_type.value}_{issue.issue_type.value}_{period_id}_{index}",
                action_type=action_type,
                description=description,
                requires_confirmation=requires_confirmation,
                params=params,
            ))

        priority = plan_priority(issues)
        return RecoveryPlan(
            period_id=period_id,
            period_name=issues[0].period_name,
            actions=actions,
            priority=priority,
            risk_level=_RISK_BY_PRIORITY.get(priority, RiskLevel.SAFE),
            estimated_duration=estimate_duration(len(actions)),
        )
