"""
Consistency diagnostics data types.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..config.thresholds import LiquidationThresholds
from ..utils.datetime import isoformat_utc, utc_now

# Period id used for records that belong to no period
ORPHANED_PERIOD_ID = "orphaned"
UNNAMED_PERIOD_LABEL = "Sin período"


class Severity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class IssueType(str, enum.Enum):
    STATE_MISMATCH = "state_mismatch"
    MISSING_VOUCHERS = "missing_vouchers"
    ORPHANED_PAYROLLS = "orphaned_payrolls"
    INCOMPLETE_LIQUIDATION = "incomplete_liquidation"


class OverallHealth(str, enum.Enum):
    HEALTHY = "healthy"
    MINOR_ISSUES = "minor_issues"
    MAJOR_ISSUES = "major_issues"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ConsistencyIssue:
    """One detected invariant violation."""
    issue_type: IssueType
    severity: Severity
    period_id: str
    period_name: Optional[str]
    description: str
    auto_repairable: bool
    repair_action: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def sort_key(self):
        return (-self.severity.rank, self.issue_type.value, self.period_id, self.period_name or "")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.issue_type.value,
            "severity": self.severity.value,
            "period_id": self.period_id,
            "period_name": self.period_name,
            "description": self.description,
            "auto_repairable": self.auto_repairable,
            "repair_action": self.repair_action,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConsistencyIssue":
        return cls(
            issue_type=IssueType(data["type"]),
            severity=Severity(data["severity"]),
            period_id=data["period_id"],
            period_name=data.get("period_name"),
            description=data.get("description", ""),
            auto_repairable=bool(data.get("auto_repairable", False)),
            repair_action=data.get("repair_action", ""),
            details=dict(data.get("details") or {}),
        )


def overall_health(issues: List[ConsistencyIssue]) -> OverallHealth:
    """Aggregate issue severities into a single health level."""
    if any(issue.severity == Severity.CRITICAL for issue in issues):
        return OverallHealth.CRITICAL
    if len(issues) > LiquidationThresholds.MAJOR_ISSUES_THRESHOLD:
        return OverallHealth.MAJOR_ISSUES
    if issues:
        return OverallHealth.MINOR_ISSUES
    return OverallHealth.HEALTHY


@dataclass
class ConsistencyReport:
    company_id: str
    issues: List[ConsistencyIssue] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utc_now)
    failed_checks: List[str] = field(default_factory=list)

    @property
    def overall_health(self) -> OverallHealth:
        return overall_health(self.issues)

    @property
    def auto_repairable_count(self) -> int:
        return sum(1 for issue in self.issues if issue.auto_repairable)

    def count_by_severity(self) -> Dict[str, int]:
        counts = {severity.value: 0 for severity in Severity}
        for issue in self.issues:
            counts[issue.severity.value] += 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "company_id": self.company_id,
            "overall_health": self.overall_health.value,
            "total_issues": len(self.issues),
            "auto_repairable": self.auto_repairable_count,
            "by_severity": self.count_by_severity(),
            "issues": [issue.to_dict() for issue in self.issues],
            "failed_checks": list(self.failed_checks),
            "timestamp": isoformat_utc(self.timestamp),
        }
