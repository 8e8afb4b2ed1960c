from .models import (
    ORPHANED_PERIOD_ID,
    ConsistencyIssue,
    ConsistencyReport,
    IssueType,
    OverallHealth,
    Severity,
    overall_health,
)
from .scanner import ConsistencyScanner

__all__ = [
    "ORPHANED_PERIOD_ID",
    "ConsistencyIssue",
    "ConsistencyReport",
    "ConsistencyScanner",
    "IssueType",
    "OverallHealth",
    "Severity",
    "overall_health",
]
