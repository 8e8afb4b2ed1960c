"""
Centralized configuration for liquidation and consistency thresholds.

Every value can be overridden through the environment; the defaults match
the documented operating behaviour of the scanner and recovery planner.
"""

import os
from typing import Dict, Any


class LiquidationThresholds:
    """Threshold configuration for liquidation, diagnostics and recovery."""

    # === Consistency scanner ===

    STALE_LIQUIDATION_HOURS: float = float(os.getenv("STALE_LIQUIDATION_HOURS", "24"))
    """Hours a period may stay in 'processing' before it is considered abandoned"""

    STALE_LIQUIDATION_HIGH_HOURS: float = float(os.getenv("STALE_LIQUIDATION_HIGH_HOURS", "72"))
    """Abandoned liquidations older than this are reported with high severity"""

    MAJOR_ISSUES_THRESHOLD: int = int(os.getenv("MAJOR_ISSUES_THRESHOLD", "5"))
    """More issues than this (without any critical one) means major_issues"""

    # === Saga bookkeeping ===

    ABANDONED_SAGA_MAX_AGE_HOURS: float = float(os.getenv("ABANDONED_SAGA_MAX_AGE_HOURS", "2"))
    """In-memory saga contexts older than this are purged by the maintenance sweep"""

    DEFAULT_PERIOD_TYPE: str = os.getenv("DEFAULT_PERIOD_TYPE", "quincenal")
    """Period type sent to the payroll computation when the period has none"""

    # === Recovery planner ===

    MEDIUM_PRIORITY_ISSUE_COUNT: int = int(os.getenv("MEDIUM_PRIORITY_ISSUE_COUNT", "2"))
    """Plans with more issues than this (and no high/critical) get medium priority"""

    RECOVERY_BASE_SECONDS: int = int(os.getenv("RECOVERY_BASE_SECONDS", "30"))
    """Fixed part of the operator-facing plan duration estimate"""

    RECOVERY_SECONDS_PER_ACTION: int = int(os.getenv("RECOVERY_SECONDS_PER_ACTION", "20"))
    """Per-action part of the operator-facing plan duration estimate"""

    @classmethod
    def to_dict(cls) -> Dict[str, Any]:
        """Export thresholds for diagnostics endpoints."""
        return {
            name: getattr(cls, name)
            for name in dir(cls)
            if name.isupper()
        }
