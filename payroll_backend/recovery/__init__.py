from .executor import RecoveryExecutor
from .models import (
    Priority,
    RecoveryAction,
    RecoveryActionType,
    RecoveryExecution,
    RecoveryPlan,
    RiskLevel,
)
from .planner import RecoveryPlanner, estimate_duration
from .service import RecoveryService

__all__ = [
    "Priority",
    "RecoveryAction",
    "RecoveryActionType",
    "RecoveryExecution",
    "RecoveryExecutor",
    "RecoveryPlan",
    "RecoveryPlanner",
    "RecoveryService",
    "RiskLevel",
    "estimate_duration",
]
