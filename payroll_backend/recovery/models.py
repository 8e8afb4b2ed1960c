"""
Recovery plan data types.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..utils.datetime import isoformat_utc, utc_now


class RecoveryActionType(str, enum.Enum):
    CLEANUP = "cleanup"
    REPAIR = "repair"
    REGENERATE = "regenerate"
    ROLLBACK = "rollback"


class Priority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    Priority.LOW: 0,
    Priority.MEDIUM: 1,
    Priority.HIGH: 2,
    Priority.CRITICAL: 3,
}


class RiskLevel(str, enum.Enum):
    SAFE = "safe"
    MODERATE = "moderate"
    HIGH = "high"


@dataclass
class RecoveryAction:
    action_id: str
    action_type: RecoveryActionType
    description: str
    requires_confirmation: bool
    params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.action_id,
            "type": self.action_type.value,
            "description": self.description,
            "requires_confirmation": self.requires_confirmation,
            "params": self.params,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecoveryAction":
        return cls(
            action_id=data["id"],
            action_type=RecoveryActionType(data["type"]),
            description=data.get("description", ""),
            requires_confirmation=bool(data.get("requires_confirmation", False)),
            params=dict(data.get("params") or {}),
        )


@dataclass
class RecoveryPlan:
    """Remediation steps for every issue found on one period."""
    period_id: str
    period_name: Optional[str]
    actions: List[RecoveryAction]
    priority: Priority
    risk_level: RiskLevel
    estimated_duration: str
    current_state: str = "inconsistent"
    target_state: str = "consistent"

    @property
    def plan_id(self) -> str:
        return self.period_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "period_id": self.period_id,
            "period_name": self.period_name,
            "current_state": self.current_state,
            "target_state": self.target_state,
            "priority": self.priority.value,
            "risk_level": self.risk_level.value,
            "estimated_duration": self.estimated_duration,
            "actions": [action.to_dict() for action in self.actions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecoveryPlan":
        return cls(
            period_id=data["period_id"],
            period_name=data.get("period_name"),
            actions=[RecoveryAction.from_dict(action) for action in data.get("actions", [])],
            priority=Priority(data.get("priority", Priority.LOW.value)),
            risk_level=RiskLevel(data.get("risk_level", RiskLevel.SAFE.value)),
            estimated_duration=data.get("estimated_duration", ""),
            current_state=data.get("current_state", "inconsistent"),
            target_state=data.get("target_state", "consistent"),
        )


@dataclass
class RecoveryExecution:
    """Outcome of running one recovery plan."""
    plan_id: str
    actions_total: int
    actions_completed: int = 0
    actions_skipped: int = 0
    duration_ms: int = 0
    results: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=utc_now)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "plan_id": self.plan_id,
            "actions_completed": self.actions_completed,
            "actions_skipped": self.actions_skipped,
            "actions_total": self.actions_total,
            "duration_ms": self.duration_ms,
            "results": list(self.results),
            "errors": list(self.errors),
            "started_at": isoformat_utc(self.started_at),
        }
