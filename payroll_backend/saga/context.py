"""
Saga execution context and the registry of in-flight liquidations.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..utils.datetime import hours_since, isoformat_utc, utc_now
from .operations import CompensatingOperation, Operation, compensations_for

logger = logging.getLogger("payroll.saga.context")


@dataclass(frozen=True)
class Checkpoint:
    label: str
    at: datetime

    def __str__(self) -> str:
        return f"{isoformat_utc(self.at)}: {self.label}"

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "at": isoformat_utc(self.at)}


@dataclass
class SagaContext:
    """
    Everything one liquidation has done so far.

    ``operations`` is the forward log in application order and
    ``compensations`` the matching undo stack; both are only appended to.
    ``in_doubt`` names operations whose call timed out, so whether the
    store applied them is unknown; they are recorded all the same.
    """
    transaction_id: str
    period_id: str
    company_id: str
    actor_id: str
    started_at: datetime = field(default_factory=utc_now)
    operations: List[Operation] = field(default_factory=list)
    compensations: List[CompensatingOperation] = field(default_factory=list)
    checkpoints: List[Checkpoint] = field(default_factory=list)
    in_doubt: List[str] = field(default_factory=list)

    def add_checkpoint(self, label: str) -> Checkpoint:
        checkpoint = Checkpoint(label=label, at=utc_now())
        self.checkpoints.append(checkpoint)
        logger.debug(f"[{self.transaction_id}] checkpoint {label}")
        return checkpoint

    def record(self, operation: Operation, in_doubt: bool = False) -> None:
        """Append an applied operation and push its inverses onto the undo stack."""
        self.operations.append(operation)
        if in_doubt:
            self.in_doubt.append(operation.operation_id)
        self.compensations.extend(compensations_for(operation))

    @property
    def last_checkpoint(self) -> Optional[str]:
        return self.checkpoints[-1].label if self.checkpoints else None

    def age_hours(self, now: Optional[datetime] = None) -> float:
        return hours_since(self.started_at, now)

    def summary(self) -> Dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "period_id": self.period_id,
            "company_id": self.company_id,
            "actor_id": self.actor_id,
            "started_at": isoformat_utc(self.started_at),
            "operations_completed": len(self.operations),
            "compensations_pending": len(self.compensations),
            "last_checkpoint": self.last_checkpoint,
        }


class SagaRegistry:
    """
    In-memory index of liquidations currently running in this process.

    Contexts are registered when a saga starts and dropped when it ends,
    whether it succeeded or rolled back.
    """

    def __init__(self):
        self._contexts: Dict[str, SagaContext] = {}

    def register(self, context: SagaContext) -> None:
        self._contexts[context.transaction_id] = context

    def drop(self, transaction_id: str) -> Optional[SagaContext]:
        return self._contexts.pop(transaction_id, None)

    def get(self, transaction_id: str) -> Optional[SagaContext]:
        return self._contexts.get(transaction_id)

    def active(self) -> List[SagaContext]:
        return sorted(self._contexts.values(), key=lambda ctx: ctx.started_at)

    def __len__(self) -> int:
        return len(self._contexts)

    def __contains__(self, transaction_id: str) -> bool:
        return transaction_id in self._contexts

    def cleanup_abandoned(self, max_age_hours: float, now: Optional[datetime] = None) -> List[str]:
        """
        Forget contexts older than ``max_age_hours``.

        Only the in-memory bookkeeping is dropped; store state left behind by
        an abandoned saga is found by the consistency scanner.

        Returns:
            Transaction ids that were removed
        """
        now = now or utc_now()
        expired = [
            transaction_id
            for transaction_id, context in self._contexts.items()
            if context.age_hours(now) > max_age_hours
        ]
        for transaction_id in expired:
            self._contexts.pop(transaction_id, None)
            logger.warning(f"Dropped abandoned saga context {transaction_id}")
        return expired
