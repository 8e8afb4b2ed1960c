"""
Compensation of a failed saga.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..store.client import StoreClient, deadline_scope
from .context import SagaContext

logger = logging.getLogger("payroll.saga.rollback")


@dataclass
class CompensationOutcome:
    compensation_id: str
    inverts: str
    kind: str
    collection: str
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "compensation_id": self.compensation_id,
            "inverts": self.inverts,
            "kind": self.kind,
            "collection": self.collection,
            "success": self.success,
            "error": self.error,
        }


@dataclass
class RollbackResult:
    outcomes: List[CompensationOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(outcome.success for outcome in self.outcomes)

    @property
    def applied(self) -> List[str]:
        return [o.compensation_id for o in self.outcomes if o.success]

    @property
    def failed(self) -> List[str]:
        return [o.compensation_id for o in self.outcomes if not o.success]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "applied": self.applied,
            "failed": self.failed,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


class RollbackExecutor:
    """
    Replays a saga's compensation stack, newest first.

    Every compensation is attempted even when an earlier one fails, and the
    whole rollback runs outside any caller deadline so a timed-out saga can
    still undo its writes.
    """

    def __init__(self, store: StoreClient):
        self.store = store

    async def rollback(self, context: SagaContext) -> RollbackResult:
        result = RollbackResult()
        if not context.compensations:
            return result

        logger.warning(
            f"[{context.transaction_id}] Rolling back {len(context.compensations)} compensations "
            f"(failure after checkpoint {context.last_checkpoint})"
        )

        with deadline_scope(None):
            for compensation in reversed(context.compensations):
                operation = compensation.operation
                outcome = CompensationOutcome(
                    compensation_id=compensation.compensation_id,
                    inverts=compensation.inverts,
                    kind=operation.kind.value,
                    collection=operation.collection,
                    success=False,
                )
                try:
                    applied = await operation.apply(self.store)
                    if operation.succeeded(applied):
                        outcome.success = True
                    else:
                        outcome.error = "compensation matched no records"
                except Exception as e:
                    outcome.error = str(e) or type(e).__name__
                if not outcome.success:
                    logger.error(
                        f"[{context.transaction_id}] Compensation {outcome.compensation_id} "
                        f"failed: {outcome.error}"
                    )
                result.outcomes.append(outcome)

        if result.success:
            logger.info(f"[{context.transaction_id}] Rollback completed")
        else:
            logger.error(
                f"[{context.transaction_id}] Rollback incomplete; "
                f"{len(result.failed)} compensations failed"
            )
        return result
