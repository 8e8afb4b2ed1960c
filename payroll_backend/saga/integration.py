"""
High-level payroll liquidation service.

Wires the saga orchestrator, the consistency scanner and the recovery
subsystem around one store and one saga registry, and exposes the
operations the API layer and the monitor call.
"""

import logging
from typing import Any, Dict, List, Optional

from ..config.thresholds import LiquidationThresholds
from ..consistency.models import ConsistencyReport
from ..recovery.models import RecoveryExecution, RecoveryPlan
from ..recovery.service import RecoveryService
from ..store.client import StoreClient
from .context import SagaRegistry
from .orchestrator import LiquidationOrchestrator, LiquidationResult

logger = logging.getLogger("payroll.saga.integration")


class LiquidationService:
    """
    Facade over liquidation, diagnostics and recovery.

    The saga registry is owned here and shared by reference with the
    orchestrator and the monitor; nothing about in-flight sagas is global.
    """

    def __init__(
        self,
        store: StoreClient,
        registry: Optional[SagaRegistry] = None,
        recovery: Optional[RecoveryService] = None,
        default_deadline_seconds: Optional[float] = None
    ):
        self.store = store
        self.registry = registry if registry is not None else SagaRegistry()
        self.orchestrator = LiquidationOrchestrator(
            store,
            registry=self.registry,
            default_deadline_seconds=default_deadline_seconds
        )
        self.recovery = recovery or RecoveryService(store)

    async def liquidate(
        self,
        period_id: str,
        company_id: str,
        actor_id: str,
        deadline_seconds: Optional[float] = None
    ) -> LiquidationResult:
        return await self.orchestrator.liquidate(
            period_id, company_id, actor_id, deadline_seconds=deadline_seconds
        )

    async def diagnose(self, company_id: str) -> ConsistencyReport:
        return await self.recovery.scanner.diagnose(company_id)

    async def plan_recovery(self, company_id: str) -> List[RecoveryPlan]:
        return await self.recovery.analyze_and_plan(company_id)

    async def execute_recovery(
        self,
        plan: RecoveryPlan,
        company_id: str,
        actor_id: str,
        include_confirmation_required: bool = True
    ) -> RecoveryExecution:
        return await self.recovery.execute(
            plan, company_id, actor_id,
            include_confirmation_required=include_confirmation_required
        )

    def get_active_transactions(self) -> List[Dict[str, Any]]:
        """Summaries of the liquidations currently running in this process."""
        return [context.summary() for context in self.registry.active()]

    def cleanup_abandoned_saga_contexts(
        self,
        max_age_hours: float = LiquidationThresholds.ABANDONED_SAGA_MAX_AGE_HOURS
    ) -> List[str]:
        """
        Purge bookkeeping for sagas that never reached a terminal state.

        Persisted periods left in processing are untouched; the stale
        liquidation check and the cleanup recovery action handle those.
        """
        removed = self.registry.cleanup_abandoned(max_age_hours)
        if removed:
            logger.info(f"Cleaned up {len(removed)} abandoned saga contexts")
        return removed
