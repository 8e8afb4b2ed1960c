"""
Recovery facade: diagnose, plan and repair in one place.
"""

import logging
from typing import List, Optional

from ..consistency.models import ConsistencyReport
from ..consistency.scanner import ConsistencyScanner
from ..store.client import StoreClient
from .executor import RecoveryExecutor
from .models import RecoveryExecution, RecoveryPlan
from .planner import RecoveryPlanner

logger = logging.getLogger("payroll.recovery.service")


class RecoveryService:
    def __init__(
        self,
        store: StoreClient,
        scanner: Optional[ConsistencyScanner] = None,
        planner: Optional[RecoveryPlanner] = None,
        executor: Optional[RecoveryExecutor] = None
    ):
        self.scanner = scanner or ConsistencyScanner(store)
        self.planner = planner or RecoveryPlanner()
        self.executor = executor or RecoveryExecutor(store)

    async def analyze_and_plan(self, company_id: str) -> List[RecoveryPlan]:
        report = await self.scanner.diagnose(company_id)
        return self.planner.plan(report)

    async def execute(
        self,
        plan: RecoveryPlan,
        company_id: str,
        actor_id: str,
        include_confirmation_required: bool = True
    ) -> RecoveryExecution:
        return await self.executor.execute(
            plan, company_id, actor_id,
            include_confirmation_required=include_confirmation_required
        )

    async def auto_repair(
        self,
        company_id: str,
        actor_id: str,
        report: Optional[ConsistencyReport] = None
    ) -> List[RecoveryExecution]:
        """
        Execute every plan for a company, skipping actions that need confirmation.

        Args:
            company_id: Company to repair
            actor_id: Recorded as the actor in the audit trail
            report: Reuse an existing scan instead of running a new one

        Returns:
            One RecoveryExecution per plan that had something to run
        """
        report = report or await self.scanner.diagnose(company_id)
        executions = []
        for plan in self.planner.plan(report):
            if all(action.requires_confirmation for action in plan.actions):
                logger.info(f"Plan {plan.plan_id} needs confirmation; left for an operator")
                continue
            executions.append(await self.executor.execute(
                plan, company_id, actor_id, include_confirmation_required=False
            ))
        return executions
