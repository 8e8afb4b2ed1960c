"""
Executes recovery plans against the store.

Actions run in plan order, each in its own failure boundary. Every action is
safe to run again: cleanup and repair only touch records still in the broken
state, and regeneration skips payroll records that already have a voucher.
"""

import logging
import time
import uuid
from typing import Any, Dict, Optional

from ..consistency.models import ORPHANED_PERIOD_ID, UNNAMED_PERIOD_LABEL, IssueType
from ..db.models import PayrollState, PeriodState, SyncKind, SyncStatus, VoucherStatus
from ..errors import RecoveryActionError
from ..store.client import Collections, StoreClient
from ..utils.datetime import utc_now
from ..utils.logging_config import correlation_scope
from .models import RecoveryAction, RecoveryActionType, RecoveryExecution, RecoveryPlan

logger = logging.getLogger("payroll.recovery.executor")


class RecoveryExecutor:
    """Runs the actions of a RecoveryPlan and records the run in the audit trail."""

    def __init__(self, store: StoreClient):
        self.store = store
        self._handlers = {
            RecoveryActionType.CLEANUP: self._cleanup,
            RecoveryActionType.REPAIR: self._repair,
            RecoveryActionType.REGENERATE: self._regenerate,
            RecoveryActionType.ROLLBACK: self._rollback,
        }

    async def execute(
        self,
        plan: RecoveryPlan,
        company_id: str,
        actor_id: str,
        include_confirmation_required: bool = True
    ) -> RecoveryExecution:
        """
        Execute a recovery plan.

        Args:
            plan: Plan produced by the RecoveryPlanner
            company_id: Company that owns the plan's records
            actor_id: User or process running the plan
            include_confirmation_required: When False, actions that need
                operator confirmation are skipped instead of run

        Returns:
            RecoveryExecution; action failures are reported there, never raised
        """
        session_id = f"recovery_{plan.plan_id}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"
        execution = RecoveryExecution(plan_id=plan.plan_id, actions_total=len(plan.actions))
        started = time.monotonic()

        with correlation_scope(session_id):
            logger.info(
                f"Executing recovery plan {plan.plan_id} ({len(plan.actions)} actions, "
                f"priority {plan.priority.value}) for company {company_id}"
            )
            await self._audit(plan, company_id, actor_id, session_id, SyncStatus.PROCESSING)

            for action in plan.actions:
                if action.requires_confirmation and not include_confirmation_required:
                    execution.actions_skipped += 1
                    execution.results.append(f"{action.description}: skipped, requires confirmation")
                    continue
                try:
                    message = await self._handlers[action.action_type](action, plan, company_id)
                    execution.actions_completed += 1
                    execution.results.append(f"{action.description}: {message}")
                except Exception as e:
                    logger.error(f"Recovery action {action.action_id} failed: {e}")
                    execution.errors.append(f"{action.description}: {e}")

            execution.duration_ms = int((time.monotonic() - started) * 1000)
            await self._audit(
                plan,
                company_id,
                actor_id,
                session_id,
                SyncStatus.COMPLETED if execution.success else SyncStatus.ERROR,
                execution=execution,
            )

            logger.info(
                f"Recovery plan {plan.plan_id} finished: success={execution.success}, "
                f"{execution.actions_completed}/{execution.actions_total} actions in "
                f"{execution.duration_ms}ms"
            )
        return execution

    async def _cleanup(self, action: RecoveryAction, plan: RecoveryPlan, company_id: str) -> str:
        period_id = action.params.get("period_id", plan.period_id)
        # Only a period still stuck in processing is reset
        updated = await self.store.update(
            Collections.PERIODS,
            {"id": period_id, "company_id": company_id, "state": PeriodState.PROCESSING.value},
            {"state": PeriodState.DRAFT.value, "last_activity_at": utc_now()},
        )
        if not updated:
            return "period is not in processing, nothing to reset"
        return "period reset to draft"

    async def _repair(self, action: RecoveryAction, plan: RecoveryPlan, company_id: str) -> str:
        issue_type = action.params.get("issue_type", IssueType.STATE_MISMATCH.value)
        if issue_type == IssueType.ORPHANED_PAYROLLS.value:
            return await self._relink_orphans(action, company_id)
        if issue_type != IssueType.STATE_MISMATCH.value:
            raise RecoveryActionError(f"Repair does not handle issue type {issue_type}")

        period_id = action.params.get("period_id", plan.period_id)
        updated = await self.store.update(
            Collections.PAYROLLS,
            {"period_id": period_id, "company_id": company_id, "state": PayrollState.DRAFT.value},
            {"state": PayrollState.PROCESSED.value},
        )
        return f"{len(updated)} payroll records synced"

    async def _relink_orphans(self, action: RecoveryAction, company_id: str) -> str:
        label = action.params.get("period_label")
        if not label or label == UNNAMED_PERIOD_LABEL:
            raise RecoveryActionError("Orphaned payroll records have no period label to match")

        periods = await self.store.query(Collections.PERIODS, {"company_id": company_id, "label": label})
        if not periods:
            raise RecoveryActionError(f"No period named '{label}' found")
        if len(periods) > 1:
            raise RecoveryActionError(f"Period name '{label}' is ambiguous ({len(periods)} periods)")

        match: Dict[str, Any] = {"company_id": company_id, "period_id": None, "period_label": label}
        if action.params.get("payroll_ids"):
            match["id"] = list(action.params["payroll_ids"])
        updated = await self.store.update(Collections.PAYROLLS, match, {"period_id": periods[0]["id"]})
        return f"{len(updated)} payroll records linked to period {periods[0]['id']}"

    async def _regenerate(self, action: RecoveryAction, plan: RecoveryPlan, company_id: str) -> str:
        period_id = action.params.get("period_id", plan.period_id)
        period = await self.store.get(Collections.PERIODS, {"id": period_id, "company_id": company_id})
        if period is None:
            raise RecoveryActionError(f"Period {period_id} not found")

        payrolls = await self.store.query(
            Collections.PAYROLLS,
            {"period_id": period_id, "company_id": company_id}
        )
        if not payrolls:
            return "no payroll records to generate vouchers for"

        existing = await self.store.query(
            Collections.VOUCHERS,
            {"payroll_id": [payroll["id"] for payroll in payrolls]}
        )
        covered = {voucher["payroll_id"] for voucher in existing}

        created = 0
        for payroll in payrolls:
            if payroll["id"] in covered:
                continue
            await self.store.insert(Collections.VOUCHERS, {
                "company_id": company_id,
                "period_id": period_id,
                "employee_id": payroll["employee_id"],
                "payroll_id": payroll["id"],
                "period_label": payroll.get("period_label") or period.get("label"),
                "start_date": period.get("start_date"),
                "end_date": period.get("end_date"),
                "net_pay": payroll.get("net_pay") or 0,
                "status": VoucherStatus.PENDING.value,
            })
            created += 1
        return f"{created} vouchers generated"

    async def _rollback(self, action: RecoveryAction, plan: RecoveryPlan, company_id: str) -> str:
        raise RecoveryActionError("Rollback actions require manual intervention")

    async def _audit(
        self,
        plan: RecoveryPlan,
        company_id: str,
        actor_id: str,
        session_id: str,
        status: SyncStatus,
        execution: Optional[RecoveryExecution] = None
    ) -> None:
        record: Dict[str, Any] = {
            "company_id": company_id,
            "period_id": None if plan.period_id == ORPHANED_PERIOD_ID else plan.period_id,
            "reference_id": session_id,
            "sync_type": SyncKind.RECOVERY_OPERATION.value,
            "status": status.value,
            "actor_id": actor_id,
        }
        if execution is not None:
            record.update({
                "records_created": execution.actions_completed,
                "completed_at": utc_now(),
                "error_message": "; ".join(execution.errors) or None,
            })
        try:
            await self.store.insert(Collections.SYNC_LOG, record)
        except Exception as e:
            logger.error(f"Failed to write recovery audit record for {session_id}: {e}")
