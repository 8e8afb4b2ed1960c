"""
Liquidation saga orchestrator.

Closes a payroll period as a sequence of independent store calls: every
mutation is recorded with its inverse, and any failure replays the inverses
newest-first so the store returns to its state before the liquidation began.
"""

import logging
import time
import uuid
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..config.thresholds import LiquidationThresholds
from ..db.models import PayrollState, PeriodState, SyncKind, SyncStatus, VoucherStatus
from ..errors import (
    ConcurrentLiquidationError,
    LiquidationError,
    PreconditionError,
    StoreError,
)
from ..store.client import Collections, StoreClient, deadline_scope
from ..utils.datetime import utc_now
from ..utils.logging_config import correlation_scope
from .context import SagaContext, SagaRegistry
from .operation_log import OperationLog
from .operations import DeleteOperation, InsertOperation, UpdateOperation
from .rollback import RollbackExecutor, RollbackResult

logger = logging.getLogger("payroll.saga.orchestrator")


@dataclass
class LiquidationResult:
    """Outcome of one liquidation attempt."""
    success: bool
    transaction_id: str
    operations_completed: int
    operations_total: int
    error: Optional[str] = None
    rollback_required: bool = False
    rollback_completed: Optional[bool] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def failure_point(self) -> Optional[str]:
        return self.details.get("failure_point")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "transaction_id": self.transaction_id,
            "operations_completed": self.operations_completed,
            "operations_total": self.operations_total,
            "error": self.error,
            "rollback_required": self.rollback_required,
            "rollback_completed": self.rollback_completed,
            "details": self.details,
        }


@dataclass
class _Totals:
    employee_count: int = 0
    gross: float = 0.0
    deductions: float = 0.0
    net: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "employee_count": self.employee_count,
            "total_gross": round(self.gross, 2),
            "total_deductions": round(self.deductions, 2),
            "total_net": round(self.net, 2),
        }


def new_transaction_id(period_id: str) -> str:
    return f"liquidation_{period_id}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


class LiquidationOrchestrator:
    """
    Runs the liquidation saga for one period.

    Phases, each bracketed by checkpoints on the saga context:

    1. validate preconditions (read only)
    2. move the period from draft to processing with a conditional update
    3. compute and store every employee's payroll
    4. write period totals
    5. replace any leftover vouchers with one per processed payroll
    6. close the period
    7. write the audit record (best effort, never rolled back)
    """

    def __init__(
        self,
        store: StoreClient,
        registry: Optional[SagaRegistry] = None,
        default_deadline_seconds: Optional[float] = None
    ):
        self.store = store
        self.registry = registry if registry is not None else SagaRegistry()
        self.operation_log = OperationLog(store)
        self.rollback_executor = RollbackExecutor(store)
        self.default_deadline_seconds = default_deadline_seconds

    async def liquidate(
        self,
        period_id: str,
        company_id: str,
        actor_id: str,
        deadline_seconds: Optional[float] = None
    ) -> LiquidationResult:
        """
        Liquidate a payroll period.

        Args:
            period_id: Period to close
            company_id: Owning company
            actor_id: User performing the liquidation
            deadline_seconds: Overall budget for the forward phases; store
                calls past it fail and trigger rollback

        Returns:
            LiquidationResult; failures are reported here, never raised
        """
        context = SagaContext(
            transaction_id=new_transaction_id(period_id),
            period_id=period_id,
            company_id=company_id,
            actor_id=actor_id,
        )
        self.registry.register(context)
        deadline = deadline_seconds if deadline_seconds is not None else self.default_deadline_seconds
        operations_total = 0

        with correlation_scope(context.transaction_id):
            logger.info(
                f"Starting liquidation {context.transaction_id} for period {period_id} "
                f"(company {company_id}, actor {actor_id})"
            )
            try:
                with deadline_scope(deadline) if deadline is not None else nullcontext():
                    period, payrolls, leftover_vouchers = await self._validate(context)
                    operations_total = 2 * len(payrolls) + 3 + (1 if leftover_vouchers else 0)
                    totals = await self._run_phases(context, period)
            except PreconditionError as e:
                logger.warning(f"Liquidation {context.transaction_id} rejected: {e}")
                return await self._failed(context, e, operations_total, error_type="precondition")
            except Exception as e:
                logger.error(
                    f"Liquidation {context.transaction_id} failed after checkpoint "
                    f"{context.last_checkpoint}: {e}",
                    exc_info=not isinstance(e, (StoreError, LiquidationError))
                )
                return await self._failed(context, e, operations_total, error_type=type(e).__name__)
            finally:
                self.registry.drop(context.transaction_id)

            audit_logged = await self._write_audit(context, SyncStatus.COMPLETED)
            context.add_checkpoint("transaction_completed")

            logger.info(
                f"Liquidation {context.transaction_id} completed: "
                f"{totals.employee_count} employees, {len(context.operations)} operations"
            )
            return LiquidationResult(
                success=True,
                transaction_id=context.transaction_id,
                operations_completed=len(context.operations),
                operations_total=operations_total,
                details={
                    "period_id": period_id,
                    "employees_processed": totals.employee_count,
                    "vouchers_generated": totals.employee_count,
                    "totals": totals.to_dict(),
                    "audit_logged": audit_logged,
                    "checkpoints": [str(checkpoint) for checkpoint in context.checkpoints],
                },
            )

    async def _run_phases(self, context: SagaContext, period: Dict[str, Any]) -> _Totals:
        await self._mark_processing(context)
        processed, totals = await self._process_employees(context, period)
        await self._update_totals(context, totals)
        await self._generate_vouchers(context, period, processed)
        await self._finalize(context)
        return totals

    async def _validate(
        self,
        context: SagaContext
    ) -> Tuple[Dict[str, Any], List[Dict[str, Any]], List[Dict[str, Any]]]:
        context.add_checkpoint("validation_start")
        errors: List[str] = []
        in_progress = False

        period = await self.store.get(
            Collections.PERIODS,
            {"id": context.period_id, "company_id": context.company_id}
        )
        if period is None:
            errors.append("Period not found")
        elif period["state"] == PeriodState.CLOSED.value:
            errors.append("Period is already closed")
        elif period["state"] == PeriodState.PROCESSING.value:
            errors.append("Period liquidation is already in progress")
            in_progress = True

        payrolls = await self.store.query(
            Collections.PAYROLLS,
            {"period_id": context.period_id, "company_id": context.company_id}
        )
        if not payrolls:
            errors.append("No employees to process")

        if errors:
            if in_progress:
                raise ConcurrentLiquidationError(errors)
            raise PreconditionError(errors)

        # Vouchers from an earlier attempt that was reset by recovery cleanup
        leftover_vouchers = await self.store.query(
            Collections.VOUCHERS,
            {"period_id": context.period_id, "company_id": context.company_id}
        )

        context.add_checkpoint("validation_completed")
        return period, payrolls, leftover_vouchers

    async def _mark_processing(self, context: SagaContext) -> None:
        context.add_checkpoint("period_state_update")
        updated = await self.operation_log.apply(context, UpdateOperation(
            collection=Collections.PERIODS,
            match={
                "id": context.period_id,
                "company_id": context.company_id,
                "state": PeriodState.DRAFT.value,
            },
            payload={"state": PeriodState.PROCESSING.value, "last_activity_at": utc_now()},
            operation_id=f"period_processing_{context.period_id}",
        ))
        if not updated:
            raise ConcurrentLiquidationError(
                ["Period is no longer in draft; another liquidation may be in progress"]
            )
        context.add_checkpoint("period_state_updated")

    async def _process_employees(
        self,
        context: SagaContext,
        period: Dict[str, Any]
    ) -> Tuple[List[Dict[str, Any]], _Totals]:
        context.add_checkpoint("employee_processing_start")
        # Re-read under the processing guard so the set cannot drift from validation
        payrolls = await self.store.query(
            Collections.PAYROLLS,
            {"period_id": context.period_id, "company_id": context.company_id}
        )
        period_type = period.get("period_type") or LiquidationThresholds.DEFAULT_PERIOD_TYPE
        totals = _Totals()
        processed: List[Dict[str, Any]] = []

        for payroll in payrolls:
            employee_id = payroll["employee_id"]
            try:
                calculation = await self.store.compute_payroll(
                    employee_id,
                    float(payroll.get("base_salary") or 0),
                    period_type,
                    [],
                )
            except Exception as e:
                raise LiquidationError(f"Error processing employee {employee_id}: {e}") from e

            updated = await self.operation_log.apply(context, UpdateOperation(
                collection=Collections.PAYROLLS,
                match={"id": payroll["id"]},
                payload={
                    "total_gross": calculation.gross_pay,
                    "total_deductions": calculation.total_deductions,
                    "net_pay": calculation.net_pay,
                    "state": PayrollState.PROCESSED.value,
                    "calculation_detail": calculation.to_dict(),
                },
                operation_id=f"update_payroll_{payroll['id']}",
            ))
            if not updated:
                raise StoreError(
                    f"Payroll record {payroll['id']} disappeared during liquidation",
                    collection=Collections.PAYROLLS
                )

            processed.append({**payroll, "net_pay": calculation.net_pay})
            totals.employee_count += 1
            totals.gross += calculation.gross_pay
            totals.deductions += calculation.total_deductions
            totals.net += calculation.net_pay

        context.add_checkpoint("employee_processing_completed")
        return processed, totals

    async def _update_totals(self, context: SagaContext, totals: _Totals) -> None:
        context.add_checkpoint("period_totals_update")
        updated = await self.operation_log.apply(context, UpdateOperation(
            collection=Collections.PERIODS,
            match={"id": context.period_id},
            payload={**totals.to_dict(), "last_activity_at": utc_now()},
            operation_id=f"update_period_totals_{context.period_id}",
        ))
        if not updated:
            raise StoreError("Period disappeared during liquidation", collection=Collections.PERIODS)
        context.add_checkpoint("period_totals_updated")

    async def _generate_vouchers(
        self,
        context: SagaContext,
        period: Dict[str, Any],
        processed: List[Dict[str, Any]]
    ) -> None:
        context.add_checkpoint("voucher_generation_start")
        cleared = await self.operation_log.apply(context, DeleteOperation(
            collection=Collections.VOUCHERS,
            match={"period_id": context.period_id, "company_id": context.company_id},
            operation_id=f"clear_vouchers_{context.period_id}",
        ))
        if cleared:
            logger.warning(f"Removed {cleared} vouchers left by an earlier liquidation of {context.period_id}")
        for payroll in processed:
            await self.operation_log.apply(context, InsertOperation(
                collection=Collections.VOUCHERS,
                payload={
                    "company_id": context.company_id,
                    "period_id": context.period_id,
                    "employee_id": payroll["employee_id"],
                    "payroll_id": payroll["id"],
                    "period_label": period.get("label"),
                    "start_date": period.get("start_date"),
                    "end_date": period.get("end_date"),
                    "net_pay": payroll["net_pay"],
                    "status": VoucherStatus.PENDING.value,
                    "generated_by": context.actor_id,
                },
                operation_id=f"create_voucher_{payroll['id']}",
            ))
        context.add_checkpoint("voucher_generation_completed")

    async def _finalize(self, context: SagaContext) -> None:
        context.add_checkpoint("period_finalization")
        updated = await self.operation_log.apply(context, UpdateOperation(
            collection=Collections.PERIODS,
            match={"id": context.period_id, "state": PeriodState.PROCESSING.value},
            payload={"state": PeriodState.CLOSED.value, "last_activity_at": utc_now()},
            operation_id=f"finalize_period_{context.period_id}",
        ))
        if not updated:
            raise LiquidationError("Period left the processing state during liquidation")
        context.add_checkpoint("period_finalized")

    async def _failed(
        self,
        context: SagaContext,
        error: Exception,
        operations_total: int,
        error_type: str
    ) -> LiquidationResult:
        failure_point = context.last_checkpoint
        rollback: Optional[RollbackResult] = None
        if context.compensations:
            rollback = await self.rollback_executor.rollback(context)

        details: Dict[str, Any] = {
            "period_id": context.period_id,
            "error_type": error_type,
            "failure_point": failure_point,
            "checkpoints": [str(checkpoint) for checkpoint in context.checkpoints],
        }
        if isinstance(error, PreconditionError):
            details["errors"] = error.errors
        if context.in_doubt:
            details["in_doubt_operations"] = list(context.in_doubt)
        if rollback is not None:
            details["rollback"] = rollback.to_dict()
            details["audit_logged"] = await self._write_audit(
                context, SyncStatus.ERROR, error_message=str(error)
            )

        return LiquidationResult(
            success=False,
            transaction_id=context.transaction_id,
            operations_completed=len(context.operations),
            operations_total=operations_total,
            error=str(error),
            rollback_required=rollback is not None,
            rollback_completed=rollback.success if rollback is not None else None,
            details=details,
        )

    async def _write_audit(
        self,
        context: SagaContext,
        status: SyncStatus,
        error_message: Optional[str] = None
    ) -> bool:
        """Write the liquidation's audit record; failures are logged, never raised."""
        if status == SyncStatus.COMPLETED:
            context.add_checkpoint("audit_logging")
        try:
            with deadline_scope(None):
                await self.store.insert(Collections.SYNC_LOG, {
                    "company_id": context.company_id,
                    "period_id": context.period_id,
                    "reference_id": context.transaction_id,
                    "sync_type": SyncKind.ATOMIC_LIQUIDATION.value,
                    "status": status.value,
                    "records_created": len(context.operations),
                    "actor_id": context.actor_id,
                    "checkpoints": [str(checkpoint) for checkpoint in context.checkpoints],
                    "completed_at": utc_now(),
                    "error_message": error_message,
                })
            return True
        except Exception as e:
            logger.error(f"Failed to write audit record for {context.transaction_id}: {e}")
            return False
