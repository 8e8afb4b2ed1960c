"""
Liquidation saga: forward phases with recorded compensations.
"""

from .context import Checkpoint, SagaContext, SagaRegistry
from .integration import LiquidationService
from .monitor import ConsistencyMonitor
from .operation_log import OperationLog
from .operations import (
    CompensatingOperation,
    DeleteOperation,
    InsertOperation,
    OperationKind,
    UpdateOperation,
)
from .orchestrator import LiquidationOrchestrator, LiquidationResult
from .rollback import CompensationOutcome, RollbackExecutor, RollbackResult

__all__ = [
    "Checkpoint",
    "CompensatingOperation",
    "CompensationOutcome",
    "ConsistencyMonitor",
    "DeleteOperation",
    "InsertOperation",
    "LiquidationOrchestrator",
    "LiquidationResult",
    "LiquidationService",
    "OperationKind",
    "OperationLog",
    "RollbackExecutor",
    "RollbackResult",
    "SagaContext",
    "SagaRegistry",
    "UpdateOperation",
]
