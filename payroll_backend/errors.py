"""
Exception hierarchy for the payroll backend.

Saga failures are reported through ``LiquidationResult`` rather than raised;
these exceptions travel between the store, the orchestrator and the recovery
layer, and are mapped to HTTP status codes by the API routes.
"""

from typing import List, Optional


class PayrollBackendError(Exception):
    """Base class for all payroll backend errors."""


class StoreError(PayrollBackendError):
    """A call against the data store failed."""

    def __init__(self, message: str, collection: Optional[str] = None):
        super().__init__(message)
        self.collection = collection


class StoreTimeoutError(StoreError):
    """A store call did not finish before the caller's deadline."""


class CalculationError(PayrollBackendError):
    """The remote payroll computation failed or returned an unusable result."""

    def __init__(self, message: str, employee_id: Optional[str] = None):
        super().__init__(message)
        self.employee_id = employee_id


class LiquidationError(PayrollBackendError):
    """A liquidation could not be carried out."""


class PreconditionError(LiquidationError):
    """Liquidation preconditions are not met; nothing was written."""

    def __init__(self, errors: List[str]):
        super().__init__(f"Validation failed: {', '.join(errors)}")
        self.errors = list(errors)


class ConcurrentLiquidationError(PreconditionError):
    """Another liquidation of the same period is already in progress."""


class RecoveryActionError(PayrollBackendError):
    """A recovery action could not be carried out."""
