"""ORM models for the payroll backend."""

from .payroll import (
    PayrollPeriod,
    PayrollRecord,
    PayrollVoucher,
    PayrollSyncLog,
    PeriodState,
    PayrollState,
    VoucherStatus,
    SyncKind,
    SyncStatus,
)

__all__ = [
    "PayrollPeriod",
    "PayrollRecord",
    "PayrollVoucher",
    "PayrollSyncLog",
    "PeriodState",
    "PayrollState",
    "VoucherStatus",
    "SyncKind",
    "SyncStatus",
]
