"""
Payroll models: periods, per-employee payroll records, vouchers and the
synchronisation log that doubles as the liquidation/recovery audit trail.

The tables are accessed through the store client one statement at a time;
nothing here relies on multi-statement transactions.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, Date, JSON, Integer, Numeric, Text, Index
import enum

from ..base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RecordMixin:
    """Plain-dict conversion shared by every payroll model."""

    def to_dict(self):
        """Column values keyed by column name, with native Python types."""
        return {column.name: getattr(self, column.key) for column in self.__table__.columns}


class PeriodState(str, enum.Enum):
    """Lifecycle of a payroll period."""
    DRAFT = "draft"
    PROCESSING = "processing"
    CLOSED = "closed"


class PayrollState(str, enum.Enum):
    """State of one employee's payroll record."""
    DRAFT = "draft"
    PROCESSED = "processed"


class VoucherStatus(str, enum.Enum):
    """Delivery status of a payroll voucher."""
    PENDING = "pending"
    SENT = "sent"


class SyncKind(str, enum.Enum):
    """Kind of audit trail entry."""
    ATOMIC_LIQUIDATION = "atomic_liquidation"
    RECOVERY_OPERATION = "recovery_operation"


class SyncStatus(str, enum.Enum):
    """Status carried by an audit trail entry."""
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class PayrollPeriod(RecordMixin, Base):
    """
    One payroll cycle of a company.

    Created externally in ``draft``; mutated only by the liquidation saga and
    the recovery executor; never deleted by this backend.
    """
    __tablename__ = "payroll_periods"

    id = Column(String, primary_key=True, default=_new_id)
    company_id = Column(String, nullable=False, index=True)
    label = Column(String, nullable=False)
    """Human name of the period (e.g. '1 - 15 Marzo 2025'); orphan re-linking matches on it"""

    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    period_type = Column(String, nullable=True)
    state = Column(String, nullable=False, default=PeriodState.DRAFT.value, index=True)

    # Aggregated totals written by the saga
    total_gross = Column(Numeric(14, 2, asdecimal=False), nullable=False, default=0)
    total_deductions = Column(Numeric(14, 2, asdecimal=False), nullable=False, default=0)
    total_net = Column(Numeric(14, 2, asdecimal=False), nullable=False, default=0)
    employee_count = Column(Integer, nullable=False, default=0)

    last_activity_at = Column(DateTime(timezone=True), nullable=True, default=_now)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class PayrollRecord(RecordMixin, Base):
    """One employee's computed pay within a period."""
    __tablename__ = "payrolls"
    __table_args__ = (
        Index("ix_payrolls_period_state", "period_id", "state"),
    )

    id = Column(String, primary_key=True, default=_new_id)
    company_id = Column(String, nullable=False, index=True)
    period_id = Column(String, nullable=True, index=True)
    """Owning period; NULL means the record is orphaned"""

    period_label = Column(String, nullable=True)
    """Denormalized period name, kept for reporting and orphan re-linking"""

    employee_id = Column(String, nullable=False, index=True)
    base_salary = Column(Numeric(14, 2, asdecimal=False), nullable=False, default=0)
    total_gross = Column(Numeric(14, 2, asdecimal=False), nullable=False, default=0)
    total_deductions = Column(Numeric(14, 2, asdecimal=False), nullable=False, default=0)
    net_pay = Column(Numeric(14, 2, asdecimal=False), nullable=False, default=0)
    state = Column(String, nullable=False, default=PayrollState.DRAFT.value)
    calculation_detail = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class PayrollVoucher(RecordMixin, Base):
    """Receipt document derived 1:1 from a processed payroll record."""
    __tablename__ = "payroll_vouchers"

    id = Column(String, primary_key=True, default=_new_id)
    company_id = Column(String, nullable=False, index=True)
    period_id = Column(String, nullable=False, index=True)
    employee_id = Column(String, nullable=False)
    payroll_id = Column(String, nullable=False, index=True)
    period_label = Column(String, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    net_pay = Column(Numeric(14, 2, asdecimal=False), nullable=False, default=0)
    status = Column(String, nullable=False, default=VoucherStatus.PENDING.value)
    generated_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class PayrollSyncLog(RecordMixin, Base):
    """
    Append-only audit trail shared by liquidations and recovery runs.

    ``reference_id`` holds the saga transaction id or the recovery session id.
    """
    __tablename__ = "payroll_sync_log"

    id = Column(String, primary_key=True, default=_new_id)
    company_id = Column(String, nullable=False, index=True)
    period_id = Column(String, nullable=True, index=True)
    reference_id = Column(String, nullable=True, index=True)
    sync_type = Column(String, nullable=False)
    status = Column(String, nullable=False)
    records_created = Column(Integer, nullable=False, default=0)
    actor_id = Column(String, nullable=True)
    checkpoints = Column(JSON, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
