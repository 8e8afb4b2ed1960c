"""
SQLAlchemy-backed store client.

Each call runs in its own short session, so a sequence of calls behaves
like the remote store it stands in for: every statement commits on its own
and nothing is rolled back across calls.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import Date, DateTime, delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from ..db.models import PayrollPeriod, PayrollRecord, PayrollSyncLog, PayrollVoucher
from ..db.session import get_session
from ..errors import StoreError
from ..utils.datetime import parse_datetime
from .client import Collections, StoreClient

logger = logging.getLogger("payroll.store.sql")

_MODELS = {
    Collections.PERIODS: PayrollPeriod,
    Collections.PAYROLLS: PayrollRecord,
    Collections.VOUCHERS: PayrollVoucher,
    Collections.SYNC_LOG: PayrollSyncLog,
}


class SQLStoreClient(StoreClient):
    """Store client over the payroll tables."""

    def __init__(self, calculator, call_timeout: Optional[float] = None):
        """
        Args:
            calculator: Object exposing ``calculate(employee_id, base_salary,
                period_type, adjustments)`` (normally a PayrollCalculationClient)
            call_timeout: Per-call timeout in seconds (None = unbounded)
        """
        super().__init__(call_timeout=call_timeout)
        self.calculator = calculator

    async def _insert(self, collection: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        model = self._model(collection)
        values = self._coerce(model, payload)
        async with self._session(collection) as session:
            record = model(**values)
            session.add(record)
            await session.flush()
            logger.debug(f"Inserted {collection} record {record.id}")
            return record.to_dict()

    async def _update(
        self,
        collection: str,
        match: Dict[str, Any],
        payload: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        model = self._model(collection)
        conditions = self._conditions(model, match)
        values = self._coerce(model, payload)
        async with self._session(collection) as session:
            # Report exactly the rows this statement changed
            result = await session.execute(
                update(model)
                .where(*conditions)
                .values(**values)
                .returning(model.id)
                .execution_options(synchronize_session=False)
            )
            ids = result.scalars().all()
            if not ids:
                return []

            rows = (await session.execute(
                select(model).where(model.id.in_(ids)).order_by(model.id)
            )).scalars().all()
            return [row.to_dict() for row in rows]

    async def _delete(self, collection: str, match: Dict[str, Any]) -> int:
        model = self._model(collection)
        conditions = self._conditions(model, match)
        async with self._session(collection) as session:
            result = await session.execute(
                delete(model).where(*conditions).execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

    async def _query(
        self,
        collection: str,
        filters: Dict[str, Any],
        order_by: Optional[Sequence[str]]
    ) -> List[Dict[str, Any]]:
        model = self._model(collection)
        stmt = select(model).where(*self._conditions(model, filters))
        if order_by:
            stmt = stmt.order_by(*[self._column(model, name) for name in order_by])
        else:
            stmt = stmt.order_by(model.created_at, model.id)

        async with self._session(collection) as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [row.to_dict() for row in rows]

    async def _compute_payroll(
        self,
        employee_id: str,
        base_salary: float,
        period_type: str,
        adjustments: List[Dict[str, Any]]
    ):
        return await self.calculator.calculate(employee_id, base_salary, period_type, adjustments)

    async def close(self) -> None:
        close = getattr(self.calculator, "close", None)
        if close is not None:
            await close()

    @asynccontextmanager
    async def _session(self, collection: str):
        try:
            async with get_session() as session:
                yield session
        except SQLAlchemyError as e:
            raise StoreError(f"Store call on {collection} failed: {e}", collection=collection) from e

    @staticmethod
    def _model(collection: str):
        try:
            return _MODELS[collection]
        except KeyError:
            raise StoreError(f"Unknown collection: {collection}", collection=collection) from None

    @staticmethod
    def _column(model, name: str):
        try:
            return model.__table__.c[name]
        except KeyError:
            raise StoreError(
                f"Unknown field '{name}' for {model.__tablename__}",
                collection=model.__tablename__
            ) from None

    def _conditions(self, model, match: Dict[str, Any]) -> list:
        conditions = []
        for name, value in match.items():
            column = self._column(model, name)
            if value is None:
                conditions.append(column.is_(None))
            elif isinstance(value, (list, tuple, set, frozenset)):
                conditions.append(column.in_(list(value)))
            else:
                conditions.append(column == value)
        return conditions

    def _coerce(self, model, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Validate field names and turn ISO strings into dates for temporal columns."""
        values = {}
        for name, value in payload.items():
            column = self._column(model, name)
            if isinstance(value, str):
                if isinstance(column.type, DateTime):
                    value = parse_datetime(value)
                elif isinstance(column.type, Date):
                    value = date.fromisoformat(value[:10])
            values[column.key] = value
        return values
