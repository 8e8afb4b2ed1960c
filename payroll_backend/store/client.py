"""
Store client contract.

The store is the only I/O boundary of the liquidation subsystem: plain
create/read/update/delete by match conditions plus the opaque remote payroll
computation. Calls are independent and never assumed atomic together.

Every call is bounded by the ambient deadline set with ``deadline_scope``
and by the client's own per-call timeout, whichever is tighter.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Awaitable, Dict, Iterator, List, Optional, Sequence

from ..errors import StoreTimeoutError

logger = logging.getLogger("payroll.store.client")

# Absolute monotonic deadline for store calls made in the current context
_deadline: ContextVar[Optional[float]] = ContextVar("store_deadline", default=None)


class Collections:
    """Collection names understood by every store client."""
    PERIODS = "payroll_periods"
    PAYROLLS = "payrolls"
    VOUCHERS = "payroll_vouchers"
    SYNC_LOG = "payroll_sync_log"


@contextmanager
def deadline_scope(seconds: Optional[float]) -> Iterator[Optional[float]]:
    """
    Bound every store call in the block by a shared deadline.

    ``deadline_scope(None)`` removes any enclosing deadline for the block.
    """
    deadline = None if seconds is None else time.monotonic() + seconds
    token = _deadline.set(deadline)
    try:
        yield deadline
    finally:
        _deadline.reset(token)


def remaining_time() -> Optional[float]:
    """Seconds left before the ambient deadline, or None when unbounded."""
    deadline = _deadline.get()
    if deadline is None:
        return None
    return deadline - time.monotonic()


class StoreClient(ABC):
    """
    Non-transactional record store with a payroll computation endpoint.

    Subclasses implement the underscored primitives; the public methods add
    deadline handling and logging.
    """

    def __init__(self, call_timeout: Optional[float] = None):
        self.call_timeout = call_timeout if call_timeout else None

    async def insert(self, collection: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one record and return it as stored."""
        return await self._bounded(self._insert(collection, payload), f"insert into {collection}")

    async def update(
        self,
        collection: str,
        match: Dict[str, Any],
        payload: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        """
        Update every record matching ``match``.

        Returns:
            The updated records; an empty list means nothing matched, which
            callers use as the affected-row check of a conditional update.
        """
        return await self._bounded(self._update(collection, match, payload), f"update {collection}")

    async def delete(self, collection: str, match: Dict[str, Any]) -> int:
        """Delete every record matching ``match`` and return how many went away."""
        return await self._bounded(self._delete(collection, match), f"delete from {collection}")

    async def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[Sequence[str]] = None
    ) -> List[Dict[str, Any]]:
        """
        Read records by equality filters.

        A ``None`` filter value matches missing values; a list matches any of
        its members.
        """
        return await self._bounded(
            self._query(collection, filters or {}, order_by),
            f"query {collection}"
        )

    async def get(self, collection: str, match: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Return the first record matching ``match`` or None."""
        rows = await self.query(collection, match)
        return rows[0] if rows else None

    async def compute_payroll(
        self,
        employee_id: str,
        base_salary: float,
        period_type: str,
        adjustments: Optional[List[Dict[str, Any]]] = None
    ):
        """Run the opaque remote payroll computation for one employee."""
        return await self._bounded(
            self._compute_payroll(employee_id, base_salary, period_type, adjustments or []),
            f"compute payroll for employee {employee_id}"
        )

    async def close(self) -> None:
        """Release client resources."""

    async def _bounded(self, awaitable: Awaitable, description: str):
        timeout = self._effective_timeout()
        if timeout is None:
            return await awaitable
        if timeout <= 0:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise StoreTimeoutError(f"Deadline exceeded before {description}")
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"Store call timed out after {timeout:.2f}s: {description}")
            raise StoreTimeoutError(f"Timed out during {description}") from e

    def _effective_timeout(self) -> Optional[float]:
        remaining = remaining_time()
        if remaining is None:
            return self.call_timeout
        if self.call_timeout is None:
            return remaining
        return min(remaining, self.call_timeout)

    @abstractmethod
    async def _insert(self, collection: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def _update(
        self,
        collection: str,
        match: Dict[str, Any],
        payload: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def _delete(self, collection: str, match: Dict[str, Any]) -> int:
        ...

    @abstractmethod
    async def _query(
        self,
        collection: str,
        filters: Dict[str, Any],
        order_by: Optional[Sequence[str]]
    ) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def _compute_payroll(
        self,
        employee_id: str,
        base_salary: float,
        period_type: str,
        adjustments: List[Dict[str, Any]]
    ):
        ...
