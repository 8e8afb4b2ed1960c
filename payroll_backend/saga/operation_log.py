"""
Applies saga operations to the store and records them with their inverses.
"""

import logging
import uuid
from dataclasses import replace
from typing import Any

from ..errors import StoreTimeoutError
from ..store.client import StoreClient
from .context import SagaContext
from .operations import DeleteOperation, InsertOperation, Operation, UpdateOperation

logger = logging.getLogger("payroll.saga.operation_log")


class OperationLog:
    """
    Write path for every mutation a saga performs.

    An operation is recorded once the store confirms it. A call that times
    out may still have committed, so it is recorded as in doubt. Inserts get
    their id before the call so an in-doubt insert can still be deleted by id.
    """

    def __init__(self, store: StoreClient):
        self.store = store

    async def apply(self, context: SagaContext, operation: Operation) -> Any:
        """
        Apply ``operation`` and, if it changed anything, record it on ``context``.

        Updates and deletes read their pre-images immediately before writing.
        An update or delete that matches nothing is not recorded.

        Returns:
            The store's result: the inserted record, the list of updated
            records, or the number of deleted records
        """
        if isinstance(operation, InsertOperation):
            if "id" not in operation.payload:
                operation = replace(operation, payload={**operation.payload, "id": str(uuid.uuid4())})
            try:
                result = await operation.apply(self.store)
            except StoreTimeoutError:
                self._record_in_doubt(context, operation)
                raise
            if operation.succeeded(result):
                context.record(operation.recorded(result))
            return result

        if isinstance(operation, (UpdateOperation, DeleteOperation)):
            prior_values = await self.store.query(operation.collection, operation.match)
            if not prior_values:
                logger.debug(
                    f"[{context.transaction_id}] {operation.kind.value} {operation.operation_id} "
                    f"matched nothing in {operation.collection}"
                )
                return [] if isinstance(operation, UpdateOperation) else 0

            try:
                result = await operation.apply(self.store)
            except StoreTimeoutError:
                # Which rows were hit is unknown; undo assumes all of them were
                self._record_in_doubt(context, replace(operation, prior_values=tuple(
                    dict(row) for row in prior_values
                )))
                raise
            if result:
                context.record(operation.recorded(result, prior_values))
            return result

        raise TypeError(f"Unsupported saga operation: {type(operation).__name__}")

    @staticmethod
    def _record_in_doubt(context: SagaContext, operation: Operation) -> None:
        logger.warning(
            f"[{context.transaction_id}] {operation.kind.value} {operation.operation_id} "
            f"timed out; recording it for rollback in case it was applied"
        )
        context.record(operation, in_doubt=True)
