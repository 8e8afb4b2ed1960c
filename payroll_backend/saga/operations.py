"""
Store operations recorded by the liquidation saga.

Each kind of mutating call is its own frozen dataclass and knows how to
build its inverse, so compensation never has to branch on collection names:

- an insert is undone by deleting the inserted record;
- an update is undone by writing back the pre-image of the fields it changed;
- a delete is undone by re-inserting every deleted record.
"""

import enum
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, ClassVar, Dict, List, Tuple, Union


class OperationKind(str, enum.Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


def _new_operation_id() -> str:
    return f"op_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class InsertOperation:
    """Insert one record. After it is applied ``payload`` carries the stored id."""
    collection: str
    payload: Dict[str, Any]
    operation_id: str = field(default_factory=_new_operation_id)

    kind: ClassVar[OperationKind] = OperationKind.INSERT

    async def apply(self, store):
        return await store.insert(self.collection, self.payload)

    def succeeded(self, result) -> bool:
        return bool(result)

    def recorded(self, result) -> "InsertOperation":
        """The operation as applied, pinned to the id the store assigned."""
        return replace(self, payload={**self.payload, "id": result["id"]})

    def inverse(self) -> List["Operation"]:
        record_id = self.payload.get("id")
        match = {"id": record_id} if record_id is not None else dict(self.payload)
        return [DeleteOperation(
            collection=self.collection,
            match=match,
            prior_values=(dict(self.payload),),
            operation_id=f"rollback_{self.operation_id}",
        )]

    def describe(self) -> Dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "kind": self.kind.value,
            "collection": self.collection,
            "record_id": self.payload.get("id"),
        }


@dataclass(frozen=True)
class UpdateOperation:
    """
    Update the records matching ``match``.

    ``prior_values`` holds the pre-images read immediately before the write;
    it is empty until the operation log has applied the update.
    """
    collection: str
    match: Dict[str, Any]
    payload: Dict[str, Any]
    prior_values: Tuple[Dict[str, Any], ...] = ()
    operation_id: str = field(default_factory=_new_operation_id)

    kind: ClassVar[OperationKind] = OperationKind.UPDATE

    async def apply(self, store):
        return await store.update(self.collection, self.match, self.payload)

    def succeeded(self, result) -> bool:
        return bool(result)

    def recorded(self, result, prior_values: List[Dict[str, Any]]) -> "UpdateOperation":
        """The operation as applied, keeping pre-images only for rows it changed."""
        updated_ids = {row.get("id") for row in result}
        kept = tuple(dict(row) for row in prior_values if row.get("id") in updated_ids)
        return replace(self, prior_values=kept)

    def inverse(self) -> List["Operation"]:
        inverses: List[Operation] = []
        for index, prior in enumerate(self.prior_values):
            restored = {name: prior.get(name) for name in self.payload}
            suffix = f"_{index}" if len(self.prior_values) > 1 else ""
            inverses.append(UpdateOperation(
                collection=self.collection,
                match={"id": prior["id"]},
                payload=restored,
                prior_values=({**prior, **self.payload},),
                operation_id=f"rollback_{self.operation_id}{suffix}",
            ))
        return inverses

    def describe(self) -> Dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "kind": self.kind.value,
            "collection": self.collection,
            "match": dict(self.match),
            "fields": sorted(self.payload),
            "records": len(self.prior_values),
        }


@dataclass(frozen=True)
class DeleteOperation:
    """Delete the records matching ``match``; ``prior_values`` keeps what was removed."""
    collection: str
    match: Dict[str, Any]
    prior_values: Tuple[Dict[str, Any], ...] = ()
    operation_id: str = field(default_factory=_new_operation_id)

    kind: ClassVar[OperationKind] = OperationKind.DELETE

    async def apply(self, store):
        return await store.delete(self.collection, self.match)

    def succeeded(self, result) -> bool:
        # Deleting something already gone leaves the store in the wanted state
        return True

    def recorded(self, result, prior_values: List[Dict[str, Any]]) -> "DeleteOperation":
        return replace(self, prior_values=tuple(dict(row) for row in prior_values))

    def inverse(self) -> List["Operation"]:
        return [
            InsertOperation(
                collection=self.collection,
                payload=dict(prior),
                operation_id=f"rollback_{self.operation_id}_{prior.get('id', index)}",
            )
            for index, prior in enumerate(self.prior_values)
        ]

    def describe(self) -> Dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "kind": self.kind.value,
            "collection": self.collection,
            "match": dict(self.match),
            "records": len(self.prior_values),
        }


Operation = Union[InsertOperation, UpdateOperation, DeleteOperation]


@dataclass(frozen=True)
class CompensatingOperation:
    """An inverse operation together with the id of the operation it undoes."""
    operation: Operation
    inverts: str

    @property
    def compensation_id(self) -> str:
        return self.operation.operation_id

    def describe(self) -> Dict[str, Any]:
        description = self.operation.describe()
        description["inverts"] = self.inverts
        return description


def compensations_for(operation: Operation) -> List[CompensatingOperation]:
    """Wrap an applied operation's inverse for the rollback stack."""
    return [
        CompensatingOperation(operation=inverse, inverts=operation.operation_id)
        for inverse in operation.inverse()
    ]
