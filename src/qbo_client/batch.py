"""
Batch requests.

A batch call carries up to 30 create/update/delete/query operations in
one HTTP exchange. ``BatchService`` splits larger lists into chunks,
sends them one after another through ``dispatch_batch`` and returns the
per-item results in input order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from qbo_client.entities import Entity, EntityKind
from qbo_client.errors import QuickBooksError
from qbo_client.models import ApiRequest, RequestContext

if TYPE_CHECKING:
    from qbo_client.client import QuickBooksClient

logger = logging.getLogger(__name__)

BATCH_CHUNK_SIZE = 30


class BatchOperation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class BatchOption(str, Enum):
    VOID = "void"


@dataclass
class BatchFault:
    """One error inside a per-item fault."""

    message: str = ""
    code: str = ""
    detail: str = ""
    element: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BatchFault:
        return cls(
            message=data.get("Message", ""),
            code=str(data.get("code", "")),
            detail=data.get("Detail", ""),
            element=data.get("element", ""),
        )

    def __str__(self) -> str:
        return f"{self.code}/{self.element}: {self.message}"


class BatchFaultError(QuickBooksError):
    """Raised when strict extraction meets a faulted batch item."""

    def __init__(self, bid: str, faults: list[BatchFault]) -> None:
        self.bid = bid
        self.faults = faults
        super().__init__(f"batch item {bid} faults: " + "; ".join(str(f) for f in faults))


@dataclass(frozen=True)
class BatchItemRequest:
    """One operation in a batch call, correlated by ``bid``."""

    bid: str
    entity_kind: EntityKind | None = None
    entity: Entity | None = None
    operation: BatchOperation | None = None
    options: BatchOption | None = None
    query: str | None = None

    def __post_init__(self) -> None:
        if self.query is None and (self.entity_kind is None or self.entity is None):
            raise ValueError(f"batch item {self.bid} needs either a query or an entity")

    @classmethod
    def for_query(cls, bid: str, statement: str) -> BatchItemRequest:
        return cls(bid=bid, query=statement)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"bId": self.bid}
        if self.operation is not None:
            data["operation"] = self.operation.value
        if self.options is not None:
            data["optionsData"] = self.options.value
        if self.entity_kind is not None and self.entity is not None:
            data[self.entity_kind.value] = self.entity
        if self.query is not None:
            data["Query"] = self.query
        return data


class BatchResultKind(str, Enum):
    ENTITY = "entity"
    QUERY = "query"
    FAULT = "fault"
    EMPTY = "empty"


@dataclass
class QueryResult:
    """Rows returned by a query item, keyed by entity kind."""

    entities: dict[EntityKind, list[Entity]] = field(default_factory=dict)
    start_position: int = 0
    max_results: int = 0
    total_count: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QueryResult:
        entities: dict[EntityKind, list[Entity]] = {}
        for key, value in data.items():
            kind = EntityKind.from_wire(key)
            if kind is not None and isinstance(value, list):
                entities[kind] = value
        return cls(
            entities=entities,
            start_position=data.get("startPosition", 0),
            max_results=data.get("maxResults", 0),
            total_count=data.get("totalCount"),
        )


@dataclass
class BatchItemResult:
    """
    Result of one batch item.

    Exactly one of ``entity``, ``query`` or ``faults`` is populated,
    according to ``kind``.
    """

    bid: str
    kind: BatchResultKind
    entity_kind: EntityKind | None = None
    entity: Entity | None = None
    query: QueryResult | None = None
    faults: list[BatchFault] = field(default_factory=list)
    fault_type: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BatchItemResult:
        bid = data.get("bId", "")

        if "Fault" in data:
            fault = data["Fault"] or {}
            return cls(
                bid=bid,
                kind=BatchResultKind.FAULT,
                faults=[BatchFault.from_dict(e) for e in fault.get("Error", [])],
                fault_type=fault.get("type"),
            )

        if "QueryResponse" in data:
            return cls(
                bid=bid,
                kind=BatchResultKind.QUERY,
                query=QueryResult.from_dict(data["QueryResponse"] or {}),
            )

        for key, value in data.items():
            kind = EntityKind.from_wire(key)
            if kind is not None and isinstance(value, dict):
                return cls(bid=bid, kind=BatchResultKind.ENTITY, entity_kind=kind, entity=value)

        return cls(bid=bid, kind=BatchResultKind.EMPTY)

    @property
    def is_fault(self) -> bool:
        return self.kind is BatchResultKind.FAULT

    def raise_for_fault(self) -> None:
        if self.is_fault:
            raise BatchFaultError(self.bid, self.faults)

    def entity_of(self, kind: EntityKind) -> Entity | None:
        """The entity if this item produced one of ``kind``."""
        if self.kind is BatchResultKind.ENTITY and self.entity_kind is kind:
            return self.entity
        return None

    def query_entities(self, kind: EntityKind) -> list[Entity]:
        """Rows of ``kind`` from a query item; empty otherwise."""
        if self.query is None:
            return []
        return self.query.entities.get(kind, [])


def chunked(items: list[BatchItemRequest], size: int) -> list[list[BatchItemRequest]]:
    if size < 1:
        raise ValueError(f"chunk size must be at least 1, got {size}")
    return [items[start:start + size] for start in range(0, len(items), size)]


class BatchService:
    """Sends batch requests for a client."""

    def __init__(self, client: QuickBooksClient, chunk_size: int = BATCH_CHUNK_SIZE) -> None:
        self._client = client
        self.chunk_size = chunk_size

    async def batch_request(
        self,
        ctx: RequestContext,
        items: list[BatchItemRequest],
    ) -> list[BatchItemResult]:
        """
        Run a list of batch items.

        Chunks are sent sequentially, each through ``dispatch_batch``.
        Per-item faults are returned, not raised; a failing chunk raises
        and stops the remaining chunks.

        Args:
            ctx: Realm, credential and cancellation signal
            items: Operations in the order results should come back

        Returns:
            One result per returned item, in input order
        """
        if not items:
            return []

        results: list[BatchItemResult] = []
        chunks = chunked(items, self.chunk_size)
        for index, chunk in enumerate(chunks, start=1):
            payload = {"BatchItemRequest": [item.to_dict() for item in chunk]}
            logger.debug(f"Sending batch chunk {index}/{len(chunks)} ({len(chunk)} items)")
            data = await self._client.dispatcher.dispatch_batch(ApiRequest.post("batch", payload), ctx)
            responses = (data or {}).get("BatchItemResponse", [])
            results.extend(in_request_order(chunk, [BatchItemResult.from_dict(item) for item in responses]))
        return results


def in_request_order(chunk: list[BatchItemRequest], results: list[BatchItemResult]) -> list[BatchItemResult]:
    """
    Order a chunk's results by the ``bid`` order of its requests.

    The service does not guarantee response order. Results whose ``bid``
    matches no request are kept at the end in the order received.
    """
    by_bid = {result.bid: result for result in results}
    ordered = [by_bid.pop(item.bid) for item in chunk if item.bid in by_bid]
    ordered.extend(result for result in results if result.bid in by_bid)
    return ordered
