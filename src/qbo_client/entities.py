"""
Generic entity operations.

Each QuickBooks entity is described once by an ``EntityKind`` member
(wire name, endpoint, capabilities); ``EntityService`` implements the
create/find/update/delete/query operations for any kind on top of the
dispatcher. Entities are plain JSON objects: a missing key means the
field is unset.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

from qbo_client.errors import EntityNotFound
from qbo_client.models import ApiRequest, RequestContext

if TYPE_CHECKING:
    from qbo_client.client import QuickBooksClient

logger = logging.getLogger(__name__)

Entity = dict[str, Any]


class EntityKind(str, Enum):
    """Entities exposed by the accounting API, keyed by wire name."""

    ACCOUNT = "Account"
    ATTACHABLE = "Attachable"
    BILL = "Bill"
    BILL_PAYMENT = "BillPayment"
    CLASS = "Class"
    CREDIT_MEMO = "CreditMemo"
    CUSTOMER = "Customer"
    CUSTOMER_TYPE = "CustomerType"
    DEPOSIT = "Deposit"
    EMPLOYEE = "Employee"
    ESTIMATE = "Estimate"
    INVOICE = "Invoice"
    ITEM = "Item"
    PAYMENT = "Payment"
    PAYMENT_METHOD = "PaymentMethod"
    PURCHASE = "Purchase"
    REIMBURSE_CHARGE = "ReimburseCharge"
    TAX_CODE = "TaxCode"
    TAX_RATE = "TaxRate"
    TERM = "Term"
    TIME_ACTIVITY = "TimeActivity"
    VENDOR = "Vendor"
    VENDOR_CREDIT = "VendorCredit"

    @property
    def endpoint(self) -> str:
        """Resource path, e.g. ``billpayment``."""
        return self.value.lower()

    @property
    def deletable(self) -> bool:
        return self in _DELETABLE

    @property
    def voidable(self) -> bool:
        return self in _VOIDABLE

    @property
    def sendable(self) -> bool:
        return self in _SENDABLE

    @property
    def writable(self) -> bool:
        return self not in _READ_ONLY

    @classmethod
    def from_wire(cls, name: str) -> EntityKind | None:
        try:
            return cls(name)
        except ValueError:
            return None


_DELETABLE = frozenset({
    EntityKind.ATTACHABLE,
    EntityKind.BILL,
    EntityKind.BILL_PAYMENT,
    EntityKind.CREDIT_MEMO,
    EntityKind.DEPOSIT,
    EntityKind.ESTIMATE,
    EntityKind.INVOICE,
    EntityKind.PAYMENT,
    EntityKind.PURCHASE,
    EntityKind.TIME_ACTIVITY,
    EntityKind.VENDOR_CREDIT,
})
_VOIDABLE = frozenset({EntityKind.BILL_PAYMENT, EntityKind.INVOICE, EntityKind.PAYMENT})
_SENDABLE = frozenset({EntityKind.ESTIMATE, EntityKind.INVOICE})
_READ_ONLY = frozenset({
    EntityKind.CUSTOMER_TYPE,
    EntityKind.REIMBURSE_CHARGE,
    EntityKind.TAX_CODE,
    EntityKind.TAX_RATE,
})


def quote(value: str) -> str:
    """Quote a string literal for the query language."""
    return "'" + value.replace("'", "''") + "'"


class EntityService:
    """CRUD and query operations for one entity kind."""

    def __init__(self, client: QuickBooksClient, kind: EntityKind) -> None:
        self._client = client
        self.kind = kind

    def _unwrap(self, data: Any) -> Entity:
        if not isinstance(data, dict) or self.kind.value not in data:
            raise EntityNotFound(f"Response carries no {self.kind.value}")
        return data[self.kind.value]

    def _require(self, capability: bool, operation: str) -> None:
        if not capability:
            raise ValueError(f"{self.kind.value} does not support {operation}")

    async def create(self, ctx: RequestContext, entity: Entity) -> Entity:
        self._require(self.kind.writable, "create")
        data = await self._client.dispatch(ApiRequest.post(self.kind.endpoint, entity), ctx)
        return self._unwrap(data)

    async def find_by_id(self, ctx: RequestContext, entity_id: str) -> Entity:
        data = await self._client.dispatch(ApiRequest.get(f"{self.kind.endpoint}/{entity_id}"), ctx)
        return self._unwrap(data)

    async def query(self, ctx: RequestContext, statement: str) -> list[Entity]:
        """
        Run a query statement and return the matching entities.

        Returns:
            Entities of this kind; empty when nothing matched
        """
        response = await self._client.query(ctx, statement)
        return response.get(self.kind.value, [])

    async def count(self, ctx: RequestContext) -> int:
        response = await self._client.query(ctx, f"SELECT COUNT(*) FROM {self.kind.value}")
        return int(response.get("totalCount", 0))

    async def find_by_page(
        self,
        ctx: RequestContext,
        start_position: int = 1,
        page_size: int | None = None,
    ) -> list[Entity]:
        """
        Fetch one page ordered by Id.

        Args:
            start_position: 1-based position of the first row
            page_size: Rows per page; defaults to the client's page size
        """
        page_size = page_size or self._client.settings.query_page_size
        statement = (
            f"SELECT * FROM {self.kind.value} ORDERBY Id "
            f"STARTPOSITION {start_position} MAXRESULTS {page_size}"
        )
        return await self.query(ctx, statement)

    async def find_all(self, ctx: RequestContext) -> list[Entity]:
        """Count the entities, then page through all of them in order."""
        total = await self.count(ctx)
        page_size = self._client.settings.query_page_size
        logger.debug(f"Fetching {total} {self.kind.value} rows in pages of {page_size}")

        entities: list[Entity] = []
        for offset in range(0, total, page_size):
            entities.extend(await self.find_by_page(ctx, offset + 1, page_size))
        return entities

    async def find_by_name(self, ctx: RequestContext, name: str, field: str = "DisplayName") -> Entity:
        """
        Return the first entity whose ``field`` equals ``name``.

        Raises:
            EntityNotFound: If nothing matched
        """
        statement = f"SELECT * FROM {self.kind.value} WHERE {field} = {quote(name)}"
        matches = await self.query(ctx, statement)
        if not matches:
            raise EntityNotFound(f"No {self.kind.value} with {field} {name!r}")
        return matches[0]

    async def _refresh_sync_token(self, ctx: RequestContext, entity: Entity) -> Entity:
        entity_id = entity.get("Id")
        if not entity_id:
            raise ValueError(f"missing {self.kind.value} id")
        existing = await self.find_by_id(ctx, entity_id)
        return {**entity, "SyncToken": existing.get("SyncToken")}

    async def update(self, ctx: RequestContext, entity: Entity) -> Entity:
        """
        Full update: writable fields missing from ``entity`` are cleared.

        The current ``SyncToken`` is fetched first.
        """
        self._require(self.kind.writable, "update")
        payload = await self._refresh_sync_token(ctx, entity)
        data = await self._client.dispatch(ApiRequest.post(self.kind.endpoint, payload), ctx)
        return self._unwrap(data)

    async def sparse_update(self, ctx: RequestContext, entity: Entity) -> Entity:
        """Update only the fields present in ``entity``."""
        self._require(self.kind.writable, "sparse update")
        payload = await self._refresh_sync_token(ctx, entity)
        payload["sparse"] = True
        data = await self._client.dispatch(ApiRequest.post(self.kind.endpoint, payload), ctx)
        return self._unwrap(data)

    async def delete(self, ctx: RequestContext, entity: Entity) -> None:
        """
        Delete an entity.

        ``entity`` must carry the current ``Id`` and ``SyncToken``.
        """
        self._require(self.kind.deletable, "delete")
        if not entity.get("Id"):
            raise ValueError(f"missing {self.kind.value} id")
        if entity.get("SyncToken") is None:
            raise ValueError(f"missing {self.kind.value} sync token")
        payload = {"Id": entity["Id"], "SyncToken": entity["SyncToken"]}
        await self._client.dispatch(
            ApiRequest.post(self.kind.endpoint, payload, params={"operation": "delete"}), ctx
        )

    async def void(self, ctx: RequestContext, entity: Entity) -> Entity:
        """Void an entity; the current ``SyncToken`` is fetched first."""
        self._require(self.kind.voidable, "void")
        current = await self._refresh_sync_token(ctx, entity)
        payload = {"Id": current["Id"], "SyncToken": current["SyncToken"]}
        data = await self._client.dispatch(
            ApiRequest.post(self.kind.endpoint, payload, params={"operation": "void"}), ctx
        )
        return self._unwrap(data)

    async def send(self, ctx: RequestContext, entity_id: str, email: str | None = None) -> Entity:
        """Email the document to the customer, or to ``email`` when given."""
        self._require(self.kind.sendable, "send")
        params = {"sendTo": email} if email else None
        data = await self._client.dispatch(
            ApiRequest.post(f"{self.kind.endpoint}/{entity_id}/send", params=params), ctx
        )
        return self._unwrap(data)
