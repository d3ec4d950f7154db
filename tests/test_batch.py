"""Tests for batch requests."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from conftest import json_response
from qbo_client.batch import (
    BatchFaultError,
    BatchItemRequest,
    BatchItemResult,
    BatchOperation,
    BatchOption,
    BatchResultKind,
    chunked,
    in_request_order,
)
from qbo_client.config import Settings
from qbo_client.entities import EntityKind
from qbo_client.errors import RealmBatchThroughputExceeded, RequestFailure
from qbo_client.models import RequestContext


def echo_batch(request: httpx.Request) -> httpx.Response:
    """Answer each item with a Customer whose Id is its bId."""
    items = json.loads(request.content)["BatchItemRequest"]
    return json_response(
        {"BatchItemResponse": [{"bId": item["bId"], "Customer": {"Id": item["bId"]}} for item in items]}
    )


def customer_item(bid: str) -> BatchItemRequest:
    return BatchItemRequest(
        bid=bid,
        entity_kind=EntityKind.CUSTOMER,
        entity={"DisplayName": f"Customer {bid}"},
        operation=BatchOperation.CREATE,
    )


class TestBatchItemRequest:
    """Tests for item serialization."""

    def test_entity_item(self) -> None:
        item = customer_item("1")

        assert item.to_dict() == {
            "bId": "1",
            "operation": "create",
            "Customer": {"DisplayName": "Customer 1"},
        }

    def test_void_option(self) -> None:
        item = BatchItemRequest(
            bid="v",
            entity_kind=EntityKind.INVOICE,
            entity={"Id": "12", "SyncToken": "3"},
            operation=BatchOperation.UPDATE,
            options=BatchOption.VOID,
        )

        data = item.to_dict()
        assert data["operation"] == "update"
        assert data["optionsData"] == "void"
        assert data["Invoice"] == {"Id": "12", "SyncToken": "3"}

    def test_query_item(self) -> None:
        item = BatchItemRequest.for_query("q", "SELECT * FROM Vendor")

        assert item.to_dict() == {"bId": "q", "Query": "SELECT * FROM Vendor"}

    def test_requires_entity_or_query(self) -> None:
        with pytest.raises(ValueError):
            BatchItemRequest(bid="x", operation=BatchOperation.DELETE)


class TestBatchItemResult:
    """Tests for per-item result parsing."""

    def test_entity_result(self) -> None:
        result = BatchItemResult.from_dict({"bId": "1", "Customer": {"Id": "55"}})

        assert result.kind is BatchResultKind.ENTITY
        assert result.entity_kind is EntityKind.CUSTOMER
        assert result.entity_of(EntityKind.CUSTOMER) == {"Id": "55"}
        assert result.entity_of(EntityKind.VENDOR) is None
        result.raise_for_fault()

    def test_query_result(self) -> None:
        result = BatchItemResult.from_dict({
            "bId": "q",
            "QueryResponse": {
                "Vendor": [{"Id": "1"}, {"Id": "2"}],
                "startPosition": 1,
                "maxResults": 2,
                "totalCount": 2,
            },
        })

        assert result.kind is BatchResultKind.QUERY
        assert result.query_entities(EntityKind.VENDOR) == [{"Id": "1"}, {"Id": "2"}]
        assert result.query_entities(EntityKind.ITEM) == []
        assert result.query.start_position == 1
        assert result.query.max_results == 2
        assert result.query.total_count == 2

    def test_fault_result(self) -> None:
        result = BatchItemResult.from_dict({
            "bId": "bad",
            "Fault": {
                "Error": [{"Message": "Duplicate Name Exists Error", "code": "6240", "element": ""}],
                "type": "ValidationFault",
            },
        })

        assert result.is_fault
        assert result.fault_type == "ValidationFault"
        assert result.faults[0].code == "6240"
        with pytest.raises(BatchFaultError) as exc_info:
            result.raise_for_fault()
        assert exc_info.value.bid == "bad"
        assert "Duplicate Name Exists Error" in str(exc_info.value)

    def test_numeric_fault_code(self) -> None:
        result = BatchItemResult.from_dict({"bId": "n", "Fault": {"Error": [{"Message": "m", "code": 610}]}})

        assert result.faults[0].code == "610"

    def test_empty_result(self) -> None:
        result = BatchItemResult.from_dict({"bId": "d", "time": "2024-01-01T00:00:00Z"})

        assert result.kind is BatchResultKind.EMPTY
        assert result.entity is None
        assert result.query_entities(EntityKind.CUSTOMER) == []


class TestChunked:
    """Tests for chunking."""

    def test_sizes(self) -> None:
        items = [customer_item(str(i)) for i in range(65)]

        assert [len(c) for c in chunked(items, 30)] == [30, 30, 5]

    def test_invalid_size(self) -> None:
        with pytest.raises(ValueError):
            chunked([], 0)


class TestBatchService:
    """Tests for BatchService through the client."""

    @pytest.mark.asyncio
    async def test_chunks_sent_sequentially_in_order(self, make_client, ctx: RequestContext) -> None:
        """65 items go out as 30, 30 and 5 and come back in input order."""
        client, handler = make_client(echo_batch)
        items = [customer_item(str(i)) for i in range(65)]

        results = await client.batch(ctx, items)

        assert handler.calls == 3
        assert [len(body["BatchItemRequest"]) for body in handler.json_bodies()] == [30, 30, 5]
        assert all(r.url.path.endswith("/batch") for r in handler.requests)
        assert [r.bid for r in results] == [str(i) for i in range(65)]
        assert results[64].entity_of(EntityKind.CUSTOMER) == {"Id": "64"}
        await client.close()

    @pytest.mark.asyncio
    async def test_empty_input(self, make_client, ctx: RequestContext) -> None:
        client, handler = make_client(echo_batch)

        assert await client.batch(ctx, []) == []
        assert handler.calls == 0
        await client.close()

    @pytest.mark.asyncio
    async def test_mixed_results(self, make_client, ctx: RequestContext) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            return json_response({
                "BatchItemResponse": [
                    {"bId": "a", "Customer": {"Id": "1"}},
                    {"bId": "b", "Fault": {"Error": [{"Message": "nope", "code": "610"}], "type": "ValidationFault"}},
                    {"bId": "c", "QueryResponse": {"Item": [{"Id": "9"}]}},
                ]
            })

        client, _ = make_client(respond)
        items = [
            customer_item("a"),
            customer_item("b"),
            BatchItemRequest.for_query("c", "SELECT * FROM Item"),
        ]

        results = await client.batch(ctx, items)

        assert [r.kind for r in results] == [
            BatchResultKind.ENTITY,
            BatchResultKind.FAULT,
            BatchResultKind.QUERY,
        ]
        assert results[2].query_entities(EntityKind.ITEM) == [{"Id": "9"}]
        await client.close()

    @pytest.mark.asyncio
    async def test_failing_chunk_stops_the_rest(self, make_client, ctx: RequestContext) -> None:
        responses = iter([None, httpx.Response(500, text="boom")])

        def respond(request: httpx.Request) -> httpx.Response:
            response = next(responses)
            return response if response is not None else echo_batch(request)

        client, handler = make_client(respond)
        items = [customer_item(str(i)) for i in range(65)]

        with pytest.raises(RequestFailure):
            await client.batch(ctx, items)
        assert handler.calls == 2
        await client.close()

    @pytest.mark.asyncio
    async def test_custom_chunk_size(self, make_client, ctx: RequestContext) -> None:
        settings = Settings(global_burst=100, realm_burst=100, batch_chunk_size=10, realm_batch_burst=5)
        client, handler = make_client(echo_batch, client_settings=settings)

        await client.batch(ctx, [customer_item(str(i)) for i in range(25)])

        assert [len(body["BatchItemRequest"]) for body in handler.json_bodies()] == [10, 10, 5]
        await client.close()

    @pytest.mark.asyncio
    async def test_batch_bucket_consumed(self, make_client, ctx: RequestContext) -> None:
        client, _ = make_client(echo_batch)

        await client.batch(ctx, [customer_item("1")])

        realm = client.registry.get(ctx.realm_id)
        assert realm.batch.check().remaining == realm.batch.capacity - 1
        for _ in range(realm.batch.capacity - 1):
            await realm.acquire_batch(blocking=False)
        with pytest.raises(RealmBatchThroughputExceeded):
            await realm.acquire_batch(blocking=False)
        await client.close()

    @pytest.mark.asyncio
    async def test_one_dispatch_batch_per_chunk(self, make_client, ctx: RequestContext) -> None:
        client, _ = make_client(echo_batch)
        dispatch_batch = AsyncMock(return_value={"BatchItemResponse": [{"bId": "x"}]})

        with patch.object(client.dispatcher, "dispatch_batch", dispatch_batch):
            results = await client.batch(ctx, [customer_item(str(i)) for i in range(31)])

        assert dispatch_batch.await_count == 2
        request, call_ctx = dispatch_batch.await_args_list[1].args
        assert request.method == "POST"
        assert request.path == "batch"
        assert len(request.payload["BatchItemRequest"]) == 1
        assert call_ctx is ctx
        assert [r.kind for r in results] == [BatchResultKind.EMPTY, BatchResultKind.EMPTY]
        await client.close()

    @pytest.mark.asyncio
    async def test_results_follow_request_order(self, make_client, ctx: RequestContext) -> None:
        """Results are reordered by bId when the service answers out of order."""
        def reversed_batch(request: httpx.Request) -> httpx.Response:
            response = echo_batch(request)
            items = json.loads(response.content)["BatchItemResponse"]
            return json_response({"BatchItemResponse": list(reversed(items))})

        client, _ = make_client(reversed_batch)

        results = await client.batch(ctx, [customer_item(str(i)) for i in range(5)])

        assert [r.bid for r in results] == ["0", "1", "2", "3", "4"]
        assert results[0].entity_of(EntityKind.CUSTOMER) == {"Id": "0"}
        await client.close()

    def test_unmatched_results_kept_at_end(self) -> None:
        chunk = [customer_item("a"), customer_item("b")]
        results = [
            BatchItemResult.from_dict({"bId": "zz"}),
            BatchItemResult.from_dict({"bId": "b"}),
            BatchItemResult.from_dict({"bId": "a"}),
        ]

        assert [r.bid for r in in_request_order(chunk, results)] == ["a", "b", "zz"]
