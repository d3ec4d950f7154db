"""
QuickBooks Online API client.

Wires settings, quota state, transport and dispatcher together. Quota
state belongs to the client instance, so two clients in one process
never share limits.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

from qbo_client.batch import BatchItemRequest, BatchItemResult, BatchService
from qbo_client.config import Settings, get_settings
from qbo_client.dispatcher import RequestDispatcher
from qbo_client.entities import EntityKind, EntityService
from qbo_client.http.client import HttpClient
from qbo_client.models import ApiRequest, RequestContext
from qbo_client.quota.manager import QuotaConfig, QuotaRegistry

logger = logging.getLogger(__name__)


class QuickBooksClient:
    """
    Async client for the QuickBooks Online accounting API.

    Example:
        ```python
        async with QuickBooksClient() as client:
            ctx = RequestContext(realm_id="1234", token=token)
            customers = await client.entities(EntityKind.CUSTOMER).find_all(ctx)
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: HttpClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the client.

        Args:
            settings: Configuration; the cached environment settings when None
            http_client: Transport owner; built from settings when None
            transport: httpx transport for the default HttpClient
            clock: Monotonic time source for the limiters
        """
        self.settings = settings or get_settings()
        self.http = http_client or HttpClient.from_timeouts(
            self.settings.http_timeout_connect,
            self.settings.http_timeout_read,
            transport=transport,
        )
        self.registry = QuotaRegistry(config=QuotaConfig.from_settings(self.settings), clock=clock)
        self.dispatcher = RequestDispatcher(
            http=self.http,
            global_gate=self.registry.create_global_gate(),
            registry=self.registry,
            base_url=self.settings.api_base_url,
            minor_version=self.settings.minor_version,
            accept_gzip=self.settings.accept_gzip,
            blocking_by_default=self.settings.blocking_by_default,
            throttle_cooldown_seconds=self.settings.remote_throttle_cooldown_seconds,
            clock=clock,
        )
        self._batch = BatchService(self, chunk_size=self.settings.batch_chunk_size)
        self._entities: dict[EntityKind, EntityService] = {}

    async def dispatch(self, request: ApiRequest, ctx: RequestContext, blocking: bool | None = None) -> Any:
        return await self.dispatcher.dispatch(request, ctx, blocking=blocking)

    async def get(self, ctx: RequestContext, path: str, params: dict[str, str] | None = None) -> Any:
        return await self.dispatch(ApiRequest.get(path, params), ctx)

    async def post(
        self,
        ctx: RequestContext,
        path: str,
        payload: Any = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        return await self.dispatch(ApiRequest.post(path, payload, params), ctx)

    async def query(self, ctx: RequestContext, statement: str) -> dict[str, Any]:
        """
        Run a query statement.

        Returns:
            The ``QueryResponse`` object (empty dict when absent)
        """
        data = await self.get(ctx, "query", {"query": statement})
        return (data or {}).get("QueryResponse") or {}

    async def batch(self, ctx: RequestContext, items: list[BatchItemRequest]) -> list[BatchItemResult]:
        return await self._batch.batch_request(ctx, items)

    def entities(self, kind: EntityKind) -> EntityService:
        """Operations for one entity kind."""
        service = self._entities.get(kind)
        if service is None:
            service = self._entities[kind] = EntityService(self, kind)
        return service

    async def close(self) -> None:
        await self.http.close()

    async def __aenter__(self) -> QuickBooksClient:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
