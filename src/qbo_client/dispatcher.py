"""
Request dispatcher.

Every API call goes through ``RequestDispatcher.dispatch``: it takes the
global and realm permits, performs the HTTP exchange and turns the
outcome into a decoded payload or one of the typed errors in
``qbo_client.errors``.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from contextlib import AsyncExitStack
from typing import Any

import httpx
from pydantic import ValidationError

from qbo_client.cancellation import cancellable, check_cancelled
from qbo_client.errors import (
    DecodeFailure,
    RemoteRateLimited,
    RequestFailure,
    TransportFailure,
)
from qbo_client.http.client import HttpClient
from qbo_client.models import ApiRequest, FaultResponse, RequestContext
from qbo_client.quota.gate import QuotaGate
from qbo_client.quota.manager import QuotaRegistry

logger = logging.getLogger(__name__)

API_PATH_PREFIX = "/v3/company/"


class RequestDispatcher:
    """
    Single chokepoint between request descriptors and the remote service.

    Permits are acquired in a fixed order (global, realm throughput,
    realm concurrency) and released on every exit path.
    """

    def __init__(
        self,
        http: HttpClient,
        global_gate: QuotaGate,
        registry: QuotaRegistry,
        base_url: str,
        minor_version: str = "75",
        accept_gzip: bool = True,
        blocking_by_default: bool = False,
        throttle_cooldown_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            http: Transport used for the HTTP exchange
            global_gate: Gate shared by all realms of this client
            registry: Per-realm quota trackers
            base_url: API host, e.g. ``https://quickbooks.api.intuit.com``
            minor_version: Value of the ``minorversion`` query parameter
            accept_gzip: Send ``Accept-Encoding: gzip``
            blocking_by_default: Policy when the context does not set one
            throttle_cooldown_seconds: Advisory window opened by a 429
            clock: Monotonic time source
        """
        self._http = http
        self._global_gate = global_gate
        self._registry = registry
        self._base_url = base_url.rstrip("/") + API_PATH_PREFIX
        self._minor_version = minor_version
        self._accept_gzip = accept_gzip
        self._blocking_by_default = blocking_by_default
        self._throttle_cooldown = throttle_cooldown_seconds
        self._clock = clock
        self._throttled_until = 0.0
        self.remote_throttle_count = 0

    @property
    def global_gate(self) -> QuotaGate:
        return self._global_gate

    @property
    def registry(self) -> QuotaRegistry:
        return self._registry

    @property
    def is_throttled(self) -> bool:
        """
        Whether a 429 was seen within the cool-down window.

        Advisory only; the gates never consult it.
        """
        return self._clock() < self._throttled_until

    def build_url(self, realm_id: str, path: str) -> str:
        return f"{self._base_url}{realm_id}/{path.lstrip('/')}"

    def build_headers(self, ctx: RequestContext, has_body: bool) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {ctx.access_token}",
        }
        if has_body:
            headers["Content-Type"] = "application/json"
        if self._accept_gzip:
            headers["Accept-Encoding"] = "gzip"
        return headers

    async def dispatch(
        self,
        request: ApiRequest,
        ctx: RequestContext,
        blocking: bool | None = None,
    ) -> Any:
        """
        Send a request through the quota gates.

        Args:
            request: What to call
            ctx: Realm, credential and cancellation signal
            blocking: Override of the context's blocking policy

        Returns:
            Decoded JSON, a ``request.response_model`` instance, or None
            for an empty body

        Raises:
            RateLimitError: A local gate rejected the call, or the service returned 429
            RequestCancelled: The cancellation signal fired
            TransportFailure: No response was obtained
            RequestFailure: Any other non-200 response
            DecodeFailure: The body did not match the expected shape
        """
        if blocking is None:
            blocking = ctx.blocking if ctx.blocking is not None else self._blocking_by_default
        cancel_event = ctx.cancel_event

        async with AsyncExitStack() as stack:
            global_permit = await self._global_gate.acquire(blocking, cancel_event)
            stack.callback(global_permit.release)

            realm = self._registry.get_or_create(ctx.realm_id)
            realm_permit = await realm.acquire(blocking, cancel_event)
            stack.callback(realm_permit.release)

            return await self._exchange(request, ctx)

    async def dispatch_batch(
        self,
        request: ApiRequest,
        ctx: RequestContext,
        blocking: bool | None = None,
    ) -> Any:
        """
        Send a batch request.

        Always waits on the realm's batch bucket before the regular
        gates, then behaves exactly like ``dispatch``.
        """
        realm = self._registry.get_or_create(ctx.realm_id)
        await realm.acquire_batch(ctx.cancel_event)
        return await self.dispatch(request, ctx, blocking=blocking)

    async def _exchange(self, request: ApiRequest, ctx: RequestContext) -> Any:
        url = self.build_url(ctx.realm_id, request.path)
        params = {**request.params, "minorversion": self._minor_version}

        content = None
        if request.payload is not None:
            try:
                content = json.dumps(request.payload).encode("utf-8")
            except (TypeError, ValueError) as e:
                raise ValueError(f"Payload for {request.method} {request.path} is not JSON-serializable: {e}") from e

        headers = self.build_headers(ctx, has_body=content is not None)

        check_cancelled(ctx.cancel_event)
        try:
            response = await cancellable(
                self._http.request(request.method, url, params=params, headers=headers, content=content),
                ctx.cancel_event,
            )
        except httpx.DecodingError as e:
            raise DecodeFailure(f"Failed to decompress response from {request.path}: {e}") from e
        except httpx.TransportError as e:
            logger.warning(f"Transport failure on {request.method} {request.path}: {e}")
            raise TransportFailure(f"Failed to make request to {request.path}: {e}") from e

        if response.status_code == 200:
            return self._decode(request, response)
        if response.status_code == 429:
            raise self._remote_rate_limited(request, response)
        raise self._request_failure(request, response)

    def _decode(self, request: ApiRequest, response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            if request.response_model is not None:
                return request.response_model.model_validate_json(response.content)
            return response.json()
        except (ValueError, ValidationError) as e:
            raise DecodeFailure(f"Failed to unmarshal response from {request.path}: {e}") from e

    def _remote_rate_limited(self, request: ApiRequest, response: httpx.Response) -> RemoteRateLimited:
        self.remote_throttle_count += 1
        self._throttled_until = self._clock() + self._throttle_cooldown

        retry_after = None
        header = response.headers.get("Retry-After")
        if header:
            try:
                retry_after = float(header)
            except ValueError:
                pass

        logger.warning(f"Rate limited by remote service on {request.method} {request.path}")
        return RemoteRateLimited(retry_after=retry_after)

    def _request_failure(self, request: ApiRequest, response: httpx.Response) -> RequestFailure:
        body = response.text
        logger.warning(f"{request.method} {request.path} failed with status {response.status_code}")

        try:
            fault = FaultResponse.model_validate_json(body).fault
        except (ValueError, ValidationError):
            fault = None

        if fault is None or not fault.errors:
            return RequestFailure(
                status_code=response.status_code,
                message=body or response.reason_phrase,
                fault_type=fault.type if fault else None,
                body=body,
            )

        first = fault.errors[0]
        return RequestFailure(
            status_code=response.status_code,
            message=first.message,
            fault_code=first.code,
            element=first.element,
            detail=first.detail,
            fault_type=fault.type,
            faults=fault.errors,
            body=body,
        )
