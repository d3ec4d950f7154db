"""HTTP transport with timeouts; no retries or rate limiting of its own."""

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class HttpClient:
    """
    Owner of the underlying ``httpx.AsyncClient``.

    Connection pooling is left to httpx. Retry and throttling policy live
    in the dispatcher, not here, so one call maps to one HTTP exchange.
    """

    DEFAULT_TIMEOUT = httpx.Timeout(
        connect=10.0,
        read=30.0,
        write=10.0,
        pool=10.0,
    )

    def __init__(
        self,
        timeout: httpx.Timeout | None = None,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the HTTP client.

        Args:
            timeout: Request timeout configuration
            headers: Default headers for all requests
            transport: Custom transport (e.g. ``httpx.MockTransport`` in tests)
        """
        self._timeout = timeout or self.DEFAULT_TIMEOUT
        self._default_headers = headers or {}
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_timeouts(cls, connect: float, read: float, **kwargs: Any) -> "HttpClient":
        timeout = httpx.Timeout(connect=connect, read=read, write=connect, pool=connect)
        return cls(timeout=timeout, **kwargs)

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers=self._default_headers,
                transport=self._transport,
            )
        return self._client

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        content: bytes | None = None,
    ) -> httpx.Response:
        """
        Perform a single HTTP exchange.

        The body is read fully before returning; gzip-encoded bodies are
        decompressed by httpx.

        Raises:
            httpx.TransportError: Connection or timeout failure
            httpx.DecodingError: Body could not be decompressed
        """
        client = self._get_client()
        return await client.request(method, url, params=params, headers=headers, content=content)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
            logger.info("HTTP client closed")

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
