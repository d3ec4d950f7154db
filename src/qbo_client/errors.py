"""
Error taxonomy for the QuickBooks client.

Every failure a dispatched call can produce is one of a small closed set
of exception types, so callers can branch with ``except`` clauses instead
of matching on messages.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class QuotaDimension(str, Enum):
    """Which quota was exhausted."""

    GLOBAL_THROUGHPUT = "internal global general"
    GLOBAL_CONCURRENCY = "internal global concurrent"
    REALM_THROUGHPUT = "internal realm general"
    REALM_CONCURRENCY = "internal realm concurrent"
    REALM_BATCH = "internal realm batch"
    REMOTE = "external api"

    @property
    def is_local(self) -> bool:
        """True for limits enforced by this client rather than the service."""
        return self is not QuotaDimension.REMOTE


class QuickBooksError(Exception):
    """Base class for all client errors."""


class RateLimitError(QuickBooksError):
    """Raised when a rate limit is hit, locally or by the remote service."""

    dimension: QuotaDimension = QuotaDimension.REMOTE

    def __init__(self, rate: str | None = None, retry_after: float | None = None) -> None:
        self.rate = rate
        self.retry_after = retry_after
        message = f"{self.dimension.value} rate limit exceeded"
        if rate:
            message = f"{message}: {rate}"
        super().__init__(message)


class GlobalThroughputExceeded(RateLimitError):
    """The client-wide token bucket is empty."""

    dimension = QuotaDimension.GLOBAL_THROUGHPUT


class GlobalConcurrencyExceeded(RateLimitError):
    """The client-wide in-flight ceiling is reached."""

    dimension = QuotaDimension.GLOBAL_CONCURRENCY


class RealmThroughputExceeded(RateLimitError):
    """The realm's general token bucket is empty."""

    dimension = QuotaDimension.REALM_THROUGHPUT


class RealmConcurrencyExceeded(RateLimitError):
    """The realm's in-flight ceiling is reached."""

    dimension = QuotaDimension.REALM_CONCURRENCY


class RealmBatchThroughputExceeded(RateLimitError):
    """The realm's batch token bucket is empty."""

    dimension = QuotaDimension.REALM_BATCH


class RemoteRateLimited(RateLimitError):
    """The service answered 429 even though local gates admitted the call."""

    dimension = QuotaDimension.REMOTE


class RequestCancelled(QuickBooksError):
    """The caller's cancellation signal fired before the call completed."""

    def __init__(self, message: str = "request cancelled") -> None:
        super().__init__(message)


class TransportFailure(QuickBooksError):
    """No HTTP response was obtained (connection refused, timeout, ...)."""


class DecodeFailure(QuickBooksError):
    """The response body could not be decoded into the expected shape."""


class RequestFailure(QuickBooksError):
    """
    Non-200, non-429 response from the service.

    When the body carries a structured fault, the first error entry is
    exposed through ``fault_code``, ``element``, ``message`` and
    ``detail``; all entries are kept in ``faults``.
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        fault_code: str | None = None,
        element: str | None = None,
        detail: str | None = None,
        fault_type: str | None = None,
        faults: list[Any] | None = None,
        body: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.message = message
        self.fault_code = fault_code
        self.element = element
        self.detail = detail
        self.fault_type = fault_type
        self.faults = faults or []
        self.body = body
        summary = f"request failed with status {status_code}"
        if fault_code:
            summary = f"{summary} ({fault_code})"
        super().__init__(f"{summary}: {message}")


class EntityNotFound(QuickBooksError):
    """A lookup by name or query matched nothing."""
