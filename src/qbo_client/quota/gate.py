"""
Quota gates pairing a throughput limiter with a concurrency limiter.

A ``QuotaGate`` is the global gate shared by every realm a client talks
to; a ``RealmQuota`` is the per-realm tracker, which adds a slower batch
bucket on top.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from qbo_client.errors import (
    GlobalConcurrencyExceeded,
    GlobalThroughputExceeded,
    RateLimitError,
    RealmBatchThroughputExceeded,
    RealmConcurrencyExceeded,
    RealmThroughputExceeded,
)
from qbo_client.quota.limiter import ConcurrencyLimiter, TokenBucketLimiter

logger = logging.getLogger(__name__)


class Permit:
    """
    A held concurrency slot.

    ``release`` is idempotent, so the permit can be released from a
    ``finally`` block and an exit stack without double-counting.
    """

    def __init__(self, limiter: ConcurrencyLimiter) -> None:
        self._limiter = limiter
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._limiter.release()

    async def __aenter__(self) -> Permit:
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.release()


class QuotaGate:
    """
    Throughput plus concurrency limiting for one scope.

    Non-blocking acquisition fails immediately with the error type bound
    to the exhausted dimension. Blocking acquisition waits on both
    limiters and honors the caller's cancellation signal.
    """

    throughput_error: type[RateLimitError] = GlobalThroughputExceeded
    concurrency_error: type[RateLimitError] = GlobalConcurrencyExceeded

    def __init__(self, throughput: TokenBucketLimiter, concurrency: ConcurrencyLimiter) -> None:
        self.throughput = throughput
        self.concurrency = concurrency

    @classmethod
    def from_limits(
        cls,
        requests_per_minute: float,
        burst: int,
        max_concurrent: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> QuotaGate:
        return cls(
            throughput=TokenBucketLimiter.per_minute(requests_per_minute, burst, clock=clock),
            concurrency=ConcurrencyLimiter(max_concurrent),
        )

    async def acquire_throughput(
        self,
        blocking: bool = False,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        """
        Take one unit from the throughput limiter.

        Raises:
            RateLimitError: Non-blocking mode and the bucket is empty
            RequestCancelled: Blocking mode and the signal fired
        """
        if blocking:
            await self.throughput.wait(cancel_event)
            return

        result = self.throughput.try_consume()
        if not result.allowed:
            logger.debug(f"{self.throughput_error.__name__}: retry after {result.retry_after:.3f}s")
            raise self.throughput_error(self.throughput.describe(), retry_after=result.retry_after)

    async def acquire_slot(
        self,
        blocking: bool = False,
        cancel_event: asyncio.Event | None = None,
    ) -> Permit:
        """
        Take one concurrency slot.

        Returns:
            Permit that gives the slot back on release

        Raises:
            RateLimitError: Non-blocking mode and every slot is taken
            RequestCancelled: Blocking mode and the signal fired
        """
        if blocking:
            await self.concurrency.acquire(cancel_event)
        elif not self.concurrency.try_acquire():
            logger.debug(f"{self.concurrency_error.__name__}: {self.concurrency.in_flight} in flight")
            raise self.concurrency_error(self.concurrency.describe())
        return Permit(self.concurrency)

    async def acquire(
        self,
        blocking: bool = False,
        cancel_event: asyncio.Event | None = None,
    ) -> Permit:
        """Take a throughput unit, then a concurrency slot."""
        await self.acquire_throughput(blocking, cancel_event)
        return await self.acquire_slot(blocking, cancel_event)


class RealmQuota(QuotaGate):
    """Quota tracker for a single realm, with a separate batch bucket."""

    throughput_error = RealmThroughputExceeded
    concurrency_error = RealmConcurrencyExceeded

    def __init__(
        self,
        realm_id: str,
        throughput: TokenBucketLimiter,
        concurrency: ConcurrencyLimiter,
        batch: TokenBucketLimiter,
    ) -> None:
        super().__init__(throughput, concurrency)
        self.realm_id = realm_id
        self.batch = batch

    async def acquire_batch(
        self,
        cancel_event: asyncio.Event | None = None,
        blocking: bool = True,
    ) -> None:
        """
        Take one unit from the batch bucket.

        Batch calls wait by default; pass ``blocking=False`` to fail fast.

        Raises:
            RealmBatchThroughputExceeded: Non-blocking mode and the bucket is empty
            RequestCancelled: The signal fired while waiting
        """
        if blocking:
            await self.batch.wait(cancel_event)
            return

        result = self.batch.try_consume()
        if not result.allowed:
            raise RealmBatchThroughputExceeded(self.batch.describe(), retry_after=result.retry_after)

    def __repr__(self) -> str:
        return f"RealmQuota({self.realm_id}, in_flight={self.concurrency.in_flight})"
