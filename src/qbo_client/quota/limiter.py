"""
Limiting primitives for quota gates.

Provides two primitives:
- Token Bucket: Burst-friendly throughput limiting with token replenishment
- Concurrency Limiter: Counting semaphore bounding in-flight requests

Both are safe for concurrent use without any external lock.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from qbo_client.cancellation import cancellable, check_cancelled, sleep_cancellable


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""

    allowed: bool
    """Whether the request is allowed."""

    remaining: int
    """Whole tokens left in the bucket."""

    limit: int
    """Bucket capacity (burst size)."""

    retry_after: float | None = None
    """Seconds until enough tokens are available (if not allowed)."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "remaining": self.remaining,
            "limit": self.limit,
            "retry_after": self.retry_after,
        }


class TokenBucketLimiter:
    """
    Token bucket rate limiter.

    Allows bursts up to bucket capacity while maintaining
    average rate. Tokens replenish continuously over time.
    """

    def __init__(
        self,
        capacity: int,
        refill_rate: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize token bucket limiter.

        Args:
            capacity: Maximum tokens in bucket (burst capacity)
            refill_rate: Tokens added per second
            clock: Monotonic time source, injectable for tests
        """
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        if refill_rate <= 0:
            raise ValueError(f"refill_rate must be positive, got {refill_rate}")

        self._capacity = capacity
        self._refill_rate = refill_rate
        self._clock = clock
        self._tokens = float(capacity)
        self._last_update = clock()
        self._lock = threading.Lock()

    @classmethod
    def per_minute(cls, requests_per_minute: float, burst: int, **kwargs: Any) -> TokenBucketLimiter:
        """Build a limiter from a requests-per-minute budget."""
        return cls(capacity=burst, refill_rate=requests_per_minute / 60.0, **kwargs)

    @property
    def name(self) -> str:
        return "token_bucket"

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def refill_rate(self) -> float:
        return self._refill_rate

    def describe(self) -> str:
        """Human-readable rate, e.g. ``500 req/min, burst to 10``."""
        per_minute = self._refill_rate * 60.0
        return f"{per_minute:g} req/min, burst to {self._capacity}"

    def _refill(self, now: float) -> None:
        """Bring the token count up to date. Caller holds the lock."""
        elapsed = max(0.0, now - self._last_update)
        self._tokens = min(float(self._capacity), self._tokens + elapsed * self._refill_rate)
        self._last_update = now

    def check(self) -> RateLimitResult:
        """Check rate limit without consuming."""
        with self._lock:
            self._refill(self._clock())
            allowed = self._tokens >= 1
            retry_after = None if allowed else (1 - self._tokens) / self._refill_rate
            return RateLimitResult(
                allowed=allowed,
                remaining=int(self._tokens),
                limit=self._capacity,
                retry_after=retry_after,
            )

    def try_consume(self, tokens: int = 1) -> RateLimitResult:
        """
        Take tokens from the bucket without waiting.

        Args:
            tokens: Number of tokens to consume (default 1)

        Returns:
            RateLimitResult; ``allowed`` is False when the bucket is short
        """
        if tokens > self._capacity:
            raise ValueError(f"cannot consume {tokens} tokens from a bucket of {self._capacity}")

        with self._lock:
            self._refill(self._clock())
            if self._tokens >= tokens:
                self._tokens -= tokens
                return RateLimitResult(
                    allowed=True,
                    remaining=int(self._tokens),
                    limit=self._capacity,
                )

            return RateLimitResult(
                allowed=False,
                remaining=int(self._tokens),
                limit=self._capacity,
                retry_after=(tokens - self._tokens) / self._refill_rate,
            )

    async def wait(self, cancel_event: asyncio.Event | None = None, tokens: int = 1) -> None:
        """
        Consume tokens, sleeping until they are available.

        Args:
            cancel_event: Optional cancellation signal
            tokens: Number of tokens to consume

        Raises:
            RequestCancelled: If the signal fires while waiting
        """
        check_cancelled(cancel_event)
        while True:
            result = self.try_consume(tokens)
            if result.allowed:
                return
            await sleep_cancellable(result.retry_after or 0.0, cancel_event)

    def reset(self) -> None:
        """Refill the bucket to full capacity."""
        with self._lock:
            self._tokens = float(self._capacity)
            self._last_update = self._clock()


class ConcurrencyLimiter:
    """
    Counting semaphore with a non-blocking fast path.

    ``try_acquire`` never waits. ``acquire`` queues the caller and hands
    the slot over directly on ``release``, so a released slot cannot be
    stolen by a concurrent ``try_acquire``.
    """

    def __init__(self, max_concurrent: int) -> None:
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be at least 1, got {max_concurrent}")

        self._max_concurrent = max_concurrent
        self._in_flight = 0
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "concurrency"

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def in_flight(self) -> int:
        """Slots currently held."""
        return self._in_flight

    @property
    def available(self) -> int:
        return self._max_concurrent - self._in_flight

    def describe(self) -> str:
        return f"{self._max_concurrent} concurrent requests"

    def try_acquire(self) -> bool:
        """Take a slot if one is free right now."""
        with self._lock:
            if self._in_flight < self._max_concurrent and not self._waiters:
                self._in_flight += 1
                return True
            return False

    async def acquire(self, cancel_event: asyncio.Event | None = None) -> None:
        """
        Take a slot, waiting for a release if none is free.

        Raises:
            RequestCancelled: If the signal fires while waiting
        """
        check_cancelled(cancel_event)
        if self.try_acquire():
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        with self._lock:
            # A slot may have been released between the fast path and here
            if self._in_flight < self._max_concurrent and not self._waiters:
                self._in_flight += 1
                return
            self._waiters.append(waiter)

        try:
            await cancellable(waiter, cancel_event)
        except BaseException:
            if waiter.done() and not waiter.cancelled():
                # The slot was handed to us before we noticed; give it back
                self.release()
            else:
                waiter.cancel()
                with self._lock:
                    if waiter in self._waiters:
                        self._waiters.remove(waiter)
            raise

    def release(self) -> None:
        """
        Return a slot, handing it to the oldest live waiter if any.

        Safe to call from any thread. A waiter owned by another event loop
        is resolved on that loop.
        """
        with self._lock:
            while self._waiters:
                waiter = self._waiters.popleft()
                if waiter.done():
                    continue
                loop = waiter.get_loop()
                if _running_loop() is loop:
                    waiter.set_result(None)
                    return
                if not loop.is_closed():
                    loop.call_soon_threadsafe(self._hand_over, waiter)
                    return
            if self._in_flight <= 0:
                raise RuntimeError("release() called more times than acquire()")
            self._in_flight -= 1

    def _hand_over(self, waiter: asyncio.Future[None]) -> None:
        # Runs on the waiter's loop; a waiter cancelled in the meantime passes the slot on
        if waiter.done():
            self.release()
        else:
            waiter.set_result(None)


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
