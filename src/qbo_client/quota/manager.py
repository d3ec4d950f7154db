"""
Quota registry.

Owns the global gate configuration and one lazily created
``RealmQuota`` per realm id.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

from qbo_client.quota.gate import QuotaGate, RealmQuota
from qbo_client.quota.limiter import ConcurrencyLimiter, TokenBucketLimiter

if TYPE_CHECKING:
    from qbo_client.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class QuotaConfig:
    """
    Quota configuration for the global gate and per-realm trackers.

    Defaults mirror the published QuickBooks Online limits:
    500 requests/minute, 10 concurrent, 40 batch requests/minute.
    """

    global_requests_per_minute: float = 500.0
    global_burst: int = 10
    global_max_concurrent: int = 10
    realm_requests_per_minute: float = 500.0
    realm_burst: int = 10
    realm_max_concurrent: int = 10
    realm_batch_per_minute: float = 40.0
    realm_batch_burst: int = 5

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_settings(cls, settings: Settings) -> QuotaConfig:
        return cls(**{name: getattr(settings, name) for name in cls.__dataclass_fields__})


@dataclass
class QuotaRegistry:
    """
    Maps realm ids to their quota trackers.

    Lookup-or-create runs under a single lock, so concurrent first use of
    a realm always yields the same tracker. The lock is never held while
    a request is waiting or in flight.
    """

    config: QuotaConfig = field(default_factory=QuotaConfig)
    clock: Callable[[], float] = time.monotonic

    _trackers: dict[str, RealmQuota] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def create_global_gate(self) -> QuotaGate:
        """Build a process-wide gate from the configured global limits."""
        return QuotaGate.from_limits(
            self.config.global_requests_per_minute,
            self.config.global_burst,
            self.config.global_max_concurrent,
            clock=self.clock,
        )

    def _create_tracker(self, realm_id: str) -> RealmQuota:
        return RealmQuota(
            realm_id=realm_id,
            throughput=TokenBucketLimiter.per_minute(
                self.config.realm_requests_per_minute, self.config.realm_burst, clock=self.clock
            ),
            concurrency=ConcurrencyLimiter(self.config.realm_max_concurrent),
            batch=TokenBucketLimiter.per_minute(
                self.config.realm_batch_per_minute, self.config.realm_batch_burst, clock=self.clock
            ),
        )

    def get_or_create(self, realm_id: str) -> RealmQuota:
        """
        Get the tracker for a realm, creating it on first use.

        Args:
            realm_id: QuickBooks company (realm) id

        Returns:
            The single RealmQuota for that realm
        """
        with self._lock:
            tracker = self._trackers.get(realm_id)
            if tracker is None:
                tracker = self._create_tracker(realm_id)
                self._trackers[realm_id] = tracker
                logger.info(f"Created quota tracker for realm {realm_id}")
            return tracker

    def get(self, realm_id: str) -> RealmQuota | None:
        with self._lock:
            return self._trackers.get(realm_id)

    @property
    def realm_ids(self) -> list[str]:
        with self._lock:
            return list(self._trackers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._trackers)

    def __contains__(self, realm_id: object) -> bool:
        with self._lock:
            return realm_id in self._trackers
