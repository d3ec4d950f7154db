"""
Quota module for client-side rate limiting.

Provides the global gate, per-realm trackers and the registry that
creates trackers on first use.
"""

from qbo_client.quota.gate import Permit, QuotaGate, RealmQuota
from qbo_client.quota.limiter import (
    ConcurrencyLimiter,
    RateLimitResult,
    TokenBucketLimiter,
)
from qbo_client.quota.manager import QuotaConfig, QuotaRegistry

__all__ = [
    "ConcurrencyLimiter",
    "Permit",
    "QuotaConfig",
    "QuotaGate",
    "QuotaRegistry",
    "RateLimitResult",
    "RealmQuota",
    "TokenBucketLimiter",
]
