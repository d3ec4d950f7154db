"""
QuickBooks Online API client.

Async client with a client-wide quota gate, per-realm quota trackers and
a closed set of typed errors.
"""

from qbo_client.batch import (
    BatchFaultError,
    BatchItemRequest,
    BatchItemResult,
    BatchOperation,
    BatchOption,
    BatchResultKind,
)
from qbo_client.client import QuickBooksClient
from qbo_client.config import Settings, get_settings
from qbo_client.entities import EntityKind, EntityService
from qbo_client.errors import (
    DecodeFailure,
    EntityNotFound,
    GlobalConcurrencyExceeded,
    GlobalThroughputExceeded,
    QuickBooksError,
    QuotaDimension,
    RateLimitError,
    RealmBatchThroughputExceeded,
    RealmConcurrencyExceeded,
    RealmThroughputExceeded,
    RemoteRateLimited,
    RequestCancelled,
    RequestFailure,
    TransportFailure,
)
from qbo_client.models import ApiRequest, BearerToken, RequestContext

__version__ = "0.1.0"
__all__ = [
    "ApiRequest",
    "BatchFaultError",
    "BatchItemRequest",
    "BatchItemResult",
    "BatchOperation",
    "BatchOption",
    "BatchResultKind",
    "BearerToken",
    "DecodeFailure",
    "EntityKind",
    "EntityNotFound",
    "EntityService",
    "GlobalConcurrencyExceeded",
    "GlobalThroughputExceeded",
    "QuickBooksClient",
    "QuickBooksError",
    "QuotaDimension",
    "RateLimitError",
    "RealmBatchThroughputExceeded",
    "RealmConcurrencyExceeded",
    "RealmThroughputExceeded",
    "RemoteRateLimited",
    "RequestCancelled",
    "RequestContext",
    "RequestFailure",
    "Settings",
    "TransportFailure",
    "get_settings",
]
