"""Synchronous HTTP retrieval with self-managed redirects.

This package fetches a URL body as a stream or as bytes:
- Redirects (301/302/303) followed by the retriever, bounded to 50 hops
- 404 and other unexpected statuses mapped to typed errors
- Per-connection connect/read timeouts
- URL policy applied to the initial URL and every redirect target
- Scoped network access capability held for the whole redirect chain
"""

from http_retriever.config import RetrieverConfig, RetrieverSettings, get_settings
from http_retriever.connection import Connection, ConnectionFactory, ResponseStream
from http_retriever.constants import (
    CHUNK_SIZE,
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_READ_TIMEOUT_SECONDS,
)
from http_retriever.errors import (
    DownloadFailedError,
    InvalidRedirectError,
    NetworkAccessDeniedError,
    ResourceNotFoundError,
    RetrievalError,
    RetrievalErrorClass,
    TooManyRedirectsError,
    UrlRejectedError,
)
from http_retriever.metrics import RetrieverMetrics
from http_retriever.network_access import NetworkAccess, NetworkScope
from http_retriever.observability import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)
from http_retriever.retriever import HttpRetriever
from http_retriever.state_machine import (
    ResponseOutcome,
    RetrievalState,
    RetrievalStateError,
    RetrievalStateMachine,
    classify_status,
)
from http_retriever.url_policy import UrlPolicy


__all__ = [
    # Retriever
    "HttpRetriever",
    # Config
    "RetrieverConfig",
    "RetrieverSettings",
    "get_settings",
    "UrlPolicy",
    # Connections
    "Connection",
    "ConnectionFactory",
    "ResponseStream",
    "NetworkAccess",
    "NetworkScope",
    # State machine
    "ResponseOutcome",
    "RetrievalState",
    "RetrievalStateError",
    "RetrievalStateMachine",
    "classify_status",
    # Errors
    "RetrievalError",
    "RetrievalErrorClass",
    "ResourceNotFoundError",
    "DownloadFailedError",
    "TooManyRedirectsError",
    "InvalidRedirectError",
    "UrlRejectedError",
    "NetworkAccessDeniedError",
    # Constants
    "CHUNK_SIZE",
    "DEFAULT_CONNECT_TIMEOUT_SECONDS",
    "DEFAULT_READ_TIMEOUT_SECONDS",
    "DEFAULT_MAX_REDIRECTS",
    # Observability
    "configure_logging",
    "get_logger",
    "bind_request_context",
    "clear_request_context",
    # Metrics
    "RetrieverMetrics",
]
