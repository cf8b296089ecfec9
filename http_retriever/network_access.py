"""Scoped network access capability.

A retrieval acquires one NetworkScope for its whole redirect chain and
releases it on every exit path. Connections may only be opened while the
scope is active.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

from http_retriever.errors import NetworkAccessDeniedError
from http_retriever.redact import redact_url_credentials


logger = structlog.get_logger()


class NetworkScope:
    """Proof that network access was granted for one retrieval."""

    def __init__(self, url: str) -> None:
        """Initialize an active scope.

        Args:
            url: Original URL the scope was granted for.
        """
        self._url = url
        self._active = True

    @property
    def url(self) -> str:
        """Get the URL the scope was granted for."""
        return self._url

    @property
    def active(self) -> bool:
        """Check whether the scope is still held."""
        return self._active

    def check(self, url: str) -> None:
        """Ensure a connection to url may be opened under this scope.

        Args:
            url: URL about to be connected to.

        Raises:
            NetworkAccessDeniedError: If the scope was already released.
        """
        if not self._active:
            raise NetworkAccessDeniedError(url, "network scope already released")

    def release(self) -> None:
        """Release the scope."""
        self._active = False


class NetworkAccess:
    """Capability to open outbound connections.

    Disabled instances deny every scope request, e.g. for sandboxed runs.
    """

    def __init__(self, enabled: bool = True) -> None:
        """Initialize the capability.

        Args:
            enabled: Whether scopes may be granted.
        """
        self._enabled = enabled
        self._active_scopes = 0
        self._lock = threading.Lock()
        self._log = logger.bind(component="retriever")

    @property
    def enabled(self) -> bool:
        """Check whether the capability grants scopes."""
        return self._enabled

    @property
    def active_scopes(self) -> int:
        """Get the number of scopes currently held."""
        return self._active_scopes

    @contextmanager
    def scope(self, url: str) -> Iterator[NetworkScope]:
        """Grant network access for one retrieval.

        Args:
            url: Original URL requested by the caller.

        Yields:
            An active NetworkScope, released when the block exits.

        Raises:
            NetworkAccessDeniedError: If the capability is disabled.
        """
        log = self._log.bind(url=redact_url_credentials(url))
        if not self._enabled:
            log.warning("network_access_denied")
            raise NetworkAccessDeniedError(url, "network access disabled")

        granted = NetworkScope(url)
        with self._lock:
            self._active_scopes += 1
        log.debug("network_scope_acquired")
        try:
            yield granted
        finally:
            granted.release()
            with self._lock:
                self._active_scopes -= 1
            log.debug("network_scope_released")
