"""HTTP retriever that follows redirects itself."""

import io
import time

import httpx
import structlog

from http_retriever.config import RetrieverConfig
from http_retriever.connection import Connection, ConnectionFactory
from http_retriever.constants import CHUNK_SIZE, LOCATION_HEADER
from http_retriever.errors import (
    DownloadFailedError,
    InvalidRedirectError,
    ResourceNotFoundError,
    RetrievalError,
    TooManyRedirectsError,
)
from http_retriever.metrics import RetrieverMetrics
from http_retriever.network_access import NetworkAccess, NetworkScope
from http_retriever.redact import redact_url_credentials
from http_retriever.state_machine import (
    ResponseOutcome,
    RetrievalState,
    RetrievalStateMachine,
)


logger = structlog.get_logger()


class HttpRetriever:
    """Fetches a URL body as a stream or as bytes.

    Redirects (301/302/303) are resolved by the retriever, relative to the
    current hop, up to config.max_redirects hops. Status codes are mapped to
    ResourceNotFoundError (404) or DownloadFailedError (anything other than
    200 and the redirect codes). Transport errors propagate unchanged and
    nothing is retried.
    """

    def __init__(
        self,
        config: RetrieverConfig | None = None,
        network_access: NetworkAccess | None = None,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        """Initialize the retriever.

        Args:
            config: Retriever configuration (defaults apply when omitted).
            network_access: Capability granting outbound access.
            connection_factory: Opens connections; built from config if omitted.
        """
        self._config = config or RetrieverConfig()
        self._network_access = network_access or NetworkAccess()
        self._connections = connection_factory or ConnectionFactory(self._config)
        self._metrics = RetrieverMetrics.get_instance()
        self._log = logger.bind(component="retriever")

    @property
    def config(self) -> RetrieverConfig:
        """Get the retriever configuration."""
        return self._config

    def get_bytes(self, url: str) -> bytes:
        """Fetch a URL and return the whole body.

        Args:
            url: URL to fetch.

        Returns:
            Response body bytes.
        """
        buffer = io.BytesIO()
        with self.get(url) as stream:
            while chunk := stream.read(CHUNK_SIZE):
                buffer.write(chunk)
        body = buffer.getvalue()
        self._metrics.record_bytes(len(body))
        return body

    def get(self, url: str) -> io.BufferedReader:
        """Fetch a URL and return a stream over its body.

        The caller owns the returned stream and must close it.

        Args:
            url: URL to fetch.

        Returns:
            Buffered stream positioned at the start of the body.

        Raises:
            ResourceNotFoundError: The final hop answered 404.
            DownloadFailedError: The final hop answered an unhandled status.
            TooManyRedirectsError: More than max_redirects hops were needed.
            InvalidRedirectError: A redirect had no usable Location header.
            UrlRejectedError: The URL or a redirect target is not allowed.
            httpx.TransportError: Connection, read or timeout failure.
        """
        start_time_ns = time.perf_counter_ns()
        log = self._log.bind(url=redact_url_credentials(url))
        log.info("retrieve_start")

        try:
            with self._network_access.scope(url) as scope:
                stream = self._resolve(url, scope, log)
        except RetrievalError as e:
            self._metrics.record_failure(e.error_class)
            log.warning(
                "retrieve_failed",
                error_class=e.error_class.value,
                error_url=redact_url_credentials(e.url),
                error=redact_url_credentials(e.message),
            )
            raise
        except httpx.HTTPError as e:
            self._metrics.record_failure(type(e).__name__)
            log.warning(
                "retrieve_failed",
                error_class=type(e).__name__,
                error=redact_url_credentials(str(e)),
            )
            raise
        finally:
            duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
            self._metrics.record_retrieval(duration_ms)

        log.info("retrieve_complete", duration_ms=round(duration_ms, 2))
        return stream

    def _resolve(
        self,
        url: str,
        scope: NetworkScope,
        log: structlog.stdlib.BoundLogger,
    ) -> io.BufferedReader:
        """Run the redirect loop until a terminal status.

        Args:
            url: Original URL requested by the caller.
            scope: Active network scope for the whole chain.
            log: Bound logger.

        Returns:
            Body stream of the successful connection.
        """
        policy = self._config.url_policy
        machine = RetrievalStateMachine(redact_url_credentials(url))
        target = policy.create(url)
        redirects = 0

        while True:
            conn = self._connections.open(target, scope)
            self._metrics.record_response(conn.status_code)
            state = machine.on_response(conn.status_code)

            if state == RetrievalState.SUCCESS:
                return conn.open_stream()

            if state == RetrievalState.FAILED:
                conn.close()
                if machine.outcome == ResponseOutcome.NOT_FOUND:
                    raise ResourceNotFoundError(str(target))
                raise DownloadFailedError(str(target), conn.status_code)

            redirects += 1
            try:
                target = self._next_target(conn, target, url, redirects)
            except RetrievalError:
                machine.transition(RetrievalState.FAILED)
                raise
            finally:
                conn.close()

            self._metrics.record_redirect()
            log.debug(
                "redirect_followed",
                hop=redirects,
                status_code=conn.status_code,
                location=redact_url_credentials(str(target)),
            )
            machine.transition(RetrievalState.CONNECTING)

    def _next_target(
        self,
        conn: Connection,
        current: httpx.URL,
        original_url: str,
        redirects: int,
    ) -> httpx.URL:
        """Resolve the Location of a redirect response against the current hop.

        Args:
            conn: Redirect response.
            current: URL the redirect was received from.
            original_url: URL originally requested by the caller.
            redirects: Redirect hops including this one.

        Returns:
            Validated absolute URL of the next hop.

        Raises:
            TooManyRedirectsError: If redirects exceeds the configured bound.
            InvalidRedirectError: If Location is missing or empty.
        """
        max_redirects = self._config.max_redirects
        if redirects > max_redirects:
            raise TooManyRedirectsError(original_url, redirects, max_redirects)

        location = conn.header(LOCATION_HEADER)
        if location is None or not location.strip():
            raise InvalidRedirectError(str(current), location)

        return self._config.url_policy.create(location.strip(), base=current)
