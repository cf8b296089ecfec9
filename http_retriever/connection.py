"""Outbound GET connections.

Each Connection owns its own httpx.Client so nothing is pooled or reused
across hops or calls. Redirects are never followed at this level.
"""

import io

import httpx
import structlog

from http_retriever.config import RetrieverConfig
from http_retriever.constants import CHUNK_SIZE
from http_retriever.network_access import NetworkScope
from http_retriever.redact import redact_headers, redact_url_credentials


logger = structlog.get_logger()


class ResponseStream(io.RawIOBase):
    """Raw readable stream over a streamed httpx response body.

    Closing the stream closes the response and the client that produced it.
    """

    def __init__(self, response: httpx.Response, client: httpx.Client) -> None:
        self._response = response
        self._client = client
        self._chunks = response.iter_bytes()
        self._pending = b""

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: memoryview) -> int:  # type: ignore[override]
        if self.closed:
            raise ValueError("I/O operation on closed stream")
        while not self._pending:
            chunk = next(self._chunks, None)
            if chunk is None:
                return 0
            self._pending = chunk
        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size

    def close(self) -> None:
        if not self.closed:
            try:
                self._response.close()
            finally:
                self._client.close()
        super().close()


class Connection:
    """A single GET exchange whose response headers have been received."""

    def __init__(self, client: httpx.Client, response: httpx.Response) -> None:
        """Initialize the connection.

        Args:
            client: Client dedicated to this connection.
            response: Streamed response, body not yet read.
        """
        self._client = client
        self._response = response
        self._stream_opened = False
        self._closed = False

    @property
    def url(self) -> str:
        """Get the URL this connection was opened to."""
        return str(self._response.request.url)

    @property
    def status_code(self) -> int:
        """Get the numeric response status."""
        return self._response.status_code

    @property
    def closed(self) -> bool:
        """Check whether the connection has been closed."""
        return self._closed

    def header(self, name: str) -> str | None:
        """Look up a response header.

        Args:
            name: Header name (case-insensitive).

        Returns:
            Header value, or None if absent.
        """
        return self._response.headers.get(name)

    def open_stream(self) -> io.BufferedReader:
        """Hand the response body over as a buffered stream.

        The caller owns the returned stream; closing it closes the connection.

        Returns:
            Buffered reader positioned at the start of the body.
        """
        if self._closed or self._stream_opened:
            raise ValueError("response body is no longer available")
        self._stream_opened = True
        return io.BufferedReader(
            ResponseStream(self._response, self._client),
            buffer_size=CHUNK_SIZE,
        )

    def close(self) -> None:
        """Discard the response and release the connection."""
        if self._closed or self._stream_opened:
            return
        self._closed = True
        try:
            self._response.close()
        finally:
            self._client.close()


class ConnectionFactory:
    """Opens connections with fixed timeouts and redirects disabled."""

    def __init__(
        self,
        config: RetrieverConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the factory.

        Args:
            config: Retriever configuration.
            transport: Optional transport override (e.g. httpx.MockTransport).
        """
        self._config = config
        self._transport = transport

    def open(self, url: httpx.URL, scope: NetworkScope) -> Connection:
        """Send a GET to url and wait for the response headers.

        Args:
            url: Validated absolute URL.
            scope: Active network scope of the current retrieval.

        Returns:
            Connection with status and headers available.

        Raises:
            NetworkAccessDeniedError: If the scope is no longer active.
            httpx.TransportError: On connect/read failures and timeouts.
        """
        scope.check(str(url))

        # Credentials travel in the Authorization header, never in the logged URL
        auth: httpx.BasicAuth | None = None
        if url.userinfo:
            auth = httpx.BasicAuth(url.username, url.password)
            url = url.copy_with(username="", password="")

        client = httpx.Client(
            timeout=self._config.timeout(),
            follow_redirects=False,
            headers={"User-Agent": self._config.user_agent},
            transport=self._transport,
            trust_env=self._config.trust_env,
        )
        try:
            request = client.build_request("GET", url)
            response = client.send(request, stream=True, auth=auth)
        except BaseException:
            client.close()
            raise

        logger.debug(
            "connection_opened",
            component="retriever",
            url=redact_url_credentials(str(url)),
            status_code=response.status_code,
            headers=redact_headers(dict(request.headers)),
        )
        return Connection(client, response)
