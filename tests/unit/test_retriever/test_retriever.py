"""Unit tests for HttpRetriever driven by httpx.MockTransport."""

from collections.abc import Callable, Iterator

import httpx
import pytest

from http_retriever.config import RetrieverConfig
from http_retriever.connection import ConnectionFactory
from http_retriever.errors import (
    DownloadFailedError,
    InvalidRedirectError,
    NetworkAccessDeniedError,
    ResourceNotFoundError,
    RetrievalErrorClass,
    TooManyRedirectsError,
    UrlRejectedError,
)
from http_retriever.metrics import RetrieverMetrics
from http_retriever.network_access import NetworkAccess
from http_retriever.retriever import HttpRetriever


Handler = Callable[[httpx.Request], httpx.Response]


class TrackingStream(httpx.SyncByteStream):
    """Response body that records whether it was closed."""

    def __init__(self, content: bytes) -> None:
        self.content = content
        self.closed = False

    def __iter__(self) -> Iterator[bytes]:
        yield self.content

    def close(self) -> None:
        self.closed = True


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Handler) -> None:
        self.requests: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(record)

    @property
    def urls(self) -> list[str]:
        """Get requested URLs in order."""
        return [str(request.url) for request in self.requests]


def make_retriever(
    handler: Handler,
    config: RetrieverConfig | None = None,
    network_access: NetworkAccess | None = None,
) -> tuple[HttpRetriever, RecordingTransport]:
    """Build a retriever wired to a recording mock transport."""
    config = config or RetrieverConfig()
    transport = RecordingTransport(handler)
    retriever = HttpRetriever(
        config=config,
        network_access=network_access,
        connection_factory=ConnectionFactory(config, transport=transport),
    )
    return retriever, transport


def hop_chain(total_redirects: int) -> Handler:
    """Handler redirecting /hop/N -> /hop/N+1 until total_redirects, then 200."""

    def handler(request: httpx.Request) -> httpx.Response:
        hop = int(request.url.path.rsplit("/", 1)[-1])
        if hop < total_redirects:
            return httpx.Response(302, headers={"Location": f"/hop/{hop + 1}"})
        return httpx.Response(200, content=b"final")

    return handler


@pytest.fixture(autouse=True)
def reset_metrics() -> Iterator[None]:
    """Reset metrics singleton around each test."""
    RetrieverMetrics.reset()
    yield
    RetrieverMetrics.reset()


class TestGetSuccess:
    """Tests for direct 200 responses."""

    def test_get_returns_body_stream(self) -> None:
        """Test get() returns a stream over the response body."""
        retriever, transport = make_retriever(
            lambda _: httpx.Response(200, content=b"geoip database bytes")
        )

        with retriever.get("https://geoip.example.com/db.tgz") as stream:
            assert stream.read() == b"geoip database bytes"

        assert transport.urls == ["https://geoip.example.com/db.tgz"]

    def test_get_bytes_returns_body(self) -> None:
        """Test get_bytes() drains the whole body."""
        body = bytes(range(256)) * 100
        retriever, _ = make_retriever(lambda _: httpx.Response(200, content=body))

        assert retriever.get_bytes("https://geoip.example.com/db.tgz") == body

    def test_get_bytes_empty_body(self) -> None:
        """Test an empty 200 body yields empty bytes."""
        retriever, _ = make_retriever(lambda _: httpx.Response(200))

        assert retriever.get_bytes("https://geoip.example.com/empty") == b""

    def test_stream_supports_partial_reads(self) -> None:
        """Test the stream is buffered and supports incremental reads."""
        retriever, _ = make_retriever(
            lambda _: httpx.Response(200, content=b"0123456789")
        )

        with retriever.get("https://geoip.example.com/db.tgz") as stream:
            assert stream.read(4) == b"0123"
            assert stream.peek(1)[:1] == b"4"
            assert stream.read() == b"456789"
            assert stream.read() == b""

    def test_request_is_plain_get(self) -> None:
        """Test requests are bodiless GETs carrying the user agent."""
        config = RetrieverConfig(user_agent="geoip-downloader/2.0")
        retriever, transport = make_retriever(
            lambda _: httpx.Response(200, content=b"ok"), config=config
        )

        retriever.get_bytes("https://geoip.example.com/db.tgz")

        request = transport.requests[0]
        assert request.method == "GET"
        assert request.content == b""
        assert request.headers["User-Agent"] == "geoip-downloader/2.0"

    def test_timeouts_applied_per_request(self) -> None:
        """Test each request carries the 10s connect and read timeouts."""
        retriever, transport = make_retriever(hop_chain(1))

        retriever.get_bytes("https://geoip.example.com/hop/0")

        for request in transport.requests:
            timeout = request.extensions["timeout"]
            assert timeout["connect"] == 10.0
            assert timeout["read"] == 10.0


class TestRedirects:
    """Tests for redirect following."""

    @pytest.mark.parametrize("status_code", [301, 302, 303])
    def test_follows_absolute_location(self, status_code: int) -> None:
        """Test a redirect to an absolute URL requests exactly that URL."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "geoip.example.com":
                return httpx.Response(
                    status_code,
                    headers={"Location": "https://cdn.example.net/files/db.tgz?sig=1"},
                )
            return httpx.Response(200, content=b"from cdn")

        retriever, transport = make_retriever(handler)

        assert retriever.get_bytes("https://geoip.example.com/db.tgz") == b"from cdn"
        assert transport.urls == [
            "https://geoip.example.com/db.tgz",
            "https://cdn.example.net/files/db.tgz?sig=1",
        ]

    def test_relative_location_resolves_against_current_hop(self) -> None:
        """Test relative Locations resolve against the current URL, not the first."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "origin.example.com":
                return httpx.Response(
                    302, headers={"Location": "http://mirror.example.org/a/b"}
                )
            if request.url.path == "/a/b":
                return httpx.Response(302, headers={"Location": "/other/path"})
            return httpx.Response(200, content=b"resolved")

        retriever, transport = make_retriever(handler)

        assert retriever.get_bytes("https://origin.example.com/start") == b"resolved"
        assert transport.urls == [
            "https://origin.example.com/start",
            "http://mirror.example.org/a/b",
            "http://mirror.example.org/other/path",
        ]

    def test_exactly_max_redirects_succeeds(self) -> None:
        """Test a chain of exactly 50 redirects followed by 200 succeeds."""
        retriever, transport = make_retriever(hop_chain(50))

        assert retriever.get_bytes("https://geoip.example.com/hop/0") == b"final"
        assert len(transport.requests) == 51
        assert RetrieverMetrics.get_instance().redirects_total == 50

    def test_one_more_than_max_redirects_fails(self) -> None:
        """Test a chain of 51 redirects fails naming the original URL."""
        retriever, transport = make_retriever(hop_chain(51))

        with pytest.raises(TooManyRedirectsError) as exc_info:
            retriever.get("https://geoip.example.com/hop/0")

        error = exc_info.value
        assert error.url == "https://geoip.example.com/hop/0"
        assert error.error_class == RetrievalErrorClass.TOO_MANY_REDIRECTS
        assert error.redirects == 51
        assert error.max_redirects == 50
        assert "too many redirects" in str(error)
        assert len(transport.requests) == 51

    def test_custom_redirect_bound(self) -> None:
        """Test max_redirects is configurable."""
        config = RetrieverConfig(max_redirects=2)
        retriever, _ = make_retriever(hop_chain(3), config=config)

        with pytest.raises(TooManyRedirectsError):
            retriever.get_bytes("https://geoip.example.com/hop/0")

    def test_zero_redirects_allowed(self) -> None:
        """Test max_redirects=0 rejects the first redirect."""
        config = RetrieverConfig(max_redirects=0)
        retriever, transport = make_retriever(hop_chain(1), config=config)

        with pytest.raises(TooManyRedirectsError):
            retriever.get_bytes("https://geoip.example.com/hop/0")

        assert len(transport.requests) == 1

    def test_redirect_loop_is_bounded(self) -> None:
        """Test a self-redirect terminates with TooManyRedirectsError."""
        retriever, transport = make_retriever(
            lambda request: httpx.Response(301, headers={"Location": str(request.url)})
        )

        with pytest.raises(TooManyRedirectsError):
            retriever.get("https://geoip.example.com/loop")

        assert len(transport.requests) == 51

    def test_missing_location_fails(self) -> None:
        """Test a redirect without Location raises InvalidRedirectError."""
        retriever, _ = make_retriever(lambda _: httpx.Response(302))

        with pytest.raises(InvalidRedirectError) as exc_info:
            retriever.get("https://geoip.example.com/db.tgz")

        assert exc_info.value.url == "https://geoip.example.com/db.tgz"
        assert exc_info.value.location is None

    def test_redirect_to_denied_host_rejected(self) -> None:
        """Test redirect targets are checked against the URL policy."""
        retriever, transport = make_retriever(
            lambda _: httpx.Response(
                302, headers={"Location": "http://169.254.169.254/latest/meta-data/"}
            )
        )

        with pytest.raises(UrlRejectedError):
            retriever.get("https://geoip.example.com/db.tgz")

        assert transport.urls == ["https://geoip.example.com/db.tgz"]

    def test_redirect_to_other_scheme_rejected(self) -> None:
        """Test redirects to non-HTTP schemes are rejected."""
        retriever, _ = make_retriever(
            lambda _: httpx.Response(302, headers={"Location": "ftp://files/db"})
        )

        with pytest.raises(UrlRejectedError):
            retriever.get("https://geoip.example.com/db.tgz")

    def test_abandoned_connections_are_closed(self) -> None:
        """Test redirect responses are closed before the next hop."""
        streams: list[TrackingStream] = []

        def handler(request: httpx.Request) -> httpx.Response:
            stream = TrackingStream(b"moved" if request.url.path == "/a" else b"ok")
            streams.append(stream)
            if request.url.path == "/a":
                return httpx.Response(302, headers={"Location": "/b"}, stream=stream)
            return httpx.Response(200, stream=stream)

        retriever, _ = make_retriever(handler)

        stream = retriever.get("https://geoip.example.com/a")
        assert streams[0].closed is True
        assert streams[1].closed is False

        assert stream.read() == b"ok"
        stream.close()
        assert streams[1].closed is True


class TestStatusFailures:
    """Tests for status-to-error mapping."""

    def test_not_found(self) -> None:
        """Test 404 raises ResourceNotFoundError naming the URL."""
        retriever, _ = make_retriever(lambda _: httpx.Response(404))

        with pytest.raises(ResourceNotFoundError) as exc_info:
            retriever.get("https://geoip.example.com/missing.tgz")

        assert exc_info.value.url == "https://geoip.example.com/missing.tgz"
        assert exc_info.value.error_class == RetrievalErrorClass.NOT_FOUND
        assert "not found" in str(exc_info.value)

    def test_not_found_after_redirect_names_final_url(self) -> None:
        """Test the 404 error names the hop that produced it."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/start":
                return httpx.Response(302, headers={"Location": "/gone"})
            return httpx.Response(404)

        retriever, _ = make_retriever(handler)

        with pytest.raises(ResourceNotFoundError) as exc_info:
            retriever.get("https://geoip.example.com/start")

        assert exc_info.value.url == "https://geoip.example.com/gone"

    def test_server_error(self) -> None:
        """Test 500 raises DownloadFailedError with the status attached."""
        retriever, _ = make_retriever(lambda _: httpx.Response(500))

        with pytest.raises(DownloadFailedError) as exc_info:
            retriever.get("https://geoip.example.com/db.tgz")

        error = exc_info.value
        assert error.status_code == 500
        assert error.url == "https://geoip.example.com/db.tgz"
        assert error.error_class == RetrievalErrorClass.STATUS_FAILURE
        assert error.details == {"status_code": 500}

    @pytest.mark.parametrize("status_code", [201, 204, 304, 307, 308, 403, 429, 503])
    def test_unhandled_statuses_fail(self, status_code: int) -> None:
        """Test statuses outside 200/301/302/303/404 are failures."""
        retriever, transport = make_retriever(
            lambda _: httpx.Response(status_code, headers={"Location": "/elsewhere"})
        )

        with pytest.raises(DownloadFailedError) as exc_info:
            retriever.get("https://geoip.example.com/db.tgz")

        assert exc_info.value.status_code == status_code
        assert len(transport.requests) == 1

    def test_failed_connection_is_closed(self) -> None:
        """Test the failing response is closed before raising."""
        stream = TrackingStream(b"boom")
        retriever, _ = make_retriever(lambda _: httpx.Response(500, stream=stream))

        with pytest.raises(DownloadFailedError):
            retriever.get("https://geoip.example.com/db.tgz")

        assert stream.closed is True


class TestTransportErrors:
    """Tests for errors propagated from the transport."""

    def test_connect_error_propagates(self) -> None:
        """Test connection failures propagate unchanged."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        retriever, transport = make_retriever(handler)

        with pytest.raises(httpx.ConnectError):
            retriever.get("https://geoip.example.com/db.tgz")

        assert len(transport.requests) == 1

    def test_read_timeout_propagates_without_retry(self) -> None:
        """Test timeouts surface as httpx timeout errors and are not retried."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        retriever, transport = make_retriever(handler)

        with pytest.raises(httpx.TimeoutException):
            retriever.get_bytes("https://geoip.example.com/db.tgz")

        assert len(transport.requests) == 1

    def test_transport_failure_recorded_in_metrics(self) -> None:
        """Test transport failures are counted by exception type."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        retriever, _ = make_retriever(handler)

        with pytest.raises(httpx.ReadTimeout):
            retriever.get("https://geoip.example.com/db.tgz")

        assert RetrieverMetrics.get_instance().failures_total == {"ReadTimeout": 1}


class TestUrlValidation:
    """Tests for URL policy enforcement on the initial URL."""

    def test_rejected_url_makes_no_request(self) -> None:
        """Test disallowed URLs fail before any connection."""
        retriever, transport = make_retriever(lambda _: httpx.Response(200))

        with pytest.raises(UrlRejectedError):
            retriever.get("ftp://geoip.example.com/db.tgz")

        assert transport.requests == []

    def test_malformed_url_rejected(self) -> None:
        """Test scheme-less input is rejected."""
        retriever, transport = make_retriever(lambda _: httpx.Response(200))

        with pytest.raises(UrlRejectedError):
            retriever.get("geoip.example.com/db.tgz")

        assert transport.requests == []


class TestNetworkAccess:
    """Tests for the network access capability around retrievals."""

    def test_disabled_access_denies_retrieval(self) -> None:
        """Test a disabled capability prevents any connection."""
        retriever, transport = make_retriever(
            lambda _: httpx.Response(200), network_access=NetworkAccess(enabled=False)
        )

        with pytest.raises(NetworkAccessDeniedError):
            retriever.get("https://geoip.example.com/db.tgz")

        assert transport.requests == []

    def test_scope_released_after_success(self) -> None:
        """Test the scope is released once get() returns."""
        access = NetworkAccess()
        retriever, _ = make_retriever(hop_chain(3), network_access=access)

        stream = retriever.get("https://geoip.example.com/hop/0")

        assert access.active_scopes == 0
        assert stream.read() == b"final"
        stream.close()

    def test_scope_released_after_failure(self) -> None:
        """Test the scope is released when get() raises."""
        access = NetworkAccess()
        retriever, _ = make_retriever(
            lambda _: httpx.Response(404), network_access=access
        )

        with pytest.raises(ResourceNotFoundError):
            retriever.get("https://geoip.example.com/db.tgz")

        assert access.active_scopes == 0


class TestMetrics:
    """Tests for metrics recorded by the retriever."""

    def test_success_metrics(self) -> None:
        """Test statuses, redirects and bytes are recorded."""
        retriever, _ = make_retriever(hop_chain(2))

        retriever.get_bytes("https://geoip.example.com/hop/0")

        metrics = RetrieverMetrics.get_instance()
        assert metrics.requests_total == {302: 2, 200: 1}
        assert metrics.redirects_total == 2
        assert metrics.bytes_total == len(b"final")
        assert metrics.retrieval_count == 1
        assert metrics.failures_total == {}

    def test_failure_metrics(self) -> None:
        """Test classified failures are counted."""
        retriever, _ = make_retriever(lambda _: httpx.Response(404))

        with pytest.raises(ResourceNotFoundError):
            retriever.get("https://geoip.example.com/db.tgz")

        metrics = RetrieverMetrics.get_instance()
        assert metrics.failures_total == {"NOT_FOUND": 1}
        assert metrics.retrieval_count == 1
