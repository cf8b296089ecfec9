"""Error types raised by the retriever."""

from enum import Enum


class RetrievalErrorClass(str, Enum):
    """Classification of retrieval errors.

    - NOT_FOUND: The server answered 404
    - STATUS_FAILURE: Any status outside 200/301/302/303/404
    - TOO_MANY_REDIRECTS: The redirect chain exceeded the configured bound
    - INVALID_REDIRECT: A redirect response had no usable Location header
    - URL_REJECTED: The URL policy refused the URL
    - NETWORK_ACCESS_DENIED: Network access capability disabled or released
    """

    NOT_FOUND = "NOT_FOUND"
    STATUS_FAILURE = "STATUS_FAILURE"
    TOO_MANY_REDIRECTS = "TOO_MANY_REDIRECTS"
    INVALID_REDIRECT = "INVALID_REDIRECT"
    URL_REJECTED = "URL_REJECTED"
    NETWORK_ACCESS_DENIED = "NETWORK_ACCESS_DENIED"


ErrorDetails = dict[str, str | int | bool | None]


class RetrievalError(Exception):
    """Base exception for retrieval errors.

    Provides structured error information for logging and for callers that
    react differently to each failure kind.
    """

    def __init__(
        self,
        error_class: RetrievalErrorClass,
        message: str,
        url: str,
        details: ErrorDetails | None = None,
    ) -> None:
        """Initialize the retrieval error.

        Args:
            error_class: Classification of the error.
            message: Human-readable error message.
            url: URL the failure is attributed to.
            details: Additional structured error details.
        """
        super().__init__(message)
        self.error_class = error_class
        self.message = message
        self.url = url
        self.details = details or {}

    def to_dict(self) -> dict[str, str | ErrorDetails]:
        """Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "error_class": self.error_class.value,
            "message": self.message,
            "url": self.url,
            "details": self.details,
        }


class ResourceNotFoundError(RetrievalError):
    """The resource does not exist at the requested location (404)."""

    def __init__(self, url: str) -> None:
        """Initialize the error.

        Args:
            url: URL that produced the 404.
        """
        super().__init__(
            error_class=RetrievalErrorClass.NOT_FOUND,
            message=f"{url} not found",
            url=url,
        )


class DownloadFailedError(RetrievalError):
    """The server answered with a status the retriever does not handle."""

    def __init__(self, url: str, status_code: int) -> None:
        """Initialize the error.

        Args:
            url: URL that produced the unexpected status.
            status_code: Numeric HTTP status code.
        """
        super().__init__(
            error_class=RetrievalErrorClass.STATUS_FAILURE,
            message=f"error during downloading {url} (status {status_code})",
            url=url,
            details={"status_code": status_code},
        )
        self.status_code = status_code


class TooManyRedirectsError(RetrievalError):
    """The redirect chain exceeded the configured bound.

    Fatal: the retrieval is aborted. The error names the URL originally
    requested by the caller, not the last hop.
    """

    def __init__(self, url: str, redirects: int, max_redirects: int) -> None:
        """Initialize the error.

        Args:
            url: Original URL requested by the caller.
            redirects: Number of redirect hops attempted.
            max_redirects: Configured redirect bound.
        """
        super().__init__(
            error_class=RetrievalErrorClass.TOO_MANY_REDIRECTS,
            message=f"too many redirects connection to [{url}]",
            url=url,
            details={"redirects": redirects, "max_redirects": max_redirects},
        )
        self.redirects = redirects
        self.max_redirects = max_redirects


class InvalidRedirectError(RetrievalError):
    """A redirect response carried no usable Location header."""

    def __init__(self, url: str, location: str | None) -> None:
        """Initialize the error.

        Args:
            url: URL that sent the redirect.
            location: Raw Location header value, if any.
        """
        super().__init__(
            error_class=RetrievalErrorClass.INVALID_REDIRECT,
            message=f"redirect from {url} has no usable Location header",
            url=url,
            details={"location": location},
        )
        self.location = location


class UrlRejectedError(RetrievalError):
    """The URL policy refused a URL (malformed, bad scheme or denied host)."""

    def __init__(self, url: str, reason: str) -> None:
        """Initialize the error.

        Args:
            url: Rejected URL.
            reason: Why the URL was rejected.
        """
        super().__init__(
            error_class=RetrievalErrorClass.URL_REJECTED,
            message=f"URL rejected: {url} ({reason})",
            url=url,
            details={"reason": reason},
        )
        self.reason = reason


class NetworkAccessDeniedError(RetrievalError):
    """Network access was requested without an active capability scope."""

    def __init__(self, url: str, reason: str) -> None:
        """Initialize the error.

        Args:
            url: URL the connection was attempted for.
            reason: Why access was denied.
        """
        super().__init__(
            error_class=RetrievalErrorClass.NETWORK_ACCESS_DENIED,
            message=f"Network access denied: {url} ({reason})",
            url=url,
            details={"reason": reason},
        )
        self.reason = reason
