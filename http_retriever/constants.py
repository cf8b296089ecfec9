"""HTTP constants for the retriever.

Centralizes status codes and connection defaults used by the redirect loop.
"""

# HTTP status codes inspected by the redirect loop
HTTP_STATUS_OK = 200
HTTP_STATUS_MOVED_PERMANENTLY = 301
HTTP_STATUS_FOUND = 302
HTTP_STATUS_SEE_OTHER = 303
HTTP_STATUS_NOT_FOUND = 404

REDIRECT_STATUS_CODES = frozenset(
    {
        HTTP_STATUS_MOVED_PERMANENTLY,
        HTTP_STATUS_FOUND,
        HTTP_STATUS_SEE_OTHER,
    }
)

# Per-connection timeouts (seconds)
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0
DEFAULT_READ_TIMEOUT_SECONDS = 10.0

# Redirect hops allowed before the retrieval is aborted
DEFAULT_MAX_REDIRECTS = 50

# Chunk size for draining response streams
CHUNK_SIZE = 8192

DEFAULT_USER_AGENT = "http-retriever/1.0"

LOCATION_HEADER = "Location"
