"""URL construction and validation for outbound connections.

Every URL the retriever connects to passes through UrlPolicy.create(): the
caller's URL and each resolved redirect target alike.
"""

import ipaddress
import socket
from typing import Annotated

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from http_retriever.errors import UrlRejectedError


HTTP_SCHEMES: frozenset[str] = frozenset({"http", "https"})

# Cloud metadata and other infrastructure endpoints that must never be fetched
COMMON_INFRASTRUCTURE_HOSTS: frozenset[str] = frozenset(
    {
        "169.254.169.254",
        "169.254.170.2",
        "fd00:ec2::254",
        "100.100.100.200",
        "metadata",
        "metadata.google.internal",
    }
)


def normalize_host(host: str) -> str:
    """Reduce a host to the canonical form used for deny-list matching.

    Names are lowercased and lose a trailing root dot. IP literals are
    rendered in their standard notation, so legacy IPv4 spellings accepted
    by the resolver (decimal "2852039166", hex "0xA9FEA9FE", short forms)
    and IPv4-mapped IPv6 addresses compare equal to the dotted quad.

    Args:
        host: Host as it appears in a URL, optionally bracketed.

    Returns:
        Canonical host string (empty if host was empty).
    """
    host = host.strip().lower().strip("[]").rstrip(".")
    if not host:
        return host

    try:
        address: ipaddress.IPv4Address | ipaddress.IPv6Address = (
            ipaddress.ip_address(host)
        )
    except ValueError:
        try:
            address = ipaddress.IPv4Address(socket.inet_aton(host))
        except OSError:
            return host

    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped
    return str(address)


class UrlPolicy(BaseModel):
    """Allowed schemes and denied hosts for outbound URLs."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    allowed_schemes: Annotated[frozenset[str], Field(min_length=1)] = HTTP_SCHEMES
    denied_hosts: frozenset[str] = COMMON_INFRASTRUCTURE_HOSTS

    @field_validator("allowed_schemes")
    @classmethod
    def normalize_schemes(cls, v: frozenset[str]) -> frozenset[str]:
        """Lowercase schemes so comparisons are case-insensitive."""
        return frozenset(item.lower() for item in v)

    @field_validator("denied_hosts")
    @classmethod
    def normalize_hosts(cls, v: frozenset[str]) -> frozenset[str]:
        """Store denied hosts in the same canonical form create() compares."""
        return frozenset(normalize_host(item) for item in v)

    def create(self, url: str, base: str | httpx.URL | None = None) -> httpx.URL:
        """Build a validated, connectable URL.

        Args:
            url: Absolute URL, or a possibly-relative reference when base is set.
            base: Base URL to resolve url against (RFC 3986 resolution).

        Returns:
            The validated absolute URL.

        Raises:
            UrlRejectedError: If the URL is malformed or not allowed.
        """
        try:
            resolved = httpx.URL(base).join(url) if base is not None else httpx.URL(url)
        except (httpx.InvalidURL, TypeError) as e:
            raise UrlRejectedError(url, f"malformed URL: {e}") from e

        display = str(resolved)
        scheme = resolved.scheme.lower()
        if not scheme:
            raise UrlRejectedError(display, "missing scheme")
        if scheme not in self.allowed_schemes:
            raise UrlRejectedError(display, f"scheme '{scheme}' is not allowed")

        host = normalize_host(resolved.host)
        if not host:
            raise UrlRejectedError(display, "missing host")
        if host in self.denied_hosts:
            raise UrlRejectedError(display, f"host '{host}' is denied")

        return resolved

    def is_allowed(self, url: str) -> bool:
        """Check whether a URL passes the policy.

        Args:
            url: URL to check.

        Returns:
            True if create() would accept the URL.
        """
        try:
            self.create(url)
        except UrlRejectedError:
            return False
        return True
