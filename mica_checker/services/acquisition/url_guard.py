"""Rejects URLs that would make the crawler fetch internal resources."""

import ipaddress
from urllib.parse import urlparse

import httpx

from mica_checker.core.exceptions import UnsafeUrlError

ALLOWED_SCHEMES = ("http", "https")
BLOCKED_HOSTNAMES = frozenset({
    "localhost",
    "metadata.google.internal",
    "metadata",
})


def validate_public_url(url: str) -> str:
    """Validate that a URL is an http(s) URL pointing at a public host.

    Args:
        url: Candidate URL

    Returns:
        The URL, stripped of surrounding whitespace

    Raises:
        UnsafeUrlError: For other schemes, missing hosts, localhost, private,
            loopback, link-local (cloud metadata) or reserved addresses
    """
    candidate = (url or "").strip()
    parsed = urlparse(candidate)

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise UnsafeUrlError(f"Only HTTP and HTTPS URLs are allowed: {candidate!r}")

    hostname = (parsed.hostname or "").lower().rstrip(".")
    if not hostname:
        raise UnsafeUrlError(f"URL has no host: {candidate!r}")

    if hostname in BLOCKED_HOSTNAMES or hostname.endswith(".localhost"):
        raise UnsafeUrlError(f"Access to {hostname} is not allowed")

    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return candidate

    if (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_unspecified
        or address.is_multicast
    ):
        raise UnsafeUrlError(f"Access to internal address {hostname} is not allowed")

    return candidate


async def reject_internal_requests(request: httpx.Request) -> None:
    """httpx request hook; also runs for every redirect hop.

    Raises:
        UnsafeUrlError: If the request targets a non-public host
    """
    validate_public_url(str(request.url))
