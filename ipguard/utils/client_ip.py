"""Client IP resolution from proxy headers."""
from __future__ import annotations

import ipaddress
from typing import Mapping, Optional

UNKNOWN_CLIENT = "unknown"

# checked in order; the first valid address wins
_CLIENT_IP_HEADERS = (
    "x-client-ip",
    "x-forwarded-for",
    "cf-connecting-ip",
    "fastly-client-ip",
    "true-client-ip",
    "x-real-ip",
    "x-cluster-client-ip",
    "x-forwarded",
    "forwarded-for",
    "forwarded",
)


def is_ip(value: str | None) -> bool:
    """Return ``True`` when ``value`` is a literal IPv4 or IPv6 address."""

    if not value:
        return False
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def _clean(candidate: str) -> str:
    candidate = candidate.strip().strip('"')
    if candidate.lower().startswith("for="):
        candidate = candidate[4:].strip('"')
    if candidate.startswith("[") and "]" in candidate:
        return candidate[1 : candidate.index("]")]
    # strip a port from IPv4 ``addr:port``
    if candidate.count(":") == 1:
        return candidate.split(":", 1)[0]
    return candidate


def first_forwarded_ip(value: str | None) -> str | None:
    """Return the left-most valid address of a comma separated header value."""

    if not value:
        return None
    for part in value.split(","):
        for piece in part.split(";"):
            candidate = _clean(piece)
            if is_ip(candidate):
                return candidate
    return None


def resolve_client_ip(
    headers: Mapping[str, str], peer: Optional[str] = None, trust_headers: bool = True
) -> str:
    """Resolve the originating client address for a request.

    Proxy headers are preferred over the socket peer so clients behind a
    reverse proxy or CDN are told apart. The headers are client supplied: a
    client reaching the app directly can name any address, including one it
    wants banned. Pass ``trust_headers=False`` unless a trusted proxy
    overwrites them.
    """

    if trust_headers:
        for name in _CLIENT_IP_HEADERS:
            found = first_forwarded_ip(headers.get(name))
            if found:
                return found
    if peer:
        return peer
    return UNKNOWN_CLIENT
