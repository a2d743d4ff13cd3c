"""Utility helpers."""
from .client_ip import (  # noqa: F401
    UNKNOWN_CLIENT,
    first_forwarded_ip,
    is_ip,
    resolve_client_ip,
)
