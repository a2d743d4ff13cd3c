"""Application package exports commonly used helpers for convenience."""

from .config import Settings, get_settings
from .guard import RateGuard
from .logging_config import configure_logging
from .rate import Decision

__all__ = ["Settings", "get_settings", "RateGuard", "Decision", "configure_logging"]
