"""Logging helpers for structured application logs."""
from __future__ import annotations

import json
import logging
import math
from typing import Any, Dict

_EXTRA_FIELDS = ("client_ip", "rate", "status", "evicted", "compacted")


def _json_safe(value: Any) -> Any:
    # strict JSON has no Infinity/NaN
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    return value


class JsonFormatter(logging.Formatter):
    """Render log records as structured JSON."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        for attr in _EXTRA_FIELDS:
            value = getattr(record, attr, None)
            if value is not None:
                payload[attr] = _json_safe(value)
        return json.dumps(payload, default=str, allow_nan=False)


def configure_logging(level: int = logging.INFO) -> None:
    """Configure root logger with JSON formatting."""

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)
