"""Application settings and environment loading utilities."""
from __future__ import annotations

import math
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional


def _load_dotenv() -> None:
    env_path = Path(".env")
    if not env_path.exists():
        return
    for line in env_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


_load_dotenv()


def _read_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        value = float(raw)
    except ValueError as exc:
        raise RuntimeError(f"Invalid number for environment variable {name}: {raw!r}") from exc
    if not math.isfinite(value):
        raise RuntimeError(f"Invalid number for environment variable {name}: {raw!r}")
    return value


def _read_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Runtime configuration derived from environment variables."""

    window_seconds: float = 10.0
    rate_limit: float = 2.0
    scan_period_seconds: float = 10.0
    reject_exceeded: bool = False
    trust_proxy_headers: bool = True
    cloudflare_account_id: Optional[str] = None
    cloudflare_list_id: Optional[str] = None
    cloudflare_account_mail: Optional[str] = None
    cloudflare_api_key: Optional[str] = None
    ban_cooldown_seconds: float = 60.0
    ban_timeout_seconds: float = 10.0
    ban_reason: str = "Banned IP address via Rate Limiter"

    def __post_init__(self) -> None:
        if not self.window_seconds > 0:
            raise RuntimeError("RATE_GUARD_WINDOW_SECONDS must be positive")
        if not self.rate_limit > 0:
            raise RuntimeError("RATE_GUARD_RATE_LIMIT must be positive")
        if not 0 < self.scan_period_seconds <= self.window_seconds:
            raise RuntimeError(
                "RATE_GUARD_SCAN_PERIOD_SECONDS must be positive and not exceed the window"
            )

    @property
    def ban_enabled(self) -> bool:
        return all(
            (
                self.cloudflare_account_id,
                self.cloudflare_list_id,
                self.cloudflare_account_mail,
                self.cloudflare_api_key,
            )
        )

    @property
    def ban_list_url(self) -> str:
        return (
            "https://api.cloudflare.com/client/v4/accounts/"
            f"{self.cloudflare_account_id}/rules/lists/{self.cloudflare_list_id}/items"
        )

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            window_seconds=_read_float("RATE_GUARD_WINDOW_SECONDS", "10"),
            rate_limit=_read_float("RATE_GUARD_RATE_LIMIT", "2"),
            scan_period_seconds=_read_float("RATE_GUARD_SCAN_PERIOD_SECONDS", "10"),
            reject_exceeded=_read_bool("RATE_GUARD_REJECT_EXCEEDED"),
            trust_proxy_headers=_read_bool("RATE_GUARD_TRUST_PROXY_HEADERS", "true"),
            cloudflare_account_id=os.getenv("CLOUDFLARE_ACCOUNT_ID") or None,
            cloudflare_list_id=os.getenv("CLOUDFLARE_LIST_ID") or None,
            cloudflare_account_mail=os.getenv("CLOUDFLARE_ACCOUNT_MAIL") or None,
            cloudflare_api_key=os.getenv("CLOUDFLARE_API_KEY") or None,
            ban_cooldown_seconds=_read_float("CLOUDFLARE_BAN_COOLDOWN_SECONDS", "60"),
            ban_timeout_seconds=_read_float("CLOUDFLARE_TIMEOUT_SECONDS", "10"),
        )


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings.from_env()
