"""Cloudflare rules-list client used to ban abusive client IPs."""
from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Callable, Dict, Optional

import requests
from requests import Response

from ipguard.config import Settings

LOGGER = logging.getLogger(__name__)


class CloudflareError(RuntimeError):
    """Raised when the Cloudflare API returns an error."""


class CloudflareBanClient:
    """Adds IPs to a Cloudflare IP list, skipping repeats within a cooldown."""

    def __init__(self, settings: Settings, clock: Callable[[], float] = time.monotonic) -> None:
        if not settings.ban_enabled:
            raise ValueError("Cloudflare credentials are not configured")
        self._settings = settings
        self._clock = clock
        self._session = requests.Session()
        self._session.headers.update(
            {
                "X-Auth-Email": settings.cloudflare_account_mail or "",
                "X-Auth-Key": settings.cloudflare_api_key or "",
                "Content-Type": "application/json",
            }
        )
        self._recent: Dict[str, float] = {}
        self._lock = Lock()

    def ban(self, ip: str, reason: Optional[str] = None) -> bool:
        """Ban ``ip``; return ``False`` when it was already banned recently."""

        now = self._clock()
        with self._lock:
            banned_at = self._recent.get(ip)
            if banned_at is not None and now - banned_at < self._settings.ban_cooldown_seconds:
                return False
            self._recent[ip] = now
            self._forget_expired(now)

        body = [{"ip": ip, "comment": reason or self._settings.ban_reason}]
        try:
            response = self._session.post(
                self._settings.ban_list_url,
                json=body,
                timeout=self._settings.ban_timeout_seconds,
            )
            self._raise_for_status(response)
        except Exception:
            with self._lock:
                self._recent.pop(ip, None)
            raise
        LOGGER.info("client banned", extra={"client_ip": ip})
        return True

    def _forget_expired(self, now: float) -> None:
        cooldown = self._settings.ban_cooldown_seconds
        for ip in [ip for ip, at in self._recent.items() if now - at >= cooldown]:
            del self._recent[ip]

    def _raise_for_status(self, response: Response) -> None:
        """Raise descriptive errors for Cloudflare responses."""

        if response.ok:
            return
        status = response.status_code
        detail = response.text
        if status == 401 or "authentication error" in detail.lower():
            message = "Unauthorized: verify CLOUDFLARE_ACCOUNT_MAIL and CLOUDFLARE_API_KEY."
        elif status == 403:
            message = "Forbidden: the API key lacks list edit permissions."
        elif status == 404:
            message = "Account or IP list not found."
        else:
            message = f"Cloudflare error ({status})."
        LOGGER.error("cloudflare request failed", extra={"status": status})
        raise CloudflareError(f"{message} Response: {detail[:200]}")
