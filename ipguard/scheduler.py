"""Background eviction of decayed timestamp histories."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Hashable, Optional

from ipguard.window_store import Clock, WindowStore

LOGGER = logging.getLogger(__name__)


@dataclass
class EvictionReport:
    evicted: int = 0
    compacted: int = 0


class EvictionScheduler:
    """Periodically evicts or compacts every key whose deadline has passed.

    A key whose newest timestamp is older than the window is removed. A key
    that still holds live timestamps is trimmed to them and re-armed to be
    checked again when its oldest surviving timestamp goes stale.
    """

    def __init__(self, store: WindowStore, scan_period_seconds: float, clock: Clock) -> None:
        self._store = store
        self._period = scan_period_seconds
        self._clock = clock
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._stop.clear()
            self._thread = threading.Thread(
                target=self._run, name="ipguard-eviction", daemon=True
            )
            self._thread.start()
        LOGGER.info("eviction scheduler started")

    def stop(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._stop.set()
            thread.join(timeout)
            self._thread = None
        LOGGER.info("eviction scheduler stopped")

    def run_pending(self, now: Optional[float] = None) -> EvictionReport:
        """Process every due key once."""

        if now is None:
            now = self._clock()
        report = EvictionReport()
        for key in self._store.due(now):
            outcome = self._expire(key, now)
            if outcome == "evicted":
                report.evicted += 1
            elif outcome == "compacted":
                report.compacted += 1
        if report.evicted or report.compacted:
            LOGGER.debug(
                "eviction pass finished",
                extra={"evicted": report.evicted, "compacted": report.compacted},
            )
        return report

    def _expire(self, key: Hashable, now: float) -> Optional[str]:
        window = self._store.window
        while True:
            snap = self._store.snapshot(key)
            if snap is None:
                return None
            if now - snap.timestamps[-1] > window:
                if self._store.remove(key, version=snap.version):
                    return "evicted"
                continue
            live = [ts for ts in snap.timestamps if now - ts < window]
            if not live:
                if self._store.remove(key, version=snap.version):
                    return "evicted"
                continue
            if self._store.replace(key, live, live[0] + window, version=snap.version):
                return "compacted"

    def _run(self) -> None:
        while not self._stop.wait(self._period):
            try:
                self.run_pending()
            except Exception:  # noqa: BLE001
                LOGGER.exception("eviction pass failed")
