"""Per-client rate guard combining the store, evaluator and eviction scheduler."""
from __future__ import annotations

import time
from typing import Hashable

from ipguard.config import Settings
from ipguard.rate import Decision, RateEvaluator
from ipguard.scheduler import EvictionReport, EvictionScheduler
from ipguard.window_store import Clock, WindowStore


class RateGuard:
    """Records one event per request and reports whether the client is too fast."""

    def __init__(
        self,
        window_seconds: float,
        rate_limit: float,
        scan_period_seconds: float,
        clock: Clock = time.monotonic,
    ) -> None:
        if not 0 < scan_period_seconds <= window_seconds:
            raise ValueError("scan_period_seconds must be positive and not exceed the window")
        self._clock = clock
        self.store = WindowStore(window_seconds, clock=clock)
        self.evaluator = RateEvaluator(rate_limit)
        self.scheduler = EvictionScheduler(self.store, scan_period_seconds, clock)

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock = time.monotonic) -> "RateGuard":
        return cls(
            settings.window_seconds,
            settings.rate_limit,
            settings.scan_period_seconds,
            clock=clock,
        )

    def record_event(self, key: Hashable) -> Decision:
        history = self.store.record_event(key, self._clock())
        return self.evaluator.evaluate(history)

    def evict_expired(self) -> EvictionReport:
        return self.scheduler.run_pending()

    def start(self) -> None:
        self.scheduler.start()

    def shutdown(self) -> None:
        self.scheduler.stop()
        self.store.clear()

    def __len__(self) -> int:
        return len(self.store)
