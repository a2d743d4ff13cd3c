"""Request-rate computation over a key's retained timestamps."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

# smallest span used when the clock went backwards between two samples
MIN_SPAN_SECONDS = 1e-9


@dataclass(frozen=True)
class Decision:
    exceeded: bool
    rate: Optional[float] = None
    samples: int = 0


def compute_rate(timestamps: Sequence[float]) -> float | None:
    """Return events per second across the retained history.

    The rate is measured over the span between the oldest and newest retained
    timestamp, not over the nominal window, so a short history reads as a
    higher rate for the same spacing. ``None`` when fewer than two samples.
    """

    if len(timestamps) <= 1:
        return None
    span = timestamps[-1] - timestamps[0]
    if span == 0:
        return math.inf
    if span < 0:
        span = MIN_SPAN_SECONDS
    return (len(timestamps) - 1) / span


class RateEvaluator:
    """Turns a timestamp history into an exceeded/not-exceeded decision."""

    def __init__(self, rate_limit: float) -> None:
        if not rate_limit > 0:
            raise ValueError("rate_limit must be positive")
        self.rate_limit = rate_limit

    def evaluate(self, timestamps: Sequence[float]) -> Decision:
        rate = compute_rate(timestamps)
        if rate is None:
            return Decision(exceeded=False, rate=None, samples=len(timestamps))
        return Decision(exceeded=rate > self.rate_limit, rate=rate, samples=len(timestamps))
