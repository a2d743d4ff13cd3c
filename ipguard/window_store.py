"""Expiring per-key store of event timestamps.

Each key maps to the ascending list of timestamps recorded for it plus an
expiry deadline. Deadlines are kept in a min-heap so the eviction scheduler
only looks at keys that are actually due instead of scanning the whole map.
"""
from __future__ import annotations

import heapq
import itertools
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Set, Tuple

Clock = Callable[[], float]


@dataclass
class WindowEntry:
    timestamps: List[float]
    deadline: float
    version: int = 0


@dataclass(frozen=True)
class Snapshot:
    """Consistent view of one key read under the store lock."""

    timestamps: Tuple[float, ...]
    deadline: float
    version: int


@dataclass(order=True)
class _Deadline:
    at: float
    seq: int
    key: Hashable = field(compare=False)


class WindowStore:
    """Thread-safe mapping of client key to its recent event timestamps."""

    def __init__(self, window_seconds: float, clock: Clock = time.monotonic) -> None:
        self._window = window_seconds
        self._clock = clock
        self._store: Dict[Hashable, WindowEntry] = {}
        self._deadlines: List[_Deadline] = []
        self._seq = itertools.count()
        self._lock = Lock()

    @property
    def window(self) -> float:
        return self._window

    def record_event(self, key: Hashable, now: Optional[float] = None) -> Tuple[float, ...]:
        """Append ``now`` to the key's history and return the updated history.

        A new key is armed to expire one window from now. An existing key keeps
        its pending deadline, which always tracks the oldest retained timestamp.
        """

        if now is None:
            now = self._clock()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                entry = WindowEntry(timestamps=[], deadline=now + self._window)
                self._store[key] = entry
                self._arm(key, entry.deadline)
            entry.timestamps.append(now)
            entry.version += 1
            return tuple(entry.timestamps)

    def get(self, key: Hashable) -> Tuple[float, ...] | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            return tuple(entry.timestamps)

    def snapshot(self, key: Hashable) -> Snapshot | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            return Snapshot(tuple(entry.timestamps), entry.deadline, entry.version)

    def remove(self, key: Hashable, version: Optional[int] = None) -> bool:
        """Delete ``key``; with ``version`` only if the key was not changed since."""

        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return False
            if version is not None and entry.version != version:
                return False
            del self._store[key]
            return True

    def replace(
        self,
        key: Hashable,
        timestamps: Iterable[float],
        deadline: float,
        version: Optional[int] = None,
    ) -> bool:
        """Swap the key's history and deadline in one step.

        Returns ``False`` without touching anything when ``version`` is given and
        no longer matches. An empty history removes the key.
        """

        values = list(timestamps)
        with self._lock:
            entry = self._store.get(key)
            if version is not None and (entry is None or entry.version != version):
                return False
            if not values:
                self._store.pop(key, None)
                return True
            if entry is None:
                entry = WindowEntry(timestamps=values, deadline=deadline)
                self._store[key] = entry
            else:
                entry.timestamps = values
                entry.deadline = deadline
                entry.version += 1
            self._arm(key, deadline)
            return True

    def due(self, now: Optional[float] = None) -> List[Hashable]:
        """Pop and return every key whose deadline has passed."""

        if now is None:
            now = self._clock()
        keys: List[Hashable] = []
        seen: Set[Hashable] = set()
        with self._lock:
            while self._deadlines and self._deadlines[0].at <= now:
                item = heapq.heappop(self._deadlines)
                entry = self._store.get(item.key)
                # superseded by a later replace() or the key is gone
                if entry is None or entry.deadline != item.at or item.key in seen:
                    continue
                seen.add(item.key)
                keys.append(item.key)
        return keys

    def ttl(self, key: Hashable, now: Optional[float] = None) -> float | None:
        """Seconds left until the key is examined for eviction."""

        if now is None:
            now = self._clock()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            return entry.deadline - now

    def keys(self) -> List[Hashable]:
        with self._lock:
            return list(self._store)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._deadlines.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._store

    def _arm(self, key: Hashable, deadline: float) -> None:
        heapq.heappush(self._deadlines, _Deadline(deadline, next(self._seq), key))
