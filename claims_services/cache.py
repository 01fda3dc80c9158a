"""
TTLCache -- explicit, clock-driven expiring cache.

Responsibility:
    Hold values (the scoring service's historical windows) for a declared
    time-to-live measured on an injected Clock, with explicit invalidation
    after writes.

Architecture position:
    Services -- imperative shell.  Owned by the service that creates it;
    never module-level state.

Invariants enforced:
    - An entry is never returned once ``ttl_seconds`` have elapsed on the
      injected clock since it was stored.
    - ``ttl_seconds == 0`` disables caching entirely.
    - All operations are guarded by a lock (safe across threads).
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable
from datetime import datetime, timedelta
from typing import Any

from claims_kernel.domain.clock import Clock, SystemClock

_MISSING = object()


class TTLCache:
    """Dictionary-like cache whose entries expire after ``ttl_seconds``."""

    def __init__(self, ttl_seconds: int, clock: Clock | None = None, max_entries: int = 1024) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds cannot be negative")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or SystemClock()
        self._max_entries = max_entries
        self._entries: dict[Hashable, tuple[datetime, Any]] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._ttl > timedelta(0)

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            stored_at, value = entry
            if self._clock.now() - stored_at >= self._ttl:
                del self._entries[key]
                return default
            return value

    def set(self, key: Hashable, value: Any) -> None:
        if not self.enabled:
            return
        with self._lock:
            if key not in self._entries and len(self._entries) >= self._max_entries:
                self._evict_oldest()
            self._entries[key] = (self._clock.now(), value)

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        """Return the cached value, or call ``loader`` and cache its result."""
        value = self.get(key, _MISSING)
        if value is _MISSING:
            value = loader()
            self.set(key, value)
        return value

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_where(self, predicate: Callable[[Hashable], bool]) -> int:
        """Drop every entry whose key satisfies ``predicate``; return the count."""
        with self._lock:
            doomed = [k for k in self._entries if predicate(k)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _evict_oldest(self) -> None:
        oldest = min(self._entries, key=lambda k: self._entries[k][0])
        del self._entries[oldest]
