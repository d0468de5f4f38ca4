"""In-memory key/value cache with per-entry expiry."""

from __future__ import annotations

import heapq
import re
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

T = TypeVar("T")


class _Missing:
    """Sentinel type returned when a key is absent or expired."""

    _instance: Optional["_Missing"] = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()

# Seconds each backend table stays cached.
CACHE_TTL: Dict[str, int] = {
    "directories": 3600,
    "listings": 300,
    "categories": 600,
    "search": 60,
    "landing_pages": 3600,
}


class TTLCache:
    """Stores opaque values keyed by string with optional time-to-live.

    Expiry is checked on every read against ``clock``. Expired entries are
    also reclaimed from a heap of deadlines whenever a value is written, so
    no background threads are involved. There is no size bound.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._values: Dict[str, Any] = {}
        self._expiry: Dict[str, float] = {}
        self._deadlines: List[Tuple[float, str]] = []
        self._lock = threading.RLock()

    def set(self, key: str, value: Any, ttl: float = 60) -> None:
        with self._lock:
            now = self._clock()
            self._values[key] = value
            if ttl > 0:
                expires_at = now + ttl
                self._expiry[key] = expires_at
                heapq.heappush(self._deadlines, (expires_at, key))
            else:
                self._expiry.pop(key, None)
            self._purge(now)

    def get(self, key: str, default: Any = MISSING) -> Any:
        with self._lock:
            if not self._is_live(key):
                return default
            return self._values[key]

    def has(self, key: str) -> bool:
        with self._lock:
            return self._is_live(key)

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)
            self._expiry.pop(key, None)

    def clear(self, pattern: str | None = None) -> int:
        """Remove every entry, or only keys matching the ``pattern`` regex.

        Returns the number of entries removed.
        """
        with self._lock:
            if pattern is None:
                removed = len(self._values)
                self._values.clear()
                self._expiry.clear()
                self._deadlines.clear()
                return removed
            matcher = re.compile(pattern)
            doomed = [key for key in self._values if matcher.search(key)]
            for key in doomed:
                self.delete(key)
            return len(doomed)

    def purge_expired(self) -> int:
        """Drop every expired entry now and return how many were removed."""
        with self._lock:
            return self._purge(self._clock())

    def keys(self) -> List[str]:
        with self._lock:
            return [key for key in list(self._values) if self._is_live(key)]

    def __len__(self) -> int:
        return len(self.keys())

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    # ------------------------------------------------------------------
    # Internal helpers

    def _is_live(self, key: str) -> bool:
        if key not in self._values:
            return False
        expires_at = self._expiry.get(key)
        if expires_at is not None and expires_at <= self._clock():
            self.delete(key)
            return False
        return True

    def _purge(self, now: float) -> int:
        removed = 0
        while self._deadlines and self._deadlines[0][0] <= now:
            expires_at, key = heapq.heappop(self._deadlines)
            # Deadlines left behind by a later set() or delete() no longer match.
            if self._expiry.get(key) == expires_at:
                self.delete(key)
                removed += 1
        return removed


def cached_call(cache: TTLCache, key: str, ttl: float, loader: Callable[[], T]) -> T:
    """Return the cached value for ``key`` or compute, store and return it."""
    hit = cache.get(key)
    if hit is not MISSING:
        return hit
    value = loader()
    cache.set(key, value, ttl)
    return value


__all__ = ["CACHE_TTL", "MISSING", "TTLCache", "cached_call"]
