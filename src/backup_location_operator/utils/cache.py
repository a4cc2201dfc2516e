"""TTL cache owned by its caller."""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Generic, Optional, TypeVar

_V = TypeVar("_V")


class TTLCache(Generic[_V]):
    """A small thread-safe cache whose entries expire after ``ttl`` seconds.

    Each instance is owned by whoever created it; there is no module-level state.
    An optional ``on_evict`` callback receives every value that leaves the cache,
    whether it expired, was invalidated, or was replaced.
    """

    def __init__(
        self,
        ttl: float,
        on_evict: Callable[[_V], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self._on_evict = on_evict
        self._clock = clock
        self._entries: dict[str, tuple[_V, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[_V]:
        """Get a value if present and not expired.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found or expired
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, stored_at = entry
            if self._clock() - stored_at > self.ttl:
                del self._entries[key]
                expired = value
            else:
                return value
        self._evict(expired)
        return None

    def set(self, key: str, value: _V) -> None:
        """Store a value with the current timestamp, evicting any previous value."""
        with self._lock:
            previous = self._entries.get(key)
            self._entries[key] = (value, self._clock())
        if previous is not None and previous[0] is not value:
            self._evict(previous[0])

    def invalidate(self, key: str) -> None:
        with self._lock:
            entry = self._entries.pop(key, None)
        if entry is not None:
            self._evict(entry[0])

    def clear(self) -> None:
        with self._lock:
            values = [value for value, _ in self._entries.values()]
            self._entries.clear()
        for value in values:
            self._evict(value)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _evict(self, value: Any) -> None:
        if self._on_evict is not None:
            self._on_evict(value)


def make_cache_key(kind: str, namespace: str, name: str) -> str:
    """Create a cache key for a Kubernetes resource.

    Args:
        kind: Resource kind (e.g., "Secret")
        namespace: Resource namespace
        name: Resource name

    Returns:
        Cache key string
    """
    return f"{kind}:{namespace}:{name}"
