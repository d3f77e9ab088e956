"""In-memory TTL cache backing the analytics endpoints.

Usage:
    from app.utils.cache import analytics_cache

    entry = analytics_cache.get("analytics:summary|late_days=20")
    if entry is None:
        ...
        analytics_cache.set(key, {"data": result, "cached_at": time.time()}, ttl=600)
"""
import threading
import time
from typing import Any, Callable

from app.config import get_settings


class TTLCache:
    """Thread-safe in-memory cache with TTL expiry and max-entry limit."""

    def __init__(self, max_entries: int = 80, clock: Callable[[], float] = time.time):
        self._store: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._max_entries = max_entries
        self._clock = clock

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() > expires_at:
                del self._store[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: int = 300) -> None:
        with self._lock:
            now = self._clock()
            # Evict expired entries first to stay under limit
            if key not in self._store and len(self._store) >= self._max_entries:
                expired = [k for k, (exp, _) in self._store.items() if now > exp]
                for k in expired:
                    del self._store[k]
            # If still at limit, evict the entry closest to expiry
            if key not in self._store and len(self._store) >= self._max_entries:
                oldest_key = min(self._store, key=lambda k: self._store[k][0])
                del self._store[oldest_key]
            self._store[key] = (now + ttl, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def invalidate(self, prefix: str) -> int:
        """Remove all keys starting with prefix. Returns count removed."""
        with self._lock:
            keys = [k for k in self._store if k.startswith(prefix)]
            for k in keys:
                del self._store[k]
            return len(keys)

    def __len__(self) -> int:
        return len(self._store)


analytics_cache = TTLCache(max_entries=get_settings().cache_max_entries)
