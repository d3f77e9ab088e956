"""
Stale-while-revalidate read-through cache.

A hit is always answered from the cache, even when stale. Once an entry is
older than ``revalidate_after_ms`` a single background recomputation per key
is started; callers never wait for it. A miss blocks on ``compute()``.
"""
import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Set

from app.utils.cache import TTLCache
from app.utils.logger import log


def build_cache_key(prefix: str, filters: Mapping[str, Any]) -> str:
    """Stable cache key: drop empty values, sort keys, join as key=value&..."""
    parts = []
    for key in sorted(filters):
        value = filters[key]
        if value is None or value == "":
            continue
        parts.append(f"{key}={value}")
    return f"{prefix}|{'&'.join(parts)}"


class CacheCoordinator:
    """Owns the in-flight revalidation set for one cache backend."""

    def __init__(self, cache: TTLCache, clock: Callable[[], float] = time.time):
        self.cache = cache
        self._clock = clock
        self._in_flight: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()

    def is_revalidating(self, key: str) -> bool:
        return key in self._in_flight

    async def get_cached(
        self,
        key: str,
        compute: Callable[[], Awaitable[Any]],
        revalidate_after_ms: int,
        ttl_seconds: int,
    ) -> Any:
        entry: Optional[Dict[str, Any]] = self.cache.get(key)
        if entry is not None:
            age_ms = (self._clock() - entry["cached_at"]) * 1000
            if age_ms > revalidate_after_ms and key not in self._in_flight:
                # Flag before scheduling so a second caller in the same tick sees it
                self._in_flight.add(key)
                task = asyncio.create_task(self._revalidate(key, compute, ttl_seconds))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
            return entry["data"]

        data = await compute()
        self._store(key, data, ttl_seconds)
        return data

    def prime(self, key: str, data: Any, ttl_seconds: int) -> None:
        """Store freshly computed data (warm-up, forced refresh)."""
        self._store(key, data, ttl_seconds)

    async def wait_idle(self) -> None:
        """Await every pending background revalidation (shutdown/tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _store(self, key: str, data: Any, ttl_seconds: int) -> None:
        self.cache.set(key, {"data": data, "cached_at": self._clock()}, ttl_seconds)

    async def _revalidate(
        self,
        key: str,
        compute: Callable[[], Awaitable[Any]],
        ttl_seconds: int,
    ) -> None:
        try:
            data = await compute()
            self._store(key, data, ttl_seconds)
            log.debug(f"Revalidated cache entry {key}")
        except Exception as e:
            log.warning(f"Background revalidation failed for {key}: {str(e)}")
        finally:
            self._in_flight.discard(key)
