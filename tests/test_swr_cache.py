"""
Stale-while-revalidate cache tests.

Guards against:
1. Callers blocking on background revalidation
2. Duplicate revalidations for the same key
3. A failed revalidation leaving its key flagged forever
"""
import asyncio

import pytest

from app.utils.cache import TTLCache
from app.utils.swr_cache import CacheCoordinator, build_cache_key


def _run(coro):
    """Run an async coroutine in a sync test."""
    return asyncio.run(coro)


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class Counter:
    """Async compute function that returns v1, v2, ..."""

    def __init__(self, fail_after=None):
        self.calls = 0
        self.fail_after = fail_after

    async def __call__(self):
        self.calls += 1
        if self.fail_after is not None and self.calls > self.fail_after:
            raise RuntimeError("store unavailable")
        return f"v{self.calls}"


def _coordinator():
    clock = FakeClock()
    cache = TTLCache(max_entries=10, clock=clock)
    return CacheCoordinator(cache, clock=clock), clock


# ---------------------------------------------------------------------------
# Cache key
# ---------------------------------------------------------------------------

def test_cache_key_sorted_and_drops_empty():
    key = build_cache_key("analytics:summary", {"seller": "renato", "category": "", "aging_15": None, "late_days": 20})
    assert key == "analytics:summary|late_days=20&seller=renato"


def test_cache_key_independent_of_insertion_order():
    a = build_cache_key("p", {"a": 1, "b": "x"})
    b = build_cache_key("p", {"b": "x", "a": 1})
    assert a == b


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------

def test_miss_computes_and_stores():
    async def scenario():
        coordinator, _ = _coordinator()
        compute = Counter()
        first = await coordinator.get_cached("k", compute, revalidate_after_ms=60_000, ttl_seconds=600)
        second = await coordinator.get_cached("k", compute, revalidate_after_ms=60_000, ttl_seconds=600)
        return first, second, compute.calls

    assert _run(scenario()) == ("v1", "v1", 1)


def test_stale_hit_returns_stale_and_revalidates_once():
    async def scenario():
        coordinator, clock = _coordinator()
        compute = Counter()
        await coordinator.get_cached("k", compute, 60_000, 600)

        clock.advance(61)
        stale_a = await coordinator.get_cached("k", compute, 60_000, 600)
        stale_b = await coordinator.get_cached("k", compute, 60_000, 600)
        flagged = coordinator.is_revalidating("k")

        await coordinator.wait_idle()
        fresh = await coordinator.get_cached("k", compute, 60_000, 600)
        return stale_a, stale_b, flagged, fresh, compute.calls, coordinator.is_revalidating("k")

    stale_a, stale_b, flagged, fresh, calls, still_flagged = _run(scenario())
    assert stale_a == stale_b == "v1"
    assert flagged is True
    assert fresh == "v2"
    assert calls == 2
    assert still_flagged is False


def test_failed_revalidation_releases_key():
    async def scenario():
        coordinator, clock = _coordinator()
        compute = Counter(fail_after=1)
        await coordinator.get_cached("k", compute, 60_000, 600)

        clock.advance(120)
        stale = await coordinator.get_cached("k", compute, 60_000, 600)
        await coordinator.wait_idle()
        released = not coordinator.is_revalidating("k")

        # The next stale read retries
        again = await coordinator.get_cached("k", compute, 60_000, 600)
        await coordinator.wait_idle()
        return stale, released, again, compute.calls

    stale, released, again, calls = _run(scenario())
    assert stale == "v1"
    assert released is True
    assert again == "v1"
    assert calls == 3


def test_miss_propagates_compute_errors():
    async def scenario():
        coordinator, _ = _coordinator()
        compute = Counter(fail_after=0)
        await coordinator.get_cached("k", compute, 60_000, 600)

    with pytest.raises(RuntimeError):
        _run(scenario())


def test_prime_overwrites_entry():
    async def scenario():
        coordinator, _ = _coordinator()
        compute = Counter()
        await coordinator.get_cached("k", compute, 60_000, 600)
        coordinator.prime("k", "primed", 600)
        return await coordinator.get_cached("k", compute, 60_000, 600)

    assert _run(scenario()) == "primed"


# ---------------------------------------------------------------------------
# TTL backend
# ---------------------------------------------------------------------------

class TestTTLCache:

    def test_expiry(self):
        clock = FakeClock()
        cache = TTLCache(clock=clock)
        cache.set("a", 1, ttl=10)
        assert cache.get("a") == 1
        clock.advance(11)
        assert cache.get("a") is None

    def test_evicts_closest_to_expiry(self):
        clock = FakeClock()
        cache = TTLCache(max_entries=2, clock=clock)
        cache.set("short", 1, ttl=5)
        cache.set("long", 2, ttl=500)
        cache.set("new", 3, ttl=100)
        assert cache.get("short") is None
        assert cache.get("long") == 2
        assert cache.get("new") == 3

    def test_invalidate_prefix(self):
        cache = TTLCache()
        cache.set("analytics:summary|a=1", 1)
        cache.set("analytics:summary|", 2)
        cache.set("other", 3)
        assert cache.invalidate("analytics:") == 2
        assert len(cache) == 1

    def test_delete(self):
        cache = TTLCache()
        cache.set("a", 1)
        cache.delete("a")
        cache.delete("missing")
        assert cache.get("a") is None
