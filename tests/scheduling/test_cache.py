"""Tests for ReadCache — TTL expiry, request coalescing, invalidation."""

from __future__ import annotations

import asyncio
import gc

import pytest

from coachsync.scheduling.cache import ReadCache, cache_key

pytestmark = pytest.mark.unit


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingLoader:
    """Loader that blocks on an event so concurrent callers overlap."""

    def __init__(self, value=None, error: Exception | None = None) -> None:
        self.calls = 0
        self.release = asyncio.Event()
        self.value = value
        self.error = error

    async def __call__(self):
        self.calls += 1
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.value if self.value is not None else {"load": self.calls}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> ReadCache:
    return ReadCache(30, clock=clock)


class TestCacheKey:
    def test_param_order_does_not_matter(self):
        assert cache_key("get", "/api/assignments", {"b": 2, "a": 1}) == cache_key(
            "GET", "/api/assignments", {"a": 1, "b": 2}
        )

    def test_method_and_path_are_part_of_key(self):
        assert cache_key("GET", "/a", {}) != cache_key("GET", "/b", {})
        assert cache_key("GET", "/a", None) == 'GET /a {}'


class TestFreshness:
    async def test_fresh_entry_skips_loader(self, cache, clock):
        loader = CountingLoader()
        loader.release.set()

        first = await cache.get("k", loader)
        clock.advance(29.9)
        second = await cache.get("k", loader)

        assert first == second == {"load": 1}
        assert loader.calls == 1
        assert cache.stats.hits == 1

    async def test_expired_entry_reloads(self, cache, clock):
        loader = CountingLoader()
        loader.release.set()

        await cache.get("k", loader)
        clock.advance(30)
        value = await cache.get("k", loader)

        assert value == {"load": 2}
        assert loader.calls == 2

    async def test_zero_ttl_never_serves_from_cache(self, clock):
        cache = ReadCache(0, clock=clock)
        loader = CountingLoader()
        loader.release.set()
        await cache.get("k", loader)
        await cache.get("k", loader)
        assert loader.calls == 2

    def test_negative_ttl_rejected(self):
        with pytest.raises(ValueError):
            ReadCache(-1)


class TestCoalescing:
    async def test_concurrent_reads_share_one_load(self, cache):
        loader = CountingLoader(value=["row"])

        tasks = [asyncio.create_task(cache.get("k", loader)) for _ in range(10)]
        await asyncio.sleep(0)
        loader.release.set()
        results = await asyncio.gather(*tasks)

        assert loader.calls == 1
        assert all(result is results[0] for result in results)
        assert cache.stats.loads == 1
        assert cache.stats.coalesced == 9

    async def test_failure_is_shared_and_not_cached(self, cache):
        error = ConnectionError("database unavailable")
        loader = CountingLoader(error=error)

        tasks = [asyncio.create_task(cache.get("k", loader)) for _ in range(5)]
        await asyncio.sleep(0)
        loader.release.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert loader.calls == 1
        assert all(result is error for result in results)
        assert len(cache) == 0

        retry = CountingLoader(value="ok")
        retry.release.set()
        assert await cache.get("k", retry) == "ok"
        assert retry.calls == 1

    async def test_cancelled_waiter_does_not_cancel_shared_load(self, cache):
        loader = CountingLoader(value="shared")
        impatient = asyncio.create_task(cache.get("k", loader))
        patient = asyncio.create_task(cache.get("k", loader))
        await asyncio.sleep(0)

        impatient.cancel()
        await asyncio.sleep(0)
        loader.release.set()

        assert await patient == "shared"
        with pytest.raises(asyncio.CancelledError):
            await impatient
        assert loader.calls == 1

    async def test_failed_load_after_all_waiters_cancelled_is_retrieved(self, cache):
        loop = asyncio.get_running_loop()
        reported: list[dict] = []
        previous = loop.get_exception_handler()
        loop.set_exception_handler(lambda _loop, context: reported.append(context))
        try:
            loader = CountingLoader(error=ConnectionError("database unavailable"))
            waiter = asyncio.create_task(cache.get("k", loader))
            await asyncio.sleep(0)

            waiter.cancel()
            await asyncio.sleep(0)
            loader.release.set()
            for _ in range(5):
                await asyncio.sleep(0)

            del loader
            gc.collect()
        finally:
            loop.set_exception_handler(previous)

        assert waiter.cancelled()
        assert cache.stats.failures == 1
        assert len(cache) == 0
        assert not any("never retrieved" in context.get("message", "") for context in reported)

    async def test_different_keys_load_independently(self, cache):
        loader = CountingLoader()
        loader.release.set()
        await asyncio.gather(cache.get("a", loader), cache.get("b", loader))
        assert loader.calls == 2


class TestInvalidation:
    async def test_invalidate_single_key(self, cache):
        loader = CountingLoader()
        loader.release.set()
        await cache.get("a", loader)
        await cache.get("b", loader)

        cache.invalidate("a")

        assert len(cache) == 1
        assert await cache.get("a", loader) == {"load": 3}

    async def test_invalidate_all(self, cache):
        loader = CountingLoader()
        loader.release.set()
        await cache.get("a", loader)
        await cache.get("b", loader)
        cache.invalidate()
        assert len(cache) == 0

    async def test_invalidate_prefix(self, cache):
        loader = CountingLoader()
        loader.release.set()
        await cache.get("GET /api/assignments {1}", loader)
        await cache.get("GET /api/other {}", loader)
        cache.invalidate_prefix("GET /api/assignments ")
        assert len(cache) == 1

    async def test_invalidate_during_load_discards_stale_result(self, cache):
        stale = CountingLoader(value="stale")
        pending = asyncio.create_task(cache.get("k", stale))
        await asyncio.sleep(0)

        cache.invalidate("k")
        fresh = CountingLoader(value="fresh")
        fresh.release.set()
        assert await cache.get("k", fresh) == "fresh"

        stale.release.set()
        assert await pending == "stale"
        assert await cache.get("k", fresh) == "fresh"
        assert fresh.calls == 1
