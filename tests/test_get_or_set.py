"""
Tests for CacheManager.get_or_set() single-flight read-through.

Async scenarios are driven with asyncio.run() from plain test functions.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from memo_cache import CacheHooks, CacheManager, MissEvent, MissReason, SetEvent


class TestBasicFunctionality:
    def test_returns_cached_value_without_fetching(self):
        cache = CacheManager()
        cache.set("key", "cached-value")
        fetcher = MagicMock(return_value="fetched-value")

        assert asyncio.run(cache.get_or_set("key", fetcher)) == "cached-value"
        fetcher.assert_not_called()

    def test_fetches_and_caches_on_miss(self):
        cache = CacheManager()
        fetcher = MagicMock(return_value="fetched-value")

        assert asyncio.run(cache.get_or_set("key", fetcher)) == "fetched-value"
        fetcher.assert_called_once_with()
        assert cache.get("key") == "fetched-value"

    def test_async_fetcher(self):
        cache = CacheManager()

        async def fetcher():
            await asyncio.sleep(0.01)
            return "async-value"

        assert asyncio.run(cache.get_or_set("key", fetcher)) == "async-value"
        assert cache.get("key") == "async-value"

    def test_fetcher_returning_awaitable(self):
        cache = CacheManager()

        async def load():
            return "loaded"

        assert asyncio.run(cache.get_or_set("key", lambda: load())) == "loaded"

    def test_caches_none(self):
        cache = CacheManager()
        fetcher = MagicMock(return_value=None)

        assert asyncio.run(cache.get_or_set("key", fetcher)) is None
        assert cache.has("key") is True

        assert asyncio.run(cache.get_or_set("key", lambda: "should-not-be-called")) is None
        fetcher.assert_called_once()


class TestSingleFlight:
    def test_fetcher_runs_once_for_concurrent_callers(self):
        cache = CacheManager()
        fetch_count = 0

        async def fetcher():
            nonlocal fetch_count
            fetch_count += 1
            await asyncio.sleep(0.05)
            return "fetched-value"

        async def scenario():
            return await asyncio.gather(*(cache.get_or_set("key", fetcher) for _ in range(5)))

        results = asyncio.run(scenario())

        assert fetch_count == 1
        assert results == ["fetched-value"] * 5

    def test_all_waiters_get_identical_object(self):
        cache = CacheManager()

        async def fetcher():
            await asyncio.sleep(0.01)
            return {"payload": object()}

        async def scenario():
            return await asyncio.gather(*(cache.get_or_set("key", fetcher) for _ in range(3)))

        results = asyncio.run(scenario())
        assert results[0] is results[1] is results[2]

    def test_new_fetch_after_completion(self):
        cache = CacheManager()
        fetch_count = 0

        async def fetcher():
            nonlocal fetch_count
            fetch_count += 1
            return f"value-{fetch_count}"

        async def scenario():
            first = await cache.get_or_set("key", fetcher)
            cache.delete("key")
            second = await cache.get_or_set("key", fetcher)
            return first, second

        assert asyncio.run(scenario()) == ("value-1", "value-2")
        assert fetch_count == 2

    def test_different_keys_fetch_independently(self):
        cache = CacheManager()
        calls: list[str] = []

        def make_fetcher(key):
            async def fetcher():
                calls.append(key)
                await asyncio.sleep(0.01)
                return f"value-{key}"

            return fetcher

        async def scenario():
            return await asyncio.gather(
                cache.get_or_set("a", make_fetcher("a")),
                cache.get_or_set("b", make_fetcher("b")),
                cache.get_or_set("a", make_fetcher("a")),
            )

        assert asyncio.run(scenario()) == ["value-a", "value-b", "value-a"]
        assert sorted(calls) == ["a", "b"]


class TestErrorHandling:
    def test_propagates_fetcher_error(self):
        cache = CacheManager()

        async def fetcher():
            raise ValueError("Fetch failed")

        with pytest.raises(ValueError, match="Fetch failed"):
            asyncio.run(cache.get_or_set("key", fetcher))

    def test_propagates_sync_fetcher_error(self):
        cache = CacheManager()

        def fetcher():
            raise ValueError("Sync failure")

        with pytest.raises(ValueError, match="Sync failure"):
            asyncio.run(cache.get_or_set("key", fetcher))

    def test_does_not_cache_errors(self):
        cache = CacheManager()
        attempts = 0

        async def fetcher():
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise ValueError("First attempt fails")
            return "success"

        with pytest.raises(ValueError):
            asyncio.run(cache.get_or_set("key", fetcher))
        assert cache.has("key") is False

        assert asyncio.run(cache.get_or_set("key", fetcher)) == "success"
        assert attempts == 2

    def test_error_reaches_every_waiter(self):
        cache = CacheManager()
        fetch_count = 0

        async def fetcher():
            nonlocal fetch_count
            fetch_count += 1
            await asyncio.sleep(0.02)
            raise ValueError("Shared error")

        async def scenario():
            return await asyncio.gather(
                *(cache.get_or_set("key", fetcher) for _ in range(3)),
                return_exceptions=True,
            )

        results = asyncio.run(scenario())

        assert fetch_count == 1
        assert all(isinstance(r, ValueError) for r in results)
        assert results[0] is results[1] is results[2]

    def test_sync_fetcher_raising_stop_iteration(self):
        cache = CacheManager()

        def fetcher():
            raise StopIteration

        with pytest.raises(RuntimeError):
            asyncio.run(cache.get_or_set("key", fetcher))
        assert cache.has("key") is False

        assert asyncio.run(cache.get_or_set("key", lambda: "value")) == "value"

    def test_registration_cleared_after_error(self):
        cache = CacheManager()
        fetcher = MagicMock(side_effect=[RuntimeError("down"), "recovered"])

        async def scenario():
            with pytest.raises(RuntimeError):
                await cache.get_or_set("key", fetcher)
            return await cache.get_or_set("key", fetcher)

        assert asyncio.run(scenario()) == "recovered"
        assert fetcher.call_count == 2


class TestCancellation:
    def test_cancelled_waiter_does_not_cancel_fetch(self):
        cache = CacheManager()

        async def scenario():
            started = asyncio.Event()
            release = asyncio.Event()

            async def fetcher():
                started.set()
                await release.wait()
                return "value"

            leader = asyncio.create_task(cache.get_or_set("key", fetcher))
            await started.wait()
            waiter = asyncio.create_task(cache.get_or_set("key", fetcher))
            await asyncio.sleep(0)

            waiter.cancel()
            release.set()

            assert await leader == "value"
            with pytest.raises(asyncio.CancelledError):
                await waiter

        asyncio.run(scenario())
        assert cache.get("key") == "value"

    def test_cancelled_leader_cancels_waiters(self):
        cache = CacheManager()
        fetch_count = 0

        async def scenario():
            started = asyncio.Event()

            async def slow_fetcher():
                nonlocal fetch_count
                fetch_count += 1
                started.set()
                await asyncio.sleep(10)
                return "never"

            leader = asyncio.create_task(cache.get_or_set("key", slow_fetcher))
            await started.wait()
            waiter = asyncio.create_task(cache.get_or_set("key", slow_fetcher))
            await asyncio.sleep(0)

            leader.cancel()
            with pytest.raises(asyncio.CancelledError):
                await leader
            with pytest.raises(asyncio.CancelledError):
                await waiter

            # A fresh call starts a new fetch
            return await cache.get_or_set("key", lambda: "fresh")

        assert asyncio.run(scenario()) == "fresh"
        assert fetch_count == 1
        assert cache.get("key") == "fresh"


class TestHooks:
    def test_hit_fires_on_hit(self):
        on_hit = MagicMock()
        cache = CacheManager(hooks=CacheHooks(on_hit=on_hit))
        cache.set("key", "value")

        asyncio.run(cache.get_or_set("key", lambda: "other"))

        on_hit.assert_called_once()

    def test_miss_fires_before_fetch(self):
        order: list[str] = []
        cache = CacheManager(hooks=CacheHooks(on_miss=lambda e: order.append("miss")))

        def fetcher():
            order.append("fetch")
            return "value"

        asyncio.run(cache.get_or_set("key", fetcher))

        assert order == ["miss", "fetch"]

    def test_set_fires_after_fetch(self):
        on_set = MagicMock()
        cache = CacheManager(hooks=CacheHooks(on_set=on_set))

        asyncio.run(cache.get_or_set("key", lambda: "value"))

        on_set.assert_called_once_with(SetEvent("key", "value", is_update=False))

    def test_no_set_when_fetch_fails(self):
        on_set = MagicMock()
        cache = CacheManager(hooks=CacheHooks(on_set=on_set))

        def fetcher():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            asyncio.run(cache.get_or_set("key", fetcher))
        on_set.assert_not_called()

    def test_one_miss_for_concurrent_callers(self):
        on_miss = MagicMock()
        cache = CacheManager(hooks=CacheHooks(on_miss=on_miss))

        async def fetcher():
            await asyncio.sleep(0.02)
            return "value"

        async def scenario():
            await asyncio.gather(*(cache.get_or_set("key", fetcher) for _ in range(3)))

        asyncio.run(scenario())

        on_miss.assert_called_once_with(MissEvent("key", MissReason.NOT_FOUND))


class TestExpirationAndEviction:
    def test_refetches_after_expiry(self, fake_clock):
        cache = CacheManager(ttl=1000)
        fetcher = MagicMock(side_effect=["first", "second"])

        assert asyncio.run(cache.get_or_set("key", fetcher)) == "first"
        fake_clock.advance(500)
        assert asyncio.run(cache.get_or_set("key", fetcher)) == "first"
        fake_clock.advance(501)
        assert asyncio.run(cache.get_or_set("key", fetcher)) == "second"
        assert fetcher.call_count == 2

    def test_evicts_when_full(self):
        cache = CacheManager(max_size=2)

        async def scenario():
            await cache.get_or_set("a", lambda: 1)
            await cache.get_or_set("b", lambda: 2)
            await cache.get_or_set("c", lambda: 3)

        asyncio.run(scenario())

        assert cache.keys() == ["b", "c"]
        assert cache.get_stats().evictions == 1

    def test_hit_updates_lru_order(self):
        cache = CacheManager(max_size=2)

        async def scenario():
            await cache.get_or_set("a", lambda: 1)
            await cache.get_or_set("b", lambda: 2)
            await cache.get_or_set("a", lambda: 99)
            await cache.get_or_set("c", lambda: 3)

        asyncio.run(scenario())

        assert cache.keys() == ["a", "c"]


class TestStatistics:
    def test_hit_counted(self):
        cache = CacheManager()
        cache.set("key", "value")
        asyncio.run(cache.get_or_set("key", lambda: "other"))
        assert cache.get_stats().hits == 1

    def test_miss_counted(self):
        cache = CacheManager()
        asyncio.run(cache.get_or_set("key", lambda: "value"))
        stats = cache.get_stats()
        assert stats.misses == 1
        assert stats.hits == 0

    def test_one_miss_for_concurrent_callers(self):
        cache = CacheManager()

        async def fetcher():
            await asyncio.sleep(0.02)
            return "value"

        async def scenario():
            await asyncio.gather(*(cache.get_or_set("key", fetcher) for _ in range(4)))

        asyncio.run(scenario())

        assert cache.get_stats().misses == 1
