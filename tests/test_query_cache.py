"""Unit tests for the in-memory query cache."""

import asyncio

import pytest

from coach_crm.cache import QueryCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_prefix_invalidation_marks_only_matching_keys_stale():
    cache = QueryCache()
    cache.set(("lead", "L1"), {"id": "L1"})
    cache.set(("leads", None), [])
    cache.set(("customer", "C1"), {"id": "C1"})

    invalidated = cache.invalidate(("lead",))

    assert invalidated == [("lead", "L1")]
    assert not cache.is_fresh(("lead", "L1"))
    assert cache.is_fresh(("leads", None))
    # Stale values stay readable
    assert cache.get(("lead", "L1")) == {"id": "L1"}


def test_predicate_matcher():
    cache = QueryCache()
    cache.set(("leads", "a"), 1)
    cache.set(("leads", "b"), 2)

    assert cache.entries(lambda key: key[-1] == "b") == [(("leads", "b"), 2)]


def test_freshness_expires_with_clock():
    clock = FakeClock()
    cache = QueryCache(stale_after=10, clock=clock)
    cache.set(("k",), 1)

    assert cache.is_fresh(("k",))
    clock.now += 11
    assert not cache.is_fresh(("k",))


@pytest.mark.asyncio
async def test_fetch_returns_fresh_value_without_calling_fetcher():
    cache = QueryCache()
    calls = 0

    async def fetcher():
        nonlocal calls
        calls += 1
        return calls

    assert await cache.fetch(("k",), fetcher) == 1
    assert await cache.fetch(("k",), fetcher) == 1
    cache.invalidate(("k",))
    assert await cache.fetch(("k",), fetcher) == 2
    assert calls == 2


@pytest.mark.asyncio
async def test_superseded_response_is_dropped():
    """An older in-flight fetch must not overwrite a newer result."""
    cache = QueryCache()
    release_slow = asyncio.Event()

    async def slow():
        await release_slow.wait()
        return "old"

    async def fast():
        return "new"

    slow_task = asyncio.create_task(cache.fetch(("k",), slow))
    await asyncio.sleep(0)
    cache.invalidate(("k",))
    assert await cache.fetch(("k",), fast) == "new"

    release_slow.set()
    assert await slow_task == "old"
    assert cache.get(("k",)) == "new"


@pytest.mark.asyncio
async def test_cancel_drops_in_flight_response():
    cache = QueryCache()
    cache.set(("k",), "optimistic")
    cache.invalidate(("k",))
    release = asyncio.Event()

    async def fetcher():
        await release.wait()
        return "server"

    task = asyncio.create_task(cache.fetch(("k",), fetcher))
    await asyncio.sleep(0)
    cache.cancel(("k",))
    release.set()
    await task

    assert cache.get(("k",)) == "optimistic"


@pytest.mark.asyncio
async def test_held_key_is_not_overwritten_by_fetch():
    cache = QueryCache()
    cache.set(("k",), "optimistic")
    cache.invalidate(("k",))
    cache.hold(("k",))

    async def fetcher():
        return "server"

    assert await cache.fetch(("k",), fetcher) == "server"
    assert cache.get(("k",)) == "optimistic"

    cache.release(("k",))
    assert not cache.is_held(("k",))


def test_subscribers_receive_writes_until_unsubscribed():
    cache = QueryCache()
    seen = []
    unsubscribe = cache.subscribe(("k",), lambda key, value: seen.append(value))

    cache.set(("k",), 1)
    unsubscribe()
    cache.set(("k",), 2)

    assert seen == [1]


def test_remove_and_clear():
    cache = QueryCache()
    cache.set(("meeting", "M1"), 1)
    cache.set(("meeting", "M2"), 2)

    cache.remove(("meeting", "M1"))
    assert ("meeting", "M1") not in cache
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_refetch_stale_only_observed_entries():
    cache = QueryCache()
    counts = {"watched": 0, "ignored": 0}

    def make(name):
        async def fetcher():
            counts[name] += 1
            return counts[name]
        return fetcher

    await cache.fetch(("watched",), make("watched"))
    await cache.fetch(("ignored",), make("ignored"))
    cache.subscribe(("watched",), lambda key, value: None)
    cache.invalidate(lambda key: True)

    assert await cache.refetch_stale() == 1
    assert counts == {"watched": 2, "ignored": 1}
    assert cache.get(("watched",)) == 2


@pytest.mark.asyncio
async def test_refetch_stale_keeps_value_when_fetch_fails():
    cache = QueryCache()
    fail = False

    async def fetcher():
        if fail:
            raise RuntimeError("boom")
        return "v1"

    await cache.fetch(("k",), fetcher)
    cache.subscribe(("k",), lambda key, value: None)
    cache.invalidate(("k",))
    fail = True

    assert await cache.refetch_stale() == 0
    assert cache.get(("k",)) == "v1"
