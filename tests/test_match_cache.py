"""Tests for the opportunity-scoped match cache."""

from datetime import datetime, timedelta, timezone

import pytest

from api.config import ScoringWeights, TierThresholds
from api.errors import RetrievalUnavailable
from api.services import MatchCache, ScoringEngine
from index.memory import InMemoryCacheStore


class FakeClock:
    def __init__(self):
        self.now = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)

    def utc_now(self):
        return self.now

    def timestamp(self):
        return self.now.timestamp()


class FailingStore:
    async def get(self, key):
        raise RetrievalUnavailable("cache down")

    async def set(self, key, value, ttl_seconds):
        raise RetrievalUnavailable("cache down")

    async def delete(self, key):
        raise RetrievalUnavailable("cache down")

    async def delete_prefix(self, prefix):
        raise RetrievalUnavailable("cache down")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    store = InMemoryCacheStore(clock=clock.timestamp)
    return MatchCache(store, ttl_seconds=3600, clock=clock.utc_now)


@pytest.fixture
def matches(make_candidate, make_opportunity):
    engine = ScoringEngine(ScoringWeights(), TierThresholds())
    opportunity = make_opportunity()
    return [
        engine.score(make_candidate(id=cid), opportunity, 0.9) for cid in ["a", "b"]
    ]


class Counter:
    def __init__(self, result):
        self.calls = 0
        self.result = result

    async def __call__(self):
        self.calls += 1
        return self.result


@pytest.mark.asyncio
async def test_compute_once_within_ttl(cache, matches):
    compute = Counter(matches)

    first = await cache.get_or_compute("opp_1", compute)
    second = await cache.get_or_compute("opp_1", compute)

    assert compute.calls == 1
    assert first == matches
    assert second == matches

    stats = cache.stats()
    assert stats.hits == 1
    assert stats.misses == 1
    assert stats.hit_rate == 50.0


@pytest.mark.asyncio
async def test_recompute_after_expiry(cache, clock, matches):
    compute = Counter(matches)

    await cache.get_or_compute("opp_1", compute)
    clock.advance(3599)
    await cache.get_or_compute("opp_1", compute)
    assert compute.calls == 1

    clock.advance(2)
    await cache.get_or_compute("opp_1", compute)
    assert compute.calls == 2


@pytest.mark.asyncio
async def test_entries_are_opportunity_scoped(cache, matches):
    compute = Counter(matches)

    await cache.get_or_compute("opp_1", compute)
    await cache.get_or_compute("opp_2", compute)

    assert compute.calls == 2


@pytest.mark.asyncio
async def test_invalidate(cache, matches):
    compute = Counter(matches)

    await cache.get_or_compute("opp_1", compute)
    await cache.get_or_compute("opp_2", compute)
    await cache.invalidate("opp_1")

    _, hit = await cache.lookup_or_compute("opp_1", compute)
    assert not hit
    _, hit = await cache.lookup_or_compute("opp_2", compute)
    assert hit

    assert await cache.invalidate_all() == 2
    assert await cache.get("opp_1") is None


@pytest.mark.asyncio
async def test_corrupt_entry_is_a_miss(cache, matches):
    await cache.store.set(MatchCache.key("opp_1"), "{not json", 3600)
    compute = Counter(matches)

    result = await cache.get_or_compute("opp_1", compute)

    assert result == matches
    assert compute.calls == 1


@pytest.mark.asyncio
async def test_store_failure_degrades_to_compute(matches):
    cache = MatchCache(FailingStore(), ttl_seconds=3600)
    compute = Counter(matches)

    result = await cache.get_or_compute("opp_1", compute)

    assert result == matches
    assert cache.stats().misses == 1


@pytest.mark.asyncio
async def test_compute_failure_is_not_cached(cache, matches):
    async def broken():
        raise RuntimeError("retrieval exploded")

    with pytest.raises(RuntimeError):
        await cache.get_or_compute("opp_1", broken)

    assert await cache.get("opp_1") is None


def test_stats_without_traffic(cache):
    stats = cache.stats()
    assert stats.hit_rate == 0.0

    cache.hits = 1
    cache.misses = 2
    assert cache.stats().hit_rate == 33.33

    cache.reset_stats()
    assert cache.stats().hits == 0
