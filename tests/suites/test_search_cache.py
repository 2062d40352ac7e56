"""
Testes do SearchCache (memória + store durável).
"""

from datetime import timedelta

import pytest

from app.services.discovery.exceptions import CacheUnavailable
from app.services.discovery.models import CandidateResult
from app.services.discovery_manager.cache_store import CacheStore, InMemoryCacheStore
from app.services.discovery_manager.search_cache import SearchCache
from tests.fakes import FakeClock, FakeMonotonic


def _candidate(vanity: str = "microsoft", confidence: float = 0.95) -> CandidateResult:
    return CandidateResult(
        url=f"https://www.linkedin.com/company/{vanity}/",
        vanity_name=vanity,
        company_name=vanity.title(),
        description="",
        confidence=confidence,
    )


class BrokenStore(CacheStore):
    async def get(self, term):
        raise CacheUnavailable("connection refused")

    async def upsert(self, term, results, ttl):
        raise CacheUnavailable("connection refused")

    async def add_hits(self, term, count=1):
        raise CacheUnavailable("connection refused")


@pytest.fixture
def cache_clock():
    return FakeClock()


@pytest.fixture
def store(cache_clock):
    return InMemoryCacheStore(clock=cache_clock)


def _cache(store, clock, **kwargs) -> SearchCache:
    return SearchCache(store=store, clock=clock, monotonic=FakeMonotonic(), **kwargs)


@pytest.mark.asyncio
async def test_round_trip_through_durable_store(store, cache_clock):
    await _cache(store, cache_clock).put("Microsoft", [_candidate()])

    # Outra instância: sem nível de memória, lê do store
    entry = await _cache(store, cache_clock).get("microsoft")

    assert entry is not None
    assert entry.results == [_candidate()]
    assert entry.search_term == "microsoft"


@pytest.mark.asyncio
async def test_keys_are_normalized(store, cache_clock):
    cache = _cache(store, cache_clock)
    await cache.put("  Microsoft   Corp ", [_candidate()])

    assert await cache.get("microsoft corp") is not None
    assert await cache.get("MICROSOFT CORP") is not None


@pytest.mark.asyncio
async def test_expired_entry_is_a_miss_but_inspectable(store, cache_clock):
    cache = _cache(store, cache_clock)
    await cache.put("acme", [_candidate("acme")])

    cache_clock.advance(days=7, seconds=1)

    assert await cache.get("acme") is None
    assert await cache.inspect("acme") is not None
    assert cache.get_status()["misses"] == 1


@pytest.mark.asyncio
async def test_entry_fresh_until_expiry(store, cache_clock):
    cache = _cache(store, cache_clock, memory_max_entries=0)
    await cache.put("acme", [_candidate("acme")])

    cache_clock.advance(days=6, hours=23)

    assert await cache.get("acme") is not None


@pytest.mark.asyncio
async def test_upsert_increments_hit_count(store, cache_clock):
    cache = _cache(store, cache_clock)
    await cache.put("acme", [_candidate("acme")])
    entry = await cache.put("acme", [_candidate("acme", 0.85)])

    assert entry.hit_count == 2
    assert entry.results[0].confidence == 0.85


@pytest.mark.asyncio
async def test_memory_hits_are_flushed_to_store(store, cache_clock):
    cache = _cache(store, cache_clock)
    await cache.put("acme", [_candidate("acme")])

    await cache.get("acme")
    await cache.get("acme")
    assert (await store.get("acme")).hit_count == 1

    flushed = await cache.flush_hits()

    assert flushed == 2
    assert (await store.get("acme")).hit_count == 3
    assert cache.get_status()["memory_hits"] == 2


@pytest.mark.asyncio
async def test_durable_hit_counts_immediately(store, cache_clock):
    await _cache(store, cache_clock).put("acme", [_candidate("acme")])

    await _cache(store, cache_clock).get("acme")

    assert (await store.get("acme")).hit_count == 2


@pytest.mark.asyncio
async def test_memory_lru_eviction(store, cache_clock):
    cache = _cache(store, cache_clock, memory_max_entries=2)
    for name in ["a1", "b2", "c3"]:
        await cache.put(name, [_candidate(name)])

    status = cache.get_status()
    assert status["memory_entries"] == 2
    assert status["evictions"] == 1


@pytest.mark.asyncio
async def test_invalidate(store, cache_clock):
    cache = _cache(store, cache_clock)
    await cache.put("acme", [_candidate("acme")])

    assert await cache.invalidate("ACME")
    assert await cache.get("acme") is None
    assert not await cache.invalidate("acme")


@pytest.mark.asyncio
async def test_cleanup_keeps_recently_expired_entries(store, cache_clock):
    cache = _cache(store, cache_clock)
    await cache.put("old", [_candidate("old")])
    cache_clock.advance(days=3)
    await cache.put("recent", [_candidate("recent")])

    # "old" expirou há 3,5 dias, "recent" há 12 horas
    cache_clock.advance(days=7, hours=12)
    removed = await cache.cleanup_expired()

    assert removed == 1
    assert await store.get("old") is None
    assert await store.get("recent") is not None


@pytest.mark.asyncio
async def test_empty_results_are_cacheable(store, cache_clock):
    cache = _cache(store, cache_clock)
    await cache.put("xyz-nonexistent-12345", [])

    entry = await cache.get("xyz-nonexistent-12345")
    assert entry is not None
    assert entry.results == []


@pytest.mark.asyncio
async def test_store_failure_propagates(cache_clock):
    cache = _cache(BrokenStore(), cache_clock)

    with pytest.raises(CacheUnavailable):
        await cache.get("acme")
    with pytest.raises(CacheUnavailable):
        await cache.put("acme", [_candidate("acme")])


@pytest.mark.asyncio
async def test_custom_ttl(store, cache_clock):
    cache = _cache(store, cache_clock, ttl=timedelta(hours=1))
    entry = await cache.put("acme", [_candidate("acme")])

    assert entry.expires_at - entry.created_at == timedelta(hours=1)
