"""
Testes do dispatcher: single-flight, prioridade, cache e cancelamento.
"""

import asyncio

import pytest

from app.services.concurrency_manager.priority_queue import Priority
from app.services.discovery.dispatcher import CACHE_DEGRADED_WARNING
from app.services.discovery.exceptions import CacheUnavailable, NoResults, TransportError
from app.services.discovery.models import ResultSource
from app.services.discovery_manager.cache_store import CacheStore
from tests.fakes import FakeProvider, company_hits, microsoft_hits


class DownStore(CacheStore):
    """Store durável fora do ar em todas as operações."""

    async def get(self, term):
        raise CacheUnavailable("timeout")

    async def upsert(self, term, results, ttl):
        raise CacheUnavailable("timeout")

    async def add_hits(self, term, count=1):
        raise CacheUnavailable("timeout")

    async def delete(self, term):
        raise CacheUnavailable("timeout")

    async def cleanup_expired(self, grace):
        raise CacheUnavailable("timeout")

    async def count(self):
        raise CacheUnavailable("timeout")


async def _until(predicate, attempts: int = 100):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condição não atingida")


@pytest.mark.asyncio
async def test_identical_terms_share_one_execution(service_factory):
    gate = asyncio.Event()
    brave = FakeProvider("brave", hits=microsoft_hits(), gate=gate)
    dispatcher = service_factory([brave]).dispatcher

    tasks = [
        asyncio.create_task(dispatcher.submit(term))
        for term in ["Microsoft", "microsoft", "  MICROSOFT ", "Microsoft", "microsoft  "]
    ]
    await _until(lambda: brave.calls)
    gate.set()
    results = await asyncio.gather(*tasks)

    assert len(brave.calls) == 1
    assert all(r.results == results[0].results for r in results)
    assert all(r.search_term == "microsoft" for r in results)
    assert dispatcher.get_status().providers["coalesced"] == 4


@pytest.mark.asyncio
async def test_high_priority_runs_before_normal_and_low(service_factory):
    gate = asyncio.Event()
    brave = FakeProvider("brave", hits=company_hits, gate=gate, gated_terms=["blocker"])
    dispatcher = service_factory([brave], num_workers=1).dispatcher

    blocker = asyncio.create_task(dispatcher.submit("blocker"))
    await _until(lambda: brave.calls)
    low = asyncio.create_task(dispatcher.submit("gamma", Priority.LOW))
    normal = asyncio.create_task(dispatcher.submit("beta", Priority.NORMAL))
    high = asyncio.create_task(dispatcher.submit("alpha", Priority.HIGH))
    await _until(lambda: dispatcher.get_status().queue_length == 3)

    gate.set()
    await asyncio.gather(blocker, low, normal, high)

    assert brave.calls == ["blocker", "alpha", "beta", "gamma"]


@pytest.mark.asyncio
async def test_duplicate_with_higher_priority_promotes_queued_request(service_factory):
    gate = asyncio.Event()
    brave = FakeProvider("brave", hits=company_hits, gate=gate, gated_terms=["blocker"])
    dispatcher = service_factory([brave], num_workers=1).dispatcher

    blocker = asyncio.create_task(dispatcher.submit("blocker"))
    await _until(lambda: brave.calls)
    late = asyncio.create_task(dispatcher.submit("late", Priority.LOW))
    middle = asyncio.create_task(dispatcher.submit("middle", Priority.NORMAL))
    await _until(lambda: dispatcher.get_status().queue_length == 2)
    promoted = asyncio.create_task(dispatcher.submit("late", Priority.HIGH))
    await _until(lambda: dispatcher.get_status().providers["coalesced"] == 1)

    gate.set()
    first, _, second = await asyncio.gather(late, middle, promoted)

    assert brave.calls == ["blocker", "late", "middle"]
    assert first.results == second.results


@pytest.mark.asyncio
async def test_abandoned_call_still_populates_cache(service_factory):
    gate = asyncio.Event()
    brave = FakeProvider("brave", hits=microsoft_hits(), gate=gate)
    dispatcher = service_factory([brave]).dispatcher

    task = asyncio.create_task(dispatcher.submit("Microsoft"))
    await _until(lambda: brave.calls)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    gate.set()
    await _until(lambda: not dispatcher.get_status().in_flight)
    entry = await dispatcher.cache.inspect("microsoft")
    assert entry is not None and entry.results[0].confidence == 0.95

    again = await dispatcher.submit("Microsoft")
    assert again.cached
    assert len(brave.calls) == 1


@pytest.mark.asyncio
async def test_warm_cache_is_idempotent(service_factory):
    brave = FakeProvider("brave", hits=microsoft_hits())
    service = service_factory([brave])
    dispatcher = service.dispatcher

    first = await dispatcher.submit("Microsoft")
    second = await dispatcher.submit("microsoft")

    assert first.source == ResultSource.PROVIDER and not first.cached
    assert second.source == ResultSource.CACHE and second.cached
    assert second.results == first.results
    assert len(brave.calls) == 1
    assert dispatcher.get_status().requests_today == 1


@pytest.mark.asyncio
async def test_empty_authoritative_answer_is_cached(service_factory):
    brave = FakeProvider("brave", hits=[])
    dispatcher = service_factory([brave]).dispatcher

    with pytest.raises(NoResults):
        await dispatcher.submit("XYZ-Nonexistent-12345")
    with pytest.raises(NoResults):
        await dispatcher.submit("xyz-nonexistent-12345")

    assert len(brave.calls) == 1


@pytest.mark.asyncio
async def test_url_guess_is_not_cached(service_factory):
    brave = FakeProvider("brave", delay=1.0)
    dispatcher = service_factory([brave], provider_timeout=0.05).dispatcher

    result = await dispatcher.submit("Acme Corp")

    assert result.source == ResultSource.URL_GUESS
    assert result.results[0].confidence == 0.3
    assert await dispatcher.cache.inspect("acme corp") is None


@pytest.mark.asyncio
async def test_cache_outage_degrades_to_providers(service_factory):
    brave = FakeProvider("brave", hits=microsoft_hits())
    dispatcher = service_factory([brave], cache_store=DownStore()).dispatcher

    result = await dispatcher.submit("Microsoft")

    assert result.results[0].confidence == 0.95
    assert CACHE_DEGRADED_WARNING in result.warnings
    assert dispatcher.get_status().providers["cache_degraded"] >= 1


@pytest.mark.asyncio
async def test_batch_submit_maps_failures_to_empty(service_factory):
    brave = FakeProvider(
        "brave", hits=lambda term: company_hits(term) if term != "ghost co" else []
    )
    dispatcher = service_factory([brave]).dispatcher

    results = await dispatcher.batch_submit(["acme", "ghost co"])

    assert [c.vanity_name for c in results["acme"]] == ["acme"]
    assert results["ghost co"] == []


@pytest.mark.asyncio
async def test_status_has_no_side_effects(service_factory):
    brave = FakeProvider("brave", hits=company_hits)
    dispatcher = service_factory([brave]).dispatcher
    await dispatcher.submit("acme")

    first = dispatcher.get_status().to_dict()
    second = dispatcher.get_status().to_dict()

    assert first == second
    assert first["queue_length"] == 0
    assert first["in_flight"] == 0
    assert first["requests_today"] == 1
    assert first["remaining_quota"] == {"brave": 499}


@pytest.mark.asyncio
async def test_stop_fails_pending_requests(service_factory):
    gate = asyncio.Event()
    brave = FakeProvider("brave", hits=company_hits, gate=gate)
    dispatcher = service_factory([brave], num_workers=1).dispatcher

    running = asyncio.create_task(dispatcher.submit("acme"))
    await _until(lambda: brave.calls)
    queued = asyncio.create_task(dispatcher.submit("globex"))
    await _until(lambda: dispatcher.get_status().queue_length == 1)

    await dispatcher.stop(timeout=0.05)

    for task in (running, queued):
        with pytest.raises(TransportError):
            await task
    assert not dispatcher.running
