"""
Testes dos endpoints /v2/linkedin com o serviço montado em memória.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.v2.linkedin import get_client_limiter
from app.api.v2.router import router as v2_router
from app.services.discovery.discovery_service import build_discovery_service, get_discovery_service
from app.services.discovery.exceptions import ProviderTransportError
from app.services.discovery.metrics_recorder import InMemoryMetricsSink
from app.services.discovery.models import SearchMetric, UserAction
from app.services.discovery_manager.cache_store import InMemoryCacheStore
from app.services.discovery_manager.circuit_breaker import CircuitBreaker
from app.services.discovery_manager.quota_tracker import QuotaTracker
from app.services.discovery_manager.rate_limiter import ClientRateLimiter
from app.services.discovery_manager.retry_policy import RetryPolicy
from app.services.discovery_manager.search_providers import UrlGuessProvider
from tests.fakes import FakeProvider, company_hits, microsoft_hits


def _responder(term):
    if term.lower() == "microsoft":
        return microsoft_hits()
    if term.lower().startswith("xyz"):
        return []
    return company_hits(term)


def _build_app(provider, clock, url_guess=True, client_limit=20, start=True):
    sink = InMemoryMetricsSink()
    service = build_discovery_service(
        providers=[provider],
        url_guess=UrlGuessProvider(enabled=url_guess),
        cache_store=InMemoryCacheStore(clock=clock),
        metrics_sink=sink,
        quota_trackers={provider.name: QuotaTracker(daily_limit=500, name=provider.name, clock=clock)},
        rate_limiters={provider.name: None},
        circuit_breaker=CircuitBreaker(),
        retry_policy=RetryPolicy(max_attempts=1),
        provider_timeout=0.2,
        clock=clock,
    )
    limiter = ClientRateLimiter(max_requests=client_limit)

    app = FastAPI()
    app.include_router(v2_router, prefix="/v2")
    app.dependency_overrides[get_discovery_service] = lambda: service
    app.dependency_overrides[get_client_limiter] = lambda: limiter

    @app.on_event("startup")
    async def _start():
        if start:
            await service.start()

    @app.on_event("shutdown")
    async def _stop():
        await service.stop()

    return app, sink


@pytest.fixture
def client(clock):
    app, _ = _build_app(FakeProvider("brave", hits=_responder), clock)
    with TestClient(app) as test_client:
        yield test_client


def test_discover_returns_scored_candidates(client):
    response = client.post("/v2/linkedin/discover", json={"company_name": "Microsoft"})

    assert response.status_code == 200
    body = response.json()
    assert body["search_term"] == "microsoft"
    assert body["source"] == "provider"
    assert body["results"][0]["url"] == "https://www.linkedin.com/company/microsoft/"
    assert body["results"][0]["confidence"] == 0.95
    assert body["results"][0]["suggestion"] == "auto"
    assert len(body["results"]) <= 3


def test_second_call_is_cached(client):
    client.post("/v2/linkedin/discover", json={"company_name": "Microsoft"})
    response = client.post("/v2/linkedin/discover", json={"company_name": "  MICROSOFT "})

    assert response.json()["cached"] is True
    assert response.json()["source"] == "cache"


@pytest.mark.parametrize("payload", [{}, {"company_name": "A"}, {"company_name": "   "}])
def test_discover_invalid_name(client, payload):
    response = client.post("/v2/linkedin/discover", json=payload)

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_input"
    assert response.json()["manual_entry"] is True


def test_discover_invalid_priority_is_rejected_by_schema(client):
    response = client.post("/v2/linkedin/discover", json={"company_name": "Acme", "priority": "urgent"})

    assert response.status_code == 422


def test_discover_no_results(client):
    response = client.post("/v2/linkedin/discover", json={"company_name": "XYZ-Nonexistent-12345"})

    assert response.status_code == 404
    body = response.json()
    assert body["error"] == "no_results"
    assert body["manual_entry"] is True
    assert body["search_term"].lower() == "xyz-nonexistent-12345"


def test_discover_transport_error(clock):
    provider = FakeProvider("brave", errors=[ProviderTransportError("brave", "server error (503)", 503)])
    app, _ = _build_app(provider, clock, url_guess=False)

    with TestClient(app) as test_client:
        response = test_client.post("/v2/linkedin/discover", json={"company_name": "Acme"})

    assert response.status_code == 503
    assert response.json()["error"] == "transport_error"
    assert response.json()["manual_entry"] is True


def test_client_rate_limit(clock):
    app, _ = _build_app(FakeProvider("brave", hits=_responder), clock, client_limit=2)

    with TestClient(app) as test_client:
        headers = {"X-User-Id": "user-1"}
        for _ in range(2):
            assert test_client.post(
                "/v2/linkedin/discover", json={"company_name": "Acme"}, headers=headers
            ).status_code == 200
        limited = test_client.post("/v2/linkedin/discover", json={"company_name": "Acme"}, headers=headers)
        other = test_client.post(
            "/v2/linkedin/discover", json={"company_name": "Acme"}, headers={"X-User-Id": "user-2"}
        )

    assert limited.status_code == 429
    assert limited.json()["error"] == "rate_limited"
    assert int(limited.headers["Retry-After"]) > 0
    assert other.status_code == 200


def test_batch(client):
    response = client.post(
        "/v2/linkedin/discover/batch", json={"company_names": ["Microsoft", "XYZ-Nope", "A"]}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert body["found"] == 1
    assert body["results"]["A"] == []
    assert body["results"]["XYZ-Nope"] == []


def test_batch_rejects_empty_list(client):
    assert client.post("/v2/linkedin/discover/batch", json={"company_names": []}).status_code == 422


def test_status_after_discover(client):
    client.post("/v2/linkedin/discover", json={"company_name": "Acme"})

    response = client.get("/v2/linkedin/status")

    assert response.status_code == 200
    body = response.json()
    assert body["queue_length"] == 0
    assert body["in_flight"] == 0
    assert body["requests_today"] == 1
    assert body["remaining_quota"] == {"brave": 499}


@pytest.mark.parametrize(
    "url,valid",
    [
        ("https://www.linkedin.com/company/microsoft/", True),
        ("http://linkedin.com/company/acme-inc", True),
        ("https://www.linkedin.com/in/someone", False),
        ("https://example.com/company/acme", False),
    ],
)
def test_validate_url(client, url, valid):
    response = client.post("/v2/linkedin/validate-url", json={"url": url})

    assert response.status_code == 200
    assert response.json()["valid"] is valid


def test_metrics_are_accepted(clock):
    app, sink = _build_app(FakeProvider("brave", hits=_responder), clock)

    with TestClient(app) as test_client:
        response = test_client.post(
            "/v2/linkedin/metrics",
            json={
                "search_term": "xyz-nonexistent-12345",
                "user_action": "skipped",
                "result_count": 0,
                "skip_reason": "no_results",
            },
        )

    assert response.status_code == 202
    assert response.json()["accepted"] is True
    # O shutdown faz flush das gravações pendentes
    assert sink.records[0].result_count == 0
    assert sink.records[0].skip_reason.value == "no_results"


def test_analytics_aggregates_recorded_metrics(clock):
    app, sink = _build_app(FakeProvider("brave", hits=_responder), clock)
    sink.records.extend([
        SearchMetric(search_term="microsoft", user_action=UserAction.SELECTED, result_count=2, response_time_ms=800),
        SearchMetric(search_term="xyz", user_action=UserAction.SKIPPED, result_count=0, response_time_ms=400),
    ])

    with TestClient(app) as test_client:
        response = test_client.get("/v2/linkedin/analytics", params={"days": 1})
        invalid = test_client.get("/v2/linkedin/analytics", params={"days": 0})

    assert response.status_code == 200
    body = response.json()
    assert body["days"] == 1
    assert len(body["daily"]) == 1
    today = body["daily"][0]
    assert today["total_searches"] == 2
    assert today["successful_searches"] == 1
    assert today["auto_selections"] == 1
    assert today["skipped_searches"] == 1
    assert today["avg_response_time_ms"] == 600.0
    assert invalid.status_code == 422


def test_metrics_reject_unknown_action(client):
    response = client.post("/v2/linkedin/metrics", json={"search_term": "acme", "user_action": "clicked"})

    assert response.status_code == 422


def test_cache_invalidate_and_status(client):
    client.post("/v2/linkedin/discover", json={"company_name": "Acme"})

    assert client.get("/v2/linkedin/cache/status").json()["entries"] == 1

    response = client.delete("/v2/linkedin/cache/Acme")
    assert response.status_code == 200
    assert response.json()["removed"] is True

    assert client.get("/v2/linkedin/cache/status").json()["entries"] == 0
    assert client.delete("/v2/linkedin/cache/A").status_code == 400


def test_cache_cleanup(client, clock):
    client.post("/v2/linkedin/discover", json={"company_name": "Acme"})
    clock.advance(days=9)

    response = client.post("/v2/linkedin/cache/cleanup")

    assert response.status_code == 200
    assert response.json()["deleted"] == 1


def test_health(client):
    response = client.get("/v2/linkedin/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["checks"]["queue"] is True


def test_health_unhealthy(clock):
    app, _ = _build_app(FakeProvider("brave", available=False), clock, start=False)

    with TestClient(app) as test_client:
        response = test_client.get("/v2/linkedin/health")

    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"


def test_v2_root_lists_endpoints(client):
    body = client.get("/v2/").json()

    assert body["endpoints"]["discover"] == "POST /v2/linkedin/discover"
    assert body["endpoints"]["analytics"] == "GET /v2/linkedin/analytics"
