"""
Fixtures compartilhadas: settings isolados, relógio controlável e fábrica
do serviço de discovery montado só com dependências em memória.
"""

from typing import Dict, List, Optional

import pytest
import pytest_asyncio

from app.core.config import settings
from app.services.concurrency_manager.config_loader import reset_cache
from app.services.discovery.discovery_service import build_discovery_service
from app.services.discovery.metrics_recorder import InMemoryMetricsSink
from app.services.discovery_manager.cache_store import InMemoryCacheStore
from app.services.discovery_manager.circuit_breaker import CircuitBreaker
from app.services.discovery_manager.quota_tracker import QuotaTracker
from app.services.discovery_manager.retry_policy import RetryPolicy
from app.services.discovery_manager.search_providers import SearchProvider, UrlGuessProvider
from tests.fakes import FakeClock


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Sem banco e com config JSON relida a cada teste."""
    monkeypatch.setattr(settings, "DATABASE_URL", "")
    reset_cache()
    yield
    reset_cache()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def service_factory(clock):
    """
    Monta LinkedInDiscoveryService com providers falsos e stores em
    memória; os serviços criados são parados no teardown.
    """
    created = []

    def _build(
        providers: List[SearchProvider],
        url_guess_enabled: bool = True,
        quota: Optional[QuotaTracker] = None,
        quotas: Optional[Dict[str, QuotaTracker]] = None,
        cache_store=None,
        metrics_sink=None,
        company_writer=None,
        num_workers: int = 5,
        provider_timeout: float = 0.2,
        retry_policy: Optional[RetryPolicy] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        if quotas is None:
            quotas = {p.name: quota for p in providers} if quota is not None else {
                p.name: QuotaTracker(daily_limit=500, monthly_limit=2000, name=p.name, clock=clock)
                for p in providers
            }
        service = build_discovery_service(
            providers=providers,
            url_guess=UrlGuessProvider(enabled=url_guess_enabled),
            cache_store=cache_store or InMemoryCacheStore(clock=clock),
            metrics_sink=metrics_sink or InMemoryMetricsSink(),
            company_writer=company_writer,
            quota_trackers=quotas,
            rate_limiters={p.name: None for p in providers},
            circuit_breaker=circuit_breaker or CircuitBreaker(),
            retry_policy=retry_policy or RetryPolicy(max_attempts=1),
            provider_timeout=provider_timeout,
            clock=clock,
            num_workers=num_workers,
        )
        created.append(service)
        return service

    yield _build

    for service in created:
        await service.stop()
