"""
Discovery Manager - Controle de APIs externas de busca.

Este módulo centraliza a infraestrutura do LinkedIn Discovery:
- Clientes dos providers de busca (Brave, Serper, Google CSE, URL guess)
- Rate limiting por token bucket e limite por cliente
- Quota diária/mensal por provider
- Circuit breaker e política de retry
- Cache de buscas em dois níveis (memória + store durável)

A lógica de negócio de discovery permanece em app/services/discovery/
"""

from .search_providers import (
    SearchProvider,
    BraveSearchProvider,
    SerperSearchProvider,
    GoogleCSEProvider,
    UrlGuessProvider,
    build_default_providers,
)
from .search_cache import SearchCache
from .cache_store import CacheStore, InMemoryCacheStore
from .rate_limiter import TokenBucketRateLimiter, ClientRateLimiter
from .quota_tracker import QuotaTracker
from .circuit_breaker import CircuitBreaker, CircuitState
from .retry_policy import RetryPolicy, parse_retry_after

__all__ = [
    # Providers
    "SearchProvider",
    "BraveSearchProvider",
    "SerperSearchProvider",
    "GoogleCSEProvider",
    "UrlGuessProvider",
    "build_default_providers",
    # Cache
    "SearchCache",
    "CacheStore",
    "InMemoryCacheStore",
    # Rate Limiter / Quota
    "TokenBucketRateLimiter",
    "ClientRateLimiter",
    "QuotaTracker",
    # Resiliência
    "CircuitBreaker",
    "CircuitState",
    "RetryPolicy",
    "parse_retry_after",
]
