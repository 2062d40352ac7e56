"""
Módulo de LinkedIn Discovery

Responsável por encontrar a página LinkedIn de uma empresa a partir do
nome, usando providers de busca em cadeia de fallback, score
determinístico e cache.

Infraestrutura (providers, quota, cache, circuit breaker) fica em
app/services/discovery_manager. O facade fica em discovery_service.
"""

from .exceptions import (
    DiscoveryError,
    InvalidInput,
    NoResults,
    TransportError,
    QuotaExhausted,
    CacheUnavailable,
)
from .models import (
    CandidateResult,
    DiscoveryResult,
    QueueStatus,
    SearchMetric,
    UserAction,
    SkipReason,
)
from .scorer import score, build_candidates, is_valid_linkedin_company_url

__all__ = [
    "DiscoveryError",
    "InvalidInput",
    "NoResults",
    "TransportError",
    "QuotaExhausted",
    "CacheUnavailable",
    "CandidateResult",
    "DiscoveryResult",
    "QueueStatus",
    "SearchMetric",
    "UserAction",
    "SkipReason",
    "score",
    "build_candidates",
    "is_valid_linkedin_company_url",
]
