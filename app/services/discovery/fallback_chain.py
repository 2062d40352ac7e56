"""
Fallback Chain - Executa os providers em ordem até obter resultado.

Por tier de rede:
1. Provider sem credenciais -> pula
2. Circuit breaker aberto -> pula
3. Token bucket sem token -> pula
4. Quota negada -> pula (nenhum incremento)
5. Chamada com timeout por tentativa; falha recuperável avança a cadeia

O URL guess só entra quando nenhum tier de rede respondeu. Se algum tier
respondeu com zero resultados utilizáveis, o resultado é NoResults.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

from app.core.constants import DEFAULT_PROVIDER_TIMEOUT
from app.services.discovery_manager.circuit_breaker import CircuitBreaker
from app.services.discovery_manager.quota_tracker import QuotaTracker
from app.services.discovery_manager.rate_limiter import TokenBucketRateLimiter
from app.services.discovery_manager.retry_policy import RetryPolicy
from app.services.discovery_manager.search_providers import SearchProvider, UrlGuessProvider
from .exceptions import (
    NoResults,
    ProviderError,
    ProviderTimeout,
    ProviderUnavailable,
    QuotaDenied,
    QuotaExhausted,
    TransportError,
)
from .models import CandidateResult, ResultSource
from .scorer import build_candidates

logger = logging.getLogger(__name__)


@dataclass
class ProviderTier:
    """Um provider de rede com seus controles de taxa e volume."""
    provider: SearchProvider
    quota: QuotaTracker
    limiter: Optional[TokenBucketRateLimiter] = None

    @property
    def name(self) -> str:
        return self.provider.name


@dataclass
class ChainOutcome:
    """Resultado de uma execução da cadeia."""
    results: List[CandidateResult]
    source: ResultSource
    provider: Optional[str]
    attempts: int = 0
    skipped: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    elapsed_ms: int = 0

    @property
    def authoritative(self) -> bool:
        """True se veio de um provider de rede (pode ir para o cache)."""
        return self.source == ResultSource.PROVIDER


class FallbackChain:
    """
    Cadeia Brave -> Serper -> Google CSE -> URL guess.

    Cada tentativa (inclusive retries) passa por pacing e quota; a mesma
    RetryPolicy vale para todos os tiers.
    """

    def __init__(
        self,
        tiers: List[ProviderTier],
        url_guess: Optional[UrlGuessProvider] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = DEFAULT_PROVIDER_TIMEOUT,
        pacing_timeout: float = 0.5,
    ):
        self.tiers = list(tiers)
        self.url_guess = url_guess
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self.pacing_timeout = pacing_timeout

    @property
    def url_guess_enabled(self) -> bool:
        return self.url_guess is not None and self.url_guess.is_available()

    async def _call(self, tier: ProviderTier, term: str):
        try:
            return await asyncio.wait_for(tier.provider.search(term), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise ProviderTimeout(tier.name, f"timeout após {self.timeout}s") from exc

    async def run(self, term: str) -> ChainOutcome:
        """
        Executa a cadeia para um termo já normalizado.

        Raises:
            NoResults: Algum tier respondeu, mas sem resultados utilizáveis
                (ou o URL guess não conseguiu montar um slug)
            QuotaExhausted: Quota negada em todos os tiers e URL guess desabilitado
            TransportError: Todos os tiers falharam e URL guess desabilitado
        """
        start = time.perf_counter()
        outcome = ChainOutcome(results=[], source=ResultSource.PROVIDER, provider=None)
        answered = False
        quota_denied = False
        transport_failed = False

        for tier in self.tiers:
            if not tier.provider.is_available():
                outcome.skipped.append(f"{tier.name}:unavailable")
                continue
            if not self.circuit_breaker.allow_request(tier.name):
                outcome.skipped.append(f"{tier.name}:circuit_open")
                transport_failed = True
                continue

            attempt = 0
            while True:
                attempt += 1
                if tier.limiter is not None and not await tier.limiter.acquire(timeout=self.pacing_timeout):
                    outcome.skipped.append(f"{tier.name}:paced")
                    transport_failed = True
                    break
                if not await tier.quota.try_reserve():
                    outcome.skipped.append(f"{tier.name}:quota")
                    logger.info(f"[Chain] {QuotaDenied(tier.name, 'quota negada, pulando tier')}")
                    quota_denied = True
                    break

                outcome.attempts += 1
                try:
                    hits = await self._call(tier, term)
                except ProviderUnavailable as exc:
                    outcome.skipped.append(f"{tier.name}:unavailable")
                    logger.warning(f"⚠️ [Chain] {exc}")
                    break
                except ProviderError as exc:
                    self.circuit_breaker.record_failure(tier.name)
                    outcome.errors.append(str(exc))
                    logger.warning(f"⚠️ [Chain] {tier.name} falhou (tentativa {attempt}): {exc}")
                    if self.retry_policy.should_retry(exc, attempt):
                        await self.retry_policy.wait(attempt, exc)
                        continue
                    transport_failed = True
                    break

                self.circuit_breaker.record_success(tier.name)
                answered = True
                candidates = build_candidates(hits, term)
                if candidates:
                    outcome.results = candidates
                    outcome.provider = tier.name
                    outcome.elapsed_ms = int((time.perf_counter() - start) * 1000)
                    logger.info(
                        f"🔍 [Chain] '{term}' resolvido por {tier.name}: "
                        f"{len(candidates)} candidatos (top={candidates[0].confidence})"
                    )
                    return outcome
                logger.info(f"[Chain] {tier.name}: nenhum resultado utilizável para '{term}'")
                break

        outcome.elapsed_ms = int((time.perf_counter() - start) * 1000)

        if answered:
            raise NoResults(term)

        if self.url_guess_enabled:
            guessed = await self.url_guess.guess(term)
            if not guessed:
                raise NoResults(term, authoritative=False)
            outcome.results = guessed
            outcome.source = ResultSource.URL_GUESS
            outcome.provider = self.url_guess.name
            logger.warning(
                f"⚠️ [Chain] '{term}': nenhum provider de rede respondeu "
                f"({', '.join(outcome.skipped + outcome.errors) or 'sem providers'}), usando URL guess"
            )
            return outcome

        if quota_denied and not transport_failed:
            logger.error(f"❌ [Chain] Quota esgotada para '{term}'")
            raise QuotaExhausted(term)

        logger.error(f"❌ [Chain] Todos os providers falharam para '{term}'")
        raise TransportError(term, outcome.errors or outcome.skipped)

    def get_status(self) -> dict:
        return {
            "tiers": [
                {
                    "name": tier.name,
                    "available": tier.provider.is_available(),
                    "quota": tier.quota.get_status(),
                    "circuit": self.circuit_breaker.get_provider_status(tier.name),
                    "rate_limiter": tier.limiter.get_status() if tier.limiter else None,
                }
                for tier in self.tiers
            ],
            "url_guess_enabled": self.url_guess_enabled,
            "timeout": self.timeout,
            "retry": self.retry_policy.get_status(),
        }
