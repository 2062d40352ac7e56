"""
LinkedIn Discovery Service - Facade do discovery.

Valida e normaliza o nome da empresa, delega ao dispatcher e expõe as
operações auxiliares (status, métricas, validação de URL manual, cache,
health check). `get_discovery_service()` é a raiz de composição usada
pela API; testes montam o serviço com `build_discovery_service(...)`.
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from app.core.config import settings
from app.core.constants import MIN_TERM_LENGTH, VERSION
from app.core.database import is_database_configured, test_connection
from app.services.concurrency_manager.config_loader import get_section
from app.services.concurrency_manager.priority_queue import Priority
from app.services.discovery_manager.cache_store import CacheStore, InMemoryCacheStore
from app.services.discovery_manager.circuit_breaker import CircuitBreaker
from app.services.discovery_manager.quota_tracker import QuotaTracker
from app.services.discovery_manager.rate_limiter import TokenBucketRateLimiter
from app.services.discovery_manager.retry_policy import RetryPolicy
from app.services.discovery_manager.search_cache import SearchCache
from app.services.discovery_manager.search_providers import (
    SearchProvider,
    UrlGuessProvider,
    build_default_providers,
)
from .dispatcher import DiscoveryDispatcher
from .exceptions import CacheUnavailable, InvalidInput
from .fallback_chain import FallbackChain, ProviderTier
from .metrics_recorder import InMemoryMetricsSink, MetricsRecorder, MetricsSink
from .models import (
    CandidateResult,
    CompanyLinkedInRecord,
    DiscoveryMethod,
    DiscoveryResult,
    QueueStatus,
    SearchMetric,
    SkipReason,
    UserAction,
    collapse_whitespace,
    utcnow,
)
from .scorer import is_valid_linkedin_company_url

logger = logging.getLogger(__name__)


def validate_company_name(company_name: Any) -> str:
    """
    Valida e normaliza (trim + espaços colapsados) o nome da empresa.

    Raises:
        InvalidInput: None, não-string, vazio ou com menos de 2 caracteres
    """
    if company_name is None or not isinstance(company_name, str):
        raise InvalidInput("Nome da empresa é obrigatório")
    term = collapse_whitespace(company_name)
    if len(term) < MIN_TERM_LENGTH:
        raise InvalidInput(
            f"Nome da empresa deve ter pelo menos {MIN_TERM_LENGTH} caracteres"
        )
    return term


def _parse_priority(priority: Any) -> Priority:
    try:
        return Priority.parse(priority)
    except (ValueError, KeyError) as e:
        raise InvalidInput(str(e)) from e


class LinkedInDiscoveryService:
    """
    Facade do LinkedIn Discovery.

    Só InvalidInput, NoResults, TransportError e QuotaExhausted chegam ao
    chamador; o resto é tratado pela cadeia e pelo dispatcher.
    """

    def __init__(
        self,
        dispatcher: DiscoveryDispatcher,
        metrics: MetricsRecorder,
        company_writer: Optional[Any] = None,
        clock: Optional[Callable[[], datetime]] = None,
        confidence_threshold: Optional[float] = None,
        auto_select_threshold: Optional[float] = None,
    ):
        self.dispatcher = dispatcher
        self.metrics = metrics
        self.company_writer = company_writer
        self._clock = clock or utcnow
        self.confidence_threshold = (
            confidence_threshold if confidence_threshold is not None
            else settings.LINKEDIN_CONFIDENCE_THRESHOLD
        )
        self.auto_select_threshold = (
            auto_select_threshold if auto_select_threshold is not None
            else settings.LINKEDIN_AUTO_SELECT_THRESHOLD
        )
        self._started_at = time.monotonic()

    # ========== CICLO DE VIDA ==========

    async def start(self):
        await self.dispatcher.start()
        logger.info("✅ LinkedIn Discovery iniciado")

    async def stop(self):
        await self.dispatcher.stop()
        await self.metrics.flush()
        for tier in self.dispatcher.chain.tiers:
            await tier.provider.close()
        logger.info("🔌 LinkedIn Discovery parado")

    # ========== DISCOVERY ==========

    async def discover_detailed(self, company_name: Any, priority: Any = "normal") -> DiscoveryResult:
        """
        Descobre a página LinkedIn e devolve o resultado completo
        (origem, provider, avisos, latência).
        """
        term = validate_company_name(company_name)
        prio = _parse_priority(priority)
        logger.info(f"🔍 Discovery: '{term}' (prioridade={prio.name})")
        return await self.dispatcher.submit(term, prio)

    async def discover(self, company_name: Any, priority: Any = "normal") -> List[CandidateResult]:
        """
        Descobre candidatos LinkedIn para o nome da empresa.

        Args:
            company_name: Nome livre da empresa
            priority: "high", "normal" ou "low"

        Returns:
            Candidatos ordenados por confiança (no máximo 3)

        Raises:
            InvalidInput: Nome inválido (nada é enfileirado)
            NoResults: Busca concluída sem resultados utilizáveis
            TransportError: Todos os providers falharam
            QuotaExhausted: Quota esgotada e URL guess desabilitado
        """
        result = await self.discover_detailed(company_name, priority)
        return result.results

    async def batch_discover(self, company_names: Sequence[Any]) -> Dict[str, List[CandidateResult]]:
        """
        Discovery em lote com prioridade alta.

        Nomes inválidos e buscas sem resultado mapeiam para lista vazia.
        """
        results: Dict[str, List[CandidateResult]] = {}
        valid: List[str] = []
        for name in company_names:
            try:
                valid.append(validate_company_name(name))
            except InvalidInput:
                results[str(name)] = []
        if valid:
            results.update(await self.dispatcher.batch_submit(valid, Priority.HIGH))
        return results

    def get_queue_status(self) -> QueueStatus:
        return self.dispatcher.get_status()

    def should_auto_select(self, candidate: CandidateResult) -> bool:
        return candidate.confidence >= self.auto_select_threshold

    def classify(self, candidate: CandidateResult) -> str:
        """
        Nível de sugestão exibido ao usuário.

        Returns:
            "auto" (seleção automática), "suggested" (acima do threshold
            de confiança) ou "low"
        """
        if self.should_auto_select(candidate):
            return "auto"
        if candidate.confidence >= self.confidence_threshold:
            return "suggested"
        return "low"

    # ========== MÉTRICAS ==========

    def record_outcome(
        self,
        search_term: str,
        user_action: UserAction,
        result_count: int = 0,
        selected_url: Optional[str] = None,
        selection_confidence: Optional[float] = None,
        response_time_ms: int = 0,
        skip_reason: Optional[SkipReason] = None,
        user_id: Optional[str] = None,
    ) -> bool:
        """Registra a ação do usuário (fire-and-forget)."""
        return self.metrics.record(SearchMetric(
            search_term=search_term,
            user_action=UserAction(user_action),
            result_count=result_count,
            response_time_ms=response_time_ms,
            selected_url=selected_url,
            selection_confidence=selection_confidence,
            skip_reason=SkipReason(skip_reason) if skip_reason else None,
            user_id=user_id,
        ))

    async def analytics(self, days: int = 7) -> List[Dict[str, Any]]:
        """
        Agregados diários das métricas (buscas, sucesso, ações do usuário).

        Raises:
            InvalidInput: days menor que 1
        """
        if not isinstance(days, int) or days < 1:
            raise InvalidInput("days deve ser um inteiro >= 1")
        return await self.metrics.sink.daily_analytics(days)

    # ========== ENTRADA MANUAL / REGISTRO DA EMPRESA ==========

    @staticmethod
    def validate_manual_url(url: Optional[str]) -> bool:
        return is_valid_linkedin_company_url(url)

    def build_company_record(
        self,
        selected: Optional[CandidateResult] = None,
        manual_url: Optional[str] = None,
    ) -> CompanyLinkedInRecord:
        """
        Monta os campos LinkedIn do registro da empresa.

        URL manual tem precedência sobre o candidato selecionado; sem
        nenhum dos dois o método é "none".

        Raises:
            InvalidInput: URL manual fora do formato de página de empresa
        """
        now = self._clock()
        if manual_url is not None:
            url = manual_url.strip()
            if not self.validate_manual_url(url):
                raise InvalidInput(f"URL LinkedIn inválida: {manual_url}")
            return CompanyLinkedInRecord(
                linkedin_url=url,
                discovery_method=DiscoveryMethod.MANUAL,
                confidence=None,
                last_verified_at=now,
            )
        if selected is not None:
            return CompanyLinkedInRecord(
                linkedin_url=selected.url,
                discovery_method=DiscoveryMethod.AUTO,
                confidence=selected.confidence,
                last_verified_at=now,
            )
        return CompanyLinkedInRecord(linkedin_url=None, discovery_method=DiscoveryMethod.NONE)

    async def save_company_record(self, company_id: Any, record: CompanyLinkedInRecord) -> bool:
        if self.company_writer is None:
            logger.warning("⚠️ Nenhum writer de empresas configurado, registro não persistido")
            return False
        return await self.company_writer.write(company_id, record)

    # ========== CACHE ==========

    async def invalidate(self, company_name: Any) -> bool:
        term = validate_company_name(company_name)
        return await self.dispatcher.cache.invalidate(term)

    async def cleanup_cache(self) -> int:
        return await self.dispatcher.cache.cleanup_expired()

    async def cache_status(self) -> dict:
        status = self.dispatcher.cache.get_status()
        try:
            status["entries"] = await self.dispatcher.cache.store.count()
            status["available"] = True
        except CacheUnavailable as e:
            logger.warning(f"⚠️ Cache durável indisponível: {e}")
            status["entries"] = None
            status["available"] = False
        return status

    # ========== HEALTH ==========

    async def health_check(self) -> dict:
        """
        Status geral: healthy (todos os checks ok), degraded (>= metade)
        ou unhealthy.
        """
        start = time.perf_counter()
        errors: List[str] = []

        if is_database_configured():
            database_ok = await test_connection()
            if not database_ok:
                errors.append("Banco de dados inacessível")
        else:
            database_ok = True

        providers_ok = any(t.provider.is_available() for t in self.dispatcher.chain.tiers)
        if not providers_ok:
            errors.append("Nenhum provider de busca configurado")

        queue_ok = self.dispatcher.running
        if not queue_ok:
            errors.append("Fila de discovery parada")

        checks = {"database": database_ok, "providers": providers_ok, "queue": queue_ok}
        healthy = sum(checks.values())
        if healthy == len(checks):
            status = "healthy"
        elif healthy >= len(checks) * 0.5:
            status = "degraded"
        else:
            status = "unhealthy"

        return {
            "status": status,
            "timestamp": self._clock().isoformat(),
            "checks": checks,
            "metrics": {
                "response_time_ms": int((time.perf_counter() - start) * 1000),
                "uptime_seconds": int(time.monotonic() - self._started_at),
            },
            "version": VERSION,
            "errors": errors or None,
        }


def build_discovery_service(
    providers: Optional[List[SearchProvider]] = None,
    url_guess: Optional[UrlGuessProvider] = None,
    cache_store: Optional[CacheStore] = None,
    metrics_sink: Optional[MetricsSink] = None,
    company_writer: Optional[Any] = None,
    quota_trackers: Optional[Dict[str, QuotaTracker]] = None,
    rate_limiters: Optional[Dict[str, Optional[TokenBucketRateLimiter]]] = None,
    circuit_breaker: Optional[CircuitBreaker] = None,
    retry_policy: Optional[RetryPolicy] = None,
    provider_timeout: Optional[float] = None,
    clock: Optional[Callable[[], datetime]] = None,
    num_workers: Optional[int] = None,
    cache_empty_results: Optional[bool] = None,
    memory_cache_entries: Optional[int] = None,
) -> LinkedInDiscoveryService:
    """
    Monta o serviço com dependências explícitas.

    Qualquer dependência omitida é criada a partir de settings e de
    app/configs/discovery.json.
    """
    queue_cfg = get_section("discovery/queue", {})
    cache_cfg = get_section("discovery/cache", {})
    breaker_cfg = get_section("discovery/circuit_breaker", {})
    limiter_cfg = get_section("discovery/rate_limiter", {})
    metrics_cfg = get_section("discovery/metrics", {})

    providers = providers if providers is not None else build_default_providers()
    quota_trackers = quota_trackers or {}
    rate_limiters = rate_limiters if rate_limiters is not None else {}

    # Orçamento global do processo: tiers sem tracker injetado dividem o mesmo
    shared_quota: Optional[QuotaTracker] = None

    tiers: List[ProviderTier] = []
    for provider in providers:
        quota = quota_trackers.get(provider.name)
        if quota is None:
            if shared_quota is None:
                shared_quota = QuotaTracker(
                    daily_limit=settings.LINKEDIN_DAILY_LIMIT,
                    monthly_limit=settings.LINKEDIN_MONTHLY_LIMIT,
                    name="global",
                    clock=clock,
                )
            quota = shared_quota
        if provider.name in rate_limiters:
            limiter = rate_limiters[provider.name]
        else:
            provider_cfg = get_section(f"discovery/providers/{provider.name}", {})
            limiter = TokenBucketRateLimiter(
                requests_per_minute=provider_cfg.get("requests_per_minute", 10),
                max_burst=provider_cfg.get("max_burst", 5),
                name=provider.name,
            )
        tiers.append(ProviderTier(provider=provider, quota=quota, limiter=limiter))

    chain = FallbackChain(
        tiers=tiers,
        url_guess=url_guess if url_guess is not None else UrlGuessProvider(),
        circuit_breaker=circuit_breaker or CircuitBreaker(
            failure_threshold=breaker_cfg.get("failure_threshold", 5),
            recovery_timeout=breaker_cfg.get("recovery_timeout", 60.0),
            half_open_max_tests=breaker_cfg.get("half_open_max_tests", 1),
        ),
        retry_policy=retry_policy or RetryPolicy.from_config(),
        timeout=provider_timeout if provider_timeout is not None else settings.LINKEDIN_PROVIDER_TIMEOUT,
        pacing_timeout=limiter_cfg.get("acquire_timeout", 0.5),
    )

    if cache_store is None:
        if is_database_configured():
            from app.services.database_service import PostgresCacheStore
            cache_store = PostgresCacheStore()
        else:
            cache_store = InMemoryCacheStore(clock=clock)

    if metrics_sink is None:
        if is_database_configured():
            from app.services.database_service import PostgresMetricsSink
            metrics_sink = PostgresMetricsSink()
        else:
            metrics_sink = InMemoryMetricsSink()

    if company_writer is None and is_database_configured():
        from app.services.database_service import PostgresCompanyRecordWriter
        company_writer = PostgresCompanyRecordWriter()

    cache = SearchCache(
        store=cache_store,
        ttl=timedelta(days=settings.LINKEDIN_CACHE_TTL_DAYS),
        memory_max_entries=memory_cache_entries,
        clock=clock,
    )
    dispatcher = DiscoveryDispatcher(
        chain=chain,
        cache=cache,
        num_workers=num_workers if num_workers is not None else queue_cfg.get("num_workers", 5),
        max_size=queue_cfg.get("max_size", 1000),
        cache_empty_results=(
            cache_empty_results if cache_empty_results is not None
            else cache_cfg.get("cache_empty_results", True)
        ),
    )
    metrics = MetricsRecorder(sink=metrics_sink, max_pending=metrics_cfg.get("max_pending", 500))
    return LinkedInDiscoveryService(
        dispatcher=dispatcher,
        metrics=metrics,
        company_writer=company_writer,
        clock=clock,
    )


# Singleton
_discovery_service: Optional[LinkedInDiscoveryService] = None


def get_discovery_service() -> LinkedInDiscoveryService:
    """
    Retorna instância singleton do LinkedInDiscoveryService.

    Returns:
        LinkedInDiscoveryService: Serviço montado a partir do ambiente
    """
    global _discovery_service
    if _discovery_service is None:
        _discovery_service = build_discovery_service()
    return _discovery_service


def set_discovery_service(service: Optional[LinkedInDiscoveryService]) -> None:
    """Substitui o singleton (testes e composição customizada)."""
    global _discovery_service
    _discovery_service = service
