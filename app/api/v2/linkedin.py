"""
Endpoints LinkedIn Discovery v2.

Falhas de discovery retornam corpo tipado com `manual_entry: true` para
que o cliente ofereça entrada manual da URL.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.schemas.v2.linkedin import (
    AnalyticsDay,
    AnalyticsResponse,
    BatchDiscoverRequest,
    BatchDiscoverResponse,
    CacheCleanupResponse,
    CacheInvalidateResponse,
    CandidateSchema,
    DiscoverRequest,
    DiscoverResponse,
    DiscoveryErrorResponse,
    HealthResponse,
    MetricRequest,
    MetricResponse,
    QueueStatusResponse,
    ValidateUrlRequest,
    ValidateUrlResponse,
)
from app.services.discovery.discovery_service import LinkedInDiscoveryService, get_discovery_service
from app.services.discovery.exceptions import (
    InvalidInput,
    NoResults,
    QuotaExhausted,
    TransportError,
)
from app.services.discovery.models import CandidateResult, SkipReason, UserAction
from app.services.discovery_manager.rate_limiter import ClientRateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/linkedin")

_client_limiter: Optional[ClientRateLimiter] = None


def get_client_limiter() -> ClientRateLimiter:
    """Limite por cliente do /discover (singleton)."""
    global _client_limiter
    if _client_limiter is None:
        _client_limiter = ClientRateLimiter(max_requests=settings.LINKEDIN_CLIENT_HOURLY_LIMIT)
    return _client_limiter


def _client_key(request: Request) -> str:
    user_id = request.headers.get("X-User-Id")
    if user_id:
        return f"user:{user_id}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


def _error(status_code: int, error: str, message: str, search_term: Optional[str] = None,
           retry_after: Optional[int] = None) -> JSONResponse:
    body = DiscoveryErrorResponse(
        error=error, message=message, search_term=search_term, retry_after=retry_after
    )
    headers = {"Retry-After": str(retry_after)} if retry_after else None
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


def _candidate(service: LinkedInDiscoveryService, candidate: CandidateResult) -> CandidateSchema:
    return CandidateSchema(**candidate.to_dict(), suggestion=service.classify(candidate))


@router.post(
    "/discover",
    response_model=DiscoverResponse,
    responses={
        400: {"model": DiscoveryErrorResponse},
        404: {"model": DiscoveryErrorResponse},
        429: {"model": DiscoveryErrorResponse},
        503: {"model": DiscoveryErrorResponse},
    },
)
async def discover_linkedin(
    body: DiscoverRequest,
    request: Request,
    service: LinkedInDiscoveryService = Depends(get_discovery_service),
    limiter: ClientRateLimiter = Depends(get_client_limiter),
):
    """
    Descobre a página LinkedIn de uma empresa.

    Returns:
        DiscoverResponse com até 3 candidatos

    Erros:
        400 nome inválido, 404 sem resultados, 429 limite do cliente,
        503 providers indisponíveis ou quota esgotada
    """
    allowed, retry_after = limiter.check(_client_key(request))
    if not allowed:
        return _error(
            429, "rate_limited", "Limite de buscas por hora atingido", retry_after=retry_after
        )

    logger.info(f"📥 Requisição LinkedIn discovery recebida: '{body.company_name}'")
    try:
        result = await service.discover_detailed(body.company_name, body.priority)
    except InvalidInput as e:
        return _error(400, "invalid_input", str(e))
    except NoResults as e:
        return _error(404, "no_results", str(e), search_term=e.search_term)
    except QuotaExhausted as e:
        return _error(503, "quota_exhausted", str(e), search_term=e.search_term)
    except TransportError as e:
        return _error(503, "transport_error", str(e), search_term=e.search_term)

    return DiscoverResponse(
        results=[_candidate(service, c) for c in result.results],
        cached=result.cached,
        search_term=result.search_term,
        source=result.source.value,
        provider=result.provider,
        warnings=result.warnings,
        response_time_ms=result.response_time_ms,
    )


@router.post("/discover/batch", response_model=BatchDiscoverResponse)
async def discover_linkedin_batch(
    body: BatchDiscoverRequest,
    service: LinkedInDiscoveryService = Depends(get_discovery_service),
) -> BatchDiscoverResponse:
    """Discovery em lote com prioridade alta; falhas viram lista vazia."""
    logger.info(f"📥 Batch LinkedIn discovery: {len(body.company_names)} empresas")
    results = await service.batch_discover(body.company_names)
    return BatchDiscoverResponse(
        results={
            name: [_candidate(service, c) for c in candidates]
            for name, candidates in results.items()
        },
        total=len(results),
        found=sum(1 for candidates in results.values() if candidates),
    )


@router.get("/status", response_model=QueueStatusResponse)
async def discovery_status(
    service: LinkedInDiscoveryService = Depends(get_discovery_service),
) -> QueueStatusResponse:
    """Snapshot da fila, quota e providers."""
    return QueueStatusResponse(**service.get_queue_status().to_dict())


@router.post("/metrics", response_model=MetricResponse, status_code=202)
async def record_metric(
    body: MetricRequest,
    service: LinkedInDiscoveryService = Depends(get_discovery_service),
) -> MetricResponse:
    """Registra a ação do usuário (gravação em background)."""
    accepted = service.record_outcome(
        search_term=body.search_term,
        user_action=UserAction(body.user_action),
        result_count=body.result_count,
        selected_url=body.selected_url,
        selection_confidence=body.selection_confidence,
        response_time_ms=body.response_time_ms,
        skip_reason=SkipReason(body.skip_reason) if body.skip_reason else None,
        user_id=body.user_id,
    )
    return MetricResponse(accepted=accepted, status="accepted" if accepted else "dropped")


@router.get("/analytics", response_model=AnalyticsResponse)
async def discovery_analytics(
    days: int = Query(7, ge=1, le=90, description="Janela em dias"),
    service: LinkedInDiscoveryService = Depends(get_discovery_service),
) -> AnalyticsResponse:
    """Agregados diários: buscas, taxa de sucesso e ações do usuário."""
    daily = await service.analytics(days)
    return AnalyticsResponse(days=days, daily=[AnalyticsDay(**row) for row in daily])


@router.post("/validate-url", response_model=ValidateUrlResponse)
async def validate_url(
    body: ValidateUrlRequest,
    service: LinkedInDiscoveryService = Depends(get_discovery_service),
) -> ValidateUrlResponse:
    valid = service.validate_manual_url(body.url)
    return ValidateUrlResponse(
        url=body.url,
        valid=valid,
        message=(
            "URL de empresa LinkedIn válida" if valid
            else "Use o formato https://www.linkedin.com/company/nome-da-empresa"
        ),
    )


@router.delete("/cache/{term}", response_model=CacheInvalidateResponse)
async def invalidate_cache(
    term: str,
    service: LinkedInDiscoveryService = Depends(get_discovery_service),
):
    try:
        removed = await service.invalidate(term)
    except InvalidInput as e:
        return _error(400, "invalid_input", str(e))
    return CacheInvalidateResponse(search_term=term, removed=removed)


@router.post("/cache/cleanup", response_model=CacheCleanupResponse)
async def cleanup_cache(
    service: LinkedInDiscoveryService = Depends(get_discovery_service),
) -> CacheCleanupResponse:
    """Remove entradas expiradas há mais de 1 dia."""
    return CacheCleanupResponse(deleted=await service.cleanup_cache())


@router.get("/cache/status")
async def cache_status(
    service: LinkedInDiscoveryService = Depends(get_discovery_service),
) -> dict:
    return await service.cache_status()


@router.get("/health", response_model=HealthResponse)
async def health(
    service: LinkedInDiscoveryService = Depends(get_discovery_service),
):
    report = await service.health_check()
    status_code = 503 if report["status"] == "unhealthy" else 200
    return JSONResponse(status_code=status_code, content=HealthResponse(**report).model_dump())
