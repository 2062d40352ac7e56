"""
Schemas Pydantic para os endpoints LinkedIn Discovery v2.
"""
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field, ConfigDict


PriorityLiteral = Literal["high", "normal", "low"]


class DiscoverRequest(BaseModel):
    """
    Request schema para discovery de LinkedIn.

    Campos:
        company_name: Nome livre da empresa - obrigatório
        priority: Prioridade na fila ('high', 'normal', 'low')
    """
    # Validação de tamanho fica no serviço (InvalidInput -> 400)
    company_name: Optional[str] = Field(None, description="Nome da empresa")
    priority: PriorityLiteral = Field("normal", description="Prioridade na fila de discovery")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "company_name": "Microsoft",
                "priority": "normal"
            }
        }
    )


class CandidateSchema(BaseModel):
    """Candidato LinkedIn pontuado."""
    url: str = Field(..., description="URL canônica da página da empresa")
    vanity_name: str = Field(..., description="Segmento /company/{vanity}")
    company_name: str = Field(..., description="Nome extraído do título do resultado")
    description: str = Field("", description="Snippet do resultado (até 200 caracteres)")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Confiança do candidato")
    suggestion: Literal["auto", "suggested", "low"] = Field(
        "low", description="Nível de sugestão: auto (>= 0.9), suggested (>= 0.7) ou low"
    )


class DiscoverResponse(BaseModel):
    """
    Response schema do discovery.

    Campos:
        results: Até 3 candidatos ordenados por confiança
        cached: True se veio do cache
        search_term: Termo normalizado usado como chave
        source: 'cache', 'provider' ou 'url_guess'
        provider: Provider que respondeu (quando houver)
        warnings: Avisos de degradação (ex: 'cache_unavailable')
    """
    results: List[CandidateSchema] = Field(default_factory=list)
    cached: bool = Field(False, description="Resultado servido pelo cache")
    search_term: str = Field(..., description="Termo normalizado")
    source: str = Field(..., description="Origem: cache, provider ou url_guess")
    provider: Optional[str] = Field(None, description="Provider que respondeu")
    warnings: List[str] = Field(default_factory=list, description="Avisos de degradação")
    response_time_ms: int = Field(0, description="Latência do discovery")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "results": [
                    {
                        "url": "https://www.linkedin.com/company/microsoft/",
                        "vanity_name": "microsoft",
                        "company_name": "Microsoft",
                        "description": "Every company has a mission...",
                        "confidence": 0.95,
                        "suggestion": "auto"
                    }
                ],
                "cached": False,
                "search_term": "microsoft",
                "source": "provider",
                "provider": "brave",
                "warnings": [],
                "response_time_ms": 812
            }
        }
    )


class DiscoveryErrorResponse(BaseModel):
    """Corpo tipado das falhas de discovery (sempre oferece entrada manual)."""
    error: Literal["invalid_input", "no_results", "transport_error", "quota_exhausted", "rate_limited"]
    message: str
    manual_entry: bool = True
    search_term: Optional[str] = None
    retry_after: Optional[int] = None


class BatchDiscoverRequest(BaseModel):
    """Request schema para discovery em lote (prioridade alta)."""
    company_names: List[Any] = Field(..., min_length=1, max_length=50, description="Nomes das empresas")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "company_names": ["Microsoft", "Google", "Nubank"]
            }
        }
    )


class BatchDiscoverResponse(BaseModel):
    """Nome -> candidatos (lista vazia quando não encontrado ou inválido)."""
    results: Dict[str, List[CandidateSchema]]
    total: int
    found: int


class QueueStatusResponse(BaseModel):
    """Snapshot da fila de discovery."""
    queue_length: int
    requests_today: int
    requests_this_month: int
    in_flight: int
    processed: int = 0
    failed: int = 0
    remaining_quota: Dict[str, int] = Field(default_factory=dict)
    providers: Dict[str, Any] = Field(default_factory=dict)


class MetricRequest(BaseModel):
    """
    Request schema para registrar a ação do usuário.

    Campos:
        search_term: Termo buscado
        user_action: 'selected', 'manual_entry' ou 'skipped'
        result_count: Quantidade de candidatos exibidos
        selected_url: URL escolhida (seleção ou entrada manual)
        selection_confidence: Confiança do candidato escolhido
        skip_reason: 'no_results', 'user_cancel' ou 'error'
    """
    search_term: str = Field(..., min_length=1)
    user_action: Literal["selected", "manual_entry", "skipped"]
    result_count: int = Field(0, ge=0)
    selected_url: Optional[str] = None
    selection_confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    skip_reason: Optional[Literal["no_results", "user_cancel", "error"]] = None
    response_time_ms: int = Field(0, ge=0)
    user_id: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "search_term": "microsoft",
                "user_action": "selected",
                "result_count": 3,
                "selected_url": "https://www.linkedin.com/company/microsoft/",
                "selection_confidence": 0.95,
                "response_time_ms": 812
            }
        }
    )


class MetricResponse(BaseModel):
    accepted: bool
    status: str = "accepted"


class AnalyticsDay(BaseModel):
    date: str
    total_searches: int
    successful_searches: int
    avg_results_per_search: float
    auto_selections: int
    manual_entries: int
    skipped_searches: int
    avg_response_time_ms: float


class AnalyticsResponse(BaseModel):
    """Agregados diários das métricas, do dia mais recente ao mais antigo."""
    days: int
    daily: List[AnalyticsDay]


class ValidateUrlRequest(BaseModel):
    url: str = Field(..., description="URL informada manualmente")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"url": "https://www.linkedin.com/company/microsoft/"}
        }
    )


class ValidateUrlResponse(BaseModel):
    url: str
    valid: bool
    message: str


class CacheInvalidateResponse(BaseModel):
    search_term: str
    removed: bool


class CacheCleanupResponse(BaseModel):
    deleted: int


class HealthResponse(BaseModel):
    """Health check: healthy, degraded ou unhealthy."""
    status: Literal["healthy", "degraded", "unhealthy"]
    timestamp: str
    checks: Dict[str, bool]
    metrics: Dict[str, int]
    version: str
    errors: Optional[List[str]] = None
