"""
Modelos de dados internos do LinkedIn Discovery.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


_WHITESPACE_RE = re.compile(r"\s+")


def normalize_term(term: str) -> str:
    """Chave de cache: minúsculas, trim e espaços internos colapsados."""
    return _WHITESPACE_RE.sub(" ", term).strip().lower()


def collapse_whitespace(term: str) -> str:
    """Trim + colapsa espaços (preserva caixa para a query enviada ao provider)."""
    return _WHITESPACE_RE.sub(" ", term).strip()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserAction(str, Enum):
    """Ação do usuário após ver os resultados."""
    SELECTED = "selected"
    MANUAL_ENTRY = "manual_entry"
    SKIPPED = "skipped"


class SkipReason(str, Enum):
    NO_RESULTS = "no_results"
    USER_CANCEL = "user_cancel"
    ERROR = "error"


class DiscoveryMethod(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"
    NONE = "none"


class ResultSource(str, Enum):
    """Origem do resultado de um discovery."""
    CACHE = "cache"
    PROVIDER = "provider"
    URL_GUESS = "url_guess"


@dataclass
class RawSearchHit:
    """Resultado bruto de um provider, antes do score."""
    title: str
    url: str
    description: str = ""
    rank: Optional[int] = None  # 1-based; None quando o provider omite
    provider: str = ""


@dataclass
class CandidateResult:
    """Candidato LinkedIn já pontuado."""
    url: str
    vanity_name: str
    company_name: str
    description: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "vanity_name": self.vanity_name,
            "company_name": self.company_name,
            "description": self.description,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CandidateResult":
        return cls(
            url=data["url"],
            vanity_name=data.get("vanity_name") or data.get("vanityName", ""),
            company_name=data.get("company_name") or data.get("companyName", ""),
            description=data.get("description", ""),
            confidence=float(data.get("confidence", 0.0)),
        )


@dataclass
class SearchCacheEntry:
    """Entrada do cache durável, indexada pelo termo normalizado."""
    search_term: str
    results: List[CandidateResult]
    created_at: datetime
    expires_at: datetime
    hit_count: int = 1

    def is_fresh(self, now: datetime) -> bool:
        return now < self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "search_term": self.search_term,
            "results": [r.to_dict() for r in self.results],
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "hit_count": self.hit_count,
        }


@dataclass
class SearchMetric:
    """Registro append-only de uma interação de discovery."""
    search_term: str
    user_action: UserAction
    result_count: int = 0
    response_time_ms: int = 0
    selected_url: Optional[str] = None
    selection_confidence: Optional[float] = None
    skip_reason: Optional[SkipReason] = None
    user_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class QuotaCounter:
    requests_today: int = 0
    requests_this_month: int = 0
    daily_limit: int = 500
    monthly_limit: int = 2000

    @property
    def has_capacity(self) -> bool:
        return (
            self.requests_today < self.daily_limit
            and self.requests_this_month < self.monthly_limit
        )


@dataclass
class CompanyLinkedInRecord:
    """Campos LinkedIn a gravar no registro da empresa."""
    linkedin_url: Optional[str]
    discovery_method: DiscoveryMethod
    confidence: Optional[float] = None
    last_verified_at: Optional[datetime] = None


@dataclass
class DiscoveryResult:
    """Resultado de uma execução do dispatcher."""
    search_term: str
    results: List[CandidateResult] = field(default_factory=list)
    source: ResultSource = ResultSource.PROVIDER
    provider: Optional[str] = None
    cached: bool = False
    warnings: List[str] = field(default_factory=list)
    response_time_ms: int = 0


@dataclass
class QueueStatus:
    """Snapshot da fila (sem efeitos colaterais)."""
    queue_length: int
    requests_today: int
    requests_this_month: int
    in_flight: int
    processed: int = 0
    failed: int = 0
    remaining_quota: Dict[str, int] = field(default_factory=dict)
    providers: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "queue_length": self.queue_length,
            "requests_today": self.requests_today,
            "requests_this_month": self.requests_this_month,
            "in_flight": self.in_flight,
            "processed": self.processed,
            "failed": self.failed,
            "remaining_quota": dict(self.remaining_quota),
            "providers": dict(self.providers),
        }
