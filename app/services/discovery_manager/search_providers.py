"""
Search Providers - Clientes das APIs de busca usadas no discovery.

Contrato uniforme: `search(term) -> List[RawSearchHit]`, levantando
ProviderTimeout / ProviderTransportError / ProviderUnavailable.

Cadeia padrão:
1. Brave Search (primário)
2. Serper / Google (secundário)
3. Google Custom Search (terciário)
4. URL guess (último recurso, sem I/O e sem quota)

Cada resposta é validada na borda do adapter por um modelo pydantic
próprio do provider; payload malformado vira ProviderTransportError.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Literal, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.core.config import settings
from app.core.constants import LINKEDIN_SEARCH_PREFIX, URL_GUESS_CONFIDENCE
from app.services.concurrency_manager.config_loader import get_section
from app.services.discovery.exceptions import (
    ProviderTimeout,
    ProviderTransportError,
    ProviderUnavailable,
)
from app.services.discovery.models import CandidateResult, RawSearchHit
from app.services.discovery.scorer import canonical_company_url, slugify
from .retry_policy import parse_retry_after

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Formatos de resposta (variantes por provider)
# ---------------------------------------------------------------------------

class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


class BraveWebResult(_Lenient):
    title: str = ""
    url: str
    description: str = ""


class BraveWebSection(_Lenient):
    results: List[BraveWebResult] = Field(default_factory=list)


class BraveResponse(_Lenient):
    kind: Literal["brave"] = "brave"
    web: Optional[BraveWebSection] = None


class SerperOrganicResult(_Lenient):
    title: str = ""
    link: str
    snippet: str = ""
    position: Optional[int] = None


class SerperResponse(_Lenient):
    kind: Literal["serper"] = "serper"
    organic: List[SerperOrganicResult] = Field(default_factory=list)


class GoogleCSEItem(_Lenient):
    title: str = ""
    link: str
    snippet: str = ""


class GoogleCSEResponse(_Lenient):
    kind: Literal["google_cse"] = "google_cse"
    items: List[GoogleCSEItem] = Field(default_factory=list)


def build_query(term: str) -> str:
    """Query enviada aos providers de rede."""
    return f"{LINKEDIN_SEARCH_PREFIX} {term}"


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

class SearchProvider:
    """
    Base dos providers.

    Subclasses de rede implementam `_request()` e `_parse()`. O cliente
    httpx é criado sob demanda e reaproveitado (connection pooling, HTTP/2).
    """

    name: str = "base"

    def __init__(
        self,
        request_timeout: Optional[float] = None,
        connect_timeout: Optional[float] = None,
        max_connections: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        cfg = get_section(f"discovery/providers/{self.name}", {})
        self._request_timeout = request_timeout if request_timeout is not None else cfg.get("request_timeout", 5.0)
        self._connect_timeout = connect_timeout if connect_timeout is not None else cfg.get("connect_timeout", 3.0)
        self._max_connections = max_connections if max_connections is not None else cfg.get("max_connections", 20)
        self._retry_after_max = get_section("discovery/retry", {}).get("retry_after_max", 10.0)
        self._transport = transport

        self._client: Optional[httpx.AsyncClient] = None
        self._client_lock = asyncio.Lock()

        # Métricas
        self._total_requests = 0
        self._successful_requests = 0
        self._failed_requests = 0
        self._rate_limited_requests = 0
        self._total_latency_ms = 0.0

    def is_available(self) -> bool:
        """False quando faltam credenciais; o tier é pulado sem gastar quota."""
        return True

    async def _get_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None or self._client.is_closed:
                kwargs: Dict[str, Any] = {
                    "timeout": httpx.Timeout(
                        connect=self._connect_timeout,
                        read=self._request_timeout,
                        write=self._request_timeout,
                        pool=self._request_timeout,
                    ),
                    "limits": httpx.Limits(
                        max_keepalive_connections=self._max_connections,
                        max_connections=self._max_connections,
                        keepalive_expiry=30.0,
                    ),
                }
                if self._transport is not None:
                    kwargs["transport"] = self._transport
                else:
                    kwargs["http2"] = True
                self._client = httpx.AsyncClient(**kwargs)
                logger.info(f"🌐 {self.name}: Cliente HTTP criado (pool={self._max_connections})")
        return self._client

    async def close(self):
        async with self._client_lock:
            if self._client and not self._client.is_closed:
                await self._client.aclose()
                logger.info(f"🌐 {self.name}: Cliente HTTP fechado")
            self._client = None

    async def _request(self, client: httpx.AsyncClient, query: str) -> httpx.Response:
        raise NotImplementedError

    def _parse(self, data: Any) -> List[RawSearchHit]:
        raise NotImplementedError

    async def search(self, term: str) -> List[RawSearchHit]:
        """
        Executa UMA tentativa de busca (retry é decidido pela fallback chain).

        Raises:
            ProviderUnavailable: Sem credenciais
            ProviderTimeout: Timeout do httpx
            ProviderTransportError: Erro de rede, HTTP não-2xx ou payload inválido
        """
        if not self.is_available():
            raise ProviderUnavailable(self.name, "credenciais não configuradas")

        client = await self._get_client()
        query = build_query(term)
        start_time = time.perf_counter()
        self._total_requests += 1

        try:
            response = await self._request(client, query)
        except httpx.TimeoutException as exc:
            self._failed_requests += 1
            raise ProviderTimeout(self.name, f"timeout após {self._request_timeout}s") from exc
        except httpx.HTTPError as exc:
            self._failed_requests += 1
            message = str(exc) or type(exc).__name__
            raise ProviderTransportError(self.name, message) from exc

        latency_ms = (time.perf_counter() - start_time) * 1000
        self._total_latency_ms += latency_ms
        self._check_status(response)

        try:
            hits = self._parse(response.json())
        except (ValueError, ValidationError) as exc:
            self._failed_requests += 1
            raise ProviderTransportError(
                self.name, f"payload inválido: {exc}", retryable=False
            ) from exc

        self._successful_requests += 1
        logger.info(f"✅ {self.name}: {len(hits)} resultados ({latency_ms:.0f}ms)")
        return hits

    def _check_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        self._failed_requests += 1
        if status == 429:
            self._rate_limited_requests += 1
            retry_after = parse_retry_after(response.headers.get("Retry-After"), self._retry_after_max)
            raise ProviderTransportError(
                self.name, "rate limit (429)", status_code=status, retry_after=retry_after
            )
        if status >= 500:
            raise ProviderTransportError(self.name, f"server error ({status})", status_code=status)
        raise ProviderTransportError(
            self.name, f"client error ({status})", status_code=status, retryable=False
        )

    def get_status(self) -> dict:
        avg_latency = 0.0
        if self._successful_requests > 0:
            avg_latency = self._total_latency_ms / self._successful_requests
        return {
            "name": self.name,
            "available": self.is_available(),
            "total_requests": self._total_requests,
            "successful_requests": self._successful_requests,
            "failed_requests": self._failed_requests,
            "rate_limited_requests": self._rate_limited_requests,
            "avg_latency_ms": round(avg_latency, 2),
        }


# ---------------------------------------------------------------------------
# Providers de rede
# ---------------------------------------------------------------------------

class BraveSearchProvider(SearchProvider):
    """Brave Search API (header X-Subscription-Token, resultados em web.results)."""

    name = "brave"

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self._api_key = api_key if api_key is not None else settings.BRAVE_SEARCH_API_KEY
        self._base_url = base_url or settings.BRAVE_BASE_URL

    def is_available(self) -> bool:
        return bool(self._api_key)

    async def _request(self, client: httpx.AsyncClient, query: str) -> httpx.Response:
        return await client.get(
            self._base_url,
            params={"q": query, "count": 10},
            headers={"X-Subscription-Token": self._api_key, "Accept": "application/json"},
        )

    def _parse(self, data: Any) -> List[RawSearchHit]:
        parsed = BraveResponse.model_validate(data)
        if parsed.web is None:
            return []
        # Brave não informa posição; a ordem da lista é o rank
        return [
            RawSearchHit(
                title=item.title, url=item.url, description=item.description,
                rank=index, provider=self.name,
            )
            for index, item in enumerate(parsed.web.results, start=1)
        ]


class SerperSearchProvider(SearchProvider):
    """Serper (Google) API: POST JSON com X-API-KEY, resultados em organic[]."""

    name = "serper"

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self._api_key = api_key if api_key is not None else settings.SERPER_API_KEY
        self._base_url = base_url or settings.SERPER_BASE_URL

    def is_available(self) -> bool:
        return bool(self._api_key)

    async def _request(self, client: httpx.AsyncClient, query: str) -> httpx.Response:
        return await client.post(
            self._base_url,
            json={"q": query, "num": 10},
            headers={"X-API-KEY": self._api_key, "Content-Type": "application/json"},
        )

    def _parse(self, data: Any) -> List[RawSearchHit]:
        parsed = SerperResponse.model_validate(data)
        items = sorted(
            parsed.organic,
            key=lambda item: item.position if item.position is not None else float("inf"),
        )
        return [
            RawSearchHit(
                title=item.title, url=item.link, description=item.snippet,
                rank=item.position, provider=self.name,
            )
            for item in items
        ]


class GoogleCSEProvider(SearchProvider):
    """Google Custom Search JSON API (key + cx, resultados em items[])."""

    name = "google_cse"

    def __init__(
        self,
        api_key: Optional[str] = None,
        cx: Optional[str] = None,
        base_url: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self._api_key = api_key if api_key is not None else settings.GOOGLE_CSE_API_KEY
        self._cx = cx if cx is not None else settings.GOOGLE_CSE_CX
        self._base_url = base_url or settings.GOOGLE_CSE_BASE_URL

    def is_available(self) -> bool:
        return bool(self._api_key and self._cx)

    async def _request(self, client: httpx.AsyncClient, query: str) -> httpx.Response:
        return await client.get(
            self._base_url,
            params={"key": self._api_key, "cx": self._cx, "q": query, "num": 10},
        )

    def _parse(self, data: Any) -> List[RawSearchHit]:
        parsed = GoogleCSEResponse.model_validate(data)
        return [
            RawSearchHit(
                title=item.title, url=item.link, description=item.snippet,
                rank=index, provider=self.name,
            )
            for index, item in enumerate(parsed.items, start=1)
        ]


# ---------------------------------------------------------------------------
# Último recurso
# ---------------------------------------------------------------------------

class UrlGuessProvider(SearchProvider):
    """
    Constrói linkedin.com/company/{slug} a partir do termo, sem I/O.

    O candidato não é verificado; a confiança é fixa e baixa.
    """

    name = "url_guess"

    def __init__(self, enabled: Optional[bool] = None):
        super().__init__()
        self._enabled = settings.LINKEDIN_URL_GUESS_ENABLED if enabled is None else enabled

    def is_available(self) -> bool:
        return self._enabled

    async def search(self, term: str) -> List[RawSearchHit]:
        if not self._enabled:
            raise ProviderUnavailable(self.name, "URL guess desabilitado")
        slug = slugify(term)
        self._total_requests += 1
        if not slug:
            return []
        self._successful_requests += 1
        return [
            RawSearchHit(
                title=f"{term} | LinkedIn",
                url=canonical_company_url(slug),
                description=f"URL sugerida para {term} (não verificada)",
                rank=None,
                provider=self.name,
            )
        ]

    async def guess(self, term: str) -> List[CandidateResult]:
        """Candidato adivinhado com confiança fixa (não passa pelo scorer)."""
        hits = await self.search(term)
        return [
            CandidateResult(
                url=hit.url,
                vanity_name=slugify(term),
                company_name=term,
                description=hit.description,
                confidence=URL_GUESS_CONFIDENCE,
            )
            for hit in hits
        ]


def build_default_providers(transport: Optional[httpx.AsyncBaseTransport] = None) -> List[SearchProvider]:
    """Cadeia padrão na ordem de fallback (providers de rede apenas)."""
    return [
        BraveSearchProvider(transport=transport),
        SerperSearchProvider(transport=transport),
        GoogleCSEProvider(transport=transport),
    ]


__all__ = [
    "SearchProvider",
    "BraveSearchProvider",
    "SerperSearchProvider",
    "GoogleCSEProvider",
    "UrlGuessProvider",
    "build_default_providers",
    "build_query",
]
