"""
Hierarquia de erros do LinkedIn Discovery.

Apenas InvalidInput, NoResults, TransportError e QuotaExhausted chegam
ao chamador. Os demais são absorvidos internamente (fallback chain,
degradação de cache, métricas fire-and-forget).
"""

from typing import Optional


class DiscoveryError(Exception):
    """Raiz de todos os erros do discovery."""


class InvalidInput(DiscoveryError):
    """Nome de empresa ausente, vazio ou curto demais."""


class ProviderError(DiscoveryError):
    """Falha de um provider específico (consumida pela fallback chain)."""

    def __init__(self, provider: str, message: str = ""):
        self.provider = provider
        super().__init__(f"[{provider}] {message}" if message else f"[{provider}]")


class ProviderTimeout(ProviderError):
    """Provider excedeu o timeout por tentativa."""


class ProviderTransportError(ProviderError):
    """Erro de rede, HTTP não-2xx ou payload malformado."""

    def __init__(
        self,
        provider: str,
        message: str = "",
        status_code: Optional[int] = None,
        retryable: bool = True,
        retry_after: Optional[float] = None,
    ):
        self.status_code = status_code
        self.retryable = retryable
        self.retry_after = retry_after
        super().__init__(provider, message)


class ProviderUnavailable(ProviderError):
    """Provider sem credenciais ou com circuito aberto."""


class QuotaDenied(ProviderError):
    """Quota do provider negou a chamada (nenhum incremento realizado)."""


class NoResults(DiscoveryError):
    """Busca concluída com sucesso, mas nenhum resultado utilizável."""

    def __init__(self, search_term: str, authoritative: bool = True):
        self.search_term = search_term
        # False quando nenhum provider de rede chegou a responder
        self.authoritative = authoritative
        super().__init__(f"Nenhum resultado LinkedIn para '{search_term}'")


class TransportError(DiscoveryError):
    """Todos os tiers falharam e o URL guess está desabilitado."""

    def __init__(self, search_term: str, errors: Optional[list] = None):
        self.search_term = search_term
        self.errors = errors or []
        super().__init__(
            f"Todos os providers falharam para '{search_term}' ({len(self.errors)} erros)"
        )


class QuotaExhausted(DiscoveryError):
    """Quota esgotada em todos os tiers e o URL guess está desabilitado."""

    def __init__(self, search_term: str):
        self.search_term = search_term
        super().__init__(f"Quota de busca esgotada para '{search_term}'")


class CacheUnavailable(DiscoveryError):
    """Cache durável indisponível; o dispatcher degrada para provider-only."""


class MetricsWriteFailure(DiscoveryError):
    """Falha ao persistir métrica (sempre registrada e engolida)."""
