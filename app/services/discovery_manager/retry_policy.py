"""
Retry Policy - Política única de retry aplicada a todos os providers.

Backoff exponencial com jitter, respeitando Retry-After (429) com teto.
Cada tentativa (inclusive retries) passa novamente por pacing e quota na
fallback chain; a política só decide SE e QUANTO esperar.
"""

import asyncio
import datetime as dt_module
import logging
import random
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from app.services.concurrency_manager.config_loader import get_section
from app.services.discovery.exceptions import ProviderTimeout, ProviderTransportError

logger = logging.getLogger(__name__)


def parse_retry_after(header_value: Optional[str], max_seconds: float = 60.0) -> Optional[float]:
    """
    Parseia o header Retry-After conforme RFC 7231.

    Pode ser:
    - Número em segundos (ex: "120")
    - HTTP-date (ex: "Wed, 21 Oct 2015 07:28:00 GMT")

    Returns:
        Segundos a esperar, ou None se inválido/não presente.
        Limitado a max_seconds.
    """
    if not header_value or not header_value.strip():
        return None
    val = header_value.strip()
    try:
        seconds = float(val)
        return min(seconds, max_seconds) if seconds > 0 else None
    except ValueError:
        pass
    try:
        retry_dt = parsedate_to_datetime(val)
        if retry_dt.tzinfo is None:
            retry_dt = retry_dt.replace(tzinfo=dt_module.timezone.utc)
        delta = (retry_dt - dt_module.datetime.now(dt_module.timezone.utc)).total_seconds()
        return min(delta, max_seconds) if delta > 0 else None
    except (ValueError, TypeError):
        return None


@dataclass
class RetryPolicy:
    """
    Política de retry.

    max_attempts=1 significa "sem retry": a própria fallback chain já
    oferece redundância entre providers.
    """
    max_attempts: int = 1
    base_delay: float = 1.0
    max_delay: float = 4.0
    jitter: float = 0.5
    retry_after_max: float = 10.0
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep

    @classmethod
    def from_config(cls, overrides: Optional[Dict[str, Any]] = None) -> "RetryPolicy":
        cfg = dict(get_section("discovery/retry", {}))
        cfg.update(overrides or {})
        return cls(
            max_attempts=max(1, int(cfg.get("max_attempts", 1))),
            base_delay=float(cfg.get("base_delay", 1.0)),
            max_delay=float(cfg.get("max_delay", 4.0)),
            jitter=float(cfg.get("jitter", 0.5)),
            retry_after_max=float(cfg.get("retry_after_max", 10.0)),
        )

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """
        Args:
            error: Erro da tentativa `attempt` (1-based)
            attempt: Número da tentativa que falhou
        """
        if attempt >= self.max_attempts:
            return False
        if isinstance(error, ProviderTimeout):
            return True
        if isinstance(error, ProviderTransportError):
            return error.retryable
        return False

    def get_delay(self, attempt: int, error: Optional[Exception] = None) -> float:
        """Delay antes da tentativa `attempt + 1`."""
        retry_after = getattr(error, "retry_after", None)
        if retry_after is not None:
            return min(retry_after, self.retry_after_max)
        delay = self.base_delay * (2 ** (attempt - 1)) + random.uniform(0, self.jitter)
        return min(delay, self.max_delay)

    async def wait(self, attempt: int, error: Optional[Exception] = None) -> float:
        delay = self.get_delay(attempt, error)
        src = "Retry-After" if getattr(error, "retry_after", None) is not None else "backoff"
        logger.warning(
            f"🔄 Retry {attempt + 1}/{self.max_attempts} após {delay:.1f}s (src={src})"
        )
        await self.sleep(delay)
        return delay

    def get_status(self) -> dict:
        return {
            "max_attempts": self.max_attempts,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
            "retry_after_max": self.retry_after_max,
        }
