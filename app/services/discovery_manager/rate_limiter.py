"""
Rate Limiters do Discovery.

- TokenBucketRateLimiter: controla a TAXA de chamadas por provider
  (ex.: Brave 10 req/min com burst de 5). Não controla concorrência nem
  volume total; o volume é responsabilidade do QuotaTracker.
- ClientRateLimiter: janela deslizante por cliente na borda HTTP
  (20 buscas/hora por cliente).
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class RateLimiterMetrics:
    """Métricas do rate limiter."""
    total_acquired: int = 0
    total_waited: int = 0
    total_timeouts: int = 0
    total_wait_time_ms: float = 0

    @property
    def avg_wait_time_ms(self) -> float:
        if self.total_waited == 0:
            return 0
        return self.total_wait_time_ms / self.total_waited


class TokenBucketRateLimiter:
    """
    Token Bucket por provider.

    O bucket começa cheio (burst) e é reabastecido continuamente a
    `requests_per_minute / 60` tokens por segundo. Quando o bucket está
    vazio, `acquire(timeout)` espera no máximo `timeout` segundos; se não
    conseguir, o tier é pulado pela fallback chain sem consumir quota.
    """

    def __init__(
        self,
        requests_per_minute: float = 10.0,
        max_burst: int = 5,
        name: str = "brave",
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            requests_per_minute: Taxa sustentada permitida
            max_burst: Máximo de tokens acumulados
            name: Nome do provider (para logs)
            clock: Relógio monotônico (injetável em testes)
        """
        self.requests_per_minute = requests_per_minute
        self.max_burst = max_burst
        self.name = name
        self._clock = clock

        self._tokens = float(max_burst)
        self._last_refill = clock()
        self._lock = asyncio.Lock()
        self._metrics = RateLimiterMetrics()

        logger.info(
            f"🚦 TokenBucket[{name}]: rate={requests_per_minute}/min, burst={max_burst}"
        )

    @property
    def rate_per_second(self) -> float:
        return self.requests_per_minute / 60.0

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        self._tokens = min(self.max_burst, self._tokens + elapsed * self.rate_per_second)
        self._last_refill = now

    async def acquire(self, timeout: float = 0.5) -> bool:
        """
        Adquire um token, esperando até `timeout` segundos.

        Returns:
            True se adquiriu, False se timeout
        """
        start_time = self._clock()
        deadline = start_time + timeout
        waited = False

        while True:
            async with self._lock:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    self._metrics.total_acquired += 1
                    if waited:
                        self._metrics.total_waited += 1
                        self._metrics.total_wait_time_ms += (self._clock() - start_time) * 1000
                    return True
                tokens_needed = 1.0 - self._tokens

            now = self._clock()
            if now >= deadline:
                self._metrics.total_timeouts += 1
                logger.warning(
                    f"⏰ TokenBucket[{self.name}]: Sem token após {timeout:.2f}s "
                    f"(tokens={self._tokens:.2f})"
                )
                return False

            waited = True
            wait_time = tokens_needed / self.rate_per_second if self.rate_per_second > 0 else timeout
            await asyncio.sleep(max(0.0, min(wait_time, deadline - now, 0.05)))

    def try_acquire(self) -> bool:
        """Tenta adquirir sem esperar."""
        self._refill()
        if self._tokens >= 1.0:
            self._tokens -= 1.0
            self._metrics.total_acquired += 1
            return True
        return False

    @property
    def available_tokens(self) -> float:
        self._refill()
        return self._tokens

    def get_status(self) -> dict:
        return {
            "name": self.name,
            "tokens_available": round(self.available_tokens, 2),
            "max_burst": self.max_burst,
            "requests_per_minute": self.requests_per_minute,
            "metrics": {
                "total_acquired": self._metrics.total_acquired,
                "total_waited": self._metrics.total_waited,
                "total_timeouts": self._metrics.total_timeouts,
                "avg_wait_time_ms": round(self._metrics.avg_wait_time_ms, 2),
            },
        }


class ClientRateLimiter:
    """
    Limite de requisições por cliente em janela deslizante.

    Usado na borda HTTP: cada cliente (IP ou user id) pode disparar no
    máximo `max_requests` discoveries por `window_seconds`.
    """

    def __init__(
        self,
        max_requests: int = 20,
        window_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._rejected = 0

    def _prune(self, key: str, now: float) -> Deque[float]:
        window = self._hits.setdefault(key, deque())
        while window and now - window[0] >= self.window_seconds:
            window.popleft()
        return window

    def check(self, key: str) -> Tuple[bool, Optional[int]]:
        """
        Registra uma requisição do cliente.

        Returns:
            (allowed, retry_after_seconds). retry_after é None quando permitido.
        """
        now = self._clock()
        window = self._prune(key, now)
        if len(window) >= self.max_requests:
            self._rejected += 1
            retry_after = int(self.window_seconds - (now - window[0])) + 1
            logger.warning(
                f"🚫 [ClientLimit] {key}: {len(window)}/{self.max_requests} "
                f"na janela, retry em {retry_after}s"
            )
            return False, retry_after
        window.append(now)
        return True, None

    def remaining(self, key: str) -> int:
        window = self._prune(key, self._clock())
        return max(0, self.max_requests - len(window))

    def reset(self) -> None:
        self._hits.clear()
        self._rejected = 0

    def get_status(self) -> dict:
        return {
            "clients": len(self._hits),
            "max_requests": self.max_requests,
            "window_seconds": self.window_seconds,
            "rejected": self._rejected,
        }
