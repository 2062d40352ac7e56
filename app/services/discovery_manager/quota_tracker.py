"""
Quota Tracker - Orçamento diário/mensal de chamadas a providers pagos.

Diferente do TokenBucketRateLimiter (que controla a TAXA), o QuotaTracker
controla o VOLUME total: uma chamada só é tentada se os contadores do dia
e do mês estiverem abaixo dos limites. Check-and-increment é atômico
sob um asyncio.Lock; nunca há retry otimista.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from app.services.discovery.models import QuotaCounter, utcnow

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class QuotaTracker:
    """
    Contadores de requisições com reset automático na virada do dia e do
    mês (UTC).

    Por padrão uma única instância global é compartilhada por todos os
    tiers pagos; trackers por tier só quando injetados explicitamente.
    """

    def __init__(
        self,
        daily_limit: int = 500,
        monthly_limit: int = 2000,
        name: str = "default",
        clock: Optional[Clock] = None,
    ):
        self.name = name
        self._clock = clock or utcnow
        self._counter = QuotaCounter(daily_limit=daily_limit, monthly_limit=monthly_limit)
        self._lock = asyncio.Lock()

        now = self._clock()
        self._day = now.date()
        self._month = (now.year, now.month)
        self._denied = 0

        logger.info(
            f"📊 QuotaTracker[{name}]: daily={daily_limit}, monthly={monthly_limit}"
        )

    def _rollover(self) -> None:
        """Zera contadores se o dia ou mês UTC mudou."""
        now = self._clock()
        month = (now.year, now.month)
        if month != self._month:
            self._month = month
            self._counter.requests_this_month = 0
            logger.info(f"📊 QuotaTracker[{self.name}]: Novo mês, contador mensal zerado")
        if now.date() != self._day:
            self._day = now.date()
            self._counter.requests_today = 0
            logger.info(f"📊 QuotaTracker[{self.name}]: Novo dia, contador diário zerado")

    async def try_reserve(self) -> bool:
        """
        Reserva uma chamada se houver orçamento.

        Returns:
            True se reservou (ambos os contadores incrementados),
            False se negado (nenhum contador alterado)
        """
        async with self._lock:
            self._rollover()
            if not self._counter.has_capacity:
                self._denied += 1
                logger.warning(
                    f"⚠️ QuotaTracker[{self.name}]: Quota esgotada "
                    f"(hoje={self._counter.requests_today}/{self._counter.daily_limit}, "
                    f"mês={self._counter.requests_this_month}/{self._counter.monthly_limit})"
                )
                return False
            self._counter.requests_today += 1
            self._counter.requests_this_month += 1
            return True

    async def reset(self) -> None:
        async with self._lock:
            self._counter.requests_today = 0
            self._counter.requests_this_month = 0
            self._denied = 0
        logger.info(f"QuotaTracker[{self.name}]: Contadores resetados")

    def _snapshot(self) -> QuotaCounter:
        self._rollover()
        return self._counter

    @property
    def requests_today(self) -> int:
        return self._snapshot().requests_today

    @property
    def requests_this_month(self) -> int:
        return self._snapshot().requests_this_month

    def remaining(self) -> int:
        """Chamadas restantes considerando o limite mais restritivo."""
        counter = self._snapshot()
        return max(
            0,
            min(
                counter.daily_limit - counter.requests_today,
                counter.monthly_limit - counter.requests_this_month,
            ),
        )

    def get_status(self) -> dict:
        counter = self._snapshot()
        return {
            "name": self.name,
            "requests_today": counter.requests_today,
            "requests_this_month": counter.requests_this_month,
            "daily_limit": counter.daily_limit,
            "monthly_limit": counter.monthly_limit,
            "remaining": self.remaining(),
            "denied": self._denied,
        }
