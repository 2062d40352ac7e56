"""
Metrics Recorder - Telemetria de uso do LinkedIn Discovery.

Gravação fire-and-forget: cada métrica vira uma task em background e
falhas do sink são registradas como warning e descartadas. Nunca atrasa
nem quebra o resultado do discovery.
"""

import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set

from .exceptions import MetricsWriteFailure
from .models import SearchMetric, SkipReason, UserAction, utcnow

logger = logging.getLogger(__name__)


class MetricsSink:
    """Destino append-only de métricas."""

    async def write(self, metric: SearchMetric) -> None:
        raise NotImplementedError

    async def daily_analytics(self, days: int = 7) -> List[Dict[str, Any]]:
        """Agregados por dia dos últimos `days` dias, do mais recente ao mais antigo."""
        raise NotImplementedError


class InMemoryMetricsSink(MetricsSink):
    """Sink em memória (desenvolvimento e testes)."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.records: List[SearchMetric] = []
        self._clock = clock or utcnow

    async def write(self, metric: SearchMetric) -> None:
        self.records.append(metric)

    async def daily_analytics(self, days: int = 7) -> List[Dict[str, Any]]:
        first_day = self._clock().date() - timedelta(days=days - 1)
        by_day: Dict[date, List[SearchMetric]] = {}
        for metric in self.records:
            day = metric.created_at.date()
            if day >= first_day:
                by_day.setdefault(day, []).append(metric)

        daily = []
        for day in sorted(by_day, reverse=True):
            metrics = by_day[day]
            total = len(metrics)
            daily.append({
                "date": day.isoformat(),
                "total_searches": total,
                "successful_searches": sum(1 for m in metrics if m.result_count > 0),
                "avg_results_per_search": round(sum(m.result_count for m in metrics) / total, 2),
                "auto_selections": sum(1 for m in metrics if m.user_action == UserAction.SELECTED),
                "manual_entries": sum(1 for m in metrics if m.user_action == UserAction.MANUAL_ENTRY),
                "skipped_searches": sum(1 for m in metrics if m.user_action == UserAction.SKIPPED),
                "avg_response_time_ms": round(sum(m.response_time_ms for m in metrics) / total, 2),
            })
        return daily


class MetricsRecorder:
    """
    Registra interações de discovery sem bloquear o chamador.

    `flush()` aguarda as gravações pendentes (shutdown e testes).
    """

    def __init__(self, sink: Optional[MetricsSink] = None, max_pending: int = 500):
        self._sink = sink or InMemoryMetricsSink()
        self._max_pending = max_pending
        self._pending: Set[asyncio.Task] = set()

        self._recorded = 0
        self._failed = 0
        self._dropped = 0

    @property
    def sink(self) -> MetricsSink:
        return self._sink

    async def _write(self, metric: SearchMetric) -> None:
        try:
            await self._sink.write(metric)
            self._recorded += 1
        except Exception as e:
            self._failed += 1
            failure = MetricsWriteFailure(str(e) or type(e).__name__)
            logger.warning(
                f"⚠️ [Metrics] Falha ao gravar métrica de '{metric.search_term}': {failure}"
            )

    def record(self, metric: SearchMetric) -> bool:
        """
        Agenda a gravação e retorna imediatamente.

        Returns:
            False se a métrica foi descartada (muitas gravações pendentes
            ou nenhum event loop rodando)
        """
        if len(self._pending) >= self._max_pending:
            self._dropped += 1
            logger.warning(f"⚠️ [Metrics] {len(self._pending)} gravações pendentes, métrica descartada")
            return False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._dropped += 1
            logger.warning(
                f"⚠️ [Metrics] Sem event loop rodando, métrica de '{metric.search_term}' descartada"
            )
            return False
        task = loop.create_task(self._write(metric))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    def record_selection(
        self,
        search_term: str,
        selected_url: str,
        confidence: Optional[float],
        result_count: int,
        response_time_ms: int = 0,
        user_id: Optional[str] = None,
    ) -> bool:
        return self.record(SearchMetric(
            search_term=search_term,
            user_action=UserAction.SELECTED,
            selected_url=selected_url,
            selection_confidence=confidence,
            result_count=result_count,
            response_time_ms=response_time_ms,
            user_id=user_id,
        ))

    def record_manual_entry(
        self,
        search_term: str,
        manual_url: str,
        result_count: int = 0,
        response_time_ms: int = 0,
        user_id: Optional[str] = None,
    ) -> bool:
        return self.record(SearchMetric(
            search_term=search_term,
            user_action=UserAction.MANUAL_ENTRY,
            selected_url=manual_url,
            result_count=result_count,
            response_time_ms=response_time_ms,
            user_id=user_id,
        ))

    def record_skip(
        self,
        search_term: str,
        reason: SkipReason,
        result_count: int = 0,
        response_time_ms: int = 0,
        user_id: Optional[str] = None,
    ) -> bool:
        return self.record(SearchMetric(
            search_term=search_term,
            user_action=UserAction.SKIPPED,
            skip_reason=reason,
            result_count=result_count,
            response_time_ms=response_time_ms,
            user_id=user_id,
        ))

    async def flush(self, timeout: float = 5.0) -> None:
        """Aguarda gravações pendentes."""
        if not self._pending:
            return
        _, pending = await asyncio.wait(set(self._pending), timeout=timeout)
        if pending:
            logger.warning(f"⚠️ [Metrics] {len(pending)} gravações não concluídas no flush")

    def get_status(self) -> dict:
        return {
            "recorded": self._recorded,
            "failed": self._failed,
            "dropped": self._dropped,
            "pending": len(self._pending),
        }
