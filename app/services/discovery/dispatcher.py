"""
Dispatcher - Fila de discovery com single-flight.

Estados de uma requisição: queued -> in_flight -> (cache_hit |
provider_resolved | failed).

- Prioridade HIGH antes de NORMAL antes de LOW, FIFO dentro do nível
- Termos idênticos (normalizados) compartilham uma única execução
- Cache consultado antes de enfileirar e de novo pelo worker
- Chamadores aguardam via asyncio.shield: abandonar a chamada não
  cancela a execução compartilhada, que ainda popula o cache
"""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence

from app.services.concurrency_manager.priority_queue import Priority, PriorityQueue, QueueFull
from app.services.discovery_manager.quota_tracker import QuotaTracker
from app.services.discovery_manager.search_cache import SearchCache
from .exceptions import CacheUnavailable, DiscoveryError, NoResults, TransportError
from .fallback_chain import FallbackChain
from .models import DiscoveryResult, QueueStatus, ResultSource, collapse_whitespace, normalize_term

logger = logging.getLogger(__name__)

CACHE_DEGRADED_WARNING = "cache_unavailable"


@dataclass
class _Flight:
    """Execução compartilhada de um termo."""
    key: str
    query: str
    priority: Priority
    future: asyncio.Future
    task_id: Optional[str] = None
    state: str = "queued"
    started_at: float = 0.0


class DiscoveryDispatcher:
    """
    Orquestra cache, fila e fallback chain.

    O número de workers limita quantas cadeias de providers rodam ao
    mesmo tempo (default 5).
    """

    def __init__(
        self,
        chain: FallbackChain,
        cache: SearchCache,
        num_workers: int = 5,
        max_size: int = 1000,
        cache_empty_results: bool = True,
    ):
        self.chain = chain
        self.cache = cache
        self.cache_empty_results = cache_empty_results
        self._queue = PriorityQueue(max_size=max_size, num_workers=num_workers, name="linkedin")
        self._flights: Dict[str, _Flight] = {}

        # Métricas
        self._cache_hits = 0
        self._resolved = 0
        self._failed = 0
        self._coalesced = 0
        self._degraded = 0

    @property
    def running(self) -> bool:
        return self._queue.running

    async def start(self):
        await self._queue.start()

    async def stop(self, timeout: float = 10.0):
        leftover = await self._queue.stop(timeout=timeout)
        if leftover:
            logger.warning(f"⚠️ [Dispatcher] {len(leftover)} buscas descartadas na parada")
        # Itens da fila e execuções interrompidas pelo cancelamento dos workers
        for flight in list(self._flights.values()):
            if not flight.future.done():
                flight.future.set_exception(
                    TransportError(flight.query, ["dispatcher parado antes da conclusão"])
                )
        self._flights.clear()
        try:
            await self.cache.flush_hits()
        except CacheUnavailable as e:
            logger.warning(f"⚠️ [Dispatcher] Não foi possível descarregar hits do cache: {e}")

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    async def _cache_lookup(self, key: str, warnings: List[str]) -> Optional[DiscoveryResult]:
        try:
            entry = await self.cache.get(key)
        except CacheUnavailable as e:
            self._degraded += 1
            if CACHE_DEGRADED_WARNING not in warnings:
                warnings.append(CACHE_DEGRADED_WARNING)
            logger.warning(f"⚠️ [Dispatcher] Cache indisponível, seguindo só com providers: {e}")
            return None
        if entry is None:
            return None
        return DiscoveryResult(
            search_term=key,
            results=list(entry.results),
            source=ResultSource.CACHE,
            cached=True,
            warnings=list(warnings),
        )

    async def _cache_write(self, key: str, result: DiscoveryResult) -> None:
        try:
            await self.cache.put(key, result.results)
        except CacheUnavailable as e:
            self._degraded += 1
            if CACHE_DEGRADED_WARNING not in result.warnings:
                result.warnings.append(CACHE_DEGRADED_WARNING)
            logger.warning(f"⚠️ [Dispatcher] Falha ao gravar cache de '{key}': {e}")

    def _resolve_cached(self, result: DiscoveryResult) -> DiscoveryResult:
        """Entrada em cache com lista vazia é um NoResults já conhecido."""
        self._cache_hits += 1
        if not result.results:
            raise NoResults(result.search_term)
        logger.info(f"[Cache] HIT: '{result.search_term}' ({len(result.results)} resultados)")
        return result

    # ------------------------------------------------------------------
    # Execução
    # ------------------------------------------------------------------

    async def _execute(self, flight: _Flight) -> None:
        """Callback do worker: re-checa cache, roda a cadeia e grava."""
        flight.state = "in_flight"
        flight.started_at = time.perf_counter()
        warnings: List[str] = []
        try:
            cached = await self._cache_lookup(flight.key, warnings)
            if cached is not None:
                result = self._resolve_cached(cached)
            else:
                result = await self._run_chain(flight, warnings)
            if not flight.future.done():
                flight.future.set_result(result)
        except DiscoveryError as e:
            self._failed += 1
            if not flight.future.done():
                flight.future.set_exception(e)
        except Exception as e:
            self._failed += 1
            logger.error(f"❌ [Dispatcher] Erro inesperado para '{flight.key}': {e}", exc_info=True)
            if not flight.future.done():
                flight.future.set_exception(TransportError(flight.query, [str(e)]))
        finally:
            self._flights.pop(flight.key, None)

    async def _run_chain(self, flight: _Flight, warnings: List[str]) -> DiscoveryResult:
        try:
            outcome = await self.chain.run(flight.query)
        except NoResults as e:
            if e.authoritative and self.cache_empty_results:
                await self._cache_write(flight.key, DiscoveryResult(search_term=flight.key, warnings=warnings))
            raise

        result = DiscoveryResult(
            search_term=flight.key,
            results=outcome.results,
            source=outcome.source,
            provider=outcome.provider,
            cached=False,
            warnings=warnings,
            response_time_ms=outcome.elapsed_ms,
        )
        # URL adivinhada não é verificada: não vai para o cache
        if outcome.authoritative:
            await self._cache_write(flight.key, result)
        self._resolved += 1
        return result

    @staticmethod
    def _consume_exception(future: asyncio.Future) -> None:
        # Evita "exception was never retrieved" quando todos os chamadores desistiram
        if not future.cancelled():
            future.exception()

    async def _await_flight(self, flight: _Flight, start: float) -> DiscoveryResult:
        result = await asyncio.shield(flight.future)
        return replace(
            result,
            results=list(result.results),
            warnings=list(result.warnings),
            response_time_ms=int((time.perf_counter() - start) * 1000),
        )

    async def submit(self, term: str, priority: Priority = Priority.NORMAL) -> DiscoveryResult:
        """
        Resolve um termo (já validado pelo facade).

        Raises:
            NoResults, TransportError, QuotaExhausted
        """
        start = time.perf_counter()
        key = normalize_term(term)
        priority = Priority.parse(priority)
        if not self.running:
            await self.start()

        flight = self._flights.get(key)
        if flight is not None:
            return await self._attach(flight, priority, start)

        warnings: List[str] = []
        cached = await self._cache_lookup(key, warnings)
        if cached is not None:
            result = self._resolve_cached(cached)
            result.response_time_ms = int((time.perf_counter() - start) * 1000)
            return result

        # Outro chamador pode ter criado o flight durante o await do cache
        flight = self._flights.get(key)
        if flight is not None:
            return await self._attach(flight, priority, start)

        loop = asyncio.get_running_loop()
        flight = _Flight(
            key=key,
            query=collapse_whitespace(term),
            priority=priority,
            future=loop.create_future(),
        )
        flight.future.add_done_callback(self._consume_exception)
        self._flights[key] = flight

        try:
            flight.task_id = await self._queue.enqueue(
                lambda: self._execute(flight),
                priority=priority,
                metadata={"key": key},
            )
        except QueueFull as e:
            self._flights.pop(key, None)
            error = TransportError(flight.query, [str(e)])
            flight.future.set_exception(error)
            raise error from e

        logger.debug(f"[Dispatcher] '{key}' enfileirado ({priority.name}, {flight.task_id})")
        return await self._await_flight(flight, start)

    async def _attach(self, flight: _Flight, priority: Priority, start: float) -> DiscoveryResult:
        self._coalesced += 1
        if flight.state == "queued" and priority < flight.priority and flight.task_id:
            if await self._queue.promote(flight.task_id, priority):
                flight.priority = priority
        logger.debug(f"[Dispatcher] '{flight.key}' anexado a execução existente ({flight.state})")
        return await self._await_flight(flight, start)

    async def batch_submit(
        self, terms: Sequence[str], priority: Priority = Priority.HIGH
    ) -> Dict[str, List]:
        """
        Resolve vários termos em paralelo.

        Returns:
            Termo -> lista de candidatos (vazia em NoResults ou falha)
        """
        outcomes = await asyncio.gather(
            *(self.submit(term, priority) for term in terms),
            return_exceptions=True,
        )
        results: Dict[str, List] = {}
        for term, outcome in zip(terms, outcomes):
            if isinstance(outcome, DiscoveryResult):
                results[term] = outcome.results
            elif isinstance(outcome, DiscoveryError):
                logger.info(f"[Dispatcher] Batch: '{term}' sem resultado ({type(outcome).__name__})")
                results[term] = []
            elif isinstance(outcome, BaseException):
                raise outcome
        return results

    # ------------------------------------------------------------------
    # Introspecção
    # ------------------------------------------------------------------

    def _unique_trackers(self) -> Iterable[QuotaTracker]:
        seen = {}
        for tier in self.chain.tiers:
            seen.setdefault(id(tier.quota), tier.quota)
        return seen.values()

    def get_status(self) -> QueueStatus:
        """Snapshot sem efeitos colaterais."""
        trackers = list(self._unique_trackers())
        return QueueStatus(
            queue_length=len(self._queue),
            requests_today=sum(t.requests_today for t in trackers),
            requests_this_month=sum(t.requests_this_month for t in trackers),
            in_flight=sum(1 for f in self._flights.values() if f.state == "in_flight"),
            processed=self._resolved + self._cache_hits,
            failed=self._failed,
            remaining_quota={tier.name: tier.quota.remaining() for tier in self.chain.tiers},
            providers={
                "chain": self.chain.get_status(),
                "queue": self._queue.get_status(),
                "cache": self.cache.get_status(),
                "coalesced": self._coalesced,
                "cache_degraded": self._degraded,
            },
        )
