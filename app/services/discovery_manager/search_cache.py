"""
Search Cache - Cache de resultados do LinkedIn Discovery em dois níveis.

1. Memória (LRU, poucos segundos de TTL) para rajadas do mesmo termo
2. CacheStore durável (fonte de verdade, TTL de 7 dias)

Hits servidos pela memória são acumulados e descarregados no contador
do store durável. Leituras e escritas do mesmo termo são serializadas
por um lock por chave.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from app.core.constants import DEFAULT_CACHE_TTL_DAYS, EXPIRED_GRACE_DAYS
from app.services.concurrency_manager.config_loader import get_section
from app.services.discovery.models import CandidateResult, SearchCacheEntry, normalize_term, utcnow
from .cache_store import CacheStore, InMemoryCacheStore

logger = logging.getLogger(__name__)


@dataclass
class _MemoryEntry:
    entry: SearchCacheEntry
    stored_at: float
    pending_hits: int = 0


@dataclass
class _KeyLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class SearchCache:
    """
    Cache de buscas com LRU em memória na frente do CacheStore.

    Features:
    - Hit somente se `now < expires_at`; expirados continuam inspecionáveis
    - Upsert incrementa hit_count de entradas existentes
    - Métricas de hit/miss
    - Erros do store durável propagam como CacheUnavailable
    """

    def __init__(
        self,
        store: Optional[CacheStore] = None,
        ttl: Optional[timedelta] = None,
        memory_max_entries: Optional[int] = None,
        memory_ttl_seconds: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            store: Cache durável (default: InMemoryCacheStore)
            ttl: Tempo de vida das entradas duráveis (default: 7 dias)
            memory_max_entries: Capacidade do LRU em memória
            memory_ttl_seconds: TTL das entradas em memória
            clock: Relógio UTC (injetável em testes)
            monotonic: Relógio monotônico do nível de memória
        """
        cfg = get_section("discovery/cache", {})
        self._clock = clock or utcnow
        self._monotonic = monotonic
        self._store = store or InMemoryCacheStore(clock=self._clock)
        self._ttl = ttl or timedelta(days=DEFAULT_CACHE_TTL_DAYS)
        self._memory_max = memory_max_entries if memory_max_entries is not None else cfg.get("memory_max_entries", 100)
        self._memory_ttl = memory_ttl_seconds if memory_ttl_seconds is not None else cfg.get("memory_ttl_seconds", 30)

        self._memory: "OrderedDict[str, _MemoryEntry]" = OrderedDict()
        self._key_locks: Dict[str, _KeyLock] = {}

        # Métricas
        self._hits = 0
        self._memory_hits = 0
        self._misses = 0
        self._evictions = 0

        logger.info(
            f"SearchCache: ttl={self._ttl}, memory_max={self._memory_max}, "
            f"memory_ttl={self._memory_ttl}s"
        )

    @property
    def store(self) -> CacheStore:
        return self._store

    @asynccontextmanager
    async def _locked(self, key: str):
        """Lock por termo normalizado (removido quando ninguém mais usa)."""
        holder = self._key_locks.get(key)
        if holder is None:
            holder = self._key_locks[key] = _KeyLock()
        holder.users += 1
        try:
            async with holder.lock:
                yield
        finally:
            holder.users -= 1
            if holder.users == 0:
                self._key_locks.pop(key, None)

    # ------------------------------------------------------------------
    # Nível de memória
    # ------------------------------------------------------------------

    async def _memory_get(self, key: str, now: datetime) -> Optional[SearchCacheEntry]:
        cached = self._memory.get(key)
        if cached is None:
            return None
        if self._monotonic() - cached.stored_at >= self._memory_ttl or not cached.entry.is_fresh(now):
            await self._memory_drop(key)
            return None
        self._memory.move_to_end(key)
        cached.pending_hits += 1
        cached.entry.hit_count += 1
        return replace(cached.entry, results=list(cached.entry.results))

    async def _memory_put(self, key: str, entry: SearchCacheEntry) -> None:
        if self._memory_max <= 0:
            return
        if key in self._memory:
            await self._memory_drop(key)
        while len(self._memory) >= self._memory_max:
            oldest = next(iter(self._memory))
            await self._memory_drop(oldest)
            self._evictions += 1
            logger.debug(f"[Cache] LRU eviction: {oldest[:30]}")
        self._memory[key] = _MemoryEntry(
            entry=replace(entry, results=list(entry.results)),
            stored_at=self._monotonic(),
        )

    async def _memory_drop(self, key: str) -> None:
        """Remove do nível de memória, descarregando hits pendentes no store."""
        cached = self._memory.pop(key, None)
        if cached is not None and cached.pending_hits:
            await self._store.add_hits(key, cached.pending_hits)

    async def flush_hits(self) -> int:
        """Descarrega todos os hits pendentes no store durável."""
        flushed = 0
        for key, cached in list(self._memory.items()):
            if cached.pending_hits:
                await self._store.add_hits(key, cached.pending_hits)
                flushed += cached.pending_hits
                cached.pending_hits = 0
        return flushed

    # ------------------------------------------------------------------
    # API
    # ------------------------------------------------------------------

    async def get(self, term: str) -> Optional[SearchCacheEntry]:
        """
        Busca entrada válida do termo.

        Returns:
            Entrada (hit_count já incrementado) ou None se ausente/expirada

        Raises:
            CacheUnavailable: Store durável indisponível
        """
        key = normalize_term(term)
        async with self._locked(key):
            now = self._clock()

            entry = await self._memory_get(key, now)
            if entry is not None:
                self._hits += 1
                self._memory_hits += 1
                logger.debug(f"[Cache] HIT (memória): {key[:30]} ({len(entry.results)} resultados)")
                return entry

            entry = await self._store.get(key)
            if entry is None or not entry.is_fresh(now):
                self._misses += 1
                logger.debug(f"[Cache] MISS: {key[:30]}")
                return None

            await self._store.add_hits(key, 1)
            entry.hit_count += 1
            await self._memory_put(key, entry)
            self._hits += 1
            logger.debug(f"[Cache] HIT: {key[:30]} ({len(entry.results)} resultados)")
            return entry

    async def put(self, term: str, results: List[CandidateResult]) -> SearchCacheEntry:
        """Upsert no store durável e atualiza a memória."""
        key = normalize_term(term)
        async with self._locked(key):
            await self._memory_drop(key)
            entry = await self._store.upsert(key, results, self._ttl)
            await self._memory_put(key, entry)
        logger.debug(f"[Cache] SET: {key[:30]} ({len(results)} resultados)")
        return entry

    async def inspect(self, term: str) -> Optional[SearchCacheEntry]:
        """Leitura sem contar hit (inclui entradas expiradas ainda não limpas)."""
        return await self._store.get(normalize_term(term))

    async def invalidate(self, term: str) -> bool:
        key = normalize_term(term)
        async with self._locked(key):
            self._memory.pop(key, None)
            removed = await self._store.delete(key)
        if removed:
            logger.info(f"[Cache] Invalidated: {key[:30]}")
        return removed

    async def cleanup_expired(self, grace: Optional[timedelta] = None) -> int:
        """Remove entradas expiradas há mais de `grace` (default: 1 dia)."""
        grace = grace if grace is not None else timedelta(days=EXPIRED_GRACE_DAYS)
        now = self._clock()
        for key in [k for k, c in self._memory.items() if not c.entry.is_fresh(now)]:
            self._memory.pop(key, None)
        return await self._store.cleanup_expired(grace)

    def get_status(self) -> dict:
        total_requests = self._hits + self._misses
        hit_rate = self._hits / total_requests if total_requests > 0 else 0
        return {
            "memory_entries": len(self._memory),
            "memory_max_entries": self._memory_max,
            "hits": self._hits,
            "memory_hits": self._memory_hits,
            "misses": self._misses,
            "hit_rate": f"{hit_rate:.1%}",
            "evictions": self._evictions,
            "config": {
                "ttl_days": self._ttl.total_seconds() / 86400,
                "memory_ttl_seconds": self._memory_ttl,
            },
        }
