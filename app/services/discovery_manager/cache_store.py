"""
Cache Store - Armazenamento durável do cache de buscas LinkedIn.

O store é a fonte de verdade: o SearchCache (memória) fica na frente dele.
Implementações:
- InMemoryCacheStore: desenvolvimento e testes
- PostgresCacheStore (app/services/database_service.py): tabela linkedin_search_cache

Falhas do backend devem ser levantadas como CacheUnavailable.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from app.services.discovery.models import CandidateResult, SearchCacheEntry, utcnow

logger = logging.getLogger(__name__)


class CacheStore:
    """Interface do cache durável (todas as chaves já normalizadas)."""

    async def get(self, term: str) -> Optional[SearchCacheEntry]:
        """Entrada crua, mesmo expirada (quem decide frescor é o chamador)."""
        raise NotImplementedError

    async def upsert(
        self, term: str, results: List[CandidateResult], ttl: timedelta
    ) -> SearchCacheEntry:
        """Cria (hit_count=1) ou atualiza (hit_count+1, novos results/expires_at)."""
        raise NotImplementedError

    async def add_hits(self, term: str, count: int = 1) -> None:
        raise NotImplementedError

    async def delete(self, term: str) -> bool:
        raise NotImplementedError

    async def cleanup_expired(self, grace: timedelta) -> int:
        """Remove entradas expiradas há mais de `grace`. Retorna quantas."""
        raise NotImplementedError

    async def count(self) -> int:
        raise NotImplementedError


class InMemoryCacheStore(CacheStore):
    """Store durável em memória do processo (sem persistência real)."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or utcnow
        self._entries: Dict[str, SearchCacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, term: str) -> Optional[SearchCacheEntry]:
        entry = self._entries.get(term)
        if entry is None:
            return None
        # Cópia rasa: o chamador não altera o estado do store
        return SearchCacheEntry(
            search_term=entry.search_term,
            results=list(entry.results),
            created_at=entry.created_at,
            expires_at=entry.expires_at,
            hit_count=entry.hit_count,
        )

    async def upsert(
        self, term: str, results: List[CandidateResult], ttl: timedelta
    ) -> SearchCacheEntry:
        async with self._lock:
            now = self._clock()
            entry = self._entries.get(term)
            if entry is None:
                entry = SearchCacheEntry(
                    search_term=term,
                    results=list(results),
                    created_at=now,
                    expires_at=now + ttl,
                    hit_count=1,
                )
                self._entries[term] = entry
            else:
                entry.results = list(results)
                entry.expires_at = now + ttl
                entry.hit_count += 1
            return entry

    async def add_hits(self, term: str, count: int = 1) -> None:
        async with self._lock:
            entry = self._entries.get(term)
            if entry is not None:
                entry.hit_count += count

    async def delete(self, term: str) -> bool:
        async with self._lock:
            return self._entries.pop(term, None) is not None

    async def cleanup_expired(self, grace: timedelta) -> int:
        async with self._lock:
            cutoff = self._clock() - grace
            expired = [k for k, e in self._entries.items() if e.expires_at < cutoff]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info(f"[CacheStore] Cleanup: {len(expired)} entradas expiradas removidas")
        return len(expired)

    async def count(self) -> int:
        return len(self._entries)
