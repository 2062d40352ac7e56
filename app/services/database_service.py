"""
Serviço de banco de dados 100% assíncrono (LinkedIn Discovery).

Tabelas:
- linkedin_search_cache: cache durável de buscas (search_term único)
- linkedin_search_metrics: métricas append-only
- companies: colunas linkedin_* do registro da empresa
"""
import json
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

import asyncpg

from app.core.database import get_pool
from app.services.discovery.exceptions import CacheUnavailable
from app.services.discovery.metrics_recorder import MetricsSink
from app.services.discovery.models import (
    CandidateResult,
    CompanyLinkedInRecord,
    SearchCacheEntry,
    SearchMetric,
)
from app.services.discovery_manager.cache_store import CacheStore

logger = logging.getLogger(__name__)


SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS linkedin_search_cache (
    id BIGSERIAL PRIMARY KEY,
    search_term TEXT NOT NULL UNIQUE,
    results JSONB NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    expires_at TIMESTAMPTZ NOT NULL,
    search_count INTEGER NOT NULL DEFAULT 1,
    CHECK (expires_at > created_at)
);
CREATE INDEX IF NOT EXISTS idx_linkedin_cache_expires ON linkedin_search_cache(expires_at);

CREATE TABLE IF NOT EXISTS linkedin_search_metrics (
    id BIGSERIAL PRIMARY KEY,
    user_id TEXT,
    search_term TEXT NOT NULL,
    results_count INTEGER NOT NULL DEFAULT 0,
    selected_url TEXT,
    selection_confidence NUMERIC(3,2),
    user_action TEXT NOT NULL CHECK (user_action IN ('selected', 'manual_entry', 'skipped')),
    skip_reason TEXT CHECK (skip_reason IN ('no_results', 'user_cancel', 'error')),
    response_time_ms INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_linkedin_metrics_created_at ON linkedin_search_metrics(created_at);
CREATE INDEX IF NOT EXISTS idx_linkedin_metrics_search_term ON linkedin_search_metrics(search_term);

ALTER TABLE IF EXISTS companies
    ADD COLUMN IF NOT EXISTS linkedin_url TEXT,
    ADD COLUMN IF NOT EXISTS linkedin_discovery_method TEXT,
    ADD COLUMN IF NOT EXISTS linkedin_confidence NUMERIC(3,2),
    ADD COLUMN IF NOT EXISTS linkedin_last_verified TIMESTAMPTZ;

CREATE OR REPLACE VIEW linkedin_discovery_analytics AS
SELECT
    DATE_TRUNC('day', created_at) AS date,
    COUNT(*) AS total_searches,
    COUNT(*) FILTER (WHERE results_count > 0) AS successful_searches,
    AVG(results_count) AS avg_results_per_search,
    COUNT(*) FILTER (WHERE user_action = 'selected') AS auto_selections,
    COUNT(*) FILTER (WHERE user_action = 'manual_entry') AS manual_entries,
    COUNT(*) FILTER (WHERE user_action = 'skipped') AS skipped_searches,
    AVG(response_time_ms) AS avg_response_time_ms
FROM linkedin_search_metrics
GROUP BY DATE_TRUNC('day', created_at);
"""


def _row_to_entry(row) -> SearchCacheEntry:
    results = row["results"]
    # JSONB pode vir como string dependendo do codec
    if isinstance(results, str):
        results = json.loads(results)
    return SearchCacheEntry(
        search_term=row["search_term"],
        results=[CandidateResult.from_dict(r) for r in results],
        created_at=row["created_at"],
        expires_at=row["expires_at"],
        hit_count=row["search_count"],
    )


class DatabaseService:
    """Serviço de CRUD assíncrono para as tabelas do discovery."""

    async def ensure_schema(self) -> None:
        """Cria tabelas, colunas e view se ainda não existirem."""
        pool = await get_pool()
        async with pool.acquire() as conn:
            await conn.execute(SCHEMA_DDL)
        logger.info("✅ Schema do LinkedIn Discovery verificado")

    # ========== CACHE ==========

    async def get_cache_entry(self, search_term: str) -> Optional[SearchCacheEntry]:
        """
        Busca entrada do cache (inclusive expirada).

        Args:
            search_term: Termo já normalizado

        Returns:
            SearchCacheEntry ou None se não encontrado
        """
        pool = await get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT search_term, results, created_at, expires_at, search_count
                FROM linkedin_search_cache
                WHERE search_term = $1
                """,
                search_term,
            )
            return _row_to_entry(row) if row else None

    async def upsert_cache_entry(
        self, search_term: str, results: List[CandidateResult], ttl: timedelta
    ) -> SearchCacheEntry:
        """
        Cria entrada com search_count=1 ou atualiza results/expires_at e
        incrementa search_count.
        """
        pool = await get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO linkedin_search_cache (search_term, results, expires_at, search_count)
                VALUES ($1, $2::jsonb, NOW() + $3::interval, 1)
                ON CONFLICT (search_term) DO UPDATE SET
                    results = EXCLUDED.results,
                    expires_at = EXCLUDED.expires_at,
                    search_count = linkedin_search_cache.search_count + 1
                RETURNING search_term, results, created_at, expires_at, search_count
                """,
                search_term,
                json.dumps([r.to_dict() for r in results]),
                ttl,
            )
            logger.debug(f"✅ Cache salvo: '{search_term}' ({len(results)} resultados)")
            return _row_to_entry(row)

    async def add_cache_hits(self, search_term: str, count: int = 1) -> None:
        pool = await get_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                "UPDATE linkedin_search_cache SET search_count = search_count + $2 WHERE search_term = $1",
                search_term,
                count,
            )

    async def delete_cache_entry(self, search_term: str) -> bool:
        pool = await get_pool()
        async with pool.acquire() as conn:
            status = await conn.execute(
                "DELETE FROM linkedin_search_cache WHERE search_term = $1", search_term
            )
            return status.endswith(" 1")

    async def cleanup_expired_cache(self, grace: timedelta) -> int:
        """Remove entradas expiradas há mais de `grace` (ficam 1 dia para analytics)."""
        pool = await get_pool()
        async with pool.acquire() as conn:
            status = await conn.execute(
                "DELETE FROM linkedin_search_cache WHERE expires_at < NOW() - $1::interval",
                grace,
            )
            deleted = int(status.split()[-1])
            if deleted:
                logger.info(f"🧹 Cache cleanup: {deleted} entradas removidas")
            return deleted

    async def count_cache_entries(self) -> int:
        pool = await get_pool()
        async with pool.acquire() as conn:
            return await conn.fetchval("SELECT COUNT(*) FROM linkedin_search_cache")

    # ========== MÉTRICAS ==========

    async def insert_metric(self, metric: SearchMetric) -> None:
        pool = await get_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO linkedin_search_metrics
                    (user_id, search_term, results_count, selected_url, selection_confidence,
                     user_action, skip_reason, response_time_ms, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                """,
                metric.user_id,
                metric.search_term,
                metric.result_count,
                metric.selected_url,
                metric.selection_confidence,
                metric.user_action.value,
                metric.skip_reason.value if metric.skip_reason else None,
                metric.response_time_ms,
                metric.created_at,
            )

    async def get_discovery_analytics(self, days: int = 7) -> List[Dict[str, Any]]:
        """Agregados diários dos últimos `days` dias."""
        pool = await get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM linkedin_discovery_analytics
                WHERE date >= DATE_TRUNC('day', NOW()) - ($1::int - 1) * INTERVAL '1 day'
                ORDER BY date DESC
                """,
                days,
            )
            return [dict(row) for row in rows]

    # ========== EMPRESAS ==========

    async def update_company_linkedin(self, company_id: Any, record: CompanyLinkedInRecord) -> bool:
        """
        Grava os campos LinkedIn de uma empresa.

        Returns:
            True se a empresa existia e foi atualizada
        """
        pool = await get_pool()
        async with pool.acquire() as conn:
            status = await conn.execute(
                """
                UPDATE companies SET
                    linkedin_url = $2,
                    linkedin_discovery_method = $3,
                    linkedin_confidence = $4,
                    linkedin_last_verified = $5
                WHERE id = $1
                """,
                company_id,
                record.linkedin_url,
                record.discovery_method.value,
                record.confidence,
                record.last_verified_at,
            )
            updated = status.endswith(" 1")
            if updated:
                logger.info(
                    f"✅ LinkedIn da empresa {company_id} atualizado "
                    f"({record.discovery_method.value}, {record.linkedin_url})"
                )
            return updated


_BACKEND_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, TimeoutError)


class PostgresCacheStore(CacheStore):
    """CacheStore sobre a tabela linkedin_search_cache."""

    def __init__(self, db: Optional["DatabaseService"] = None):
        self._db = db or get_db_service()

    async def get(self, term: str) -> Optional[SearchCacheEntry]:
        try:
            return await self._db.get_cache_entry(term)
        except _BACKEND_ERRORS as e:
            raise CacheUnavailable(f"leitura do cache falhou: {e}") from e

    async def upsert(self, term: str, results: List[CandidateResult], ttl: timedelta) -> SearchCacheEntry:
        try:
            return await self._db.upsert_cache_entry(term, results, ttl)
        except _BACKEND_ERRORS as e:
            raise CacheUnavailable(f"escrita do cache falhou: {e}") from e

    async def add_hits(self, term: str, count: int = 1) -> None:
        try:
            await self._db.add_cache_hits(term, count)
        except _BACKEND_ERRORS as e:
            raise CacheUnavailable(f"contador do cache falhou: {e}") from e

    async def delete(self, term: str) -> bool:
        try:
            return await self._db.delete_cache_entry(term)
        except _BACKEND_ERRORS as e:
            raise CacheUnavailable(f"invalidação do cache falhou: {e}") from e

    async def cleanup_expired(self, grace: timedelta) -> int:
        try:
            return await self._db.cleanup_expired_cache(grace)
        except _BACKEND_ERRORS as e:
            raise CacheUnavailable(f"limpeza do cache falhou: {e}") from e

    async def count(self) -> int:
        try:
            return await self._db.count_cache_entries()
        except _BACKEND_ERRORS as e:
            raise CacheUnavailable(f"contagem do cache falhou: {e}") from e


class PostgresMetricsSink(MetricsSink):
    """MetricsSink sobre a tabela linkedin_search_metrics."""

    def __init__(self, db: Optional["DatabaseService"] = None):
        self._db = db or get_db_service()

    async def write(self, metric: SearchMetric) -> None:
        await self._db.insert_metric(metric)

    async def daily_analytics(self, days: int = 7) -> List[Dict[str, Any]]:
        rows = await self._db.get_discovery_analytics(days)
        daily = []
        for row in rows:
            day = row["date"]
            daily.append({
                "date": day.date().isoformat() if hasattr(day, "date") else str(day),
                "total_searches": int(row["total_searches"]),
                "successful_searches": int(row["successful_searches"]),
                # AVG do Postgres chega como Decimal
                "avg_results_per_search": round(float(row["avg_results_per_search"] or 0), 2),
                "auto_selections": int(row["auto_selections"]),
                "manual_entries": int(row["manual_entries"]),
                "skipped_searches": int(row["skipped_searches"]),
                "avg_response_time_ms": round(float(row["avg_response_time_ms"] or 0), 2),
            })
        return daily


class PostgresCompanyRecordWriter:
    """Grava CompanyLinkedInRecord na tabela companies."""

    def __init__(self, db: Optional["DatabaseService"] = None):
        self._db = db or get_db_service()

    async def write(self, company_id: Any, record: CompanyLinkedInRecord) -> bool:
        return await self._db.update_company_linkedin(company_id, record)


# Singleton
_db_service: Optional[DatabaseService] = None


def get_db_service() -> DatabaseService:
    """
    Retorna instância singleton do DatabaseService.

    Returns:
        DatabaseService: Instância do serviço de banco de dados
    """
    global _db_service
    if _db_service is None:
        _db_service = DatabaseService()
    return _db_service
