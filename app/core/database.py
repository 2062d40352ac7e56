"""
Pool asyncpg compartilhado pelo cache de buscas, métricas e registro
de empresas.
"""
import asyncpg
from typing import Optional
import logging
from app.core.config import settings

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.Pool] = None


def is_database_configured() -> bool:
    """Sem DATABASE_URL o serviço usa stores em memória."""
    return bool(settings.DATABASE_URL)


async def _set_search_path(conn: asyncpg.Connection) -> None:
    await conn.execute(f'SET search_path TO {settings.DATABASE_SCHEMA}, public')


async def get_pool() -> asyncpg.Pool:
    """
    Retorna o pool de conexões, criando-o na primeira chamada.

    Raises:
        RuntimeError: DATABASE_URL não definida
        asyncpg.PostgresError / OSError: Banco inacessível
    """
    global _pool
    if _pool is not None:
        return _pool
    if not is_database_configured():
        raise RuntimeError("DATABASE_URL não definida")

    try:
        _pool = await asyncpg.create_pool(
            settings.DATABASE_URL,
            min_size=settings.DATABASE_POOL_MIN_SIZE,
            max_size=settings.DATABASE_POOL_MAX_SIZE,
            command_timeout=settings.DATABASE_COMMAND_TIMEOUT,
            init=_set_search_path,
        )
    except Exception as e:
        logger.error(f"❌ [DB] Erro ao criar pool asyncpg: {e}")
        raise
    logger.info(
        f"✅ [DB] Pool criado (min={settings.DATABASE_POOL_MIN_SIZE}, "
        f"max={settings.DATABASE_POOL_MAX_SIZE}, schema={settings.DATABASE_SCHEMA})"
    )
    return _pool


async def close_pool():
    global _pool
    if _pool:
        await _pool.close()
        _pool = None
        logger.info("🔌 [DB] Pool fechado")


async def test_connection() -> bool:
    """SELECT 1 no pool; usado pelo health check."""
    try:
        pool = await get_pool()
        async with pool.acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1
    except Exception as e:
        logger.error(f"❌ [DB] Falha no teste de conexão: {e}")
        return False
