# db.py - Gestion de base de données asynchrone (cache des schémas d'outils)

import asyncpg
from typing import Optional
from adaptive_tools.config.config import settings
from adaptive_tools.config.logger import logger

# Global test pool for test mode (set by test fixtures)
_test_pool = None

# Pool créé par le lifespan de l'API
_pool: Optional[asyncpg.Pool] = None

TOOL_SCHEMAS_DDL = """
CREATE TABLE IF NOT EXISTS tool_schemas (
    tool_name TEXT PRIMARY KEY,
    descriptor JSONB NOT NULL,
    schema_hash TEXT NOT NULL,
    last_refreshed_at TIMESTAMPTZ NOT NULL,
    refresh_count INTEGER NOT NULL DEFAULT 1,
    auto_refresh_enabled BOOLEAN NOT NULL DEFAULT TRUE,
    last_error_at TIMESTAMPTZ,
    last_error_message TEXT
)
"""


def is_configured() -> bool:
    """True si une base Postgres est configurée (sinon le cache reste en mémoire)."""
    return bool(settings.db_host and settings.db_name)


async def get_pool() -> asyncpg.Pool:
    """Returns the global database connection pool.

    In test mode, returns _test_pool if set.

    Raises:
        RuntimeError: If the pool was never created
    """
    if _test_pool is not None:
        return _test_pool
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call create_pool() first.")
    return _pool


async def create_pool() -> asyncpg.Pool:
    """Crée le pool de connexions et la table tool_schemas si besoin."""
    global _pool
    logger.info("🔗 Creating database connection pool...")
    _pool = await asyncpg.create_pool(
        host=settings.db_host,
        port=settings.db_port,
        database=settings.db_name,
        user=settings.db_user,
        password=settings.db_password,
        min_size=2,
        max_size=10,
        timeout=60,
        command_timeout=30
    )
    logger.info("✅ Database pool created: min=2, max=10")
    await init_db()
    return _pool


async def init_db():
    """Vérifie la connexion et crée la table tool_schemas."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        try:
            await conn.execute(TOOL_SCHEMAS_DDL)
            logger.info("✅ Database ready (tool_schemas)")
        except Exception as e:
            logger.error(f"❌ Failed to initialize database: {str(e)}")
            raise


async def close_pool():
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("✅ Database pool closed")
