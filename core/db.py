"""
PostgreSQL connection pool.

Usage:
    from core.db import create_pool

    pool = await create_pool(get_config().database)
    async with pool.acquire() as conn:
        row = await conn.fetchrow("SELECT 1")
"""

import logging

import asyncpg
from tenacity import retry, stop_after_attempt, wait_exponential

from .config import DatabaseConfig

logger = logging.getLogger(__name__)


@retry(stop=stop_after_attempt(5), wait=wait_exponential(multiplier=1, min=1, max=10), reraise=True)
async def create_pool(config: DatabaseConfig) -> asyncpg.Pool:
    """Create the asyncpg pool, retrying while the database comes up."""
    logger.info(f"Connecting to database (pool {config.pool_min_size}-{config.pool_max_size})")
    return await asyncpg.create_pool(
        config.url,
        min_size=config.pool_min_size,
        max_size=config.pool_max_size,
    )


def rows_affected(status: str) -> int:
    """Row count from an asyncpg command tag such as ``UPDATE 1``."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0
