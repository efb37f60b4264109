"""Database connection management."""

import asyncio
import logging

import asyncpg
from typing import Optional

logger = logging.getLogger("parley.db")

# Idempotent; the only migration this store has.
SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS forwards (
        message_id BIGINT PRIMARY KEY,
        user_id BIGINT NOT NULL,
        dm_message_id BIGINT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS bans (
        user_id BIGINT PRIMARY KEY
    )
    """,
)


async def init_db(dsn: str, min_size: int = 2, max_size: int = 10) -> asyncpg.Pool:
    """Initialize the database connection pool with retry.
    
    Retries up to 5 times with backoff (2, 4, 8, 8, 8 seconds).
    This handles the case where the DB container isn't ready yet at boot.
    """
    max_retries = 5
    delays = [2, 4, 8, 8, 8]

    for attempt in range(max_retries):
        try:
            pool = await asyncpg.create_pool(dsn, min_size=min_size, max_size=max_size)
            if attempt > 0:
                logger.info(f"Database connected after {attempt + 1} attempts")
            return pool
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            if attempt < max_retries - 1:
                delay = delays[attempt]
                logger.warning(f"Database not ready (attempt {attempt + 1}/{max_retries}): {e}. Retrying in {delay}s...")
                await asyncio.sleep(delay)
            else:
                logger.error(f"Database connection failed after {max_retries} attempts: {e}")
                raise


async def ensure_schema(pool: asyncpg.Pool):
    """Create the relay tables if they do not exist yet."""
    async with pool.acquire() as conn:
        async with conn.transaction():
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)
    logger.info("Database schema ready")


async def close_db(pool: Optional[asyncpg.Pool]):
    """Close the database connection pool."""
    if pool is not None:
        await pool.close()
