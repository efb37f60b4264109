"""Query helpers for the relay tables.

Two stores share one pool:

- ``forwards``: write-once correlation rows keyed by the group-side
  message id. A second insert for the same key is rejected.
- ``bans``: append-only set of banned user ids. Re-banning is a no-op.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

import asyncpg

from ..errors import StorageConflictError, StorageIOError

logger = logging.getLogger("parley.db")


@dataclass(frozen=True)
class CorrelationRecord:
    """Link between a message in the group and the user message it came from."""

    group_message_id: int
    user_id: int
    user_message_id: int


@asynccontextmanager
async def _storage_errors(operation: str):
    """Translate driver exceptions into the storage error hierarchy."""
    try:
        yield
    except asyncpg.UniqueViolationError as e:
        raise StorageConflictError(f"{operation}: {e}") from e
    except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
        raise StorageIOError(f"{operation}: {type(e).__name__}: {e}") from e


# ============================================================
# FORWARDS
# ============================================================

class PgMappingStore:
    """Identity mapping store backed by the ``forwards`` table."""

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def record(self, group_message_id: int, user_id: int, user_message_id: int):
        """Insert a correlation row.

        Raises:
            StorageConflictError: ``group_message_id`` already recorded.
            StorageIOError: the database is unavailable.
        """
        async with _storage_errors("record"):
            async with self._pool.acquire() as conn:
                await conn.execute(
                    "INSERT INTO forwards (message_id, user_id, dm_message_id) VALUES ($1, $2, $3)",
                    group_message_id, user_id, user_message_id,
                )
        logger.debug(f"Recorded group message {group_message_id} -> user {user_id} msg {user_message_id}")

    async def lookup(self, group_message_id: int) -> Optional[CorrelationRecord]:
        """Find the correlation row for a group message, or None."""
        async with _storage_errors("lookup"):
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT user_id, dm_message_id FROM forwards WHERE message_id = $1",
                    group_message_id,
                )
        if not row:
            return None
        return CorrelationRecord(
            group_message_id=group_message_id,
            user_id=row["user_id"],
            user_message_id=row["dm_message_id"],
        )

    async def count(self) -> int:
        async with _storage_errors("count"):
            async with self._pool.acquire() as conn:
                return await conn.fetchval("SELECT COUNT(*) FROM forwards")


# ============================================================
# BANS
# ============================================================

class PgBanRegistry:
    """Ban registry backed by the ``bans`` table."""

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def is_banned(self, user_id: int) -> bool:
        async with _storage_errors("is_banned"):
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow("SELECT 1 FROM bans WHERE user_id = $1", user_id)
        return row is not None

    async def ban(self, user_id: int):
        """Ban a user. Banning an already banned user succeeds silently."""
        async with _storage_errors("ban"):
            async with self._pool.acquire() as conn:
                await conn.execute(
                    "INSERT INTO bans (user_id) VALUES ($1) ON CONFLICT (user_id) DO NOTHING",
                    user_id,
                )
        logger.info(f"User {user_id} banned")

    async def list_banned(self) -> list[int]:
        async with _storage_errors("list_banned"):
            async with self._pool.acquire() as conn:
                rows = await conn.fetch("SELECT user_id FROM bans ORDER BY user_id")
        return [row["user_id"] for row in rows]

    async def count(self) -> int:
        async with _storage_errors("count"):
            async with self._pool.acquire() as conn:
                return await conn.fetchval("SELECT COUNT(*) FROM bans")
