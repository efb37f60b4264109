"""Pytest configuration and shared fixtures."""

import os
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg
import pytest

from parley.db.models import CorrelationRecord
from parley.ratelimit import RateLimiter
from parley.relay.dispatcher import RelayDispatcher
from parley.relay.outbound import TextSpan

GROUP_ID = -100123


# ── asyncpg stand-in ─────────────────────────────────────

class FakeConnection:
    """Just enough of asyncpg.Connection for the relay queries."""

    def __init__(self, pool: "FakePool"):
        self.pool = pool

    def _check(self):
        if self.pool.down:
            raise ConnectionRefusedError("connection refused")

    async def execute(self, sql: str, *args):
        self._check()
        if sql.startswith("INSERT INTO forwards"):
            message_id, user_id, dm_message_id = args
            if message_id in self.pool.forwards:
                raise asyncpg.UniqueViolationError(
                    'duplicate key value violates unique constraint "forwards_pkey"'
                )
            self.pool.forwards[message_id] = {"user_id": user_id, "dm_message_id": dm_message_id}
        elif sql.startswith("INSERT INTO bans"):
            (user_id,) = args
            if user_id in self.pool.bans and "ON CONFLICT" not in sql:
                raise asyncpg.UniqueViolationError('duplicate key value violates unique constraint "bans_pkey"')
            self.pool.bans.add(user_id)
        else:
            raise AssertionError(f"unexpected SQL: {sql}")
        return "INSERT 0 1"

    async def fetchrow(self, sql: str, *args):
        self._check()
        if "FROM forwards" in sql:
            return self.pool.forwards.get(args[0])
        if "FROM bans" in sql:
            return {"?column?": 1} if args[0] in self.pool.bans else None
        raise AssertionError(f"unexpected SQL: {sql}")

    async def fetchval(self, sql: str, *args):
        self._check()
        if "FROM forwards" in sql:
            return len(self.pool.forwards)
        if "FROM bans" in sql:
            return len(self.pool.bans)
        raise AssertionError(f"unexpected SQL: {sql}")

    async def fetch(self, sql: str, *args):
        self._check()
        if "FROM bans" in sql:
            return [{"user_id": user_id} for user_id in sorted(self.pool.bans)]
        raise AssertionError(f"unexpected SQL: {sql}")


class FakePool:
    def __init__(self):
        self.forwards: dict[int, dict] = {}
        self.bans: set[int] = set()
        self.down = False
        self.closed = False

    @asynccontextmanager
    async def acquire(self):
        yield FakeConnection(self)

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_pool():
    return FakePool()


@pytest.fixture
async def pg_pool():
    """Real PostgreSQL pool; skipped unless PARLEY_TEST_DATABASE_URL is set."""
    dsn = os.environ.get("PARLEY_TEST_DATABASE_URL")
    if not dsn:
        pytest.skip("PARLEY_TEST_DATABASE_URL not set")

    from parley.db.connection import close_db, ensure_schema, init_db

    pool = await init_db(dsn, min_size=1, max_size=4)
    await ensure_schema(pool)
    async with pool.acquire() as conn:
        await conn.execute("DELETE FROM forwards WHERE message_id >= 900000000")
        await conn.execute("DELETE FROM bans WHERE user_id >= 900000000")
    yield pool
    async with pool.acquire() as conn:
        await conn.execute("DELETE FROM forwards WHERE message_id >= 900000000")
        await conn.execute("DELETE FROM bans WHERE user_id >= 900000000")
    await close_db(pool)


# ── Relay fakes ──────────────────────────────────────────

class MemoryMappingStore:
    def __init__(self):
        self.rows: dict[int, CorrelationRecord] = {}

    async def record(self, group_message_id: int, user_id: int, user_message_id: int):
        from parley.errors import StorageConflictError

        if group_message_id in self.rows:
            raise StorageConflictError(f"duplicate {group_message_id}")
        self.rows[group_message_id] = CorrelationRecord(group_message_id, user_id, user_message_id)

    async def lookup(self, group_message_id: int) -> Optional[CorrelationRecord]:
        return self.rows.get(group_message_id)


class MemoryBanRegistry:
    def __init__(self):
        self.banned: set[int] = set()

    async def is_banned(self, user_id: int) -> bool:
        return user_id in self.banned

    async def ban(self, user_id: int):
        self.banned.add(user_id)


class RecordingOutbound:
    """Records every outbound action as a (name, kwargs) tuple."""

    def __init__(self, next_message_id: int = 500):
        self.calls: list[tuple[str, dict]] = []
        self._next_id = next_message_id

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def named(self, name: str) -> list[dict]:
        return [kwargs for call, kwargs in self.calls if call == name]

    async def send_text(self, chat_id: int, text: str, bold: Optional[TextSpan] = None) -> int:
        self.calls.append(("send_text", {"chat_id": chat_id, "text": text, "bold": bold}))
        return self._new_id()

    async def copy_message(self, chat_id, from_chat_id, message_id, reply_to_message_id=None) -> int:
        self.calls.append(("copy_message", {
            "chat_id": chat_id,
            "from_chat_id": from_chat_id,
            "message_id": message_id,
            "reply_to_message_id": reply_to_message_id,
        }))
        return self._new_id()

    async def forward_message(self, chat_id, from_chat_id, message_id) -> int:
        self.calls.append(("forward_message", {
            "chat_id": chat_id, "from_chat_id": from_chat_id, "message_id": message_id,
        }))
        return self._new_id()

    async def set_reaction(self, chat_id, message_id, reaction) -> None:
        self.calls.append(("set_reaction", {"chat_id": chat_id, "message_id": message_id, "reaction": reaction}))


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mappings():
    return MemoryMappingStore()


@pytest.fixture
def bans():
    return MemoryBanRegistry()


@pytest.fixture
def outbound():
    return RecordingOutbound()


@pytest.fixture
def limiter(clock):
    return RateLimiter(clock=clock)


@pytest.fixture
def dispatcher(outbound, mappings, bans, limiter):
    return RelayDispatcher(
        group_id=GROUP_ID,
        outbound=outbound,
        mappings=mappings,
        bans=bans,
        limiter=limiter,
    )
