"""Tests for PostgresBackend SQL flow using a recording fake pool."""

import contextlib

import pytest

pytest.importorskip("asyncpg")

from chatverse.backend import JoinOutcome, PostgresBackend
from chatverse.schemas import utc_now


class FakeConnection:
    def __init__(self, room_row=None):
        self.room_row = room_row
        self.executed = []
        self.in_transaction = False

    @contextlib.asynccontextmanager
    async def transaction(self):
        self.in_transaction = True
        try:
            yield
        finally:
            self.in_transaction = False

    async def fetchrow(self, query, *args):
        self.executed.append((" ".join(query.split()), args, self.in_transaction))
        return self.room_row

    async def fetch(self, query, *args):
        self.executed.append((" ".join(query.split()), args, self.in_transaction))
        return []

    async def execute(self, query, *args):
        self.executed.append((" ".join(query.split()), args, self.in_transaction))
        return "OK"


class FakePool:
    def __init__(self, conn):
        self.conn = conn

    @contextlib.asynccontextmanager
    async def acquire(self):
        yield self.conn


def make_backend(room_row):
    backend = PostgresBackend("postgresql://example/chatverse")
    conn = FakeConnection(room_row)
    backend.pool = FakePool(conn)
    return backend, conn


@pytest.mark.asyncio
async def test_join_locks_row_and_appends_in_one_transaction():
    backend, conn = make_backend(
        {"max_capacity": 8, "current_participants": ["human"], "is_active": True}
    )

    outcome = await backend.join_room("room-1", "agent-1", utc_now())

    assert outcome is JoinOutcome.JOINED
    statements = [sql for sql, _, _ in conn.executed]
    assert "FOR UPDATE" in statements[0]
    assert statements[1].startswith("INSERT INTO room_participants")
    assert "array_append" in statements[2]
    assert all(in_tx for _, _, in_tx in conn.executed)


@pytest.mark.asyncio
async def test_join_full_room_writes_nothing():
    backend, conn = make_backend(
        {"max_capacity": 1, "current_participants": ["human"], "is_active": True}
    )

    assert await backend.join_room("room-1", "agent-1", utc_now()) is JoinOutcome.FULL
    assert len(conn.executed) == 1


@pytest.mark.asyncio
async def test_join_existing_member_only_refreshes_participation():
    backend, conn = make_backend(
        {"max_capacity": 8, "current_participants": ["agent-1"], "is_active": True}
    )

    assert await backend.join_room("room-1", "agent-1", utc_now()) is JoinOutcome.ALREADY_MEMBER
    statements = [sql for sql, _, _ in conn.executed]
    assert not any("array_append" in sql for sql in statements)


@pytest.mark.asyncio
async def test_join_missing_room():
    backend, conn = make_backend(None)
    assert await backend.join_room("room-1", "agent-1", utc_now()) is JoinOutcome.MISSING


@pytest.mark.asyncio
async def test_purge_without_simulated_users_is_noop():
    backend, conn = make_backend(None)
    assert await backend.purge_simulated_users() == 0
    assert len(conn.executed) == 1


class MessageRowsConnection(FakeConnection):
    def __init__(self, rows):
        super().__init__()
        self.rows = rows

    async def fetch(self, query, *args):
        await super().fetch(query, *args)
        return self.rows


@pytest.mark.asyncio
async def test_recent_messages_carry_author_simulated_flag():
    now = utc_now()
    conn = MessageRowsConnection(
        [
            {"id": "m1", "room_id": "r", "user_id": "bot", "content": "hi",
             "created_at": now, "author_is_simulated": True},
            {"id": "m2", "room_id": "r", "user_id": "human", "content": "hello",
             "created_at": now, "author_is_simulated": False},
        ]
    )
    backend = PostgresBackend("postgresql://example/chatverse")
    backend.pool = FakePool(conn)

    messages = await backend.recent_messages(now, limit=20)

    assert [m.author_is_simulated for m in messages] == [True, False]
    sql = conn.executed[0][0]
    assert "LEFT JOIN users u ON u.id = m.user_id" in sql
