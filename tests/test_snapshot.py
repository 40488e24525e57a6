"""Tests for world snapshot loading."""

from datetime import datetime, timedelta, timezone

import pytest

from chatverse.backend import InMemoryBackend
from chatverse.snapshot import SnapshotUnavailableError, WorldSnapshotLoader

NOW = datetime(2030, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_snapshot_keeps_trailing_window_only():
    backend = InMemoryBackend()
    room = backend.add_room("Chat")
    backend.post_message(room.id, "human", "stale", created_at=NOW - timedelta(minutes=6))
    fresh = backend.post_message(room.id, "human", "fresh", created_at=NOW - timedelta(minutes=4))

    loader = WorldSnapshotLoader(backend, window_seconds=300, clock=lambda: NOW)
    snapshot = await loader.load()

    assert snapshot.taken_at == NOW
    assert [room.id for room in snapshot.rooms] == [room.id]
    assert [m.id for m in snapshot.recent_messages] == [fresh.id]
    assert snapshot.recent_messages[0].author_id == "human"


@pytest.mark.asyncio
async def test_snapshot_respects_read_limits():
    backend = InMemoryBackend()
    for i in range(5):
        room = backend.add_room(f"Room {i}")
    for i in range(6):
        backend.post_message(room.id, "human", f"line {i}", created_at=NOW - timedelta(seconds=i))

    loader = WorldSnapshotLoader(backend, room_limit=2, message_limit=3, clock=lambda: NOW)
    snapshot = await loader.load()

    assert len(snapshot.rooms) == 2
    assert [m.content for m in snapshot.recent_messages] == ["line 0", "line 1", "line 2"]


@pytest.mark.parametrize("operation, stage", [("rooms", "rooms"), ("recent_messages", "recent messages")])
@pytest.mark.asyncio
async def test_failed_read_raises_with_stage(operation, stage):
    backend = InMemoryBackend()
    backend.fail_operations.add(operation)

    with pytest.raises(SnapshotUnavailableError) as excinfo:
        await WorldSnapshotLoader(backend).load()

    assert excinfo.value.stage == stage
    assert excinfo.value.underlying.operation == operation
