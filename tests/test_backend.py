"""Tests for the in-memory backend and its atomic room join."""

import asyncio
from datetime import timedelta

import pytest

from chatverse.backend import BackendError, InMemoryBackend, JoinOutcome, hash_password
from chatverse.schemas import UserRecord, utc_now


@pytest.mark.asyncio
async def test_join_room_is_idempotent():
    backend = InMemoryBackend()
    room = backend.add_room("Evening Prayer", capacity=8)

    first = await backend.join_room(room.id, "agent-1", utc_now())
    second = await backend.join_room(room.id, "agent-1", utc_now())

    assert first is JoinOutcome.JOINED
    assert second is JoinOutcome.ALREADY_MEMBER
    assert backend.room_store[room.id].current_participants == ["agent-1"]
    assert list(backend.participations) == [(room.id, "agent-1")]


@pytest.mark.asyncio
async def test_concurrent_joins_never_exceed_capacity():
    backend = InMemoryBackend()
    room = backend.add_room("Small Group", capacity=3)

    outcomes = await asyncio.gather(
        *(backend.join_room(room.id, f"agent-{i}", utc_now()) for i in range(10))
    )

    assert outcomes.count(JoinOutcome.JOINED) == 3
    assert outcomes.count(JoinOutcome.FULL) == 7
    participants = backend.room_store[room.id].current_participants
    assert len(participants) == 3
    assert len(set(participants)) == 3


@pytest.mark.asyncio
async def test_join_missing_or_inactive_room():
    backend = InMemoryBackend()
    closed = backend.add_room("Closed", is_active=False)

    assert await backend.join_room("nope", "agent-1", utc_now()) is JoinOutcome.MISSING
    assert await backend.join_room(closed.id, "agent-1", utc_now()) is JoinOutcome.MISSING
    assert backend.writes == []


@pytest.mark.asyncio
async def test_leave_room_deactivates_participation():
    backend = InMemoryBackend()
    room = backend.add_room("Morning", participants=["human-1"])
    await backend.join_room(room.id, "agent-1", utc_now())

    assert await backend.leave_room(room.id, "agent-1") is True
    assert await backend.leave_room(room.id, "agent-1") is False
    assert backend.room_store[room.id].current_participants == ["human-1"]
    assert await backend.active_room_ids("agent-1") == []
    assert backend.participations[(room.id, "agent-1")].is_active is False


@pytest.mark.asyncio
async def test_recent_messages_window_and_order():
    backend = InMemoryBackend()
    room = backend.add_room("Chat")
    now = utc_now()
    backend.post_message(room.id, "human", "old", created_at=now - timedelta(minutes=10))
    backend.post_message(room.id, "human", "first", created_at=now - timedelta(minutes=2))
    backend.post_message(room.id, "human", "second", created_at=now - timedelta(minutes=1))

    recent = await backend.recent_messages(now - timedelta(minutes=5), limit=20)

    assert [m.content for m in recent] == ["second", "first"]
    assert [m.content for m in await backend.recent_messages(now - timedelta(minutes=5), limit=1)] == [
        "second"
    ]


@pytest.mark.asyncio
async def test_rooms_skip_inactive_and_respect_limit():
    backend = InMemoryBackend()
    for i in range(4):
        backend.add_room(f"Room {i}")
    backend.add_room("Archived", is_active=False)

    rooms = await backend.rooms(limit=3)

    assert len(rooms) == 3
    assert all(room.name != "Archived" for room in rooms)


@pytest.mark.asyncio
async def test_sample_real_users_excludes_simulated():
    backend = InMemoryBackend()
    real = backend.add_user("Real Person")
    backend.add_user("Bot", is_simulated=True)

    users = await backend.sample_real_users(limit=10)

    assert [user.id for user in users] == [real.id]


@pytest.mark.asyncio
async def test_identity_registration_can_be_unavailable():
    backend = InMemoryBackend(identity_enabled=False)
    user = UserRecord(id="u1", display_name="Bot", email="bot@x", is_simulated=True)

    with pytest.raises(BackendError):
        await backend.create_identity_user(user, "secret")

    assert await backend.create_profile_user(user) == "u1"
    assert backend.users["u1"].is_simulated is True


@pytest.mark.asyncio
async def test_identity_registration_rejects_duplicate_email():
    backend = InMemoryBackend()
    await backend.create_identity_user(UserRecord(id="u1", display_name="A", email="a@x"), "pw")

    with pytest.raises(BackendError) as excinfo:
        await backend.create_identity_user(UserRecord(id="u2", display_name="B", email="a@x"), "pw")

    assert excinfo.value.operation == "create_identity_user"
    assert "u2" not in backend.users


@pytest.mark.asyncio
async def test_injected_failure_raises_backend_error():
    backend = InMemoryBackend()
    backend.fail_operations.add("rooms")

    with pytest.raises(BackendError):
        await backend.rooms()


@pytest.mark.asyncio
async def test_purge_removes_only_simulated_rows():
    backend = InMemoryBackend()
    human = backend.add_user("Human")
    bot = backend.add_user("Bot", is_simulated=True)
    room = backend.add_room("Shared", participants=[human.id])
    await backend.join_room(room.id, bot.id, utc_now())
    await backend.insert_message(room.id, bot.id, "hi")
    backend.post_message(room.id, human.id, "hello")
    await backend.insert_prayer_request(bot.id, human.id, "pray for me")

    removed = await backend.purge_simulated_users()

    assert removed == 1
    assert set(backend.users) == {human.id}
    assert backend.room_store[room.id].current_participants == [human.id]
    assert [m.user_id for m in backend.messages] == [human.id]
    assert backend.prayer_requests == []
    assert await backend.purge_simulated_users() == 0


def test_hash_password_is_salted():
    assert hash_password("secret") != hash_password("secret")
    salt = bytes(16)
    assert hash_password("secret", salt=salt) == hash_password("secret", salt=salt)
    assert hash_password("secret", salt=salt).startswith(salt.hex() + "$")


@pytest.mark.asyncio
async def test_point_reads_return_none_for_missing_rows():
    backend = InMemoryBackend()
    room = backend.add_room("Chat", capacity=5)
    user = backend.add_user("Human")

    assert (await backend.get_room(room.id)).capacity == 5
    assert (await backend.get_user(user.id)).display_name == "Human"
    assert await backend.get_room("missing") is None
    assert await backend.get_user("missing") is None
    assert await backend.get_participation(room.id, user.id) is None


@pytest.mark.asyncio
async def test_recent_messages_flag_simulated_authors():
    backend = InMemoryBackend()
    room = backend.add_room("Chat")
    human = backend.add_user("Human")
    bot = backend.add_user("Bot", is_simulated=True)
    backend.post_message(room.id, human.id, "hello")
    backend.post_message(room.id, bot.id, "hi there")

    recent = await backend.recent_messages(utc_now() - timedelta(minutes=5))

    flags = {message.author_id: message.author_is_simulated for message in recent}
    assert flags == {human.id: False, bot.id: True}


@pytest.mark.asyncio
async def test_failed_join_leaves_no_partial_rows():
    backend = InMemoryBackend()
    room = backend.add_room("Chat", participants=["human"])
    backend.fail_operations.add("replace_room_participants")

    with pytest.raises(BackendError):
        await backend.join_room(room.id, "agent-1", utc_now())

    assert (room.id, "agent-1") not in backend.participations
    assert backend.room_store[room.id].current_participants == ["human"]
    assert backend.writes == []

    backend.fail_operations.clear()
    assert await backend.join_room(room.id, "agent-1", utc_now()) is JoinOutcome.JOINED
