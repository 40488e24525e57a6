"""
BackendStrategy interface for the shared store the simulator reads and writes.

The simulator never owns the data it mutates: rooms, messages, users and
prayer requests live in a backend shared with real users of the app. This
module provides the abstract BackendStrategy interface and two concrete
implementations:

1. InMemoryBackend - Dict-based storage, data lost on exit (testing, demos)
2. PostgresBackend - asyncpg connection pool against the app's relational store

Key responsibilities:
- Bounded reads of rooms, recent messages, memberships and real users
- Idempotent participation upserts and full-array room participant replaces
- Atomic room join (capacity + membership re-check and both writes in one call)
- Two-tier user creation (authenticated identity, profile-only fallback)
- Purging simulated users and everything they wrote

Usage pattern:
    backend = InMemoryBackend()  # or PostgresBackend(database_url)

    await backend.initialize()
    rooms = await backend.rooms(limit=10)
    outcome = await backend.join_room(room_id, user_id, utc_now())
    await backend.close()
"""

import asyncio
import hashlib
import os
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple
from uuid import uuid4

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from chatverse.schemas import (
    MessageRecord,
    MessageSnapshot,
    ParticipationRecord,
    PrayerRequestRecord,
    RoomRecord,
    RoomSnapshot,
    UserRecord,
    utc_now,
)
from .config import Config

try:  # Optional dependency (only needed for PostgresBackend)
    import asyncpg
except ImportError:  # pragma: no cover - asyncpg may not be installed for in-memory usage
    asyncpg = None


class BackendError(Exception):
    """Raised when a backend read or write fails."""

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"Backend operation '{operation}' failed: {reason}")


class JoinOutcome(Enum):
    """Result of an atomic room join."""

    JOINED = "joined"
    ALREADY_MEMBER = "already_member"
    FULL = "full"
    MISSING = "missing"


def hash_password(password: str, *, salt: Optional[bytes] = None) -> str:
    """Return ``salt$digest`` using PBKDF2-SHA256."""
    salt = salt or os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, 100_000)
    return f"{salt.hex()}${digest.hex()}"


class BackendStrategy(ABC):
    """Abstract base class for the shared data store.

    All methods are async: every read and write is a suspension point of the
    agent step that issues it. Implementations make no promise of isolation
    between calls, only within ``join_room``.

    Method categories:
    1. Lifecycle: initialize(), close()
    2. Reads: rooms(), get_room(), recent_messages(), active_room_ids(),
       get_participation(), sample_real_users(), get_user()
    3. Room membership: upsert_participation(), replace_room_participants(),
       join_room(), leave_room()
    4. Content: insert_message(), insert_prayer_request()
    5. Users: create_identity_user(), create_profile_user(),
       update_user_location(), touch_user(), purge_simulated_users()
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Open connections or allocate storage. Called once before use."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release connections. Data is left in place."""
        pass

    # ------------------------------------------------------------------ reads

    @abstractmethod
    async def rooms(self, limit: int = 10) -> List[RoomSnapshot]:
        """Return up to ``limit`` active rooms."""
        pass

    @abstractmethod
    async def get_room(self, room_id: str) -> Optional[RoomSnapshot]:
        pass

    @abstractmethod
    async def recent_messages(self, since: datetime, limit: int = 20) -> List[MessageSnapshot]:
        """Return messages created at or after ``since``, newest first."""
        pass

    @abstractmethod
    async def active_room_ids(self, user_id: str) -> List[str]:
        """Return ids of rooms where ``user_id`` holds an active participation."""
        pass

    @abstractmethod
    async def get_participation(
        self, room_id: str, user_id: str
    ) -> Optional[ParticipationRecord]:
        pass

    @abstractmethod
    async def sample_real_users(self, limit: int = 10) -> List[UserRecord]:
        """Return up to ``limit`` users that are not simulated."""
        pass

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        pass

    # ------------------------------------------------------- room membership

    @abstractmethod
    async def upsert_participation(
        self, room_id: str, user_id: str, joined_at: datetime, active: bool = True
    ) -> None:
        """Create or update the (room_id, user_id) participation row. Idempotent."""
        pass

    @abstractmethod
    async def replace_room_participants(self, room_id: str, participant_ids: List[str]) -> None:
        """Overwrite the room's participant array (occupant count follows its length)."""
        pass

    @abstractmethod
    async def join_room(self, room_id: str, user_id: str, joined_at: datetime) -> JoinOutcome:
        """Atomically add ``user_id`` to the room.

        Re-checks membership and capacity and writes both the participation
        record and the participant array as one unit, so concurrent joiners
        can never push the room past capacity or duplicate a member.
        """
        pass

    @abstractmethod
    async def leave_room(self, room_id: str, user_id: str) -> bool:
        """Deactivate the participation and drop the user from the array."""
        pass

    # ---------------------------------------------------------------- content

    @abstractmethod
    async def insert_message(
        self,
        room_id: str,
        author_id: str,
        content: str,
        message_type: str = "text",
        created_at: Optional[datetime] = None,
    ) -> MessageRecord:
        pass

    @abstractmethod
    async def insert_prayer_request(
        self,
        from_user_id: str,
        to_user_id: str,
        text: str,
        status: str = "active",
        is_urgent: bool = False,
        created_at: Optional[datetime] = None,
    ) -> PrayerRequestRecord:
        pass

    # ------------------------------------------------------------------ users

    @abstractmethod
    async def create_identity_user(self, user: UserRecord, password: str) -> str:
        """Create an authenticated identity plus its profile row. Returns the user id."""
        pass

    @abstractmethod
    async def create_profile_user(self, user: UserRecord) -> str:
        """Create a profile row with no authenticated identity. Returns the user id."""
        pass

    @abstractmethod
    async def update_user_location(
        self, user_id: str, lat: float, lng: float, last_active: datetime
    ) -> None:
        pass

    @abstractmethod
    async def touch_user(self, user_id: str, last_active: datetime) -> None:
        pass

    @abstractmethod
    async def purge_simulated_users(self) -> int:
        """Delete every simulated user and the rows they authored. Returns users removed."""
        pass


class InMemoryBackend(BackendStrategy):
    """In-memory backend using Python dicts (no database).

    Storage structure:
    - users: Dict[user_id, UserRecord]
    - identities: Dict[email, (user_id, password_hash)]
    - room_store: Dict[room_id, RoomRecord]
    - participations: Dict[(room_id, user_id), ParticipationRecord]
    - messages / prayer_requests: append-only lists
    - writes: ordered log of (operation, details) for every mutation

    Extras for tests and demos:
    - add_room() / add_user() / post_message() seed data synchronously
    - identity_enabled=False makes every identity creation fail
    - fail_operations names operations that raise BackendError
    """

    def __init__(self, *, identity_enabled: bool = True):
        self.identity_enabled = identity_enabled
        self.fail_operations: Set[str] = set()

        self.users: Dict[str, UserRecord] = {}
        self.identities: Dict[str, Tuple[str, str]] = {}
        self.room_store: Dict[str, RoomRecord] = {}
        self.participations: Dict[Tuple[str, str], ParticipationRecord] = {}
        self.messages: List[MessageRecord] = []
        self.prayer_requests: List[PrayerRequestRecord] = []
        self.writes: List[Tuple[str, Dict[str, Any]]] = []

        self._lock = asyncio.Lock()

    # ---------------------------------------------------------------- seeding

    def add_room(
        self,
        name: str,
        capacity: int = 8,
        participants: Optional[List[str]] = None,
        *,
        room_id: Optional[str] = None,
        is_active: bool = True,
    ) -> RoomRecord:
        room = RoomRecord(
            id=room_id or str(uuid4()),
            name=name,
            max_capacity=capacity,
            current_participants=list(participants or []),
            is_active=is_active,
        )
        self.room_store[room.id] = room
        for user_id in room.current_participants:
            self.participations[(room.id, user_id)] = ParticipationRecord(
                room_id=room.id, user_id=user_id, joined_at=utc_now()
            )
        return room

    def add_user(self, display_name: str, *, is_simulated: bool = False, user_id: Optional[str] = None) -> UserRecord:
        user = UserRecord(
            id=user_id or str(uuid4()),
            display_name=display_name,
            email=f"{display_name.lower().replace(' ', '.')}@example.com",
            is_simulated=is_simulated,
        )
        self.users[user.id] = user
        return user

    def post_message(
        self,
        room_id: str,
        user_id: str,
        content: str,
        *,
        created_at: Optional[datetime] = None,
    ) -> MessageRecord:
        """Seed a message without recording it as a simulator write."""
        message = MessageRecord(
            id=str(uuid4()),
            room_id=room_id,
            user_id=user_id,
            content=content,
            created_at=created_at or utc_now(),
        )
        self.messages.append(message)
        return message

    def writes_to(self, *operations: str) -> List[Tuple[str, Dict[str, Any]]]:
        return [entry for entry in self.writes if entry[0] in operations]

    def _check(self, operation: str) -> None:
        if operation in self.fail_operations:
            raise BackendError(operation, "injected failure")

    def _record(self, operation: str, **details: Any) -> None:
        self.writes.append((operation, details))

    # -------------------------------------------------------------- lifecycle

    async def initialize(self) -> None:
        """No-op for in-memory storage."""
        pass

    async def close(self) -> None:
        """No-op: data is kept so callers can inspect it after a run."""
        pass

    # ------------------------------------------------------------------ reads

    async def rooms(self, limit: int = 10) -> List[RoomSnapshot]:
        self._check("rooms")
        active = [room for room in self.room_store.values() if room.is_active]
        active.sort(key=lambda room: room.created_at)
        return [RoomSnapshot.from_record(room) for room in active[:limit]]

    async def get_room(self, room_id: str) -> Optional[RoomSnapshot]:
        self._check("get_room")
        room = self.room_store.get(room_id)
        return RoomSnapshot.from_record(room) if room else None

    async def recent_messages(self, since: datetime, limit: int = 20) -> List[MessageSnapshot]:
        self._check("recent_messages")
        recent = [message for message in self.messages if message.created_at >= since]
        recent.sort(key=lambda message: message.created_at, reverse=True)
        return [
            MessageSnapshot.from_record(
                message, author_is_simulated=self._is_simulated(message.user_id)
            )
            for message in recent[:limit]
        ]

    def _is_simulated(self, user_id: str) -> bool:
        user = self.users.get(user_id)
        return user is not None and user.is_simulated

    async def active_room_ids(self, user_id: str) -> List[str]:
        self._check("active_room_ids")
        return [
            record.room_id
            for record in self.participations.values()
            if record.user_id == user_id and record.is_active
        ]

    async def get_participation(
        self, room_id: str, user_id: str
    ) -> Optional[ParticipationRecord]:
        self._check("get_participation")
        return self.participations.get((room_id, user_id))

    async def sample_real_users(self, limit: int = 10) -> List[UserRecord]:
        self._check("sample_real_users")
        real = [user for user in self.users.values() if not user.is_simulated]
        return real[:limit]

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        self._check("get_user")
        return self.users.get(user_id)

    # ------------------------------------------------------- room membership

    async def upsert_participation(
        self, room_id: str, user_id: str, joined_at: datetime, active: bool = True
    ) -> None:
        self._check("upsert_participation")
        self.participations[(room_id, user_id)] = ParticipationRecord(
            room_id=room_id, user_id=user_id, joined_at=joined_at, is_active=active
        )
        self._record("upsert_participation", room_id=room_id, user_id=user_id, active=active)

    async def replace_room_participants(self, room_id: str, participant_ids: List[str]) -> None:
        self._check("replace_room_participants")
        room = self.room_store.get(room_id)
        if room is None:
            raise BackendError("replace_room_participants", f"room {room_id} not found")
        room.current_participants = list(participant_ids)
        self._record("replace_room_participants", room_id=room_id, count=len(participant_ids))

    async def join_room(self, room_id: str, user_id: str, joined_at: datetime) -> JoinOutcome:
        self._check("join_room")
        async with self._lock:
            room = self.room_store.get(room_id)
            if room is None or not room.is_active:
                return JoinOutcome.MISSING

            existing = self.participations.get((room_id, user_id))
            if user_id in room.current_participants:
                if existing is None or not existing.is_active:
                    await self.upsert_participation(room_id, user_id, joined_at)
                return JoinOutcome.ALREADY_MEMBER

            if len(room.current_participants) >= room.max_capacity:
                return JoinOutcome.FULL

            previous_participants = list(room.current_participants)
            writes_before = len(self.writes)
            try:
                await self.upsert_participation(room_id, user_id, joined_at)
                await self.replace_room_participants(room_id, previous_participants + [user_id])
            except BackendError:
                # Roll back both halves, as the Postgres transaction would
                room.current_participants = previous_participants
                if existing is None:
                    self.participations.pop((room_id, user_id), None)
                else:
                    self.participations[(room_id, user_id)] = existing
                del self.writes[writes_before:]
                raise
            return JoinOutcome.JOINED

    async def leave_room(self, room_id: str, user_id: str) -> bool:
        self._check("leave_room")
        async with self._lock:
            room = self.room_store.get(room_id)
            record = self.participations.get((room_id, user_id))
            if room is None or record is None or not record.is_active:
                return False
            await self.upsert_participation(room_id, user_id, record.joined_at, active=False)
            await self.replace_room_participants(
                room_id, [pid for pid in room.current_participants if pid != user_id]
            )
            return True

    # ---------------------------------------------------------------- content

    async def insert_message(
        self,
        room_id: str,
        author_id: str,
        content: str,
        message_type: str = "text",
        created_at: Optional[datetime] = None,
    ) -> MessageRecord:
        self._check("insert_message")
        message = MessageRecord(
            id=str(uuid4()),
            room_id=room_id,
            user_id=author_id,
            content=content,
            message_type=message_type,
            created_at=created_at or utc_now(),
        )
        self.messages.append(message)
        self._record("insert_message", room_id=room_id, user_id=author_id)
        return message

    async def insert_prayer_request(
        self,
        from_user_id: str,
        to_user_id: str,
        text: str,
        status: str = "active",
        is_urgent: bool = False,
        created_at: Optional[datetime] = None,
    ) -> PrayerRequestRecord:
        self._check("insert_prayer_request")
        request = PrayerRequestRecord(
            id=str(uuid4()),
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            request_text=text,
            status=status,
            is_urgent=is_urgent,
            created_at=created_at or utc_now(),
        )
        self.prayer_requests.append(request)
        self._record("insert_prayer_request", from_user_id=from_user_id, to_user_id=to_user_id)
        return request

    # ------------------------------------------------------------------ users

    async def create_identity_user(self, user: UserRecord, password: str) -> str:
        self._check("create_identity_user")
        if not self.identity_enabled:
            raise BackendError("create_identity_user", "identity provider unavailable")
        if user.email in self.identities:
            raise BackendError("create_identity_user", f"email {user.email} already registered")
        self.identities[user.email] = (user.id, hash_password(password))
        self.users[user.id] = user.model_copy()
        self._record("create_identity_user", user_id=user.id)
        return user.id

    async def create_profile_user(self, user: UserRecord) -> str:
        self._check("create_profile_user")
        self.users[user.id] = user.model_copy()
        self._record("create_profile_user", user_id=user.id)
        return user.id

    async def update_user_location(
        self, user_id: str, lat: float, lng: float, last_active: datetime
    ) -> None:
        self._check("update_user_location")
        user = self.users.get(user_id)
        if user is None:
            raise BackendError("update_user_location", f"user {user_id} not found")
        user.location_lat = lat
        user.location_lng = lng
        user.last_active = last_active
        self._record("update_user_location", user_id=user_id)

    async def touch_user(self, user_id: str, last_active: datetime) -> None:
        self._check("touch_user")
        user = self.users.get(user_id)
        if user is not None:
            user.last_active = last_active
        self._record("touch_user", user_id=user_id)

    async def purge_simulated_users(self) -> int:
        self._check("purge_simulated_users")
        async with self._lock:
            simulated = {user_id for user_id, user in self.users.items() if user.is_simulated}
            if not simulated:
                return 0

            for key in [key for key in self.participations if key[1] in simulated]:
                del self.participations[key]
            for room in self.room_store.values():
                room.current_participants = [
                    pid for pid in room.current_participants if pid not in simulated
                ]
            self.messages = [m for m in self.messages if m.user_id not in simulated]
            self.prayer_requests = [
                r for r in self.prayer_requests if r.from_user_id not in simulated
            ]
            self.identities = {
                email: entry for email, entry in self.identities.items() if entry[0] not in simulated
            }
            for user_id in simulated:
                del self.users[user_id]

            self._record("purge_simulated_users", count=len(simulated))
            return len(simulated)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    display_name TEXT NOT NULL,
    email TEXT NOT NULL,
    location_lat DOUBLE PRECISION,
    location_lng DOUBLE PRECISION,
    location_sharing BOOLEAN NOT NULL DEFAULT FALSE,
    last_active TIMESTAMPTZ NOT NULL DEFAULT now(),
    care_score INTEGER NOT NULL DEFAULT 0,
    is_simulated BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS user_identities (
    email TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    password_hash TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS parallel_rooms (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    max_capacity INTEGER NOT NULL,
    current_participants TEXT[] NOT NULL DEFAULT '{}',
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS room_participants (
    room_id TEXT NOT NULL REFERENCES parallel_rooms(id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    joined_at TIMESTAMPTZ NOT NULL,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    PRIMARY KEY (room_id, user_id)
);

CREATE TABLE IF NOT EXISTS room_messages (
    id TEXT PRIMARY KEY,
    room_id TEXT NOT NULL REFERENCES parallel_rooms(id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    content TEXT NOT NULL,
    message_type TEXT NOT NULL DEFAULT 'text',
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS room_messages_created_at_idx ON room_messages (created_at DESC);

CREATE TABLE IF NOT EXISTS prayer_requests (
    id TEXT PRIMARY KEY,
    from_user_id TEXT NOT NULL,
    to_user_id TEXT NOT NULL,
    request_text TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    is_urgent BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""


class PostgresBackend(BackendStrategy):
    """PostgreSQL-backed store using an asyncpg connection pool.

    Tables: users, user_identities, parallel_rooms (participant array),
    room_participants, room_messages, prayer_requests. ``create_schema()``
    issues SCHEMA_SQL for local setups.

    Connection management:
    - initialize() creates the pool, retrying transient connect errors
    - close() releases the pool
    - join_room() runs inside one transaction holding the room row lock
    """

    def __init__(self, database_url: Optional[str] = None, *, connect_attempts: Optional[int] = None):
        if asyncpg is None:  # pragma: no cover - handled during runtime when dependency missing
            raise ImportError(
                "asyncpg is required for PostgresBackend. Install with `pip install asyncpg`."
            )

        self.database_url = database_url or Config.DATABASE_URL
        self.connect_attempts = connect_attempts or Config.DB_CONNECT_ATTEMPTS
        self.pool: Optional["asyncpg.Pool"] = None

    async def initialize(self) -> None:
        if self.pool is not None:
            return

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.connect_attempts),
            wait=wait_exponential(multiplier=0.5, max=5),
            retry=retry_if_exception_type((OSError, asyncpg.CannotConnectNowError)),
            reraise=True,
        ):
            with attempt:
                self.pool = await asyncpg.create_pool(self.database_url)

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None

    async def create_schema(self) -> None:
        assert self.pool is not None, "Backend not initialized"
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)

    # ------------------------------------------------------------------ reads

    async def rooms(self, limit: int = 10) -> List[RoomSnapshot]:
        assert self.pool is not None, "Backend not initialized"

        query = """
            SELECT id, name, max_capacity, current_participants
            FROM parallel_rooms
            WHERE is_active = TRUE
            ORDER BY created_at
            LIMIT $1
        """

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, limit)

        return [self._room_from_row(row) for row in rows]

    async def get_room(self, room_id: str) -> Optional[RoomSnapshot]:
        assert self.pool is not None, "Backend not initialized"

        query = """
            SELECT id, name, max_capacity, current_participants
            FROM parallel_rooms
            WHERE id = $1
        """

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, room_id)

        return self._room_from_row(row) if row else None

    async def recent_messages(self, since: datetime, limit: int = 20) -> List[MessageSnapshot]:
        assert self.pool is not None, "Backend not initialized"

        query = """
            SELECT m.id, m.room_id, m.user_id, m.content, m.created_at,
                   COALESCE(u.is_simulated, FALSE) AS author_is_simulated
            FROM room_messages m
            LEFT JOIN users u ON u.id = m.user_id
            WHERE m.created_at >= $1
            ORDER BY m.created_at DESC
            LIMIT $2
        """

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, since, limit)

        return [
            MessageSnapshot(
                id=row["id"],
                room_id=row["room_id"],
                author_id=row["user_id"],
                content=row["content"],
                created_at=row["created_at"],
                author_is_simulated=row["author_is_simulated"],
            )
            for row in rows
        ]

    async def active_room_ids(self, user_id: str) -> List[str]:
        assert self.pool is not None, "Backend not initialized"

        query = """
            SELECT room_id
            FROM room_participants
            WHERE user_id = $1 AND is_active = TRUE
        """

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, user_id)

        return [row["room_id"] for row in rows]

    async def get_participation(
        self, room_id: str, user_id: str
    ) -> Optional[ParticipationRecord]:
        assert self.pool is not None, "Backend not initialized"

        query = """
            SELECT room_id, user_id, joined_at, is_active
            FROM room_participants
            WHERE room_id = $1 AND user_id = $2
        """

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, room_id, user_id)

        if not row:
            return None
        return ParticipationRecord(**dict(row))

    async def sample_real_users(self, limit: int = 10) -> List[UserRecord]:
        assert self.pool is not None, "Backend not initialized"

        query = """
            SELECT id, display_name, email, location_lat, location_lng, location_sharing,
                   last_active, care_score, is_simulated, created_at
            FROM users
            WHERE is_simulated IS NOT TRUE
            LIMIT $1
        """

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, limit)

        return [UserRecord(**dict(row)) for row in rows]

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        assert self.pool is not None, "Backend not initialized"

        query = """
            SELECT id, display_name, email, location_lat, location_lng, location_sharing,
                   last_active, care_score, is_simulated, created_at
            FROM users
            WHERE id = $1
        """

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, user_id)

        return UserRecord(**dict(row)) if row else None

    # ------------------------------------------------------- room membership

    async def upsert_participation(
        self, room_id: str, user_id: str, joined_at: datetime, active: bool = True
    ) -> None:
        assert self.pool is not None, "Backend not initialized"

        async with self.pool.acquire() as conn:
            await self._upsert_participation(conn, room_id, user_id, joined_at, active)

    async def replace_room_participants(self, room_id: str, participant_ids: List[str]) -> None:
        assert self.pool is not None, "Backend not initialized"

        query = """
            UPDATE parallel_rooms
            SET current_participants = $2::text[]
            WHERE id = $1
        """

        async with self.pool.acquire() as conn:
            await conn.execute(query, room_id, list(participant_ids))

    async def join_room(self, room_id: str, user_id: str, joined_at: datetime) -> JoinOutcome:
        assert self.pool is not None, "Backend not initialized"

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    """
                    SELECT max_capacity, current_participants, is_active
                    FROM parallel_rooms
                    WHERE id = $1
                    FOR UPDATE
                    """,
                    room_id,
                )
                if not row or not row["is_active"]:
                    return JoinOutcome.MISSING

                participants = list(row["current_participants"] or [])
                if user_id in participants:
                    await self._upsert_participation(conn, room_id, user_id, joined_at, True)
                    return JoinOutcome.ALREADY_MEMBER

                if len(participants) >= row["max_capacity"]:
                    return JoinOutcome.FULL

                await self._upsert_participation(conn, room_id, user_id, joined_at, True)
                await conn.execute(
                    """
                    UPDATE parallel_rooms
                    SET current_participants = array_append(current_participants, $2)
                    WHERE id = $1
                    """,
                    room_id,
                    user_id,
                )
                return JoinOutcome.JOINED

    async def leave_room(self, room_id: str, user_id: str) -> bool:
        assert self.pool is not None, "Backend not initialized"

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                result = await conn.execute(
                    """
                    UPDATE room_participants
                    SET is_active = FALSE
                    WHERE room_id = $1 AND user_id = $2 AND is_active = TRUE
                    """,
                    room_id,
                    user_id,
                )
                await conn.execute(
                    """
                    UPDATE parallel_rooms
                    SET current_participants = array_remove(current_participants, $2)
                    WHERE id = $1
                    """,
                    room_id,
                    user_id,
                )
        return result.endswith(" 1")

    # ---------------------------------------------------------------- content

    async def insert_message(
        self,
        room_id: str,
        author_id: str,
        content: str,
        message_type: str = "text",
        created_at: Optional[datetime] = None,
    ) -> MessageRecord:
        assert self.pool is not None, "Backend not initialized"

        message = MessageRecord(
            id=str(uuid4()),
            room_id=room_id,
            user_id=author_id,
            content=content,
            message_type=message_type,
            created_at=created_at or utc_now(),
        )
        query = """
            INSERT INTO room_messages (id, room_id, user_id, content, message_type, created_at)
            VALUES ($1, $2, $3, $4, $5, $6)
        """

        async with self.pool.acquire() as conn:
            await conn.execute(
                query,
                message.id,
                message.room_id,
                message.user_id,
                message.content,
                message.message_type,
                message.created_at,
            )
        return message

    async def insert_prayer_request(
        self,
        from_user_id: str,
        to_user_id: str,
        text: str,
        status: str = "active",
        is_urgent: bool = False,
        created_at: Optional[datetime] = None,
    ) -> PrayerRequestRecord:
        assert self.pool is not None, "Backend not initialized"

        request = PrayerRequestRecord(
            id=str(uuid4()),
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            request_text=text,
            status=status,
            is_urgent=is_urgent,
            created_at=created_at or utc_now(),
        )
        query = """
            INSERT INTO prayer_requests
            (id, from_user_id, to_user_id, request_text, status, is_urgent, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
        """

        async with self.pool.acquire() as conn:
            await conn.execute(
                query,
                request.id,
                request.from_user_id,
                request.to_user_id,
                request.request_text,
                request.status,
                request.is_urgent,
                request.created_at,
            )
        return request

    # ------------------------------------------------------------------ users

    async def create_identity_user(self, user: UserRecord, password: str) -> str:
        assert self.pool is not None, "Backend not initialized"

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await self._upsert_user(conn, user)
                await conn.execute(
                    """
                    INSERT INTO user_identities (email, user_id, password_hash)
                    VALUES ($1, $2, $3)
                    """,
                    user.email,
                    user.id,
                    hash_password(password),
                )
        return user.id

    async def create_profile_user(self, user: UserRecord) -> str:
        assert self.pool is not None, "Backend not initialized"

        async with self.pool.acquire() as conn:
            await self._upsert_user(conn, user)
        return user.id

    async def update_user_location(
        self, user_id: str, lat: float, lng: float, last_active: datetime
    ) -> None:
        assert self.pool is not None, "Backend not initialized"

        query = """
            UPDATE users
            SET location_lat = $2, location_lng = $3, last_active = $4
            WHERE id = $1
        """

        async with self.pool.acquire() as conn:
            await conn.execute(query, user_id, lat, lng, last_active)

    async def touch_user(self, user_id: str, last_active: datetime) -> None:
        assert self.pool is not None, "Backend not initialized"

        async with self.pool.acquire() as conn:
            await conn.execute("UPDATE users SET last_active = $2 WHERE id = $1", user_id, last_active)

    async def purge_simulated_users(self) -> int:
        assert self.pool is not None, "Backend not initialized"

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                rows = await conn.fetch("SELECT id FROM users WHERE is_simulated = TRUE")
                user_ids = [row["id"] for row in rows]
                if not user_ids:
                    return 0

                queries = [
                    "DELETE FROM room_participants WHERE user_id = ANY($1::text[])",
                    "DELETE FROM room_messages WHERE user_id = ANY($1::text[])",
                    "DELETE FROM prayer_requests WHERE from_user_id = ANY($1::text[])",
                    "DELETE FROM user_identities WHERE user_id = ANY($1::text[])",
                    "DELETE FROM users WHERE id = ANY($1::text[])",
                ]
                for query in queries:
                    await conn.execute(query, user_ids)

                await conn.execute(
                    """
                    UPDATE parallel_rooms
                    SET current_participants = ARRAY(
                        SELECT pid FROM unnest(current_participants) AS pid
                        WHERE pid <> ALL($1::text[])
                    )
                    """,
                    user_ids,
                )
        return len(user_ids)

    # ---------------------------------------------------------------- helpers

    @staticmethod
    def _room_from_row(row: Any) -> RoomSnapshot:
        return RoomSnapshot(
            id=row["id"],
            name=row["name"],
            capacity=row["max_capacity"],
            participant_ids=list(row["current_participants"] or []),
        )

    @staticmethod
    async def _upsert_participation(
        conn: Any, room_id: str, user_id: str, joined_at: datetime, active: bool
    ) -> None:
        await conn.execute(
            """
            INSERT INTO room_participants (room_id, user_id, joined_at, is_active)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (room_id, user_id) DO UPDATE
            SET joined_at = $3, is_active = $4
            """,
            room_id,
            user_id,
            joined_at,
            active,
        )

    @staticmethod
    async def _upsert_user(conn: Any, user: UserRecord) -> None:
        await conn.execute(
            """
            INSERT INTO users
            (id, display_name, email, location_lat, location_lng, location_sharing,
             last_active, care_score, is_simulated, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            ON CONFLICT (id) DO UPDATE
            SET display_name=$2, email=$3, location_lat=$4, location_lng=$5,
                location_sharing=$6, last_active=$7, care_score=$8, is_simulated=$9
            """,
            user.id,
            user.display_name,
            user.email,
            user.location_lat,
            user.location_lng,
            user.location_sharing,
            user.last_active,
            user.care_score,
            user.is_simulated,
            user.created_at,
        )
