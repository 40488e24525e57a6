"""World snapshot loading.

One bounded read of active rooms and one bounded read of the trailing
message window per tick. A failed read aborts the tick; the loader never
returns a half-filled snapshot.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

from .backend import BackendStrategy
from .config import Config
from .schemas import WorldSnapshot, utc_now


class SnapshotUnavailableError(Exception):
    """Raised when the world snapshot could not be read for a tick."""

    def __init__(self, *, stage: str, underlying: Exception) -> None:
        self.stage = stage
        self.underlying = underlying
        super().__init__(f"World snapshot read failed while loading {stage}: {underlying}")


class WorldSnapshotLoader:
    """Read rooms and recent messages from the backend."""

    def __init__(
        self,
        backend: BackendStrategy,
        *,
        room_limit: Optional[int] = None,
        message_limit: Optional[int] = None,
        window_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.backend = backend
        self.room_limit = room_limit or Config.ROOM_READ_LIMIT
        self.message_limit = message_limit or Config.MESSAGE_READ_LIMIT
        self.window = timedelta(seconds=window_seconds or Config.RECENT_WINDOW_SECONDS)
        self.clock = clock

    async def load(self) -> WorldSnapshot:
        taken_at = self.clock()

        try:
            rooms = await self.backend.rooms(limit=self.room_limit)
        except Exception as exc:
            raise SnapshotUnavailableError(stage="rooms", underlying=exc) from exc

        try:
            messages = await self.backend.recent_messages(
                taken_at - self.window, limit=self.message_limit
            )
        except Exception as exc:
            raise SnapshotUnavailableError(stage="recent messages", underlying=exc) from exc

        return WorldSnapshot(taken_at=taken_at, rooms=rooms, recent_messages=messages)
