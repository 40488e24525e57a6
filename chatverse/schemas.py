"""
Pydantic schemas for the Chatverse activity simulator.

All data structures shared by the factory, scheduler, executors and backends
are defined here.

Design Philosophy:
- Backend rows (users, rooms, participations, messages, prayer requests) are
  plain records; the simulator never holds references into backend storage
- Snapshots are read-only views re-fetched every tick
- Pydantic validation guards the one caller-facing input: SimulationConfig
"""

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


Personality = Literal["encouraging", "thoughtful", "prayer_focused", "casual"]
ActivityLevel = Literal["low", "medium", "high"]
ResponseSpeed = Literal["instant", "realistic", "slow"]
RegistrationTier = Literal["identity", "profile"]
ActionType = Literal[
    "join_room",
    "send_message",
    "respond_to_message",
    "send_prayer_request",
    "move_location",
]
OutcomeStatus = Literal["done", "skipped", "failed"]

PERSONALITIES: tuple[str, ...] = ("encouraging", "thoughtful", "prayer_focused", "casual")


def utc_now() -> datetime:
    """Timezone-aware current time used for every backend timestamp."""
    return datetime.now(timezone.utc)


# ============================================================================
# Simulation Configuration
# ============================================================================


class BehaviorFlags(BaseModel):
    """Per-simulation switches enabling each action category.

    Every agent in a simulation shares the same flags. A flag only makes an
    action *eligible*; world preconditions still gate it each tick.
    """

    join_rooms: bool = Field(True, description="Agents may join rooms")
    send_messages: bool = Field(True, description="Agents may post general messages")
    respond_to_messages: bool = Field(True, description="Agents may answer real users")
    prayer_requests: bool = Field(True, description="Agents may send prayer requests")
    move_around: bool = Field(False, description="Agents drift their stored location")

    def any_enabled(self) -> bool:
        return any(
            (
                self.join_rooms,
                self.send_messages,
                self.respond_to_messages,
                self.prayer_requests,
                self.move_around,
            )
        )


class PersonalityMix(BaseModel):
    """Relative share of each personality in the population.

    Values are percent-style but only their proportions matter; the factory
    normalizes by the total.
    """

    encouraging: float = Field(25.0, ge=0)
    thoughtful: float = Field(25.0, ge=0)
    prayer_focused: float = Field(25.0, ge=0)
    casual: float = Field(25.0, ge=0)

    def ratios(self) -> dict[str, float]:
        return {name: float(getattr(self, name)) for name in PERSONALITIES}

    def total(self) -> float:
        return sum(self.ratios().values())


class SimulationConfig(BaseModel):
    """Resolved configuration for one simulation.

    Defaults mirror the configuration screen of the hosting app. The only
    hard validation error is a population below one (and coordinates outside
    the valid lat/lng ranges).
    """

    count: int = Field(6, ge=1, description="Requested agent population")
    center_lat: float = Field(0.0, ge=-90, le=90, description="Population center latitude")
    center_lng: float = Field(0.0, ge=-180, le=180, description="Population center longitude")
    location_spread_km: float = Field(5.0, ge=0, description="Spread radius around the center")
    response_speed: ResponseSpeed = Field("realistic", description="Delay tier for scheduled sends")
    activity_level: ActivityLevel = Field("medium", description="Tick frequency tier")
    personality_mix: PersonalityMix = Field(default_factory=PersonalityMix)
    behaviors: BehaviorFlags = Field(default_factory=BehaviorFlags)


# ============================================================================
# Agent
# ============================================================================


class Agent(BaseModel):
    """A simulated participant, indistinguishable from a real user at the data layer.

    The in-memory Agent is the simulator's working copy; coordinates and
    last_active are mirrored to the backend whenever the agent acts.
    """

    id: str = Field(..., description="Backend user id")
    display_name: str
    email: str
    personality: Personality
    # Per-agent tier, jittered from the configured tier by the factory
    activity_level: ActivityLevel
    response_speed: ResponseSpeed
    behaviors: BehaviorFlags
    location_lat: float
    location_lng: float
    location_sharing: bool = True
    last_active: datetime = Field(default_factory=utc_now)
    simulation_id: str
    registration: RegistrationTier = "identity"


# ============================================================================
# Backend Records
# ============================================================================


class UserRecord(BaseModel):
    """Row in the user store (real or simulated)."""

    id: str
    display_name: str
    email: str
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None
    location_sharing: bool = False
    last_active: datetime = Field(default_factory=utc_now)
    care_score: int = 0
    is_simulated: bool = False
    created_at: datetime = Field(default_factory=utc_now)


class RoomRecord(BaseModel):
    """Row in the room store. current_participants is the authoritative member array."""

    id: str
    name: str
    max_capacity: int = Field(..., ge=1)
    current_participants: List[str] = Field(default_factory=list)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)


class ParticipationRecord(BaseModel):
    """Agent-scoped membership row; (room_id, user_id) is unique."""

    room_id: str
    user_id: str
    joined_at: datetime
    is_active: bool = True


class MessageRecord(BaseModel):
    id: str
    room_id: str
    user_id: str
    content: str
    message_type: str = "text"
    created_at: datetime


class PrayerRequestRecord(BaseModel):
    id: str
    from_user_id: str
    to_user_id: str
    request_text: str
    status: str = "active"
    is_urgent: bool = False
    created_at: datetime


# ============================================================================
# Snapshots
# ============================================================================


class RoomSnapshot(BaseModel):
    """Read-only view of a room taken at snapshot time."""

    id: str
    name: str = ""
    capacity: int
    participant_ids: List[str] = Field(default_factory=list)

    @property
    def occupant_count(self) -> int:
        return len(self.participant_ids)

    def has_space(self, ceiling: Optional[int] = None) -> bool:
        """True when the room is below capacity (and below ``ceiling`` if given)."""
        if self.occupant_count >= self.capacity:
            return False
        if ceiling is not None and self.occupant_count >= ceiling:
            return False
        return True

    def contains(self, user_id: str) -> bool:
        return user_id in self.participant_ids

    @classmethod
    def from_record(cls, record: RoomRecord) -> "RoomSnapshot":
        return cls(
            id=record.id,
            name=record.name,
            capacity=record.max_capacity,
            participant_ids=list(record.current_participants),
        )


class MessageSnapshot(BaseModel):
    id: str
    room_id: str
    author_id: str
    content: str
    created_at: datetime
    author_is_simulated: bool = Field(
        False, description="Author row is marked simulated in the user store"
    )

    @classmethod
    def from_record(
        cls, record: MessageRecord, *, author_is_simulated: bool = False
    ) -> "MessageSnapshot":
        return cls(
            id=record.id,
            room_id=record.room_id,
            author_id=record.user_id,
            content=record.content,
            created_at=record.created_at,
            author_is_simulated=author_is_simulated,
        )


class WorldSnapshot(BaseModel):
    """Rooms plus trailing-window messages, fetched once per tick."""

    taken_at: datetime = Field(default_factory=utc_now)
    rooms: List[RoomSnapshot] = Field(default_factory=list)
    recent_messages: List[MessageSnapshot] = Field(default_factory=list)


# ============================================================================
# Tick Reporting
# ============================================================================


class ActionOutcome(BaseModel):
    """What one agent did (or failed to do) during one tick."""

    agent_id: str
    tick: int = Field(..., ge=0)
    action_type: Optional[ActionType] = Field(
        None, description="None when the agent sat out the tick"
    )
    status: OutcomeStatus
    room_id: Optional[str] = None
    detail: Optional[str] = None


class TickReport(BaseModel):
    simulation_id: str
    tick: int = Field(..., ge=0)
    snapshot_loaded: bool = True
    outcomes: List[ActionOutcome] = Field(default_factory=list)

    def count(self, action_type: str, status: str = "done") -> int:
        return sum(
            1
            for outcome in self.outcomes
            if outcome.action_type == action_type and outcome.status == status
        )
