"""
Chatverse - synthetic-agent activity simulator for shared chat rooms.

Populates a social app's rooms with simulated users that join rooms, post
templated messages, answer real users, send prayer requests and drift around
the map, all against the app's own backend.

No global state: the hosting process owns a SimulationRegistry and injects
the backend it should talk to.
"""

__version__ = "0.1.0"

# Control surface
from .registry import SimulationRegistry, InvalidSimulationConfigError, UnknownSimulationError
from .scheduler import Simulation

# Backends
from .backend import (
    BackendStrategy,
    BackendError,
    InMemoryBackend,
    PostgresBackend,
    JoinOutcome,
)

# Building blocks
from .factory import AgentFactory, AgentRegistrationError
from .snapshot import WorldSnapshotLoader, SnapshotUnavailableError
from .selection import BehaviorSelector, ActionCandidate, select, build_candidates
from .actions import ActionExecutor, DelayedEffects
from .messages import MessageGenerator
from .memory import ConversationMemory

# Schemas
from .schemas import (
    Agent,
    BehaviorFlags,
    PersonalityMix,
    SimulationConfig,
    RoomSnapshot,
    MessageSnapshot,
    WorldSnapshot,
    ActionOutcome,
    TickReport,
    UserRecord,
)

__all__ = [
    # Control surface
    "SimulationRegistry",
    "Simulation",
    "InvalidSimulationConfigError",
    "UnknownSimulationError",
    # Backends
    "BackendStrategy",
    "BackendError",
    "InMemoryBackend",
    "PostgresBackend",
    "JoinOutcome",
    # Building blocks
    "AgentFactory",
    "AgentRegistrationError",
    "WorldSnapshotLoader",
    "SnapshotUnavailableError",
    "BehaviorSelector",
    "ActionCandidate",
    "select",
    "build_candidates",
    "ActionExecutor",
    "DelayedEffects",
    "MessageGenerator",
    "ConversationMemory",
    # Schemas
    "Agent",
    "BehaviorFlags",
    "PersonalityMix",
    "SimulationConfig",
    "RoomSnapshot",
    "MessageSnapshot",
    "WorldSnapshot",
    "ActionOutcome",
    "TickReport",
    "UserRecord",
]
