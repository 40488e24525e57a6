"""Behavior selection: which action (if any) an agent attempts this tick.

Selection happens in two stages:

1. ``should_act`` gates the agent on its activity tier and personality.
2. ``build_candidates`` lists the actions the agent's behavior flags allow
   *and* the world snapshot makes plausible, each with a fixed weight;
   ``select`` then draws one with roulette-wheel selection.

Both ``select`` and ``should_act`` take the random source as an argument so
tests can drive them deterministically.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from .schemas import Agent, WorldSnapshot


T = TypeVar("T")


ACTION_WEIGHTS: Dict[str, float] = {
    "join_room": 0.4,
    "send_message": 0.3,
    "respond_to_message": 0.5,
    "send_prayer_request": 0.2,
    "move_location": 0.1,
}

# Probability an agent acts at all during a tick, before personality scaling
BASE_ACT_CHANCE: Dict[str, float] = {"high": 0.8, "medium": 0.5, "low": 0.3}

PERSONALITY_ACT_MODIFIER: Dict[str, float] = {
    "encouraging": 1.2,
    "prayer_focused": 1.1,
    "thoughtful": 0.9,
    "casual": 1.0,
}


@dataclass(frozen=True)
class ActionCandidate:
    action_type: str
    weight: float


def select(
    candidates: Sequence[T],
    weight: Callable[[T], float],
    rng: random.Random,
) -> Optional[T]:
    """Roulette-wheel selection over ``candidates``.

    One uniform draw is scaled to the total weight; weights are subtracted in
    order and the first candidate that brings the remainder to zero or below
    wins. Returns ``None`` for an empty list or a non-positive total.
    """

    if not candidates:
        return None

    total = sum(weight(candidate) for candidate in candidates)
    if total <= 0:
        return None

    remaining = rng.random() * total
    for candidate in candidates:
        remaining -= weight(candidate)
        if remaining <= 0:
            return candidate

    # Float drift can leave a sliver above zero after the last subtraction
    return candidates[-1]


def act_chance(agent: Agent) -> float:
    return BASE_ACT_CHANCE[agent.activity_level] * PERSONALITY_ACT_MODIFIER[agent.personality]


def should_act(agent: Agent, rng: random.Random) -> bool:
    return rng.random() < act_chance(agent)


def build_candidates(
    agent: Agent,
    snapshot: WorldSnapshot,
    weights: Optional[Dict[str, float]] = None,
) -> List[ActionCandidate]:
    """Return the weighted actions available to ``agent`` given ``snapshot``."""

    weights = weights or ACTION_WEIGHTS
    flags = agent.behaviors
    has_rooms = bool(snapshot.rooms)
    candidates: List[ActionCandidate] = []

    if flags.join_rooms and has_rooms:
        candidates.append(ActionCandidate("join_room", weights["join_room"]))

    if flags.send_messages and has_rooms:
        candidates.append(ActionCandidate("send_message", weights["send_message"]))

    if flags.respond_to_messages and snapshot.recent_messages:
        candidates.append(ActionCandidate("respond_to_message", weights["respond_to_message"]))

    if flags.prayer_requests:
        candidates.append(ActionCandidate("send_prayer_request", weights["send_prayer_request"]))

    if flags.move_around:
        candidates.append(ActionCandidate("move_location", weights["move_location"]))

    return candidates


@dataclass
class BehaviorSelector:
    """Per-agent decision step used by the scheduler."""

    rng: random.Random = field(default_factory=random.Random)
    weights: Dict[str, float] = field(default_factory=lambda: dict(ACTION_WEIGHTS))

    def should_act(self, agent: Agent) -> bool:
        return should_act(agent, self.rng)

    def choose(self, agent: Agent, snapshot: WorldSnapshot) -> Optional[str]:
        """Return the chosen action type, or ``None`` when nothing qualifies."""

        candidates = build_candidates(agent, snapshot, self.weights)
        chosen = select(candidates, lambda candidate: candidate.weight, self.rng)
        return chosen.action_type if chosen else None
