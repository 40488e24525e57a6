"""
Agent factory: builds and registers a simulated population.

Data flow for one simulation:
1. Distribute personalities by proportional rounding of the mix, then shuffle
2. Place each agent near the center (flat-earth offset, clustered inward)
3. Jitter each agent's activity tier around the configured one
4. Register in the backend: authenticated identity first, profile row as
   fallback; agents failing both are dropped

Callers get back only the agents that were actually persisted.
"""

from __future__ import annotations

import math
import random
import secrets
from typing import List, Optional, Tuple
from uuid import uuid4

from .backend import BackendStrategy
from .logging_utils import log_error, log_info, log_success, log_verbose
from .schemas import PERSONALITIES, Agent, PersonalityMix, SimulationConfig, UserRecord, utc_now


KM_PER_DEGREE = 111.32
# Shrinks the Rayleigh-style radius so agents cluster toward the center
CLUSTER_FACTOR = 0.3

BOT_NAMES: Tuple[str, ...] = (
    "Sarah M", "John K", "Mary L", "David R", "Grace W", "Michael T",
    "Ruth S", "James C", "Hannah B", "Peter D", "Elizabeth F", "Paul N",
    "Rebecca J", "Joshua M", "Anna P", "Matthew W", "Esther K", "Daniel S",
)

IDENTITY_EMAIL_DOMAIN = "chatverse.simulation"
PLACEHOLDER_EMAIL_DOMAIN = "placeholder.chatverse.invalid"


class AgentRegistrationError(Exception):
    """Raised when an agent could not be persisted by either registration tier."""

    def __init__(self, *, display_name: str, identity_error: Exception, profile_error: Exception) -> None:
        self.display_name = display_name
        self.identity_error = identity_error
        self.profile_error = profile_error
        super().__init__(
            f"Could not register agent '{display_name}': "
            f"identity tier failed ({identity_error}); profile tier failed ({profile_error})"
        )


def distribute_personalities(count: int, mix: PersonalityMix, rng: random.Random) -> List[str]:
    """Assign ``count`` personalities in proportion to ``mix``.

    Each share is rounded half-up, short lists are padded with random picks,
    and the result is shuffled before being cut to ``count`` so rounding
    overshoot does not always trim the same personality.
    """

    personalities: List[str] = []
    total = mix.total()

    if total > 0:
        for name, ratio in mix.ratios().items():
            amount = math.floor(ratio / total * count + 0.5)
            personalities.extend([name] * amount)

    while len(personalities) < count:
        personalities.append(rng.choice(PERSONALITIES))

    rng.shuffle(personalities)
    return personalities[:count]


def generate_location_nearby(
    center_lat: float, center_lng: float, radius_km: float, rng: random.Random
) -> Tuple[float, float]:
    """Offset from the center by a flat-earth polar draw; not geodesically exact.

    The offset never exceeds ``radius_km`` and latitude stays within [-90, 90].
    """

    radius_degrees = radius_km / KM_PER_DEGREE
    # 1 - random() lies in (0, 1], keeping log() finite
    u = 1.0 - rng.random()
    v = rng.random()
    distance = radius_degrees * math.sqrt(-2 * math.log(u)) * CLUSTER_FACTOR
    distance = min(distance, radius_degrees)
    angle = 2 * math.pi * v
    lat = min(90.0, max(-90.0, center_lat + distance * math.cos(angle)))
    return lat, center_lng + distance * math.sin(angle)


def jitter_activity_level(base_level: str, rng: random.Random) -> str:
    variation = rng.random()
    if base_level == "high":
        return "medium" if variation > 0.7 else "high"
    if base_level == "medium":
        if variation > 0.8:
            return "high"
        if variation < 0.2:
            return "low"
        return "medium"
    return "medium" if variation > 0.7 else "low"


def display_name_for(index: int) -> str:
    base = BOT_NAMES[index % len(BOT_NAMES)]
    cycle = index // len(BOT_NAMES)
    return f"{base} {cycle + 1}" if cycle > 0 else base


class AgentFactory:
    """Creates agents for a simulation and persists them through the backend."""

    def __init__(
        self,
        backend: BackendStrategy,
        *,
        rng: Optional[random.Random] = None,
        password_factory=None,
    ) -> None:
        self.backend = backend
        self.rng = rng or random.Random()
        self.password_factory = password_factory or (lambda: secrets.token_urlsafe(16))

    def build_agents(self, config: SimulationConfig, simulation_id: str) -> List[Agent]:
        """Build (but do not persist) ``config.count`` agents."""

        personalities = distribute_personalities(config.count, config.personality_mix, self.rng)
        agents: List[Agent] = []

        for index, personality in enumerate(personalities):
            lat, lng = generate_location_nearby(
                config.center_lat, config.center_lng, config.location_spread_km, self.rng
            )
            agent_id = str(uuid4())
            agents.append(
                Agent(
                    id=agent_id,
                    display_name=display_name_for(index),
                    email=f"bot_{secrets.token_hex(6)}@{IDENTITY_EMAIL_DOMAIN}",
                    personality=personality,
                    activity_level=jitter_activity_level(config.activity_level, self.rng),
                    response_speed=config.response_speed,
                    behaviors=config.behaviors.model_copy(),
                    location_lat=lat,
                    location_lng=lng,
                    last_active=utc_now(),
                    simulation_id=simulation_id,
                )
            )

        return agents

    async def create_agents(self, config: SimulationConfig, simulation_id: str) -> List[Agent]:
        """Build and register agents; returns only those that were persisted."""

        log_info(
            f"Creating {config.count} agents for {simulation_id} "
            f"(mix {config.personality_mix.ratios()})"
        )
        persisted: List[Agent] = []

        for agent in self.build_agents(config, simulation_id):
            try:
                persisted.append(await self.register(agent))
            except AgentRegistrationError as exc:
                log_error(str(exc))

        log_success(f"Registered {len(persisted)}/{config.count} agents for {simulation_id}")
        return persisted

    async def register(self, agent: Agent) -> Agent:
        """Persist ``agent``: identity tier first, profile-only fallback second."""

        try:
            await self.backend.create_identity_user(self._user_record(agent), self.password_factory())
            agent.registration = "identity"
            log_verbose(f"[{agent.display_name}] registered with identity ({agent.personality})")
            return agent
        except Exception as identity_error:
            log_verbose(f"[{agent.display_name}] identity registration failed: {identity_error}")
            agent.email = f"{agent.id}@{PLACEHOLDER_EMAIL_DOMAIN}"
            try:
                await self.backend.create_profile_user(self._user_record(agent))
            except Exception as profile_error:
                raise AgentRegistrationError(
                    display_name=agent.display_name,
                    identity_error=identity_error,
                    profile_error=profile_error,
                ) from profile_error

        agent.registration = "profile"
        log_verbose(f"[{agent.display_name}] registered as profile-only ({agent.personality})")
        return agent

    @staticmethod
    def _user_record(agent: Agent) -> UserRecord:
        return UserRecord(
            id=agent.id,
            display_name=agent.display_name,
            email=agent.email,
            location_lat=agent.location_lat,
            location_lng=agent.location_lng,
            location_sharing=agent.location_sharing,
            last_active=agent.last_active,
            care_score=0,
            is_simulated=True,
        )
