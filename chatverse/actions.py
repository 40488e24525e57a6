"""
Action executors for simulated agents.

Every executor re-reads the state it depends on from the backend right before
writing. The tick-start WorldSnapshot only decides *which* action an agent
attempts; agents later in the same tick would otherwise act on state their
predecessors already changed.

Greeting and response sends are delayed to look human. They run as detached
asyncio tasks tracked by DelayedEffects, which the owning simulation cancels
when it stops.
"""

from __future__ import annotations

import asyncio
import random
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional, Set, Tuple

from .backend import BackendStrategy, JoinOutcome
from .config import Config
from .logging_utils import log_action, log_error, log_verbose
from .memory import ConversationMemory
from .messages import MessageGenerator
from .schemas import ActionOutcome, Agent, WorldSnapshot, utc_now


# (min_seconds, max_seconds) before a scheduled send becomes visible
RESPONSE_DELAYS: Dict[str, Tuple[float, float]] = {
    "instant": (0.1, 0.1),
    "realistic": (2.0, 6.0),
    "slow": (5.0, 15.0),
}

# Degrees of lat/lng an agent may drift per move (~100 m either way)
MOVE_DELTA_DEGREES = 0.001

URGENT_PRAYER_CHANCE = 0.15


def response_delay(
    speed: str,
    rng: random.Random,
    delays: Optional[Dict[str, Tuple[float, float]]] = None,
) -> float:
    low, high = (delays or RESPONSE_DELAYS)[speed]
    if high <= low:
        return low
    return rng.uniform(low, high)


class DelayedEffects:
    """Tracks detached delayed sends for one simulation.

    Each scheduled effect sleeps, then runs; failures inside an effect are
    logged and never reach the scheduler. ``cancel_all()`` stops every
    pending effect and refuses new ones.
    """

    def __init__(self, label: str = "") -> None:
        self.label = label
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._tasks)

    @property
    def closed(self) -> bool:
        return self._closed

    def schedule(
        self,
        delay: float,
        effect: Callable[[], Awaitable[object]],
        *,
        description: str = "delayed effect",
    ) -> Optional[asyncio.Task]:
        if self._closed:
            return None

        task = asyncio.create_task(self._run(delay, effect, description))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(
        self, delay: float, effect: Callable[[], Awaitable[object]], description: str
    ) -> None:
        await asyncio.sleep(delay)
        try:
            await effect()
        except Exception as exc:
            log_error(f"[{self.label}] {description} failed: {exc}")

    async def wait(self) -> None:
        """Wait until every effect scheduled so far (and any they schedule) finishes."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> int:
        """Cancel pending effects; returns how many were cancelled."""
        self._closed = True
        tasks = [task for task in self._tasks if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return len(tasks)


class ActionExecutor:
    """Runs one chosen action for one agent against the backend.

    Args:
        backend: Shared store
        generator: Template source for every posted line
        memory: Per-simulation conversation memory
        effects: Owner of delayed sends
        agent_ids: Callable returning every simulated agent id currently
            known; messages by these authors are never answered
        rng: Random source for room/message/target picks and delays
    """

    def __init__(
        self,
        backend: BackendStrategy,
        generator: MessageGenerator,
        memory: ConversationMemory,
        effects: DelayedEffects,
        agent_ids: Callable[[], Set[str]],
        *,
        rng: Optional[random.Random] = None,
        soft_occupancy_ceiling: Optional[int] = None,
        room_limit: Optional[int] = None,
        user_sample_limit: Optional[int] = None,
        response_delays: Optional[Dict[str, Tuple[float, float]]] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.backend = backend
        self.generator = generator
        self.memory = memory
        self.effects = effects
        self.agent_ids = agent_ids
        self.rng = rng or random.Random()
        self.soft_occupancy_ceiling = soft_occupancy_ceiling or Config.SOFT_OCCUPANCY_CEILING
        self.room_limit = room_limit or Config.ROOM_READ_LIMIT
        self.user_sample_limit = user_sample_limit or Config.USER_SAMPLE_LIMIT
        self.response_delays = response_delays or RESPONSE_DELAYS
        self.clock = clock

    async def execute(
        self, agent: Agent, action_type: str, snapshot: WorldSnapshot, tick: int
    ) -> ActionOutcome:
        if action_type == "join_room":
            return await self.join_room(agent, tick)
        if action_type == "send_message":
            return await self.send_message(agent, tick)
        if action_type == "respond_to_message":
            return await self.respond_to_message(agent, snapshot, tick)
        if action_type == "send_prayer_request":
            return await self.send_prayer_request(agent, tick)
        if action_type == "move_location":
            return await self.move_location(agent, tick)
        raise ValueError(f"Unknown action type: {action_type}")

    # ------------------------------------------------------------ join_room

    async def join_room(self, agent: Agent, tick: int) -> ActionOutcome:
        rooms = await self.backend.rooms(limit=self.room_limit)
        suitable = [room for room in rooms if room.has_space(self.soft_occupancy_ceiling)]
        if not suitable:
            return self._skipped(agent, "join_room", tick, "no room with space")

        room = self.rng.choice(suitable)

        existing = await self.backend.get_participation(room.id, agent.id)
        if existing is not None and existing.is_active:
            return self._skipped(agent, "join_room", tick, "already in room", room_id=room.id)

        outcome = await self.backend.join_room(room.id, agent.id, self.clock())
        if outcome is not JoinOutcome.JOINED:
            return self._skipped(agent, "join_room", tick, outcome.value, room_id=room.id)

        log_action(f"[{agent.display_name}] joined room {room.name or room.id}")

        greeting = self.generator.greeting(agent.personality)
        self._schedule_send(agent, room.id, greeting, description="greeting")

        return ActionOutcome(
            agent_id=agent.id, tick=tick, action_type="join_room", status="done", room_id=room.id
        )

    # ---------------------------------------------------------- send_message

    async def send_message(self, agent: Agent, tick: int) -> ActionOutcome:
        room_ids = await self.backend.active_room_ids(agent.id)
        if not room_ids:
            log_verbose(f"[{agent.display_name}] no memberships; joining a room instead")
            return await self.join_room(agent, tick)

        room_id = self.rng.choice(room_ids)
        content = self.generator.general(agent.personality)
        await self.post(agent, room_id, content)

        return ActionOutcome(
            agent_id=agent.id, tick=tick, action_type="send_message", status="done", room_id=room_id
        )

    # ---------------------------------------------------- respond_to_message

    async def respond_to_message(
        self, agent: Agent, snapshot: WorldSnapshot, tick: int
    ) -> ActionOutcome:
        member_rooms = set(await self.backend.active_room_ids(agent.id))
        simulated = self.agent_ids() | {agent.id}

        relevant = [
            message
            for message in snapshot.recent_messages
            if message.room_id in member_rooms
            and not message.author_is_simulated
            and message.author_id not in simulated
            and not self.memory.has_responded(agent.id, message.id)
        ]
        if not relevant:
            return self._skipped(agent, "respond_to_message", tick, "nothing to answer")

        target = self.rng.choice(relevant)
        response = self.generator.response_to(agent.personality, target.content)
        self.memory.mark_responded(agent.id, target.id)
        self._schedule_send(agent, target.room_id, response, description="response")

        return ActionOutcome(
            agent_id=agent.id,
            tick=tick,
            action_type="respond_to_message",
            status="done",
            room_id=target.room_id,
            detail=f"answering {target.id}",
        )

    # --------------------------------------------------- send_prayer_request

    async def send_prayer_request(self, agent: Agent, tick: int) -> ActionOutcome:
        users = await self.backend.sample_real_users(limit=self.user_sample_limit)
        simulated = self.agent_ids()
        targets = [user for user in users if not user.is_simulated and user.id not in simulated]
        if not targets:
            return self._skipped(agent, "send_prayer_request", tick, "no real users")

        target = self.rng.choice(targets)
        text = self.generator.prayer_request()
        is_urgent = self.rng.random() < URGENT_PRAYER_CHANCE

        await self.backend.insert_prayer_request(
            agent.id,
            target.id,
            text,
            status="active",
            is_urgent=is_urgent,
            created_at=self.clock(),
        )
        log_action(f"[{agent.display_name}] asked {target.display_name} for prayer")

        return ActionOutcome(
            agent_id=agent.id,
            tick=tick,
            action_type="send_prayer_request",
            status="done",
            detail=target.id,
        )

    # --------------------------------------------------------- move_location

    async def move_location(self, agent: Agent, tick: int) -> ActionOutcome:
        lat = agent.location_lat + self.rng.uniform(-MOVE_DELTA_DEGREES, MOVE_DELTA_DEGREES)
        lng = agent.location_lng + self.rng.uniform(-MOVE_DELTA_DEGREES, MOVE_DELTA_DEGREES)
        now = self.clock()

        await self.backend.update_user_location(agent.id, lat, lng, now)
        agent.location_lat = lat
        agent.location_lng = lng
        agent.last_active = now
        log_verbose(f"[{agent.display_name}] moved to ({lat:.5f}, {lng:.5f})")

        return ActionOutcome(agent_id=agent.id, tick=tick, action_type="move_location", status="done")

    # --------------------------------------------------------------- helpers

    async def post(self, agent: Agent, room_id: str, content: str) -> None:
        now = self.clock()
        await self.backend.insert_message(room_id, agent.id, content, "text", now)
        self.memory.remember_line(room_id, content)
        agent.last_active = now
        log_action(f'[{agent.display_name}] said "{content}"')

    def _schedule_send(self, agent: Agent, room_id: str, content: str, *, description: str) -> None:
        delay = response_delay(agent.response_speed, self.rng, self.response_delays)
        self.effects.schedule(
            delay,
            lambda: self.post(agent, room_id, content),
            description=f"{description} from {agent.display_name}",
        )

    @staticmethod
    def _skipped(
        agent: Agent, action_type: str, tick: int, detail: str, *, room_id: Optional[str] = None
    ) -> ActionOutcome:
        log_verbose(f"[{agent.display_name}] {action_type} skipped: {detail}")
        return ActionOutcome(
            agent_id=agent.id,
            tick=tick,
            action_type=action_type,
            status="skipped",
            room_id=room_id,
            detail=detail,
        )
