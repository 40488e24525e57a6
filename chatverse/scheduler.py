"""
Activity scheduler for one simulation.

Coordinates the tick loop:
1. Load the world snapshot (a failed read aborts the whole tick)
2. For each agent, in roster order: refresh last-active, gate on act chance,
   select a weighted action, execute it
3. Report the tick to listeners

Agents inside a tick run strictly one after another so backend writes from a
simulation land in a predictable order. Separate simulations each own their
own loop task and interleave freely.
"""

import asyncio
import contextlib
import math
import random
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set, Tuple

from .actions import ActionExecutor, DelayedEffects
from .backend import BackendStrategy
from .logging_utils import (
    Color,
    LOG_TAG_SUCCESS,
    colored,
    log_deterministic,
    log_error,
    log_info,
)
from .memory import ConversationMemory
from .messages import MessageGenerator
from .schemas import ActionOutcome, Agent, SimulationConfig, TickReport, WorldSnapshot, utc_now
from .selection import BehaviorSelector
from .snapshot import SnapshotUnavailableError, WorldSnapshotLoader


TickListener = Callable[[TickReport], None]

BURST_ACTIONS: Tuple[str, ...] = ("join_room", "send_message")


class Simulation:
    """A running population plus the timer task that drives it.

    Fully injected: the registry passes in the backend, the random source and
    the callable that lists every simulated agent id across simulations.
    """

    def __init__(
        self,
        simulation_id: str,
        config: SimulationConfig,
        agents: List[Agent],
        backend: BackendStrategy,
        *,
        tick_interval: float,
        initial_delay: float,
        agent_ids: Optional[Callable[[], Set[str]]] = None,
        rng: Optional[random.Random] = None,
        generator: Optional[MessageGenerator] = None,
        snapshot_loader: Optional[WorldSnapshotLoader] = None,
        selector: Optional[BehaviorSelector] = None,
        response_delays: Optional[Dict[str, Tuple[float, float]]] = None,
        tick_listeners: Optional[List[TickListener]] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.id = simulation_id
        self.config = config
        self.agents = agents
        self.backend = backend
        self.tick_interval = tick_interval
        self.initial_delay = initial_delay
        self.clock = clock

        rng = rng or random.Random()
        self.memory = ConversationMemory()
        self.effects = DelayedEffects(label=simulation_id)
        self.loader = snapshot_loader or WorldSnapshotLoader(backend, clock=clock)
        self.selector = selector or BehaviorSelector(rng=rng)
        self.executor = ActionExecutor(
            backend,
            generator or MessageGenerator(rng=rng),
            self.memory,
            self.effects,
            agent_ids or self.agent_ids,
            rng=rng,
            response_delays=response_delays,
            clock=clock,
        )
        self.tick_listeners = tick_listeners or []

        self.tick_count = 0
        self._task: Optional[asyncio.Task] = None
        self._tick_lock = asyncio.Lock()

    # ------------------------------------------------------------ lifecycle

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def agent_ids(self) -> Set[str]:
        return {agent.id for agent in self.agents}

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run_loop(), name=f"chatverse-{self.id}")

    async def stop(self) -> int:
        """Cancel the tick loop and every pending delayed send.

        Returns the number of delayed sends cancelled. Backend writes already
        made are left in place.
        """
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        cancelled = await self.effects.cancel_all()
        self.memory.clear()
        return cancelled

    async def wait_for_pending(self) -> None:
        """Wait for every delayed send scheduled so far."""
        await self.effects.wait()

    async def _run_loop(self) -> None:
        # Fixed-rate schedule anchored at start; one early tick so effects show up quickly
        loop = asyncio.get_running_loop()
        started = loop.time()

        await asyncio.sleep(self.initial_delay)
        await self._safe_tick()

        slot = 1
        while True:
            delay = started + slot * self.tick_interval - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
            await self._safe_tick()
            # Skip slots that elapsed while the tick ran rather than firing back-to-back
            elapsed_slots = math.floor((loop.time() - started) / self.tick_interval)
            slot = max(slot + 1, elapsed_slots + 1)

    async def _safe_tick(self) -> None:
        try:
            await self.run_tick()
        except Exception as exc:  # pragma: no cover - run_tick already contains failures
            log_error(f"[{self.id}] Tick failed unexpectedly: {exc}")

    # ----------------------------------------------------------------- ticks

    async def run_tick(self) -> TickReport:
        """Run one activity cycle for every agent and return what happened."""

        async with self._tick_lock:
            self.tick_count += 1
            tick = self.tick_count
            print(colored(f"=== [{self.id}] Tick {tick} ({len(self.agents)} agents) ===", Color.CYAN))
            log_deterministic(f"[{self.id}] [Snapshot] Loading rooms and recent messages...")

            try:
                snapshot = await self.loader.load()
            except SnapshotUnavailableError as exc:
                log_error(f"[{self.id}] Tick {tick} aborted: {exc}")
                report = TickReport(simulation_id=self.id, tick=tick, snapshot_loaded=False)
                self._notify(report)
                return report

            print(
                colored(
                    f"  {LOG_TAG_SUCCESS} [Snapshot] {len(snapshot.rooms)} rooms, "
                    f"{len(snapshot.recent_messages)} recent messages",
                    Color.GREEN,
                )
            )

            outcomes = []
            for agent in list(self.agents):
                outcomes.append(await self._step_agent(agent, snapshot, tick))

            report = TickReport(simulation_id=self.id, tick=tick, outcomes=outcomes)
            self._print_tick_summary(report)
            self._notify(report)
            return report

    async def _step_agent(self, agent: Agent, snapshot: WorldSnapshot, tick: int) -> ActionOutcome:
        action_type: Optional[str] = None
        try:
            now = self.clock()
            await self.backend.touch_user(agent.id, now)
            agent.last_active = now

            if not self.selector.should_act(agent):
                return ActionOutcome(agent_id=agent.id, tick=tick, status="skipped", detail="sat out")

            action_type = self.selector.choose(agent, snapshot)
            if action_type is None:
                return ActionOutcome(
                    agent_id=agent.id, tick=tick, status="skipped", detail="no eligible action"
                )

            return await self.executor.execute(agent, action_type, snapshot, tick)
        except Exception as exc:
            log_error(f"[{self.id}] {agent.display_name} failed during {action_type or 'tick'}: {exc}")
            return ActionOutcome(
                agent_id=agent.id,
                tick=tick,
                action_type=action_type,
                status="failed",
                detail=str(exc),
            )

    async def burst(self, pause: float) -> List[ActionOutcome]:
        """Force every agent to try join-room then send-message, skipping selection."""

        outcomes: List[ActionOutcome] = []
        async with self._tick_lock:
            log_info(f"[{self.id}] Activity burst for {len(self.agents)} agents")
            empty = WorldSnapshot(taken_at=self.clock())
            for index, agent in enumerate(list(self.agents)):
                if index and pause > 0:
                    await asyncio.sleep(pause)
                for action_type in BURST_ACTIONS:
                    try:
                        outcome = await self.executor.execute(agent, action_type, empty, self.tick_count)
                    except Exception as exc:
                        log_error(f"[{self.id}] {agent.display_name} burst {action_type} failed: {exc}")
                        outcome = ActionOutcome(
                            agent_id=agent.id,
                            tick=self.tick_count,
                            action_type=action_type,
                            status="failed",
                            detail=str(exc),
                        )
                    outcomes.append(outcome)
        return outcomes

    # -------------------------------------------------------------- reporting

    def _notify(self, report: TickReport) -> None:
        for listener in self.tick_listeners:
            try:
                listener(report)
            except Exception as exc:  # pragma: no cover - diagnostic hook
                log_error(f"[{self.id}] Tick listener failed: {exc}")

    def _print_tick_summary(self, report: TickReport) -> None:
        counts: Dict[str, int] = {}
        failed = 0
        idle = 0
        for outcome in report.outcomes:
            if outcome.status == "failed":
                failed += 1
            elif outcome.status == "done" and outcome.action_type:
                counts[outcome.action_type] = counts.get(outcome.action_type, 0) + 1
            else:
                idle += 1

        summary = ", ".join(f"{name}={count}" for name, count in sorted(counts.items())) or "no actions"
        line = f"  {LOG_TAG_SUCCESS} [{self.id}] Tick {report.tick}: {summary}; idle={idle}"
        if failed:
            line += f"; failed={failed}"
        print(colored(line, Color.GREEN if not failed else Color.YELLOW))
