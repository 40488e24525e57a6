"""
Simulation registry: the control surface exposed to the hosting app.

The registry is an ordinary object owned by the hosting process (no module
globals), so tests and hosts can run several independent registries against
different backends.

Control operations:
- start(config) -> simulation id
- stop(simulation_id)
- trigger_burst()
- get_active_simulations() -> ids
- stop_all() / purge_simulated_data()
"""

import random
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple, Union
from uuid import uuid4

from pydantic import ValidationError

from .backend import BackendStrategy
from .config import Config
from .factory import AgentFactory
from .logging_utils import log_error, log_info, log_success
from .messages import MessageGenerator
from .scheduler import Simulation, TickListener
from .schemas import ActionOutcome, SimulationConfig


class InvalidSimulationConfigError(Exception):
    """Raised when start() receives a configuration that fails validation."""

    def __init__(self, underlying: ValidationError) -> None:
        self.underlying = underlying
        issues = []
        for err in underlying.errors(include_url=False):
            loc = ".".join(str(part) for part in err.get("loc", [])) or "root"
            issues.append(f"  - {loc}: {err.get('msg', 'invalid value')}")
        super().__init__("Invalid simulation configuration:\n" + "\n".join(issues))


class UnknownSimulationError(LookupError):
    """Raised when a simulation id is not registered."""

    def __init__(self, simulation_id: str) -> None:
        self.simulation_id = simulation_id
        super().__init__(f"No active simulation with id '{simulation_id}'")


class SimulationRegistry:
    """Tracks active simulations and exposes start/stop/burst control.

    Args:
        backend: Shared store every simulation reads and writes
        rng: Optional random source shared by factories, selectors and
            executors (seed it for reproducible runs)
        tick_intervals: Seconds between ticks per activity tier
            (defaults to Config tick intervals)
        initial_delay: Seconds before the first tick of a new simulation
        burst_pause: Seconds between agents during trigger_burst()
        response_delays: Optional override of the (min, max) send delays
        tick_listeners: Callables receiving every TickReport
    """

    def __init__(
        self,
        backend: BackendStrategy,
        *,
        rng: Optional[random.Random] = None,
        tick_intervals: Optional[Mapping[str, float]] = None,
        initial_delay: Optional[float] = None,
        burst_pause: Optional[float] = None,
        response_delays: Optional[Dict[str, Tuple[float, float]]] = None,
        generator: Optional[MessageGenerator] = None,
        tick_listeners: Optional[List[TickListener]] = None,
    ) -> None:
        self.backend = backend
        self.rng = rng or random.Random()
        self.tick_intervals: Dict[str, float] = dict(
            tick_intervals
            or {tier: ms / 1000.0 for tier, ms in Config.tick_intervals_ms().items()}
        )
        self.initial_delay = (
            initial_delay if initial_delay is not None else Config.INITIAL_TICK_DELAY_MS / 1000.0
        )
        self.burst_pause = burst_pause if burst_pause is not None else Config.BURST_PAUSE_MS / 1000.0
        self.response_delays = response_delays
        self.generator = generator or MessageGenerator(rng=self.rng)
        self.tick_listeners = tick_listeners or []
        self.factory = AgentFactory(backend, rng=self.rng)
        self._simulations: Dict[str, Simulation] = {}

    # ----------------------------------------------------------- control

    async def start(self, config: Union[SimulationConfig, Mapping[str, Any]]) -> str:
        """Create agents, start ticking, and return the new simulation id.

        Raises:
            InvalidSimulationConfigError: If ``config`` fails validation
                (for example a population of zero)
        """
        resolved = self._resolve_config(config)
        simulation_id = f"sim_{uuid4().hex[:12]}"

        if not resolved.behaviors.any_enabled():
            log_info(f"[{simulation_id}] Every behavior is disabled; agents will never act")
        if resolved.personality_mix.total() <= 0:
            log_info(f"[{simulation_id}] Personality mix sums to zero; assigning personalities at random")

        agents = await self.factory.create_agents(resolved, simulation_id)
        if len(agents) < resolved.count:
            log_error(
                f"[{simulation_id}] Only {len(agents)} of {resolved.count} agents could be registered"
            )

        simulation = Simulation(
            simulation_id,
            resolved,
            agents,
            self.backend,
            tick_interval=self.tick_intervals[resolved.activity_level],
            initial_delay=self.initial_delay,
            agent_ids=self.agent_ids,
            rng=self.rng,
            generator=self.generator,
            response_delays=self.response_delays,
            tick_listeners=self.tick_listeners,
        )
        self._simulations[simulation_id] = simulation
        simulation.start()

        log_success(
            f"[{simulation_id}] Started with {len(agents)} agents, "
            f"ticking every {simulation.tick_interval:g}s ({resolved.activity_level} activity)"
        )
        return simulation_id

    async def stop(self, simulation_id: str) -> None:
        """Stop ticking, cancel pending delayed sends, and drop the roster.

        Backend rows written by the simulation are kept; see
        purge_simulated_data() for removal.

        Raises:
            UnknownSimulationError: If ``simulation_id`` is not active
        """
        simulation = self._simulations.pop(simulation_id, None)
        if simulation is None:
            raise UnknownSimulationError(simulation_id)

        cancelled = await simulation.stop()
        log_info(
            f"[{simulation_id}] Stopped after {simulation.tick_count} ticks "
            f"({cancelled} pending sends cancelled)"
        )

    async def stop_all(self) -> None:
        for simulation_id in list(self._simulations):
            await self.stop(simulation_id)

    async def trigger_burst(self) -> List[ActionOutcome]:
        """Make every agent of every simulation try join-room then send-message now."""
        outcomes: List[ActionOutcome] = []
        for simulation in list(self._simulations.values()):
            outcomes.extend(await simulation.burst(self.burst_pause))
        return outcomes

    async def purge_simulated_data(self) -> int:
        """Stop everything and delete all simulated users and their rows from the backend."""
        await self.stop_all()
        removed = await self.backend.purge_simulated_users()
        log_info(f"Purged {removed} simulated users")
        return removed

    # ----------------------------------------------------------- queries

    def get_active_simulations(self) -> List[str]:
        return list(self._simulations)

    def get(self, simulation_id: str) -> Simulation:
        try:
            return self._simulations[simulation_id]
        except KeyError:
            raise UnknownSimulationError(simulation_id) from None

    def agent_ids(self) -> Set[str]:
        """Every agent id across all active simulations."""
        ids: Set[str] = set()
        for simulation in self._simulations.values():
            ids.update(simulation.agent_ids())
        return ids

    # ----------------------------------------------------------- helpers

    @staticmethod
    def _resolve_config(config: Union[SimulationConfig, Mapping[str, Any]]) -> SimulationConfig:
        try:
            if isinstance(config, SimulationConfig):
                return SimulationConfig.model_validate(config.model_dump())
            return SimulationConfig.model_validate(dict(config))
        except ValidationError as exc:
            raise InvalidSimulationConfigError(exc) from exc
