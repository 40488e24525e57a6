"""Tests for the simulation registry control surface."""

import asyncio
import random

import pytest

from chatverse.backend import InMemoryBackend
from chatverse.registry import (
    InvalidSimulationConfigError,
    SimulationRegistry,
    UnknownSimulationError,
)
from chatverse.schemas import SimulationConfig


def make_registry(backend, **overrides):
    options = dict(
        rng=random.Random(11),
        tick_intervals={"low": 3600.0, "medium": 3600.0, "high": 3600.0},
        initial_delay=3600.0,
        burst_pause=0.0,
    )
    options.update(overrides)
    return SimulationRegistry(backend, **options)


@pytest.mark.asyncio
async def test_start_returns_unique_ids_and_tracks_agents():
    backend = InMemoryBackend()
    registry = make_registry(backend)

    first = await registry.start({"count": 2})
    second = await registry.start(SimulationConfig(count=3))

    assert first != second
    assert first.startswith("sim_")
    assert set(registry.get_active_simulations()) == {first, second}
    assert len(registry.agent_ids()) == 5
    assert registry.agent_ids() <= set(backend.users)
    assert registry.get(first).running

    await registry.stop_all()


@pytest.mark.asyncio
async def test_invalid_config_is_rejected():
    registry = make_registry(InMemoryBackend())

    with pytest.raises(InvalidSimulationConfigError) as excinfo:
        await registry.start({"count": 0})

    assert "count" in str(excinfo.value)
    assert registry.get_active_simulations() == []


@pytest.mark.asyncio
async def test_invalid_enum_value_is_rejected():
    registry = make_registry(InMemoryBackend())

    with pytest.raises(InvalidSimulationConfigError):
        await registry.start({"count": 2, "activity_level": "frantic"})


@pytest.mark.asyncio
async def test_stop_unknown_simulation_raises():
    registry = make_registry(InMemoryBackend())

    with pytest.raises(UnknownSimulationError) as excinfo:
        await registry.stop("sim_missing")
    assert str(excinfo.value) == "No active simulation with id 'sim_missing'"
    assert excinfo.value.simulation_id == "sim_missing"
    with pytest.raises(UnknownSimulationError):
        registry.get("sim_missing")


@pytest.mark.asyncio
async def test_no_writes_after_stop():
    backend = InMemoryBackend()
    backend.add_room("Fellowship", capacity=8)
    backend.add_user("Human")
    registry = make_registry(
        backend,
        tick_intervals={"low": 0.01, "medium": 0.01, "high": 0.01},
        initial_delay=0.0,
        # long enough that greetings and responses are still pending at stop
        response_delays={"instant": (5.0, 5.0), "realistic": (5.0, 5.0), "slow": (5.0, 5.0)},
    )

    sim_id = await registry.start({"count": 4, "activity_level": "high"})
    simulation = registry.get(sim_id)
    await asyncio.sleep(0.1)
    await registry.stop(sim_id)

    assert sim_id not in registry.get_active_simulations()
    assert not simulation.running
    assert simulation.effects.pending == 0

    writes_at_stop = len(backend.writes)
    await asyncio.sleep(0.1)
    assert len(backend.writes) == writes_at_stop


@pytest.mark.asyncio
async def test_stopped_simulation_keeps_backend_rows():
    backend = InMemoryBackend()
    registry = make_registry(backend)
    sim_id = await registry.start({"count": 2})
    agent_ids = registry.agent_ids()

    await registry.stop(sim_id)

    assert registry.agent_ids() == set()
    assert agent_ids <= set(backend.users)


@pytest.mark.asyncio
async def test_population_shrinks_when_registration_fails():
    backend = InMemoryBackend(identity_enabled=False)
    backend.fail_operations.add("create_profile_user")
    registry = make_registry(backend)

    sim_id = await registry.start({"count": 3})

    assert registry.get(sim_id).agents == []
    assert backend.users == {}

    await registry.stop_all()


@pytest.mark.asyncio
async def test_purge_removes_simulated_users_and_stops_everything():
    backend = InMemoryBackend()
    human = backend.add_user("Human")
    registry = make_registry(backend)
    await registry.start({"count": 3})

    removed = await registry.purge_simulated_data()

    assert removed == 3
    assert registry.get_active_simulations() == []
    assert set(backend.users) == {human.id}


@pytest.mark.asyncio
async def test_zero_personality_mix_still_starts():
    registry = make_registry(InMemoryBackend())
    mix = {"encouraging": 0, "thoughtful": 0, "prayer_focused": 0, "casual": 0}

    sim_id = await registry.start({"count": 4, "personality_mix": mix})

    assert len(registry.get(sim_id).agents) == 4

    await registry.stop_all()
