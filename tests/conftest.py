"""Shared fixtures for Chatverse tests."""

import random

import pytest

from chatverse.schemas import Agent, BehaviorFlags


# Zero-delay sends so tests never wait on "human" pacing
NO_DELAYS = {"instant": (0.0, 0.0), "realistic": (0.0, 0.0), "slow": (0.0, 0.0)}


class FixedRandom(random.Random):
    """random.Random whose random() always returns ``value``.

    choice()/shuffle() still draw from the seeded generator, so only the
    roulette draw, act-chance gate and uniform offsets are pinned.
    """

    def __init__(self, value: float = 0.0, seed: int = 7):
        super().__init__(seed)
        self.value = value

    def random(self) -> float:
        return self.value

    # Defining getrandbits keeps choice()/shuffle() off the pinned random()
    def getrandbits(self, k: int) -> int:
        return super().getrandbits(k)


def build_agent(**overrides) -> Agent:
    data = dict(
        id="agent-1",
        display_name="Sarah M",
        email="bot_1@chatverse.simulation",
        personality="encouraging",
        activity_level="high",
        response_speed="instant",
        behaviors=BehaviorFlags(
            join_rooms=True,
            send_messages=True,
            respond_to_messages=True,
            prayer_requests=True,
            move_around=True,
        ),
        location_lat=40.0,
        location_lng=-75.0,
        simulation_id="sim_test",
    )
    data.update(overrides)
    return Agent(**data)


@pytest.fixture
def make_agent():
    return build_agent


@pytest.fixture
def fixed_random():
    return FixedRandom


@pytest.fixture
def no_delays():
    return dict(NO_DELAYS)
