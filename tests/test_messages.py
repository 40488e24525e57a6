"""Tests for templated message banks."""

import random

import pytest

from chatverse.messages import (
    DEFAULT_BANKS,
    DEFAULT_PRAYER_REQUESTS,
    MessageGenerator,
    wants_prayer_response,
)
from chatverse.schemas import PERSONALITIES


def test_every_personality_has_full_bank():
    assert set(DEFAULT_BANKS) == set(PERSONALITIES)
    for bank in DEFAULT_BANKS.values():
        assert bank.general and bank.responses and bank.prayer_responses and bank.greetings


@pytest.mark.parametrize(
    "content, expected",
    [
        ("Please pray for my mom", True),
        ("I need HELP with something", True),
        ("Praying for everyone tonight", True),
        ("What a lovely morning", False),
    ],
)
def test_prayer_keyword_routing(content, expected):
    assert wants_prayer_response(content) is expected


def test_response_uses_prayer_bank_for_requests():
    generator = MessageGenerator(rng=random.Random(1))
    for _ in range(20):
        line = generator.response_to("thoughtful", "Can you help me?")
        assert line in DEFAULT_BANKS["thoughtful"].prayer_responses


def test_response_uses_general_responses_otherwise():
    generator = MessageGenerator(rng=random.Random(1))
    for _ in range(20):
        line = generator.response_to("casual", "Nice weather today")
        assert line in DEFAULT_BANKS["casual"].responses


def test_generated_lines_come_from_banks():
    generator = MessageGenerator(rng=random.Random(3))
    assert generator.greeting("encouraging") in DEFAULT_BANKS["encouraging"].greetings
    assert generator.general("prayer_focused") in DEFAULT_BANKS["prayer_focused"].general
    assert generator.prayer_request() in DEFAULT_PRAYER_REQUESTS
    assert generator.greeting("casual") in generator.lines_for("casual")


def test_unknown_personality_raises():
    with pytest.raises(KeyError):
        MessageGenerator().general("grumpy")


def test_empty_bank_raises():
    generator = MessageGenerator(prayer_requests=())
    with pytest.raises(ValueError):
        generator.prayer_request()
