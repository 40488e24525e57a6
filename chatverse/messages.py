"""Templated message banks keyed by personality.

Messages are scripted on purpose: every line an agent posts comes from one of
the banks below, chosen uniformly at random. Nothing here is generative.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence


# Substrings that route a response to the prayer-response bank
PRAYER_KEYWORDS: tuple[str, ...] = ("pray", "help")


@dataclass(frozen=True)
class PersonalityBank:
    """Template sub-banks for one personality."""

    general: Sequence[str]
    responses: Sequence[str]
    prayer_responses: Sequence[str]
    greetings: Sequence[str]


DEFAULT_BANKS: Dict[str, PersonalityBank] = {
    "encouraging": PersonalityBank(
        general=(
            "God's got this! 🙏",
            "Praying for strength for you today",
            "You're loved and not forgotten ❤️",
            "Feeling grateful for this community",
            "God is working in your life!",
            "Stay strong in faith",
            "His plans are good 💪",
            "Blessed to be here with you all",
        ),
        responses=(
            "Amen to that!",
            "So grateful for your heart ❤️",
            "This encouraged me too",
            "God is so good!",
            "Exactly what I needed to hear",
            "Thank you for sharing",
        ),
        prayer_responses=(
            "Lifting you up in prayer right now 🙏",
            "Praying with you",
            "God hears your heart",
            "Adding this to my prayer list",
            "Believing God for breakthrough",
        ),
        greetings=("Hi everyone! 😊", "Blessed to join you all", "Good to be here!"),
    ),
    "thoughtful": PersonalityBank(
        general=(
            "Been reflecting on Philippians 4:13 today",
            "Sometimes the quiet moments teach us most",
            "Grateful for God's faithfulness",
            "Learning to trust in His timing",
            "Finding peace in prayer today",
            "God's word is alive and active",
            "In seasons of waiting, we grow",
        ),
        responses=(
            "That really resonates with me",
            "Thank you for that perspective",
            "I've been learning similar things",
            "Wise words",
            "That's beautifully put",
            "Something to meditate on",
        ),
        prayer_responses=(
            "May God grant you wisdom",
            "Praying for His peace over you",
            "Trusting God's perfect timing with you",
        ),
        greetings=("Hello, grateful to be here", "Peace to you all", "Joining you in fellowship"),
    ),
    "prayer_focused": PersonalityBank(
        general=(
            "Lifting you all up in prayer",
            "Praying for wisdom and guidance",
            "May God's peace be with you",
            "Asking for God's blessings on everyone here",
            "Praying through Psalm 23 today",
            "Lord, be near to us today",
            "Covering this community in prayer",
        ),
        responses=(
            "Praying agreement with you",
            "Standing with you in prayer",
            "Amen, Lord hear us",
            "Joining you in prayer",
            "God is faithful to answer",
        ),
        prayer_responses=(
            "Father God, we lift this request to you",
            "Praying earnestly for this",
            "Lord, you know every need",
        ),
        greetings=("Blessings to all", "Grace and peace", "In His name, hello"),
    ),
    "casual": PersonalityBank(
        general=(
            "Good morning everyone!",
            "Hope you're having a blessed day",
            "Thanks for being here",
            "Appreciate this community",
            "Sending good vibes your way",
            "Great to connect with you all",
            "Hope everyone's doing well",
            "Grateful for this space",
        ),
        responses=(
            "Thanks for sharing!",
            "Good to hear from you",
            "Hope your day goes well",
            "Take care!",
            "Same to you!",
            "Nice connecting",
        ),
        prayer_responses=(
            "Keeping you in my thoughts",
            "Sending prayers your way",
            "Hope things get better soon",
        ),
        greetings=("Hey there!", "Morning everyone", "What's up, friends?"),
    ),
}

DEFAULT_PRAYER_REQUESTS: tuple[str, ...] = (
    "Could use prayer for job interviews this week 🙏",
    "Please pray for my family during this season",
    "Seeking God's wisdom for an important decision",
    "Pray for healing and strength, friends",
    "Need prayer for peace in a difficult situation",
    "Please lift up my church community in prayer",
    "Asking for prayer for safe travels",
    "Could use prayer for financial provision",
)


def wants_prayer_response(content: str) -> bool:
    """Return ``True`` when a message reads like a prayer or help request."""

    lowered = content.lower()
    return any(keyword in lowered for keyword in PRAYER_KEYWORDS)


@dataclass
class MessageGenerator:
    """Pick template lines for an agent's personality.

    ``rng`` is injectable so tests can pin the choice.
    """

    banks: Dict[str, PersonalityBank] = field(default_factory=lambda: dict(DEFAULT_BANKS))
    prayer_requests: Sequence[str] = DEFAULT_PRAYER_REQUESTS
    rng: random.Random = field(default_factory=random.Random)

    def _bank(self, personality: str) -> PersonalityBank:
        try:
            return self.banks[personality]
        except KeyError:
            raise KeyError(f"No message bank for personality '{personality}'") from None

    def _pick(self, lines: Sequence[str]) -> str:
        if not lines:
            raise ValueError("Cannot pick from an empty template bank")
        return self.rng.choice(list(lines))

    def general(self, personality: str) -> str:
        return self._pick(self._bank(personality).general)

    def greeting(self, personality: str) -> str:
        return self._pick(self._bank(personality).greetings)

    def response_to(self, personality: str, content: str) -> str:
        """Answer ``content`` from the prayer-response or general-response bank."""

        bank = self._bank(personality)
        if wants_prayer_response(content):
            return self._pick(bank.prayer_responses)
        return self._pick(bank.responses)

    def prayer_request(self) -> str:
        return self._pick(self.prayer_requests)

    def lines_for(self, personality: str, kind: Optional[str] = None) -> List[str]:
        """Return every line an agent of ``personality`` could post (optionally one sub-bank)."""

        bank = self._bank(personality)
        if kind is not None:
            return list(getattr(bank, kind))
        return [
            *bank.general,
            *bank.responses,
            *bank.prayer_responses,
            *bank.greetings,
        ]
