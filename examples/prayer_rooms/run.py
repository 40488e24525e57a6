"""Prayer-room demo: a small bot population keeps a few chat rooms lively.

Runs entirely in memory by default:

    uv run python examples/prayer_rooms/run.py --agents 6 --seconds 20

Point it at Postgres (schema is created if missing) with `--postgres`; the
connection string comes from `DATABASE_URL`:

    uv run python examples/prayer_rooms/run.py --postgres --purge

Useful environment variables:
- `CHATVERSE_VERBOSE=1` prints per-agent skip/move detail lines
- `CHATVERSE_NO_COLOR=1` disables ANSI colors
- `CHATVERSE_TICK_HIGH_MS` etc. override tick intervals
"""

from __future__ import annotations

import argparse
import asyncio
import random
from collections import Counter

from chatverse import (
    InMemoryBackend,
    PostgresBackend,
    SimulationConfig,
    SimulationRegistry,
    TickReport,
)
from chatverse.config import Config
from chatverse.logging_utils import Color, colored, log_info


ROOMS = [
    ("Morning Devotion", 8),
    ("Evening Prayer Circle", 6),
    ("Youth Fellowship", 12),
]

REAL_USERS = ["Alex Rivera", "Jordan Lee", "Sam Okafor"]


def seed_in_memory(backend: InMemoryBackend) -> None:
    """Give the bots a few rooms and real users to interact with."""

    users = [backend.add_user(name) for name in REAL_USERS]
    for index, (name, capacity) in enumerate(ROOMS):
        owner = users[index % len(users)]
        room = backend.add_room(name, capacity, participants=[owner.id])
        backend.post_message(room.id, owner.id, "Could someone pray for my job interview tomorrow?")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Prayer-room activity simulation")
    parser.add_argument("--agents", type=int, default=6, help="Number of simulated agents")
    parser.add_argument("--seconds", type=float, default=20.0, help="How long to let the simulation run")
    parser.add_argument(
        "--activity",
        choices=["low", "medium", "high"],
        default="high",
        help="Activity tier (selects the tick interval)",
    )
    parser.add_argument(
        "--speed",
        choices=["instant", "realistic", "slow"],
        default="instant",
        help="Delay tier for greetings and responses",
    )
    parser.add_argument("--tick-seconds", type=float, default=2.0, help="Tick interval override for the demo")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible runs")
    parser.add_argument("--burst", action="store_true", help="Trigger an activity burst after start")
    parser.add_argument("--postgres", action="store_true", help="Use PostgresBackend instead of memory")
    parser.add_argument("--purge", action="store_true", help="Delete simulated users when finished")
    return parser.parse_args()


async def main(args: argparse.Namespace) -> None:
    Config.validate()
    print(colored(Config.display(), Color.CYAN))

    if args.postgres:
        backend = PostgresBackend()
        await backend.initialize()
        await backend.create_schema()
    else:
        backend = InMemoryBackend()
        seed_in_memory(backend)

    totals: Counter = Counter()

    def tally(report: TickReport) -> None:
        for outcome in report.outcomes:
            if outcome.status == "done" and outcome.action_type:
                totals[outcome.action_type] += 1

    registry = SimulationRegistry(
        backend,
        rng=random.Random(args.seed),
        tick_intervals={tier: args.tick_seconds for tier in ("low", "medium", "high")},
        initial_delay=0.5,
        tick_listeners=[tally],
    )

    config = SimulationConfig(
        count=args.agents,
        center_lat=40.7128,
        center_lng=-74.0060,
        activity_level=args.activity,
        response_speed=args.speed,
    )

    try:
        simulation_id = await registry.start(config)
        if args.burst:
            await registry.trigger_burst()
        await asyncio.sleep(args.seconds)
        simulation = registry.get(simulation_id)
        await registry.stop(simulation_id)

        print()
        log_info(f"Ran {simulation.tick_count} ticks with {len(simulation.agents)} agents")
        for action_type, count in sorted(totals.items()):
            print(f"  {action_type:<22} {count}")

        if isinstance(backend, InMemoryBackend):
            print()
            log_info("Latest lines per room:")
            for room in backend.room_store.values():
                lines = [m.content for m in backend.messages if m.room_id == room.id][-3:]
                print(colored(f"  {room.name} ({len(room.current_participants)}/{room.max_capacity})", Color.BLUE))
                for line in lines:
                    print(f"    {line}")

        if args.purge:
            await registry.purge_simulated_data()
    finally:
        await registry.stop_all()
        await backend.close()


if __name__ == "__main__":
    args = parse_args()
    asyncio.run(main(args))
