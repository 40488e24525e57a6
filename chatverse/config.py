"""
Chatverse Configuration

Loads configuration from environment variables with sensible defaults.
"""

import os
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


class Config:
    """Application configuration loaded from environment variables."""

    # Database Configuration (PostgresBackend only)
    DATABASE_URL: str = os.getenv("DATABASE_URL", "postgresql://localhost/chatverse")
    DB_CONNECT_ATTEMPTS: int = int(os.getenv("CHATVERSE_DB_CONNECT_ATTEMPTS", "3"))

    # Scheduler intervals per activity tier (milliseconds)
    TICK_LOW_MS: int = int(os.getenv("CHATVERSE_TICK_LOW_MS", "45000"))
    TICK_MEDIUM_MS: int = int(os.getenv("CHATVERSE_TICK_MEDIUM_MS", "25000"))
    TICK_HIGH_MS: int = int(os.getenv("CHATVERSE_TICK_HIGH_MS", "15000"))
    # First tick fires shortly after start so effects show up without waiting a full interval
    INITIAL_TICK_DELAY_MS: int = int(os.getenv("CHATVERSE_INITIAL_TICK_DELAY_MS", "2000"))
    # Pause between agents during a manual activity burst
    BURST_PAUSE_MS: int = int(os.getenv("CHATVERSE_BURST_PAUSE_MS", "250"))

    # World snapshot bounds
    ROOM_READ_LIMIT: int = int(os.getenv("CHATVERSE_ROOM_READ_LIMIT", "10"))
    MESSAGE_READ_LIMIT: int = int(os.getenv("CHATVERSE_MESSAGE_READ_LIMIT", "20"))
    RECENT_WINDOW_SECONDS: int = int(os.getenv("CHATVERSE_RECENT_WINDOW_SECONDS", "300"))
    USER_SAMPLE_LIMIT: int = int(os.getenv("CHATVERSE_USER_SAMPLE_LIMIT", "10"))

    # Agents only join rooms holding fewer occupants than this
    SOFT_OCCUPANCY_CEILING: int = int(os.getenv("CHATVERSE_SOFT_OCCUPANCY_CEILING", "8"))

    @classmethod
    def tick_intervals_ms(cls) -> dict[str, int]:
        """Return the activity tier -> tick interval mapping."""
        return {
            "low": cls.TICK_LOW_MS,
            "medium": cls.TICK_MEDIUM_MS,
            "high": cls.TICK_HIGH_MS,
        }

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if values are unusable."""
        for tier, interval in cls.tick_intervals_ms().items():
            if interval <= 0:
                raise ValueError(
                    f"Tick interval for '{tier}' activity must be positive (got {interval} ms)"
                )

        if cls.SOFT_OCCUPANCY_CEILING <= 0:
            raise ValueError("CHATVERSE_SOFT_OCCUPANCY_CEILING must be >= 1")

        if cls.RECENT_WINDOW_SECONDS <= 0:
            raise ValueError("CHATVERSE_RECENT_WINDOW_SECONDS must be >= 1")

        if cls.DB_CONNECT_ATTEMPTS <= 0:
            raise ValueError("CHATVERSE_DB_CONNECT_ATTEMPTS must be >= 1")

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Chatverse Configuration:",
            f"  Database: {cls.DATABASE_URL}",
            f"  Tick intervals: low={cls.TICK_LOW_MS}ms medium={cls.TICK_MEDIUM_MS}ms high={cls.TICK_HIGH_MS}ms",
            f"  Initial tick delay: {cls.INITIAL_TICK_DELAY_MS}ms",
            f"  Snapshot: {cls.ROOM_READ_LIMIT} rooms, {cls.MESSAGE_READ_LIMIT} messages / {cls.RECENT_WINDOW_SECONDS}s",
            f"  Soft occupancy ceiling: {cls.SOFT_OCCUPANCY_CEILING}",
        ]
        return "\n".join(lines)
