"""Logging utilities for Chatverse simulations.

Provides color-coded output to distinguish scheduler bookkeeping from agent
actions, failures, and successes.
"""

import os
from enum import Enum


class Color(Enum):
    """ANSI color codes for terminal output."""

    # Colors for operation types
    BLUE = "\033[94m"      # Deterministic operations (snapshot, selection)
    YELLOW = "\033[93m"    # Agent actions (writes against the backend)
    RED = "\033[91m"       # Errors and dropped work
    GREEN = "\033[92m"     # Success/completion
    CYAN = "\033[96m"      # Info/metadata

    # Formatting
    BOLD = "\033[1m"
    RESET = "\033[0m"


# Markers for operation types (color-blind accessible)
LOG_TAG_DETERMINISTIC = "[•]"
LOG_TAG_ACTION = "[>]"
LOG_TAG_ERROR = "[!]"
LOG_TAG_SUCCESS = "[✓]"
LOG_TAG_INFO = "[i]"


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap text in ANSI color codes if colors are enabled.

    Args:
        text: Text to colorize
        color: Color to apply
        bold: Whether to make text bold

    Returns:
        Colorized text if CHATVERSE_NO_COLOR is not set, otherwise plain text
    """
    if os.getenv("CHATVERSE_NO_COLOR"):
        return text

    prefix = color.value
    if bold:
        prefix = Color.BOLD.value + prefix

    return f"{prefix}{text}{Color.RESET.value}"


def verbose_enabled() -> bool:
    """Return True when per-agent detail lines should be printed."""
    return bool(os.getenv("CHATVERSE_VERBOSE"))


def log_deterministic(message: str) -> None:
    """Log a deterministic operation (blue)."""
    print(colored(f"{LOG_TAG_DETERMINISTIC} {message}", Color.BLUE))


def log_action(message: str) -> None:
    """Log an agent action (yellow)."""
    print(colored(f"{LOG_TAG_ACTION} {message}", Color.YELLOW))


def log_error(message: str) -> None:
    """Log an error or dropped unit of work (red)."""
    print(colored(f"{LOG_TAG_ERROR} {message}", Color.RED))


def log_success(message: str) -> None:
    """Log a success (green)."""
    print(colored(f"{LOG_TAG_SUCCESS} {message}", Color.GREEN))


def log_info(message: str) -> None:
    """Log metadata/info (cyan)."""
    print(colored(f"{LOG_TAG_INFO} {message}", Color.CYAN))


def log_verbose(message: str) -> None:
    """Log a detail line only when CHATVERSE_VERBOSE is set (cyan)."""
    if verbose_enabled():
        print(colored(f"    {message}", Color.CYAN))
