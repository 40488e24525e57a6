"""Tests for color handling and log tags."""

import contextlib
import io

import pytest

from chatverse.config import Config
from chatverse.logging_utils import (
    LOG_TAG_ACTION,
    LOG_TAG_ERROR,
    Color,
    colored,
    log_action,
    log_error,
    log_verbose,
)


def capture(fn, *args):
    buffer = io.StringIO()
    with contextlib.redirect_stdout(buffer):
        fn(*args)
    return buffer.getvalue()


def test_colored_wraps_ansi_codes(monkeypatch):
    monkeypatch.delenv("CHATVERSE_NO_COLOR", raising=False)
    text = colored("hi", Color.GREEN, bold=True)
    assert text == f"{Color.BOLD.value}{Color.GREEN.value}hi{Color.RESET.value}"


def test_no_color_returns_plain_text(monkeypatch):
    monkeypatch.setenv("CHATVERSE_NO_COLOR", "1")
    assert colored("hi", Color.RED) == "hi"
    assert capture(log_error, "boom") == f"{LOG_TAG_ERROR} boom\n"
    assert capture(log_action, "joined") == f"{LOG_TAG_ACTION} joined\n"


def test_verbose_lines_are_opt_in(monkeypatch):
    monkeypatch.setenv("CHATVERSE_NO_COLOR", "1")
    monkeypatch.delenv("CHATVERSE_VERBOSE", raising=False)
    assert capture(log_verbose, "detail") == ""

    monkeypatch.setenv("CHATVERSE_VERBOSE", "1")
    assert "detail" in capture(log_verbose, "detail")


def test_config_defaults_validate():
    Config.validate()
    assert Config.tick_intervals_ms() == {
        "low": Config.TICK_LOW_MS,
        "medium": Config.TICK_MEDIUM_MS,
        "high": Config.TICK_HIGH_MS,
    }
    assert "Soft occupancy ceiling" in Config.display()


def test_config_rejects_non_positive_interval(monkeypatch):
    monkeypatch.setattr(Config, "TICK_HIGH_MS", 0)
    with pytest.raises(ValueError):
        Config.validate()
