"""Tests for per-simulation conversation memory."""

from chatverse.memory import ConversationMemory


def test_responded_messages_are_remembered_per_agent():
    memory = ConversationMemory()
    memory.mark_responded("a1", "m1")

    assert memory.has_responded("a1", "m1")
    assert not memory.has_responded("a2", "m1")
    assert not memory.has_responded("a1", "m2")


def test_memory_is_bounded():
    memory = ConversationMemory(room_lines=2, responded_per_agent=2)
    for i in range(4):
        memory.remember_line("room", f"line {i}")
        memory.mark_responded("a1", f"m{i}")

    assert memory.recent_lines("room") == ["line 2", "line 3"]
    assert not memory.has_responded("a1", "m0")
    assert memory.has_responded("a1", "m3")


def test_forget_and_clear():
    memory = ConversationMemory()
    memory.mark_responded("a1", "m1")
    memory.remember_line("room", "hello")

    memory.forget_agent("a1")
    assert not memory.has_responded("a1", "m1")
    assert memory.recent_lines("room") == ["hello"]

    memory.clear()
    assert memory.recent_lines("room") == []
    assert memory.recent_lines("unknown") == []
