"""
Conversation memory for one simulation.

Agents do not keep rich memories; the simulator only needs two small pieces
of context that survive between ticks:

- which messages each agent already answered, so the same real-user message
  is not answered twice by the same agent
- the last few lines the simulation posted in each room, for inspection and
  for demo summaries

Both are bounded and live only as long as the simulation does.
"""

from collections import defaultdict, deque
from typing import Deque, Dict, List


class ConversationMemory:
    """Bounded, in-process conversation context for one simulation."""

    def __init__(self, *, room_lines: int = 20, responded_per_agent: int = 50):
        self.room_lines = room_lines
        self.responded_per_agent = responded_per_agent
        self._rooms: Dict[str, Deque[str]] = defaultdict(lambda: deque(maxlen=self.room_lines))
        self._responded: Dict[str, Deque[str]] = defaultdict(
            lambda: deque(maxlen=self.responded_per_agent)
        )

    def remember_line(self, room_id: str, content: str) -> None:
        self._rooms[room_id].append(content)

    def recent_lines(self, room_id: str) -> List[str]:
        """Lines posted in ``room_id`` by this simulation, oldest first."""
        return list(self._rooms.get(room_id, ()))

    def mark_responded(self, agent_id: str, message_id: str) -> None:
        self._responded[agent_id].append(message_id)

    def has_responded(self, agent_id: str, message_id: str) -> bool:
        return message_id in self._responded.get(agent_id, ())

    def forget_agent(self, agent_id: str) -> None:
        self._responded.pop(agent_id, None)

    def clear(self) -> None:
        self._rooms.clear()
        self._responded.clear()
