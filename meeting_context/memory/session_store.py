"""Per-room conversation history for the meeting assistant."""

import asyncio
from collections import deque
from typing import Deque, Dict, List

from meeting_context.memory.models import ConversationTurn


class ConversationSessionStore:
    """Bounded, in-process conversation history keyed by room.

    Each room holds at most ``max_turns`` turns; appending beyond that drops
    the oldest turn. Appends for the same room are serialized by a per-room
    lock. Nothing is persisted.
    """

    def __init__(self, max_turns: int = 20):
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self.max_turns = max_turns
        self._turns: Dict[str, Deque[ConversationTurn]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, room_name: str) -> asyncio.Lock:
        return self._locks.setdefault(room_name, asyncio.Lock())

    async def append(self, room_name: str, turn: ConversationTurn) -> None:
        async with self._lock_for(room_name):
            turns = self._turns.get(room_name)
            if turns is None:
                turns = deque(maxlen=self.max_turns)
                self._turns[room_name] = turns
            turns.append(turn)

    async def clear(self, room_name: str) -> None:
        async with self._lock_for(room_name):
            self._turns.pop(room_name, None)

    def history(self, room_name: str) -> List[ConversationTurn]:
        """All retained turns for a room, oldest first."""
        return list(self._turns.get(room_name, ()))

    def recent(self, room_name: str, n: int = 10) -> List[ConversationTurn]:
        """The last ``n`` turns for a room, oldest first."""
        if n <= 0:
            return []
        return self.history(room_name)[-n:]

    def rooms(self) -> List[str]:
        return [room for room, turns in self._turns.items() if turns]
