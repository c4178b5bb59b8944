"""In-memory room membership and chat history."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Set

from ..schemas.chat import ChatMessage


@dataclass
class Room:
    room_id: str
    members: Dict[str, None] = field(default_factory=dict)
    history: List[ChatMessage] = field(default_factory=list)
    message_ids: Set[str] = field(default_factory=set)


class RoomRegistry:
    """Rooms are created on first use and live for the lifetime of the process."""

    def __init__(self) -> None:
        self._rooms: Dict[str, Room] = {}
        self._lock = asyncio.Lock()

    async def join(self, room_id: str, participant_id: str) -> None:
        """Add a participant to a room; joining twice is a no-op."""

        async with self._lock:
            room = self._rooms.setdefault(room_id, Room(room_id))
            room.members.setdefault(participant_id, None)

    async def leave_all(self, participant_id: str) -> list[str]:
        """Drop a participant from every room it joined and return those room ids."""

        left: list[str] = []
        async with self._lock:
            for room in self._rooms.values():
                if participant_id in room.members:
                    del room.members[participant_id]
                    left.append(room.room_id)
        return left

    async def members(self, room_id: str) -> list[str]:
        async with self._lock:
            room = self._rooms.get(room_id)
            return list(room.members) if room else []

    async def get_history(self, room_id: str) -> list[ChatMessage]:
        """Return the room's ordered history; unknown rooms are simply empty."""

        async with self._lock:
            room = self._rooms.get(room_id)
            return list(room.history) if room else []

    async def append_message(self, room_id: str, message: ChatMessage) -> list[str] | None:
        """Append to history and return the members to echo to.

        Returns None, leaving history untouched, when the message id is already stored.
        """

        async with self._lock:
            room = self._rooms.setdefault(room_id, Room(room_id))
            if message.message_id is not None and message.message_id in room.message_ids:
                return None
            room.history.append(message)
            if message.message_id is not None:
                room.message_ids.add(message.message_id)
            return list(room.members)
