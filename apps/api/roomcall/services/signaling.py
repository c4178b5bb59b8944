"""In-memory connection hub delivering named events to participants."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable

SendCallable = Callable[[dict], Awaitable[None]]

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ParticipantConnection:
    """Connection wrapper for a relay participant."""

    participant_id: str
    send: SendCallable


class ConnectionHub:
    """Track live connections and fan events out to them."""

    def __init__(self) -> None:
        self._connections: Dict[str, ParticipantConnection] = {}
        self._lock = asyncio.Lock()

    async def connect(self, connection: ParticipantConnection) -> None:
        async with self._lock:
            self._connections[connection.participant_id] = connection
        logger.info("Participant %s connected", connection.participant_id)

    async def disconnect(self, participant_id: str) -> None:
        async with self._lock:
            self._connections.pop(participant_id, None)
        logger.info("Participant %s disconnected", participant_id)

    def is_connected(self, participant_id: str) -> bool:
        return participant_id in self._connections

    async def send_to(self, participant_id: str, event: str, data: Any) -> bool:
        """Deliver one event to a single participant.

        Returns False when the participant is not connected or the send fails.
        """

        connection = self._connections.get(participant_id)
        if connection is None:
            return False
        try:
            await connection.send({"event": event, "data": data})
        except Exception as exc:  # noqa: BLE001
            logger.warning("Dropping %s for %s: %s", event, participant_id, exc)
            return False
        return True

    async def broadcast(
        self,
        participant_ids: Iterable[str],
        event: str,
        data: Any,
        exclude: str | None = None,
    ) -> None:
        """Send an event to every listed participant except ``exclude``."""

        async with self._lock:
            targets = [
                self._connections[participant_id]
                for participant_id in participant_ids
                if participant_id != exclude and participant_id in self._connections
            ]

        if not targets:
            return

        envelope = {"event": event, "data": data}
        tasks = [connection.send(envelope) for connection in targets]
        await asyncio.gather(*tasks, return_exceptions=True)
