"""Relay-side handling of chat and signaling events."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict

from pydantic import BaseModel, ValidationError

from ..core.ids import new_message_id
from ..schemas.chat import ChatMessage, Envelope, UserDisconnected
from ..schemas.signaling import (
    AnswerSignal,
    CandidateSignal,
    OfferSignal,
    StartVideoRequest,
    VideoChatStarted,
)
from .rooms import RoomRegistry
from .signaling import ConnectionHub

logger = logging.getLogger(__name__)

EventHandler = Callable[[str, Any], Awaitable[None]]

PEER_SIGNALS: dict[str, type[BaseModel]] = {
    "offer": OfferSignal,
    "answer": AnswerSignal,
    "ice-candidate": CandidateSignal,
}


def _room_id_from(data: Any) -> str:
    """Accept both a bare room id and ``{"roomId": ...}``."""

    if isinstance(data, dict):
        data = data.get("roomId") or data.get("chatId")
    if not isinstance(data, str):
        return ""
    return data.strip()


class ChatRelay:
    """Turn inbound transport events into room state changes and fan-out."""

    def __init__(self, rooms: RoomRegistry, hub: ConnectionHub) -> None:
        self.rooms = rooms
        self.hub = hub
        self._send_lock = asyncio.Lock()
        self._handlers: Dict[str, EventHandler] = {
            "join_chat": self._join_chat,
            "get_chat_history": self._get_chat_history,
            "send_message": self._send_message,
            "start_video_chat": self._start_video_chat,
        }

    async def handle(self, participant_id: str, envelope: Envelope) -> None:
        """Dispatch one event from a participant; malformed payloads are logged and dropped."""

        try:
            if envelope.event in PEER_SIGNALS:
                await self._forward(participant_id, envelope.event, envelope.data)
                return
            handler = self._handlers.get(envelope.event)
            if handler is None:
                logger.debug("Ignoring unknown event %s from %s", envelope.event, participant_id)
                return
            await handler(participant_id, envelope.data)
        except ValidationError as exc:
            logger.warning("Malformed %s from %s: %s", envelope.event, participant_id, exc)

    async def send(
        self,
        room_id: str,
        sender_id: str,
        content: str,
        message_id: str | None = None,
    ) -> ChatMessage | None:
        """Persist a message and broadcast it to the whole room, sender included."""

        room_id = (room_id or "").strip()
        if not room_id or not (content or "").strip():
            logger.debug("Rejected empty message from %s", sender_id)
            return None

        message = ChatMessage(
            chat_id=room_id,
            content=content,
            message_id=message_id or new_message_id(),
            sender_id=sender_id,
        )
        # Echo order follows history order.
        async with self._send_lock:
            members = await self.rooms.append_message(room_id, message)
            if members is None:
                logger.warning("Rejected duplicate message id %s from %s", message.message_id, sender_id)
                return None
            await self.hub.broadcast(members, "receive_message", message.to_wire())
        return message

    async def disconnect(self, participant_id: str) -> None:
        """Forget a participant and tell its room-mates it is gone."""

        await self.hub.disconnect(participant_id)
        notice = UserDisconnected(participant_id=participant_id).to_wire()
        for room_id in await self.rooms.leave_all(participant_id):
            members = await self.rooms.members(room_id)
            await self.hub.broadcast(members, "user_disconnected", notice)

    async def _join_chat(self, participant_id: str, data: Any) -> None:
        room_id = _room_id_from(data)
        if not room_id:
            return
        await self.rooms.join(room_id, participant_id)
        logger.info("Participant %s joined room %s", participant_id, room_id)

    async def _get_chat_history(self, participant_id: str, data: Any) -> None:
        room_id = _room_id_from(data)
        if not room_id:
            return
        history = await self.rooms.get_history(room_id)
        await self.hub.send_to(participant_id, "chat_history", [message.to_wire() for message in history])

    async def _send_message(self, participant_id: str, data: Any) -> None:
        incoming = ChatMessage.model_validate(data)
        await self.send(incoming.chat_id, participant_id, incoming.content, incoming.message_id)

    async def _start_video_chat(self, participant_id: str, data: Any) -> None:
        request = StartVideoRequest.model_validate(data)
        members = await self.rooms.members(request.room_id)
        notice = VideoChatStarted(sender=participant_id).to_wire()
        await self.hub.broadcast(members, "video_chat_started", notice)
        logger.info("Participant %s started video in room %s", participant_id, request.room_id)

    async def _forward(self, participant_id: str, event: str, data: Any) -> None:
        signal = PEER_SIGNALS[event].model_validate(data)
        target = signal.to
        if not target:
            logger.debug("Dropping unaddressed %s from %s", event, participant_id)
            return
        outbound = signal.model_copy(update={"to": None, "sender": participant_id})
        delivered = await self.hub.send_to(target, event, outbound.to_wire())
        if not delivered:
            logger.debug("Dropping %s for absent participant %s", event, target)


rooms = RoomRegistry()
hub = ConnectionHub()
relay = ChatRelay(rooms, hub)
