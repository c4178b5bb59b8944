"""One chat participant: chat timeline and call negotiation bound to a relay."""
from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from ..schemas.chat import ChatMessage, Connected
from .chat import ChatClient, ChatTimeline
from .media import MediaDevices, PeerFactory
from .negotiation import NegotiationEngine
from .peers import PeerConnectionManager, RemoteStreamHandler
from .transport import EventChannel

logger = logging.getLogger(__name__)


class Participant:
    """Wire the client engines onto an event channel.

    The peer registry is created here, per participant, and handed to the
    negotiation engine by reference.
    """

    def __init__(
        self,
        channel: EventChannel,
        media: MediaDevices,
        peer_factory: PeerFactory,
        on_remote_stream: RemoteStreamHandler | None = None,
    ) -> None:
        self.channel = channel
        self.participant_id: str | None = None
        self.chat = ChatClient(channel.emit)
        self.peers = PeerConnectionManager(peer_factory, channel.emit, on_remote_stream)
        self.call = NegotiationEngine(self.peers, media, channel.emit)

        channel.on("connected", self.on_connected)
        for event, handler in {**self.chat.handlers, **self.call.handlers}.items():
            channel.on(event, handler)
        channel.on_close(self.call.on_transport_closed)

    @property
    def timeline(self) -> ChatTimeline:
        return self.chat.timeline

    async def on_connected(self, data: Any) -> None:
        try:
            notice = Connected.model_validate(data)
        except ValidationError as exc:
            logger.warning("Malformed connected notice: %s", exc)
            return
        self.participant_id = notice.participant_id
        self.call.participant_id = notice.participant_id
        logger.info("Connected to relay as %s", notice.participant_id)

    async def join(self, room_id: str) -> bool:
        return await self.chat.join(room_id)

    async def send(self, content: str) -> ChatMessage | None:
        return await self.chat.send(content)

    async def start_video(self, room_id: str | None = None) -> bool:
        """Start a call in ``room_id`` or the joined room; raises ``MediaAccessError``."""

        return await self.call.start_video(room_id or self.chat.room_id or "")

    async def end_call(self) -> None:
        await self.call.end_call()
