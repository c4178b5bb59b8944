"""Participant-side chat timeline with optimistic sends and echo suppression."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator

from pydantic import TypeAdapter, ValidationError

from ..core.ids import new_message_id
from ..schemas.chat import ChatMessage
from .transport import Emit, EventHandler

logger = logging.getLogger(__name__)

_history_adapter = TypeAdapter(list[ChatMessage])


class SentMessageSet:
    """Ids of messages this participant originated during the session."""

    def __init__(self, message_ids: Iterable[str] = ()) -> None:
        self._ids: set[str] = set(message_ids)

    def add(self, message_id: str) -> None:
        self._ids.add(message_id)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)


@dataclass(frozen=True, slots=True)
class RenderedMessage:
    message: ChatMessage
    sent_by_me: bool

    @property
    def message_id(self) -> str | None:
        return self.message.message_id

    @property
    def content(self) -> str:
        return self.message.content


class ChatTimeline:
    """The ordered list of messages a participant sees.

    An entry is never rendered twice: the relay echo of an optimistic send
    carries the same message id and is suppressed on arrival. Ownership comes
    from ``SentMessageSet`` membership, never from the sender id or content.
    """

    def __init__(self, sent: SentMessageSet | None = None) -> None:
        self.sent = sent if sent is not None else SentMessageSet()
        self._entries: list[RenderedMessage] = []
        self._rendered_ids: set[str] = set()

    @property
    def messages(self) -> list[RenderedMessage]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def compose(self, room_id: str, content: str) -> ChatMessage | None:
        """Build and optimistically render an outgoing message.

        Returns None without side effects when the room or the text is blank.
        """

        room_id = (room_id or "").strip()
        if not room_id or not (content or "").strip():
            return None
        message = ChatMessage(chat_id=room_id, content=content, message_id=new_message_id())
        self.sent.add(message.message_id)
        self._append(RenderedMessage(message=message, sent_by_me=True))
        return message

    def receive(self, message: ChatMessage) -> RenderedMessage | None:
        """Render an incoming message; returns None when it is already shown."""

        if message.message_id is not None and message.message_id in self._rendered_ids:
            return None
        entry = RenderedMessage(message=message, sent_by_me=message.message_id in self.sent)
        self._append(entry)
        return entry

    def load_history(self, history: Iterable[ChatMessage]) -> None:
        """Replace the timeline with the relay's ordered history."""

        self._entries = []
        self._rendered_ids = set()
        for message in history:
            if message.message_id is not None and message.message_id in self._rendered_ids:
                continue
            self._append(RenderedMessage(message=message, sent_by_me=message.message_id in self.sent))

    def _append(self, entry: RenderedMessage) -> None:
        self._entries.append(entry)
        if entry.message_id is not None:
            self._rendered_ids.add(entry.message_id)


class ChatClient:
    """Bind a ``ChatTimeline`` to the relay's chat events."""

    def __init__(self, emit: Emit, timeline: ChatTimeline | None = None) -> None:
        self._emit = emit
        self.timeline = timeline if timeline is not None else ChatTimeline()
        self.room_id: str | None = None

    @property
    def handlers(self) -> Dict[str, EventHandler]:
        return {
            "receive_message": self.on_receive_message,
            "chat_history": self.on_chat_history,
        }

    async def join(self, room_id: str) -> bool:
        room_id = (room_id or "").strip()
        if not room_id:
            return False
        self.room_id = room_id
        await self._emit("join_chat", room_id)
        await self._emit("get_chat_history", room_id)
        logger.info("Joined chat %s", room_id)
        return True

    async def send(self, content: str) -> ChatMessage | None:
        message = self.timeline.compose(self.room_id or "", content)
        if message is None:
            return None
        await self._emit("send_message", message.to_wire())
        return message

    async def on_receive_message(self, data: Any) -> None:
        try:
            message = ChatMessage.model_validate(data)
        except ValidationError as exc:
            logger.warning("Malformed message from relay: %s", exc)
            return
        if self.timeline.receive(message) is None:
            logger.debug("Suppressed echo of %s", message.message_id)

    async def on_chat_history(self, data: Any) -> None:
        try:
            history = _history_adapter.validate_python(data or [])
        except ValidationError as exc:
            logger.warning("Malformed history from relay: %s", exc)
            return
        self.timeline.load_history(history)
