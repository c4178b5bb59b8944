"""Data contracts for chat events carried over the relay."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for payloads that travel as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ChatMessage(WireModel):
    chat_id: str = Field(..., description="Room the message belongs to")
    content: str = Field(..., description="Message text as typed by the sender")
    message_id: str | None = Field(default=None, description="Sender-generated identifier")
    sender_id: str | None = Field(default=None, description="Participant id stamped by the relay")


class Envelope(BaseModel):
    """A named transport event and its payload."""

    event: str = Field(..., min_length=1)
    data: Any = None


class Connected(WireModel):
    participant_id: str


class UserDisconnected(WireModel):
    participant_id: str
