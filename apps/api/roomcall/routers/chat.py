"""Chat relay WebSocket transport and history endpoint."""
from __future__ import annotations

import json
import logging
from uuid import uuid4

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from ..schemas.chat import ChatMessage, Connected, Envelope
from ..services.relay import relay
from ..services.signaling import ParticipantConnection

router = APIRouter()

logger = logging.getLogger(__name__)


@router.get("/rooms/{room_id}/messages", response_model=list[ChatMessage])
async def list_room_messages(room_id: str) -> list[ChatMessage]:
    """Return a room's ordered history; unknown rooms are empty."""

    return await relay.rooms.get_history(room_id)


@router.websocket("/ws")
async def chat_endpoint(websocket: WebSocket) -> None:
    """Room-addressed event transport for chat and call signaling."""

    participant_id = str(uuid4())
    await websocket.accept()

    await relay.hub.connect(ParticipantConnection(participant_id=participant_id, send=websocket.send_json))
    await websocket.send_json(
        {"event": "connected", "data": Connected(participant_id=participant_id).to_wire()}
    )

    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                break
            text = frame.get("text")
            if text is None:
                logger.warning("Discarding binary frame from %s", participant_id)
                continue
            try:
                envelope = Envelope.model_validate(json.loads(text))
            except (json.JSONDecodeError, ValidationError):
                logger.warning("Discarding malformed envelope from %s", participant_id)
                continue
            await relay.handle(participant_id, envelope)
    except WebSocketDisconnect:
        pass
    finally:
        await relay.disconnect(participant_id)
