"""Offer/answer/ICE negotiation turning a video start into a mesh of peer links."""
from __future__ import annotations

import enum
import logging
from typing import Any, Awaitable, Callable, Dict, TypeVar

from pydantic import BaseModel, ValidationError

from ..core.config import settings
from ..core.errors import MediaAccessError, RoomCallError
from ..schemas.chat import UserDisconnected
from ..schemas.signaling import (
    AnswerSignal,
    CandidateSignal,
    OfferSignal,
    StartVideoRequest,
    VideoChatStarted,
)
from .media import MediaDevices, MediaStream
from .peer import PeerConnection, PeerState
from .peers import PeerConnectionManager
from .transport import Emit

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)
SignalHandler = Callable[[Any], Awaitable[None]]


class SignalKind(str, enum.Enum):
    VIDEO_STARTED = "video_chat_started"
    OFFER = "offer"
    ANSWER = "answer"
    CANDIDATE = "ice-candidate"
    PEER_LEFT = "user_disconnected"


class Action(str, enum.Enum):
    DROP = "drop"
    OFFER = "offer"
    CREATE_AND_ANSWER = "create_and_answer"
    ANSWER = "answer"
    RECREATE_AND_ANSWER = "recreate_and_answer"
    APPLY_ANSWER = "apply_answer"
    ADD_CANDIDATE = "add_candidate"
    TEARDOWN = "teardown"


def decide(kind: SignalKind, state: PeerState | None, *, from_self: bool = False) -> Action:
    """Choose how to react to a signal given the counterpart's connection state.

    ``state`` is None when no connection to the counterpart exists locally.
    """

    if from_self:
        return Action.DROP

    if kind is SignalKind.VIDEO_STARTED:
        return Action.OFFER

    if kind is SignalKind.OFFER:
        if state is None:
            return Action.CREATE_AND_ANSWER
        if state is PeerState.NEW:
            return Action.ANSWER
        return Action.RECREATE_AND_ANSWER

    if state is None:
        return Action.DROP
    # Failed connections still hold track clones until closed.
    if kind is SignalKind.PEER_LEFT:
        return Action.TEARDOWN
    if state.terminal:
        return Action.DROP

    if kind is SignalKind.ANSWER:
        return Action.APPLY_ANSWER if state is PeerState.HAVE_LOCAL_OFFER else Action.DROP
    if kind is SignalKind.CANDIDATE:
        return Action.ADD_CANDIDATE
    return Action.DROP


def _parse(model: type[ModelT], data: Any) -> ModelT | None:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        logger.warning("Malformed %s payload: %s", model.__name__, exc)
        return None


class NegotiationEngine:
    """Drive the signaling protocol for one participant's video call."""

    def __init__(
        self,
        peers: PeerConnectionManager,
        media: MediaDevices,
        emit: Emit,
        *,
        video: bool | None = None,
        audio: bool | None = None,
    ) -> None:
        self.peers = peers
        self.media = media
        self._emit = emit
        self._video = settings.capture_video if video is None else video
        self._audio = settings.capture_audio if audio is None else audio
        self.participant_id: str | None = None
        self.room_id: str | None = None

    @property
    def handlers(self) -> Dict[str, SignalHandler]:
        return {
            SignalKind.VIDEO_STARTED.value: self.on_video_chat_started,
            SignalKind.OFFER.value: self.on_offer,
            SignalKind.ANSWER.value: self.on_answer,
            SignalKind.CANDIDATE.value: self.on_ice_candidate,
            SignalKind.PEER_LEFT.value: self.on_user_disconnected,
        }

    async def ensure_local_stream(self) -> MediaStream:
        """Acquire local media once; raises ``MediaAccessError`` on failure."""

        if self.peers.local_stream is None:
            self.peers.local_stream = await self.media.acquire(video=self._video, audio=self._audio)
        return self.peers.local_stream

    async def start_video(self, room_id: str) -> bool:
        """Announce a call in ``room_id``; returns False for a blank room id."""

        room_id = (room_id or "").strip()
        if not room_id:
            logger.debug("Refusing to start video without a room")
            return False
        await self.ensure_local_stream()
        self.room_id = room_id
        await self._emit("start_video_chat", StartVideoRequest(room_id=room_id).to_wire())
        logger.info("Started video in room %s", room_id)
        return True

    async def end_call(self) -> None:
        await self.peers.close_all()
        self.peers.release_local_stream()
        self.room_id = None

    async def on_video_chat_started(self, data: Any) -> None:
        signal = _parse(VideoChatStarted, data)
        if signal is None:
            return
        initiator = signal.sender
        action = decide(SignalKind.VIDEO_STARTED, self._state_of(initiator), from_self=self._is_self(initiator))
        if action is not Action.OFFER:
            return

        try:
            await self.ensure_local_stream()
        except MediaAccessError as exc:
            logger.warning("Not joining call from %s: %s", initiator, exc)
            return

        connection = await self._create(initiator)
        if connection is None:
            return
        try:
            offer = await connection.create_offer()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not create offer for %s: %s", initiator, exc)
            return
        await self._emit("offer", OfferSignal(offer=offer, to=initiator).to_wire())

    async def on_offer(self, data: Any) -> None:
        signal = _parse(OfferSignal, data)
        if signal is None or not signal.sender:
            return
        remote = signal.sender
        action = decide(SignalKind.OFFER, self._state_of(remote), from_self=self._is_self(remote))

        if action is Action.DROP:
            return
        if action is Action.ANSWER:
            connection = self.peers.get(remote)
        else:
            connection = await self._create(remote)
        if connection is None:
            return

        try:
            answer = await connection.accept_offer(signal.offer)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not answer offer from %s: %s", remote, exc)
            return
        await self._emit("answer", AnswerSignal(answer=answer, to=remote).to_wire())

    async def on_answer(self, data: Any) -> None:
        signal = _parse(AnswerSignal, data)
        if signal is None or not signal.sender:
            return
        connection = self._route(SignalKind.ANSWER, signal.sender, Action.APPLY_ANSWER)
        if connection is None:
            return
        try:
            await connection.accept_answer(signal.answer)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not apply answer from %s: %s", signal.sender, exc)

    async def on_ice_candidate(self, data: Any) -> None:
        signal = _parse(CandidateSignal, data)
        if signal is None or not signal.sender:
            return
        connection = self._route(SignalKind.CANDIDATE, signal.sender, Action.ADD_CANDIDATE)
        if connection is None:
            return
        try:
            await connection.add_candidate(signal.candidate)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not add candidate from %s: %s", signal.sender, exc)

    async def on_user_disconnected(self, data: Any) -> None:
        notice = _parse(UserDisconnected, data)
        if notice is None:
            return
        if self._route(SignalKind.PEER_LEFT, notice.participant_id, Action.TEARDOWN) is None:
            return
        await self.peers.close(notice.participant_id)

    async def on_transport_closed(self) -> None:
        logger.info("Relay connection lost; closing %d peer connections", len(self.peers))
        await self.end_call()

    def _state_of(self, counterpart_id: str) -> PeerState | None:
        connection = self.peers.get(counterpart_id)
        return connection.state if connection else None

    def _is_self(self, participant_id: str) -> bool:
        return self.participant_id is not None and participant_id == self.participant_id

    def _route(self, kind: SignalKind, counterpart_id: str, expected: Action) -> PeerConnection | None:
        action = decide(kind, self._state_of(counterpart_id), from_self=self._is_self(counterpart_id))
        if action is not expected:
            logger.debug("Dropping %s from %s (%s)", kind.value, counterpart_id, action.value)
            return None
        return self.peers.get(counterpart_id)

    async def _create(self, counterpart_id: str) -> PeerConnection | None:
        try:
            return await self.peers.create(counterpart_id)
        except RoomCallError as exc:
            logger.warning("Refusing connection to %s: %s", counterpart_id, exc)
            return None
