"""Peer connection state machine and early-candidate buffering."""
from __future__ import annotations

import enum
import logging
from collections import deque
from typing import Deque, Sequence

from ..core.errors import InvalidTransitionError
from ..schemas.signaling import IceCandidate, SessionDescription
from .media import MediaTrack, SessionPeer

logger = logging.getLogger(__name__)


class PeerState(str, enum.Enum):
    NEW = "new"
    HAVE_LOCAL_OFFER = "have_local_offer"
    HAVE_REMOTE_OFFER = "have_remote_offer"
    CONNECTED = "connected"
    CLOSED = "closed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (PeerState.CLOSED, PeerState.FAILED)


class PeerEvent(str, enum.Enum):
    LOCAL_OFFER = "local_offer"
    REMOTE_OFFER = "remote_offer"
    LOCAL_ANSWER = "local_answer"
    REMOTE_ANSWER = "remote_answer"
    CLOSE = "close"
    FAIL = "fail"


_TRANSITIONS: dict[tuple[PeerState, PeerEvent], PeerState] = {
    (PeerState.NEW, PeerEvent.LOCAL_OFFER): PeerState.HAVE_LOCAL_OFFER,
    (PeerState.NEW, PeerEvent.REMOTE_OFFER): PeerState.HAVE_REMOTE_OFFER,
    (PeerState.HAVE_LOCAL_OFFER, PeerEvent.REMOTE_ANSWER): PeerState.CONNECTED,
    (PeerState.HAVE_REMOTE_OFFER, PeerEvent.LOCAL_ANSWER): PeerState.CONNECTED,
}


def advance(state: PeerState, event: PeerEvent) -> PeerState:
    """Return the state reached by applying ``event`` in ``state``."""

    if not state.terminal:
        if event is PeerEvent.CLOSE:
            return PeerState.CLOSED
        if event is PeerEvent.FAIL:
            return PeerState.FAILED
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransitionError(state, event) from None


class PeerConnection:
    """One negotiated link to a remote participant.

    Owned by ``PeerConnectionManager``; the negotiation engine only drives it.
    ICE candidates that arrive before the remote description are held and
    applied, once each and in arrival order, as soon as it is set.
    """

    def __init__(
        self,
        counterpart_id: str,
        peer: SessionPeer,
        local_tracks: Sequence[MediaTrack] = (),
    ) -> None:
        self.counterpart_id = counterpart_id
        self.peer = peer
        self.state = PeerState.NEW
        self.local_description: SessionDescription | None = None
        self.remote_description: SessionDescription | None = None
        self._pending: Deque[IceCandidate] = deque()
        self._local_tracks = list(local_tracks)
        self._released = False

    @property
    def pending_candidates(self) -> list[IceCandidate]:
        return list(self._pending)

    async def create_offer(self) -> SessionDescription:
        next_state = advance(self.state, PeerEvent.LOCAL_OFFER)
        try:
            offer = await self.peer.create_offer()
            await self.peer.set_local_description(offer)
        except Exception:
            self.fail()
            raise
        self.local_description = offer
        self.state = next_state
        return offer

    async def accept_offer(self, offer: SessionDescription) -> SessionDescription:
        """Apply a remote offer and return the local answer."""

        next_state = advance(self.state, PeerEvent.REMOTE_OFFER)
        try:
            await self._set_remote(offer)
            self.state = next_state
            next_state = advance(self.state, PeerEvent.LOCAL_ANSWER)
            answer = await self.peer.create_answer()
            await self.peer.set_local_description(answer)
        except Exception:
            self.fail()
            raise
        self.local_description = answer
        self.state = next_state
        return answer

    async def accept_answer(self, answer: SessionDescription) -> None:
        next_state = advance(self.state, PeerEvent.REMOTE_ANSWER)
        try:
            await self._set_remote(answer)
        except Exception:
            self.fail()
            raise
        self.state = next_state

    async def add_candidate(self, candidate: IceCandidate) -> bool:
        """Apply a remote candidate now, or buffer it; returns True when applied."""

        if self.state.terminal:
            return False
        if self.remote_description is None:
            self._pending.append(candidate)
            return False
        await self.peer.add_ice_candidate(candidate)
        return True

    async def close(self) -> None:
        if self._released:
            return
        self._released = True
        if not self.state.terminal:
            self.state = advance(self.state, PeerEvent.CLOSE)
        tracks, self._local_tracks = self._local_tracks, []
        for track in tracks:
            track.stop()
        self._pending.clear()
        await self.peer.close()

    def fail(self) -> None:
        if not self.state.terminal:
            self.state = advance(self.state, PeerEvent.FAIL)
            logger.warning("Peer connection to %s failed", self.counterpart_id)

    async def _set_remote(self, description: SessionDescription) -> None:
        await self.peer.set_remote_description(description)
        self.remote_description = description
        while self._pending:
            await self.peer.add_ice_candidate(self._pending.popleft())
