"""Data contracts for video-call signaling messages."""
from __future__ import annotations

from typing import Literal

from pydantic import Field

from .chat import WireModel


class SessionDescription(WireModel):
    type: Literal["offer", "answer"]
    sdp: str


class IceCandidate(WireModel):
    candidate: str
    sdp_mid: str | None = None
    sdp_m_line_index: int | None = None


class StartVideoRequest(WireModel):
    room_id: str


class VideoChatStarted(WireModel):
    sender: str = Field(..., alias="from")


class _PeerSignal(WireModel):
    """Peer-addressed signal; clients set ``to``, the relay rewrites it to ``from``."""

    to: str | None = None
    sender: str | None = Field(default=None, alias="from")


class OfferSignal(_PeerSignal):
    offer: SessionDescription


class AnswerSignal(_PeerSignal):
    answer: SessionDescription


class CandidateSignal(_PeerSignal):
    candidate: IceCandidate
