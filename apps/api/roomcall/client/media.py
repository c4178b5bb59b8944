"""Protocols for the media and peer-negotiation primitives supplied by the host.

The client engines never capture media or run ICE themselves. They drive
objects that satisfy these protocols: a browser bridge, an aiortc wrapper,
or the dummies used in tests.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol, Sequence

from ..schemas.signaling import IceCandidate, SessionDescription

PeerEventHandler = Callable[..., Awaitable[None]]


class MediaTrack(Protocol):
    kind: str

    def clone(self) -> "MediaTrack": ...

    def stop(self) -> None: ...


class MediaStream(Protocol):
    def get_tracks(self) -> Sequence[MediaTrack]: ...


class MediaDevices(Protocol):
    async def acquire(self, video: bool, audio: bool) -> MediaStream:
        """Open local capture; raise ``MediaAccessError`` when denied or absent."""
        ...


class SessionPeer(Protocol):
    """ICE-capable negotiation primitive for one remote participant.

    ``on("icecandidate", handler)`` handlers receive an ``IceCandidate`` and
    ``on("track", handler)`` handlers receive the remote ``MediaStream``; the
    primitive awaits each handler.
    """

    async def create_offer(self) -> SessionDescription: ...

    async def create_answer(self) -> SessionDescription: ...

    async def set_local_description(self, description: SessionDescription) -> None: ...

    async def set_remote_description(self, description: SessionDescription) -> None: ...

    async def add_ice_candidate(self, candidate: IceCandidate) -> None: ...

    def add_track(self, track: MediaTrack, stream: MediaStream) -> Any: ...

    def on(self, event: str, handler: PeerEventHandler) -> None: ...

    async def close(self) -> None: ...


PeerFactory = Callable[[], SessionPeer]
