"""Shared dummies for media, the negotiation primitive and an in-process relay."""
from __future__ import annotations

from collections import deque
from itertools import count

import pytest

from roomcall.core.errors import MediaAccessError
from roomcall.schemas.chat import Envelope
from roomcall.schemas.signaling import IceCandidate, SessionDescription
from roomcall.services.relay import ChatRelay
from roomcall.services.rooms import RoomRegistry
from roomcall.services.signaling import ConnectionHub, ParticipantConnection


class DummyTrack:
    def __init__(self, kind: str, source: "DummyTrack | None" = None) -> None:
        self.kind = kind
        self.source = source
        self.stopped = False

    def clone(self) -> "DummyTrack":
        return DummyTrack(self.kind, source=self)

    def stop(self) -> None:
        self.stopped = True


class DummyStream:
    def __init__(self) -> None:
        self.tracks = [DummyTrack("audio"), DummyTrack("video")]

    def get_tracks(self) -> list[DummyTrack]:
        return list(self.tracks)


class DummyMediaDevices:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.requests: list[tuple[bool, bool]] = []

    async def acquire(self, video: bool, audio: bool) -> DummyStream:
        self.requests.append((video, audio))
        if self.fail:
            raise MediaAccessError("permission denied")
        return DummyStream()


class DummyPeer:
    """Records every call; refuses candidates before a remote description."""

    _ids = count(1)

    def __init__(self) -> None:
        self.id = next(self._ids)
        self.calls: list[tuple[str, object]] = []
        self.handlers: dict[str, list] = {}
        self.tracks: list[DummyTrack] = []
        self.local: SessionDescription | None = None
        self.remote: SessionDescription | None = None
        self.applied: list[str] = []
        self.closed = False
        self.fail_on: str | None = None

    def _check(self, name: str) -> None:
        if self.fail_on == name:
            raise RuntimeError(f"{name} failed")

    async def create_offer(self) -> SessionDescription:
        self._check("create_offer")
        return SessionDescription(type="offer", sdp=f"offer-{self.id}")

    async def create_answer(self) -> SessionDescription:
        self._check("create_answer")
        return SessionDescription(type="answer", sdp=f"answer-{self.id}")

    async def set_local_description(self, description: SessionDescription) -> None:
        self.calls.append(("set_local", description.type))
        self.local = description

    async def set_remote_description(self, description: SessionDescription) -> None:
        self._check("set_remote_description")
        self.calls.append(("set_remote", description.type))
        self.remote = description

    async def add_ice_candidate(self, candidate: IceCandidate) -> None:
        if self.remote is None:
            raise AssertionError("candidate applied before remote description")
        self.calls.append(("candidate", candidate.candidate))
        self.applied.append(candidate.candidate)

    def add_track(self, track: DummyTrack, stream: DummyStream) -> None:
        self.tracks.append(track)

    def on(self, event: str, handler) -> None:
        self.handlers.setdefault(event, []).append(handler)

    async def discover(self, candidate: str) -> None:
        for handler in self.handlers.get("icecandidate", []):
            await handler(IceCandidate(candidate=candidate, sdp_mid="0", sdp_m_line_index=0))

    async def receive_stream(self, stream: object) -> None:
        for handler in self.handlers.get("track", []):
            await handler(stream)

    async def close(self) -> None:
        self.closed = True


class DummyPeerFactory:
    def __init__(self) -> None:
        self.created: list[DummyPeer] = []

    def __call__(self) -> DummyPeer:
        peer = DummyPeer()
        self.created.append(peer)
        return peer


class RecordingEmitter:
    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []

    async def __call__(self, event: str, data: object) -> None:
        self.events.append((event, data))

    def named(self, event: str) -> list[object]:
        return [data for name, data in self.events if name == event]


class LoopbackChannel:
    """Client side of an in-process relay connection with a queued inbox."""

    def __init__(self, relay: ChatRelay, participant_id: str) -> None:
        self._relay = relay
        self.participant_id = participant_id
        self.inbox: deque[dict] = deque()
        self.received: list[dict] = []
        self._handlers: dict[str, list] = {}
        self._close_handlers: list = []

    async def emit(self, event: str, data: object) -> None:
        await self._relay.handle(self.participant_id, Envelope(event=event, data=data))

    def on(self, event: str, handler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def on_close(self, handler) -> None:
        self._close_handlers.append(handler)

    async def deliver(self, envelope: dict) -> None:
        self.inbox.append(envelope)

    async def step(self) -> bool:
        if not self.inbox:
            return False
        envelope = self.inbox.popleft()
        self.received.append(envelope)
        for handler in self._handlers.get(envelope["event"], []):
            await handler(envelope["data"])
        return True

    async def close(self) -> None:
        for handler in self._close_handlers:
            await handler()


class LoopbackNetwork:
    """A real ``ChatRelay`` with every client inbox drained one event at a time."""

    def __init__(self) -> None:
        self.relay = ChatRelay(RoomRegistry(), ConnectionHub())
        self.channels: dict[str, LoopbackChannel] = {}

    async def connect(self, participant_id: str) -> LoopbackChannel:
        channel = LoopbackChannel(self.relay, participant_id)
        self.channels[participant_id] = channel
        await self.relay.hub.connect(ParticipantConnection(participant_id=participant_id, send=channel.deliver))
        await channel.deliver({"event": "connected", "data": {"participantId": participant_id}})
        return channel

    async def disconnect(self, participant_id: str) -> None:
        channel = self.channels.pop(participant_id)
        await self.relay.disconnect(participant_id)
        await channel.close()

    async def settle(self, max_steps: int = 1000) -> None:
        for _ in range(max_steps):
            progressed = False
            for channel in list(self.channels.values()):
                progressed = await channel.step() or progressed
            if not progressed:
                return
        raise AssertionError("relay traffic did not settle")


@pytest.fixture
def make_media():
    return DummyMediaDevices


@pytest.fixture
def make_peer_factory():
    return DummyPeerFactory


@pytest.fixture
def emitter() -> RecordingEmitter:
    return RecordingEmitter()


@pytest.fixture
def network() -> LoopbackNetwork:
    return LoopbackNetwork()


@pytest.fixture
def stream() -> DummyStream:
    return DummyStream()
