"""Per-call registry owning every peer connection of one participant."""
from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict

from ..core.errors import MissingLocalStreamError
from ..schemas.signaling import CandidateSignal, IceCandidate
from .media import MediaStream, PeerFactory
from .peer import PeerConnection
from .transport import Emit

logger = logging.getLogger(__name__)

RemoteStreamHandler = Callable[[str, MediaStream], Awaitable[None]]


class PeerConnectionManager:
    """Create, look up and tear down peer connections keyed by counterpart id.

    At most one connection per counterpart is alive; ``create`` replaces an
    existing entry. Every connection carries clones of the local tracks so
    closing one never stops the shared local stream.
    """

    def __init__(
        self,
        peer_factory: PeerFactory,
        emit: Emit,
        on_remote_stream: RemoteStreamHandler | None = None,
    ) -> None:
        self._peer_factory = peer_factory
        self._emit = emit
        self._on_remote_stream = on_remote_stream
        self._connections: Dict[str, PeerConnection] = {}
        self.local_stream: MediaStream | None = None

    def __contains__(self, counterpart_id: object) -> bool:
        return counterpart_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    @property
    def counterparts(self) -> list[str]:
        return list(self._connections)

    def get(self, counterpart_id: str) -> PeerConnection | None:
        return self._connections.get(counterpart_id)

    async def create(self, counterpart_id: str) -> PeerConnection:
        if self.local_stream is None:
            raise MissingLocalStreamError(f"no local stream for connection to {counterpart_id}")

        previous = self._connections.pop(counterpart_id, None)
        if previous is not None:
            logger.info("Replacing peer connection to %s", counterpart_id)
            await previous.close()

        peer = self._peer_factory()
        clones = []
        for track in self.local_stream.get_tracks():
            clone = track.clone()
            peer.add_track(clone, self.local_stream)
            clones.append(clone)

        connection = PeerConnection(counterpart_id, peer, clones)

        async def forward_candidate(candidate: IceCandidate) -> None:
            if connection.state.terminal:
                return
            signal = CandidateSignal(candidate=candidate, to=counterpart_id)
            await self._emit("ice-candidate", signal.to_wire())

        async def surface_remote_stream(stream: MediaStream) -> None:
            if self._on_remote_stream is not None:
                await self._on_remote_stream(counterpart_id, stream)

        peer.on("icecandidate", forward_candidate)
        peer.on("track", surface_remote_stream)

        self._connections[counterpart_id] = connection
        logger.debug("Created peer connection to %s with %d tracks", counterpart_id, len(clones))
        return connection

    async def close(self, counterpart_id: str) -> bool:
        connection = self._connections.pop(counterpart_id, None)
        if connection is None:
            return False
        await connection.close()
        logger.info("Closed peer connection to %s", counterpart_id)
        return True

    async def close_all(self) -> None:
        for counterpart_id in list(self._connections):
            await self.close(counterpart_id)

    def release_local_stream(self) -> None:
        stream, self.local_stream = self.local_stream, None
        if stream is None:
            return
        for track in stream.get_tracks():
            track.stop()
