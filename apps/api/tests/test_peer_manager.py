"""Tests for peer connection creation, replacement and teardown."""
from __future__ import annotations

import pytest

from roomcall.client.peer import PeerState
from roomcall.client.peers import PeerConnectionManager
from roomcall.core.errors import MissingLocalStreamError


@pytest.mark.asyncio
async def test_create_without_local_stream_fails_fast(make_peer_factory, emitter):
    factory = make_peer_factory()
    manager = PeerConnectionManager(factory, emitter)

    with pytest.raises(MissingLocalStreamError):
        await manager.create("p2")

    assert factory.created == []
    assert "p2" not in manager


@pytest.mark.asyncio
async def test_create_attaches_clone_of_every_local_track(make_peer_factory, emitter, stream):
    factory = make_peer_factory()
    manager = PeerConnectionManager(factory, emitter)
    manager.local_stream = stream

    connection = await manager.create("p2")

    peer = factory.created[0]
    assert connection.peer is peer
    assert [track.kind for track in peer.tracks] == ["audio", "video"]
    assert [track.source for track in peer.tracks] == stream.get_tracks()
    assert manager.get("p2") is connection


@pytest.mark.asyncio
async def test_second_create_replaces_existing_connection(make_peer_factory, emitter, stream):
    factory = make_peer_factory()
    manager = PeerConnectionManager(factory, emitter)
    manager.local_stream = stream

    first = await manager.create("p2")
    second = await manager.create("p2")

    assert len(manager) == 1
    assert manager.get("p2") is second
    assert first.state is PeerState.CLOSED
    assert factory.created[0].closed
    assert all(track.stopped for track in factory.created[0].tracks)


@pytest.mark.asyncio
async def test_discovered_candidates_are_forwarded_one_by_one(make_peer_factory, emitter, stream):
    factory = make_peer_factory()
    manager = PeerConnectionManager(factory, emitter)
    manager.local_stream = stream
    await manager.create("p2")

    peer = factory.created[0]
    await peer.discover("c1")
    await peer.discover("c2")

    assert emitter.named("ice-candidate") == [
        {"candidate": {"candidate": "c1", "sdpMid": "0", "sdpMLineIndex": 0}, "to": "p2"},
        {"candidate": {"candidate": "c2", "sdpMid": "0", "sdpMLineIndex": 0}, "to": "p2"},
    ]


@pytest.mark.asyncio
async def test_candidates_after_close_are_not_forwarded(make_peer_factory, emitter, stream):
    factory = make_peer_factory()
    manager = PeerConnectionManager(factory, emitter)
    manager.local_stream = stream
    await manager.create("p2")

    await manager.close("p2")
    await factory.created[0].discover("late")

    assert emitter.named("ice-candidate") == []


@pytest.mark.asyncio
async def test_remote_stream_is_surfaced_with_counterpart(make_peer_factory, emitter, stream):
    seen: list[tuple[str, object]] = []

    async def on_remote_stream(counterpart_id, remote):
        seen.append((counterpart_id, remote))

    factory = make_peer_factory()
    manager = PeerConnectionManager(factory, emitter, on_remote_stream)
    manager.local_stream = stream
    await manager.create("p2")

    remote = object()
    await factory.created[0].receive_stream(remote)

    assert seen == [("p2", remote)]


@pytest.mark.asyncio
async def test_close_all_and_release_local_stream(make_peer_factory, emitter, stream):
    factory = make_peer_factory()
    manager = PeerConnectionManager(factory, emitter)
    manager.local_stream = stream
    await manager.create("p2")
    await manager.create("p3")

    await manager.close_all()
    manager.release_local_stream()

    assert len(manager) == 0
    assert all(peer.closed for peer in factory.created)
    assert all(track.stopped for track in stream.get_tracks())
    assert manager.local_stream is None
    assert await manager.close("p2") is False
