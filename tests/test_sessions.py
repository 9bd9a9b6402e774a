"""Tests for the MCP session registry and push streams."""

import pytest

from brick_channels.core.errors import UnknownSessionError
from brick_channels.core.sessions import PushStream, SessionRegistry
from brick_channels.models.session import TransportKind


class RecordingResponse:
    """Stands in for an aiohttp StreamResponse."""

    def __init__(self):
        self.chunks = []

    async def write(self, data: bytes) -> None:
        self.chunks.append(data.decode())


def test_create_and_lookup():
    registry = SessionRegistry()

    session = registry.create(TransportKind.SSE)

    assert session.id in registry
    assert registry.get(session.id) is session
    assert registry.require(session.id) is session
    assert session.transport == TransportKind.SSE
    assert len(registry) == 1


def test_session_ids_are_unique():
    registry = SessionRegistry()

    ids = {registry.create().id for _ in range(50)}

    assert len(ids) == 50


def test_require_unknown_session_raises():
    registry = SessionRegistry()

    with pytest.raises(UnknownSessionError):
        registry.require("does-not-exist")
    with pytest.raises(UnknownSessionError):
        registry.require(None)


def test_resolve_reuses_known_and_mints_for_unknown():
    """Unknown or missing ids get a fresh session rather than an error."""
    registry = SessionRegistry()
    known = registry.create()

    assert registry.resolve(known.id) is known

    minted = registry.resolve("stale-id")
    assert minted.id != "stale-id"
    assert minted.id in registry
    assert registry.resolve(None).id not in (known.id, minted.id)


def test_remove_closes_stream():
    registry = SessionRegistry()
    stream = PushStream(RecordingResponse())
    session = registry.create(TransportKind.SSE, stream)

    assert registry.remove(session.id) is True
    assert stream.closed
    assert session.id not in registry
    assert registry.remove(session.id) is False


def test_attach_replaces_and_closes_previous_stream():
    registry = SessionRegistry()
    session = registry.create()
    first = PushStream(RecordingResponse())
    second = PushStream(RecordingResponse())

    registry.attach_stream(session.id, first)
    registry.attach_stream(session.id, second)

    assert first.closed
    assert not second.closed
    assert session.stream is second


def test_detach_only_removes_current_stream():
    """A stale handler detaching its old stream leaves the new one attached."""
    registry = SessionRegistry()
    session = registry.create()
    old = PushStream(RecordingResponse())
    new = PushStream(RecordingResponse())
    registry.attach_stream(session.id, old)
    registry.attach_stream(session.id, new)

    registry.detach_stream(session.id, old)
    assert session.stream is new

    registry.detach_stream(session.id, new)
    assert not session.has_stream


def test_clear_closes_every_stream():
    registry = SessionRegistry()
    streams = [PushStream(RecordingResponse()) for _ in range(3)]
    for stream in streams:
        registry.create(TransportKind.SSE, stream)

    removed = registry.clear()

    assert len(removed) == 3
    assert len(registry) == 0
    assert all(stream.closed for stream in streams)


@pytest.mark.asyncio
async def test_push_stream_writes_sse_frames():
    response = RecordingResponse()
    stream = PushStream(response)

    await stream.send("endpoint", "/message?sessionId=abc")
    await stream.comment("keepalive")

    assert response.chunks == [
        "event: endpoint\ndata: /message?sessionId=abc\n\n",
        ": keepalive\n\n",
    ]


@pytest.mark.asyncio
async def test_closed_push_stream_refuses_writes():
    stream = PushStream(RecordingResponse())
    stream.close()

    with pytest.raises(ConnectionResetError):
        await stream.send("message", "{}")
    assert await stream.wait_closed(0.01) is True


@pytest.mark.asyncio
async def test_wait_closed_times_out_while_open():
    stream = PushStream(RecordingResponse())

    assert await stream.wait_closed(0.01) is False
