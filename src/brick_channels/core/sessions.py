"""Session registry shared by both MCP transports."""

import asyncio
import logging
import uuid
from typing import Dict, Iterator, List, Optional

from aiohttp import web

from brick_channels.core.errors import UnknownSessionError
from brick_channels.models.session import Session, TransportKind

logger = logging.getLogger(__name__)


class PushStream:
    """Server-sent-events stream attached to a session."""

    def __init__(self, response: web.StreamResponse):
        self.response = response
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def send(self, event: str, data: str) -> None:
        """Write one named SSE event."""
        if self.closed:
            raise ConnectionResetError("Push stream is closed")
        await self.response.write(f"event: {event}\ndata: {data}\n\n".encode())

    async def comment(self, text: str) -> None:
        """Write an SSE comment line, used for keep-alives."""
        if self.closed:
            raise ConnectionResetError("Push stream is closed")
        await self.response.write(f": {text}\n\n".encode())

    def close(self) -> None:
        """Ask the owning request handler to finish the stream."""
        self._closed.set()

    async def wait_closed(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds; return True if the stream closed."""
        try:
            await asyncio.wait_for(self._closed.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True


class SessionRegistry:
    """Maps session ids to transport state.

    An id is valid only while present here. Lookups of unknown ids raise
    ``UnknownSessionError`` through ``require``.
    """

    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    def create(
        self,
        transport: TransportKind = TransportKind.STREAMABLE,
        stream: Optional[PushStream] = None,
    ) -> Session:
        """Create and register a session with a fresh id."""
        session = Session(id=str(uuid.uuid4()), transport=transport, stream=stream)
        self._sessions[session.id] = session
        logger.debug("Session %s created (%s)", session.id, transport.value)
        return session

    def get(self, session_id: Optional[str]) -> Optional[Session]:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    def require(self, session_id: Optional[str]) -> Session:
        """Get a session or raise if the id is missing or unknown."""
        session = self.get(session_id)
        if session is None:
            raise UnknownSessionError(session_id)
        return session

    def resolve(self, session_id: Optional[str]) -> Session:
        """Return the known session for ``session_id`` or mint a new one."""
        session = self.get(session_id)
        if session is not None:
            return session
        return self.create(TransportKind.STREAMABLE)

    def attach_stream(self, session_id: str, stream: PushStream) -> None:
        session = self.require(session_id)
        if session.stream is not None and session.stream is not stream:
            session.stream.close()
        session.stream = stream

    def detach_stream(self, session_id: str, stream: PushStream) -> None:
        """Detach ``stream`` if it is still the one attached to the session."""
        session = self.get(session_id)
        if session is not None and session.stream is stream:
            session.stream = None

    def remove(self, session_id: Optional[str]) -> bool:
        """Remove a session, closing its stream. Returns False if unknown."""
        session = self._sessions.pop(session_id, None) if session_id else None
        if session is None:
            return False
        if session.stream is not None:
            session.stream.close()
            session.stream = None
        logger.debug("Session %s removed", session_id)
        return True

    def clear(self) -> List[Session]:
        """Remove every session, closing all push streams."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            if session.stream is not None:
                session.stream.close()
                session.stream = None
        return sessions

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))

    def __len__(self) -> int:
        return len(self._sessions)
