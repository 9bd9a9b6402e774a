"""BRICK MCP server.

Serves the JSON-RPC core over two transports:

* Streamable HTTP: ``POST /mcp`` request/response, ``GET /mcp`` push stream,
  ``DELETE /mcp`` to close a session. Used by Cursor and newer clients.
* SSE: ``GET /sse`` opens a push stream and announces a
  ``/message?sessionId=...`` endpoint that the client POSTs envelopes to.
"""

import json
import logging
import time
from typing import Callable, List, Optional

from aiohttp import web

from brick_channels.core.errors import ServerAlreadyRunningError, UnknownSessionError
from brick_channels.core.mcp_protocol import (
    INVALID_REQUEST,
    PARSE_ERROR,
    McpProtocol,
    rpc_error,
)
from brick_channels.core.network import get_local_ip
from brick_channels.core.sessions import PushStream, SessionRegistry
from brick_channels.models.progress import ProgressEvent
from brick_channels.models.results import McpStatus, ServerUrls
from brick_channels.models.session import TransportKind

logger = logging.getLogger(__name__)

SERVER_NAME = "brick-mcp-server"
SERVER_VERSION = "1.0.0"
DEFAULT_PORT = 3777
DEFAULT_HOST = "0.0.0.0"
KEEPALIVE_INTERVAL = 30.0

SESSION_HEADER = "Mcp-Session-Id"
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Accept, Mcp-Session-Id",
    "Access-Control-Expose-Headers": "Mcp-Session-Id",
}
SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


class McpServer:
    """Owns the HTTP listener, the session registry and the protocol core."""

    def __init__(
        self,
        protocol: Optional[McpProtocol] = None,
        keepalive_interval: float = KEEPALIVE_INTERVAL,
    ):
        self.protocol = protocol or McpProtocol()
        self.sessions = SessionRegistry()
        self.keepalive_interval = keepalive_interval
        self._runner: Optional[web.AppRunner] = None
        self._port: Optional[int] = None
        self._ip: Optional[str] = None

    # ── Public API ──

    @property
    def running(self) -> bool:
        return self._runner is not None

    @property
    def port(self) -> Optional[int]:
        return self._port

    async def start(self, port: int = DEFAULT_PORT, host: str = DEFAULT_HOST) -> ServerUrls:
        """Bind the server and return the URLs agents should use.

        Raises:
            ServerAlreadyRunningError: if this server is already listening.
            OSError: if the port cannot be bound.
        """
        if self._runner is not None:
            raise ServerAlreadyRunningError()

        # Cancel stream handlers as soon as their client disconnects
        runner = web.AppRunner(self._build_app(), access_log=None, handler_cancellation=True)
        self._runner = runner
        try:
            await runner.setup()
            site = web.TCPSite(runner, host, port)
            await site.start()
        except BaseException:
            self._runner = None
            await runner.cleanup()
            raise

        self._port = self._resolve_port(site, runner) or port
        self._ip = get_local_ip()
        urls = ServerUrls.build(self._ip, self._port)

        logger.info("MCP server listening on %s:%d", host, self._port)
        logger.info("  Streamable HTTP: %s", urls.http_url)
        logger.info("  SSE transport:   %s", urls.sse_url)
        logger.info("  Health check:    %s", urls.health_url)
        return urls

    async def stop(self) -> None:
        """Close every push stream, drop all sessions and release the port.

        Calling this when the server is not running does nothing.
        """
        runner = self._runner
        if runner is None:
            return
        self._runner = None

        closed = self.sessions.clear()
        await runner.cleanup()
        self._port = None
        self._ip = None
        logger.info("MCP server stopped (%d sessions closed)", len(closed))

    def status(self) -> McpStatus:
        if not self.running:
            return McpStatus(running=False, total_events=len(self.protocol.progress))
        return McpStatus(
            running=True,
            port=self._port,
            ip=self._ip or get_local_ip(),
            active_sessions=len(self.sessions),
            total_events=len(self.protocol.progress),
        )

    def progress_log(self) -> List[ProgressEvent]:
        return self.protocol.progress.history()

    def on_progress(self, callback: Callable[[ProgressEvent], None]) -> Callable[[], None]:
        """Register a listener for ``log_progress`` events."""
        return self.protocol.progress.subscribe(callback)

    @staticmethod
    def local_ip() -> str:
        return get_local_ip()

    # ── App setup ──

    def _build_app(self) -> web.Application:
        app = web.Application(middlewares=[self._logging_middleware, self._cors_middleware])
        r = app.router
        r.add_get("/", self._handle_health)
        r.add_post("/mcp", self._handle_mcp_post)
        r.add_get("/mcp", self._handle_mcp_stream)
        r.add_delete("/mcp", self._handle_mcp_delete)
        r.add_get("/sse", self._handle_sse)
        r.add_post("/message", self._handle_message)
        return app

    @staticmethod
    def _resolve_port(site, runner) -> Optional[int]:
        sockets = getattr(getattr(site, "_server", None), "sockets", None) or ()
        if sockets:
            return sockets[0].getsockname()[1]
        addresses = getattr(runner, "addresses", None) or ()
        if addresses:
            first = addresses[0]
            if isinstance(first, tuple) and len(first) >= 2:
                return int(first[1])
        return None

    # ── Middleware ──

    @web.middleware
    async def _logging_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        start = time.monotonic()
        try:
            response = await handler(request)
        except Exception:
            logger.exception("HTTP %s %s failed", request.method, request.path_qs)
            raise
        logger.debug(
            "HTTP %s %s status=%s duration_ms=%.1f",
            request.method,
            request.path_qs,
            response.status,
            (time.monotonic() - start) * 1000,
        )
        return response

    @web.middleware
    async def _cors_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        if request.method == "OPTIONS":
            return web.Response(status=204, headers=CORS_HEADERS)
        try:
            response = await handler(request)
        except web.HTTPNotFound:
            response = web.json_response({"error": "Not found"}, status=404)
        except web.HTTPMethodNotAllowed:
            response = web.json_response({"error": "Method not allowed"}, status=405)
        # Stream handlers send their own CORS headers before preparing
        if not response.prepared:
            response.headers.update(CORS_HEADERS)
        return response

    # ── Handlers ──

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(
            {
                "name": SERVER_NAME,
                "version": SERVER_VERSION,
                "status": "running",
                "activeSessions": len(self.sessions),
                "totalProgressEvents": len(self.protocol.progress),
            }
        )

    async def _handle_mcp_post(self, request: web.Request) -> web.Response:
        # Parse before resolving so a bad body never mints a session
        payload, error = await self._read_payload(request)
        if error is not None:
            known = self.sessions.get(request.headers.get(SESSION_HEADER))
            if known is not None:
                error.headers[SESSION_HEADER] = known.id
            return error

        session = self.sessions.resolve(request.headers.get(SESSION_HEADER))
        headers = {SESSION_HEADER: session.id}

        response = self.protocol.handle_payload(payload, session.id)
        if response is None:
            return web.Response(status=202, headers=headers)
        return web.json_response(response, headers=headers)

    async def _handle_mcp_stream(self, request: web.Request) -> web.StreamResponse:
        if "text/event-stream" not in request.headers.get("Accept", ""):
            return web.json_response(
                {"error": "Accept header must include text/event-stream"}, status=406
            )

        session = self.sessions.resolve(request.headers.get(SESSION_HEADER))
        response = web.StreamResponse(
            status=200,
            headers={**SSE_HEADERS, **CORS_HEADERS, SESSION_HEADER: session.id},
        )
        await response.prepare(request)

        stream = PushStream(response)
        self.sessions.attach_stream(session.id, stream)
        logger.info("Push stream attached to session %s", session.id)
        try:
            await stream.comment("connected")
            await self._pump(request, stream)
        except ConnectionResetError:
            logger.debug("Push stream for session %s disconnected", session.id)
        finally:
            # The session outlives its stream on this transport
            self.sessions.detach_stream(session.id, stream)
        return response

    async def _handle_mcp_delete(self, request: web.Request) -> web.Response:
        session_id = request.headers.get(SESSION_HEADER)
        if not session_id:
            return web.json_response(
                rpc_error(None, INVALID_REQUEST, f"Missing {SESSION_HEADER} header"), status=400
            )
        if not self.sessions.remove(session_id):
            return web.json_response(
                rpc_error(None, INVALID_REQUEST, f"Unknown session: {session_id}"), status=404
            )
        logger.info("Session %s closed by client", session_id)
        return web.Response(status=204)

    async def _handle_sse(self, request: web.Request) -> web.StreamResponse:
        response = web.StreamResponse(status=200, headers={**SSE_HEADERS, **CORS_HEADERS})
        await response.prepare(request)

        stream = PushStream(response)
        session = self.sessions.create(TransportKind.SSE, stream=stream)
        logger.info("SSE client connected, session %s", session.id)
        try:
            await stream.send("endpoint", f"/message?sessionId={session.id}")
            await self._pump(request, stream)
        except ConnectionResetError:
            logger.debug("SSE stream for session %s disconnected", session.id)
        finally:
            self.sessions.remove(session.id)
            logger.info("SSE client disconnected, session %s", session.id)
        return response

    async def _handle_message(self, request: web.Request) -> web.Response:
        try:
            session = self.sessions.require(request.query.get("sessionId"))
        except UnknownSessionError:
            return web.json_response(
                rpc_error(None, INVALID_REQUEST, "Invalid or missing sessionId"), status=400
            )

        payload, error = await self._read_payload(request)
        if error is not None:
            return error

        response = self.protocol.handle_payload(payload, session.id)

        stream = session.stream
        if stream is not None and not stream.closed:
            if response is not None:
                try:
                    await stream.send("message", json.dumps(response))
                except ConnectionResetError:
                    logger.warning(
                        "Push stream for session %s is gone, responding directly", session.id
                    )
                    self.sessions.detach_stream(session.id, stream)
                    return web.json_response(response)
            return web.Response(status=202)

        # No push stream attached: answer on this request instead
        if response is None:
            return web.Response(status=202)
        return web.json_response(response)

    # ── Helpers ──

    @staticmethod
    async def _read_payload(request: web.Request):
        """Parse the JSON body; return ``(payload, None)`` or ``(None, error_response)``."""
        try:
            return await request.json(), None
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None, web.json_response(rpc_error(None, PARSE_ERROR, "Parse error"), status=400)

    async def _pump(self, request: web.Request, stream: PushStream) -> None:
        """Hold a push stream open, sending keep-alives until it or its client goes away."""
        while not await stream.wait_closed(self.keepalive_interval):
            transport = request.transport
            if transport is None or transport.is_closing():
                stream.close()
                return
            await stream.comment("keepalive")
