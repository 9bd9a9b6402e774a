"""Transport-independent JSON-RPC core of the BRICK MCP server.

Both the streamable HTTP transport and the SSE transport hand parsed
envelopes to ``McpProtocol``; the tool logic lives only here. Envelopes and
results are built and validated with the ``mcp`` SDK types.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from mcp import types
from mcp.shared.exceptions import McpError
from mcp.types import INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND, PARSE_ERROR
from pydantic import BaseModel, ValidationError

from brick_channels.core.channel import EventChannel
from brick_channels.models.progress import ProgressEvent

logger = logging.getLogger(__name__)

__all__ = [
    "INVALID_PARAMS",
    "INVALID_REQUEST",
    "LOG_PROGRESS_TOOL",
    "METHOD_NOT_FOUND",
    "PARSE_ERROR",
    "PROTOCOL_VERSION",
    "SERVER_INFO",
    "McpProtocol",
    "is_notification",
    "rpc_error",
    "rpc_result",
]

PROTOCOL_VERSION = "2024-11-05"
SERVER_INFO = types.Implementation(name="brick", version="1.0.0")

LOG_PROGRESS_TOOL = types.Tool(
    name="log_progress",
    description=(
        "Send a short, clear summary of what you just did or are about to do "
        "in the code. This will be used to generate social/media posts about "
        "your work."
    ),
    inputSchema={
        "type": "object",
        "properties": {
            "summary": {
                "type": "string",
                "description": (
                    "A concise, natural-language summary of the change or "
                    "decision. E.g., 'Converted class components to functional "
                    "components in Onboarding flow' or 'Added error boundaries "
                    "and fallback UI'. Keep under 120 characters."
                ),
            },
        },
        "required": ["summary"],
    },
)

Envelope = Dict[str, Any]


def _dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json", exclude_none=True)


def _request_id(message: Any) -> Optional[Union[str, int]]:
    """The envelope id if it is a valid JSON-RPC id, else None."""
    if not isinstance(message, dict):
        return None
    request_id = message.get("id")
    if isinstance(request_id, bool) or not isinstance(request_id, (str, int)):
        return None
    return request_id


def rpc_result(request_id: Union[str, int], result: BaseModel) -> Envelope:
    return _dump(types.JSONRPCResponse(jsonrpc="2.0", id=request_id, result=_dump(result)))


def rpc_error(request_id: Optional[Union[str, int]], code: int, message: str) -> Envelope:
    """Error envelope; ``request_id`` is None when the request id is unknown."""
    error = types.ErrorData(code=code, message=message)
    if request_id is None:
        # The SDK envelope type requires an id; JSON-RPC answers with null
        return {"jsonrpc": "2.0", "id": None, "error": _dump(error)}
    return _dump(types.JSONRPCError(jsonrpc="2.0", id=request_id, error=error))


def is_notification(message: Any) -> bool:
    """Check if an envelope expects no response."""
    if not isinstance(message, dict):
        return False
    method = message.get("method")
    if isinstance(method, str) and method.startswith("notifications/"):
        return True
    return "id" not in message


def _fail(code: int, message: str) -> McpError:
    return McpError(types.ErrorData(code=code, message=message))


class McpProtocol:
    """Handles MCP JSON-RPC requests and records progress events."""

    def __init__(self, progress: Optional[EventChannel[ProgressEvent]] = None):
        self.progress: EventChannel[ProgressEvent] = progress or EventChannel("mcp")

    def handle(self, message: Any, session_id: str) -> Optional[Envelope]:
        """Handle one JSON-RPC envelope.

        Returns the response envelope, or None for notifications.
        """
        notification = is_notification(message)
        try:
            if notification:
                envelope = types.JSONRPCNotification.model_validate(message)
            else:
                envelope = types.JSONRPCRequest.model_validate(message)
        except ValidationError:
            return rpc_error(_request_id(message), INVALID_REQUEST, "Invalid Request")

        try:
            result = self._dispatch(envelope.method, envelope.params, session_id)
        except McpError as e:
            if notification:
                logger.debug("Dropping error for notification %s: %s", envelope.method, e)
                return None
            return rpc_error(envelope.id, e.error.code, e.error.message)

        if notification:
            return None
        return rpc_result(envelope.id, result)

    def handle_payload(
        self, payload: Any, session_id: str
    ) -> Union[Envelope, List[Envelope], None]:
        """Handle a single envelope or a batch.

        A batch yields a list of responses with notification entries
        skipped, or None when nothing needs a response.
        """
        if isinstance(payload, list):
            if not payload:
                return rpc_error(None, INVALID_REQUEST, "Invalid Request")
            responses = [self.handle(message, session_id) for message in payload]
            responses = [r for r in responses if r is not None]
            return responses or None
        return self.handle(payload, session_id)

    def _dispatch(self, method: str, params: Any, session_id: str) -> BaseModel:
        if method == "initialize":
            return types.InitializeResult(
                protocolVersion=PROTOCOL_VERSION,
                capabilities=types.ServerCapabilities(tools=types.ToolsCapability()),
                serverInfo=SERVER_INFO,
            )
        if method in ("notifications/initialized", "notifications/cancelled", "ping"):
            return types.EmptyResult()
        if method == "tools/list":
            return types.ListToolsResult(tools=[LOG_PROGRESS_TOOL])
        if method == "tools/call":
            return self._call_tool(params, session_id)
        raise _fail(METHOD_NOT_FOUND, f"Method not found: {method}")

    def _call_tool(self, params: Any, session_id: str) -> types.CallToolResult:
        try:
            call = types.CallToolRequestParams.model_validate(params or {})
        except ValidationError as e:
            raise _fail(INVALID_PARAMS, "Invalid tool call parameters") from e

        if call.name != LOG_PROGRESS_TOOL.name:
            raise _fail(INVALID_PARAMS, f"Unknown tool: {call.name}")

        summary = (call.arguments or {}).get("summary")
        if not summary or not isinstance(summary, str):
            raise _fail(INVALID_PARAMS, 'Missing or invalid "summary" argument')

        event = ProgressEvent(summary=summary, session_id=session_id)
        self.progress.emit(event)
        logger.info("Progress logged from session %s: %s", session_id, summary)

        return types.CallToolResult(
            content=[types.TextContent(type="text", text=f'Progress logged: "{summary}"')]
        )
