"""Boundary result and status models."""

from typing import List, Optional

from pydantic.alias_generators import to_camel

from .base import WireModel


class ActionResult(WireModel):
    """``{success, error?}`` shaped result of a boundary operation.

    Operation-specific fields (``repoPath``, ``branch``, ``folderPath`` ...)
    are carried as extra keys.
    """

    success: bool
    error: Optional[str] = None

    model_config = {**WireModel.model_config, "extra": "allow"}

    @classmethod
    def ok(cls, **fields) -> "ActionResult":
        return cls(success=True, **fields)

    @classmethod
    def fail(cls, error: str, **fields) -> "ActionResult":
        return cls(success=False, error=error, **fields)

    def to_wire(self):
        data = {to_camel(key): value for key, value in super().to_wire().items()}
        if data.get("error") is None:
            data.pop("error", None)
        return data


class ServerUrls(WireModel):
    """Addresses an agent can use to reach the MCP server."""

    port: int
    ip: str
    http_url: str
    sse_url: str
    health_url: str

    @classmethod
    def build(cls, ip: str, port: int) -> "ServerUrls":
        base = f"http://{ip}:{port}"
        return cls(
            port=port,
            ip=ip,
            http_url=f"{base}/mcp",
            sse_url=f"{base}/sse",
            health_url=f"{base}/",
        )


class McpStatus(WireModel):
    running: bool
    port: Optional[int] = None
    ip: Optional[str] = None
    active_sessions: int = 0
    total_events: int = 0


class GitStatus(WireModel):
    watching: bool
    repo_path: Optional[str] = None
    branch: Optional[str] = None
    total_commits: int = 0


class WatcherStatus(WireModel):
    watching: bool
    folders: List[str] = []
    total_events: int = 0
