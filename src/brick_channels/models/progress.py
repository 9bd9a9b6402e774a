"""Progress event reported by a coding agent through the MCP server."""

from pydantic import Field

from .base import WireModel, utc_timestamp


class ProgressEvent(WireModel):
    """One successful ``log_progress`` tool call."""

    summary: str
    timestamp: str = Field(default_factory=utc_timestamp)
    session_id: str

    model_config = {**WireModel.model_config, "frozen": True}
