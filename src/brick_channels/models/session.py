"""Session model for MCP transport connections."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class TransportKind(str, Enum):
    """Which MCP transport created the session."""

    STREAMABLE = "streamable"
    SSE = "sse"


class Session(BaseModel):
    """Represents one logical MCP client connection."""

    id: str
    transport: TransportKind = TransportKind.STREAMABLE
    created_at: datetime = Field(default_factory=datetime.now)
    stream: Optional[Any] = Field(default=None, exclude=True)

    @property
    def has_stream(self) -> bool:
        """Check if a push stream is currently attached."""
        return self.stream is not None

    model_config = {"arbitrary_types_allowed": True}
