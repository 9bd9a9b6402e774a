"""File change models for the folder watcher."""

from enum import Enum
from typing import List, Literal

from pydantic import Field

from .base import WireModel, utc_timestamp


class ChangeType(str, Enum):
    """Kind of filesystem notification, as reported by the OS watcher."""

    CREATED = "created"
    MODIFIED = "modified"
    RENAMED = "renamed"
    DELETED = "deleted"


class FileChange(WireModel):
    """A single file inside a change batch."""

    path: str
    type: ChangeType
    sensitive: bool = False
    extension: str = ""


class FileChangeEvent(WireModel):
    """A debounced batch of changes in one watched folder."""

    type: Literal["file_change"] = "file_change"
    folder_path: str
    files: List[FileChange]
    file_count: int
    timestamp: str = Field(default_factory=utc_timestamp)
    summary: str

    model_config = {**WireModel.model_config, "frozen": True}

    @property
    def sensitive_count(self) -> int:
        return sum(1 for f in self.files if f.sensitive)
