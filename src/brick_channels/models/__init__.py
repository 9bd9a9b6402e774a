"""Data models for BRICK input channels."""

from .base import WireModel, utc_timestamp
from .change import ChangeType, FileChange, FileChangeEvent
from .commit import CommitEvent, CommitInfo, RepoInfo
from .progress import ProgressEvent
from .results import ActionResult, GitStatus, McpStatus, ServerUrls, WatcherStatus
from .session import Session, TransportKind

__all__ = [
    "ActionResult",
    "ChangeType",
    "CommitEvent",
    "CommitInfo",
    "FileChange",
    "FileChangeEvent",
    "GitStatus",
    "McpStatus",
    "ProgressEvent",
    "RepoInfo",
    "ServerUrls",
    "Session",
    "TransportKind",
    "WatcherStatus",
    "WireModel",
    "utc_timestamp",
]
