"""Commit models for the git watcher."""

from typing import Literal, Optional

from pydantic import Field

from .base import WireModel, utc_timestamp


class CommitInfo(WireModel):
    """Metadata of a single commit as reported by ``git log``."""

    hash: str
    author: str
    date: str
    message: str

    @property
    def short_hash(self) -> str:
        return self.hash[:8]


class CommitEvent(WireModel):
    """A newly arrived commit detected by a poll tick."""

    type: Literal["git_commit"] = "git_commit"
    repo_path: str
    branch: str
    commit: CommitInfo
    diff: str
    timestamp: str = Field(default_factory=utc_timestamp)

    model_config = {**WireModel.model_config, "frozen": True}


class RepoInfo(WireModel):
    """Result of validating a directory as a git working tree."""

    repo_root: str
    branch: str
    head: Optional[str] = None
