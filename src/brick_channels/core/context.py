"""Turn channel events into the context text handed to draft generation.

Sensitive files are only ever described by count; their paths and content
never appear in a context blob.
"""

from enum import Enum
from typing import Tuple, Union

from brick_channels.models.change import FileChangeEvent
from brick_channels.models.commit import CommitEvent
from brick_channels.models.progress import ProgressEvent

ChannelEvent = Union[ProgressEvent, CommitEvent, FileChangeEvent]

MAX_LISTED_FILES = 20


class TriggerSource(str, Enum):
    """Which channel produced the context for a draft."""

    GIT_COMMIT = "GIT_COMMIT"
    AGENT_LOG = "AGENT_LOG"
    FILE_PULSE = "FILE_PULSE"


def build_context(event: ChannelEvent) -> Tuple[TriggerSource, str]:
    """Build ``(source, context)`` for one channel event."""
    if isinstance(event, ProgressEvent):
        return TriggerSource.AGENT_LOG, event.summary
    if isinstance(event, CommitEvent):
        return TriggerSource.GIT_COMMIT, _commit_context(event)
    if isinstance(event, FileChangeEvent):
        return TriggerSource.FILE_PULSE, _file_context(event)
    raise TypeError(f"Unsupported event type: {type(event).__name__}")


def _commit_context(event: CommitEvent) -> str:
    commit = event.commit
    lines = [
        f"Commit {commit.short_hash} on {event.branch}: {commit.message}",
        f"Author: {commit.author}",
    ]
    if event.diff:
        lines += ["", event.diff]
    return "\n".join(lines)


def _file_context(event: FileChangeEvent) -> str:
    lines = [event.summary]
    shareable = [f for f in event.files if not f.sensitive]
    for change in shareable[:MAX_LISTED_FILES]:
        lines.append(f"- {change.type.value}: {change.path}")
    if len(shareable) > MAX_LISTED_FILES:
        lines.append(f"- ... and {len(shareable) - MAX_LISTED_FILES} more")
    if event.sensitive_count:
        lines.append(f"({event.sensitive_count} private file(s) changed, details withheld)")
    return "\n".join(lines)
