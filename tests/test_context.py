"""Tests for building draft context from channel events."""

import pytest

from brick_channels.core.context import MAX_LISTED_FILES, TriggerSource, build_context
from brick_channels.models import (
    ChangeType,
    CommitEvent,
    CommitInfo,
    FileChange,
    FileChangeEvent,
    ProgressEvent,
)


def file_event(files):
    return FileChangeEvent(
        folder_path="/work/project",
        files=files,
        file_count=len(files),
        summary=f"{len(files)} file(s) changed",
    )


def test_progress_event_context():
    event = ProgressEvent(summary="Migrated to Postgres 16", session_id="s1")

    source, context = build_context(event)

    assert source is TriggerSource.AGENT_LOG
    assert context == "Migrated to Postgres 16"


def test_commit_event_context():
    event = CommitEvent(
        repo_path="/work/project",
        branch="main",
        commit=CommitInfo(
            hash="0123456789abcdef", author="Ada", date="2024-05-01", message="Add caching"
        ),
        diff="cache.py | 10 ++++",
    )

    source, context = build_context(event)

    assert source is TriggerSource.GIT_COMMIT
    assert context.splitlines()[:2] == ["Commit 01234567 on main: Add caching", "Author: Ada"]
    assert context.endswith("cache.py | 10 ++++")


def test_file_event_withholds_sensitive_paths():
    files = [
        FileChange(path="src/app.py", type=ChangeType.MODIFIED, extension=".py"),
        FileChange(path="config/secrets.yaml", type=ChangeType.MODIFIED, sensitive=True),
    ]

    source, context = build_context(file_event(files))

    assert source is TriggerSource.FILE_PULSE
    assert "- modified: src/app.py" in context
    assert "secrets" not in context
    assert "(1 private file(s) changed, details withheld)" in context


def test_file_event_listing_is_capped():
    files = [
        FileChange(path=f"f{i}.py", type=ChangeType.CREATED, extension=".py")
        for i in range(MAX_LISTED_FILES + 5)
    ]

    _, context = build_context(file_event(files))

    assert context.count("- created:") == MAX_LISTED_FILES
    assert "- ... and 5 more" in context


def test_unsupported_event():
    with pytest.raises(TypeError):
        build_context({"type": "unknown"})
