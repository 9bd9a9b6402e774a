"""Tests for the debounced folder watcher."""

import asyncio

import pytest
import pytest_asyncio

from brick_channels.core.errors import FolderValidationError
from brick_channels.core.file_watcher import FileWatcher
from brick_channels.models.change import ChangeType

DEBOUNCE = 0.1


@pytest_asyncio.fixture
async def watcher():
    watcher = FileWatcher(debounce_seconds=DEBOUNCE)
    yield watcher
    watcher.unwatch_all()


async def settle(seconds=DEBOUNCE * 3):
    await asyncio.sleep(seconds)


@pytest.mark.asyncio
async def test_burst_becomes_one_event(watcher, temp_dir):
    events = []
    watcher.on_change(events.append)
    assert watcher.watch(temp_dir)

    for name in ("a.py", "b.py", "c.md"):
        assert watcher.notify(temp_dir, name)
    await settle()

    assert len(events) == 1
    event = events[0]
    assert event.folder_path == str(temp_dir)
    assert event.file_count == 3
    assert sorted(f.path for f in event.files) == ["a.py", "b.py", "c.md"]
    assert event.summary == "3 file(s) changed: 2 .py, 1 .md"


@pytest.mark.asyncio
async def test_each_notification_restarts_the_window(watcher, temp_dir):
    events = []
    watcher.on_change(events.append)
    watcher.watch(temp_dir)

    for i in range(4):
        watcher.notify(temp_dir, f"f{i}.py")
        await asyncio.sleep(DEBOUNCE / 2)
    assert events == []

    await settle()
    assert len(events) == 1
    assert events[0].file_count == 4


@pytest.mark.asyncio
async def test_spaced_changes_give_separate_events(watcher, temp_dir):
    events = []
    watcher.on_change(events.append)
    watcher.watch(temp_dir)

    watcher.notify(temp_dir, "first.py")
    await settle()
    watcher.notify(temp_dir, "second.py")
    await settle()

    assert [[f.path for f in e.files] for e in events] == [["first.py"], ["second.py"]]
    assert len(watcher.change_log()) == 2


@pytest.mark.asyncio
async def test_same_path_reported_once(watcher, temp_dir):
    events = []
    watcher.on_change(events.append)
    watcher.watch(temp_dir)

    watcher.notify(temp_dir, "new.py", ChangeType.CREATED)
    watcher.notify(temp_dir, "new.py", ChangeType.MODIFIED)
    watcher.notify(temp_dir, "old.py", ChangeType.MODIFIED)
    watcher.notify(temp_dir, "old.py", ChangeType.DELETED)
    await settle()

    types = {f.path: f.type for f in events[0].files}
    assert types == {"new.py": ChangeType.CREATED, "old.py": ChangeType.DELETED}


@pytest.mark.asyncio
async def test_ignored_and_unwatched_files_are_dropped(watcher, temp_dir):
    events = []
    watcher.on_change(events.append)
    watcher.watch(temp_dir)

    assert not watcher.notify(temp_dir, "node_modules/lib/index.js")
    assert not watcher.notify(temp_dir, "photo.png")
    await settle()

    assert events == []


@pytest.mark.asyncio
async def test_custom_ignore_patterns_apply(watcher, temp_dir):
    watcher.watch(temp_dir)
    watcher.set_ignore_patterns(["generated"])

    assert not watcher.notify(temp_dir, "generated/client.ts")
    assert watcher.notify(temp_dir, "src/client.ts")


@pytest.mark.asyncio
async def test_sensitive_files_are_flagged(watcher, temp_dir):
    events = []
    watcher.on_change(events.append)
    watcher.watch(temp_dir)

    watcher.notify(temp_dir, "config/secrets.yaml")
    watcher.notify(temp_dir, "src/app.py")
    await settle()

    flags = {f.path: f.sensitive for f in events[0].files}
    assert flags == {"config/secrets.yaml": True, "src/app.py": False}
    assert events[0].sensitive_count == 1


@pytest.mark.asyncio
async def test_watch_twice_is_a_no_op(watcher, temp_dir):
    assert watcher.watch(temp_dir) is True
    assert watcher.watch(temp_dir / ".") is False
    assert watcher.watched_folders() == [str(temp_dir)]


@pytest.mark.asyncio
async def test_invalid_folders_are_rejected(watcher, temp_dir):
    file_path = temp_dir / "file.txt"
    file_path.write_text("hello")

    with pytest.raises(FolderValidationError, match="Folder does not exist"):
        watcher.watch(temp_dir / "missing")
    with pytest.raises(FolderValidationError, match="Path is not a directory"):
        watcher.watch(file_path)
    assert watcher.watched_folders() == []


@pytest.mark.asyncio
async def test_unwatch_drops_pending_changes(watcher, temp_dir):
    events = []
    watcher.on_change(events.append)
    watcher.watch(temp_dir)

    watcher.notify(temp_dir, "pending.py")
    assert watcher.unwatch(temp_dir) is True
    await settle()

    assert events == []
    assert watcher.unwatch(temp_dir) is False
    assert not watcher.notify(temp_dir, "late.py")


@pytest.mark.asyncio
async def test_folders_debounce_independently(watcher, temp_dir):
    first = temp_dir / "one"
    second = temp_dir / "two"
    first.mkdir()
    second.mkdir()
    events = []
    watcher.on_change(events.append)
    watcher.watch(first)
    watcher.watch(second)

    watcher.notify(first, "a.py")
    watcher.notify(second, "b.py")
    await settle()

    assert sorted(e.folder_path for e in events) == [str(first), str(second)]
    status = watcher.status()
    assert status.watching
    assert status.total_events == 2


@pytest.mark.asyncio
async def test_real_filesystem_changes_are_detected(temp_dir):
    """Writing files on disk produces a batch through watchdog."""
    watcher = FileWatcher(debounce_seconds=0.3)
    arrived = asyncio.Event()
    batches = []

    def on_change(event):
        batches.append(event)
        arrived.set()

    watcher.on_change(on_change)
    watcher.watch(temp_dir)
    try:
        await asyncio.sleep(0.2)
        (temp_dir / "src").mkdir()
        (temp_dir / "src" / "main.py").write_text("print('hello')\n")
        (temp_dir / "notes.md").write_text("# Notes\n")
        (temp_dir / "image.png").write_bytes(b"\x89PNG")

        await asyncio.wait_for(arrived.wait(), timeout=10)
        await asyncio.sleep(0.5)
    finally:
        watcher.unwatch_all()

    paths = {f.path for batch in batches for f in batch.files}
    assert "src/main.py" in paths
    assert "notes.md" in paths
    assert "image.png" not in paths
