"""Recursive folder watcher with per-folder debounce.

watchdog observers run on their own threads; every notification is handed
back to the asyncio loop with ``call_soon_threadsafe`` so that all watcher
state is only touched from the loop.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from brick_channels.core.channel import EventChannel
from brick_channels.core.errors import FolderValidationError
from brick_channels.core.filters import (
    ChangeFilter,
    build_change_summary,
    extension_of,
    is_privacy_sensitive,
)
from brick_channels.models.change import ChangeType, FileChange, FileChangeEvent
from brick_channels.models.results import WatcherStatus

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 1.0
OBSERVER_JOIN_TIMEOUT = 5.0

EVENT_TYPES = {
    EVENT_TYPE_CREATED: ChangeType.CREATED,
    EVENT_TYPE_MODIFIED: ChangeType.MODIFIED,
    EVENT_TYPE_MOVED: ChangeType.RENAMED,
    EVENT_TYPE_DELETED: ChangeType.DELETED,
}


@dataclass(eq=False)
class WatcherEntry:
    """Watch state for one folder."""

    folder_path: str
    observer: Optional[Observer] = None
    debounce_handle: Optional[asyncio.TimerHandle] = None
    pending_changes: Dict[str, ChangeType] = field(default_factory=dict)


class _FolderEventHandler(FileSystemEventHandler):
    """Forwards watchdog events for one folder onto the event loop."""

    def __init__(self, watcher: "FileWatcher", entry: WatcherEntry, loop: asyncio.AbstractEventLoop):
        super().__init__()
        self._watcher = watcher
        self._entry = entry
        self._loop = loop

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        change_type = EVENT_TYPES.get(event.event_type)
        if change_type is None:
            return

        raw_path = event.dest_path if event.event_type == EVENT_TYPE_MOVED else event.src_path
        rel_path = os.path.relpath(os.fsdecode(raw_path), self._entry.folder_path)
        if rel_path == os.pardir or rel_path.startswith(os.pardir + os.sep):
            return

        try:
            self._loop.call_soon_threadsafe(
                self._watcher._ingest, self._entry, rel_path, change_type
            )
        except RuntimeError:
            logger.debug("Event loop closed, dropping change to %s", rel_path)


class FileWatcher:
    """Watches any number of folders and emits debounced change batches."""

    def __init__(
        self,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        ignore_patterns: Iterable[str] = (),
    ):
        self.debounce_seconds = debounce_seconds
        self.filter = ChangeFilter(ignore_patterns)
        self.changes: EventChannel[FileChangeEvent] = EventChannel("watcher")
        self._entries: Dict[str, WatcherEntry] = {}

    @staticmethod
    def folder_key(folder: Union[str, Path]) -> str:
        """Canonical identity of a watched folder."""
        return str(Path(folder).expanduser().resolve())

    # ── Lifecycle ──

    def watch(self, folder: Union[str, Path]) -> bool:
        """Start watching ``folder`` recursively.

        Must be called from inside the running event loop.

        Returns:
            True if the folder is newly watched, False if it already was.

        Raises:
            FolderValidationError: the folder is missing or not a directory.
        """
        path = Path(folder).expanduser()
        if not path.exists():
            raise FolderValidationError("Folder does not exist")
        if not path.is_dir():
            raise FolderValidationError("Path is not a directory")

        key = self.folder_key(path)
        if key in self._entries:
            return False

        loop = asyncio.get_running_loop()
        entry = WatcherEntry(folder_path=key)
        observer = Observer()
        observer.schedule(_FolderEventHandler(self, entry, loop), key, recursive=True)
        observer.start()
        entry.observer = observer
        self._entries[key] = entry

        logger.info("Watching: %s", key)
        return True

    def unwatch(self, folder: Union[str, Path]) -> bool:
        """Stop watching ``folder``; pending unflushed changes are dropped.

        Returns False if the folder was not being watched.
        """
        entry = self._entries.pop(self.folder_key(folder), None)
        if entry is None:
            return False
        self._close(entry)
        return True

    def unwatch_all(self) -> None:
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            self._close(entry)

    def _close(self, entry: WatcherEntry) -> None:
        if entry.debounce_handle is not None:
            entry.debounce_handle.cancel()
            entry.debounce_handle = None
        entry.pending_changes.clear()
        if entry.observer is not None:
            entry.observer.stop()
            entry.observer.join(timeout=OBSERVER_JOIN_TIMEOUT)
            entry.observer = None
        logger.info("Stopped watching: %s", entry.folder_path)

    # ── Ingestion ──

    def notify(
        self,
        folder: Union[str, Path],
        rel_path: str,
        change_type: Union[ChangeType, str] = ChangeType.MODIFIED,
    ) -> bool:
        """Feed one raw notification for a watched folder.

        Returns True if the change passed the filters and was queued.
        """
        entry = self._entries.get(self.folder_key(folder))
        if entry is None:
            return False
        return self._ingest(entry, rel_path, ChangeType(change_type))

    def _ingest(self, entry: WatcherEntry, rel_path: str, change_type: ChangeType) -> bool:
        if self._entries.get(entry.folder_path) is not entry:
            # Late event from an observer that has since been unwatched
            return False

        rel_path = rel_path.replace(os.sep, "/")
        if not self.filter.is_relevant(rel_path):
            return False

        previous = entry.pending_changes.get(rel_path)
        if previous is ChangeType.CREATED and change_type is ChangeType.MODIFIED:
            change_type = ChangeType.CREATED
        entry.pending_changes[rel_path] = change_type

        if entry.debounce_handle is not None:
            entry.debounce_handle.cancel()
        loop = asyncio.get_running_loop()
        entry.debounce_handle = loop.call_later(self.debounce_seconds, self._flush, entry)
        return True

    def _flush(self, entry: WatcherEntry) -> None:
        entry.debounce_handle = None
        if self._entries.get(entry.folder_path) is not entry:
            return
        # Copy then clear before anything else can observe the map
        changes = dict(entry.pending_changes)
        entry.pending_changes.clear()
        if changes:
            self._emit(entry.folder_path, changes)

    def _emit(self, folder_path: str, changes: Dict[str, ChangeType]) -> None:
        files = [
            FileChange(
                path=rel_path,
                type=change_type,
                sensitive=is_privacy_sensitive(rel_path),
                extension=extension_of(rel_path),
            )
            for rel_path, change_type in changes.items()
        ]
        event = FileChangeEvent(
            folder_path=folder_path,
            files=files,
            file_count=len(files),
            summary=build_change_summary(files),
        )
        logger.info("%s in %s", event.summary, folder_path)
        self.changes.emit(event)

    # ── Queries ──

    def watched_folders(self) -> List[str]:
        return list(self._entries)

    def is_watching(self, folder: Union[str, Path]) -> bool:
        return self.folder_key(folder) in self._entries

    def status(self) -> WatcherStatus:
        return WatcherStatus(
            watching=bool(self._entries),
            folders=self.watched_folders(),
            total_events=len(self.changes),
        )

    def change_log(self) -> List[FileChangeEvent]:
        return self.changes.history()

    def set_ignore_patterns(self, patterns: Iterable[str]) -> None:
        """Install custom ignore patterns for all subsequent filtering."""
        self.filter.set_custom_patterns(patterns)
        logger.info("Custom ignore patterns: %s", self.filter.custom_patterns)

    def on_change(self, callback: Callable[[FileChangeEvent], None]) -> Callable[[], None]:
        """Register a listener for file change batches."""
        return self.changes.subscribe(callback)
