"""Boundary between the channel components and whatever presents them.

``ChannelHost`` wires the MCP server, git watcher and file watcher together
and exposes them through a flat set of async operations. None of them raise:
failures come back as ``ActionResult(success=False, error=...)`` so a UI
layer can show them directly. ``UnavailableHost`` offers the same surface
for runtimes that cannot host the channels at all.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from brick_channels.core.errors import BrickError
from brick_channels.core.file_watcher import FileWatcher
from brick_channels.core.git_watcher import GitWatcher
from brick_channels.core.mcp_server import McpServer
from brick_channels.core.network import LOOPBACK, get_local_ip
from brick_channels.models import (
    ActionResult,
    CommitEvent,
    CommitInfo,
    FileChangeEvent,
    GitStatus,
    McpStatus,
    ProgressEvent,
    WatcherStatus,
)
from brick_channels.settings import BrickSettings

logger = logging.getLogger(__name__)

MCP_PROGRESS = "mcp:progress"
GIT_COMMIT = "git:commit"
WATCHER_CHANGE = "watcher:change"

UNAVAILABLE = "Not available in this runtime"
PICKER_UNAVAILABLE = "No directory picker is available in this runtime"
CANCELLED = "cancelled"

# async (title, message) -> chosen directory, or None when cancelled
DirectoryPicker = Callable[[str, str], Awaitable[Optional[str]]]
EventSink = Callable[[str, Dict[str, Any]], None]


def _failure(action: str, error: Exception) -> ActionResult:
    if isinstance(error, (BrickError, OSError)):
        logger.warning("%s failed: %s", action, error)
    else:
        logger.exception("Unexpected error during %s", action)
    return ActionResult.fail(str(error) or error.__class__.__name__)


class ChannelHost:
    """Composition root for the three input channels."""

    available = True

    def __init__(
        self,
        settings: Optional[BrickSettings] = None,
        picker: Optional[DirectoryPicker] = None,
    ):
        self.settings = settings or BrickSettings()
        self.picker = picker
        self.mcp = McpServer(keepalive_interval=self.settings.keepalive_interval)
        self.git = GitWatcher(
            poll_interval=self.settings.git_poll_interval,
            max_diff_length=self.settings.max_diff_length,
        )
        self.files = FileWatcher(
            debounce_seconds=self.settings.debounce_seconds,
            ignore_patterns=self.settings.ignore_patterns,
        )

    # ── MCP ──

    async def mcp_start(self, port: Optional[int] = None) -> ActionResult:
        """Start the MCP server; the result carries its URLs."""
        port = self.settings.mcp_port if port is None else port
        try:
            urls = await self.mcp.start(port, self.settings.mcp_host)
        except Exception as e:
            return _failure("mcp_start", e)
        return ActionResult.ok(**urls.model_dump())

    async def mcp_stop(self) -> ActionResult:
        try:
            await self.mcp.stop()
        except Exception as e:
            return _failure("mcp_stop", e)
        return ActionResult.ok()

    async def mcp_status(self) -> McpStatus:
        return self.mcp.status()

    async def mcp_progress_log(self) -> List[ProgressEvent]:
        return self.mcp.progress_log()

    async def mcp_local_ip(self) -> str:
        try:
            return get_local_ip()
        except Exception:
            logger.exception("Could not determine local IP")
            return LOOPBACK

    def on_mcp_progress(self, callback: Callable[[ProgressEvent], None]) -> Callable[[], None]:
        return self.mcp.on_progress(callback)

    # ── Git ──

    async def _pick(self, title: str, message: str) -> ActionResult:
        """Ask the picker for a directory; success carries it as ``path``."""
        if self.picker is None:
            return ActionResult.fail(PICKER_UNAVAILABLE)
        try:
            chosen = await self.picker(title, message)
        except Exception as e:
            return _failure("directory picker", e)
        if not chosen:
            return ActionResult.fail(CANCELLED)
        return ActionResult.ok(path=str(chosen))

    async def git_select_repo(self) -> ActionResult:
        """Let the user choose a repository and validate it."""
        picked = await self._pick(
            "Select Git Repository", "Choose a folder that contains a git repository"
        )
        if not picked.success:
            return picked
        try:
            info = await self.git.validate_repo(picked.path)
        except Exception as e:
            return _failure("git_select_repo", e)
        return ActionResult.ok(repo_path=info.repo_root, branch=info.branch)

    async def git_start_watching(self, path: str) -> ActionResult:
        try:
            info = await self.git.start_watching(path)
        except Exception as e:
            return _failure("git_start_watching", e)
        return ActionResult.ok(repo_path=info.repo_root, branch=info.branch)

    async def git_stop_watching(self) -> ActionResult:
        try:
            await self.git.stop_watching()
        except Exception as e:
            return _failure("git_stop_watching", e)
        return ActionResult.ok()

    async def git_status(self) -> GitStatus:
        try:
            return await self.git.status()
        except Exception:
            logger.exception("Could not read git status")
            return GitStatus(watching=self.git.watching, repo_path=self.git.repo_path)

    async def git_recent_commits(self, limit: int = 10) -> List[CommitInfo]:
        return await self.git.fetch_recent_commits(limit)

    async def git_commit_log(self) -> List[CommitEvent]:
        return self.git.commit_log()

    def on_git_commit(self, callback: Callable[[CommitEvent], None]) -> Callable[[], None]:
        return self.git.on_commit(callback)

    # ── File watcher ──

    async def watcher_select_folder(self) -> ActionResult:
        """Let the user choose a folder and start watching it."""
        picked = await self._pick("Select Folder to Watch", "Choose a folder to watch for changes")
        if not picked.success:
            return picked
        return await self.watcher_watch(picked.path)

    async def watcher_watch(self, path: str) -> ActionResult:
        try:
            newly_watched = self.files.watch(path)
        except Exception as e:
            return _failure("watcher_watch", e)
        folder = FileWatcher.folder_key(path)
        if not newly_watched:
            return ActionResult.ok(folder_path=folder, note="Already watching this folder")
        return ActionResult.ok(folder_path=folder)

    async def watcher_unwatch(self, path: str) -> ActionResult:
        try:
            was_watched = self.files.unwatch(path)
        except Exception as e:
            return _failure("watcher_unwatch", e)
        if not was_watched:
            return ActionResult.ok(note="Not watching this folder")
        return ActionResult.ok()

    async def watcher_folders(self) -> List[str]:
        return self.files.watched_folders()

    async def watcher_status(self) -> WatcherStatus:
        return self.files.status()

    async def watcher_change_log(self) -> List[FileChangeEvent]:
        return self.files.change_log()

    async def watcher_set_ignore_patterns(self, patterns: List[str]) -> ActionResult:
        if isinstance(patterns, str) or not all(isinstance(p, str) for p in patterns):
            return ActionResult.fail("Ignore patterns must be a list of strings")
        self.files.set_ignore_patterns(patterns)
        return ActionResult.ok(patterns=self.files.filter.patterns)

    def on_watcher_change(
        self, callback: Callable[[FileChangeEvent], None]
    ) -> Callable[[], None]:
        return self.files.on_change(callback)

    # ── Relay and lifecycle ──

    def forward_events(self, sink: EventSink) -> Callable[[], None]:
        """Relay every channel event to ``sink(channel_name, payload)``.

        Returns a function that stops the relay.
        """
        unsubscribers = [
            self.on_mcp_progress(lambda event: sink(MCP_PROGRESS, event.to_wire())),
            self.on_git_commit(lambda event: sink(GIT_COMMIT, event.to_wire())),
            self.on_watcher_change(lambda event: sink(WATCHER_CHANGE, event.to_wire())),
        ]

        def unsubscribe() -> None:
            for unsub in unsubscribers:
                unsub()

        return unsubscribe

    def has_active_channel(self) -> bool:
        """True when at least one channel is feeding events."""
        return self.mcp.running or self.git.watching or bool(self.files.watched_folders())

    async def shutdown(self) -> None:
        """Stop every channel. Safe to call repeatedly."""
        self.files.unwatch_all()
        await self.git.stop_watching()
        await self.mcp.stop()
        logger.info("All channels stopped")


class UnavailableHost:
    """Same operations as ``ChannelHost``, all resolving to a fallback."""

    available = False

    def __init__(self, settings: Optional[BrickSettings] = None, picker=None):
        self.settings = settings or BrickSettings()

    async def mcp_start(self, port: Optional[int] = None) -> ActionResult:
        return ActionResult.fail(UNAVAILABLE)

    async def mcp_stop(self) -> ActionResult:
        return ActionResult.ok()

    async def mcp_status(self) -> McpStatus:
        return McpStatus(running=False)

    async def mcp_progress_log(self) -> List[ProgressEvent]:
        return []

    async def mcp_local_ip(self) -> str:
        return LOOPBACK

    def on_mcp_progress(self, callback) -> Callable[[], None]:
        return _noop

    async def git_select_repo(self) -> ActionResult:
        return ActionResult.fail(UNAVAILABLE)

    async def git_start_watching(self, path: str) -> ActionResult:
        return ActionResult.fail(UNAVAILABLE)

    async def git_stop_watching(self) -> ActionResult:
        return ActionResult.ok()

    async def git_status(self) -> GitStatus:
        return GitStatus(watching=False)

    async def git_recent_commits(self, limit: int = 10) -> List[CommitInfo]:
        return []

    async def git_commit_log(self) -> List[CommitEvent]:
        return []

    def on_git_commit(self, callback) -> Callable[[], None]:
        return _noop

    async def watcher_select_folder(self) -> ActionResult:
        return ActionResult.fail(UNAVAILABLE)

    async def watcher_watch(self, path: str) -> ActionResult:
        return ActionResult.fail(UNAVAILABLE)

    async def watcher_unwatch(self, path: str) -> ActionResult:
        return ActionResult.ok()

    async def watcher_folders(self) -> List[str]:
        return []

    async def watcher_status(self) -> WatcherStatus:
        return WatcherStatus(watching=False)

    async def watcher_change_log(self) -> List[FileChangeEvent]:
        return []

    async def watcher_set_ignore_patterns(self, patterns: List[str]) -> ActionResult:
        return ActionResult.fail(UNAVAILABLE)

    def on_watcher_change(self, callback) -> Callable[[], None]:
        return _noop

    def forward_events(self, sink: EventSink) -> Callable[[], None]:
        return _noop

    def has_active_channel(self) -> bool:
        return False

    async def shutdown(self) -> None:
        pass


def _noop() -> None:
    pass


def create_host(
    settings: Optional[BrickSettings] = None,
    picker: Optional[DirectoryPicker] = None,
    available: bool = True,
):
    """Build the host for this runtime."""
    if not available:
        return UnavailableHost(settings)
    return ChannelHost(settings, picker)
