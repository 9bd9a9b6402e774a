"""Git watcher: polls one repository for newly arrived commits.

Validation reads the repository with GitPython. Polling shells out to
``git`` through asyncio subprocesses so no tick blocks the event loop.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Union

import git

from brick_channels.core.channel import EventChannel
from brick_channels.core.errors import (
    GitCommandError,
    NotARepositoryError,
    RepositoryNotFoundError,
)
from brick_channels.models.commit import CommitEvent, CommitInfo, RepoInfo
from brick_channels.models.results import GitStatus

logger = logging.getLogger(__name__)

POLL_INTERVAL = 5.0
MAX_DIFF_LENGTH = 5000
TRUNCATION_MARKER = "\n... (diff truncated)"
NO_DIFF = "(unable to get diff)"

# ASCII record/unit separators cannot appear in commit subjects
RECORD_SEP = "\x1e"
FIELD_SEP = "\x1f"
LOG_FORMAT = f"{RECORD_SEP}%H{FIELD_SEP}%an{FIELD_SEP}%ai{FIELD_SEP}%s"


@dataclass
class WatchState:
    """The single repository being watched."""

    repo_path: str
    last_commit_hash: Optional[str]
    poll_task: Optional["asyncio.Task[None]"] = None


def parse_log(output: str) -> List[CommitInfo]:
    """Parse ``git log`` output produced with ``LOG_FORMAT``."""
    commits = []
    for record in output.split(RECORD_SEP):
        record = record.strip()
        if not record:
            continue
        fields = record.split(FIELD_SEP)
        if len(fields) < 4:
            logger.debug("Skipping malformed log record: %r", record)
            continue
        commit_hash, author, date, subject = fields[:4]
        commits.append(CommitInfo(hash=commit_hash, author=author, date=date, message=subject))
    return commits


def truncate_diff(diff: str, max_length: int = MAX_DIFF_LENGTH) -> str:
    if len(diff) <= max_length:
        return diff
    return diff[:max_length] + TRUNCATION_MARKER


class GitWatcher:
    """Watches at most one repository at a time for new commits."""

    def __init__(
        self,
        poll_interval: float = POLL_INTERVAL,
        max_diff_length: int = MAX_DIFF_LENGTH,
        git_binary: str = "git",
    ):
        self.poll_interval = poll_interval
        self.max_diff_length = max_diff_length
        self.git_binary = git_binary
        self.commits: EventChannel[CommitEvent] = EventChannel("git")
        self._state: Optional[WatchState] = None

    @property
    def watching(self) -> bool:
        return self._state is not None

    @property
    def repo_path(self) -> Optional[str]:
        return self._state.repo_path if self._state else None

    @property
    def watermark(self) -> Optional[str]:
        """Last commit hash seen by the poll loop."""
        return self._state.last_commit_hash if self._state else None

    # ── Validation ──

    async def validate_repo(self, path: Union[str, Path]) -> RepoInfo:
        """Resolve ``path`` to its repository root and current branch.

        Raises:
            RepositoryNotFoundError: the directory does not exist.
            NotARepositoryError: the directory is not inside a working tree.
            GitCommandError: git could not be read for another reason.
        """
        directory = Path(path).expanduser()
        if not directory.exists():
            raise RepositoryNotFoundError(str(directory))

        try:
            repo = git.Repo(directory, search_parent_directories=True)
        except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError) as e:
            raise NotARepositoryError(str(directory)) from e
        except git.exc.GitError as e:
            raise GitCommandError(["rev-parse", "--show-toplevel"], str(e)) from e

        try:
            if repo.bare or repo.working_tree_dir is None:
                raise NotARepositoryError(str(directory))
            return RepoInfo(
                repo_root=str(Path(repo.working_tree_dir).resolve()),
                branch=self._branch_of(repo),
                head=self._head_of(repo),
            )
        finally:
            repo.close()

    @staticmethod
    def _branch_of(repo: git.Repo) -> str:
        if repo.head.is_detached:
            return "HEAD"
        try:
            return repo.active_branch.name
        except TypeError:
            return "unknown"

    @staticmethod
    def _head_of(repo: git.Repo) -> Optional[str]:
        try:
            return repo.head.commit.hexsha
        except ValueError:
            # Unborn branch: no commits yet
            return None

    # ── Lifecycle ──

    async def start_watching(self, path: Union[str, Path]) -> RepoInfo:
        """Stop any current watch and start polling the repository at ``path``."""
        await self.stop_watching()

        info = await self.validate_repo(path)
        head = await self._head_hash(info.repo_root)

        state = WatchState(repo_path=info.repo_root, last_commit_hash=head)
        self._state = state
        state.poll_task = asyncio.create_task(self._poll_loop(state))

        logger.info(
            "Watching repo: %s (branch: %s, head: %s)",
            info.repo_root,
            info.branch,
            head[:8] if head else None,
        )
        return info

    async def stop_watching(self) -> None:
        """Cancel the poll loop and forget the watched repository.

        The commit log is kept. Calling this when not watching does nothing.
        """
        state = self._state
        if state is None:
            return
        self._state = None

        task = state.poll_task
        if task is not None and not task.done():
            task.cancel()
            if task is not asyncio.current_task():
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        logger.info("Stopped watching: %s", state.repo_path)

    async def _poll_loop(self, state: WatchState) -> None:
        while self._state is state:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Poll tick failed in %s", state.repo_path)

    # ── Polling ──

    async def poll_once(self) -> int:
        """Run one poll tick and return the number of commit events emitted.

        Git failures are logged and left for the next tick to retry.
        """
        state = self._state
        if state is None:
            return 0

        try:
            current = await self._head_hash(state.repo_path)
            if current is None or current == state.last_commit_hash:
                return 0

            new_commits = await self._commits_since(
                state.repo_path, state.last_commit_hash, current
            )
            branch = await self._current_branch(state.repo_path)

            emitted = 0
            for commit in new_commits:
                diff = await self._commit_diff(state.repo_path, commit.hash)
                if self._state is not state:
                    # Watch stopped or replaced while we were reading git
                    return emitted
                self.commits.emit(
                    CommitEvent(
                        repo_path=state.repo_path,
                        branch=branch,
                        commit=commit,
                        diff=diff,
                    )
                )
                emitted += 1
                logger.info("New commit %s: %s", commit.short_hash, commit.message)

            if self._state is state:
                state.last_commit_hash = current
            return emitted
        except GitCommandError as e:
            logger.warning("Polling error in %s: %s", state.repo_path, e)
            return 0

    # ── Queries ──

    async def status(self) -> GitStatus:
        state = self._state
        if state is None:
            return GitStatus(watching=False, total_commits=len(self.commits))
        return GitStatus(
            watching=True,
            repo_path=state.repo_path,
            branch=await self._current_branch(state.repo_path),
            total_commits=len(self.commits),
        )

    async def fetch_recent_commits(
        self, limit: int = 10, repo_path: Optional[str] = None
    ) -> List[CommitInfo]:
        """Read the ``limit`` most recent commits straight from the repository.

        Uses the watched repository unless ``repo_path`` is given; returns an
        empty list when there is nothing to read.
        """
        path = repo_path or self.repo_path
        if path is None or limit <= 0:
            return []
        try:
            output = await self._git(path, "log", f"-{int(limit)}", f"--format={LOG_FORMAT}")
        except GitCommandError as e:
            logger.warning("Could not read recent commits in %s: %s", path, e)
            return []
        return parse_log(output)

    def commit_log(self) -> List[CommitEvent]:
        return self.commits.history()

    def on_commit(self, callback: Callable[[CommitEvent], None]) -> Callable[[], None]:
        """Register a listener for new commit events."""
        return self.commits.subscribe(callback)

    # ── Git helpers ──

    async def _git(self, repo_path: str, *args: str) -> str:
        """Run a git command in ``repo_path`` and return its stripped stdout."""
        try:
            process = await asyncio.create_subprocess_exec(
                self.git_binary,
                *args,
                cwd=repo_path,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise GitCommandError(args, str(e)) from e

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            # Stopped mid-command: do not leave the child running
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
            raise
        if process.returncode != 0:
            raise GitCommandError(
                args, stderr.decode("utf-8", errors="replace"), process.returncode
            )
        return stdout.decode("utf-8", errors="replace").strip()

    async def _head_hash(self, repo_path: str) -> Optional[str]:
        try:
            return await self._git(repo_path, "rev-parse", "--verify", "--quiet", "HEAD") or None
        except GitCommandError:
            return None

    async def _current_branch(self, repo_path: str) -> str:
        try:
            return await self._git(repo_path, "rev-parse", "--abbrev-ref", "HEAD")
        except GitCommandError:
            return "unknown"

    async def _commits_since(
        self, repo_path: str, since: Optional[str], until: str
    ) -> List[CommitInfo]:
        """Commits reachable from ``until`` but not from ``since``, oldest first."""
        revision = f"{since}..{until}" if since else until
        output = await self._git(repo_path, "log", "--reverse", f"--format={LOG_FORMAT}", revision)
        return parse_log(output)

    async def _commit_diff(self, repo_path: str, commit_hash: str) -> str:
        try:
            parents = await self._git(repo_path, "rev-list", "--parents", "-n", "1", commit_hash)
            if len(parents.split()) < 2:
                # Root commit: no parent to diff against
                return await self._git(
                    repo_path, "diff-tree", "--stat", "--root", "--no-commit-id", "-r", commit_hash
                )

            parent = f"{commit_hash}~1"
            stat = await self._git(repo_path, "diff", "--stat", parent, commit_hash)
            patch = await self._git(
                repo_path,
                "diff",
                "--no-color",
                "-U3",
                "--diff-filter=ACMR",
                parent,
                commit_hash,
            )
            return f"{stat}\n\n{truncate_diff(patch, self.max_diff_length)}"
        except GitCommandError as e:
            logger.warning("Could not diff %s: %s", commit_hash[:8], e)
            return NO_DIFF
