"""Exception types raised by BRICK channel components.

Components raise these; the channel host converts them into
``ActionResult(success=False, error=...)`` at the boundary.
"""


class BrickError(Exception):
    """Base class for all channel errors."""


class UnknownSessionError(BrickError):
    """Raised when a session id is not present in the registry."""

    def __init__(self, session_id):
        self.session_id = session_id
        super().__init__(f"Unknown session: {session_id}")


class ServerAlreadyRunningError(BrickError):
    """Raised when starting an MCP server that is already running."""

    def __init__(self):
        super().__init__("MCP server is already running")


class RepositoryNotFoundError(BrickError):
    """Raised when the directory to validate does not exist."""

    def __init__(self, path):
        self.path = path
        super().__init__("Directory does not exist")


class NotARepositoryError(BrickError):
    """Raised when a directory is not inside a git working tree."""

    def __init__(self, path):
        self.path = path
        super().__init__("Not a git repository")


class GitCommandError(BrickError):
    """Raised when a git invocation fails unexpectedly."""

    def __init__(self, args, stderr: str = "", returncode=None):
        self.args_list = list(args)
        self.stderr = stderr.strip()
        self.returncode = returncode
        super().__init__(self.stderr or f"git {' '.join(self.args_list)} failed")


class FolderValidationError(BrickError):
    """Raised when a folder cannot be watched."""


class SettingsError(BrickError):
    """Raised when configuration values are invalid."""
