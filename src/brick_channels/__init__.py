"""BRICK input channels: MCP server, git watcher and file watcher."""

__version__ = "1.0.0"
