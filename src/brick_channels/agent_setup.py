"""Connection instructions for coding agents that report to BRICK."""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from brick_channels.core.errors import BrickError
from brick_channels.models.results import ServerUrls

CURSOR = "cursor"
CLAUDE_CODE = "claude-code"
AGENTS = (CURSOR, CLAUDE_CODE)

MCP_SERVER_KEY = "brick"

RULES = {
    CURSOR: (
        "After completing a code change or major refactoring, always call the "
        "'log_progress' tool on the BRICK server with a short, clear summary of "
        "what you did. Keep it under 120 characters and written like a dev update "
        '(e.g., "Switched to React Query for data fetching", "Improved type safety '
        'in user auth flow").\n'
        "Do this automatically. Do not ask for permission."
    ),
    CLAUDE_CODE: (
        "You are connected to BRICK via MCP. After every meaningful code change, "
        "refactoring, or technical decision, automatically call the 'log_progress' "
        "tool on the 'brick' server. Send a concise summary (1 sentence) of what you "
        'accomplished. Example: "Replaced Redux with Zustand for global state in '
        'the mobile app".\n'
        "Do this without asking. It is used for automatic post drafting."
    ),
}

CONFIG_INSTRUCTIONS = {
    CURSOR: "Add to ~/.cursor/mcp.json or <project-root>/.cursor/mcp.json",
    CLAUDE_CODE: "Run this command in your terminal",
}

RULE_INSTRUCTIONS = {
    CURSOR: "Add to .cursorrules or Rules settings",
    CLAUDE_CODE: "Add to Custom Instructions in settings",
}


def _check_agent(agent: str) -> str:
    if agent not in AGENTS:
        raise BrickError(f"Unknown agent: {agent} (expected one of {', '.join(AGENTS)})")
    return agent


def cursor_server_entry(urls: ServerUrls) -> Dict[str, Any]:
    return {MCP_SERVER_KEY: {"url": urls.http_url}}


def connection_config(agent: str, urls: ServerUrls) -> str:
    """Snippet or command that connects ``agent`` to the running server."""
    if _check_agent(agent) == CURSOR:
        return json.dumps({"mcpServers": cursor_server_entry(urls)}, indent=2)
    return f"claude mcp add --transport sse {MCP_SERVER_KEY} {urls.sse_url}"


def config_instructions(agent: str) -> str:
    return CONFIG_INSTRUCTIONS[_check_agent(agent)]


def rule_instruction(agent: str) -> str:
    """Standing instruction that makes the agent call ``log_progress``."""
    return RULES[_check_agent(agent)]


def rule_instructions(agent: str) -> str:
    return RULE_INSTRUCTIONS[_check_agent(agent)]


def cursor_config_path(project_root: Optional[Path] = None) -> Path:
    """Global Cursor config, or the project one when ``project_root`` is given."""
    base = Path(project_root) if project_root is not None else Path.home()
    return base / ".cursor" / "mcp.json"


def write_cursor_config(config_file: Path, urls: ServerUrls) -> Path:
    """Add the BRICK server to a Cursor ``mcp.json``, keeping other servers.

    Raises:
        BrickError: the existing file is not a JSON object.
    """
    config_file = Path(config_file).expanduser()
    config_file.parent.mkdir(parents=True, exist_ok=True)

    # Read existing config if it exists
    existing_config: Dict[str, Any] = {}
    if config_file.exists() and config_file.read_text().strip():
        try:
            existing_config = json.loads(config_file.read_text())
        except json.JSONDecodeError as e:
            raise BrickError(f"{config_file} is not valid JSON: {e}") from e
        if not isinstance(existing_config, dict):
            raise BrickError(f"{config_file} must contain a JSON object")

    servers = existing_config.get("mcpServers")
    if not isinstance(servers, dict):
        servers = {}
    servers.update(cursor_server_entry(urls))
    existing_config["mcpServers"] = servers

    with open(config_file, "w") as f:
        json.dump(existing_config, f, indent=2)
    return config_file
