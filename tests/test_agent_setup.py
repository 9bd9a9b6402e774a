"""Tests for agent connection instructions."""

import json

import pytest

from brick_channels.agent_setup import (
    CLAUDE_CODE,
    CURSOR,
    config_instructions,
    connection_config,
    cursor_config_path,
    rule_instruction,
    write_cursor_config,
)
from brick_channels.core.errors import BrickError
from brick_channels.models import ServerUrls

URLS = ServerUrls.build("192.168.1.20", 3777)


def test_cursor_snippet_uses_streamable_url():
    snippet = json.loads(connection_config(CURSOR, URLS))

    assert snippet == {"mcpServers": {"brick": {"url": "http://192.168.1.20:3777/mcp"}}}


def test_claude_code_command_uses_sse_url():
    command = connection_config(CLAUDE_CODE, URLS)

    assert command == "claude mcp add --transport sse brick http://192.168.1.20:3777/sse"
    assert config_instructions(CLAUDE_CODE) == "Run this command in your terminal"


@pytest.mark.parametrize("agent", [CURSOR, CLAUDE_CODE])
def test_rule_mentions_log_progress(agent):
    assert "log_progress" in rule_instruction(agent)


def test_unknown_agent():
    with pytest.raises(BrickError):
        connection_config("notepad", URLS)


def test_cursor_config_path(temp_dir):
    assert cursor_config_path(temp_dir) == temp_dir / ".cursor" / "mcp.json"


def test_write_cursor_config_creates_file(temp_dir):
    config_file = cursor_config_path(temp_dir)

    written = write_cursor_config(config_file, URLS)

    assert written == config_file
    data = json.loads(config_file.read_text())
    assert data["mcpServers"]["brick"]["url"] == URLS.http_url


def test_write_cursor_config_keeps_other_servers(temp_dir):
    config_file = temp_dir / "mcp.json"
    config_file.write_text(
        json.dumps(
            {
                "mcpServers": {"other": {"command": "other-server"}, "brick": {"url": "old"}},
                "theme": "dark",
            }
        )
    )

    write_cursor_config(config_file, URLS)

    data = json.loads(config_file.read_text())
    assert data["theme"] == "dark"
    assert data["mcpServers"]["other"] == {"command": "other-server"}
    assert data["mcpServers"]["brick"] == {"url": URLS.http_url}


def test_write_cursor_config_rejects_invalid_json(temp_dir):
    config_file = temp_dir / "mcp.json"
    config_file.write_text("{oops")

    with pytest.raises(BrickError):
        write_cursor_config(config_file, URLS)
