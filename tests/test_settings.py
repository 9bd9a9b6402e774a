"""Tests for loading settings from file and environment."""

import json

import pytest

from brick_channels.core.errors import SettingsError
from brick_channels.settings import BrickSettings, load_settings, save_settings


def test_defaults_without_config(temp_dir):
    settings = load_settings(temp_dir / "missing.json", environ={})

    assert settings.mcp_port == 3777
    assert settings.git_poll_interval == 5.0
    assert settings.debounce_seconds == 1.0
    assert settings.max_diff_length == 5000
    assert settings.ignore_patterns == []


def test_config_file_values(temp_dir):
    config_file = temp_dir / "config.json"
    config_file.write_text(json.dumps({"mcp_port": 4000, "ignore_patterns": ["tmp"]}))

    settings = load_settings(config_file, environ={})

    assert settings.mcp_port == 4000
    assert settings.ignore_patterns == ["tmp"]


def test_environment_overrides_file(temp_dir):
    config_file = temp_dir / "config.json"
    config_file.write_text(json.dumps({"mcp_port": 4000}))
    environ = {
        "BRICK_MCP_PORT": "4100",
        "BRICK_IGNORE_PATTERNS": "generated, tmp",
        "BRICK_LOG_LEVEL": "debug",
        "BRICK_DEBUG_LOG": "",
    }

    settings = load_settings(config_file, environ=environ)

    assert settings.mcp_port == 4100
    assert settings.ignore_patterns == ["generated", "tmp"]
    assert settings.log_level == "DEBUG"
    assert settings.debug_log is None


def test_config_path_from_environment(temp_dir):
    config_file = temp_dir / "alt.json"
    config_file.write_text(json.dumps({"debounce_seconds": 2.5}))

    settings = load_settings(environ={"BRICK_CONFIG": str(config_file)})

    assert settings.debounce_seconds == 2.5


@pytest.mark.parametrize(
    "environ",
    [
        {"BRICK_MCP_PORT": "not-a-port"},
        {"BRICK_MCP_PORT": "70000"},
        {"BRICK_DEBOUNCE_SECONDS": "0"},
        {"BRICK_LOG_LEVEL": "chatty"},
    ],
)
def test_invalid_values_raise(temp_dir, environ):
    with pytest.raises(SettingsError):
        load_settings(temp_dir / "missing.json", environ=environ)


def test_malformed_config_file(temp_dir):
    config_file = temp_dir / "config.json"
    config_file.write_text("{broken")

    with pytest.raises(SettingsError):
        load_settings(config_file, environ={})

    config_file.write_text("[1, 2]")
    with pytest.raises(SettingsError):
        load_settings(config_file, environ={})


def test_save_then_load(temp_dir):
    config_file = temp_dir / "nested" / "config.json"
    save_settings(BrickSettings(mcp_port=5000, debug_log=None), config_file)

    settings = load_settings(config_file, environ={})

    assert settings.mcp_port == 5000
    assert settings.debug_log is None
