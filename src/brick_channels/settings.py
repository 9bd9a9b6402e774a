"""Configuration for BRICK input channels.

Settings come from ``~/.brick/config.json`` (or ``$BRICK_CONFIG``) and are
overridden field by field from ``BRICK_<FIELD>`` environment variables.
"""

import json
import logging
import os
from pathlib import Path
from typing import List, Mapping, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from brick_channels.core.errors import SettingsError

CONFIG_DIR = Path.home() / ".brick"
CONFIG_FILE = CONFIG_DIR / "config.json"
DEBUG_LOG = CONFIG_DIR / "brick-debug.log"
ENV_PREFIX = "BRICK_"


class BrickSettings(BaseModel):
    """Tunable settings for the three input channels."""

    mcp_port: int = Field(3777, ge=0, le=65535)
    mcp_host: str = "0.0.0.0"
    keepalive_interval: float = Field(30.0, gt=0)
    git_poll_interval: float = Field(5.0, gt=0)
    max_diff_length: int = Field(5000, gt=0)
    debounce_seconds: float = Field(1.0, gt=0)
    ignore_patterns: List[str] = []
    log_level: str = "INFO"
    debug_log: Optional[Path] = DEBUG_LOG

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level


def _from_env(environ: Mapping[str, str]) -> dict:
    overrides = {}
    for name in BrickSettings.model_fields:
        env_name = ENV_PREFIX + name.upper()
        if env_name not in environ:
            continue
        value = environ[env_name]
        if name == "ignore_patterns":
            overrides[name] = [p.strip() for p in value.split(",") if p.strip()]
        elif name == "debug_log" and not value:
            overrides[name] = None
        else:
            overrides[name] = value
    return overrides


def load_settings(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> BrickSettings:
    """Load settings from the config file and environment.

    Raises:
        SettingsError: the config file is unreadable or a value is invalid.
    """
    environ = os.environ if environ is None else environ
    config_path = Path(path or environ.get("BRICK_CONFIG") or CONFIG_FILE).expanduser()

    data = {}
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise SettingsError(f"Could not read {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise SettingsError(f"{config_path} must contain a JSON object")

    data.update(_from_env(environ))
    try:
        return BrickSettings(**data)
    except ValidationError as e:
        raise SettingsError(str(e)) from e


def save_settings(settings: BrickSettings, path: Optional[Union[str, Path]] = None) -> Path:
    """Write settings as JSON and return the file written."""
    config_path = Path(path or CONFIG_FILE).expanduser()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(settings.model_dump(mode="json"), indent=2))
    return config_path
