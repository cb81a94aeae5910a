"""Config loading and validation for schemax.

Loads schemax.config.json, validates required fields, applies defaults and
expands ~ in paths. The SCHEMAX_DB environment variable overrides db_path.
"""

import json
import os
from pathlib import Path
from typing import Any

from schemax.data_types import DatabaseType


class ConfigError(Exception):
    """Raised when configuration is invalid or missing required fields."""


CONFIG_FILENAME = "schemax.config.json"

DB_ENV_VAR = "SCHEMAX_DB"

REQUIRED_FIELDS = ["db_path"]

PATH_FIELDS = ["db_path"]

DEFAULTS: dict[str, Any] = {
    "database_type": DatabaseType.GENERIC.value,
    "quiet_window_seconds": 1.0,
    "host": "127.0.0.1",
    "port": 8000,
    "log_level": "INFO",
}


def load_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """Load and validate schemax.config.json.

    Args:
        config_path: Path to config file. Defaults to ./schemax.config.json.

    Returns:
        Validated config dict with paths expanded and defaults applied.

    Raises:
        ConfigError: If file is missing, unreadable, or has invalid content.
    """
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME
    else:
        config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        raw = config_path.read_text()
        config = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError(f"Config in {config_path} must be a JSON object")

    if os.environ.get(DB_ENV_VAR):
        config["db_path"] = os.environ[DB_ENV_VAR]

    _validate(config)
    _apply_defaults(config)
    _expand_paths(config)

    return config


def _validate(config: dict[str, Any]) -> None:
    """Validate required fields are present and enumerated values are known."""
    for field in REQUIRED_FIELDS:
        if field not in config:
            raise ConfigError(
                f"Missing required config field: '{field}'. "
                f"Run `schemax init` to create a starter {CONFIG_FILENAME}."
            )

    database_type = config.get("database_type")
    if database_type is not None:
        try:
            DatabaseType(database_type)
        except ValueError as e:
            raise ConfigError(f"Unknown database_type: '{database_type}'") from e


def _apply_defaults(config: dict[str, Any]) -> None:
    """Apply default values for optional fields."""
    for key, default in DEFAULTS.items():
        if key not in config:
            config[key] = default


def _expand_paths(config: dict[str, Any]) -> None:
    """Expand ~ in path fields to the user's home directory."""
    for field in PATH_FIELDS:
        if field in config and isinstance(config[field], str):
            config[field] = str(Path(config[field]).expanduser())
