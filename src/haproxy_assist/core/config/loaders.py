"""Settings loading functions and singleton management."""

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from haproxy_assist.core.config.constants import GLOBAL_SETTINGS_PATH, MAX_SETTINGS_SIZE
from haproxy_assist.core.config.env import env_overrides, load_env_file
from haproxy_assist.core.config.models import Settings
from haproxy_assist.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

# Module-level singleton for settings
_settings: Settings | None = None


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load and parse a YAML settings file with safety checks.

    Args:
        path: Path to YAML file.

    Returns:
        Parsed YAML content as dictionary (empty for an empty file).

    Raises:
        ConfigError: If file cannot be read, is too large, is a directory,
            or YAML is invalid.

    """
    try:
        # Read with size limit instead of stat-then-read
        with path.open("r", encoding="utf-8") as f:
            content = f.read(MAX_SETTINGS_SIZE + 1)

        if len(content) > MAX_SETTINGS_SIZE:
            raise ConfigError(
                f"Settings file {path} exceeds 1MB limit "
                f"(read {len(content):,} bytes before stopping)."
            )

        parsed = yaml.safe_load(content)
        if parsed is None:
            return {}

        if not isinstance(parsed, dict):
            raise ConfigError(
                f"Settings file {path} must contain a YAML mapping, got {type(parsed).__name__}."
            )

        return parsed
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except IsADirectoryError as e:
        raise ConfigError(f"{path} is a directory, not a settings file.") from e
    except PermissionError as e:
        raise ConfigError(f"Permission denied reading {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read settings file {path}: {e}") from e


def build_settings(data: dict[str, Any]) -> Settings:
    """Validate a settings dictionary.

    Raises:
        ConfigError: If validation fails.

    """
    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Settings validation failed: {e}") from e


def load_settings(
    path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
    *,
    env_dir: str | Path | None = None,
) -> Settings:
    """Load settings and store them in the module singleton.

    Priority, lowest to highest: model defaults, YAML settings file,
    ``HAPROXY_ASSIST_*`` environment variables (after loading ``.env``),
    explicit ``overrides`` (CLI flags; None values are ignored).

    Args:
        path: Settings file. Defaults to ~/.haproxy-assist/config.yaml, which
            may be absent. An explicitly given path must exist.
        overrides: Highest-priority values.
        env_dir: Directory searched for ``.env`` (default: cwd).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigError: Settings file missing (explicit path), unreadable,
            invalid YAML, or validation failure.

    """
    global _settings

    data: dict[str, Any] = {}
    if path is not None:
        settings_path = Path(path).expanduser()
        if not settings_path.exists():
            raise ConfigError(f"Settings file not found: {settings_path}")
        data.update(_load_yaml_file(settings_path))
    elif GLOBAL_SETTINGS_PATH.is_file():
        data.update(_load_yaml_file(GLOBAL_SETTINGS_PATH))
    else:
        logger.debug("No settings file at %s, using defaults", GLOBAL_SETTINGS_PATH)

    load_env_file(env_dir)
    data.update(env_overrides())
    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        _settings = build_settings(data)
    except ConfigError:
        _settings = None
        raise
    return _settings


def get_settings() -> Settings:
    """Get the loaded settings, loading defaults on first use."""
    if _settings is None:
        return load_settings()
    return _settings


def _reset_settings() -> None:
    """Reset settings singleton for testing purposes only."""
    global _settings
    _settings = None
