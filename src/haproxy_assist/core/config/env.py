"""Environment variable handling for haproxy-assist settings."""

import logging
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from haproxy_assist.core.config.constants import ENV_PREFIX

logger = logging.getLogger(__name__)

# .env file name constant
ENV_FILE_NAME: str = ".env"

# Settings fields that may be overridden from the environment
ENV_OVERRIDE_FIELDS: tuple[str, ...] = (
    "config_file",
    "backup_dir",
    "backup_retention",
    "backup_compress_days",
    "lock_timeout",
    "haproxy_binary",
    "log_file",
)


def env_var_name(field_name: str) -> str:
    """Map a settings field to its variable (``backup_dir`` -> ``HAPROXY_ASSIST_BACKUP_DIR``)."""
    return f"{ENV_PREFIX}{field_name.upper()}"


def load_env_file(directory: str | Path | None = None) -> bool:
    """Load environment variables from ``{directory}/.env``.

    Does NOT override existing environment variables (override=False).

    Args:
        directory: Directory holding the .env file. Defaults to the current
            working directory.

    Returns:
        True if a .env file was found and loaded, False otherwise.

    """
    resolved = Path.cwd() if directory is None else Path(directory).expanduser()
    env_file = resolved / ENV_FILE_NAME

    if not env_file.is_file():
        logger.debug(".env file not found at %s, skipping", env_file)
        return False

    load_dotenv(env_file, encoding="utf-8", override=False)
    logger.debug("Loaded environment variables from %s", env_file)
    return True


def env_overrides() -> dict[str, Any]:
    """Collect settings overrides from ``HAPROXY_ASSIST_*`` variables.

    Empty variables are ignored. Values stay strings; the settings model
    coerces them.
    """
    overrides: dict[str, Any] = {}
    for field_name in ENV_OVERRIDE_FIELDS:
        value = os.environ.get(env_var_name(field_name))
        if value:
            overrides[field_name] = value
            logger.debug("Settings override from %s", env_var_name(field_name))
    return overrides
