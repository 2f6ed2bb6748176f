"""Shared constants for configuration modules."""

from pathlib import Path

# Settings file and defaults
SETTINGS_DIR: Path = Path.home() / ".haproxy-assist"
GLOBAL_SETTINGS_PATH: Path = SETTINGS_DIR / "config.yaml"
MAX_SETTINGS_SIZE: int = 1_048_576  # 1MB - protection against YAML bombs

DEFAULT_CONFIG_FILE: Path = Path("/etc/haproxy/haproxy.cfg")
DEFAULT_BACKUP_DIR: Path = SETTINGS_DIR / "backups"
DEFAULT_HAPROXY_BINARY: str = "haproxy"

# Environment variable prefix for overrides (HAPROXY_ASSIST_BACKUP_DIR, ...)
ENV_PREFIX: str = "HAPROXY_ASSIST_"
