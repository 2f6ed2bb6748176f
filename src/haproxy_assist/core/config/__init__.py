"""Settings model, loading and singleton access for haproxy-assist.

Usage:
    from haproxy_assist.core.config import get_settings, load_settings

    load_settings()  # ~/.haproxy-assist/config.yaml + HAPROXY_ASSIST_* env
    settings = get_settings()
    print(settings.config_file)
"""

from haproxy_assist.core.config.constants import (
    DEFAULT_BACKUP_DIR,
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    GLOBAL_SETTINGS_PATH,
    MAX_SETTINGS_SIZE,
)
from haproxy_assist.core.config.env import (
    ENV_FILE_NAME,
    env_overrides,
    env_var_name,
    load_env_file,
)
from haproxy_assist.core.config.loaders import (
    _load_yaml_file,
    _reset_settings,
    build_settings,
    get_settings,
    load_settings,
)
from haproxy_assist.core.config.models import Settings

__all__ = [
    "DEFAULT_BACKUP_DIR",
    "DEFAULT_CONFIG_FILE",
    "ENV_FILE_NAME",
    "ENV_PREFIX",
    "GLOBAL_SETTINGS_PATH",
    "MAX_SETTINGS_SIZE",
    "Settings",
    "_load_yaml_file",
    "_reset_settings",
    "build_settings",
    "env_overrides",
    "env_var_name",
    "get_settings",
    "load_env_file",
    "load_settings",
]
