"""Pydantic settings model for haproxy-assist."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from haproxy_assist.core.backup import DEFAULT_COMPRESS_DAYS, DEFAULT_RETENTION
from haproxy_assist.core.config.constants import (
    DEFAULT_BACKUP_DIR,
    DEFAULT_CONFIG_FILE,
    DEFAULT_HAPROXY_BINARY,
)
from haproxy_assist.core.locking import DEFAULT_LOCK_TIMEOUT


class Settings(BaseModel):
    """Runtime settings.

    Attributes:
        config_file: HAProxy configuration file to manage.
        backup_dir: Directory holding configuration backups.
        backup_retention: Backups kept per configuration file.
        backup_compress_days: Age in days after which ``backup compress`` gzips a backup.
        lock_timeout: Seconds to wait for the commit lock.
        haproxy_binary: haproxy executable used by ``validate``.
        log_file: Optional file receiving a copy of all log records.

    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    config_file: Path = Field(
        default=DEFAULT_CONFIG_FILE,
        description="HAProxy configuration file to manage",
    )
    backup_dir: Path = Field(
        default=DEFAULT_BACKUP_DIR,
        description="Directory holding configuration backups",
    )
    backup_retention: int = Field(
        default=DEFAULT_RETENTION,
        ge=1,
        description="Number of backups kept per configuration file",
    )
    backup_compress_days: int = Field(
        default=DEFAULT_COMPRESS_DAYS,
        ge=0,
        description="Backups older than this many days are gzipped by backup compress",
    )
    lock_timeout: float = Field(
        default=DEFAULT_LOCK_TIMEOUT,
        gt=0,
        description="Seconds to wait for the commit lock",
    )
    haproxy_binary: str = Field(
        default=DEFAULT_HAPROXY_BINARY,
        min_length=1,
        description="haproxy executable used for syntax checks",
    )
    log_file: Path | None = Field(
        default=None,
        description="Optional log file (in addition to the console)",
    )

    @field_validator("config_file", "backup_dir", "log_file")
    @classmethod
    def expand_user(cls, v: Path | None) -> Path | None:
        """Expand ``~`` in path settings."""
        return v.expanduser() if v is not None else None
