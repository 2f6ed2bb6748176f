"""A configuration file loaded into memory.

ConfigDocument ties a ConfigStore to the file it was parsed from and the
SHA-256 of the bytes seen at load time, so callers can cheaply detect
external edits and reload only when the file actually changed.
"""

from __future__ import annotations

import logging
from pathlib import Path

from haproxy_assist.core.backup import BackupManager
from haproxy_assist.core.exceptions import ParserError
from haproxy_assist.core.io import CONFIG_ENCODING, CONFIG_ENCODING_ERRORS, bytes_digest
from haproxy_assist.core.locking import DEFAULT_LOCK_TIMEOUT
from haproxy_assist.core.parser import ConfigParser, ParseWarning
from haproxy_assist.core.store import ConfigStore
from haproxy_assist.core.writer import commit

logger = logging.getLogger(__name__)

__all__ = ["ConfigDocument"]


class ConfigDocument:
    """Parsed configuration file with change tracking.

    Attributes:
        path: Configuration file path.
        store: Parsed configuration.
        digest: SHA-256 of the file content at last load/save.
        warnings: Parse warnings from the last load.

    """

    def __init__(
        self,
        path: Path,
        store: ConfigStore,
        digest: str,
        warnings: list[ParseWarning] | None = None,
    ) -> None:
        self.path = path
        self.store = store
        self.digest = digest
        self.warnings = warnings or []

    @classmethod
    def load(cls, path: Path) -> ConfigDocument:
        """Read and parse ``path``.

        Raises:
            ParserError: File missing or unreadable.

        """
        path = Path(path)
        data = _read_bytes(path)
        parser = ConfigParser()
        store = parser.parse(data.decode(CONFIG_ENCODING, CONFIG_ENCODING_ERRORS))
        logger.debug("Loaded %s (%d sections)", path, len(store))
        return cls(path, store, bytes_digest(data), list(parser.warnings))

    def is_stale(self) -> bool:
        """True when the file on disk no longer matches the loaded digest."""
        try:
            return bytes_digest(_read_bytes(self.path)) != self.digest
        except ParserError:
            return True

    def reload_if_changed(self) -> bool:
        """Re-parse the file if its content changed since load.

        Returns:
            True if the store was replaced.

        Raises:
            ParserError: File vanished or became unreadable.

        """
        data = _read_bytes(self.path)
        digest = bytes_digest(data)
        if digest == self.digest:
            return False

        logger.info("Configuration changed on disk, reloading: %s", self.path)
        parser = ConfigParser()
        self.store = parser.parse(data.decode(CONFIG_ENCODING, CONFIG_ENCODING_ERRORS))
        self.warnings = list(parser.warnings)
        self.digest = digest
        return True

    def save(
        self,
        reason: str,
        manager: BackupManager,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    ) -> Path:
        """Commit the store to ``path`` and refresh the digest.

        Returns:
            Path of the backup taken before the write.

        """
        backup_path = commit(self.store, self.path, reason, manager, lock_timeout)
        self.digest = bytes_digest(_read_bytes(self.path))
        return backup_path


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except FileNotFoundError as e:
        raise ParserError(f"Config file not found: {path}") from e
    except IsADirectoryError as e:
        raise ParserError(f"{path} is a directory, not a config file") from e
    except OSError as e:
        raise ParserError(f"Cannot read config file {path}: {e}") from e
