"""Timestamped full backups of the configuration file.

Every write to the configuration file is preceded by a backup created here.
A backup file is named ``<basename>.backup.<YYYYMMDD_HHMMSS>`` and holds an
8-line metadata header followed by the verbatim bytes of the source file:

    # HAProxy Configuration Backup
    # Created: 2026-10-19 15:45:30
    # Original: /etc/haproxy/haproxy.cfg
    # User: admin
    # Reason: Added frontend: web
    # Hostname: lb01
    #
    <blank line>
    <original content ...>

Usage:
    from haproxy_assist.core.backup import BackupManager

    manager = BackupManager(Path("/var/backups/haproxy"), retention=50)
    backup_path = manager.create(Path("/etc/haproxy/haproxy.cfg"), "Before upgrade")
    for record in manager.list_backups("haproxy.cfg"):
        print(record.name, record.reason)
    manager.restore(backup_path, Path("/etc/haproxy/haproxy.cfg"))
"""

from __future__ import annotations

import contextlib
import glob
import gzip
import logging
import os
import shutil
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from haproxy_assist.core.exceptions import BackupError, LockTimeoutError, RestoreError
from haproxy_assist.core.io import (
    CONFIG_ENCODING,
    CONFIG_ENCODING_ERRORS,
    atomic_write,
    bytes_digest,
    get_acting_user,
    get_hostname,
    get_timestamp,
    temp_path_for,
)
from haproxy_assist.core.locking import DEFAULT_LOCK_TIMEOUT, commit_lock

logger = logging.getLogger(__name__)

__all__ = [
    "BACKUP_INFIX",
    "BACKUP_TITLE",
    "COMPRESSED_SUFFIX",
    "DEFAULT_COMPRESS_DAYS",
    "DEFAULT_BACKUP_REASON",
    "DEFAULT_RETENTION",
    "HEADER_LINES",
    "BackupManager",
    "BackupRecord",
    "build_header",
    "split_backup",
]

BACKUP_TITLE = "# HAProxy Configuration Backup"
BACKUP_INFIX = ".backup."
HEADER_LINES = 8
DEFAULT_RETENTION = 50
DEFAULT_BACKUP_REASON = "Manual backup"
DEFAULT_COMPRESS_DAYS = 30
COMPRESSED_SUFFIX = ".gz"

# Header bytes read when listing; 8 short lines fit comfortably
_HEADER_READ_SIZE = 8192
_MAX_SAME_SECOND_SUFFIX = 99


@dataclass(frozen=True)
class BackupRecord:
    """Metadata of one backup file, parsed from its header."""

    path: Path
    created: str | None
    original: str | None
    user: str | None
    reason: str | None
    hostname: str | None
    size: int

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def timestamp(self) -> str:
        """Filename timestamp part (``20261019_154530`` or ``..._01``)."""
        return _timestamp_part(self.path.name)

    @property
    def compressed(self) -> bool:
        return _is_compressed(self.path)


def _timestamp_part(name: str) -> str:
    return name.split(BACKUP_INFIX, 1)[-1].removesuffix(COMPRESSED_SUFFIX)


def _is_compressed(path: Path) -> bool:
    return path.name.endswith(COMPRESSED_SUFFIX)


def _compressed_path(path: Path) -> Path:
    return path.with_name(path.name + COMPRESSED_SUFFIX)


def _read_backup_bytes(path: Path, size: int = -1) -> bytes:
    """Read a backup file, transparently decompressing ``.gz`` backups.

    Raises:
        OSError: File missing/unreadable or corrupt gzip stream.

    """
    if _is_compressed(path):
        try:
            with gzip.open(path, "rb") as f:
                return f.read(size)
        except EOFError as e:
            raise OSError(f"Truncated compressed backup: {path}") from e
    with open(path, "rb") as f:
        return f.read(size)


def _one_line(value: str) -> str:
    return " ".join(value.splitlines()).strip()


def build_header(
    created: datetime,
    original: str,
    user: str,
    reason: str,
    hostname: str,
) -> str:
    """Build the fixed 8-line backup header (newline terminated).

    Newlines inside fields are folded to spaces so the header always spans
    exactly HEADER_LINES lines.
    """
    lines = [
        BACKUP_TITLE,
        f"# Created: {created.strftime('%Y-%m-%d %H:%M:%S')}",
        f"# Original: {_one_line(original)}",
        f"# User: {_one_line(user)}",
        f"# Reason: {_one_line(reason)}",
        f"# Hostname: {_one_line(hostname)}",
        "#",
        "",
    ]
    return "\n".join(lines) + "\n"


def split_backup(data: bytes) -> tuple[bytes, bytes]:
    """Split backup file bytes into (header, body).

    Raises:
        BackupError: Data does not start with a complete backup header.

    """
    if not data.startswith(BACKUP_TITLE.encode(CONFIG_ENCODING)):
        raise BackupError("Not a haproxy-assist backup file (missing header)")
    offset = 0
    for _ in range(HEADER_LINES):
        newline = data.find(b"\n", offset)
        if newline == -1:
            raise BackupError("Backup header is truncated")
        offset = newline + 1
    return data[:offset], data[offset:]


def _parse_header(header: bytes) -> dict[str, str]:
    fields: dict[str, str] = {}
    text = header.decode(CONFIG_ENCODING, CONFIG_ENCODING_ERRORS)
    for line in text.splitlines()[:HEADER_LINES]:
        if not line.startswith("# ") or ":" not in line:
            continue
        key, _, value = line[2:].partition(":")
        fields[key.strip().lower()] = value.strip()
    return fields


def _sort_key(path: Path) -> tuple[str, str]:
    # Timestamp first: names are lexicographically chronological by construction
    return _timestamp_part(path.name), path.name


class BackupManager:
    """Create, list, restore, delete and prune configuration backups.

    Attributes:
        backup_dir: Directory holding all backup files.
        retention: Number of backups kept per basename after each create.
        lock_timeout: Seconds restore() waits for the commit lock.

    """

    def __init__(
        self,
        backup_dir: Path,
        retention: int = DEFAULT_RETENTION,
        *,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        clock: Callable[[], datetime] | None = None,
        user: Callable[[], str] | None = None,
        hostname: Callable[[], str] | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            backup_dir: Directory for backup files (created on first use).
            retention: Backups to keep per basename (>= 1).
            lock_timeout: Commit lock timeout used by restore().
            clock: Source of the current time (default: datetime.now).
            user: Source of the acting user name.
            hostname: Source of the local hostname.

        Raises:
            ValueError: retention is less than 1.

        """
        if retention < 1:
            raise ValueError(f"retention must be at least 1 (got {retention})")
        self.backup_dir = Path(backup_dir).expanduser()
        self.retention = retention
        self.lock_timeout = lock_timeout
        self._clock = clock or datetime.now
        self._user = user or get_acting_user
        self._hostname = hostname or get_hostname

    def init_dir(self) -> Path:
        """Create the backup directory if absent and verify it is writable.

        Raises:
            BackupError: Directory cannot be created or is not writable.

        """
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Failed to create backup directory %s: %s", self.backup_dir, e)
            raise BackupError(f"Failed to create backup directory: {self.backup_dir}") from e

        if not os.access(self.backup_dir, os.W_OK | os.X_OK):
            logger.error("Backup directory not writable: %s", self.backup_dir)
            raise BackupError(f"Backup directory not writable: {self.backup_dir}")
        return self.backup_dir

    def _next_backup_path(self, basename: str, when: datetime) -> Path:
        base = f"{basename}{BACKUP_INFIX}{get_timestamp(when)}"
        candidate = self.backup_dir / base
        suffix = 0
        while candidate.exists() or _compressed_path(candidate).exists():
            suffix += 1
            if suffix > _MAX_SAME_SECOND_SUFFIX:
                raise BackupError(f"Too many backups within one second for {basename}")
            candidate = self.backup_dir / f"{base}_{suffix:02d}"
        return candidate

    def create(self, source: Path, reason: str = DEFAULT_BACKUP_REASON) -> Path:
        """Create a full backup of ``source``.

        Steps: read source, initialize directory, write header + verbatim
        content atomically with the source's permissions, verify the body's
        SHA-256 against the source bytes, prune old backups.

        Args:
            source: Configuration file to back up.
            reason: Free-text reason recorded in the header.

        Returns:
            Path of the new backup file.

        Raises:
            BackupError: Any step before pruning failed. No backup file is
                left behind on failure.

        """
        source = Path(source)
        if not source.is_file():
            logger.error("create_backup: Config file does not exist: %s", source)
            raise BackupError(f"Config file does not exist: {source}")
        try:
            content = source.read_bytes()
        except OSError as e:
            logger.error("create_backup: Config file not readable: %s (%s)", source, e)
            raise BackupError(f"Config file not readable: {source}") from e

        self.init_dir()

        now = self._clock()
        backup_path = self._next_backup_path(source.name, now)
        header = build_header(
            created=now,
            original=str(source.absolute()),
            user=self._user(),
            reason=reason or DEFAULT_BACKUP_REASON,
            hostname=self._hostname(),
        )
        data = header.encode(CONFIG_ENCODING, CONFIG_ENCODING_ERRORS) + content

        try:
            atomic_write(backup_path, data, mode_from=source)
        except OSError as e:
            logger.error("create_backup: Failed to write backup file %s: %s", backup_path, e)
            raise BackupError(f"Failed to write backup file: {backup_path}") from e

        self._verify(backup_path, content)
        logger.info("Backup created: %s", backup_path)

        self.cleanup(source.name)
        return backup_path

    def _verify(self, backup_path: Path, content: bytes) -> None:
        try:
            _, body = split_backup(backup_path.read_bytes())
            matches = bytes_digest(body) == bytes_digest(content)
        except (OSError, BackupError) as e:
            logger.error("Backup verification failed for %s: %s", backup_path, e)
            matches = False

        if not matches:
            with contextlib.suppress(OSError):
                backup_path.unlink()
            raise BackupError(f"Backup content verification failed: {backup_path}")

    def read_body(self, backup_path: Path) -> bytes:
        """Return the original file content stored in a backup (plain or ``.gz``).

        Raises:
            BackupError: File unreadable or not a backup.

        """
        try:
            data = _read_backup_bytes(Path(backup_path))
        except OSError as e:
            raise BackupError(f"Cannot read backup file {backup_path}: {e}") from e
        return split_backup(data)[1]

    def _glob(self, pattern: str | None) -> list[Path]:
        """Backups for a config basename, oldest first.

        The basename is matched literally, so names such as ``haproxy[prod].cfg``
        still find their own backups.
        """
        if not self.backup_dir.is_dir():
            return []
        if pattern and pattern != "*":
            wanted = f"{glob.escape(pattern)}{BACKUP_INFIX}*"
        else:
            wanted = f"*{BACKUP_INFIX}*"
        return sorted((p for p in self.backup_dir.glob(wanted) if p.is_file()), key=_sort_key)

    def info(self, backup_path: Path) -> BackupRecord:
        """Parse a backup file's header.

        Raises:
            BackupError: File does not exist or cannot be read.

        """
        backup_path = Path(backup_path)
        try:
            head = _read_backup_bytes(backup_path, _HEADER_READ_SIZE)
            size = backup_path.stat().st_size
        except OSError as e:
            raise BackupError(f"Backup file does not exist or is unreadable: {backup_path}") from e

        fields = _parse_header(head)
        return BackupRecord(
            path=backup_path,
            created=fields.get("created"),
            original=fields.get("original"),
            user=fields.get("user"),
            reason=fields.get("reason"),
            hostname=fields.get("hostname"),
            size=size,
        )

    def list_backups(self, pattern: str | None = None) -> list[BackupRecord]:
        """List backups matching ``<pattern>.backup.*``, newest first.

        Args:
            pattern: Config basename (e.g. ``haproxy.cfg``); None lists all.

        """
        records: list[BackupRecord] = []
        for path in reversed(self._glob(pattern)):
            try:
                records.append(self.info(path))
            except BackupError as e:
                logger.warning("Skipping unreadable backup %s: %s", path.name, e)
        return records

    def cleanup(self, pattern: str | None = None) -> list[Path]:
        """Delete the oldest backups beyond the retention count.

        Args:
            pattern: Config basename to prune; None prunes across all backups.

        Returns:
            Paths that were deleted.

        """
        backups = self._glob(pattern)
        excess = len(backups) - self.retention
        if excess <= 0:
            return []

        deleted: list[Path] = []
        for old_backup in backups[:excess]:
            try:
                old_backup.unlink()
            except OSError as e:
                logger.warning("Failed to remove old backup %s: %s", old_backup.name, e)
                continue
            logger.info("Cleaned up old backup: %s", old_backup.name)
            deleted.append(old_backup)
        return deleted

    def compress(
        self,
        older_than_days: int = DEFAULT_COMPRESS_DAYS,
        pattern: str | None = None,
    ) -> list[Path]:
        """Gzip uncompressed backups last modified more than N days ago.

        Compressed backups keep their name plus ``.gz``, their permissions and
        their modification time; they still count toward retention and can be
        listed and restored like plain ones.

        Args:
            older_than_days: Age threshold in days (>= 0).
            pattern: Config basename to limit compression to; None means all.

        Returns:
            Paths of the new ``.gz`` files.

        Raises:
            ValueError: Negative threshold.

        """
        if older_than_days < 0:
            raise ValueError(f"older_than_days must not be negative (got {older_than_days})")
        cutoff = (self._clock() - timedelta(days=older_than_days)).timestamp()

        compressed: list[Path] = []
        for path in self._glob(pattern):
            if _is_compressed(path):
                continue
            try:
                if path.stat().st_mtime >= cutoff:
                    continue
                gz_path = self._compress_file(path)
            except OSError as e:
                logger.warning("Failed to compress backup %s: %s", path.name, e)
                continue
            logger.info("Compressed old backup: %s", path.name)
            compressed.append(gz_path)
        return compressed

    def _compress_file(self, path: Path) -> Path:
        gz_path = _compressed_path(path)
        tmp_path = temp_path_for(gz_path)
        try:
            with open(path, "rb") as src, gzip.open(tmp_path, "wb") as dst:
                shutil.copyfileobj(src, dst)
            shutil.copystat(path, tmp_path)
            os.replace(tmp_path, gz_path)
        except OSError:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
            raise
        path.unlink()
        return gz_path

    def delete(self, backup_path: Path) -> None:
        """Delete one backup file inside the backup directory.

        Raises:
            BackupError: File missing, outside the backup directory, or
                removal failed.

        """
        backup_path = Path(backup_path)
        if not backup_path.is_file():
            logger.error("delete_backup: Backup file does not exist: %s", backup_path)
            raise BackupError(f"Backup file does not exist: {backup_path}")

        if not backup_path.resolve().is_relative_to(self.backup_dir.resolve()):
            logger.error("delete_backup: File not in backup directory: %s", backup_path)
            raise BackupError(f"File not in backup directory: {backup_path}")

        try:
            backup_path.unlink()
        except OSError as e:
            logger.error("Failed to delete backup %s: %s", backup_path, e)
            raise BackupError(f"Failed to delete backup: {backup_path}") from e
        logger.info("Backup deleted: %s", backup_path.name)

    def export(self, backup_path: Path, destination: Path) -> Path:
        """Copy a backup (with its metadata) to ``destination``.

        Returns:
            Path of the exported copy.

        Raises:
            BackupError: Source missing or copy failed.

        """
        backup_path = Path(backup_path)
        if not backup_path.is_file():
            raise BackupError(f"Backup file does not exist: {backup_path}")
        try:
            exported = Path(shutil.copy2(backup_path, destination))
        except OSError as e:
            logger.error("Failed to export backup to %s: %s", destination, e)
            raise BackupError(f"Failed to export backup to: {destination}") from e
        logger.info("Backup exported to: %s", exported)
        return exported

    def restore(self, backup_path: Path, target: Path) -> Path | None:
        """Replace ``target`` with the content stored in ``backup_path``.

        The current target is backed up first (safety backup). The backup body
        is read before that, since the safety backup's pruning may remove the
        very file being restored.

        Args:
            backup_path: Backup to restore from.
            target: Configuration file to overwrite.

        Returns:
            Path of the safety backup, or None if the target did not exist.

        Raises:
            RestoreError: Backup missing/invalid, lock not acquired, safety
                backup failed, or the atomic replace failed. The target keeps
                its previous content in every case.

        """
        backup_path = Path(backup_path)
        target = Path(target)
        if not backup_path.is_file():
            logger.error("restore_backup: Backup file does not exist: %s", backup_path)
            raise RestoreError(f"Backup file does not exist: {backup_path}")

        try:
            body = self.read_body(backup_path)
        except BackupError as e:
            logger.error("Failed to extract backup content from %s: %s", backup_path, e)
            raise RestoreError(f"Failed to extract backup content: {e}") from e

        try:
            with commit_lock(target, timeout=self.lock_timeout):
                safety_backup: Path | None = None
                if target.exists():
                    logger.info("Creating safety backup before restore...")
                    try:
                        safety_backup = self.create(
                            target, f"Before restore from {backup_path.name}"
                        )
                    except BackupError as e:
                        logger.error("Failed to create safety backup: %s", e)
                        raise RestoreError("Failed to create safety backup") from e

                try:
                    atomic_write(target, body, mode_from=target if target.exists() else None)
                except OSError as e:
                    logger.error("Failed to restore backup file: %s", e)
                    raise RestoreError(f"Failed to restore backup file: {target}") from e
        except LockTimeoutError as e:
            raise RestoreError(str(e)) from e

        logger.info("Configuration restored from: %s", backup_path.name)
        return safety_backup
