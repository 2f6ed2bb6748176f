"""Shared I/O utilities for atomic file operations.

This module provides reusable utilities for:
- Atomic file writes (temp file + os.replace pattern)
- Colocated temp file naming
- Permission mirroring with a conservative fallback
- Second-resolution timestamps for backup filenames
- Content digests for backup verification and change detection
- Acting identity and hostname lookup for backup metadata
"""

import contextlib
import getpass
import hashlib
import logging
import os
import socket
import stat
from datetime import datetime
from pathlib import Path

__all__ = [
    "CONFIG_ENCODING",
    "CONFIG_ENCODING_ERRORS",
    "DEFAULT_FILE_MODE",
    "atomic_write",
    "copy_mode",
    "file_digest",
    "bytes_digest",
    "get_acting_user",
    "get_hostname",
    "get_timestamp",
    "temp_path_for",
]

logger = logging.getLogger(__name__)

# HAProxy config text encoding; surrogateescape keeps undecodable bytes intact
CONFIG_ENCODING = "utf-8"
CONFIG_ENCODING_ERRORS = "surrogateescape"

# Owner read/write, used when the mode of a reference file cannot be read
DEFAULT_FILE_MODE = 0o600


def get_timestamp(dt: datetime | None = None) -> str:
    """Generate timestamp for backup filenames.

    Format: YYYYMMDD_HHMMSS in local time (e.g., 20261019_154530).
    Lexicographic order equals chronological order.

    Args:
        dt: Datetime to format. If None, uses current local time.

    Returns:
        Timestamp string.

    Examples:
        >>> get_timestamp(datetime(2026, 10, 19, 15, 45, 30))
        '20261019_154530'

    """
    if dt is None:
        dt = datetime.now()
    return dt.strftime("%Y%m%d_%H%M%S")


def temp_path_for(path: Path) -> Path:
    """Return the temp file path used when atomically replacing ``path``.

    The temp file lives in the same directory as the target so the final
    rename stays on one filesystem. PID in the name prevents collisions
    between processes.
    """
    return path.parent / f".{path.name}.{os.getpid()}.tmp"


def copy_mode(reference: Path, target: Path, default: int = DEFAULT_FILE_MODE) -> int:
    """Copy permission bits of ``reference`` onto ``target``.

    Falls back to ``default`` when the reference cannot be stat'ed
    (missing file, permission denied).

    Args:
        reference: File whose permission bits are mirrored.
        target: File to chmod.
        default: Mode used when the reference cannot be stat'ed.

    Returns:
        The mode that was applied.

    Raises:
        OSError: If chmod on the target fails.

    """
    try:
        mode = stat.S_IMODE(reference.stat().st_mode)
    except OSError as e:
        logger.debug("Cannot read mode of %s (%s), using %o", reference, e, default)
        mode = default
    os.chmod(target, mode)
    return mode


def atomic_write(path: Path, content: str | bytes, mode_from: Path | None = None) -> None:
    """Write content to path atomically using temp file + os.replace.

    Args:
        path: Target file path.
        content: Text (UTF-8, surrogateescape) or raw bytes.
        mode_from: If given, permission bits are copied from this file
            (or the safe default) before the rename.

    Raises:
        OSError: If write, chmod or rename fails. The temp file is removed.

    """
    path.parent.mkdir(parents=True, exist_ok=True)

    temp_path = temp_path_for(path)
    if isinstance(content, str):
        data = content.encode(CONFIG_ENCODING, CONFIG_ENCODING_ERRORS)
    else:
        data = content
    try:
        with open(temp_path, "wb") as f:
            f.write(data)
        if mode_from is not None:
            copy_mode(mode_from, temp_path)
        os.replace(temp_path, path)
    except OSError:
        with contextlib.suppress(OSError):
            if temp_path.exists():
                temp_path.unlink()
        raise


def bytes_digest(data: bytes) -> str:
    """Return SHA-256 hex digest of ``data``."""
    return hashlib.sha256(data).hexdigest()


def file_digest(path: Path) -> str:
    """Return SHA-256 hex digest of a file's content.

    Raises:
        OSError: If the file cannot be read.

    """
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def get_acting_user() -> str:
    """Return the acting user for backup metadata.

    Prefers SUDO_USER so backups made through sudo name the real operator.
    """
    sudo_user = os.environ.get("SUDO_USER")
    if sudo_user:
        return sudo_user
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return os.environ.get("USER") or "unknown"


def get_hostname() -> str:
    """Return the local hostname, or 'unknown' if it cannot be determined."""
    try:
        return socket.gethostname() or "unknown"
    except OSError:
        return "unknown"
