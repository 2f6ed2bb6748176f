"""Serialize a ConfigStore and commit it to disk.

Commit protocol, all under the advisory commit lock for the target:

1. BackupManager.create(target, reason). Any failure aborts the commit
   with the target untouched.
2. Serialize the store.
3. Write the text to ``.<name>.<pid>.tmp`` beside the target.
4. Copy the target's permission bits onto the temp file (0o600 fallback).
5. os.replace() the temp file over the target.

Failures in steps 3-4 raise SerializationError, step 5 raises CommitError.
The temp file is removed in both cases and the target keeps its bytes.
"""

from __future__ import annotations

import contextlib
import logging
import os
from pathlib import Path

from haproxy_assist.core.backup import BackupManager
from haproxy_assist.core.exceptions import CommitError, SerializationError
from haproxy_assist.core.io import (
    CONFIG_ENCODING,
    CONFIG_ENCODING_ERRORS,
    atomic_write,
    copy_mode,
    temp_path_for,
)
from haproxy_assist.core.locking import DEFAULT_LOCK_TIMEOUT, commit_lock
from haproxy_assist.core.store import ConfigStore, Directive, Section, SectionType

logger = logging.getLogger(__name__)

__all__ = [
    "INDENT",
    "commit",
    "create_config_file",
    "default_store",
    "render_section",
    "serialize",
]

INDENT = "    "
# Column at which trailing directive comments start
COMMENT_COLUMN = 30


def _directive_line(name: str, directive: Directive) -> str:
    line = f"{name} {directive.value}" if directive.value else name
    if directive.comment:
        return f"{INDENT}{line:<{COMMENT_COLUMN}} # {directive.comment}"
    return f"{INDENT}{line}"


def render_section(section: Section) -> list[str]:
    """Render one section as lines (no trailing blank line).

    Single-valued directives come first in alphabetical order, then array
    groups in insertion order with a blank line between distinct names.
    """
    lines = [section.header]
    for name in sorted(section.directives):
        lines.append(_directive_line(name, section.directives[name]))

    previous: str | None = None
    for name, values in section.arrays.items():
        if not values:
            continue
        if previous is not None and previous != name:
            lines.append("")
        lines.extend(f"{INDENT}{name} {value}" for value in values)
        previous = name
    return lines


def serialize(store: ConfigStore) -> str:
    """Render the whole store as configuration text.

    Sections appear in ascending ``order``, each followed by a blank line.
    """
    lines: list[str] = []
    for section in store.sections():
        lines.extend(render_section(section))
        lines.append("")
    return "\n".join(lines) + "\n" if lines else ""


def commit(
    store: ConfigStore,
    target: Path,
    reason: str,
    manager: BackupManager,
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
) -> Path:
    """Back up ``target`` then atomically replace it with the serialized store.

    Args:
        store: Configuration to write.
        target: Existing configuration file.
        reason: Reason recorded in the backup header.
        manager: Backup manager used for step 1.
        lock_timeout: Seconds to wait for the commit lock.

    Returns:
        Path of the backup taken before the write.

    Raises:
        LockTimeoutError: Another process holds the commit lock.
        BackupError: Backup failed; the target was not touched.
        SerializationError: Temp file write or permission copy failed.
        CommitError: Final rename failed.

    """
    target = Path(target)
    with commit_lock(target, timeout=lock_timeout):
        backup_path = manager.create(target, reason)
        logger.debug("Commit backup taken: %s", backup_path)

        data = serialize(store).encode(CONFIG_ENCODING, CONFIG_ENCODING_ERRORS)
        temp_path = temp_path_for(target)
        try:
            with open(temp_path, "wb") as f:
                f.write(data)
            copy_mode(target, temp_path)
        except OSError as e:
            _remove_quietly(temp_path)
            logger.error("Failed to write temporary file %s: %s", temp_path, e)
            raise SerializationError(f"Failed to write temporary file: {temp_path}") from e

        try:
            os.replace(temp_path, target)
        except OSError as e:
            _remove_quietly(temp_path)
            logger.error("Failed to replace %s: %s", target, e)
            raise CommitError(f"Failed to replace configuration file: {target}") from e

    logger.info("Configuration saved: %s (backup: %s)", target, backup_path.name)
    return backup_path


def _remove_quietly(path: Path) -> None:
    with contextlib.suppress(OSError):
        path.unlink()


def create_config_file(store: ConfigStore, target: Path) -> None:
    """Write a brand-new configuration file (nothing to back up).

    Raises:
        CommitError: ``target`` already exists or the write failed.

    """
    target = Path(target)
    if target.exists():
        raise CommitError(f"Config file already exists: {target}")
    try:
        atomic_write(target, serialize(store), mode_from=target)
    except OSError as e:
        logger.error("Failed to create config file %s: %s", target, e)
        raise CommitError(f"Failed to create config file: {target}") from e
    logger.info("Configuration created: %s", target)


def default_store() -> ConfigStore:
    """Starter configuration: global and defaults with common settings."""
    store = ConfigStore()
    global_section = store.add_section(SectionType.GLOBAL)
    global_section.set("daemon")
    global_section.set("maxconn", "4096")

    defaults = store.add_section(SectionType.DEFAULTS)
    defaults.set("mode", "http")
    defaults.set("timeout connect", "5000ms")
    defaults.set("timeout client", "50000ms")
    defaults.set("timeout server", "50000ms")
    return store
