"""Advisory lock around write transactions on a configuration file.

The lock is an exclusive ``fcntl.flock`` on a sibling ``<target>.lock``
file, held for the whole backup -> serialize -> rename sequence so a second
haproxy-assist process cannot interleave its own commit or restore. Editors
that do not take the lock are not excluded.
"""

from __future__ import annotations

import fcntl
import logging
import os
import time
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from haproxy_assist.core.exceptions import CommitError, LockTimeoutError

logger = logging.getLogger(__name__)

__all__ = ["DEFAULT_LOCK_TIMEOUT", "commit_lock", "lock_path_for"]

DEFAULT_LOCK_TIMEOUT = 10.0
POLL_INTERVAL = 0.1


def lock_path_for(target: Path) -> Path:
    """Sibling lock file path for ``target``."""
    return target.parent / f"{target.name}.lock"


@contextmanager
def commit_lock(
    target: Path,
    timeout: float = DEFAULT_LOCK_TIMEOUT,
    poll_interval: float = POLL_INTERVAL,
) -> Generator[Path, None, None]:
    """Hold an exclusive advisory lock for ``target``.

    The lock file is left in place on exit.

    Args:
        target: Configuration file being modified.
        timeout: Seconds to wait before giving up.
        poll_interval: Sleep between non-blocking attempts.

    Yields:
        Path to the lock file.

    Raises:
        LockTimeoutError: Lock not acquired within ``timeout``.
        CommitError: Lock file could not be opened.
        ValueError: Non-positive timeout or poll interval.

    """
    if timeout <= 0:
        raise ValueError(f"timeout must be positive (got {timeout})")
    if poll_interval <= 0:
        raise ValueError(f"poll_interval must be positive (got {poll_interval})")

    lock_path = lock_path_for(target)
    try:
        fh = open(lock_path, "a+")
    except OSError as e:
        raise CommitError(f"Cannot open lock file {lock_path}: {e}") from e

    start = time.monotonic()
    try:
        while True:
            try:
                fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except OSError:
                if time.monotonic() - start >= timeout:
                    raise LockTimeoutError(
                        f"Another process is modifying {target} "
                        f"(could not lock {lock_path} within {timeout}s)"
                    ) from None
                time.sleep(poll_interval)

        # Holder PID and time, for operators
        fh.seek(0)
        fh.truncate()
        fh.write(f"{os.getpid()}\n{datetime.now().isoformat()}\n")
        fh.flush()
        logger.debug("Acquired commit lock %s", lock_path)

        try:
            yield lock_path
        finally:
            fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
            logger.debug("Released commit lock %s", lock_path)
    finally:
        fh.close()
