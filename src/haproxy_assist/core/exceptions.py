"""Custom exception hierarchy for haproxy-assist.

All errors raised by the core derive from HaproxyAssistError so the CLI
layer can catch them with a single except clause and map them to exit codes.

Hierarchy:
    HaproxyAssistError
    ├── ConfigError
    ├── ParserError
    ├── StoreError
    │   ├── SectionNotFoundError
    │   ├── SectionExistsError
    │   └── ArrayIndexError
    ├── BackupError
    ├── SerializationError
    ├── CommitError
    │   └── LockTimeoutError
    ├── RestoreError
    └── ValidationError
"""

from __future__ import annotations


class HaproxyAssistError(Exception):
    """Base exception for all haproxy-assist errors."""

    pass


class ConfigError(HaproxyAssistError):
    """Settings file missing, unreadable or invalid."""

    pass


class ParserError(HaproxyAssistError):
    """Configuration file could not be read for parsing."""

    pass


class StoreError(HaproxyAssistError):
    """In-memory configuration store operation failed."""

    pass


class SectionNotFoundError(StoreError):
    """Referenced section does not exist in the store."""

    pass


class SectionExistsError(StoreError):
    """Section with the same (type, name) is already present."""

    pass


class ArrayIndexError(StoreError, IndexError):
    """Array directive index is outside 0..n-1."""

    pass


class BackupError(HaproxyAssistError):
    """Backup could not be created, verified, listed or deleted.

    Raised when:
    - Source file is missing or unreadable
    - Backup directory cannot be created or is not writable
    - Writing the backup file fails
    - The copied body does not match the source digest

    A BackupError raised during commit always means the target was not touched.
    """

    pass


class SerializationError(HaproxyAssistError):
    """Temporary file write or permission copy failed during commit."""

    pass


class CommitError(HaproxyAssistError):
    """Final atomic rename over the target failed."""

    pass


class LockTimeoutError(CommitError):
    """Commit lock on the target could not be acquired in time."""

    pass


class RestoreError(HaproxyAssistError):
    """Restoring a backup failed; the target keeps its prior content."""

    pass


class ValidationError(HaproxyAssistError):
    """External configuration validator could not be run."""

    pass
