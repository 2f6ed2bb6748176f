"""Core module for haproxy-assist.

This module provides:
- The in-memory configuration model (ConfigStore, Section, SectionType)
- Text parsing and serialization of HAProxy configuration files
- Backup-guarded atomic commits and backup management
- Custom exception hierarchy with HaproxyAssistError as base
"""

from haproxy_assist.core.exceptions import (
    BackupError,
    CommitError,
    ConfigError,
    HaproxyAssistError,
    ParserError,
    RestoreError,
    SerializationError,
)
from haproxy_assist.core.store import ConfigStore, Section, SectionKey, SectionType

__all__ = [
    "BackupError",
    "CommitError",
    "ConfigError",
    "ConfigStore",
    "HaproxyAssistError",
    "ParserError",
    "RestoreError",
    "Section",
    "SectionKey",
    "SectionType",
    "SerializationError",
]
