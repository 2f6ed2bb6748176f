"""Unified text diff between two configuration files."""

from __future__ import annotations

import difflib
import logging
from pathlib import Path

from haproxy_assist.core.exceptions import ParserError
from haproxy_assist.core.io import CONFIG_ENCODING, CONFIG_ENCODING_ERRORS

logger = logging.getLogger(__name__)

__all__ = ["diff_files", "diff_text"]


def diff_text(old: str, new: str, old_label: str = "a", new_label: str = "b") -> list[str]:
    """Unified diff lines (without trailing newlines); empty when identical."""
    return list(
        difflib.unified_diff(
            old.splitlines(),
            new.splitlines(),
            fromfile=old_label,
            tofile=new_label,
            lineterm="",
        )
    )


def diff_files(old: Path, new: Path) -> list[str]:
    """Unified diff of two files, compared as plain text.

    Raises:
        ParserError: Either file cannot be read.

    """
    texts = []
    for path in (Path(old), Path(new)):
        try:
            texts.append(path.read_text(encoding=CONFIG_ENCODING, errors=CONFIG_ENCODING_ERRORS))
        except OSError as e:
            raise ParserError(f"Cannot read {path}: {e}") from e

    lines = diff_text(texts[0], texts[1], str(old), str(new))
    logger.debug("Diff %s -> %s: %d lines", old, new, len(lines))
    return lines
