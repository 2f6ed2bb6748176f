"""HAProxy configuration text parser.

Converts configuration text into a ConfigStore. Parsing is best effort:
malformed or out-of-context lines are skipped and recorded as ParseWarning
entries (also logged at WARNING), never raised, so hand-edited or foreign
files can still be loaded.

Redeclared sections (``frontend web`` appearing twice) are merged into the
first declaration: directives follow last-write-wins, array values append,
and the section keeps its original order. Each redeclaration is reported as
a ParseWarning.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from haproxy_assist.core.exceptions import ParserError
from haproxy_assist.core.io import CONFIG_ENCODING, CONFIG_ENCODING_ERRORS
from haproxy_assist.core.store import (
    ARRAY_DIRECTIVES,
    COMPOUND_DIRECTIVES,
    ConfigStore,
    Section,
    SectionType,
)

logger = logging.getLogger(__name__)

__all__ = ["ConfigParser", "ParseWarning", "parse", "parse_file", "split_directive"]

# Pattern: <keyword> [<name>] where keyword is one of the section types
SECTION_PATTERN = re.compile(
    r"^(" + "|".join(t.value for t in SectionType) + r")(?:\s+(.+))?$"
)

# Pattern: <directive> [<value>]; directive names may contain dots (tune.*)
DIRECTIVE_PATTERN = re.compile(r"^([A-Za-z0-9_.-]+)(?:\s+(.*))?$")


@dataclass(frozen=True)
class ParseWarning:
    """A skipped or suspicious line."""

    line_number: int
    message: str
    line: str = ""

    def __str__(self) -> str:
        return f"Line {self.line_number}: {self.message}"


def split_comment(line: str) -> tuple[str, str | None]:
    """Split ``text # comment`` into (text, comment) with the ``#`` removed."""
    body, sep, comment = line.partition("#")
    if not sep:
        return line, None
    return body.strip(), comment.strip() or None


def split_directive(text: str) -> tuple[str, str] | None:
    """Split a directive line (comment already removed) into (name, value).

    Compound keywords key on several words: ``timeout connect 5s`` becomes
    ``("timeout connect", "5s")``.

    Returns:
        (name, value) or None when the line is not a directive.

    """
    match = DIRECTIVE_PATTERN.match(text)
    if match is None:
        return None
    keyword = match.group(1)
    remainder = (match.group(2) or "").strip()

    width = COMPOUND_DIRECTIVES.get(keyword)
    if width is None or not remainder:
        return keyword, remainder

    words = remainder.split(None, width - 1)
    qualifier = words[: width - 1]
    rest = words[width - 1] if len(words) >= width else ""
    return " ".join([keyword, *qualifier]), rest.strip()


@dataclass
class ConfigParser:
    """Line-oriented parser producing a fresh ConfigStore per call.

    Attributes:
        warnings: Warnings collected by the most recent parse() call.

    """

    warnings: list[ParseWarning] = field(default_factory=list)

    def parse(self, text: str) -> ConfigStore:
        """Parse configuration text.

        Args:
            text: Full configuration file content.

        Returns:
            Populated ConfigStore. Never raises for malformed content.

        """
        self.warnings = []
        store = ConfigStore()
        current: Section | None = None
        seen_headers: set[tuple[SectionType, str]] = set()

        for line_number, raw in enumerate(text.splitlines(), start=1):
            line = raw.strip()
            if not line or line.startswith("#"):
                continue

            body, comment = split_comment(line)
            if not body:
                continue

            header = SECTION_PATTERN.match(body)
            if header is not None:
                opened = self._open_section(store, header, line_number, line)
                if opened is None:
                    # Invalid header: following directives must not leak
                    # into the previous section.
                    current = None
                    continue
                if opened.key in seen_headers:
                    self._warn(
                        line_number,
                        f"Section {opened.ref} redeclared; merging into first declaration",
                        line,
                    )
                seen_headers.add(opened.key)
                current = opened
                logger.debug("Found section: %s", opened.ref)
                continue

            if current is None:
                self._warn(line_number, f"Directive outside of section, skipping: {line}", line)
                continue

            self._parse_directive(current, body, comment, line_number, line)

        logger.info(
            "Configuration parsed: %d sections, %d warnings",
            len(store),
            len(self.warnings),
        )
        return store

    def _open_section(
        self,
        store: ConfigStore,
        match: re.Match[str],
        line_number: int,
        line: str,
    ) -> Section | None:
        section_type = SectionType(match.group(1))
        args = (match.group(2) or "").split()

        if not section_type.is_named:
            if args:
                self._warn(
                    line_number,
                    f"Section {section_type.value} takes no name, ignoring: {' '.join(args)}",
                    line,
                )
            return store.ensure_section(section_type)

        if not args:
            self._warn(line_number, f"Section {section_type.value} without name, skipping", line)
            return None
        try:
            section = store.ensure_section(section_type, args[0])
        except ValueError as e:
            self._warn(line_number, f"{e}, skipping section", line)
            return None

        # Legacy form: listen <name> <addr:port>
        address = " ".join(args[1:])
        if address and not section.address:
            section.set_address(address)
        elif address and address != section.address:
            self._warn(
                line_number,
                f"Section {section.ref} redeclared with address {address}, "
                f"keeping {section.address}",
                line,
            )
        return section

    def _parse_directive(
        self,
        section: Section,
        body: str,
        comment: str | None,
        line_number: int,
        line: str,
    ) -> None:
        parts = split_directive(body)
        if parts is None:
            self._warn(line_number, f"Cannot parse directive: {body}", line)
            return
        name, value = parts

        if name in ARRAY_DIRECTIVES:
            if not value:
                self._warn(line_number, f"Array directive '{name}' without value, skipping", line)
                return
            section.add_value(name, value)
            if comment:
                logger.debug("Line %d: comment on array directive dropped", line_number)
            logger.debug("  Array directive: %s:%s = %s", section.ref, name, value)
            return

        try:
            section.set(name, value, comment)
        except ValueError as e:
            self._warn(line_number, f"{e}, skipping", line)
            return
        logger.debug("  Directive: %s = %s", name, value)

    def _warn(self, line_number: int, message: str, line: str) -> None:
        warning = ParseWarning(line_number, message, line)
        self.warnings.append(warning)
        logger.warning("%s", warning)


def parse(text: str) -> ConfigStore:
    """Parse configuration text into a ConfigStore (best effort)."""
    return ConfigParser().parse(text)


def parse_file(path: str | Path, parser: ConfigParser | None = None) -> ConfigStore:
    """Read and parse a configuration file.

    Args:
        path: Configuration file path.
        parser: Optional parser instance, to inspect its warnings afterwards.

    Raises:
        ParserError: File missing, a directory, or unreadable.

    """
    path = Path(path)
    try:
        text = path.read_text(encoding=CONFIG_ENCODING, errors=CONFIG_ENCODING_ERRORS)
    except FileNotFoundError as e:
        raise ParserError(f"Config file not found: {path}") from e
    except IsADirectoryError as e:
        raise ParserError(f"{path} is a directory, not a config file") from e
    except OSError as e:
        raise ParserError(f"Cannot read config file {path}: {e}") from e

    logger.info("Parsing configuration file: %s", path)
    return (parser or ConfigParser()).parse(text)
