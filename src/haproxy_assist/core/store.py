"""In-memory model of an HAProxy configuration file.

The store owns an ordered collection of sections. Each section owns its
single-valued directives (with optional trailing comments) and its
multi-valued array directives (``server``, ``bind``, ``acl``, ...).

Public API:
    - SectionType: Fixed set of section keywords
    - SectionKey: (type, name) identifier with "type:name" text form
    - Directive: Single-valued directive value + comment
    - Section: One configuration scope
    - ConfigStore: Ordered container with mutation helpers
    - ConfigStats: Summary counters for display
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

from haproxy_assist.core.exceptions import (
    ArrayIndexError,
    SectionExistsError,
    SectionNotFoundError,
)

logger = logging.getLogger(__name__)

__all__ = [
    "ARRAY_DIRECTIVES",
    "COMPOUND_DIRECTIVES",
    "ConfigStats",
    "ConfigStore",
    "Directive",
    "Section",
    "SectionKey",
    "SectionRef",
    "SectionType",
]

# Directives allowed to repeat within a section, stored as ordered lists
ARRAY_DIRECTIVES: frozenset[str] = frozenset(
    {"server", "bind", "acl", "use_backend", "http-request", "http-response"}
)

# Keywords whose directive key spans several words (e.g. "timeout connect").
# Value is the number of words forming the key.
COMPOUND_DIRECTIVES: dict[str, int] = {
    "timeout": 2,
    "option": 2,
    "stats": 2,
    "errorfile": 2,
    "no": 3,
}

_SECTION_NAME_RE = re.compile(r"^[A-Za-z0-9_.:-]+$")
# Same keyword grammar the parser accepts at the start of a directive line
_DIRECTIVE_KEYWORD_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class SectionType(str, Enum):
    """Section keywords understood by the parser."""

    GLOBAL = "global"
    DEFAULTS = "defaults"
    FRONTEND = "frontend"
    BACKEND = "backend"
    LISTEN = "listen"

    @property
    def is_named(self) -> bool:
        """True for scopes that require a name (frontend/backend/listen)."""
        return self not in (SectionType.GLOBAL, SectionType.DEFAULTS)


class SectionKey(NamedTuple):
    """Identity of a section: ``(type, name)``; unnamed scopes use ``""``."""

    type: SectionType
    name: str = ""

    @property
    def ref(self) -> str:
        """Text form: ``global``, ``defaults`` or ``frontend:web``."""
        if self.name:
            return f"{self.type.value}:{self.name}"
        return self.type.value

    @classmethod
    def parse(cls, ref: str) -> SectionKey:
        """Parse a text reference such as ``backend:app`` or ``global``.

        Raises:
            ValueError: Unknown section type, or name missing/unexpected.

        """
        type_part, _, name = ref.strip().partition(":")
        try:
            section_type = SectionType(type_part)
        except ValueError:
            valid = ", ".join(t.value for t in SectionType)
            raise ValueError(
                f"Unknown section type '{type_part}' in '{ref}'. Valid types: {valid}"
            ) from None
        return cls.build(section_type, name)

    @classmethod
    def build(cls, section_type: SectionType | str, name: str = "") -> SectionKey:
        """Validated constructor.

        Raises:
            ValueError: Named scope without a valid name, or unnamed scope with one.

        """
        section_type = SectionType(section_type)
        name = name.strip()
        if section_type.is_named:
            if not name:
                raise ValueError(f"Section type '{section_type.value}' requires a name")
            if not _SECTION_NAME_RE.match(name):
                raise ValueError(f"Invalid section name: {name!r}")
        elif name:
            raise ValueError(f"Section type '{section_type.value}' does not take a name")
        return cls(section_type, name)


SectionRef = SectionKey | str


@dataclass
class Directive:
    """Single-valued directive. ``comment`` excludes the leading ``#``."""

    value: str = ""
    comment: str | None = None


@dataclass
class Section:
    """One configuration scope with its directives and array directives.

    ``address`` keeps the legacy ``listen <name> <addr:port>`` header form.
    """

    type: SectionType
    name: str = ""
    order: int = field(default=0, compare=False)
    directives: dict[str, Directive] = field(default_factory=dict)
    arrays: dict[str, list[str]] = field(default_factory=dict)
    address: str = ""

    @property
    def key(self) -> SectionKey:
        return SectionKey(self.type, self.name)

    @property
    def ref(self) -> str:
        return self.key.ref

    @property
    def header(self) -> str:
        """Section header line as written to the file."""
        parts = [self.type.value, self.name, self.address]
        return " ".join(part for part in parts if part)

    def set_address(self, address: str) -> None:
        """Set or clear the address given on the section header line.

        Raises:
            ValueError: Unnamed section, or the address would not survive a reload.

        """
        address = " ".join(address.split())
        if address and not self.type.is_named:
            raise ValueError(f"Section type '{self.type.value}' does not take an address")
        _check_token("Section address", address, allow_empty=True)
        self.address = address

    def set(self, name: str, value: str = "", comment: str | None = None) -> None:
        """Set a single-valued directive (last write wins).

        Raises:
            ValueError: Name or value would be read back differently by the
                parser (section keyword as name, stray ``#``, bad word count
                for a compound keyword), or ``name`` is an array directive.

        """
        _check_token("Directive value", value, allow_empty=True)
        name = _directive_key(name, value.strip())
        if name in ARRAY_DIRECTIVES:
            raise ValueError(f"'{name}' is an array directive; use add_array_value()")
        if comment is not None:
            _check_token("Comment", comment, allow_empty=True, allow_hash=True)
            comment = comment.strip().lstrip("#").strip() or None
        self.directives[name] = Directive(value.strip(), comment)

    def get(self, name: str) -> Directive | None:
        return self.directives.get(" ".join(name.split()))

    def unset(self, name: str) -> bool:
        """Remove a directive. Returns False if it was not set."""
        return self.directives.pop(" ".join(name.split()), None) is not None

    def add_value(self, name: str, value: str) -> int:
        """Append to an array directive. Returns the new element's index."""
        if name not in ARRAY_DIRECTIVES:
            valid = ", ".join(sorted(ARRAY_DIRECTIVES))
            raise ValueError(f"'{name}' is not an array directive. Array directives: {valid}")
        _check_token("Array value", value)
        values = self.arrays.setdefault(name, [])
        values.append(value.strip())
        return len(values) - 1

    def values(self, name: str) -> list[str]:
        """Copy of the ordered values for an array directive (empty if none)."""
        return list(self.arrays.get(name, []))

    def delete_value(self, name: str, index: int) -> str:
        """Delete array element by index; remaining elements are re-indexed 0..n-1.

        Raises:
            ArrayIndexError: Index out of range.

        """
        values = self.arrays.get(name, [])
        if index < 0 or index >= len(values):
            raise ArrayIndexError(
                f"{self.ref}: no '{name}' entry at index {index} (have {len(values)})"
            )
        removed = values.pop(index)
        if not values:
            del self.arrays[name]
        return removed


@dataclass(frozen=True)
class ConfigStats:
    """Summary counters shown by the ``stats`` command."""

    sections: int
    frontends: int
    backends: int
    listens: int
    servers: int
    directives: int


class ConfigStore:
    """Ordered collection of sections.

    Each section carries an ``order`` assigned from a monotonically increasing
    counter at creation; iteration follows ascending order. The order lives on
    the Section itself, so removing a section removes its order entry too.
    """

    def __init__(self) -> None:
        self._sections: dict[SectionKey, Section] = {}
        self._next_order = 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ConfigStore):
            return NotImplemented
        return self.sections() == other.sections()

    def __len__(self) -> int:
        return len(self._sections)

    def __iter__(self) -> Iterator[Section]:
        return iter(self.sections())

    def __contains__(self, ref: object) -> bool:
        if not isinstance(ref, str | SectionKey):
            return False
        return self.has_section(ref)

    def __repr__(self) -> str:
        refs = ", ".join(s.ref for s in self.sections())
        return f"ConfigStore([{refs}])"

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def sections(self, section_type: SectionType | str | None = None) -> list[Section]:
        """Sections sorted by order, optionally filtered by type."""
        result = sorted(self._sections.values(), key=lambda s: s.order)
        if section_type is not None:
            wanted = SectionType(section_type)
            result = [s for s in result if s.type == wanted]
        return result

    def section_names(self, section_type: SectionType | str) -> list[str]:
        """Names of named sections of a type, in order."""
        return [s.name for s in self.sections(section_type)]

    def add_section(self, section_type: SectionType | str, name: str = "") -> Section:
        """Create a new section at the end of the order.

        Raises:
            SectionExistsError: Section already present.
            ValueError: Invalid type/name combination.

        """
        key = SectionKey.build(section_type, name)
        if key in self._sections:
            raise SectionExistsError(f"Section already exists: {key.ref}")
        section = Section(key.type, key.name, order=self._next_order)
        self._next_order += 1
        self._sections[key] = section
        logger.debug("Added section %s (order %d)", key.ref, section.order)
        return section

    def ensure_section(self, section_type: SectionType | str, name: str = "") -> Section:
        """Return the existing section or create it."""
        key = SectionKey.build(section_type, name)
        existing = self._sections.get(key)
        if existing is not None:
            return existing
        return self.add_section(key.type, key.name)

    def find_section(self, ref: SectionRef) -> Section | None:
        return self._sections.get(_resolve(ref))

    def get_section(self, ref: SectionRef) -> Section:
        """Return a section.

        Raises:
            SectionNotFoundError: No such section.

        """
        key = _resolve(ref)
        section = self._sections.get(key)
        if section is None:
            raise SectionNotFoundError(f"Section not found: {key.ref}")
        return section

    def has_section(self, ref: SectionRef) -> bool:
        try:
            return _resolve(ref) in self._sections
        except ValueError:
            return False

    def delete_section(self, ref: SectionRef) -> Section:
        """Remove a section with all its directives, array entries and order.

        Raises:
            SectionNotFoundError: No such section.

        """
        key = _resolve(ref)
        section = self._sections.pop(key, None)
        if section is None:
            raise SectionNotFoundError(f"Section not found: {key.ref}")
        logger.debug("Deleted section %s", key.ref)
        return section

    # ------------------------------------------------------------------
    # Directives
    # ------------------------------------------------------------------

    def set_directive(
        self, ref: SectionRef, name: str, value: str = "", comment: str | None = None
    ) -> None:
        self.get_section(ref).set(name, value, comment)

    def get_directive(self, ref: SectionRef, name: str) -> str | None:
        """Directive value, or None when the section or directive is absent."""
        section = self.find_section(ref)
        if section is None:
            return None
        directive = section.get(name)
        return directive.value if directive is not None else None

    def delete_directive(self, ref: SectionRef, name: str) -> bool:
        return self.get_section(ref).unset(name)

    def add_array_value(self, ref: SectionRef, name: str, value: str) -> int:
        return self.get_section(ref).add_value(name, value)

    def get_array_values(self, ref: SectionRef, name: str) -> list[str]:
        section = self.find_section(ref)
        if section is None:
            return []
        return section.values(name)

    def delete_array_value(self, ref: SectionRef, name: str, index: int) -> str:
        return self.get_section(ref).delete_value(name, index)

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def stats(self) -> ConfigStats:
        sections = self.sections()
        return ConfigStats(
            sections=len(sections),
            frontends=sum(1 for s in sections if s.type == SectionType.FRONTEND),
            backends=sum(1 for s in sections if s.type == SectionType.BACKEND),
            listens=sum(1 for s in sections if s.type == SectionType.LISTEN),
            servers=sum(len(s.arrays.get("server", [])) for s in sections),
            directives=sum(len(s.directives) for s in sections),
        )


def _resolve(ref: SectionRef) -> SectionKey:
    if isinstance(ref, SectionKey):
        return SectionKey.build(ref.type, ref.name)
    return SectionKey.parse(ref)


def _check_token(
    label: str,
    text: str,
    allow_empty: bool = False,
    allow_hash: bool = False,
) -> None:
    if "\n" in text or "\r" in text:
        raise ValueError(f"{label} must not contain newlines: {text!r}")
    if not allow_hash and "#" in text:
        raise ValueError(f"{label} must not contain '#' (starts a comment): {text!r}")
    if not allow_empty and not text.strip():
        raise ValueError(f"{label} must not be empty")


def _directive_key(name: str, value: str) -> str:
    """Normalize a directive name, rejecting names the parser would split differently.

    A compound keyword (``timeout``, ``no``, ...) must be followed by exactly
    its qualifier words; fewer are accepted only without a value, which is
    how the parser reads a bare ``timeout`` line.
    """
    _check_token("Directive name", name)
    words = name.split()
    keyword = words[0]
    if not _DIRECTIVE_KEYWORD_RE.match(keyword):
        raise ValueError(f"Invalid directive name: {name!r}")
    if keyword in {t.value for t in SectionType}:
        raise ValueError(f"'{keyword}' is a section keyword, not a directive")

    width = COMPOUND_DIRECTIVES.get(keyword, 1)
    if len(words) > width or (len(words) < width and value):
        if width == 1:
            raise ValueError(f"Directive name must be a single word: {name!r}")
        raise ValueError(
            f"Directive '{keyword}' takes {width - 1} qualifier word(s) before the value: {name!r}"
        )
    return " ".join(words)
