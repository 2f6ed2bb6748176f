"""Tests for text diffs between configuration files."""

from pathlib import Path

import pytest

from haproxy_assist.core.diff import diff_files, diff_text
from haproxy_assist.core.exceptions import ParserError


class TestDiff:
    def test_identical(self) -> None:
        assert diff_text("global\n", "global\n") == []

    def test_changed_line(self) -> None:
        lines = diff_text("global\n    maxconn 1\n", "global\n    maxconn 2\n", "old", "new")
        assert lines[0] == "--- old"
        assert lines[1] == "+++ new"
        assert "-    maxconn 1" in lines
        assert "+    maxconn 2" in lines

    def test_files(self, tmp_path: Path) -> None:
        a = tmp_path / "a.cfg"
        b = tmp_path / "b.cfg"
        a.write_text("global\n")
        b.write_text("global\n    daemon\n")
        lines = diff_files(a, b)
        assert lines[0] == f"--- {a}"
        assert "+    daemon" in lines

    def test_missing_file(self, tmp_path: Path) -> None:
        a = tmp_path / "a.cfg"
        a.write_text("global\n")
        with pytest.raises(ParserError, match="Cannot read"):
            diff_files(a, tmp_path / "missing.cfg")
