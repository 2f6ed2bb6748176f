"""Tests for the configuration text parser."""

import logging
from pathlib import Path

import pytest

from haproxy_assist.core.exceptions import ParserError
from haproxy_assist.core.parser import (
    ConfigParser,
    ParseWarning,
    parse,
    parse_file,
    split_directive,
)
from haproxy_assist.core.store import Directive, SectionType


class TestSplitDirective:
    def test_simple(self) -> None:
        assert split_directive("maxconn 4096") == ("maxconn", "4096")

    def test_flag_without_value(self) -> None:
        assert split_directive("daemon") == ("daemon", "")

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("timeout connect 5000ms", ("timeout connect", "5000ms")),
            ("option httplog", ("option httplog", "")),
            ("option forwardfor except 127.0.0.0/8", ("option forwardfor", "except 127.0.0.0/8")),
            ("stats uri /haproxy?stats", ("stats uri", "/haproxy?stats")),
            (
                "errorfile 503 /etc/haproxy/errors/503.http",
                ("errorfile 503", "/etc/haproxy/errors/503.http"),
            ),
            ("no option httpclose", ("no option httpclose", "")),
        ],
    )
    def test_compound_keywords(self, text: str, expected: tuple[str, str]) -> None:
        assert split_directive(text) == expected

    def test_dotted_name(self) -> None:
        assert split_directive("tune.ssl.default-dh-param 2048") == (
            "tune.ssl.default-dh-param",
            "2048",
        )

    def test_invalid_name(self) -> None:
        assert split_directive("@weird value") is None


class TestParse:
    def test_scenario_global_and_frontend_binds(self) -> None:
        store = parse(
            "global\n"
            "    maxconn 4096\n"
            "frontend web\n"
            "    bind *:80\n"
            "    bind *:443 ssl crt /p.pem\n"
        )

        global_section = store.get_section("global")
        assert global_section.directives == {"maxconn": Directive("4096")}
        assert store.get_array_values("frontend:web", "bind") == ["*:80", "*:443 ssl crt /p.pem"]

    def test_section_order_follows_file(self) -> None:
        store = parse("backend b\nfrontend f\nglobal\ndefaults\n")
        assert [s.ref for s in store.sections()] == [
            "backend:b",
            "frontend:f",
            "global",
            "defaults",
        ]

    def test_blank_and_comment_lines_skipped(self) -> None:
        parser = ConfigParser()
        store = parser.parse("# header comment\n\nglobal\n    # inner\n    daemon\n")
        assert store.get_directive("global", "daemon") == ""
        assert parser.warnings == []

    def test_trailing_comment_kept_on_directive(self) -> None:
        store = parse("global\n    maxconn 4096 # hard limit\n")
        assert store.get_section("global").get("maxconn") == Directive("4096", "hard limit")

    def test_comment_dropped_on_array_value(self) -> None:
        store = parse("backend app\n    server s1 10.0.0.1:80 check # primary\n")
        assert store.get_array_values("backend:app", "server") == ["s1 10.0.0.1:80 check"]

    def test_header_with_trailing_comment(self) -> None:
        store = parse("frontend web # public\n    bind *:80\n")
        assert store.has_section("frontend:web")

    def test_timeouts_do_not_collide(self) -> None:
        store = parse(
            "defaults\n"
            "    timeout connect 5s\n"
            "    timeout client 50s\n"
            "    timeout server 50s\n"
        )
        assert len(store.get_section("defaults").directives) == 3
        assert store.get_directive("defaults", "timeout client") == "50s"

    def test_duplicate_directive_last_wins(self) -> None:
        store = parse("global\n    maxconn 100\n    maxconn 200\n")
        assert store.get_directive("global", "maxconn") == "200"

    def test_redeclared_section_merges_with_warning(self) -> None:
        parser = ConfigParser()
        store = parser.parse(
            "frontend web\n"
            "    bind *:80\n"
            "    mode http\n"
            "backend app\n"
            "frontend web\n"
            "    bind *:443\n"
            "    mode tcp\n"
        )

        assert [s.ref for s in store.sections()] == ["frontend:web", "backend:app"]
        assert store.get_array_values("frontend:web", "bind") == ["*:80", "*:443"]
        assert store.get_directive("frontend:web", "mode") == "tcp"
        assert len(parser.warnings) == 1
        assert "redeclared" in parser.warnings[0].message
        assert parser.warnings[0].line_number == 5


class TestParseWarnings:
    def test_directive_before_section(self, caplog: pytest.LogCaptureFixture) -> None:
        parser = ConfigParser()
        with caplog.at_level(logging.WARNING):
            store = parser.parse("maxconn 10\nglobal\n    daemon\n")

        assert store.get_directive("global", "maxconn") is None
        assert parser.warnings == [
            ParseWarning(1, "Directive outside of section, skipping: maxconn 10", "maxconn 10")
        ]
        assert "Line 1" in caplog.text

    def test_named_section_without_name(self) -> None:
        parser = ConfigParser()
        store = parser.parse("global\n    daemon\nbackend\n    balance roundrobin\n")

        assert [s.ref for s in store.sections()] == ["global"]
        # Directives under the skipped header must not leak into global
        assert store.get_directive("global", "balance") is None
        assert len(parser.warnings) == 2
        assert "without name" in parser.warnings[0].message

    def test_header_address_kept(self) -> None:
        parser = ConfigParser()
        store = parser.parse("listen stats 0.0.0.0:8404\n    mode http\n")
        section = store.get_section("listen:stats")
        assert section.address == "0.0.0.0:8404"
        assert section.header == "listen stats 0.0.0.0:8404"
        assert parser.warnings == []

    def test_conflicting_header_address(self) -> None:
        parser = ConfigParser()
        store = parser.parse("listen stats *:8404\nlisten stats *:9000\n")
        assert store.get_section("listen:stats").address == "*:8404"
        assert any("keeping *:8404" in w.message for w in parser.warnings)

    def test_name_on_unnamed_section(self) -> None:
        parser = ConfigParser()
        store = parser.parse("defaults http-defaults\n    mode http\n")
        assert store.get_directive("defaults", "mode") == "http"
        assert "takes no name" in parser.warnings[0].message

    def test_unparseable_directive(self) -> None:
        parser = ConfigParser()
        parser.parse("global\n    @bad line\n")
        assert str(parser.warnings[0]) == "Line 2: Cannot parse directive: @bad line"

    def test_array_directive_without_value(self) -> None:
        parser = ConfigParser()
        store = parser.parse("frontend web\n    bind\n")
        assert store.get_array_values("frontend:web", "bind") == []
        assert len(parser.warnings) == 1

    def test_warnings_reset_between_calls(self) -> None:
        parser = ConfigParser()
        parser.parse("orphan\n")
        parser.parse("global\n")
        assert parser.warnings == []

    def test_section_like_directive_is_not_header(self) -> None:
        store = parse("global\n    globalstuff 1\n")
        assert store.get_directive("global", "globalstuff") == "1"
        assert len(store) == 1


class TestParseFile:
    def test_reads_file(self, config_file: Path) -> None:
        store = parse_file(config_file)
        assert store.section_names(SectionType.BACKEND) == ["app"]

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ParserError, match="not found"):
            parse_file(tmp_path / "nope.cfg")

    def test_directory(self, tmp_path: Path) -> None:
        with pytest.raises(ParserError, match="directory"):
            parse_file(tmp_path)

    def test_undecodable_bytes_survive(self, tmp_path: Path) -> None:
        path = tmp_path / "latin1.cfg"
        path.write_bytes(b"global\n    description caf\xe9\n")
        store = parse_file(path)
        value = store.get_directive("global", "description")
        assert value is not None
        assert value.encode("utf-8", "surrogateescape") == b"caf\xe9"
