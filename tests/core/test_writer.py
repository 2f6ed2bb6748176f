"""Tests for serialization and the backup-guarded commit protocol."""

import os
import stat
from pathlib import Path
from unittest.mock import patch

import pytest

from haproxy_assist.core.backup import HEADER_LINES, BackupManager, split_backup
from haproxy_assist.core.exceptions import (
    BackupError,
    CommitError,
    LockTimeoutError,
    SerializationError,
)
from haproxy_assist.core.locking import commit_lock
from haproxy_assist.core.parser import parse
from haproxy_assist.core.store import ConfigStore, Directive, SectionType
from haproxy_assist.core.writer import (
    commit,
    create_config_file,
    default_store,
    render_section,
    serialize,
)

# =============================================================================
# Serialization
# =============================================================================


class TestSerialize:
    def test_layout(self) -> None:
        store = ConfigStore()
        global_section = store.add_section(SectionType.GLOBAL)
        global_section.set("maxconn", "4096", "limit")
        global_section.set("daemon")
        web = store.add_section(SectionType.FRONTEND, "web")
        web.add_value("bind", "*:80")
        web.add_value("bind", "*:443")
        web.add_value("use_backend", "app")

        expected = (
            "global\n"
            "    daemon\n"
            f"    {'maxconn 4096':<30} # limit\n"
            "\n"
            "frontend web\n"
            "    bind *:80\n"
            "    bind *:443\n"
            "\n"
            "    use_backend app\n"
            "\n"
        )
        assert serialize(store) == expected

    def test_empty_store(self) -> None:
        assert serialize(ConfigStore()) == ""

    def test_sections_follow_order(self) -> None:
        store = ConfigStore()
        store.add_section("backend", "b")
        store.add_section("global")
        assert serialize(store).splitlines()[0] == "backend b"

    def test_directives_alphabetical(self) -> None:
        store = ConfigStore()
        section = store.add_section("defaults")
        section.set("timeout server", "50s")
        section.set("mode", "http")
        section.set("timeout connect", "5s")
        assert render_section(section) == [
            "defaults",
            "    mode http",
            "    timeout connect 5s",
            "    timeout server 50s",
        ]

    def test_round_trip(self, sample_config: str) -> None:
        text = sample_config + (
            "\nlisten stats\n    stats uri /stats # dashboard\n    acl a src 10.0.0.0/8\n"
        )
        store = parse(text)
        assert parse(serialize(store)) == store

    def test_round_trip_after_mutation(self, sample_config: str) -> None:
        store = parse(sample_config)
        store.delete_section("frontend:web")
        store.add_section("listen", "stats").set("stats enable")
        store.delete_array_value("backend:app", "server", 0)
        assert parse(serialize(store)) == store

    def test_round_trip_after_directive_edits(self, sample_config: str) -> None:
        store = parse(sample_config)
        store.set_directive("global", "tune.ssl.default-dh-param", "2048")
        store.set_directive("defaults", "option", "", "bare keyword")
        store.set_directive("defaults", "no option httpclose", "")
        store.set_directive("defaults", "errorfile 503", "/etc/haproxy/errors/503.http")
        store.set_directive("global", "log-tag", "edge", "see ticket #42")
        with pytest.raises(ValueError):
            store.set_directive("global", "backend", "evil")
        with pytest.raises(ValueError):
            store.set_directive("global", "log-tag", "a#b")

        reparsed = parse(serialize(store))

        assert reparsed == store
        assert reparsed.get_section("global").get("log-tag") == Directive("edge", "see ticket #42")
        assert [s.ref for s in reparsed.sections()][0] == "global"

    def test_round_trip_header_address(self) -> None:
        store = parse("listen stats 0.0.0.0:8404\n    mode http\n")
        text = serialize(store)
        assert text.splitlines()[0] == "listen stats 0.0.0.0:8404"
        assert parse(text) == store

    def test_serialize_is_stable(self, sample_config: str) -> None:
        once = serialize(parse(sample_config))
        assert serialize(parse(once)) == once


# =============================================================================
# Commit protocol
# =============================================================================


def _backups(manager: BackupManager) -> list[Path]:
    return sorted(manager.backup_dir.glob("*.backup.*"))


class TestCommit:
    def test_scenario_backup_holds_reason_and_original(
        self, tmp_path: Path, manager: BackupManager
    ) -> None:
        target = tmp_path / "haproxy.cfg"
        original = b"backend b\n  balance roundrobin\n"
        target.write_bytes(original)
        store = parse(original.decode())

        backup_path = commit(store, target, "test", manager)

        assert manager.info(backup_path).reason == "test"
        assert split_backup(backup_path.read_bytes())[1] == original

    def test_exactly_one_backup_per_commit(
        self, config_file: Path, manager: BackupManager
    ) -> None:
        before = config_file.read_bytes()
        store = parse(config_file.read_text())
        store.set_directive("global", "maxconn", "8192")

        backup_path = commit(store, config_file, "Set maxconn", manager)

        assert _backups(manager) == [backup_path]
        assert manager.read_body(backup_path) == before
        assert parse(config_file.read_text()) == store

    def test_backup_header_is_eight_lines(self, config_file: Path, manager: BackupManager) -> None:
        backup_path = commit(parse(config_file.read_text()), config_file, "x", manager)
        lines = backup_path.read_text().splitlines()
        assert lines[0] == "# HAProxy Configuration Backup"
        assert lines[HEADER_LINES - 2] == "#"
        assert lines[HEADER_LINES - 1] == ""
        assert lines[HEADER_LINES] == "global"

    def test_permissions_preserved(self, config_file: Path, manager: BackupManager) -> None:
        commit(parse(config_file.read_text()), config_file, "x", manager)
        assert stat.S_IMODE(config_file.stat().st_mode) == 0o640

    def test_backup_failure_leaves_target_untouched(
        self, config_file: Path, tmp_path: Path
    ) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("regular file where the backup directory should be")
        manager = BackupManager(blocker)
        before = config_file.read_bytes()
        store = parse(config_file.read_text())
        store.delete_section("backend:app")

        with pytest.raises(BackupError):
            commit(store, config_file, "x", manager)

        assert config_file.read_bytes() == before

    def test_missing_target_aborts(self, tmp_path: Path, manager: BackupManager) -> None:
        target = tmp_path / "absent.cfg"
        with pytest.raises(BackupError, match="does not exist"):
            commit(default_store(), target, "x", manager)
        assert not target.exists()

    def test_temp_write_failure(self, config_file: Path, manager: BackupManager) -> None:
        before = config_file.read_bytes()
        with patch(
            "haproxy_assist.core.writer.copy_mode", side_effect=PermissionError("chmod denied")
        ):
            with pytest.raises(SerializationError):
                commit(default_store(), config_file, "x", manager)

        assert config_file.read_bytes() == before
        assert not list(config_file.parent.glob(".*.tmp"))

    def test_rename_failure(self, config_file: Path, manager: BackupManager) -> None:
        before = config_file.read_bytes()
        real_replace = os.replace

        def replace_except_target(src, dst):
            if Path(dst) == config_file:
                raise OSError(18, "Invalid cross-device link")
            return real_replace(src, dst)

        with patch("haproxy_assist.core.writer.os.replace", side_effect=replace_except_target):
            with pytest.raises(CommitError):
                commit(default_store(), config_file, "x", manager)

        assert config_file.read_bytes() == before
        assert not list(config_file.parent.glob(".*.tmp"))

    def test_lock_held_elsewhere(self, config_file: Path, manager: BackupManager) -> None:
        with commit_lock(config_file):
            with pytest.raises(LockTimeoutError):
                commit(default_store(), config_file, "x", manager, lock_timeout=0.2)
        assert _backups(manager) == []


# =============================================================================
# Initial file creation
# =============================================================================


class TestCreateConfigFile:
    def test_creates_default(self, tmp_path: Path) -> None:
        target = tmp_path / "new" / "haproxy.cfg"
        create_config_file(default_store(), target)

        store = parse(target.read_text())
        assert store.get_directive("global", "maxconn") == "4096"
        assert store.get_directive("global", "daemon") == ""
        assert store.get_directive("defaults", "mode") == "http"
        assert store.get_directive("defaults", "timeout connect") == "5000ms"
        assert store.get_directive("defaults", "timeout client") == "50000ms"
        assert store.get_directive("defaults", "timeout server") == "50000ms"

    def test_refuses_existing(self, config_file: Path) -> None:
        before = config_file.read_bytes()
        with pytest.raises(CommitError, match="already exists"):
            create_config_file(default_store(), config_file)
        assert config_file.read_bytes() == before
