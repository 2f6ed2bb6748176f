"""Tests for settings loading: defaults, YAML file, environment, overrides."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from haproxy_assist.core.config import (
    DEFAULT_CONFIG_FILE,
    MAX_SETTINGS_SIZE,
    Settings,
    _reset_settings,
    get_settings,
    load_settings,
)
from haproxy_assist.core.exceptions import ConfigError


@pytest.fixture
def settings_file(tmp_path: Path) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(
        "config_file: /srv/haproxy/haproxy.cfg\n"
        "backup_dir: ~/cfg-backups\n"
        "backup_retention: 7\n"
    )
    return path


class TestDefaults:
    def test_defaults_without_settings_file(self) -> None:
        settings = load_settings()
        assert settings.config_file == DEFAULT_CONFIG_FILE
        assert settings.backup_retention == 50
        assert settings.lock_timeout == 10.0
        assert settings.haproxy_binary == "haproxy"
        assert settings.log_file is None
        assert settings.backup_dir == Path.home() / ".haproxy-assist" / "backups"

    def test_settings_are_frozen(self) -> None:
        settings = load_settings()
        with pytest.raises(ValidationError):
            settings.backup_retention = 3  # type: ignore[misc]


class TestSettingsFile:
    def test_values_loaded(self, settings_file: Path) -> None:
        settings = load_settings(settings_file)
        assert settings.config_file == Path("/srv/haproxy/haproxy.cfg")
        assert settings.backup_dir == Path.home() / "cfg-backups"
        assert settings.backup_retention == 7

    def test_global_settings_path_used(
        self, tmp_path: Path, settings_file: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            "haproxy_assist.core.config.loaders.GLOBAL_SETTINGS_PATH", settings_file
        )
        assert load_settings().backup_retention == 7

    def test_explicit_missing_path(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "missing.yaml")

    def test_empty_file_means_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_settings(path) == Settings()

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("backup_retention: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_settings(path)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="YAML mapping"):
            load_settings(path)

    def test_too_large(self, tmp_path: Path) -> None:
        path = tmp_path / "huge.yaml"
        path.write_text("#" * (MAX_SETTINGS_SIZE + 10))
        with pytest.raises(ConfigError, match="1MB"):
            load_settings(path)

    def test_unknown_key_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "typo.yaml"
        path.write_text("backup_retension: 5\n")
        with pytest.raises(ConfigError, match="validation failed"):
            load_settings(path)

    @pytest.mark.parametrize("content", ["backup_retention: 0\n", "lock_timeout: -1\n"])
    def test_out_of_range(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "range.yaml"
        path.write_text(content)
        with pytest.raises(ConfigError):
            load_settings(path)


class TestEnvironmentAndOverrides:
    def test_env_overrides_file(
        self, settings_file: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("HAPROXY_ASSIST_BACKUP_RETENTION", "3")
        monkeypatch.setenv("HAPROXY_ASSIST_HAPROXY_BINARY", "/usr/sbin/haproxy")
        settings = load_settings(settings_file)
        assert settings.backup_retention == 3
        assert settings.haproxy_binary == "/usr/sbin/haproxy"

    def test_dotenv_loaded(self, tmp_path: Path) -> None:
        (tmp_path / ".env").write_text("HAPROXY_ASSIST_LOCK_TIMEOUT=2.5\n")
        assert load_settings().lock_timeout == 2.5

    def test_real_env_wins_over_dotenv(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / ".env").write_text("HAPROXY_ASSIST_LOCK_TIMEOUT=2.5\n")
        monkeypatch.setenv("HAPROXY_ASSIST_LOCK_TIMEOUT", "4")
        assert load_settings().lock_timeout == 4.0

    def test_overrides_win(self, settings_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HAPROXY_ASSIST_CONFIG_FILE", "/from/env.cfg")
        settings = load_settings(
            settings_file, overrides={"config_file": "/from/cli.cfg", "backup_dir": None}
        )
        assert settings.config_file == Path("/from/cli.cfg")
        assert settings.backup_dir == Path.home() / "cfg-backups"

    def test_compress_days_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        assert load_settings().backup_compress_days == 30
        monkeypatch.setenv("HAPROXY_ASSIST_BACKUP_COMPRESS_DAYS", "7")
        assert load_settings().backup_compress_days == 7

    def test_invalid_env_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HAPROXY_ASSIST_BACKUP_RETENTION", "many")
        with pytest.raises(ConfigError):
            load_settings()


class TestSingleton:
    def test_get_settings_loads_defaults(self) -> None:
        assert get_settings().config_file == DEFAULT_CONFIG_FILE

    def test_get_settings_returns_loaded(self, settings_file: Path) -> None:
        loaded = load_settings(settings_file)
        assert get_settings() is loaded

    def test_failed_load_clears_singleton(self, settings_file: Path, tmp_path: Path) -> None:
        load_settings(settings_file)
        bad = tmp_path / "bad.yaml"
        bad.write_text("backup_retention: 0\n")
        with pytest.raises(ConfigError):
            load_settings(bad)
        assert get_settings().backup_retention == 50

    def test_reset(self, settings_file: Path) -> None:
        loaded = load_settings(settings_file)
        _reset_settings()
        assert get_settings() is not loaded
