"""Pytest configuration and fixtures for haproxy-assist tests."""

from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from haproxy_assist.core.backup import BackupManager
from haproxy_assist.core.config.env import ENV_OVERRIDE_FIELDS, env_var_name

SAMPLE_CONFIG = """\
global
    maxconn 4096
    daemon

defaults
    mode http
    timeout connect 5000ms
    timeout client 50000ms

frontend web
    bind *:80
    bind *:443 ssl crt /p.pem
    use_backend app

backend app
    balance roundrobin
    server web1 10.0.0.1:80 check
    server web2 10.0.0.2:80 check
"""


@pytest.fixture(autouse=True)
def isolate_settings(request, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Reset settings singleton and hide user-level settings sources.

    Points the global settings file at a non-existent path, clears all
    HAPROXY_ASSIST_* variables and runs the test from tmp_path so no stray
    .env file is picked up.
    """
    from haproxy_assist.core.config import _reset_settings

    _reset_settings()
    if not request.node.get_closest_marker("no_auto_settings"):
        monkeypatch.setattr(
            "haproxy_assist.core.config.loaders.GLOBAL_SETTINGS_PATH",
            tmp_path / "absent-settings.yaml",
        )
        for field_name in ENV_OVERRIDE_FIELDS:
            # setenv first so teardown also removes values a .env file loads
            monkeypatch.setenv(env_var_name(field_name), "")
            monkeypatch.delenv(env_var_name(field_name))
        monkeypatch.chdir(tmp_path)

    yield

    _reset_settings()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Deterministic clock advancing one second per call."""
    start = datetime(2026, 10, 19, 15, 45, 30)
    calls = {"n": 0}

    def now() -> datetime:
        value = start + timedelta(seconds=calls["n"])
        calls["n"] += 1
        return value

    return now


@pytest.fixture
def backup_dir(tmp_path: Path) -> Path:
    return tmp_path / "backups"


@pytest.fixture
def manager(backup_dir: Path, clock) -> BackupManager:
    """BackupManager with fixed identity and deterministic names."""
    return BackupManager(
        backup_dir,
        retention=50,
        lock_timeout=1.0,
        clock=clock,
        user=lambda: "tester",
        hostname=lambda: "lb01",
    )


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """A realistic configuration file on disk."""
    path = tmp_path / "etc" / "haproxy.cfg"
    path.parent.mkdir()
    path.write_text(SAMPLE_CONFIG)
    path.chmod(0o640)
    return path


@pytest.fixture
def sample_config() -> str:
    return SAMPLE_CONFIG
