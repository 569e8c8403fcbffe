"""Entry point tests (no server: the connection is replaced)."""

import json
import os

import pytest

from indexhealth import main as entry
from indexhealth.core import config
from indexhealth.core import logger as logger_module
from indexhealth.core.config import Settings
from indexhealth.core.exceptions import ConnectionError
from indexhealth.database import connection as connection_module


class UnreachableConnection:
    profiles = []

    def __init__(self, profile, options=None):
        self.profiles.append(profile)
        self.profile = profile

    def __enter__(self):
        raise ConnectionError("Connection failed: server unreachable", server=self.profile.server)

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False


@pytest.fixture
def app_home(monkeypatch, tmp_path):
    for key in list(os.environ):
        if key.startswith("INDEXHEALTH_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("INDEXHEALTH_HOME", str(tmp_path))
    monkeypatch.setattr(config, "_settings", None)
    monkeypatch.setattr(entry.signal, "signal", lambda *args: None)
    monkeypatch.setattr(connection_module, "DatabaseConnection", UnreachableConnection)
    UnreachableConnection.profiles = []
    return tmp_path


@pytest.fixture
def logging_levels(monkeypatch):
    levels = []

    def record(level="INFO", **kwargs):
        levels.append(level)
        return logger_module.get_logger()

    monkeypatch.setattr(logger_module, "setup_logging", record)
    return levels


class TestMain:
    def test_debug_wins_over_settings_file(self, app_home, logging_levels):
        Settings(app_dir=app_home).save()
        saved = json.loads((app_home / "config" / "settings.json").read_text(encoding="utf-8"))
        assert saved["logging"]["level"] == "INFO"

        assert entry.main(["--debug"]) == 2
        assert logging_levels == ["DEBUG"]

    def test_configured_level_without_debug(self, app_home, logging_levels):
        assert entry.main([]) == 2
        assert logging_levels == ["INFO"]

    def test_server_override(self, app_home, logging_levels):
        entry.main(["--server", "db02", "--database", "Sales"])
        [profile] = UnreachableConnection.profiles
        assert profile.server == "db02"
        assert profile.database == "Sales"

    def test_init_config(self, app_home, logging_levels, capsys):
        assert entry.main(["--init-config"]) == 0
        assert (app_home / "config" / "settings.json").is_file()
        assert "settings.json" in capsys.readouterr().out
        assert logging_levels == []
