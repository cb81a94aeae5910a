"""Tests for config loading and validation."""

import json
from pathlib import Path

import pytest

from schemax.config import DB_ENV_VAR, DEFAULTS, ConfigError, load_config


@pytest.fixture(autouse=True)
def _no_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(DB_ENV_VAR, raising=False)


def _write(path: Path, data: object) -> Path:
    path.write_text(json.dumps(data))
    return path


class TestLoadConfig:
    def test_applies_defaults(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "schemax.config.json", {"db_path": "/tmp/x.db"})
        config = load_config(path)
        assert config["db_path"] == "/tmp/x.db"
        for key, value in DEFAULTS.items():
            assert config[key] == value

    def test_explicit_values_win(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "c.json",
            {"db_path": "/tmp/x.db", "database_type": "sqlite", "quiet_window_seconds": 0.25},
        )
        config = load_config(path)
        assert config["database_type"] == "sqlite"
        assert config["quiet_window_seconds"] == 0.25

    def test_defaults_to_cwd(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _write(tmp_path / "schemax.config.json", {"db_path": "/tmp/x.db"})
        monkeypatch.chdir(tmp_path)
        assert load_config()["db_path"] == "/tmp/x.db"

    def test_expands_home(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "c.json", {"db_path": "~/schemax.db"})
        config = load_config(path)
        assert config["db_path"] == str(Path.home() / "schemax.db")

    def test_env_overrides_db_path(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = _write(tmp_path / "c.json", {"db_path": "/tmp/x.db"})
        monkeypatch.setenv(DB_ENV_VAR, str(tmp_path / "env.db"))
        assert load_config(path)["db_path"] == str(tmp_path / "env.db")

    def test_env_satisfies_required_field(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = _write(tmp_path / "c.json", {})
        monkeypatch.setenv(DB_ENV_VAR, str(tmp_path / "env.db"))
        assert load_config(path)["db_path"] == str(tmp_path / "env.db")


class TestConfigErrors:
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "c.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="Invalid JSON"):
            load_config(path)

    def test_not_an_object(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "c.json", ["db_path"])
        with pytest.raises(ConfigError, match="JSON object"):
            load_config(path)

    def test_missing_db_path(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "c.json", {"database_type": "generic"})
        with pytest.raises(ConfigError, match="db_path"):
            load_config(path)

    def test_unknown_database_type(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "c.json", {"db_path": "/tmp/x.db", "database_type": "oracle"})
        with pytest.raises(ConfigError, match="oracle"):
            load_config(path)
