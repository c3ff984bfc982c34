"""Unit tests for collabcore.engine.config — CollabConfig and collabcore.yaml loading."""

import pytest

import collabcore.engine.config as cfg_mod
from collabcore.engine.config import (
    CollabConfig,
    HistoryConfig,
    LoggingConfig,
    get_config,
    load_config,
    set_config,
)
from collabcore.engine.errors import CollabConfigError


class TestCollabConfig:
    """Test the CollabConfig Pydantic model."""

    def test_defaults(self):
        cfg = CollabConfig()
        assert cfg.name == "collabcore"
        assert cfg.environment == "dev"
        assert cfg.database.url == "sqlite:///collabcore.db"
        assert cfg.history.default_page_size == 50
        assert cfg.history.max_page_size == 500
        assert cfg.sessions.gap_minutes == 15
        assert cfg.audit.preview_chars == 200
        assert cfg.identity.base_url is None
        assert cfg.logging.level == "INFO"
        assert cfg.logging.structured is True

    def test_invalid_environment(self):
        with pytest.raises(ValueError, match="dev/staging/prod"):
            CollabConfig(environment="test")

    def test_page_sizes_must_be_ordered(self):
        with pytest.raises(ValueError, match="default_page_size"):
            HistoryConfig(default_page_size=100, max_page_size=10)

    def test_gap_must_be_positive(self):
        with pytest.raises(ValueError):
            CollabConfig(sessions={"gap_minutes": 0})

    def test_log_level_normalized(self):
        assert LoggingConfig(level="debug").level == "DEBUG"
        with pytest.raises(ValueError, match="standard level"):
            LoggingConfig(level="chatty")


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        cfg = load_config(str(tmp_path / "absent.yaml"))
        assert cfg == CollabConfig()

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "collabcore.yaml"
        path.write_text(
            "collabcore:\n"
            "  name: scripts\n"
            "  environment: staging\n"
            "database:\n"
            "  url: sqlite:///scripts.db\n"
            "history:\n"
            "  default_page_size: 20\n"
            "sessions:\n"
            "  gap_minutes: 30\n"
            "identity:\n"
            "  base_url: https://directory.example\n"
        )
        cfg = load_config(str(path))
        assert cfg.name == "scripts"
        assert cfg.environment == "staging"
        assert cfg.database.url == "sqlite:///scripts.db"
        assert cfg.history.default_page_size == 20
        assert cfg.sessions.gap_minutes == 30
        assert cfg.identity.base_url == "https://directory.example"
        assert get_config() is cfg

    def test_auto_discovery(self, tmp_path, monkeypatch):
        (tmp_path / "collabcore.yaml").write_text("environment: prod\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)
        assert load_config().environment == "prod"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "collabcore.yaml"
        path.write_text("")
        assert load_config(str(path)) == CollabConfig()

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "collabcore.yaml"
        path.write_text("history: [unclosed\n")
        with pytest.raises(CollabConfigError, match="Invalid YAML"):
            load_config(str(path))

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "collabcore.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(CollabConfigError, match="mapping"):
            load_config(str(path))

    def test_validation_errors_reported(self, tmp_path):
        path = tmp_path / "collabcore.yaml"
        path.write_text("history:\n  max_page_size: 0\n")
        with pytest.raises(CollabConfigError) as exc_info:
            load_config(str(path))
        assert exc_info.value.context["validation_errors"]
        assert exc_info.value.context["config_path"] == str(path)


class TestConfigSingleton:
    def test_get_config_loads_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert get_config() == CollabConfig()
        assert cfg_mod._config is not None

    def test_set_config(self):
        custom = CollabConfig(environment="prod")
        set_config(custom)
        assert get_config() is custom
