"""Tests for configuration loading."""

import pytest

from roster import config


@pytest.fixture
def restore_config():
    """Keep the module-level config from leaking between tests."""
    saved = (config._config, config._base_path)
    yield
    config._config, config._base_path = saved


class TestConfig:

    def test_defaults_fill_missing_keys(self, tmp_path, restore_config):
        config_dir = tmp_path / "config"
        config_dir.mkdir()
        path = config_dir / "config.yaml"
        path.write_text("timezone: Europe/Paris\ntasks:\n  assignment_strategy: first_registered\n")

        config.load_config(str(path))

        assert config.get("timezone") == "Europe/Paris"
        assert config.get("tasks.assignment_strategy") == "first_registered"
        assert config.get("tasks.registration_lead_days") == 7
        assert config.get("api.port") == 8000
        assert config.get("missing.key", "fallback") == "fallback"

    def test_relative_paths_resolve_to_project_root(self, tmp_path, restore_config):
        config_dir = tmp_path / "config"
        config_dir.mkdir()
        path = config_dir / "config.yaml"
        path.write_text("database:\n  path: data/test.db\n")

        config.load_config(str(path))

        assert config.get("database.path") == str(tmp_path.resolve() / "data" / "test.db")
        assert config.get("logging.file") == str(tmp_path.resolve() / "logs" / "roster.log")

    def test_empty_file_uses_defaults(self, tmp_path, restore_config):
        path = tmp_path / "config.yaml"
        path.write_text("")

        loaded = config.load_config(str(path))

        assert loaded["demo"]["seed"] is True
        assert config.get_config() is loaded
