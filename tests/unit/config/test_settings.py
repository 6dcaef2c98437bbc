"""Unit tests for Settings loading (defaults, YAML file, environment)."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from key_manager.config import KeyConfig, Settings, _load_config_file, get_settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "KEY_MANAGER_CONFIG_FILE",
        "KEY_MANAGER_ENVIRONMENT",
        "KEY_MANAGER_KEYS__MAX_GENERATION_ATTEMPTS",
        "KEY_MANAGER_DATABASE__URL",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestDefaults:
    def test_key_defaults(self):
        config = KeyConfig()
        assert config.entropy_bytes == 32
        assert config.max_generation_attempts == 3
        assert config.default_expiry_days == 365
        assert config.default_page_size == 10
        assert config.max_page_size == 100
        assert config.masked_prefix_length == 8
        assert config.active_filter_includes_no_expiry is False

    def test_production_hides_error_details(self):
        settings = Settings()
        assert settings.environment == "production"
        assert settings.expose_error_details is False

    def test_development_exposes_error_details(self):
        assert Settings(environment="development").expose_error_details is True

    def test_rejects_unknown_environment(self):
        with pytest.raises(ValidationError):
            Settings(environment="staging")

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValidationError):
            KeyConfig(max_generation_attempts=0)


class TestSources:
    def test_yaml_file(self, tmp_path, monkeypatch):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "environment: development\n"
            "keys:\n"
            "  max_generation_attempts: 5\n"
            "  default_expiry_days: 30\n"
        )
        monkeypatch.setenv("KEY_MANAGER_CONFIG_FILE", str(config_file))

        settings = get_settings()

        assert settings.environment == "development"
        assert settings.keys.max_generation_attempts == 5
        assert settings.keys.default_expiry_days == 30
        assert settings.keys.max_page_size == 100

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("database:\n  url: sqlite+aiosqlite:///from-file.db\n")
        monkeypatch.setenv("KEY_MANAGER_CONFIG_FILE", str(config_file))
        monkeypatch.setenv("KEY_MANAGER_DATABASE__URL", "sqlite+aiosqlite:///from-env.db")

        settings = get_settings()

        assert settings.database.url == "sqlite+aiosqlite:///from-env.db"

    def test_missing_file_means_empty(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("KEY_MANAGER_CONFIG_FILE", str(tmp_path / "absent.yaml"))

        assert _load_config_file() == {}

    def test_empty_file(self, tmp_path, monkeypatch):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")
        monkeypatch.setenv("KEY_MANAGER_CONFIG_FILE", str(config_file))

        assert _load_config_file() == {}

    def test_settings_are_cached(self):
        assert get_settings() is get_settings()
