"""Tests for configuration loading."""

from pathlib import Path

import pytest

from recipe_costing.utils.config import Config, get_config, get_database_url, reset_config


class TestConfig:
    """Test configuration defaults and environment overrides."""

    def test_defaults(self, tmp_path):
        """Test USD base currency and a depth bound of 32."""
        config = Config(data_dir=tmp_path)
        assert config.base_currency == "USD"
        assert config.max_recipe_depth == 32
        assert config.database_path == tmp_path / "recipe_costing.db"
        assert config.database_url.startswith("sqlite:///")

    def test_environment_overrides(self, monkeypatch, tmp_path):
        """Test environment variables are read."""
        monkeypatch.setenv("RECIPE_COSTING_BASE_CURRENCY", " eur ")
        monkeypatch.setenv("RECIPE_COSTING_MAX_DEPTH", "5")
        monkeypatch.setenv("RECIPE_COSTING_DATA_DIR", str(tmp_path))

        config = Config()

        assert config.base_currency == "EUR"
        assert config.max_recipe_depth == 5
        assert config.database_path.parent == tmp_path

    def test_bad_depth_ignored(self, monkeypatch, tmp_path):
        """Test a non-integer depth falls back to the default."""
        monkeypatch.setenv("RECIPE_COSTING_MAX_DEPTH", "deep")
        assert Config(data_dir=tmp_path).max_recipe_depth == 32

    def test_invalid_depth_rejected(self, tmp_path):
        """Test a depth below 1 is an error."""
        with pytest.raises(ValueError):
            Config(max_recipe_depth=0, data_dir=tmp_path)

    def test_explicit_arguments_win(self, monkeypatch, tmp_path):
        """Test constructor arguments override the environment."""
        monkeypatch.setenv("RECIPE_COSTING_BASE_CURRENCY", "EUR")
        assert Config(base_currency="cup", data_dir=tmp_path).base_currency == "CUP"

    def test_development_data_dir(self):
        """Test development mode uses the project data directory."""
        config = Config(environment="development")
        assert config.is_development
        assert config.database_path.parent.name == "data"

    def test_production_data_dir(self):
        """Test production mode uses a per-user directory."""
        config = Config()
        assert config.is_production
        assert config.database_path.parent == Path.home() / ".recipe_costing"


class TestGlobalConfig:
    """Test the configuration singleton."""

    def test_singleton(self):
        """Test the same instance is returned until reset."""
        first = get_config()
        assert get_config() is first
        reset_config()
        assert get_config() is not first

    def test_environment_fixed_after_creation(self):
        """Test a later environment argument does not replace the singleton."""
        config = get_config("production")
        assert get_config("development") is config

    def test_database_url(self, monkeypatch, tmp_path):
        """Test the module-level URL helper."""
        monkeypatch.setenv("RECIPE_COSTING_DATA_DIR", str(tmp_path))
        reset_config()
        assert get_database_url().endswith("recipe_costing.db")
