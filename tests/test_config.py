"""
Tests for the config module.

Tests configuration loading, validation, and generation functionality
including YAML parsing, error handling, and file operations.
"""

import os
import re
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from bookvault.config.generator import generate_default_config, save_config_file
from bookvault.config.loader import (
    DEFAULT_CONFIG_FILE,
    ConfigError,
    ConfigLoader,
)
from bookvault.merge.strategy import ImportStrategy


class TestConfigLoaderInitialization:
    """Tests for ConfigLoader initialization."""

    def test_custom_config_dir_via_argument(self, tmp_path):
        """Test that custom config dir can be passed as argument."""
        custom_dir = tmp_path / "custom_config"
        loader = ConfigLoader(config_dir=custom_dir)
        assert loader.config_dir == custom_dir.resolve()

    def test_config_dir_from_environment_variable(self, tmp_path):
        """Test that config dir can be set via environment variable."""
        env_dir = tmp_path / "env_config"
        with patch.dict(os.environ, {"BOOKVAULT_CONFIG_DIR": str(env_dir)}):
            loader = ConfigLoader()
            assert loader.config_dir == env_dir.resolve()

    def test_config_path(self, tmp_path):
        """config_path joins the directory and the file name."""
        loader = ConfigLoader(config_dir=tmp_path)
        assert loader.config_path == tmp_path.resolve() / DEFAULT_CONFIG_FILE


class TestConfigLoading:
    """Tests for loading configuration files."""

    def test_missing_file_returns_empty(self, tmp_path):
        """Test that a missing config file yields an empty dict."""
        assert ConfigLoader(config_dir=tmp_path).load() == {}

    def test_empty_file_returns_empty(self, tmp_path):
        """Test that an empty config file yields an empty dict."""
        (tmp_path / DEFAULT_CONFIG_FILE).write_text("")
        assert ConfigLoader(config_dir=tmp_path).load() == {}

    def test_load_values(self, tmp_path):
        """Test loading a valid configuration file."""
        (tmp_path / DEFAULT_CONFIG_FILE).write_text(
            "verbose: true\nbackup_retention_count: 3\n"
            "default_list_action: merge\n"
        )
        config = ConfigLoader(config_dir=tmp_path).load_and_validate()
        assert config == {
            "verbose": True,
            "backup_retention_count": 3,
            "default_list_action": "merge",
        }

    def test_invalid_yaml_raises(self, tmp_path):
        """Test that malformed YAML raises ConfigError."""
        (tmp_path / DEFAULT_CONFIG_FILE).write_text("verbose: [unclosed")
        with pytest.raises(ConfigError, match="parse"):
            ConfigLoader(config_dir=tmp_path).load()

    def test_non_dict_raises(self, tmp_path):
        """Test that a YAML list at the top level is rejected."""
        (tmp_path / DEFAULT_CONFIG_FILE).write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="dictionary"):
            ConfigLoader(config_dir=tmp_path).load()

    def test_load_from_file(self, tmp_path):
        """Test loading from an explicit path."""
        path = tmp_path / "other.yaml"
        path.write_text("db_path: /data/library.db\n")
        loader = ConfigLoader(config_dir=tmp_path / "unused")
        assert loader.load_from_file(path) == {"db_path": "/data/library.db"}


class TestConfigValidation:
    """Tests for configuration validation."""

    @pytest.fixture
    def loader(self, tmp_path):
        return ConfigLoader(config_dir=tmp_path)

    def test_unknown_keys_ignored(self, loader):
        """Unknown keys are accepted."""
        loader.validate({"future_option": 1})

    def test_wrong_type(self, loader):
        """Wrong value types are rejected."""
        with pytest.raises(ConfigError, match="verbose"):
            loader.validate({"verbose": "yes"})

    def test_bool_is_not_int(self, loader):
        """Booleans are rejected for integer options."""
        with pytest.raises(ConfigError, match="backup_retention_count"):
            loader.validate({"backup_retention_count": True})

    def test_negative_retention(self, loader):
        """Retention counts must not be negative."""
        with pytest.raises(ConfigError, match=">= 0"):
            loader.validate({"log_retention_count": -1})

    def test_invalid_strategy_choice(self, loader):
        """Strategy defaults must be known values."""
        with pytest.raises(ConfigError, match="default_book_action"):
            loader.validate({"default_book_action": "overwrite"})

    def test_valid_strategy_choices(self, loader):
        """All documented strategy values validate."""
        loader.validate(
            {
                "default_list_action": "skip",
                "default_book_action": "duplicate",
                "default_comment_merge": "keepImported",
                "default_field_merge": "preferLocal",
            }
        )


class TestConfigGenerator:
    """Tests for default configuration generation."""

    def test_generated_config_is_valid_yaml(self):
        """All options are commented out, so the file loads as empty."""
        assert yaml.safe_load(generate_default_config()) is None

    def test_generated_config_documents_all_options(self):
        """Every option is documented in the generated file."""
        content = generate_default_config()
        for key in (
            "db_path",
            "backup_retention_count",
            "backup_before_import",
            "default_list_action",
            "default_field_merge",
        ):
            assert f"# {key}:" in content

    def test_uncommented_defaults_validate(self, tmp_path):
        """Uncommenting the documented defaults gives a valid config."""
        option = re.compile(r"^# ([a-z_]+: .*)$")
        lines = [
            match.group(1)
            for match in map(option.match, generate_default_config().splitlines())
            if match
        ]
        config = yaml.safe_load("\n".join(lines))
        assert len(config) == 11
        loader = ConfigLoader(config_dir=tmp_path)
        loader.validate(config)
        assert ImportStrategy.from_config(config) == ImportStrategy()

    def test_save_config_file(self, tmp_path):
        """save_config_file writes the default file."""
        path = tmp_path / "nested" / DEFAULT_CONFIG_FILE
        success, error = save_config_file(path)
        assert success is True
        assert error is None
        assert path.read_text(encoding="utf-8") == generate_default_config()

    def test_save_refuses_overwrite(self, tmp_path):
        """An existing file is kept unless overwrite is set."""
        path = tmp_path / DEFAULT_CONFIG_FILE
        path.write_text("verbose: true\n")

        success, error = save_config_file(path)
        assert success is False
        assert "already exists" in error
        assert path.read_text() == "verbose: true\n"

        success, _ = save_config_file(path, overwrite=True)
        assert success is True
        assert Path(path).read_text(encoding="utf-8") == generate_default_config()
