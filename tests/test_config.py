# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for configuration loading and validation."""

import logging
import tempfile
from pathlib import Path

import yaml

from class_locator.config import Config


def test_default_config_when_file_missing():
    """Test that defaults are used when config file is missing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "nonexistent.yml"
        config = Config(config_path=config_path)

        assert config.scan_dirs == []
        assert config.exclude_dirs == []
        assert config.accept_files == ["*.php"]
        assert config.ignore_dirs == [".*", "*.old", "*.bak", "*.tmp", "temp"]
        assert config.temp_directory is None
        assert config.auto_rebuild is True
        assert config.report_parse_errors is True
        assert config.case_sensitive is False
        assert config.lock_timeout_seconds is None
        assert config.max_refresh_depth == 32


def test_valid_config_loading():
    """Test loading a valid configuration file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "config.yml"
        config_data = {
            "scan_dirs": ["app", "lib"],
            "exclude_dirs": ["app/cache"],
            "accept_files": ["*.php", "*.inc"],
            "temp_directory": "temp/cache",
            "auto_rebuild": False,
            "case_sensitive": True,
            "lock_timeout_seconds": 2.5,
        }

        with open(config_path, "w") as f:
            yaml.dump(config_data, f)

        config = Config(config_path=config_path)

        assert config.scan_dirs == ["app", "lib"]
        assert config.exclude_dirs == ["app/cache"]
        assert config.accept_files == ["*.php", "*.inc"]
        assert config.temp_directory == Path("temp/cache")
        assert config.auto_rebuild is False
        assert config.case_sensitive is True
        assert config.lock_timeout_seconds == 2.5
        # Defaults for unspecified values
        assert config.report_parse_errors is True
        assert config.max_refresh_depth == 32


def test_invalid_parameter_values():
    """Test that invalid parameter values are rejected and defaults used."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "config.yml"
        config_data = {
            "lock_timeout_seconds": -1,  # Invalid: must be >= 0
            "max_refresh_depth": 0,  # Invalid: must be > 0
            "accept_files": ["*.php", ""],  # Invalid: empty pattern
        }

        with open(config_path, "w") as f:
            yaml.dump(config_data, f)

        config = Config(config_path=config_path)

        assert config.lock_timeout_seconds is None
        assert config.max_refresh_depth == 32
        assert config.accept_files == ["*.php"]


def test_invalid_parameter_types():
    """Test that invalid parameter types are rejected and defaults used."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "config.yml"
        config_data = {
            "scan_dirs": "app",  # Should be list
            "auto_rebuild": "yes",  # Should be bool
            "max_refresh_depth": True,  # Should be int, not bool
            "lock_timeout_seconds": "5",  # Should be a number
        }

        with open(config_path, "w") as f:
            yaml.dump(config_data, f)

        config = Config(config_path=config_path)

        assert config.scan_dirs == []
        assert config.auto_rebuild is True
        assert config.max_refresh_depth == 32
        assert config.lock_timeout_seconds is None


def test_unknown_parameters_are_ignored(caplog):
    """Test that unknown keys are logged and ignored."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "config.yml"
        with open(config_path, "w") as f:
            yaml.dump({"scan_dirs": ["app"], "cache_backend": "redis"}, f)

        with caplog.at_level(logging.WARNING):
            config = Config(config_path=config_path)

        assert config.scan_dirs == ["app"]
        assert "Unknown configuration parameter 'cache_backend'" in caplog.text


def test_malformed_yaml():
    """Test that malformed YAML falls back to defaults."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "config.yml"
        config_path.write_text("scan_dirs: [app\n  temp_directory: :")

        config = Config(config_path=config_path)

        assert config.scan_dirs == []
        assert config.temp_directory is None


def test_empty_and_non_dict_files():
    """Test that empty files and non-mapping documents use defaults."""
    with tempfile.TemporaryDirectory() as tmpdir:
        empty = Path(tmpdir) / "empty.yml"
        empty.write_text("")
        listing = Path(tmpdir) / "list.yml"
        listing.write_text("- app\n- lib\n")

        assert Config(config_path=empty).scan_dirs == []
        assert Config(config_path=listing).scan_dirs == []


def test_defaults_are_not_shared():
    """Test that mutating one Config's lists does not leak into another."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "nonexistent.yml"
        first = Config(config_path=config_path)
        first.ignore_dirs.append("vendor")

        second = Config(config_path=config_path)

        assert "vendor" not in second.ignore_dirs
