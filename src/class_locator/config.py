# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Configuration loading and validation for the class locator."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = ".class_locator.yml"


class ConfigurationError(Exception):
    """Raised when the loader is used in a way its configuration does not allow.

    Examples: a cache operation before a temp directory is set, or changing
    the scan configuration after the index has been loaded.
    """

    pass


class Config:
    """Configuration for a ClassLoader.

    Loads configuration from .class_locator.yml with validation and defaults.
    Invalid values are logged and replaced by their defaults.
    """

    DEFAULTS = {
        "scan_dirs": [],
        "exclude_dirs": [],
        "accept_files": ["*.php"],
        "ignore_dirs": [".*", "*.old", "*.bak", "*.tmp", "temp"],
        "temp_directory": "",  # Empty means not configured
        "auto_rebuild": True,
        "report_parse_errors": True,
        "case_sensitive": False,
        "lock_timeout_seconds": 0,  # 0 blocks indefinitely
        "max_refresh_depth": 32,
    }

    _LIST_KEYS = ("scan_dirs", "exclude_dirs", "accept_files", "ignore_dirs")

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_path: Path to configuration file. If None, uses default location.
        """
        if config_path is None:
            config_path = Path.cwd() / DEFAULT_CONFIG_FILENAME

        self.config_path = config_path
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load and validate configuration from file."""
        self._config = {key: self._copy(value) for key, value in self.DEFAULTS.items()}

        if not self.config_path.exists():
            logger.info(f"Configuration file not found at {self.config_path}, using defaults")
            return

        try:
            with open(self.config_path, encoding="utf-8") as f:
                loaded_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.warning(
                f"Error parsing configuration file {self.config_path}: {e}, using defaults"
            )
            return
        except OSError as e:
            logger.warning(
                f"Error reading configuration file {self.config_path}: {e}, using defaults"
            )
            return

        if loaded_config is None:
            logger.warning("Configuration file is empty, using defaults")
            return

        if not isinstance(loaded_config, dict):
            logger.warning(
                f"Configuration file must contain a YAML dictionary, "
                f"got {type(loaded_config)}, using defaults"
            )
            return

        self._validate_and_merge(loaded_config)

    @staticmethod
    def _copy(value: Any) -> Any:
        return list(value) if isinstance(value, list) else value

    def _validate_and_merge(self, loaded_config: Dict[str, Any]) -> None:
        """Validate loaded configuration and merge with defaults."""
        for key, value in loaded_config.items():
            if key not in self.DEFAULTS:
                logger.warning(f"Unknown configuration parameter '{key}', ignoring")
                continue

            if not self._validate_parameter(key, value):
                logger.warning(
                    f"Invalid value for '{key}': {value}, using default {self.DEFAULTS[key]}"
                )
                continue

            self._config[key] = value

    def _validate_parameter(self, key: str, value: Any) -> bool:
        """Validate a configuration parameter.

        Returns:
            True if valid, False if invalid
        """
        expected_type = type(self.DEFAULTS[key])
        # bool is a subclass of int; keep them apart
        if isinstance(value, bool) and expected_type is not bool:
            return False

        if key == "lock_timeout_seconds":
            return isinstance(value, (int, float)) and value >= 0

        if not isinstance(value, expected_type):
            return False

        if key in self._LIST_KEYS:
            return all(isinstance(item, str) and item for item in value)
        elif key == "max_refresh_depth":
            return value > 0

        return True

    @property
    def scan_dirs(self) -> List[str]:
        """Directories (or single files) to index."""
        value = self._config["scan_dirs"]
        assert isinstance(value, list)
        return value

    @property
    def exclude_dirs(self) -> List[str]:
        """Directories excluded from indexing."""
        value = self._config["exclude_dirs"]
        assert isinstance(value, list)
        return value

    @property
    def accept_files(self) -> List[str]:
        """Glob patterns of files to scan."""
        value = self._config["accept_files"]
        assert isinstance(value, list)
        return value

    @property
    def ignore_dirs(self) -> List[str]:
        """Glob patterns of directory names to skip."""
        value = self._config["ignore_dirs"]
        assert isinstance(value, list)
        return value

    @property
    def temp_directory(self) -> Optional[Path]:
        """Cache directory, or None if not configured."""
        value = self._config["temp_directory"]
        assert isinstance(value, str)
        return Path(value) if value else None

    @property
    def auto_rebuild(self) -> bool:
        """Whether lookups may rescan the source tree."""
        value = self._config["auto_rebuild"]
        assert isinstance(value, bool)
        return value

    @property
    def report_parse_errors(self) -> bool:
        """Whether malformed files raise instead of being skipped."""
        value = self._config["report_parse_errors"]
        assert isinstance(value, bool)
        return value

    @property
    def case_sensitive(self) -> bool:
        """Whether type names are keyed case-sensitively."""
        value = self._config["case_sensitive"]
        assert isinstance(value, bool)
        return value

    @property
    def lock_timeout_seconds(self) -> Optional[float]:
        """Seconds to wait for the cache lock, None to wait indefinitely."""
        value = self._config["lock_timeout_seconds"]
        assert isinstance(value, (int, float))
        return float(value) if value > 0 else None

    @property
    def max_refresh_depth(self) -> int:
        """Longest chain of stale files refreshed for one update."""
        value = self._config["max_refresh_depth"]
        assert isinstance(value, int)
        return value
