"""Configuration management for confvault."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

DEFAULT_CONFIG_FILE = Path("~/.config/confvault/config.yaml")

DEFAULT_CONFIG: Dict[str, Any] = {
    "repository_dir": ".confvault",
    "storage": "file",
    "backup_suffix": ".bak",
    "context_lines": 3,
    "log_file": None,
}

STORAGE_TYPES = ("file", "sqlite")


class Config:
    """Configuration class for confvault.

    Values start from :data:`DEFAULT_CONFIG` and are overridden by an
    optional YAML file.

    Attributes:
        repository_dir: Repository directory, relative to the working
            directory unless absolute.
        storage: Backend used by ``init`` when none is requested.
        backup_suffix: Suffix of the copy made before a restore overwrites
            a file.
        context_lines: Unchanged lines shown around each change in diffs.
        log_file: Optional log file path.
    """

    def __init__(self, config_file: Optional[Path] = None) -> None:
        """Initialize configuration."""
        self.config: Dict[str, Any] = {}
        self.repository_dir: str = ".confvault"
        self.storage: str = "file"
        self.backup_suffix: str = ".bak"
        self.context_lines: int = 3
        self.log_file: Optional[str] = None
        self.load_config(config_file)

    def load_config(self, config_file: Optional[Path] = None) -> None:
        """Load configuration from file.

        Args:
            config_file: YAML file to merge over the defaults. When omitted,
                :data:`DEFAULT_CONFIG_FILE` is used if it exists.

        Raises:
            ValueError: If the file cannot be parsed or holds invalid values.
        """
        self._merge_config(DEFAULT_CONFIG)

        if config_file is None:
            default_file = DEFAULT_CONFIG_FILE.expanduser()
            if not default_file.exists():
                return
            config_file = default_file

        try:
            with open(config_file, "r") as f:
                user_config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ValueError(f"Error loading config file {config_file}: {e}") from e
        if user_config:
            self._merge_config(user_config)

    def _merge_config(self, config: Dict[str, Any]) -> None:
        """Merge configuration with current configuration."""
        if not isinstance(config, dict):
            raise ValueError("Configuration must be a dictionary")

        self.config.update(config)

        if "repository_dir" in config:
            if not isinstance(config["repository_dir"], str):
                raise ValueError("repository_dir must be a string")
            self.repository_dir = config["repository_dir"]

        if "storage" in config:
            if config["storage"] not in STORAGE_TYPES:
                raise ValueError(f"storage must be one of {', '.join(STORAGE_TYPES)}")
            self.storage = config["storage"]

        if "backup_suffix" in config:
            suffix = config["backup_suffix"]
            if not isinstance(suffix, str) or not suffix:
                raise ValueError("backup_suffix must be a non-empty string")
            self.backup_suffix = suffix

        if "context_lines" in config:
            lines = config["context_lines"]
            if not isinstance(lines, int) or isinstance(lines, bool) or lines < 0:
                raise ValueError("context_lines must be a non-negative integer")
            self.context_lines = lines

        if "log_file" in config:
            if config["log_file"] is not None and not isinstance(config["log_file"], str):
                raise ValueError("log_file must be a string")
            self.log_file = config["log_file"]

    def validate(self) -> List[str]:
        """Validate configuration."""
        errors = []

        if not isinstance(self.repository_dir, str) or not self.repository_dir:
            errors.append("repository_dir must be a non-empty string")

        if self.storage not in STORAGE_TYPES:
            errors.append(f"storage {self.storage} is not supported")

        if not isinstance(self.backup_suffix, str) or not self.backup_suffix:
            errors.append("backup_suffix must be a non-empty string")

        if not isinstance(self.context_lines, int) or self.context_lines < 0:
            errors.append("context_lines must be a non-negative integer")

        return errors

    def repository_path(self, base: Optional[Path] = None) -> Path:
        """Resolve the repository directory against ``base`` (default: cwd)."""
        path = Path(self.repository_dir).expanduser()
        if not path.is_absolute():
            path = (base or Path.cwd()) / path
        return path

    def load_from_dict(self, config_data: Dict[str, Any]) -> None:
        """Load configuration from a dictionary.

        Args:
            config_data: Dictionary containing configuration data.

        Example:
            ```python
            config = Config()
            config.load_from_dict({"repository_dir": "~/.confvault", "storage": "sqlite"})
            ```
        """
        self._merge_config(config_data)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value.

        Args:
            key: The configuration key to get.
            default: The default value to return if the key is not found.

        Returns:
            The configuration value, or the default if not found.
        """
        return self.config.get(key, default)
