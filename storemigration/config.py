"""Configuration management for storemigration.

Settings are read from a JSON file, then overridden by environment variables.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .database.copier import DEFAULT_BATCH_SIZE
from .database.migration import DEFAULT_IDENTITY_TABLE, DEFAULT_STORAGE_SUFFIX, MarkerPolicy
from .database.tables import DEFAULT_TABLES, TableOrder
from .exceptions import ConfigError, TableOrderError


@dataclass
class MigrationConfig:
    """Legacy store migration settings."""

    enabled: bool = True
    source_url: Optional[str] = None
    destination_path: Optional[str] = None
    storage_suffix: str = DEFAULT_STORAGE_SUFFIX
    batch_size: int = DEFAULT_BATCH_SIZE
    identity_table: str = DEFAULT_IDENTITY_TABLE
    marker_policy: str = MarkerPolicy.ALWAYS.value
    schema_locations: List[str] = field(default_factory=list)
    tables: List[str] = field(default_factory=lambda: list(DEFAULT_TABLES))

    def validate(self) -> None:
        """Raise ``ConfigError`` if any value is unusable."""
        if not isinstance(self.batch_size, int) or self.batch_size < 1:
            raise ConfigError(f"migration.batch_size must be a positive integer, got {self.batch_size!r}")
        try:
            MarkerPolicy(self.marker_policy)
        except ValueError:
            choices = ", ".join(policy.value for policy in MarkerPolicy)
            raise ConfigError(
                f"migration.marker_policy must be one of {choices}, got {self.marker_policy!r}"
            ) from None
        if not self.identity_table:
            raise ConfigError("migration.identity_table must not be empty")
        try:
            TableOrder(self.tables)
        except TableOrderError as exc:
            raise ConfigError(f"migration.tables is invalid: {exc}") from exc

    @property
    def policy(self) -> MarkerPolicy:
        return MarkerPolicy(self.marker_policy)

    @property
    def table_order(self) -> TableOrder:
        return TableOrder(self.tables)


@dataclass
class LoggingConfig:
    """Logging configuration settings."""

    level: str = "INFO"
    file: Optional[str] = None
    console: bool = True


class Config:
    """Main configuration class."""

    def __init__(self, config_file: Optional[str] = None):
        """Initialize configuration.

        Args:
            config_file: Path to configuration file
        """
        self.config_file = config_file or self._find_config_file()

        self.migration = MigrationConfig()
        self.logging = LoggingConfig()

        if self.config_file and os.path.exists(self.config_file):
            self.load(self.config_file)

        self._load_from_env()

    def _find_config_file(self) -> Optional[str]:
        """Find configuration file in standard locations."""
        search_paths = [
            "storemigration.json",
            "config.json",
            os.path.expanduser("~/.storemigration/config.json"),
        ]

        for path in search_paths:
            if os.path.exists(path):
                return path

        return None

    def load(self, config_file: str):
        """Load configuration from file.

        Args:
            config_file: Path to configuration file

        Raises:
            ConfigError: If the file is not valid JSON or has unknown keys
        """
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigError(f"Cannot read configuration file {config_file}: {exc}") from exc

        try:
            if "migration" in data:
                self.migration = MigrationConfig(**data["migration"])
            if "logging" in data:
                self.logging = LoggingConfig(**data["logging"])
        except TypeError as exc:
            raise ConfigError(f"Invalid configuration in {config_file}: {exc}") from exc

    def save(self, config_file: Optional[str] = None):
        """Save configuration to file."""
        config_file = config_file or self.config_file or "storemigration.json"
        with open(config_file, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2)

    def _load_from_env(self):
        """Load configuration from environment variables."""
        if "STOREMIGRATION_SOURCE_URL" in os.environ:
            self.migration.source_url = os.environ["STOREMIGRATION_SOURCE_URL"]
        if "STOREMIGRATION_DESTINATION_PATH" in os.environ:
            self.migration.destination_path = os.environ["STOREMIGRATION_DESTINATION_PATH"]
        if "STOREMIGRATION_BATCH_SIZE" in os.environ:
            value = os.environ["STOREMIGRATION_BATCH_SIZE"]
            try:
                self.migration.batch_size = int(value)
            except ValueError:
                raise ConfigError(f"STOREMIGRATION_BATCH_SIZE must be an integer, got {value!r}") from None
        if "STOREMIGRATION_MARKER_POLICY" in os.environ:
            self.migration.marker_policy = os.environ["STOREMIGRATION_MARKER_POLICY"].strip().lower()
        if "STOREMIGRATION_ENABLED" in os.environ:
            self.migration.enabled = os.environ["STOREMIGRATION_ENABLED"].lower() == "true"

        if "STOREMIGRATION_LOG_LEVEL" in os.environ:
            self.logging.level = os.environ["STOREMIGRATION_LOG_LEVEL"]

    def validate(self) -> None:
        self.migration.validate()

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "migration": dict(self.migration.__dict__),
            "logging": dict(self.logging.__dict__),
        }
