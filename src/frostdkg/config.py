"""Configuration management for the frostdkg command line."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import toml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class FrostConfig:
    """Per-party settings."""

    # Directory holding this party's persisted round state
    state_dir: Path = Path(".frost_state")

    # Namespace for one threshold key, so several keys can share a state dir
    key_id: str = "default"

    # This party's index, used by the signing commands when --my-index is omitted
    my_index: Optional[int] = None

    log_level: str = "WARNING"

    @classmethod
    def from_file(cls, config_path: Path) -> "FrostConfig":
        """Load configuration from a TOML file.

        Args:
            config_path: Path to configuration file

        Returns:
            FrostConfig instance

        Raises:
            ConfigurationError: If the file is missing or invalid
        """
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        logger.info(f"Loading configuration from {config_path}")

        try:
            with open(config_path, "r") as f:
                config_data = toml.load(f)
        except (OSError, toml.TomlDecodeError) as e:
            raise ConfigurationError(f"Failed to parse configuration file: {e}")

        try:
            my_index = config_data.get("my_index")
            return cls(
                state_dir=Path(config_data.get("state_dir", ".frost_state")),
                key_id=str(config_data.get("key_id", "default")),
                my_index=int(my_index) if my_index is not None else None,
                log_level=str(config_data.get("log_level", "WARNING")),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @classmethod
    def from_env(cls) -> "FrostConfig":
        """Load configuration from FROST_* environment variables."""
        my_index = os.getenv("FROST_MY_INDEX")
        try:
            return cls(
                state_dir=Path(os.getenv("FROST_STATE_DIR", ".frost_state")),
                key_id=os.getenv("FROST_KEY_ID", "default"),
                my_index=int(my_index) if my_index else None,
                log_level=os.getenv("LOG_LEVEL", "WARNING"),
            )
        except ValueError as e:
            raise ConfigurationError(f"FROST_MY_INDEX must be an integer: {e}")

    def validate(self) -> None:
        """Validate configuration.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not self.key_id:
            raise ConfigurationError("key_id must not be empty")

        if self.my_index is not None and self.my_index < 1:
            raise ConfigurationError("my_index must be at least 1")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigurationError(
                f"log_level must be one of {', '.join(LOG_LEVELS)}, got {self.log_level!r}"
            )
