"""
SecureComm Configuration Management

Handles loading and validation of configuration from TOML file, and
applying the logging settings.

Example config.toml:

    log_level = "DEBUG"

    [channel]
    replay_window = 2048
    rekey_after_messages = 1000000
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional
from dataclasses import dataclass, field

import toml


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Counter part of a nonce is 11 bytes
MAX_NONCE_COUNTER = (1 << 88) - 1

# Largest replay window accepted by validate()
MAX_REPLAY_WINDOW = 1 << 16


@dataclass
class ChannelConfig:
    """Secure channel configuration."""
    replay_window: int = 1024  # counters remembered per receive direction
    rekey_after_messages: int = 1 << 32  # soft limit before re-handshake


@dataclass
class Config:
    """
    Complete SecureComm configuration.
    """
    # Sub-configurations
    channel: ChannelConfig = field(default_factory=ChannelConfig)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    # Source file (None = defaults)
    config_path: Optional[Path] = None

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> 'Config':
        """
        Load configuration from file.

        Args:
            config_path: Path to a TOML file; None or a missing file
                gives the defaults

        Returns:
            Loaded configuration

        Raises:
            ValueError: If the file cannot be parsed
        """
        config = cls()
        if config_path is None:
            return config

        path = Path(config_path)
        config.config_path = path

        if not path.exists():
            return config

        try:
            data = toml.load(path)
        except toml.TomlDecodeError as e:
            raise ValueError(f"Invalid configuration file {path}: {e}") from e

        config._apply_dict(data)
        return config

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        """Apply dictionary data to config."""
        # Top-level settings
        if "log_level" in data:
            self.log_level = str(data["log_level"]).upper()
        if "log_file" in data:
            self.log_file = Path(data["log_file"])

        # Channel config
        if "channel" in data:
            c = data["channel"]
            if not isinstance(c, dict):
                raise ValueError("[channel] must be a table")
            if "replay_window" in c:
                self.channel.replay_window = int(c["replay_window"])
            if "rekey_after_messages" in c:
                self.channel.rekey_after_messages = int(c["rekey_after_messages"])

    def validate(self) -> None:
        """
        Validate configuration.

        Raises:
            ValueError: If configuration is invalid
        """
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.log_level}")

        if self.channel.replay_window < 1 or self.channel.replay_window > MAX_REPLAY_WINDOW:
            raise ValueError(f"Invalid replay window: {self.channel.replay_window}")

        if self.channel.rekey_after_messages < 1 or self.channel.rekey_after_messages > MAX_NONCE_COUNTER:
            raise ValueError(f"Invalid rekey threshold: {self.channel.rekey_after_messages}")

    def configure_logging(self) -> None:
        """Apply log_level and log_file to the root logger."""
        handlers = [logging.StreamHandler()]
        if self.log_file is not None:
            handlers.append(logging.FileHandler(self.log_file))

        logging.basicConfig(
            level=getattr(logging, self.log_level),
            format=LOG_FORMAT,
            handlers=handlers,
            force=True,
        )
