"""Configuration module for relaybot.

This module provides configuration loading, validation, and schema definitions
for relaybot.

Usage:
    from relaybot.config import load_config, Config

    config = load_config()  # Auto-discovers config file
    config = load_config("/path/to/config.yaml")  # Explicit path
"""

from relaybot.config.loader import (
    ConfigError,
    ConfigNotFoundError,
    ConfigValidationError,
    EnvironmentVariableError,
    discover_config_path,
    load_config,
)
from relaybot.config.schema import Config, DatabaseConfig, GroupMeConfig, PollConfig

__all__ = [
    "Config",
    "ConfigError",
    "ConfigNotFoundError",
    "ConfigValidationError",
    "DatabaseConfig",
    "EnvironmentVariableError",
    "GroupMeConfig",
    "PollConfig",
    "discover_config_path",
    "load_config",
]
