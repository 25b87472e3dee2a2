"""Configuration file loading and environment variable expansion.

This module provides:
- Environment variable expansion for config values (${VAR} and ${VAR:-default})
- YAML config file loading with Pydantic validation
- Config file discovery (--config, $RELAYBOT_CONFIG, ./relaybot.yaml, XDG config path)

Secrets such as the database URL and the GroupMe bot id are normally kept
out of the file and referenced as ${DATABASE_URL} / ${GROUPME_BOT_ID}.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from relaybot.config.schema import Config
from relaybot.paths import get_default_config_path

CONFIG_ENV_VAR = "RELAYBOT_CONFIG"
LOCAL_CONFIG_NAME = "relaybot.yaml"


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        self.path = path
        super().__init__(message)


class ConfigNotFoundError(ConfigError):
    """Raised when no config file can be found."""


class ConfigValidationError(ConfigError):
    """Raised when config validation fails."""

    def __init__(
        self,
        message: str,
        path: Path | None = None,
        validation_errors: list[dict[str, Any]] | None = None,
    ) -> None:
        self.validation_errors = validation_errors or []
        super().__init__(message, path)


class EnvironmentVariableError(ConfigError):
    """Raised when a referenced environment variable is not set."""

    def __init__(self, var_name: str, path: Path | None = None) -> None:
        self.var_name = var_name
        message = (
            f"Environment variable '{var_name}' is not set. "
            f"Set it, or give a default with ${{{var_name}:-value}}."
        )
        super().__init__(message, path)


# ${VAR_NAME} or ${VAR_NAME:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def expand_env_vars(value: Any, *, strict: bool = True) -> Any:
    """Expand environment variable references in a value.

    Strings, and strings nested in lists and dicts, are expanded; other
    values are returned unchanged.

    Args:
        value: The value to expand
        strict: If True, raise for an unset variable without a default.
                If False, leave such a reference unchanged.

    Returns:
        The value with environment variables expanded

    Raises:
        EnvironmentVariableError: If strict and a variable is not set

    Examples:
        >>> os.environ["GROUPME_BOT_ID"] = "abc123"
        >>> expand_env_vars({"bot_id": "${GROUPME_BOT_ID}"})
        {'bot_id': 'abc123'}
        >>> expand_env_vars("${UNSET_VAR:-fallback}")
        'fallback'
    """
    if isinstance(value, str):
        return _expand_string(value, strict=strict)
    if isinstance(value, dict):
        return {k: expand_env_vars(v, strict=strict) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item, strict=strict) for item in value]
    return value


def _expand_string(s: str, *, strict: bool) -> str:
    def replace_match(match: re.Match[str]) -> str:
        var_name, default = match.group(1), match.group(2)
        value = os.environ.get(var_name)
        if value is not None:
            return value
        if default is not None:
            return default
        if strict:
            raise EnvironmentVariableError(var_name)
        return match.group(0)

    return ENV_VAR_PATTERN.sub(replace_match, s)


def discover_config_path(explicit_path: str | Path | None = None) -> Path:
    """Discover the config file path using priority order.

    Discovery order:
    1. explicit_path (from --config flag)
    2. $RELAYBOT_CONFIG environment variable
    3. ./relaybot.yaml (current directory)
    4. XDG config path ($XDG_CONFIG_HOME/relaybot/config.yaml)

    Args:
        explicit_path: Optional explicit path from CLI --config flag

    Returns:
        Path to the config file

    Raises:
        ConfigNotFoundError: If no config file is found at any location
    """
    if explicit_path:
        path = Path(explicit_path).expanduser().resolve()
        if path.exists():
            return path
        msg = f"Config file not found: {path}"
        raise ConfigNotFoundError(msg, path)

    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())
    candidates.append(Path.cwd() / LOCAL_CONFIG_NAME)
    candidates.append(get_default_config_path())

    for candidate in candidates:
        if candidate.exists():
            return candidate

    locations = "\n  - ".join(str(p) for p in candidates)
    msg = f"No config file found. Searched locations:\n  - {locations}"
    raise ConfigNotFoundError(msg)


def load_yaml(path: Path) -> dict[str, Any]:
    """Load and parse a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Parsed YAML as a dictionary (empty for an empty file)

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file: {e}", path) from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}", path) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Config file must contain a YAML mapping, got {type(data).__name__}",
            path,
        )
    return data


def load_config(
    path: str | Path | None = None,
    *,
    expand_env: bool = True,
) -> Config:
    """Load and validate configuration from a YAML file.

    Args:
        path: Optional explicit path to config file. If None, uses discovery.
        expand_env: Whether to expand ${VAR} environment variable references.

    Returns:
        Validated Config object

    Raises:
        ConfigNotFoundError: If no config file is found
        ConfigError: If the file cannot be read or parsed
        EnvironmentVariableError: If a required env var is not set
        ConfigValidationError: If the config fails schema validation

    Example:
        >>> config = load_config("~/.config/relaybot/config.yaml")
        >>> config.database.retry_delay
        5.0
    """
    config_path = discover_config_path(path)
    raw_config = load_yaml(config_path)

    if expand_env:
        try:
            raw_config = expand_env_vars(raw_config, strict=True)
        except EnvironmentVariableError as e:
            e.path = config_path
            raise

    try:
        return Config.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigValidationError(
            _describe_validation_errors(e),
            path=config_path,
            validation_errors=[dict(err) for err in e.errors()],
        ) from e


def _describe_validation_errors(error: ValidationError) -> str:
    # One "database.retry_delay: ..." line per problem
    lines = [
        f"  - {'.'.join(str(part) for part in err['loc']) or '(root)'}: {err['msg']}"
        for err in error.errors()
    ]
    return f"Config validation failed ({len(lines)} error(s)):\n" + "\n".join(lines)
