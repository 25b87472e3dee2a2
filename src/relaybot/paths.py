"""XDG base directory locations for relaybot.

- Config: $XDG_CONFIG_HOME/relaybot/config.yaml (~/.config/relaybot/config.yaml)
- State:  $XDG_DATA_HOME/relaybot/state.db (~/.local/share/relaybot/state.db)

Reference: https://specifications.freedesktop.org/basedir-spec/latest/
"""

from __future__ import annotations

import os
from pathlib import Path

APP_NAME = "relaybot"


def _xdg_home(env_var: str, *fallback: str) -> Path:
    value = os.environ.get(env_var)
    if value:
        return Path(value).expanduser()
    return Path.home().joinpath(*fallback)


def get_config_home() -> Path:
    """$XDG_CONFIG_HOME, or ~/.config when unset."""
    return _xdg_home("XDG_CONFIG_HOME", ".config")


def get_data_home() -> Path:
    """$XDG_DATA_HOME, or ~/.local/share when unset."""
    return _xdg_home("XDG_DATA_HOME", ".local", "share")


def get_default_config_path() -> Path:
    return get_config_home() / APP_NAME / "config.yaml"


def get_default_db_path() -> Path:
    return get_data_home() / APP_NAME / "state.db"


def get_default_database_url(*, create_dir: bool = True) -> str:
    """Return the SQLite URL used when no database URL is configured.

    With create_dir, the data directory is created so SQLite can create
    the file on first connect.
    """
    db_path = get_default_db_path()
    if create_dir:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{db_path}"
