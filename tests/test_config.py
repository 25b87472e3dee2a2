"""Tests for configuration loading and validation."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from relaybot.config import (
    ConfigError,
    ConfigNotFoundError,
    ConfigValidationError,
    EnvironmentVariableError,
    discover_config_path,
    load_config,
)
from relaybot.config.loader import expand_env_vars
from relaybot.config.schema import GROUPME_POST_URL, DatabaseConfig

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


class TestLoadConfig:
    def test_minimal(
        self,
        minimal_config: dict[str, Any],
        write_config: Callable[..., Path],
        database_url: str,
    ) -> None:
        cfg = load_config(write_config(minimal_config))

        assert cfg.database.get_url() == database_url
        assert cfg.database.retry_delay == 5.0
        assert cfg.database.history_cap == 20
        assert cfg.groupme is None
        assert cfg.poll.interval == 60

    def test_groupme_defaults(
        self, config_with_groupme: dict[str, Any], write_config: Callable[..., Path]
    ) -> None:
        cfg = load_config(write_config(config_with_groupme))

        assert cfg.groupme is not None
        assert cfg.groupme.bot_id == "bot-0123456789"
        assert cfg.groupme.api_url == GROUPME_POST_URL
        assert cfg.groupme.max_message_length == 1000

    def test_expands_env_vars(
        self, write_config: Callable[..., Path], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("DATABASE_URL", "postgresql://bot:pw@db/bot")
        monkeypatch.setenv("GROUPME_BOT_ID", "abc123")
        path = write_config({
            "version": 1,
            "database": {"url": "${DATABASE_URL}"},
            "groupme": {"bot_id": "${GROUPME_BOT_ID}"},
        })

        cfg = load_config(path)

        assert cfg.database.url == "postgresql://bot:pw@db/bot"
        assert cfg.groupme.bot_id == "abc123"

    def test_env_default(
        self,
        write_config: Callable[..., Path],
        monkeypatch: pytest.MonkeyPatch,
        database_url: str,
    ) -> None:
        monkeypatch.delenv("RELAYBOT_TEST_DB", raising=False)
        path = write_config({
            "version": 1,
            "database": {"url": "${RELAYBOT_TEST_DB:-" + database_url + "}"},
        })

        assert load_config(path).database.url == database_url

    def test_missing_env_var(
        self, write_config: Callable[..., Path], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("GROUPME_BOT_ID", raising=False)
        path = write_config({"version": 1, "groupme": {"bot_id": "${GROUPME_BOT_ID}"}})

        with pytest.raises(EnvironmentVariableError) as exc_info:
            load_config(path)

        assert exc_info.value.var_name == "GROUPME_BOT_ID"
        assert exc_info.value.path == path

    def test_unknown_key_rejected(self, write_config: Callable[..., Path]) -> None:
        path = write_config({"version": 1, "database": {"host": "db"}})

        with pytest.raises(ConfigValidationError) as exc_info:
            load_config(path)

        assert "database.host" in str(exc_info.value)
        assert exc_info.value.validation_errors

    def test_wrong_version(self, write_config: Callable[..., Path]) -> None:
        with pytest.raises(ConfigValidationError):
            load_config(write_config({"version": 2}))

    def test_retry_delay_bounds(self, write_config: Callable[..., Path]) -> None:
        path = write_config({"version": 1, "database": {"retry_delay": 0}})

        with pytest.raises(ConfigValidationError):
            load_config(path)

    def test_poll_source(self, write_config: Callable[..., Path]) -> None:
        path = write_config({"version": 1, "poll": {"source": "alerts.upstream:fetch"}})

        assert load_config(path).poll.source == "alerts.upstream:fetch"

    def test_poll_source_needs_function(self, write_config: Callable[..., Path]) -> None:
        path = write_config({"version": 1, "poll": {"source": "alerts.upstream"}})

        with pytest.raises(ConfigValidationError, match=r"poll\.source"):
            load_config(path)

    def test_not_a_mapping(self, temp_dir: Path) -> None:
        path = temp_dir / "config.yaml"
        path.write_text("- one\n- two\n")

        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    def test_invalid_yaml(self, temp_dir: Path) -> None:
        path = temp_dir / "config.yaml"
        path.write_text("version: [1\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)


class TestDatabaseConfig:
    def test_rejects_url_without_scheme(self) -> None:
        with pytest.raises(ValueError, match="database URL"):
            DatabaseConfig(url="localhost:5432/bot")

    def test_empty_url_uses_default(
        self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("XDG_DATA_HOME", str(temp_dir))

        url = DatabaseConfig(url="").get_url()

        assert url == f"sqlite:///{temp_dir / 'relaybot' / 'state.db'}"
        assert (temp_dir / "relaybot").is_dir()

    def test_describing_default_url_creates_nothing(
        self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("XDG_DATA_HOME", str(temp_dir))

        url = DatabaseConfig().get_url(create_dir=False)

        assert url.endswith("relaybot/state.db")
        assert not (temp_dir / "relaybot").exists()


class TestDiscovery:
    def test_explicit_missing(self, temp_dir: Path) -> None:
        with pytest.raises(ConfigNotFoundError):
            discover_config_path(temp_dir / "nope.yaml")

    def test_env_var(
        self,
        minimal_config: dict[str, Any],
        write_config: Callable[..., Path],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        path = write_config(minimal_config, "custom.yaml")
        monkeypatch.setenv("RELAYBOT_CONFIG", str(path))

        assert discover_config_path() == path.resolve()

    def test_current_directory(
        self,
        minimal_config: dict[str, Any],
        write_config: Callable[..., Path],
        temp_dir: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        path = write_config(minimal_config, "relaybot.yaml")
        monkeypatch.delenv("RELAYBOT_CONFIG", raising=False)
        monkeypatch.chdir(temp_dir)

        assert discover_config_path().resolve() == path.resolve()

    def test_nothing_found(
        self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("RELAYBOT_CONFIG", raising=False)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(temp_dir / "xdg"))
        monkeypatch.chdir(temp_dir)

        with pytest.raises(ConfigNotFoundError, match="Searched locations"):
            discover_config_path()


class TestExpandEnvVars:
    def test_nested(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BOT", "b1")

        assert expand_env_vars({"a": ["${BOT}", 3]}) == {"a": ["b1", 3]}

    def test_non_strict_leaves_reference(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("UNSET_VAR", raising=False)

        assert expand_env_vars("x ${UNSET_VAR}", strict=False) == "x ${UNSET_VAR}"
