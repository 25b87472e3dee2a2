"""Shared pytest fixtures for relaybot tests.

This module provides common fixtures for:
- Temporary config files
- Test database instances
- Sample OAuth token responses
"""

from __future__ import annotations

import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest
import structlog
import yaml

from relaybot.state import StateStore, TokenRecord

if TYPE_CHECKING:
    from collections.abc import Callable, Generator


# ============================================================================
# Logging Isolation
# ============================================================================


@pytest.fixture(autouse=True)
def _reset_structlog() -> Generator[None, None, None]:
    """Undo any structlog configuration a test applied (e.g. via the CLI).

    configure_logging binds structlog to the sys.stderr of that moment, which
    pytest closes after the test; later tests would then log to a closed file.
    """
    yield
    structlog.reset_defaults()


# ============================================================================
# Time Fixtures
# ============================================================================


@pytest.fixture
def frozen_time() -> datetime:
    """Return a fixed datetime for deterministic tests.

    Use with freezegun's freeze_time decorator:

        @freeze_time("2026-01-10T15:30:00Z")
        def test_something(frozen_time):
            assert datetime.now(UTC) == frozen_time
    """
    return datetime(2026, 1, 10, 15, 30, 0, tzinfo=UTC)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def database_url(temp_dir: Path) -> str:
    """Return a SQLite URL for a database file in the temp directory."""
    return f"sqlite:///{temp_dir / 'state.db'}"


@pytest.fixture
def minimal_config(database_url: str) -> dict[str, Any]:
    """Return a minimal valid configuration dictionary."""
    return {
        "version": 1,
        "database": {"url": database_url},
    }


@pytest.fixture
def config_with_groupme(database_url: str) -> dict[str, Any]:
    """Return a configuration with a GroupMe bot."""
    return {
        "version": 1,
        "database": {"url": database_url, "retry_delay": 0.1},
        "groupme": {"bot_id": "bot-0123456789"},
        "poll": {"interval": 60, "startup_message": "Hello from the bot"},
    }


@pytest.fixture
def write_config(temp_dir: Path) -> Callable[..., Path]:
    """Factory fixture to write config files.

    Args:
        config: Configuration dictionary
        filename: Name of the config file (default: config.yaml)

    Returns:
        Path to the written config file
    """

    def _write(config: dict[str, Any], filename: str = "config.yaml") -> Path:
        path = temp_dir / filename
        with path.open("w") as f:
            yaml.safe_dump(config, f)
        return path

    return _write


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def state_store(database_url: str) -> Generator[StateStore, None, None]:
    """Create a StateStore backed by a temporary SQLite file.

    Yields:
        StateStore instance (closed after test)
    """
    store = StateStore(database_url, retry_delay=0.01)
    yield store
    store.close()


# ============================================================================
# Token Fixtures
# ============================================================================


@pytest.fixture
def token_response() -> dict[str, Any]:
    """Return a sample OAuth2 token endpoint response."""
    return {
        "access_token": "A=abc.def'ghi\"jkl",
        "refresh_token": "AOtyVl5dYoFJ'refresh",
        "token_type": "bearer",
        "expires_in": 3600,
        "scope": "fspt-r",
        "xoauth_yahoo_guid": "GUID123",
    }


@pytest.fixture
def token_record(token_response: dict[str, Any]) -> TokenRecord:
    """Return a TokenRecord built from the sample token response."""
    return TokenRecord.from_response(token_response)
