"""State management module for relaybot.

This module provides relational state persistence for:
- The one-time startup notice flag
- Poll cursors (polling position tracking)
- OAuth token history (resuming authorization after restarts)

Usage:
    from relaybot.state import StateStore

    store = StateStore("sqlite:///state.db")
    since = store.latest_poll_cursor()
    store.save_poll_cursor()
"""

from relaybot.state.connection import (
    AcquireCancelledError,
    ConnectionManager,
    DatabaseUnusableError,
)
from relaybot.state.retention import prune
from relaybot.state.schema import CURRENT_SCHEMA_VERSION, migrate_database
from relaybot.state.store import Lookup, LookupStatus, StateStore, Stream
from relaybot.state.token import TokenRecord

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "AcquireCancelledError",
    "ConnectionManager",
    "DatabaseUnusableError",
    "Lookup",
    "LookupStatus",
    "StateStore",
    "Stream",
    "TokenRecord",
    "migrate_database",
    "prune",
]
