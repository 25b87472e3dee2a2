"""Persistent state store for the notification bot.

This module provides the main StateStore class that handles:
- The one-time startup notice flag
- The poll cursor (how far upstream data has been processed)
- OAuth token history (resuming authorization across restarts)
- Retention pruning of the capped streams before they are read

Store failures never reach the caller. Reads fall back to documented
defaults and failed writes are logged and dropped, so a flaky database
degrades durability instead of crashing a long-running bot.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from relaybot.state.connection import (
    DEFAULT_RETRY_DELAY,
    AcquireCancelledError,
    ConnectionManager,
)
from relaybot.state.retention import DEFAULT_CAP, count_rows, prune
from relaybot.state.schema import (
    migrate_database,
    poll_cursor,
    startup_notice,
    token_history,
)
from relaybot.state.token import TokenRecord

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from sqlalchemy import Column, Connection, Executable, RowMapping, Table

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors converted into fallbacks instead of being raised
STORE_ERRORS = (SQLAlchemyError, AcquireCancelledError)


class Stream(str, Enum):
    """The logical record streams kept by the store."""

    STARTUP_NOTICE = "startup_notice"
    POLL_CURSOR = "poll_cursor"
    TOKEN_HISTORY = "token_history"


STREAM_TABLES: dict[Stream, Table] = {
    Stream.STARTUP_NOTICE: startup_notice,
    Stream.POLL_CURSOR: poll_cursor,
    Stream.TOKEN_HISTORY: token_history,
}


class LookupStatus(str, Enum):
    """Outcome of reading the latest row of a stream."""

    FOUND = "found"
    ABSENT = "absent"
    FAILED = "failed"


@dataclass(frozen=True)
class Lookup(Generic[T]):
    """Result of a read, distinguishing absence from failure.

    Attributes:
        status: Whether a row was found, missing, or the read failed
        value: The decoded value when status is FOUND
        error: Error text when status is FAILED
    """

    status: LookupStatus
    value: T | None = None
    error: str | None = None

    @property
    def found(self) -> bool:
        return self.status is LookupStatus.FOUND

    def value_or(self, default: T) -> T:
        """Return the value if found, else ``default``."""
        if self.status is LookupStatus.FOUND:
            return self.value  # type: ignore[return-value]
        return default


class StateStore:
    """Relational state persistence for the three bot streams.

    All streams share one connection owned by a ConnectionManager; it is
    opened on first use and the schema is migrated at that point.
    Statements on the shared connection are serialized by a lock.

    Args:
        database_url: SQLAlchemy database URL
        history_cap: Row cap of the poll cursor and token history tables
        retry_delay: Seconds between connection attempts
        stop_event: Setting this event cancels a pending reconnect loop

    Example:
        >>> store = StateStore("sqlite:///state.db")
        >>> if not store.was_startup_notice_sent():
        ...     store.mark_startup_notice_sent()
        >>> since = store.latest_poll_cursor()
    """

    def __init__(
        self,
        database_url: str,
        *,
        history_cap: int = DEFAULT_CAP,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        stop_event: threading.Event | None = None,
    ) -> None:
        self.history_cap = history_cap
        self._connections = ConnectionManager(
            database_url,
            retry_delay=retry_delay,
            on_connect=migrate_database,
            stop_event=stop_event,
        )
        self._lock = threading.RLock()

    @property
    def connections(self) -> ConnectionManager:
        """The connection manager backing this store."""
        return self._connections

    def acquire(self) -> Connection:
        """Return the shared connection, blocking until one is available."""
        return self._connections.acquire()

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Context manager running one statement group in a transaction.

        Yields:
            The shared database connection

        Raises:
            SQLAlchemyError: Re-raised after rollback
            AcquireCancelledError: If connecting was cancelled
        """
        conn = self._connections.acquire()
        with self._lock:
            try:
                with conn.begin():
                    yield conn
            except SQLAlchemyError as e:
                if getattr(e, "connection_invalidated", False):
                    self._connections.reset()
                raise

    def close(self) -> None:
        """Close the database connection."""
        self._connections.close()

    # -------------------------------------------------------------------------
    # Startup Notice Operations
    # -------------------------------------------------------------------------

    def lookup_startup_notice(self) -> Lookup[bool]:
        """Read the most recently inserted startup notice flag."""
        query = (
            select(startup_notice.c.received)
            .order_by(startup_notice.c.id.desc())
            .limit(1)
        )
        return self._read_latest(
            Stream.STARTUP_NOTICE, query, lambda row: bool(row["received"])
        )

    def was_startup_notice_sent(self) -> bool:
        """Check whether the one-time startup notice was already delivered.

        Returns:
            The latest flag, or False if none is stored or the read failed
        """
        return self.lookup_startup_notice().value_or(False)

    def mark_startup_notice_sent(self) -> bool:
        """Record that the startup notice was delivered.

        Repeated calls append repeated rows; only the latest is read.

        Returns:
            True if the row was written, False if the write was dropped
        """
        logger.info("Marking startup notice sent")
        return self._write(
            Stream.STARTUP_NOTICE,
            startup_notice.insert().values(
                received=True,
                inserted_at=_now_ms(),
            ),
        )

    # -------------------------------------------------------------------------
    # Poll Cursor Operations
    # -------------------------------------------------------------------------

    def lookup_poll_cursor(self) -> Lookup[int]:
        """Prune, then read the latest poll cursor (seconds since epoch)."""
        self._prune(Stream.POLL_CURSOR, poll_cursor.c.cursor_time)
        query = (
            select(poll_cursor.c.cursor_time)
            .order_by(poll_cursor.c.cursor_time.desc(), poll_cursor.c.id.desc())
            .limit(1)
        )
        return self._read_latest(
            Stream.POLL_CURSOR, query, lambda row: int(row["cursor_time"])
        )

    def latest_poll_cursor(self) -> int:
        """Return how far upstream data has been processed.

        With nothing stored (or on failure) this is the current time, so a
        first run starts from now instead of reprocessing all history.

        Returns:
            Cursor time in seconds since epoch
        """
        return self.lookup_poll_cursor().value_or(_now_seconds())

    def save_poll_cursor(self) -> int | None:
        """Store the current time as the new poll cursor.

        Returns:
            The saved cursor in seconds, or None if the write was dropped
        """
        cursor_time = _now_seconds()
        logger.info("Saving poll cursor %d", cursor_time)
        written = self._write(
            Stream.POLL_CURSOR,
            poll_cursor.insert().values(cursor_time=cursor_time),
        )
        return cursor_time if written else None

    # -------------------------------------------------------------------------
    # Token History Operations
    # -------------------------------------------------------------------------

    def lookup_token_record(self) -> Lookup[tuple[int, TokenRecord]]:
        """Prune, then read the most recently stored token grant."""
        self._prune(Stream.TOKEN_HISTORY, token_history.c.retrieved_at)
        query = (
            select(token_history)
            .order_by(token_history.c.retrieved_at.desc(), token_history.c.id.desc())
            .limit(1)
        )
        return self._read_latest(
            Stream.TOKEN_HISTORY,
            query,
            lambda row: (int(row["retrieved_at"]), TokenRecord.from_row(row)),
        )

    def latest_token_record(self) -> tuple[int, TokenRecord] | None:
        """Return the latest stored token grant.

        Returns:
            Tuple of (issued_at_ms, token), or None when no credentials are
            stored or the read failed; the caller should then obtain a
            fresh grant
        """
        return self.lookup_token_record().value_or(None)

    def save_token_record(self, token: TokenRecord) -> int | None:
        """Append a token grant, stamped with the current time in ms.

        Args:
            token: Token grant to store

        Returns:
            The retrieved_at timestamp in ms, or None if the write was dropped
        """
        retrieved_at = _now_ms()
        logger.info("Saving token data")
        written = self._write(
            Stream.TOKEN_HISTORY,
            token_history.insert().values(retrieved_at=retrieved_at, **token.to_row()),
        )
        return retrieved_at if written else None

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def count_rows(self, stream: Stream) -> int | None:
        """Return the number of rows in a stream, or None on failure."""
        try:
            with self.transaction() as conn:
                return count_rows(conn, STREAM_TABLES[stream])
        except STORE_ERRORS as e:
            logger.warning("Failed to count %s rows: %s", stream.value, e)
            return None

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _prune(self, stream: Stream, order_column: Column) -> int:
        """Trim a capped stream. Failures are logged and ignored."""
        try:
            with self.transaction() as conn:
                return prune(conn, STREAM_TABLES[stream], order_column, self.history_cap)
        except STORE_ERRORS as e:
            logger.warning("Failed to prune %s: %s", stream.value, e)
            return 0

    def _read_latest(
        self,
        stream: Stream,
        query: Executable,
        decode: Callable[[RowMapping], T],
    ) -> Lookup[T]:
        try:
            with self.transaction() as conn:
                row = conn.execute(query).mappings().first()
                value = decode(row) if row is not None else None
        except STORE_ERRORS as e:
            logger.warning("Failed to read latest %s: %s", stream.value, e)
            return Lookup(LookupStatus.FAILED, error=str(e))

        if row is None:
            logger.debug("No %s rows stored yet", stream.value)
            return Lookup(LookupStatus.ABSENT)
        return Lookup(LookupStatus.FOUND, value=value)

    def _write(self, stream: Stream, statement: Any) -> bool:
        try:
            with self.transaction() as conn:
                conn.execute(statement)
        except STORE_ERRORS as e:
            logger.warning("Failed to write %s row, dropping it: %s", stream.value, e)
            return False
        logger.debug("Wrote %s row", stream.value)
        return True


def _now_seconds() -> int:
    return int(time.time())


def _now_ms() -> int:
    return int(time.time() * 1000)
