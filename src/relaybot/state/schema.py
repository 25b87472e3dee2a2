"""Table definitions and schema migrations for the state store.

This module handles database schema versioning and migrations:
- Declares the three record streams as SQLAlchemy Core tables
- Tracks the current schema version in ``schema_version``
- Applies migrations in order on first connection

Each stream table carries a synthetic autoincrement ``id`` so that
"delete the oldest N rows" works the same on SQLite and PostgreSQL.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Integer,
    MetaData,
    Table,
    Text,
    func,
    inspect,
    select,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy import Connection

    MigrationFunc = Callable[[Connection], None]

logger = logging.getLogger(__name__)

# Current schema version - increment when adding migrations
CURRENT_SCHEMA_VERSION = 1

metadata = MetaData()

# Integer primary keys need the SQLite INTEGER affinity to autoincrement
_RowId = BigInteger().with_variant(Integer(), "sqlite")

schema_version = Table(
    "schema_version",
    metadata,
    Column("version", Integer, primary_key=True, autoincrement=False),
    Column("applied_at", BigInteger, nullable=False),
)

startup_notice = Table(
    "startup_notice",
    metadata,
    Column("id", _RowId, primary_key=True, autoincrement=True),
    Column("received", Boolean, nullable=False),
    Column("inserted_at", BigInteger, nullable=False),
)

poll_cursor = Table(
    "poll_cursor",
    metadata,
    Column("id", _RowId, primary_key=True, autoincrement=True),
    Column("cursor_time", BigInteger, nullable=False, index=True),
)

token_history = Table(
    "token_history",
    metadata,
    Column("id", _RowId, primary_key=True, autoincrement=True),
    Column("access_token", Text, nullable=False),
    Column("refresh_token", Text),
    Column("token_type", Text),
    Column("expires_in", BigInteger),
    Column("scope", Text),
    Column("raw_response", Text),
    Column("retrieved_at", BigInteger, nullable=False, index=True),
)


def _migration_v1(conn: Connection) -> None:
    """Initial schema: v0 -> v1.

    Creates all tables for the first version:
    - schema_version: Migration tracking
    - startup_notice: One-time startup flag
    - poll_cursor: Polling position history
    - token_history: OAuth token grants
    """
    metadata.create_all(
        conn,
        tables=[schema_version, startup_notice, poll_cursor, token_history],
    )
    conn.execute(
        schema_version.insert().values(version=1, applied_at=int(time.time()))
    )
    logger.info("Applied migration v1: initial schema")


# Registry of migrations keyed by target version
MIGRATIONS: dict[int, MigrationFunc] = {
    1: _migration_v1,
}


def get_schema_version(conn: Connection) -> int:
    """Get the current schema version from the database.

    Args:
        conn: Open database connection

    Returns:
        Current schema version, or 0 if not initialized
    """
    if not inspect(conn).has_table(schema_version.name):
        return 0

    version = conn.execute(select(func.max(schema_version.c.version))).scalar()
    return version if version is not None else 0


def migrate_database(
    conn: Connection,
    target_version: int | None = None,
) -> int:
    """Apply all pending migrations to reach the target version.

    Migrations run inside a single transaction, committed on success.

    Args:
        conn: Open database connection
        target_version: Version to migrate to (default: CURRENT_SCHEMA_VERSION)

    Returns:
        The final schema version after migrations

    Raises:
        ValueError: If target_version is invalid or a migration is missing
    """
    if target_version is None:
        target_version = CURRENT_SCHEMA_VERSION

    if target_version < 0 or target_version > CURRENT_SCHEMA_VERSION:
        msg = f"Invalid target version: {target_version} (current max: {CURRENT_SCHEMA_VERSION})"
        raise ValueError(msg)

    with conn.begin():
        current_version = get_schema_version(conn)

        if current_version >= target_version:
            logger.debug(
                "Database already at version %d (target: %d)",
                current_version,
                target_version,
            )
            return current_version

        logger.info(
            "Migrating database from v%d to v%d",
            current_version,
            target_version,
        )

        for version in range(current_version + 1, target_version + 1):
            migration = MIGRATIONS.get(version)
            if migration is None:
                msg = f"No migration found for version {version}"
                raise ValueError(msg)

            logger.debug("Applying migration to v%d", version)
            migration(conn)

    return target_version
