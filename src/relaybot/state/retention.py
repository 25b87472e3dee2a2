"""Retention pruning for capped history tables.

Pruning runs right before a capped stream is read, so the tables stay
bounded without a separate maintenance job. Each call removes a fixed
batch of ``cap`` oldest rows once the table holds more than ``cap``
rows; a table far over the cap shrinks over several reads.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select

if TYPE_CHECKING:
    from sqlalchemy import Column, Connection, Table

logger = logging.getLogger(__name__)

DEFAULT_CAP = 20


def count_rows(conn: Connection, table: Table) -> int:
    """Return the number of rows in a table."""
    return conn.execute(select(func.count()).select_from(table)).scalar_one()


def prune(
    conn: Connection,
    table: Table,
    order_column: Column,
    cap: int = DEFAULT_CAP,
) -> int:
    """Delete the ``cap`` oldest rows of a table that holds more than ``cap``.

    Args:
        conn: Open connection, inside the caller's transaction
        table: Table to prune (must have an ``id`` column)
        order_column: Column ordering rows oldest first
        cap: Row limit, also the number of rows removed per call

    Returns:
        Number of rows deleted (0 when at or under the cap)
    """
    total = count_rows(conn, table)
    if total <= cap:
        return 0

    logger.info(
        "More than %d entries in the %s table (%d). Removing oldest %d.",
        cap,
        table.name,
        total,
        cap,
    )
    oldest = (
        select(table.c.id)
        .order_by(order_column.asc(), table.c.id.asc())
        .limit(cap)
    )
    result = conn.execute(delete(table).where(table.c.id.in_(oldest)))
    return result.rowcount
