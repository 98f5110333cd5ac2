"""
SQLite connection management.

``get_connection()`` yields a configured connection:
  - foreign keys enforced, ``sqlite3.Row`` rows
  - WAL journal so API reads proceed during a batch write
  - busy timeout so concurrent writers wait instead of failing immediately
  - commit on clean exit, rollback on exception

Pass ``immediate=True`` for read-modify-write units (player saves): the
write lock is taken up front, so the version check and the inserts that
follow it cannot interleave with another writer.

Usage::

    from drop_tracker.db.connection import get_connection

    with get_connection("data/db/drop_tracker.db", immediate=True) as conn:
        PlayerRepository(conn).save(record)
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Generator

if TYPE_CHECKING:
    from drop_tracker.config import DatabaseConfig

logger = logging.getLogger(__name__)


@contextmanager
def get_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
    immediate: bool = False,
) -> Generator[sqlite3.Connection, None, None]:
    """Context manager yielding a configured SQLite connection.

    Args:
        db_path: Path to the database file, or ``":memory:"``. Parent
            directories are created for file paths.
        wal_mode: Enable WAL journal mode.
        busy_timeout_ms: Milliseconds to wait on a locked database.
        immediate: Open a ``BEGIN IMMEDIATE`` transaction before yielding.

    Raises:
        sqlite3.OperationalError: If the database cannot be opened or stays
            locked past the busy timeout.
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000)
    conn.row_factory = sqlite3.Row

    try:
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)};")
        if wal_mode and db_path != ":memory:":
            conn.execute("PRAGMA journal_mode = WAL;")
        if immediate:
            conn.execute("BEGIN IMMEDIATE;")

        yield conn
        conn.commit()

    except Exception:
        conn.rollback()
        raise

    finally:
        conn.close()


def connection_from_config(config: "DatabaseConfig", immediate: bool = False):
    """Shortcut for ``get_connection`` with every setting taken from config."""
    return get_connection(
        config.db_path,
        wal_mode=config.wal_mode,
        busy_timeout_ms=config.busy_timeout_ms,
        immediate=immediate,
    )
