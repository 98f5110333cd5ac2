"""
SQLite schema DDL for tracked players.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is idempotent.

Tables (creation order respects foreign keys):
  1. players           — one row per tracked username; carries the
                         optimistic-concurrency ``version`` column
  2. player_snapshots  — append-only profile history (→ players)
  3. drop_occurrences  — one row per (item, timestamp) drop (→ players);
                         the UNIQUE constraint is the storage-level dedup key

A player's drop ``count`` is never stored: it is the number of
``drop_occurrences`` rows for that item, so it cannot drift from the
occurrence set.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

_DDL_PLAYERS = """
CREATE TABLE IF NOT EXISTS players (
    username        TEXT    NOT NULL PRIMARY KEY,
    display_name    TEXT    NOT NULL DEFAULT '',
    tier            TEXT    NOT NULL DEFAULT 'standard',
    active          INTEGER NOT NULL DEFAULT 1,
    last_updated    TEXT,
    version         INTEGER NOT NULL DEFAULT 1,
    created_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
CREATE INDEX IF NOT EXISTS idx_players_active
    ON players(active)
    WHERE active = 1;
"""

_DDL_PLAYER_SNAPSHOTS = """
CREATE TABLE IF NOT EXISTS player_snapshots (
    snapshot_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    username        TEXT    NOT NULL REFERENCES players(username),
    captured_at     TEXT    NOT NULL,
    payload_json    TEXT    NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_snapshots_user_time
    ON player_snapshots(username, captured_at);
"""

_DDL_DROP_OCCURRENCES = """
CREATE TABLE IF NOT EXISTS drop_occurrences (
    occurrence_id   INTEGER PRIMARY KEY AUTOINCREMENT,
    username        TEXT    NOT NULL REFERENCES players(username),
    item_name       TEXT    NOT NULL,
    occurred_at     TEXT    NOT NULL,
    UNIQUE (username, item_name, occurred_at)
);
CREATE INDEX IF NOT EXISTS idx_drops_user_item
    ON drop_occurrences(username, item_name);
"""

_ALL_DDL = [
    _DDL_PLAYERS,
    _DDL_PLAYER_SNAPSHOTS,
    _DDL_DROP_OCCURRENCES,
]

ALL_TABLE_NAMES = [
    "players",
    "player_snapshots",
    "drop_occurrences",
]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply all DDL statements to ``conn`` and commit.

    Args:
        conn: An open ``sqlite3.Connection``.
    """
    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            conn.execute(statement)

    conn.commit()
    logger.debug("Schema applied: %d tables created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return table names present in the database, sorted."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]


def get_existing_indexes(conn: sqlite3.Connection) -> list[str]:
    """Return index names present in the database, sorted."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='index' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]
