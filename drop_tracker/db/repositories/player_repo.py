"""
Repository for tracked players, their snapshot history, and drop occurrences.

Save semantics:
  - ``players`` rows are versioned. ``save()`` inserts when
    ``record.version == 0`` and otherwise updates ``WHERE version = ?``;
    when no row matches, the stored record has moved on and
    ``StaleRecordError`` is raised. The caller rolls back and re-merges.
  - Snapshots are append-only: only snapshots without a ``snapshot_id``
    are inserted; existing rows are never updated or deleted.
  - Drop occurrences are inserted with ``INSERT OR IGNORE`` against the
    ``UNIQUE(username, item_name, occurred_at)`` key.

Run ``save()`` inside ``get_connection(..., immediate=True)`` so the version
check and the inserts commit (or roll back) together.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Optional

from drop_tracker.db.repositories.base import BaseRepository
from drop_tracker.exceptions import StaleRecordError
from drop_tracker.models.player import (
    DropTotal,
    PlayerRecord,
    Snapshot,
    TierClassification,
)
from drop_tracker.utils.time_utils import from_iso, to_iso

logger = logging.getLogger(__name__)


class PlayerRepository(BaseRepository):
    """Read/write access to ``players``, ``player_snapshots``, ``drop_occurrences``."""

    # ── Reads ─────────────────────────────────────────────────────────────────

    def find_by_username(self, username: str) -> Optional[PlayerRecord]:
        """Load the full record (history and drops), or ``None`` if unknown."""
        key = username.strip().lower()
        row = self.fetchone("SELECT * FROM players WHERE username = ?;", (key,))
        if row is None:
            return None

        snapshots = [
            _row_to_snapshot(r)
            for r in self.fetchall(
                """
                SELECT snapshot_id, captured_at, payload_json
                FROM player_snapshots
                WHERE username = ?
                ORDER BY snapshot_id;
                """,
                (key,),
            )
        ]

        drops: dict[str, DropTotal] = {}
        for r in self.fetchall(
            """
            SELECT item_name, occurred_at FROM drop_occurrences
            WHERE username = ?
            ORDER BY occurrence_id;
            """,
            (key,),
        ):
            total = drops.setdefault(r["item_name"], DropTotal(item_name=r["item_name"]))
            total.occurrences.append(from_iso(r["occurred_at"]))

        return PlayerRecord(
            username=row["username"],
            display_name=row["display_name"],
            tier=TierClassification(row["tier"]),
            snapshots=snapshots,
            drops=drops,
            active=bool(row["active"]),
            last_updated=from_iso(row["last_updated"]) if row["last_updated"] else None,
            version=row["version"],
        )

    def list_active(self) -> list[str]:
        """Usernames of active players, in the order they were first tracked."""
        rows = self.fetchall(
            "SELECT username FROM players WHERE active = 1 ORDER BY rowid;"
        )
        return [r["username"] for r in rows]

    def list_active_players(self) -> list[dict[str, str]]:
        """``{"username", "display_name"}`` for each active player.

        ``display_name`` falls back to the username when none was recorded.
        """
        rows = self.fetchall(
            """
            SELECT username, display_name FROM players
            WHERE active = 1
            ORDER BY rowid;
            """
        )
        return [
            {"username": r["username"], "display_name": r["display_name"] or r["username"]}
            for r in rows
        ]

    def get_snapshots(self, username: str) -> Optional[list[Snapshot]]:
        """Snapshot history sorted by ``captured_at`` ascending.

        Returns ``None`` when the player is not tracked at all (active or not).
        """
        key = username.strip().lower()
        if self.fetchone("SELECT 1 FROM players WHERE username = ?;", (key,)) is None:
            return None
        rows = self.fetchall(
            """
            SELECT snapshot_id, captured_at, payload_json
            FROM player_snapshots
            WHERE username = ?
            ORDER BY captured_at, snapshot_id;
            """,
            (key,),
        )
        return [_row_to_snapshot(r) for r in rows]

    # ── Writes ────────────────────────────────────────────────────────────────

    def save(self, record: PlayerRecord) -> PlayerRecord:
        """Persist ``record`` and return it with its new version and snapshot ids.

        Raises:
            StaleRecordError: If the stored version no longer matches
                ``record.version`` (or a new record collides with an
                existing username).
        """
        new_version = record.version + 1
        last_updated = to_iso(record.last_updated) if record.last_updated else None

        if record.version == 0:
            try:
                self.execute(
                    """
                    INSERT INTO players (
                        username, display_name, tier, active, last_updated, version
                    ) VALUES (?, ?, ?, ?, ?, ?);
                    """,
                    (
                        record.username,
                        record.display_name,
                        record.tier.value,
                        int(record.active),
                        last_updated,
                        new_version,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise StaleRecordError(record.username, record.version) from exc
        else:
            cursor = self.execute(
                """
                UPDATE players
                SET display_name = ?, tier = ?, active = ?,
                    last_updated = ?, version = ?
                WHERE username = ? AND version = ?;
                """,
                (
                    record.display_name,
                    record.tier.value,
                    int(record.active),
                    last_updated,
                    new_version,
                    record.username,
                    record.version,
                ),
            )
            if cursor.rowcount == 0:
                raise StaleRecordError(record.username, record.version)

        snapshots: list[Snapshot] = []
        for snap in record.snapshots:
            if snap.snapshot_id is None:
                cursor = self.execute(
                    """
                    INSERT INTO player_snapshots (username, captured_at, payload_json)
                    VALUES (?, ?, ?);
                    """,
                    (
                        record.username,
                        to_iso(snap.captured_at),
                        json.dumps(snap.payload, default=str),
                    ),
                )
                snap = snap.model_copy(update={"snapshot_id": cursor.lastrowid})
            snapshots.append(snap)

        self.executemany(
            """
            INSERT OR IGNORE INTO drop_occurrences (username, item_name, occurred_at)
            VALUES (?, ?, ?);
            """,
            [
                (record.username, total.item_name, to_iso(ts))
                for total in record.drops.values()
                for ts in total.occurrences
            ],
        )

        logger.debug(
            "Saved player %s | version=%d | snapshots=%d | items=%d",
            record.username, new_version, len(snapshots), len(record.drops),
        )
        return record.model_copy(update={"version": new_version, "snapshots": snapshots})

    def mark_inactive(self, username: str) -> int:
        """Soft-delete a player. Returns the number of rows modified (0 or 1)."""
        cursor = self.execute(
            """
            UPDATE players SET active = 0, version = version + 1
            WHERE username = ? AND active = 1;
            """,
            (username.strip().lower(),),
        )
        return cursor.rowcount

    def count(self) -> int:
        """Total number of tracked players, active or not."""
        row = self.fetchone("SELECT COUNT(*) AS n FROM players;")
        assert row is not None
        return int(row["n"])


# ── Private helpers ───────────────────────────────────────────────────────────

def _row_to_snapshot(row: sqlite3.Row) -> Snapshot:
    """Convert a ``player_snapshots`` row to a ``Snapshot``."""
    return Snapshot(
        snapshot_id=row["snapshot_id"],
        captured_at=from_iso(row["captured_at"]),
        payload=json.loads(row["payload_json"]),
    )
