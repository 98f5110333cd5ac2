"""
Per-player ingestion workflow.

``PlayerIngestor.ingest(username)``:

  1. Normalize the username (trim, lowercase).
  2. Load the stored record, if any.
  3. Fetch the RuneMetrics profile.   ← any failure here ends the ingestion;
                                        nothing has been written
  4. Classify tier (never fails).
  5. Extract drops from the activity feed.
  6. Merge into the loaded record (pure, on a copy).
  7. Save in one ``BEGIN IMMEDIATE`` transaction.

All-or-nothing: a failure in 3, 6, or 7 leaves the stored record untouched.

Concurrent ingestions of the same player are serialized optimistically:
when the save finds the stored version has moved, the record is reloaded
and the same fetched profile is merged again, up to
``max_conflict_retries`` times. The upstream fetch is not repeated.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Callable, Optional

from drop_tracker.config import DatabaseConfig
from drop_tracker.db.connection import connection_from_config
from drop_tracker.db.repositories.player_repo import PlayerRepository
from drop_tracker.exceptions import DropTrackerError, PersistenceError, StaleRecordError
from drop_tracker.ingestion.drops import extract_drops
from drop_tracker.ingestion.merge import merge_history
from drop_tracker.ingestion.runemetrics_client import RuneMetricsClient
from drop_tracker.models.player import PlayerRecord
from drop_tracker.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


def normalize_username(username: str) -> str:
    """Canonical store key: trimmed and lowercased.

    Raises:
        ValueError: If nothing is left after trimming.
    """
    key = (username or "").strip().lower()
    if not key:
        raise ValueError("username is required")
    return key


class PlayerIngestor:
    """Fetch → classify → extract → merge → save for one player at a time.

    Args:
        client: Upstream client for profiles and tier probes.
        database: SQLite settings; a connection is opened per load/save so no
            connection is held open across network calls.
        max_conflict_retries: Re-merge attempts after a concurrent write.
        clock: Source of ``captured_at``; injectable for tests.
    """

    def __init__(
        self,
        client: RuneMetricsClient,
        database: DatabaseConfig,
        max_conflict_retries: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.client = client
        self.database = database
        self.max_conflict_retries = max_conflict_retries
        self.clock = clock

    def ingest(self, username: str) -> PlayerRecord:
        """Ingest one player and return the saved record.

        Raises:
            ValueError: Blank username.
            DropTrackerError: Any fetch, validation, or persistence failure,
                with the upstream status/message preserved.
        """
        key = normalize_username(username)
        try:
            return self._ingest(key)
        except DropTrackerError as exc:
            logger.error("Ingestion failed for %s: %s", key, exc, extra={"username": key})
            raise

    def _ingest(self, key: str) -> PlayerRecord:
        existing = self._load(key)

        profile = self.client.fetch_profile(key)
        tier = self.client.classify_tier(key)
        drops = list(extract_drops(profile.activities))
        captured_at = self.clock()

        attempt = 0
        while True:
            record = merge_history(existing, profile, drops, tier, captured_at, username=key)
            try:
                saved = self._save(record)
            except StaleRecordError:
                if attempt >= self.max_conflict_retries:
                    raise
                attempt += 1
                logger.warning(
                    "Concurrent update of %s; re-merging (attempt %d/%d)",
                    key, attempt, self.max_conflict_retries,
                    extra={"username": key},
                )
                existing = self._load(key)
                continue

            logger.info(
                "Ingested %s | tier=%s | snapshots=%d | items=%d | drops_in_feed=%d",
                key, saved.tier.value, len(saved.snapshots), len(saved.drops), len(drops),
                extra={"username": key},
            )
            return saved

    # ── Persistence ───────────────────────────────────────────────────────────

    def _load(self, key: str) -> Optional[PlayerRecord]:
        try:
            with connection_from_config(self.database) as conn:
                return PlayerRepository(conn).find_by_username(key)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to load '{key}': {exc}") from exc

    def _save(self, record: PlayerRecord) -> PlayerRecord:
        try:
            with connection_from_config(self.database, immediate=True) as conn:
                return PlayerRepository(conn).save(record)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to save '{record.username}': {exc}") from exc
