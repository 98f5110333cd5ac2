"""
Batch runner — ingest every active player, one at a time.

Players are processed strictly sequentially in the order given. A fixed
throttle delay separates consecutive players whatever the outcome of the
previous one. A failing player is recorded in the report and the batch moves
on; only failing to list the active players fails the batch as a whole.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Sequence

from drop_tracker.config import DatabaseConfig
from drop_tracker.db.connection import connection_from_config
from drop_tracker.db.repositories.player_repo import PlayerRepository
from drop_tracker.exceptions import PersistenceError
from drop_tracker.ingestion.orchestrator import PlayerIngestor
from drop_tracker.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class BatchReport:
    """Outcome of one batch run.

    Attributes:
        succeeded: Number of players ingested successfully.
        failed: ``(username, error message)`` per failed player, in order.
        started_at: UTC time the batch started.
        finished_at: UTC time the batch finished.
    """

    succeeded:   int                    = 0
    failed:      list[tuple[str, str]]  = field(default_factory=list)
    started_at:  Optional[datetime]     = None
    finished_at: Optional[datetime]     = None

    @property
    def total(self) -> int:
        return self.succeeded + len(self.failed)

    @property
    def status(self) -> str:
        """``"success"``, ``"partial"``, or ``"failed"`` (every player failed)."""
        if not self.failed:
            return "success"
        return "partial" if self.succeeded else "failed"


class BatchRunner:
    """Drive ``PlayerIngestor`` over a list of players with throttling.

    Args:
        ingestor: Per-player workflow.
        database: Used by ``run_active()`` to list active players.
        throttle_ms: Delay between consecutive players.
        sleep: Injectable sleep function (seconds); tests pass a recorder.
    """

    def __init__(
        self,
        ingestor: PlayerIngestor,
        database: DatabaseConfig,
        throttle_ms: int = 1000,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.ingestor = ingestor
        self.database = database
        self.throttle_ms = throttle_ms
        self.sleep = sleep

    def run_active(self) -> BatchReport:
        """List active players and run the batch over them.

        Raises:
            PersistenceError: If the active player list cannot be read.
        """
        try:
            with connection_from_config(self.database) as conn:
                usernames = PlayerRepository(conn).list_active()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to list active players: {exc}") from exc
        return self.run_batch(usernames)

    def run_batch(self, usernames: Sequence[str]) -> BatchReport:
        """Ingest ``usernames`` in order; never raises for a single player."""
        report = BatchReport(started_at=utcnow())
        logger.info("Batch starting | players=%d", len(usernames))

        for index, username in enumerate(usernames):
            if index > 0 and self.throttle_ms > 0:
                self.sleep(self.throttle_ms / 1000)
            try:
                self.ingestor.ingest(username)
                report.succeeded += 1
            except Exception as exc:
                logger.error("Batch: %s failed: %s", username, exc, extra={"username": username})
                report.failed.append((username, str(exc)))

        report.finished_at = utcnow()
        logger.info(
            "Batch done | status=%s | succeeded=%d | failed=%d",
            report.status, report.succeeded, len(report.failed),
        )
        return report
