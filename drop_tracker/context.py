"""
Process-scoped runtime context.

Holds the objects that live for the whole process — config, the upstream
HTTP client, the ingestor and batch runner built on top of it — so nothing
is kept in module globals. ``open_context()`` applies the schema on enter
and closes the HTTP client on exit::

    with open_context(config) as ctx:
        record = ctx.ingestor.ingest("zezima")
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator, Optional

import httpx

from drop_tracker.config import AppConfig
from drop_tracker.db.connection import connection_from_config
from drop_tracker.db.repositories.player_repo import PlayerRepository
from drop_tracker.db.schema import apply_schema
from drop_tracker.ingestion.batch import BatchRunner
from drop_tracker.ingestion.orchestrator import PlayerIngestor
from drop_tracker.ingestion.runemetrics_client import RuneMetricsClient

logger = logging.getLogger(__name__)


@dataclass
class TrackerContext:
    """Wiring for one process. Build with ``open_context()``."""

    config: AppConfig
    client: RuneMetricsClient
    ingestor: PlayerIngestor
    batch: BatchRunner

    def players(self, immediate: bool = False):
        """Context manager yielding a ``PlayerRepository`` on a fresh connection."""
        return _repository(self.config, immediate)


@contextmanager
def _repository(config: AppConfig, immediate: bool) -> Generator[PlayerRepository, None, None]:
    with connection_from_config(config.database, immediate=immediate) as conn:
        yield PlayerRepository(conn)


@contextmanager
def open_context(
    config: AppConfig,
    http: Optional[httpx.Client] = None,
) -> Generator[TrackerContext, None, None]:
    """Initialise the store and build the runtime context.

    Args:
        config: Application configuration.
        http: Optional ``httpx.Client`` for the upstream client (tests).
    """
    with connection_from_config(config.database) as conn:
        apply_schema(conn)

    client = RuneMetricsClient(config.upstream, http=http)
    ingestor = PlayerIngestor(
        client,
        config.database,
        max_conflict_retries=config.batch.max_conflict_retries,
    )
    batch = BatchRunner(ingestor, config.database, throttle_ms=config.batch.throttle_ms)

    logger.info("Tracker context opened | db=%s", config.database.db_path)
    try:
        yield TrackerContext(config=config, client=client, ingestor=ingestor, batch=batch)
    finally:
        client.close()
        logger.info("Tracker context closed")
