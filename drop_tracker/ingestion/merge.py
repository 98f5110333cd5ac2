"""
History merger — reconcile a fetched profile against the stored record.

``merge_history()`` is pure: it deep-copies ``existing`` and returns the
updated copy. The caller persists the result; on any failure the loaded
record is still exactly what was in the store.

Reconciliation steps:
  1. No existing record → start an empty one for ``username``.
  2. Inactive record → reactivated.
  3. ``display_name`` ← profile name (blank name → ``InvalidProfile``).
  4. Snapshot ``(captured_at, profile.raw)`` appended. History is a
     permanent log: re-ingesting identical data still appends.
  5. Each drop is added unless that exact ``(item, timestamp)`` pair is
     already recorded, so overlapping activity windows never inflate counts.
  6. ``tier`` ← probe result.
  7. ``last_updated`` ← ``captured_at``.

Dedup is exact timestamp equality. If upstream ever changes date precision
(e.g. starts reporting seconds), previously seen drops will be counted again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from drop_tracker.exceptions import InvalidProfile
from drop_tracker.ingestion.drops import Drop
from drop_tracker.models.player import DropTotal, PlayerRecord, Snapshot, TierClassification
from drop_tracker.models.profile import ProfilePayload
from drop_tracker.utils.time_utils import to_utc

logger = logging.getLogger(__name__)


@dataclass
class MergeStats:
    """What a single merge changed — used for logging only."""

    new_drops: int = 0
    duplicate_drops: int = 0
    new_items: int = 0
    reactivated: bool = False


def merge_history(
    existing: Optional[PlayerRecord],
    fetched: ProfilePayload,
    drops: Iterable[Drop],
    tier: TierClassification,
    captured_at: datetime,
    username: Optional[str] = None,
) -> PlayerRecord:
    """Return ``existing`` updated with one fetched snapshot.

    Args:
        existing: Stored record, or ``None`` for a first ingestion.
        fetched: Validated profile payload.
        drops: ``(item_name, occurred_at)`` pairs in feed order.
        tier: Classification result for this ingestion.
        captured_at: Fetch time; used for the snapshot and ``last_updated``.
        username: Key for a new record. Required when ``existing`` is ``None``.

    Raises:
        InvalidProfile: If ``fetched`` carries no usable name.
        ValueError: If neither ``existing`` nor ``username`` is given.
    """
    if not fetched.name or not fetched.name.strip():
        raise InvalidProfile("Fetched profile has no name; refusing to merge.")

    captured_at = to_utc(captured_at)
    stats = MergeStats()

    if existing is None:
        if not username:
            raise ValueError("username is required when there is no existing record.")
        record = PlayerRecord(username=username)
    else:
        record = existing.model_copy(deep=True)

    if not record.active:
        record.active = True
        stats.reactivated = True

    record.display_name = fetched.name
    record.snapshots.append(Snapshot(captured_at=captured_at, payload=fetched.raw))

    for item_name, occurred_at in drops:
        total = record.drops.get(item_name)
        if total is None:
            total = record.drops[item_name] = DropTotal(item_name=item_name)
            stats.new_items += 1
        if total.add(occurred_at):
            stats.new_drops += 1
        else:
            stats.duplicate_drops += 1

    record.tier = tier
    record.last_updated = captured_at

    logger.debug(
        "Merged %s | new_drops=%d | duplicates=%d | new_items=%d | reactivated=%s",
        record.username, stats.new_drops, stats.duplicate_drops,
        stats.new_items, stats.reactivated,
        extra={"username": record.username},
    )
    return record
