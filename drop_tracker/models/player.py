"""
Tracked player record and its parts.

``PlayerRecord`` is the unit of persistence: one per lowercase username,
carrying append-only snapshot history and cumulative drop totals.

It is mutable: the history merger works on a deep copy and mutates that
copy, so the loaded record is never touched.
``Snapshot`` is frozen: history entries never change once captured.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, computed_field, field_validator

from drop_tracker.utils.time_utils import to_utc


class TierClassification(StrEnum):
    """Account category, determined by probing the restricted hiscore tables."""

    STANDARD = "standard"
    """Baseline; also the fallback when every probe fails."""

    IRONMAN = "ironman"

    HARDCORE_IRONMAN = "hardcore_ironman"

    GROUP_IRONMAN = "group_ironman"


class Snapshot(BaseModel):
    """One captured copy of a player's profile.

    Attributes:
        captured_at: UTC time the profile was fetched.
        payload: The profile response, verbatim.
        snapshot_id: DB PK; ``None`` until the snapshot has been saved.
    """

    model_config = ConfigDict(frozen=True)

    captured_at: datetime
    payload: dict[str, Any]
    snapshot_id: Optional[int] = None

    @field_validator("captured_at")
    @classmethod
    def normalize_captured_at(cls, v: datetime) -> datetime:
        return to_utc(v)


class DropTotal(BaseModel):
    """Cumulative drops of one item, keyed by the time each was observed.

    ``count`` is derived from ``occurrences`` so the two cannot disagree.
    """

    item_name: str
    occurrences: list[datetime] = []

    @field_validator("occurrences")
    @classmethod
    def validate_unique(cls, v: list[datetime]) -> list[datetime]:
        normalized = [to_utc(ts) for ts in v]
        if len(set(normalized)) != len(normalized):
            raise ValueError("Drop occurrences must have unique timestamps.")
        return normalized

    @computed_field
    @property
    def count(self) -> int:
        return len(self.occurrences)

    def add(self, occurred_at: datetime) -> bool:
        """Record one occurrence. Returns ``False`` if it was already present."""
        occurred_at = to_utc(occurred_at)
        if occurred_at in self.occurrences:
            return False
        self.occurrences.append(occurred_at)
        return True


class PlayerRecord(BaseModel):
    """Everything tracked about one player.

    Attributes:
        username: Lowercase, trimmed canonical key.
        display_name: Last display name RuneMetrics reported.
        tier: Last tier classification.
        snapshots: Profile history in capture order; only ever appended to.
        drops: Item name (verbatim, case-sensitive) → ``DropTotal``.
        active: ``False`` once untracked; ingestion sets it back to ``True``.
        last_updated: Time of the last successful reconciliation.
        version: Optimistic-concurrency token; ``0`` before the first save.
    """

    model_config = ConfigDict(frozen=False)

    username: str
    display_name: str = ""
    tier: TierClassification = TierClassification.STANDARD
    snapshots: list[Snapshot] = []
    drops: dict[str, DropTotal] = {}
    active: bool = True
    last_updated: Optional[datetime] = None
    version: int = 0

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("username must not be blank.")
        return v
