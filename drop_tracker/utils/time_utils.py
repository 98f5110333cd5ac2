"""
Timestamp helpers.

Every timestamp in the system is a timezone-aware UTC ``datetime``. Drop
dedup compares timestamps by exact equality, so all parsing and storage
goes through ``to_utc()`` / ``to_iso()`` to keep one canonical form.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

# RuneMetrics activity feed format, e.g. "01-Feb-2024 10:00". Month names are
# always English, so they are mapped here rather than via strptime's %b,
# which follows LC_TIME.
RUNEMETRICS_DATE_PATTERN = re.compile(
    r"(\d{1,2})-([A-Za-z]{3})-(\d{4}) (\d{1,2}):(\d{2})"
)
MONTHS = {
    name: number
    for number, name in enumerate(
        ("jan", "feb", "mar", "apr", "may", "jun",
         "jul", "aug", "sep", "oct", "nov", "dec"),
        start=1,
    )
}


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info."""
    return datetime.now(tz=timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are assumed UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    """Canonical storage form: ISO-8601 in UTC with ``+00:00`` offset."""
    return to_utc(value).isoformat()


def from_iso(value: str) -> datetime:
    """Inverse of ``to_iso``; also accepts a trailing ``Z``."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return to_utc(datetime.fromisoformat(value))


def parse_activity_date(raw: str) -> Optional[datetime]:
    """Parse an activity ``date`` field, or return ``None`` if unrecognised.

    Accepts the RuneMetrics ``DD-Mon-YYYY HH:MM`` form (UTC) and ISO-8601.
    """
    raw = raw.strip()
    if not raw:
        return None
    match = RUNEMETRICS_DATE_PATTERN.fullmatch(raw)
    if match is not None:
        return _runemetrics_date(*match.groups())
    try:
        return from_iso(raw)
    except ValueError:
        return None


def _runemetrics_date(
    day: str, month: str, year: str, hour: str, minute: str
) -> Optional[datetime]:
    month_number = MONTHS.get(month.lower())
    if month_number is None:
        return None
    try:
        return datetime(
            int(year), month_number, int(day), int(hour), int(minute),
            tzinfo=timezone.utc,
        )
    except ValueError:
        return None
