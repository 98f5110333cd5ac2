"""
RuneMetrics profile payload.

Only two fields are load-bearing for ingestion: ``name`` (the display name)
and ``activities`` (the free-text feed drops are extracted from). Both are
validated here; the complete response dict is kept verbatim in ``raw`` and
is what gets stored as the snapshot payload.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from drop_tracker.exceptions import InvalidProfile


class ActivityEntry(BaseModel):
    """One line of the RuneMetrics activity feed.

    ``text`` and ``date`` are optional because the feed is not guaranteed to
    be well-formed; the drop extractor skips entries missing either.
    """

    model_config = ConfigDict(frozen=True)

    text: Optional[str] = None
    date: Optional[str] = None
    details: Optional[str] = None

    @classmethod
    def from_raw(cls, item: dict[str, Any]) -> "ActivityEntry":
        """Build from a raw feed dict, dropping non-string field values."""
        return cls(**{
            key: item.get(key) if isinstance(item.get(key), str) else None
            for key in ("text", "date", "details")
        })


class ProfilePayload(BaseModel):
    """A validated RuneMetrics profile response.

    Attributes:
        name: Player display name as RuneMetrics reports it.
        activities: Parsed activity feed, in upstream order (newest first).
        raw: The full decoded response, preserved for snapshot history.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    activities: list[ActivityEntry] = []
    raw: dict[str, Any]

    @classmethod
    def from_response(cls, data: Any) -> "ProfilePayload":
        """Validate a decoded JSON body.

        Raises:
            InvalidProfile: If ``data`` is not an object, carries an
                ``error`` field, or has no usable ``name``.
        """
        if not isinstance(data, dict):
            raise InvalidProfile(
                f"RuneMetrics returned {type(data).__name__}, expected an object"
            )
        if data.get("error"):
            raise InvalidProfile(f"RuneMetrics error: {data['error']}")

        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise InvalidProfile("RuneMetrics error: invalid profile (no name)")

        feed = data.get("activities")
        activities = [
            ActivityEntry.from_raw(item)
            for item in (feed if isinstance(feed, list) else [])
            if isinstance(item, dict)
        ]
        return cls(name=name, activities=activities, raw=data)
