"""
Drop extraction from the RuneMetrics activity feed.

A drop is any activity whose text reads "I found a/an/some <item>". The item
name is whatever follows the article, stripped of surrounding whitespace and
otherwise kept verbatim: "I found some Ancient relic shards" and
"I found an ancient relic shard" are two different items.

Entries without text or date, entries whose date does not parse, and entries
that mention "I found" without an article + item are skipped silently.
Dedup is not done here; the history merger owns it.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Iterable, Iterator

from drop_tracker.models.profile import ActivityEntry
from drop_tracker.utils.time_utils import parse_activity_date

logger = logging.getLogger(__name__)

DROP_MARKER = "I found"
DROP_PATTERN = re.compile(r"I found (an?|some) (.+)")

Drop = tuple[str, datetime]


def extract_drops(activities: Iterable[ActivityEntry]) -> Iterator[Drop]:
    """Yield ``(item_name, occurred_at)`` for each drop, in feed order.

    A generator: nothing is consumed until iterated, and calling it again on
    the same feed starts over.
    """
    for entry in activities:
        if not entry.text or not entry.date:
            continue
        if DROP_MARKER not in entry.text:
            continue

        match = DROP_PATTERN.search(entry.text)
        if match is None:
            continue
        item_name = match.group(2).strip()
        if not item_name:
            continue

        occurred_at = parse_activity_date(entry.date)
        if occurred_at is None:
            logger.debug("Skipping drop with unparseable date %r", entry.date)
            continue

        yield item_name, occurred_at
