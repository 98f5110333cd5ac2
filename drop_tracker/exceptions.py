"""
Error taxonomy for ingestion.

    DropTrackerError
      ├── TransportError      network failure or timeout reaching upstream
      ├── UpstreamRejected    non-success HTTP status (status code + body excerpt)
      ├── InvalidProfile      2xx response missing required fields
      ├── ProfileNotFound     upstream explicitly reports no such player
      └── PersistenceError    SQLite read/write failure
            └── StaleRecordError   optimistic-concurrency conflict on save

Probe failures during tier classification and unparseable activity entries
never raise; they are absorbed where they occur.
"""

from __future__ import annotations

EXCERPT_LIMIT = 200


class DropTrackerError(Exception):
    """Base class for all errors raised by the ingestion core."""


class TransportError(DropTrackerError):
    """The upstream request did not complete (connect error, timeout, redirect
    loop, undecodable body)."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Transport error calling {url}: {reason}")


class UpstreamRejected(DropTrackerError):
    """Upstream answered with a non-success status.

    Attributes:
        status_code: HTTP status returned.
        excerpt: Response body truncated to ``EXCERPT_LIMIT`` characters.
    """

    def __init__(self, source: str, status_code: int, body: str) -> None:
        self.source = source
        self.status_code = status_code
        self.excerpt = body[:EXCERPT_LIMIT]
        super().__init__(f"{source} {status_code}: {self.excerpt}")


class InvalidProfile(DropTrackerError):
    """A successful response that cannot be used as a profile snapshot."""


class ProfileNotFound(DropTrackerError):
    """Upstream reports that the player does not exist (or has no profile)."""

    def __init__(self, username: str, reason: str = "NO_PROFILE") -> None:
        self.username = username
        self.reason = reason
        super().__init__(f"Profile not found for '{username}': {reason}")


class PersistenceError(DropTrackerError):
    """The player store could not be read or written."""


class StaleRecordError(PersistenceError):
    """Save rejected because the stored record changed since it was loaded."""

    def __init__(self, username: str, expected_version: int) -> None:
        self.username = username
        self.expected_version = expected_version
        super().__init__(
            f"Record for '{username}' changed concurrently "
            f"(expected version {expected_version})"
        )
