"""
Shared pytest fixtures for the drop tracker test suite.

Provides:
  - ``in_memory_db``: fresh in-memory SQLite connection with the schema.
  - ``app_config``: ``AppConfig`` pointing at a temp-file database with no
    batch throttle (the ingestor opens its own connections, so it needs a
    real file rather than ``:memory:``).
  - ``upstream``: a ``FakeUpstream`` serving canned RuneMetrics/hiscore
    responses through ``httpx.MockTransport``.
  - ``tracker``: an open ``TrackerContext`` wired to ``upstream``.
  - ``restore_root_logging``: for tests that call ``configure_logging()``.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Generator, Optional

import httpx
import pytest

from drop_tracker.config import AppConfig, BatchConfig, DatabaseConfig, LoggingConfig
from drop_tracker.context import TrackerContext, open_context
from drop_tracker.db.schema import apply_schema

FIXED_NOW = datetime(2024, 2, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_profile(name: str = "Zezima", activities: Optional[list[dict]] = None, **extra) -> dict:
    """A RuneMetrics-shaped profile response body."""
    body: dict[str, Any] = {
        "name": name,
        "totalskill": 2898,
        "totalxp": 5_600_000_000,
        "combatlevel": 152,
        "activities": activities if activities is not None else [],
    }
    body.update(extra)
    return body


def _faulty_response(kind: str, request: httpx.Request) -> httpx.Response:
    """A response httpx cannot complete: endless redirect or undecodable gzip."""
    if kind == "redirect":
        return httpx.Response(302, headers={"Location": str(request.url)})
    return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip")


class FakeUpstream:
    """Programmable stand-in for RuneMetrics and the hiscore tables.

    Attributes:
        profiles: lowercase username → response body (dict) or
            ``(status_code, text)`` tuple for error responses.
        hiscores: table name (``"hardcore"``, ``"ironman"``, ``"group"``) →
            set of lowercase usernames present on that table.
        broken_tables: tables whose probe raises a connect error.
        faulty_tables: table name → ``"redirect"`` (redirect loop) or
            ``"gzip"`` (corrupt compressed body) for misbehaving probes.
        profile_down: when ``True`` every profile request raises a timeout.
        profile_fault: ``"redirect"`` or ``"gzip"`` to make profile requests
            misbehave the same way as ``faulty_tables``.
        requests: every ``httpx.Request`` seen, in order.
    """

    _TABLES = {
        "hiscore_hardcore_ironman": "hardcore",
        "hiscore_ironman": "ironman",
        "hiscore_group_ironman": "group",
    }

    def __init__(self) -> None:
        self.profiles: dict[str, Any] = {}
        self.hiscores: dict[str, set[str]] = {"hardcore": set(), "ironman": set(), "group": set()}
        self.broken_tables: set[str] = set()
        self.profile_down = False
        self.profile_fault: Optional[str] = None
        self.faulty_tables: dict[str, str] = {}
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/runemetrics/profile/profile"):
            if self.profile_fault:
                return _faulty_response(self.profile_fault, request)
            if self.profile_down:
                raise httpx.ReadTimeout("timed out", request=request)
            user = request.url.params["user"].lower()
            body = self.profiles.get(user, {"error": "NO_PROFILE", "loggedIn": "false"})
            if isinstance(body, tuple):
                return httpx.Response(body[0], text=body[1])
            return httpx.Response(200, json=body)

        for prefix, table in self._TABLES.items():
            if path.startswith(f"/m={prefix}/"):
                if table in self.faulty_tables:
                    return _faulty_response(self.faulty_tables[table], request)
                if table in self.broken_tables:
                    raise httpx.ConnectError("connection refused", request=request)
                player = request.url.params["player"].lower()
                if player in self.hiscores[table]:
                    return httpx.Response(200, text="1,2898,5600000000\n")
                return httpx.Response(404, text="Not Found")

        if path.endswith("/api/v1/osrs/latest"):
            item = request.url.params["id"]
            return httpx.Response(200, json={"data": {item: {"high": 9500, "low": 9400}}})

        if path.endswith("/api/catalogue/detail.json"):
            item = request.url.params["item"]
            if item == "0":
                return httpx.Response(404, text="")
            return httpx.Response(200, json={"item": {"id": int(item), "name": "Abyssal whip"}})

        return httpx.Response(500, text=f"unexpected path {path}")

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler), follow_redirects=True)

    def probe_tables_hit(self) -> list[str]:
        return [
            table
            for r in self.requests
            for prefix, table in self._TABLES.items()
            if r.url.path.startswith(f"/m={prefix}/")
        ]


# ── Database fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with the schema applied."""
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    apply_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    """Config with a temp-file DB, no throttle, and file logging disabled."""
    return AppConfig(
        database=DatabaseConfig(db_path=str(tmp_path / "tracker.db")),
        batch=BatchConfig(throttle_ms=0, max_conflict_retries=3),
        logging=LoggingConfig(log_file=""),
    )


@pytest.fixture
def restore_root_logging() -> Generator[None, None, None]:
    """Undo ``configure_logging()`` side effects on the root logger."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


# ── Upstream fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def tracker(app_config: AppConfig, upstream: FakeUpstream) -> Generator[TrackerContext, None, None]:
    """Open ``TrackerContext`` with upstream faked and a fixed clock."""
    with upstream.client() as http, open_context(app_config, http=http) as ctx:
        ctx.ingestor.clock = lambda: FIXED_NOW
        yield ctx
