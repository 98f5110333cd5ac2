"""HTTP API for the drop tracker.

Routes:
  POST   /api/track-user           ingest now, return a summary
  GET    /api/user/{username}      stored record; ingests when absent/inactive
  GET    /api/users                active players
  GET    /api/snapshots/{username} snapshot history, oldest first
  DELETE /api/user/{username}      untrack (soft delete)
  GET    /api/runemetrics/{username}, /api/chronotes, /api/item/{item_id}
                                   upstream pass-through
  GET    /health

Handlers are plain ``def`` functions: FastAPI runs them in its threadpool,
so one slow upstream call does not hold up other requests.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from drop_tracker.config import AppConfig
from drop_tracker.context import TrackerContext, open_context
from drop_tracker.exceptions import DropTrackerError, ProfileNotFound, TransportError
from drop_tracker.ingestion.orchestrator import normalize_username

logger = logging.getLogger(__name__)


class TrackRequest(BaseModel):
    username: str = ""


class TrackedPlayer(BaseModel):
    username: str
    display_name: str
    last_updated: Optional[str] = None


class TrackResponse(BaseModel):
    message: str
    data: TrackedPlayer


def create_app(
    config: Optional[AppConfig] = None,
    context: Optional[TrackerContext] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Pass ``context`` to reuse an already-open ``TrackerContext`` (tests do);
    otherwise one is opened from ``config`` for the lifetime of the app.
    """
    if context is None and config is None:
        raise ValueError("create_app() needs a config or an open context.")

    state: dict[str, TrackerContext] = {}
    if context is not None:
        state["ctx"] = context

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        if "ctx" in state:
            yield
            return
        with open_context(config) as ctx:
            state["ctx"] = ctx
            yield
        state.pop("ctx", None)

    app = FastAPI(title="Drop Tracker", lifespan=lifespan)
    cors_origins = (config or context.config).api.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept"],
    )

    def ctx() -> TrackerContext:
        return state["ctx"]

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    # ── Tracker ───────────────────────────────────────────────────────────────

    @app.post("/api/track-user", response_model=TrackResponse)
    def track_user(body: TrackRequest) -> TrackResponse:
        if not body.username.strip():
            raise HTTPException(status_code=400, detail="username is required")
        try:
            record = ctx().ingestor.ingest(body.username)
        except ProfileNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except DropTrackerError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return TrackResponse(
            message="User tracked",
            data=TrackedPlayer(
                username=record.username,
                display_name=record.display_name,
                last_updated=record.last_updated.isoformat() if record.last_updated else None,
            ),
        )

    @app.get("/api/user/{username}")
    def get_user(username: str) -> dict[str, Any]:
        try:
            key = normalize_username(username)
            with ctx().players() as repo:
                record = repo.find_by_username(key)
            if record is None or not record.active:
                record = ctx().ingestor.ingest(key)
        except (ValueError, DropTrackerError, sqlite3.Error) as exc:
            raise HTTPException(status_code=404, detail=str(exc) or "user not found") from exc
        return record.model_dump(mode="json")

    @app.get("/api/users")
    def list_users() -> list[dict[str, str]]:
        try:
            with ctx().players() as repo:
                return repo.list_active_players()
        except sqlite3.Error as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    @app.get("/api/snapshots/{username}")
    def get_snapshots(username: str) -> list[dict[str, Any]]:
        try:
            with ctx().players() as repo:
                snapshots = repo.get_snapshots(username)
        except sqlite3.Error as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        if snapshots is None:
            raise HTTPException(status_code=404, detail="user not found")
        return [s.model_dump(mode="json") for s in snapshots]

    @app.delete("/api/user/{username}")
    def delete_user(username: str) -> dict[str, Any]:
        try:
            with ctx().players(immediate=True) as repo:
                modified = repo.mark_inactive(username)
        except sqlite3.Error as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return {"ok": True, "modified": modified}

    # ── Upstream pass-through ─────────────────────────────────────────────────

    def _proxy(fetch, *args) -> JSONResponse:
        try:
            resp = fetch(*args)
        except TransportError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return JSONResponse(status_code=resp.status_code, content=resp.body)

    @app.get("/api/runemetrics/{username}")
    def runemetrics_proxy(username: str) -> JSONResponse:
        return _proxy(ctx().client.fetch_raw_profile, username)

    @app.get("/api/chronotes")
    def chronotes_proxy() -> JSONResponse:
        return _proxy(ctx().client.fetch_latest_price)

    @app.get("/api/item/{item_id}")
    def item_proxy(item_id: int) -> JSONResponse:
        return _proxy(ctx().client.fetch_item_detail, item_id)

    return app
