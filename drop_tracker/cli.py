"""
Drop tracker — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Open a ``TrackerContext`` (schema applied, HTTP client ready).
  4. Execute the action.
  5. Report the result to stdout; exit 1 on failure.

Install and run::

    pip install -e .
    drop-tracker --help
    drop-tracker init-db
    drop-tracker track zezima
    drop-tracker run-batch
    drop-tracker start-scheduler
    drop-tracker serve
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="drop-tracker",
    help="RuneMetrics snapshot and drop tracker.",
    add_completion=False,
)

_CONFIG_OPTION = typer.Option(None, "--config", help="Path to TOML config file.")
_DB_OPTION = typer.Option(None, "--db-path", help="Override DB path from config.")


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None, db_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from drop_tracker.config import DatabaseConfig, load_config

    try:
        config = load_config(Path(config_path) if config_path else None)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)

    if db_path:
        database = DatabaseConfig(**{**config.database.model_dump(), "db_path": db_path})
        config = config.model_copy(update={"database": database})
    return config


def _configure_logging(config) -> None:
    from drop_tracker.utils.logging import configure_logging
    configure_logging(config.logging)


def _setup(config_path: Optional[str], db_path: Optional[str] = None):
    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)
    return config


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = _DB_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Create the SQLite database and apply the schema (idempotent)."""
    from drop_tracker.db.connection import connection_from_config
    from drop_tracker.db.schema import ALL_TABLE_NAMES, apply_schema

    config = _setup(config_path, db_path)
    typer.echo(f"Initializing database at: {config.database.db_path}")
    with connection_from_config(config.database) as conn:
        apply_schema(conn)
    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = _CONFIG_OPTION,
    show_full: bool = typer.Option(False, "--full", help="Print the full config as JSON."),
) -> None:
    """Validate the configuration file and print parsed values."""
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:   {config.database.db_path}")
    typer.echo(f"  Profile URL:     {config.upstream.profile_url}")
    typer.echo(f"  Batch throttle:  {config.batch.throttle_ms} ms")
    typer.echo(f"  Schedule:        every {config.scheduler.interval_hours}h (UTC)")
    typer.echo(f"  API:             {config.api.host}:{config.api.port}")
    typer.echo(f"  Log level:       {config.logging.level}")

    if show_full:
        typer.echo("")
        typer.echo(json.dumps(config.model_dump(), indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("track")
def track(
    username: str = typer.Argument(..., help="RuneScape display name."),
    db_path: Optional[str] = _DB_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Ingest one player now (starts tracking if new, reactivates if untracked)."""
    from drop_tracker.context import open_context
    from drop_tracker.exceptions import DropTrackerError

    config = _setup(config_path, db_path)
    with open_context(config) as ctx:
        try:
            record = ctx.ingestor.ingest(username)
        except (ValueError, DropTrackerError) as exc:
            typer.echo(f"[ERROR] {exc}", err=True)
            raise typer.Exit(code=1)

    typer.echo(f"Tracked {record.display_name} ({record.username})")
    typer.echo(f"  Tier:       {record.tier.value}")
    typer.echo(f"  Snapshots:  {len(record.snapshots)}")
    typer.echo(f"  Items:      {len(record.drops)}")
    typer.echo("[OK] Player ingested.")


@app.command("show")
def show(
    username: str = typer.Argument(...),
    db_path: Optional[str] = _DB_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Print a stored player's drop totals (no upstream call)."""
    from drop_tracker.context import open_context

    config = _setup(config_path, db_path)
    with open_context(config) as ctx, ctx.players() as repo:
        record = repo.find_by_username(username)

    if record is None:
        typer.echo(f"[ERROR] '{username}' is not tracked.", err=True)
        raise typer.Exit(code=1)

    status = "active" if record.active else "untracked"
    typer.echo(f"{record.display_name or record.username} | {record.tier.value} | {status}")
    typer.echo(f"  Last updated: {record.last_updated}")
    typer.echo(f"  Snapshots:    {len(record.snapshots)}")
    for total in sorted(record.drops.values(), key=lambda t: (-t.count, t.item_name)):
        typer.echo(f"  {total.count:>4} × {total.item_name}")


@app.command("list-users")
def list_users(
    db_path: Optional[str] = _DB_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """List active players."""
    from drop_tracker.context import open_context

    config = _setup(config_path, db_path)
    with open_context(config) as ctx, ctx.players() as repo:
        players = repo.list_active_players()

    for player in players:
        typer.echo(f"  {player['username']:<14} {player['display_name']}")
    typer.echo(f"{len(players)} active player(s).")


@app.command("snapshots")
def snapshots(
    username: str = typer.Argument(...),
    db_path: Optional[str] = _DB_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Print a player's snapshot history as JSON, oldest first."""
    from drop_tracker.context import open_context

    config = _setup(config_path, db_path)
    with open_context(config) as ctx, ctx.players() as repo:
        history = repo.get_snapshots(username)

    if history is None:
        typer.echo(f"[ERROR] '{username}' is not tracked.", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps([s.model_dump(mode="json") for s in history], indent=2))


@app.command("untrack")
def untrack(
    username: str = typer.Argument(...),
    db_path: Optional[str] = _DB_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Stop including a player in batches. History is kept."""
    from drop_tracker.context import open_context

    config = _setup(config_path, db_path)
    with open_context(config) as ctx, ctx.players(immediate=True) as repo:
        modified = repo.mark_inactive(username)
    typer.echo(f"[OK] Untracked '{username}' (modified={modified}).")


@app.command("run-batch")
def run_batch(
    db_path: Optional[str] = _DB_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Ingest every active player once, throttled."""
    from drop_tracker.context import open_context
    from drop_tracker.exceptions import PersistenceError

    config = _setup(config_path, db_path)
    with open_context(config) as ctx:
        try:
            report = ctx.batch.run_active()
        except PersistenceError as exc:
            typer.echo(f"[ERROR] {exc}", err=True)
            raise typer.Exit(code=1)

    typer.echo(f"Batch {report.status}: {report.succeeded}/{report.total} succeeded.")
    for username, error in report.failed:
        typer.echo(f"  FAILED {username}: {error}", err=True)


@app.command("start-scheduler")
def start_scheduler(
    run_now: bool = typer.Option(False, "--run-now", help="Run a batch before waiting."),
    db_path: Optional[str] = _DB_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Run the batch on the configured UTC interval until interrupted."""
    from drop_tracker.context import open_context
    from drop_tracker.scheduler import SchedulerDaemon

    config = _setup(config_path, db_path)
    if not config.scheduler.enabled:
        typer.echo("[ERROR] Scheduler is disabled in config ([scheduler] enabled).", err=True)
        raise typer.Exit(code=1)

    with open_context(config) as ctx:
        SchedulerDaemon(
            job=ctx.batch.run_active,
            interval_hours=config.scheduler.interval_hours,
            run_on_start=run_now,
        ).start()


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
    db_path: Optional[str] = _DB_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    from drop_tracker.api import create_app

    config = _setup(config_path, db_path)
    uvicorn.run(
        create_app(config=config),
        host=host or config.api.host,
        port=port or config.api.port,
        log_config=None,
    )


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    app()
