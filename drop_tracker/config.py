"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      — committed static defaults
  2. ``config/local.toml``        — optional local overrides (gitignored)
  3. ``.env``                     — local secrets and env overrides (gitignored)
  4. Environment variables        — ``DROP_TRACKER_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

The CLI, the API factory, and the scheduler all receive an ``AppConfig``
instance — never raw dicts or individual env var lookups.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite database connection settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/drop_tracker.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class UpstreamConfig(BaseModel):
    """Endpoints and timeouts for RuneMetrics, hiscores, and reference data."""

    model_config = ConfigDict(frozen=True)

    profile_url: str = "https://apps.runescape.com/runemetrics/profile/profile"
    activities: int = 20
    hiscore_hardcore_url: str = (
        "https://secure.runescape.com/m=hiscore_hardcore_ironman/index_lite.ws"
    )
    hiscore_ironman_url: str = (
        "https://secure.runescape.com/m=hiscore_ironman/index_lite.ws"
    )
    hiscore_group_url: str = (
        "https://secure.runescape.com/m=hiscore_group_ironman/index_lite.ws"
    )
    price_url: str = "https://prices.runescape.wiki/api/v1/osrs/latest"
    item_detail_url: str = (
        "https://secure.runescape.com/m=itemdb_rs/api/catalogue/detail.json"
    )
    chronote_item_id: int = 23903
    profile_timeout_s: float = 15.0
    probe_timeout_s: float = 10.0
    reference_timeout_s: float = 15.0
    user_agent: str = "drop-tracker/0.1"

    @field_validator("profile_timeout_s", "probe_timeout_s", "reference_timeout_s")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Timeouts must be positive, got {v}.")
        return v


class BatchConfig(BaseModel):
    """Scheduled batch execution parameters."""

    model_config = ConfigDict(frozen=True)

    throttle_ms: int = 1000
    max_conflict_retries: int = 3

    @field_validator("throttle_ms", "max_conflict_retries")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Value must be >= 0, got {v}.")
        return v


class SchedulerConfig(BaseModel):
    """Recurring batch trigger. Ticks fire on UTC hour boundaries."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    interval_hours: int = 3

    @field_validator("interval_hours")
    @classmethod
    def validate_interval(cls, v: int) -> int:
        if v < 1 or 24 % v != 0:
            raise ValueError(f"interval_hours must divide 24, got {v}.")
        return v


class ApiConfig(BaseModel):
    """HTTP API bind address and CORS settings."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = ["*"]


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/drop_tracker.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration — the single source of truth.

    Constructed by ``load_config()`` which merges TOML + .env.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    upstream: UpstreamConfig = UpstreamConfig()
    batch: BatchConfig = BatchConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    api: ApiConfig = ApiConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    # 1. Load .env file (silently skip if missing)
    load_dotenv(dotenv_path=root / ".env", override=False)

    # 2. Load TOML config
    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    # 3. Apply DROP_TRACKER_* environment variable overrides
    raw = _apply_env_overrides(raw)

    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply DROP_TRACKER_* env vars to the raw config dict.

    Supported overrides:
      DROP_TRACKER_DB_PATH    → raw["database"]["db_path"]
      DROP_TRACKER_LOG_LEVEL  → raw["logging"]["level"]
      DROP_TRACKER_PORT       → raw["api"]["port"]
      DROP_TRACKER_DEBUG      → raw["debug"]
    """
    if db_path := os.environ.get("DROP_TRACKER_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("DROP_TRACKER_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if port := os.environ.get("DROP_TRACKER_PORT"):
        raw.setdefault("api", {})["port"] = int(port)

    if debug := os.environ.get("DROP_TRACKER_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        upstream=UpstreamConfig(**raw.get("upstream", {})),
        batch=BatchConfig(**raw.get("batch", {})),
        scheduler=SchedulerConfig(**raw.get("scheduler", {})),
        api=ApiConfig(**raw.get("api", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
