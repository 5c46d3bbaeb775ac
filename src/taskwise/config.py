# src/taskwise/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- Nothing required at import time; every value has a usable default.
- Library code takes settings by injection; only entrypoints call get_settings().
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKWISE"

DEFAULT_MATCH_THRESHOLD = 0.6
MIN_MATCH_THRESHOLD = 0.4
MAX_MATCH_THRESHOLD = 0.95

PRUNE_POLICIES = ("delete_unreferenced", "retain")


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


# A local .env never overrides variables already set in the environment.
load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def clamp_match_threshold(value: float | None) -> float:
    """
    Clamp a user-provided completion match threshold into the supported band.

    Missing or non-finite values fall back to the default (0.6).
    """
    if value is None:
        return DEFAULT_MATCH_THRESHOLD
    try:
        v = float(value)
    except (TypeError, ValueError):
        return DEFAULT_MATCH_THRESHOLD
    if not math.isfinite(v):
        return DEFAULT_MATCH_THRESHOLD
    return min(MAX_MATCH_THRESHOLD, max(MIN_MATCH_THRESHOLD, v))


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    store_db_path: Path

    # ---- Completion inference ----
    completion_match_threshold: float
    auto_approve_completed_tasks: bool
    auto_approve_threshold: float | None
    require_attendee_match: bool
    match_include_description: bool

    # ---- Reconciliation ----
    prune_policy: str

    # ---- Editor ----
    history_limit: int

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskwise") or "taskwise"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskwise"))
        store_db_path = _env_path(_k("STORE_DB_PATH"), data_dir / "taskwise.sqlite3")

        completion_match_threshold = clamp_match_threshold(
            _env_float(_k("COMPLETION_MATCH_THRESHOLD"), DEFAULT_MATCH_THRESHOLD)
        )
        auto_approve_completed_tasks = _env_bool(_k("AUTO_APPROVE_COMPLETED_TASKS"), False)
        raw_auto = _env_float(_k("AUTO_APPROVE_THRESHOLD"), None)
        auto_approve_threshold = clamp_match_threshold(raw_auto) if raw_auto is not None else None
        require_attendee_match = _env_bool(_k("REQUIRE_ATTENDEE_MATCH"), False)
        match_include_description = _env_bool(_k("MATCH_INCLUDE_DESCRIPTION"), True)

        prune_policy = _env(_k("PRUNE_POLICY"), "delete_unreferenced").strip().lower()
        if prune_policy not in PRUNE_POLICIES:
            prune_policy = "delete_unreferenced"

        history_limit = max(1, _env_int(_k("HISTORY_LIMIT"), 50))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            store_db_path=store_db_path,
            completion_match_threshold=completion_match_threshold,
            auto_approve_completed_tasks=auto_approve_completed_tasks,
            auto_approve_threshold=auto_approve_threshold,
            require_attendee_match=require_attendee_match,
            match_include_description=match_include_description,
            prune_policy=prune_policy,
            history_limit=history_limit,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
