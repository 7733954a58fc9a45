"""FastAPI application exposing summaries, blacklist and settings for the tracker."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from .blacklist import BlacklistFilter
from .config import (
    MAX_POLL_SECONDS,
    MIN_POLL_SECONDS,
    TrackerSettings,
    load_settings,
    save_settings,
)
from .db import database_connection
from .models import MAX_NAME_LENGTH, UsageSummary
from .paths import get_db_path
from .reporting import get_all_summaries
from .service import TrackerRunner

logger = logging.getLogger(__name__)


class BlacklistPayload(BaseModel):
    application_name: str = Field(min_length=1, max_length=MAX_NAME_LENGTH)

    model_config = ConfigDict(extra="forbid")


class SettingsPayload(BaseModel):
    retention_days: int = Field(gt=0)
    poll_seconds: int = Field(ge=MIN_POLL_SECONDS, le=MAX_POLL_SECONDS)
    ignore_os_apps: bool

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    db_path: Optional[Path] = None,
    run_tracker: bool = True,
    runner: Optional[TrackerRunner] = None,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_db_path = Path(db_path or get_db_path())
    tracker_runner = runner or TrackerRunner(resolved_db_path)
    blacklist = BlacklistFilter(resolved_db_path)

    app = FastAPI(title="TickTracker", version="0.3.0")
    app.state.db_path = resolved_db_path
    app.state.tracker_runner = tracker_runner

    @app.on_event("startup")
    async def _startup() -> None:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
        if run_tracker:
            tracker_runner.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        tracker_runner.stop()

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        return {
            "tracker_running": request.app.state.tracker_runner.is_running(),
            "database_path": str(request.app.state.db_path),
        }

    @app.get("/api/summaries")
    def summaries(request: Request) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            rows = get_all_summaries(conn)
        return {
            "total_seconds": sum(row.total_seconds for row in rows),
            "summaries": [_summary_payload(row) for row in rows],
        }

    @app.get("/api/blacklist")
    def list_blacklist() -> Dict[str, Any]:
        return {"applications": blacklist.names()}

    @app.post("/api/blacklist", status_code=201)
    def add_to_blacklist(payload: BlacklistPayload) -> Dict[str, Any]:
        try:
            added = blacklist.blacklist(payload.application_name)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"application_name": payload.application_name.strip(), "added": added}

    @app.delete("/api/blacklist/{application_name}")
    def remove_from_blacklist(application_name: str) -> Dict[str, Any]:
        try:
            removed = blacklist.unblock(application_name)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if not removed:
            raise HTTPException(status_code=404, detail="Application is not blacklisted")
        return {"application_name": application_name, "removed": True}

    @app.get("/api/settings")
    def get_settings(request: Request) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            settings = load_settings(conn)
        return _settings_payload(settings)

    @app.put("/api/settings")
    def update_settings(payload: SettingsPayload, request: Request) -> Dict[str, Any]:
        settings = TrackerSettings.from_values(
            retention_days=payload.retention_days,
            poll_seconds=payload.poll_seconds,
            ignore_os_apps=payload.ignore_os_apps,
        )
        with database_connection(request.app.state.db_path) as conn:
            save_settings(conn, settings)
        logger.info("Settings updated; they take effect when the tracker restarts.")
        return _settings_payload(settings)

    return app


def _settings_payload(settings: TrackerSettings) -> Dict[str, Any]:
    return {
        "retention_days": settings.retention_days,
        "poll_seconds": settings.poll_seconds,
        "ignore_os_apps": settings.ignore_os_apps,
    }


def _summary_payload(summary: UsageSummary) -> Dict[str, Any]:
    return {
        "application_name": summary.application_name,
        "total_seconds": summary.total_seconds,
        "session_count": summary.session_count,
        "first_seen_utc": _iso(summary.first_seen_utc),
        "last_seen_utc": _iso(summary.last_seen_utc),
    }


def _iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None
