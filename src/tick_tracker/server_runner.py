"""Helpers to launch the local API server."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import uvicorn

from .paths import get_db_path
from .webapp import create_app


def run_server(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    db_path: Optional[Path] = None,
    run_tracker: bool = True,
    log_level: str = "info",
) -> None:
    """Start the FastAPI server, optionally with the tracker in the background."""
    app = create_app(db_path=db_path or get_db_path(), run_tracker=run_tracker)
    logging.getLogger("uvicorn.error").setLevel(log_level.upper())
    uvicorn.run(app, host=host, port=port, log_level=log_level)
