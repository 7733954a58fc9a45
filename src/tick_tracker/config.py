"""Configuration models and helpers for the tracker."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from .db import get_setting, set_setting

logger = logging.getLogger(__name__)

RETENTION_DAYS_KEY = "RetentionDays"
POLL_SECONDS_KEY = "PollSeconds"
IGNORE_OS_APPS_KEY = "IgnoreWindowsApps"

DEFAULT_RETENTION_DAYS = 90
DEFAULT_POLL_SECONDS = 2
MIN_POLL_SECONDS = 1
MAX_POLL_SECONDS = 10


@dataclass(slots=True)
class TrackerSettings:
    """Runtime configuration read once when the daemon starts."""

    retention_days: int = DEFAULT_RETENTION_DAYS
    poll_interval: timedelta = timedelta(seconds=DEFAULT_POLL_SECONDS)
    ignore_os_apps: bool = True

    @property
    def poll_seconds(self) -> int:
        return int(self.poll_interval.total_seconds())

    @classmethod
    def from_values(
        cls,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        poll_seconds: int = DEFAULT_POLL_SECONDS,
        ignore_os_apps: bool = True,
    ) -> "TrackerSettings":
        """Build validated settings; raises ``ValueError`` for out-of-range values."""
        if retention_days <= 0:
            raise ValueError("retention days must be greater than zero")
        if not MIN_POLL_SECONDS <= poll_seconds <= MAX_POLL_SECONDS:
            raise ValueError(
                f"poll seconds must be between {MIN_POLL_SECONDS} and {MAX_POLL_SECONDS}"
            )
        return cls(
            retention_days=retention_days,
            poll_interval=timedelta(seconds=poll_seconds),
            ignore_os_apps=ignore_os_apps,
        )


def load_settings(conn: sqlite3.Connection) -> TrackerSettings:
    """Read settings from the store, falling back to defaults per key."""
    settings = TrackerSettings()

    retention = _parse_int(get_setting(conn, RETENTION_DAYS_KEY))
    if retention is not None and retention > 0:
        settings.retention_days = retention
    elif retention is not None:
        logger.warning("Ignoring invalid %s=%s", RETENTION_DAYS_KEY, retention)

    poll = _parse_int(get_setting(conn, POLL_SECONDS_KEY))
    if poll is not None and MIN_POLL_SECONDS <= poll <= MAX_POLL_SECONDS:
        settings.poll_interval = timedelta(seconds=poll)
    elif poll is not None:
        logger.warning("Ignoring invalid %s=%s", POLL_SECONDS_KEY, poll)

    ignore = _parse_bool(get_setting(conn, IGNORE_OS_APPS_KEY))
    if ignore is not None:
        settings.ignore_os_apps = ignore

    return settings


def save_settings(conn: sqlite3.Connection, settings: TrackerSettings) -> None:
    validated = TrackerSettings.from_values(
        retention_days=settings.retention_days,
        poll_seconds=settings.poll_seconds,
        ignore_os_apps=settings.ignore_os_apps,
    )
    set_setting(conn, RETENTION_DAYS_KEY, str(validated.retention_days))
    set_setting(conn, POLL_SECONDS_KEY, str(validated.poll_seconds))
    set_setting(conn, IGNORE_OS_APPS_KEY, "true" if validated.ignore_os_apps else "false")


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        logger.warning("Ignoring non-numeric setting value %r", value)
        return None


def _parse_bool(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    logger.warning("Ignoring non-boolean setting value %r", value)
    return None
