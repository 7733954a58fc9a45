"""Persistence of closed usage intervals."""

from __future__ import annotations

import logging
from pathlib import Path

from .db import database_connection, insert_interval, is_blacklisted
from .models import UsageInterval, name_key

logger = logging.getLogger(__name__)

# The tracker never records time spent in itself.
SELF_NAMES = frozenset(name_key(name) for name in ("TickTracker", "TicksTracker", "tick-tracker"))


class IntervalRecorder:
    """Writes intervals through a short-lived connection, skipping blocked names."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    def record(self, interval: UsageInterval) -> bool:
        if interval.end_utc <= interval.start_utc:
            return False
        if name_key(interval.application_name) in SELF_NAMES:
            return False
        with database_connection(self.db_path) as conn:
            if is_blacklisted(conn, interval.application_name):
                logger.debug("Skipping blacklisted %s.", interval.application_name)
                return False
            insert_interval(conn, interval)
        logger.debug(
            "Recorded %s for %.1fs.",
            interval.application_name,
            interval.duration_seconds,
        )
        return True
