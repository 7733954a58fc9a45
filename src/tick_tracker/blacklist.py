"""Permanent exclusion of applications from tracking."""

from __future__ import annotations

import logging
from pathlib import Path

from .db import (
    database_connection,
    delete_blacklist_entry,
    fetch_blacklist,
    insert_blacklist_entry,
    is_blacklisted,
    purge_application,
    transaction,
    validate_application_name,
)
from .models import BlacklistEntry

logger = logging.getLogger(__name__)


class BlacklistFilter:
    """Blacklist lookups and updates against the usage database."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    def is_blocked(self, application_name: str) -> bool:
        with database_connection(self.db_path) as conn:
            return is_blacklisted(conn, application_name)

    def names(self) -> list[str]:
        with database_connection(self.db_path) as conn:
            return [entry.application_name for entry in fetch_blacklist(conn)]

    def blacklist(self, application_name: str) -> bool:
        """Blacklist the name and purge its recorded history.

        Returns True when a new entry was created. The purge runs either way.
        """
        name = validate_application_name(application_name)
        with database_connection(self.db_path) as conn, transaction(conn):
            added = insert_blacklist_entry(conn, BlacklistEntry(application_name=name))
            intervals, aggregates = purge_application(conn, name)
        logger.info(
            "Blacklisted %s; purged %d intervals and %d aggregates.",
            name,
            intervals,
            aggregates,
        )
        return added

    def unblock(self, application_name: str) -> bool:
        name = validate_application_name(application_name)
        with database_connection(self.db_path) as conn:
            removed = delete_blacklist_entry(conn, name)
        if removed:
            logger.info("Removed %s from the blacklist.", name)
        return removed
