"""SQLite database layer for usage intervals, aggregates, blacklist and settings."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .models import (
    MAX_NAME_LENGTH,
    BlacklistEntry,
    UsageAggregate,
    UsageInterval,
    name_key,
)


DATETIME_FMT = "%Y-%m-%d %H:%M:%S.%f"
DATE_FMT = "%Y-%m-%d"

MAX_SETTING_KEY_LENGTH = 64
MAX_SETTING_VALUE_LENGTH = 256


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Apply every statement in the block as one unit, or none of them."""
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS usage_intervals (
            id TEXT PRIMARY KEY,
            application_name TEXT NOT NULL,
            name_key TEXT NOT NULL,
            start_utc TEXT NOT NULL,
            end_utc TEXT NOT NULL,
            usage_date TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_intervals_usage_date
            ON usage_intervals(usage_date);

        CREATE INDEX IF NOT EXISTS idx_intervals_name_key
            ON usage_intervals(name_key);

        CREATE TABLE IF NOT EXISTS usage_aggregates (
            id TEXT PRIMARY KEY,
            application_name TEXT NOT NULL,
            name_key TEXT NOT NULL UNIQUE,
            total_seconds REAL NOT NULL DEFAULT 0,
            session_count INTEGER NOT NULL DEFAULT 0,
            first_seen_utc TEXT NOT NULL,
            last_seen_utc TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS blacklisted_apps (
            id TEXT PRIMARY KEY,
            application_name TEXT NOT NULL,
            name_key TEXT NOT NULL UNIQUE,
            created_utc TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS app_settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );

        INSERT OR IGNORE INTO app_settings (key, value)
            VALUES ('IgnoreWindowsApps', 'true');
        """
    )


def format_datetime(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(DATETIME_FMT)


def parse_datetime(value: str) -> datetime:
    return datetime.strptime(value, DATETIME_FMT).replace(tzinfo=timezone.utc)


def validate_application_name(application_name: str) -> str:
    """Collapse whitespace the way resolved identities are, then bound the length."""
    name = " ".join(application_name.split()) if application_name else ""
    if not name:
        raise ValueError("application name must not be blank")
    if len(name) > MAX_NAME_LENGTH:
        raise ValueError(
            f"application name must be at most {MAX_NAME_LENGTH} characters"
        )
    return name


# --- settings ---


def get_setting(conn: sqlite3.Connection, key: str) -> Optional[str]:
    row = conn.execute(
        "SELECT value FROM app_settings WHERE key = ?", (key,)
    ).fetchone()
    return row["value"] if row else None


def set_setting(conn: sqlite3.Connection, key: str, value: str) -> None:
    if not key or len(key) > MAX_SETTING_KEY_LENGTH:
        raise ValueError(f"setting key must be 1-{MAX_SETTING_KEY_LENGTH} characters")
    if len(value) > MAX_SETTING_VALUE_LENGTH:
        raise ValueError(
            f"setting value must be at most {MAX_SETTING_VALUE_LENGTH} characters"
        )
    conn.execute(
        """
        INSERT INTO app_settings (key, value) VALUES (?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value
        """,
        (key, value),
    )


# --- intervals ---


def insert_interval(conn: sqlite3.Connection, interval: UsageInterval) -> None:
    name = validate_application_name(interval.application_name)
    conn.execute(
        """
        INSERT INTO usage_intervals (
            id,
            application_name,
            name_key,
            start_utc,
            end_utc,
            usage_date
        ) VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            interval.id,
            name,
            name_key(name),
            format_datetime(interval.start_utc),
            format_datetime(interval.end_utc),
            interval.usage_date.strftime(DATE_FMT),
        ),
    )


def fetch_intervals(
    conn: sqlite3.Connection, *, before: Optional[date] = None
) -> list[UsageInterval]:
    """Fetch intervals, optionally only those attributed to dates before ``before``."""
    query = """
        SELECT id, application_name, start_utc, end_utc, usage_date
        FROM usage_intervals
    """
    params: tuple[object, ...] = ()
    if before is not None:
        query += " WHERE usage_date < ?"
        params = (before.strftime(DATE_FMT),)
    query += " ORDER BY id"
    return [_row_to_interval(row) for row in conn.execute(query, params)]


def delete_intervals(conn: sqlite3.Connection, interval_ids: Iterable[str]) -> int:
    cur = conn.executemany(
        "DELETE FROM usage_intervals WHERE id = ?",
        [(interval_id,) for interval_id in interval_ids],
    )
    return cur.rowcount


def _row_to_interval(row: sqlite3.Row) -> UsageInterval:
    return UsageInterval(
        id=row["id"],
        application_name=row["application_name"],
        start_utc=parse_datetime(row["start_utc"]),
        end_utc=parse_datetime(row["end_utc"]),
        usage_date=datetime.strptime(row["usage_date"], DATE_FMT).date(),
    )


# --- aggregates ---


def fetch_aggregates(conn: sqlite3.Connection) -> list[UsageAggregate]:
    return [
        _row_to_aggregate(row)
        for row in conn.execute(
            """
            SELECT
                id,
                application_name,
                total_seconds,
                session_count,
                first_seen_utc,
                last_seen_utc
            FROM usage_aggregates
            ORDER BY name_key
            """
        )
    ]


def find_aggregate(
    conn: sqlite3.Connection, application_name: str
) -> Optional[UsageAggregate]:
    row = conn.execute(
        """
        SELECT
            id,
            application_name,
            total_seconds,
            session_count,
            first_seen_utc,
            last_seen_utc
        FROM usage_aggregates
        WHERE name_key = ?
        """,
        (name_key(application_name),),
    ).fetchone()
    return _row_to_aggregate(row) if row else None


def save_aggregate(conn: sqlite3.Connection, aggregate: UsageAggregate) -> None:
    """Insert the aggregate, or overwrite the stored row with the same id."""
    name = validate_application_name(aggregate.application_name)
    conn.execute(
        """
        INSERT INTO usage_aggregates (
            id,
            application_name,
            name_key,
            total_seconds,
            session_count,
            first_seen_utc,
            last_seen_utc
        ) VALUES (?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            total_seconds = excluded.total_seconds,
            session_count = excluded.session_count,
            first_seen_utc = excluded.first_seen_utc,
            last_seen_utc = excluded.last_seen_utc
        """,
        (
            aggregate.id,
            name,
            name_key(name),
            aggregate.total_seconds,
            aggregate.session_count,
            format_datetime(aggregate.first_seen_utc),
            format_datetime(aggregate.last_seen_utc),
        ),
    )


def _row_to_aggregate(row: sqlite3.Row) -> UsageAggregate:
    return UsageAggregate(
        id=row["id"],
        application_name=row["application_name"],
        total_seconds=float(row["total_seconds"]),
        session_count=int(row["session_count"]),
        first_seen_utc=parse_datetime(row["first_seen_utc"]),
        last_seen_utc=parse_datetime(row["last_seen_utc"]),
    )


# --- blacklist ---


def fetch_blacklist(conn: sqlite3.Connection) -> list[BlacklistEntry]:
    return [
        BlacklistEntry(
            id=row["id"],
            application_name=row["application_name"],
            created_utc=parse_datetime(row["created_utc"]),
        )
        for row in conn.execute(
            """
            SELECT id, application_name, created_utc
            FROM blacklisted_apps
            ORDER BY name_key
            """
        )
    ]


def is_blacklisted(conn: sqlite3.Connection, application_name: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM blacklisted_apps WHERE name_key = ?",
        (name_key(application_name),),
    ).fetchone()
    return row is not None


def insert_blacklist_entry(conn: sqlite3.Connection, entry: BlacklistEntry) -> bool:
    """Insert the entry; returns False when the name is already blacklisted."""
    name = validate_application_name(entry.application_name)
    cur = conn.execute(
        """
        INSERT OR IGNORE INTO blacklisted_apps (id, application_name, name_key, created_utc)
        VALUES (?, ?, ?, ?)
        """,
        (
            entry.id,
            name,
            name_key(name),
            format_datetime(entry.created_utc),
        ),
    )
    return cur.rowcount > 0


def delete_blacklist_entry(conn: sqlite3.Connection, application_name: str) -> bool:
    cur = conn.execute(
        "DELETE FROM blacklisted_apps WHERE name_key = ?",
        (name_key(application_name),),
    )
    return cur.rowcount > 0


def purge_application(
    conn: sqlite3.Connection, application_name: str
) -> tuple[int, int]:
    """Delete every interval and aggregate row for the name.

    Returns the number of (intervals, aggregates) removed.
    """
    intervals = conn.execute(
        "DELETE FROM usage_intervals WHERE name_key = ?",
        (name_key(application_name),),
    ).rowcount
    aggregates = conn.execute(
        "DELETE FROM usage_aggregates WHERE name_key = ?",
        (name_key(application_name),),
    ).rowcount
    return intervals, aggregates
