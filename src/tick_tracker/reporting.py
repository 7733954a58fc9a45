"""Usage summaries and console reporting."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional

from .db import database_connection, fetch_aggregates, fetch_blacklist, fetch_intervals
from .models import UsageSummary, fold_intervals, name_key


def get_all_summaries(conn: sqlite3.Connection) -> list[UsageSummary]:
    """Merge aggregates with uncompacted intervals, largest total first.

    Blacklisted applications are left out. Nothing is written.
    """
    blocked = {name_key(entry.application_name) for entry in fetch_blacklist(conn)}

    summaries: dict[str, UsageSummary] = {}
    for aggregate in fetch_aggregates(conn):
        key = name_key(aggregate.application_name)
        if key in blocked:
            continue
        summaries[key] = aggregate.to_summary()

    live = fetch_intervals(conn)
    for key, totals in fold_intervals(live).items():
        if key in blocked:
            continue
        existing = summaries.get(key)
        if existing is None:
            summaries[key] = totals
        else:
            existing.absorb_summary(totals)

    return sorted(
        summaries.values(),
        key=lambda item: (-item.total_seconds, name_key(item.application_name)),
    )


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    def print_summaries(self, limit: Optional[int] = None) -> None:
        with database_connection(self.db_path) as conn:
            summaries = get_all_summaries(conn)
        if not summaries:
            print("No application usage recorded yet.")
            return

        total = sum(summary.total_seconds for summary in summaries)
        print(f"Tracked time: {format_duration(total)} across {len(summaries)} applications")
        print("-" * 72)
        shown = summaries[:limit] if limit else summaries
        for summary in shown:
            last_seen = (
                summary.last_seen_utc.strftime("%Y-%m-%d %H:%M")
                if summary.last_seen_utc
                else "-"
            )
            print(
                f"  {summary.application_name[:36]:<36} "
                f"{format_duration(summary.total_seconds)} "
                f"{summary.session_count:>6}  {last_seen}"
            )


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
