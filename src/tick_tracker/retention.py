"""Daily compaction of old intervals into per-application aggregates."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

from .db import (
    database_connection,
    delete_intervals,
    fetch_intervals,
    find_aggregate,
    save_aggregate,
    transaction,
)
from .models import UsageAggregate, fold_intervals, utc_now

logger = logging.getLogger(__name__)


class RetentionAggregator:
    """Folds intervals older than the retention window into aggregates.

    ``maybe_run`` is called after every tick and compacts at most once per UTC
    date. ``last_run_date`` only advances after a successful run.
    """

    def __init__(
        self,
        db_path: Path,
        retention_days: int,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if retention_days <= 0:
            raise ValueError("retention days must be greater than zero")
        self.db_path = Path(db_path)
        self.retention_days = retention_days
        self._clock = clock
        self.last_run_date: Optional[date] = None

    def maybe_run(self) -> bool:
        today = self._clock().date()
        if self.last_run_date is not None and today <= self.last_run_date:
            return False
        try:
            self.compact(today)
        except Exception:
            logger.exception("Compaction failed; it will be retried on the next tick.")
            return False
        self.last_run_date = today
        return True

    def cutoff_for(self, today: date) -> date:
        return today - timedelta(days=self.retention_days)

    def compact(self, today: date) -> int:
        """Fold and delete intervals dated before the cutoff in one transaction.

        Returns the number of intervals folded.
        """
        cutoff = self.cutoff_for(today)
        with database_connection(self.db_path) as conn, transaction(conn):
            intervals = fetch_intervals(conn, before=cutoff)
            if not intervals:
                return 0

            for totals in fold_intervals(intervals).values():
                aggregate = find_aggregate(conn, totals.application_name)
                if aggregate is None:
                    aggregate = UsageAggregate(
                        application_name=totals.application_name,
                        total_seconds=totals.total_seconds,
                        session_count=totals.session_count,
                        first_seen_utc=totals.first_seen_utc,
                        last_seen_utc=totals.last_seen_utc,
                    )
                else:
                    aggregate.merge(totals)
                save_aggregate(conn, aggregate)

            delete_intervals(conn, [interval.id for interval in intervals])

        logger.info(
            "Compacted %d intervals older than %s into aggregates.",
            len(intervals),
            cutoff.isoformat(),
        )
        return len(intervals)
