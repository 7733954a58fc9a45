"""Polling state machine that turns foreground samples into intervals."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .identity import IdentityResolver
from .models import UsageInterval, name_key, utc_now

logger = logging.getLogger(__name__)

IntervalSink = Callable[[UsageInterval], object]


@dataclass(slots=True)
class OpenInterval:
    application_name: str
    start_utc: datetime


class SessionTracker:
    """Tracks one open interval at a time.

    ``current`` is ``None`` while idle. A tick that resolves to no identity
    leaves the state untouched, so the open interval keeps accumulating.
    """

    def __init__(
        self,
        resolver: IdentityResolver,
        sink: IntervalSink,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._resolver = resolver
        self._sink = sink
        self._clock = clock
        self.current: Optional[OpenInterval] = None

    @property
    def is_tracking(self) -> bool:
        return self.current is not None

    def tick(self) -> None:
        now = self._clock()
        try:
            sample = self._resolver.resolve_current_identity()
        except Exception:
            logger.exception("Failed to resolve the foreground application.")
            return

        if sample is None:
            return

        current = self.current
        if current and name_key(current.application_name) == name_key(sample):
            return

        if current:
            self._close(current, now)
        self.current = OpenInterval(application_name=sample, start_utc=now)
        logger.debug("Now tracking %s.", sample)

    def shutdown(self) -> None:
        """Close and persist the open interval, if any."""
        current = self.current
        self.current = None
        if current:
            self._close(current, self._clock())

    def _close(self, current: OpenInterval, end_utc: datetime) -> None:
        if end_utc <= current.start_utc:
            logger.debug("Discarding zero-length interval for %s.", current.application_name)
            return
        interval = UsageInterval.close(current.application_name, current.start_utc, end_utc)
        try:
            self._sink(interval)
        except (sqlite3.Error, OSError, ValueError):
            logger.exception(
                "Failed to persist interval for %s; dropping it.",
                interval.application_name,
            )
