from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Union

import pytest

from tick_tracker.db import database_connection, insert_interval
from tick_tracker.models import UsageInterval


T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class ScriptedResolver:
    """Returns the scripted samples in order, then keeps returning the last one."""

    def __init__(self, samples: list[Union[str, None, Exception]]) -> None:
        self.samples = list(samples)
        self.calls = 0

    def resolve_current_identity(self) -> Optional[str]:
        index = min(self.calls, len(self.samples) - 1)
        self.calls += 1
        sample = self.samples[index]
        if isinstance(sample, Exception):
            raise sample
        return sample


class ScriptedStopEvent:
    """Stand-in for threading.Event whose waits advance a fake clock.

    Each wait consumes one step; the event is set when the last step is used.
    """

    def __init__(self, clock: FakeClock, steps: list[float]) -> None:
        self._clock = clock
        self._steps = list(steps)
        self._set = False

    def is_set(self) -> bool:
        return self._set

    def set(self) -> None:
        self._set = True

    def wait(self, timeout: Optional[float] = None) -> bool:
        self._clock.advance(self._steps.pop(0))
        if not self._steps:
            self._set = True
        return self._set


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "usage.sqlite3"


@pytest.fixture
def clock():
    return FakeClock()


def add_interval(db_path, name, start, seconds, usage_date=None) -> UsageInterval:
    interval = UsageInterval.close(name, start, start + timedelta(seconds=seconds))
    if usage_date is not None:
        interval.usage_date = usage_date
    with database_connection(db_path) as conn:
        insert_interval(conn, interval)
    return interval
