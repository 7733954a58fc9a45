import time
from datetime import timedelta

import pytest
from conftest import T0, FakeClock, ScriptedResolver, ScriptedStopEvent, add_interval

from tick_tracker.config import POLL_SECONDS_KEY, RETENTION_DAYS_KEY
from tick_tracker.db import (
    database_connection,
    fetch_aggregates,
    fetch_intervals,
    insert_blacklist_entry,
    set_setting,
)
from tick_tracker.models import BlacklistEntry
from tick_tracker.service import TrackerRunner, TrackerService


def _spans(db_path):
    with database_connection(db_path) as conn:
        intervals = fetch_intervals(conn)
    return [
        (
            item.application_name,
            (item.start_utc - T0).total_seconds(),
            (item.end_utc - T0).total_seconds(),
        )
        for item in intervals
    ]


def test_cancellation_scenario(db_path):
    with database_connection(db_path) as conn:
        set_setting(conn, POLL_SECONDS_KEY, "2")
    clock = FakeClock()
    resolver = ScriptedResolver(["Editor", "Editor", "Browser", "Browser"])
    service = TrackerService(db_path, resolver_factory=lambda settings: resolver, clock=clock)

    service.run_until_stopped(ScriptedStopEvent(clock, [2, 2, 2, 1]))

    assert resolver.calls == 4
    assert _spans(db_path) == [("Editor", 0, 4), ("Browser", 4, 7)]


def test_settings_are_read_once_at_start(db_path):
    with database_connection(db_path) as conn:
        set_setting(conn, POLL_SECONDS_KEY, "7")
        set_setting(conn, RETENTION_DAYS_KEY, "14")
    seen = []

    def factory(settings):
        seen.append(settings)
        return ScriptedResolver([None])

    clock = FakeClock()
    service = TrackerService(db_path, resolver_factory=factory, clock=clock)
    service.start()

    assert len(seen) == 1
    assert service.settings.poll_seconds == 7
    assert service.retention.retention_days == 14
    assert seen[0].ignore_os_apps is True


def test_blacklisted_identity_is_not_persisted(db_path):
    with database_connection(db_path) as conn:
        insert_blacklist_entry(conn, BlacklistEntry("Game"))
    clock = FakeClock()
    resolver = ScriptedResolver(["game", "Editor", "GAME"])
    service = TrackerService(db_path, resolver_factory=lambda settings: resolver, clock=clock)

    service.run_until_stopped(ScriptedStopEvent(clock, [2, 2, 2]))

    assert _spans(db_path) == [("Editor", 2, 4)]


def test_retention_runs_at_start_and_on_date_rollover(db_path):
    with database_connection(db_path) as conn:
        set_setting(conn, RETENTION_DAYS_KEY, "30")
    old = T0 - timedelta(days=45)
    add_interval(db_path, "Old", old, 60, usage_date=old.date())
    # Becomes eligible once the UTC date moves forward by a day.
    edge = T0 - timedelta(days=30)
    add_interval(db_path, "Edge", edge, 90, usage_date=edge.date())

    clock = FakeClock(T0.replace(hour=23, minute=59, second=50))
    service = TrackerService(
        db_path, resolver_factory=lambda settings: ScriptedResolver([None]), clock=clock
    )
    service.start()
    with database_connection(db_path) as conn:
        assert [a.application_name for a in fetch_aggregates(conn)] == ["Old"]
        assert [i.application_name for i in fetch_intervals(conn)] == ["Edge"]

    service._run_loop(ScriptedStopEvent(clock, [2, 20, 2]))

    with database_connection(db_path) as conn:
        assert sorted(a.application_name for a in fetch_aggregates(conn)) == ["Edge", "Old"]
        assert fetch_intervals(conn) == []
    assert service.retention.last_run_date == T0.date() + timedelta(days=1)


def test_corrupt_database_falls_back_to_default_settings(tmp_path):
    db_path = tmp_path / "usage.sqlite3"
    db_path.write_bytes(b"this is not a sqlite database" * 10)
    service = TrackerService(
        db_path, resolver_factory=lambda settings: ScriptedResolver([None]), clock=FakeClock()
    )
    settings = service._read_settings()
    assert settings.poll_seconds == 2
    assert settings.retention_days == 90


def test_runner_starts_and_stops_background_thread(db_path):
    runner = TrackerRunner(db_path, resolver_factory=lambda settings: ScriptedResolver(["Editor"]))
    assert not runner.is_running()
    runner.start()
    assert runner.is_running()
    time.sleep(0.05)
    runner.stop()
    assert not runner.is_running()


def test_loop_requires_start(db_path):
    clock = FakeClock()
    service = TrackerService(
        db_path, resolver_factory=lambda settings: ScriptedResolver([None]), clock=clock
    )
    with pytest.raises(RuntimeError, match="start"):
        service._run_loop(ScriptedStopEvent(clock, [2]))
