from datetime import timedelta

import pytest
from conftest import T0, add_interval

from tick_tracker.blacklist import BlacklistFilter
from tick_tracker.db import database_connection, insert_blacklist_entry, save_aggregate
from tick_tracker.models import BlacklistEntry, UsageAggregate
from tick_tracker.reporting import SummaryPrinter, format_duration, get_all_summaries


def _seed(db_path):
    with database_connection(db_path) as conn:
        save_aggregate(
            conn,
            UsageAggregate(
                application_name="Editor",
                total_seconds=100.0,
                session_count=2,
                first_seen_utc=T0 - timedelta(days=120),
                last_seen_utc=T0 - timedelta(days=95),
            ),
        )
        save_aggregate(
            conn,
            UsageAggregate(
                application_name="Game",
                total_seconds=9999.0,
                session_count=1,
                first_seen_utc=T0 - timedelta(days=120),
                last_seen_utc=T0 - timedelta(days=120),
            ),
        )
    add_interval(db_path, "editor", T0, 50)
    add_interval(db_path, "Browser", T0, 400)
    add_interval(db_path, "Browser", T0 + timedelta(hours=1), 20)


def test_summaries_merge_aggregates_and_intervals(db_path):
    _seed(db_path)
    with database_connection(db_path) as conn:
        summaries = get_all_summaries(conn)

    assert [s.application_name for s in summaries] == ["Game", "Browser", "Editor"]
    browser, editor = summaries[1], summaries[2]
    assert browser.total_seconds == pytest.approx(420)
    assert browser.session_count == 2
    assert browser.first_seen_utc == T0
    assert browser.last_seen_utc == T0 + timedelta(hours=1, seconds=20)
    assert editor.total_seconds == pytest.approx(150)
    assert editor.session_count == 3
    assert editor.first_seen_utc == T0 - timedelta(days=120)
    assert editor.last_seen_utc == T0 + timedelta(seconds=50)


def test_summaries_skip_blacklisted(db_path):
    _seed(db_path)
    with database_connection(db_path) as conn:
        insert_blacklist_entry(conn, BlacklistEntry("GAME"))
        summaries = get_all_summaries(conn)
    assert [s.application_name for s in summaries] == ["Browser", "Editor"]


def test_summaries_do_not_write(db_path):
    _seed(db_path)
    with database_connection(db_path) as conn:
        first = get_all_summaries(conn)
        second = get_all_summaries(conn)
    assert first == second


def test_printer_output(db_path, capsys):
    _seed(db_path)
    BlacklistFilter(db_path).blacklist("Game")
    SummaryPrinter(db_path).print_summaries(limit=1)
    out = capsys.readouterr().out
    assert "across 2 applications" in out
    assert "Browser" in out
    assert "Editor" not in out


def test_printer_without_data(db_path, capsys):
    SummaryPrinter(db_path).print_summaries()
    assert "No application usage recorded yet." in capsys.readouterr().out


@pytest.mark.parametrize(
    "seconds, expected",
    [(0, "00:00:00"), (59.6, "00:01:00"), (3661, "01:01:01"), (90000, "25:00:00")],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected
