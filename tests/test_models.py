import uuid
from datetime import datetime, timedelta, timezone

from conftest import T0

from tick_tracker.models import (
    UsageInterval,
    fold_intervals,
    new_record_id,
    normalize_application_name,
)


def test_record_ids_are_time_ordered_uuid7():
    ids = [new_record_id() for _ in range(500)]
    assert ids == sorted(ids)
    assert len(set(ids)) == len(ids)
    assert all(uuid.UUID(value).version == 7 for value in ids)


def test_interval_is_attributed_to_utc_close_date():
    start = datetime(2024, 5, 1, 23, 0, tzinfo=timezone(timedelta(hours=-5)))
    interval = UsageInterval.close("Editor", start, start + timedelta(hours=2))
    assert interval.usage_date == datetime(2024, 5, 2).date()
    assert interval.duration_seconds == 7200


def test_fold_intervals_groups_case_insensitively():
    intervals = [
        UsageInterval.close("Editor", T0, T0 + timedelta(seconds=10)),
        UsageInterval.close("EDITOR", T0 + timedelta(hours=1), T0 + timedelta(hours=1, seconds=5)),
        UsageInterval.close("Browser", T0, T0 + timedelta(seconds=1)),
    ]
    totals = fold_intervals(intervals)
    editor = totals["editor"]
    assert editor.application_name == "Editor"
    assert editor.total_seconds == 15
    assert editor.session_count == 2
    assert editor.first_seen_utc == T0
    assert editor.last_seen_utc == T0 + timedelta(hours=1, seconds=5)
    assert totals["browser"].session_count == 1


def test_normalize_application_name():
    assert normalize_application_name("  Visual   Studio  Code ") == "Visual Studio Code"
    assert normalize_application_name("   ") is None
    assert normalize_application_name(None) is None
    assert len(normalize_application_name("x" * 500)) == 128
