"""Domain models for recorded application usage."""

from __future__ import annotations

import os
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Iterable, Optional


MAX_NAME_LENGTH = 128

_id_lock = threading.Lock()
_last_id_ms = 0
_last_id_seq = 0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_record_id() -> str:
    """Return a UUIDv7 string; ids generated later sort after earlier ones."""
    global _last_id_ms, _last_id_seq
    with _id_lock:
        unix_ms = time.time_ns() // 1_000_000
        if unix_ms > _last_id_ms:
            _last_id_ms = unix_ms
            _last_id_seq = int.from_bytes(os.urandom(2), "big") & 0x7FF
        else:
            # Same (or earlier) millisecond: bump the 12-bit sequence instead.
            _last_id_seq += 1
            if _last_id_seq > 0xFFF:
                _last_id_ms += 1
                _last_id_seq = 0
        unix_ms, seq = _last_id_ms, _last_id_seq

    rand_b = int.from_bytes(os.urandom(8), "big") & ((1 << 62) - 1)
    value = (
        (unix_ms & ((1 << 48) - 1)) << 80
        | 0x7 << 76
        | seq << 64
        | 0b10 << 62
        | rand_b
    )
    return str(uuid.UUID(int=value))


def normalize_application_name(value: Optional[str]) -> Optional[str]:
    """Strip and bound an application name; blank names become ``None``."""
    if value is None:
        return None
    cleaned = " ".join(value.split())
    if not cleaned:
        return None
    return cleaned[:MAX_NAME_LENGTH]


def name_key(application_name: str) -> str:
    """Comparison key for application names: whitespace-collapsed and casefolded."""
    return " ".join(application_name.split()).casefold()


@dataclass(slots=True)
class UsageInterval:
    """A closed span during which one application held the foreground."""

    application_name: str
    start_utc: datetime
    end_utc: datetime
    usage_date: date
    id: str = field(default_factory=new_record_id)

    @property
    def duration_seconds(self) -> float:
        return (self.end_utc - self.start_utc).total_seconds()

    @classmethod
    def close(
        cls, application_name: str, start_utc: datetime, end_utc: datetime
    ) -> "UsageInterval":
        """Build an interval attributed to the UTC date it was closed on."""
        return cls(
            application_name=application_name,
            start_utc=start_utc,
            end_utc=end_utc,
            usage_date=end_utc.astimezone(timezone.utc).date(),
        )


@dataclass(slots=True)
class UsageSummary:
    """Cumulative usage for one application."""

    application_name: str
    total_seconds: float = 0.0
    session_count: int = 0
    first_seen_utc: Optional[datetime] = None
    last_seen_utc: Optional[datetime] = None

    def absorb(
        self,
        total_seconds: float,
        session_count: int,
        first_seen_utc: Optional[datetime],
        last_seen_utc: Optional[datetime],
    ) -> None:
        self.total_seconds += total_seconds
        self.session_count += session_count
        if first_seen_utc is not None and (
            self.first_seen_utc is None or first_seen_utc < self.first_seen_utc
        ):
            self.first_seen_utc = first_seen_utc
        if last_seen_utc is not None and (
            self.last_seen_utc is None or last_seen_utc > self.last_seen_utc
        ):
            self.last_seen_utc = last_seen_utc

    def absorb_summary(self, other: "UsageSummary") -> None:
        self.absorb(
            other.total_seconds,
            other.session_count,
            other.first_seen_utc,
            other.last_seen_utc,
        )


@dataclass(slots=True)
class UsageAggregate:
    """Persisted rollup of compacted intervals for one application."""

    application_name: str
    total_seconds: float
    session_count: int
    first_seen_utc: datetime
    last_seen_utc: datetime
    id: str = field(default_factory=new_record_id)

    def merge(self, summary: UsageSummary) -> None:
        self.total_seconds += summary.total_seconds
        self.session_count += summary.session_count
        if summary.first_seen_utc and summary.first_seen_utc < self.first_seen_utc:
            self.first_seen_utc = summary.first_seen_utc
        if summary.last_seen_utc and summary.last_seen_utc > self.last_seen_utc:
            self.last_seen_utc = summary.last_seen_utc

    def to_summary(self) -> UsageSummary:
        return UsageSummary(
            application_name=self.application_name,
            total_seconds=self.total_seconds,
            session_count=self.session_count,
            first_seen_utc=self.first_seen_utc,
            last_seen_utc=self.last_seen_utc,
        )


@dataclass(slots=True)
class BlacklistEntry:
    application_name: str
    created_utc: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=new_record_id)


def fold_intervals(intervals: Iterable[UsageInterval]) -> dict[str, UsageSummary]:
    """Group intervals by case-insensitive name into sum/count/min/max totals.

    The first spelling seen for an application becomes its display name.
    """
    totals: dict[str, UsageSummary] = {}
    for interval in intervals:
        key = name_key(interval.application_name)
        summary = totals.get(key)
        if summary is None:
            summary = totals[key] = UsageSummary(application_name=interval.application_name)
        summary.absorb(
            interval.duration_seconds, 1, interval.start_utc, interval.end_utc
        )
    return totals
