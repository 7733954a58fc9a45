"""Tracker daemon: settings, polling loop and lifecycle."""

from __future__ import annotations

import logging
import signal
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .config import TrackerSettings, load_settings
from .db import database_connection
from .identity import ForegroundIdentityResolver, IdentityResolver
from .models import utc_now
from .recorder import IntervalRecorder
from .retention import RetentionAggregator
from .tracker import SessionTracker

logger = logging.getLogger(__name__)

ResolverFactory = Callable[[TrackerSettings], IdentityResolver]


def default_resolver_factory(settings: TrackerSettings) -> IdentityResolver:
    return ForegroundIdentityResolver(ignore_os_apps=settings.ignore_os_apps)


class TrackerService:
    """Samples the foreground application at the configured interval."""

    def __init__(
        self,
        db_path: Path,
        *,
        resolver_factory: ResolverFactory = default_resolver_factory,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.db_path = Path(db_path)
        self._resolver_factory = resolver_factory
        self._clock = clock
        self.settings: Optional[TrackerSettings] = None
        self.tracker: Optional[SessionTracker] = None
        self.retention: Optional[RetentionAggregator] = None

    def start(self) -> None:
        """Read settings once and build the tracking components."""
        self.settings = self._read_settings()
        recorder = IntervalRecorder(self.db_path)
        self.tracker = SessionTracker(
            self._resolver_factory(self.settings),
            recorder.record,
            clock=self._clock,
        )
        self.retention = RetentionAggregator(
            self.db_path, self.settings.retention_days, clock=self._clock
        )
        logger.info(
            "Starting tracker; writing to %s (poll=%ss, retention=%sd, ignore_os_apps=%s)",
            self.db_path,
            self.settings.poll_seconds,
            self.settings.retention_days,
            self.settings.ignore_os_apps,
        )
        self.retention.maybe_run()

    def run_forever(self) -> None:
        stop_event = threading.Event()

        def _request_stop(signum: int, frame: object) -> None:
            logger.info("Received signal %s; stopping.", signum)
            stop_event.set()

        if threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGTERM, _request_stop)
        try:
            self.start()
            self._run_loop(stop_event)
        except KeyboardInterrupt:
            logger.info("Tracker interrupted; flushing the open interval.")
        finally:
            self._shutdown()

    def run_until_stopped(self, stop_event: threading.Event) -> None:
        """Run the tracker until the provided event is set."""
        try:
            self.start()
            self._run_loop(stop_event)
        finally:
            self._shutdown()

    def _run_loop(self, stop_event: threading.Event) -> None:
        if not (self.tracker and self.retention and self.settings):
            raise RuntimeError("start() must be called first")
        interval = self.settings.poll_interval.total_seconds()
        while not stop_event.is_set():
            try:
                self.tracker.tick()
            except Exception:
                logger.exception("Tracking tick failed.")
            # Sleep in an interruptible manner.
            if stop_event.wait(interval):
                break
            self.retention.maybe_run()

    def _shutdown(self) -> None:
        if self.tracker:
            self.tracker.shutdown()
        logger.info("Tracker stopped.")

    def _read_settings(self) -> TrackerSettings:
        try:
            with database_connection(self.db_path) as conn:
                return load_settings(conn)
        except (sqlite3.Error, OSError):
            logger.warning("Failed to read settings; using defaults.", exc_info=True)
            return TrackerSettings()


class TrackerRunner:
    """Manage the tracker service in a background thread."""

    def __init__(
        self,
        db_path: Path,
        *,
        resolver_factory: ResolverFactory = default_resolver_factory,
    ) -> None:
        self._db_path = Path(db_path)
        self._resolver_factory = resolver_factory
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            service = TrackerService(
                self._db_path, resolver_factory=self._resolver_factory
            )
            thread = threading.Thread(
                target=self._run_service,
                args=(service, stop_event),
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            thread.start()
            logger.info("Tracker background thread started.")

    def stop(self) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if not self._thread or not self._thread.is_alive() or not self._stop_event:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
        if thread:
            thread.join(timeout=10)
            logger.info("Tracker background thread stopped.")

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())

    @staticmethod
    def _run_service(service: TrackerService, stop_event: threading.Event) -> None:
        try:
            service.run_until_stopped(stop_event)
        except Exception:
            logger.exception("Tracker thread exited with an error.")
