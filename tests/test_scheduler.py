from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from fakes import FakeSink, FakeSource, make_entry, make_project
from togglsync.domain.models import SyncWindow
from togglsync.errors import AlreadyRunningError
from togglsync.sync.executor import SyncExecutor, SyncOutcome
from togglsync.sync.scheduler import (
    STATUS_CONFLICT,
    STATUS_ERROR,
    STATUS_OK,
    Scheduler,
    daily_window,
    next_midnight,
)

UTC = timezone.utc
NOW = datetime(2025, 8, 20, 15, 30, tzinfo=UTC)
WINDOW = SyncWindow(datetime(2025, 8, 1, 8, tzinfo=UTC), datetime(2025, 8, 1, 13, tzinfo=UTC))


class RecordingExecutor:
    def __init__(self, stop: threading.Event, stop_after: int, fail_first: bool = False):
        self.stop = stop
        self.stop_after = stop_after
        self.fail_first = fail_first
        self.windows = []

    def run(self, window, deadline=None):
        self.windows.append(window)
        if len(self.windows) >= self.stop_after:
            self.stop.set()
        if self.fail_first and len(self.windows) == 1:
            raise RuntimeError("toggl: unexpected status 502")
        return SyncOutcome(window=window, projects=0, entries=0)


def test_next_midnight_at_exact_midnight_is_next_day():
    tz = ZoneInfo("Europe/Berlin")
    now = datetime(2025, 8, 15, 0, 0, 0, tzinfo=tz)
    nxt = next_midnight(now)
    assert nxt == datetime(2025, 8, 16, 0, 0, 0, tzinfo=tz)
    assert nxt.astimezone(UTC) - now.astimezone(UTC) == timedelta(hours=24)


def test_next_midnight_just_before_midnight():
    tz = ZoneInfo("America/New_York")
    now = datetime(2025, 8, 15, 23, 59, 59, tzinfo=tz)
    assert next_midnight(now) == datetime(2025, 8, 16, 0, 0, tzinfo=tz)


def test_next_midnight_just_after_midnight():
    now = datetime(2025, 8, 15, 0, 0, 1, tzinfo=UTC)
    assert next_midnight(now) == datetime(2025, 8, 16, tzinfo=UTC)


def test_next_midnight_requires_aware_datetime():
    with pytest.raises(ValueError):
        next_midnight(datetime(2025, 8, 15, 12, 0))


def test_daily_window_is_24h_ending_at_local_midnight_in_utc():
    tz = ZoneInfo("America/New_York")
    # the local day before this midnight is only 23h long (DST starts on 2025-03-09)
    midnight = datetime(2025, 3, 10, 0, 0, tzinfo=tz)
    window = daily_window(midnight)
    assert window.end == datetime(2025, 3, 10, 4, 0, tzinfo=UTC)
    assert window.start == window.end - timedelta(hours=24)


def test_run_once_returns_outcome():
    source = FakeSource(projects=[make_project()], entries=[make_entry()])
    scheduler = Scheduler(SyncExecutor(source, FakeSink()))
    outcome = scheduler.run_once(WINDOW)
    assert outcome.entries == 1
    assert scheduler.guard.try_begin() is True


def test_overlapping_trigger_is_rejected_while_run_in_flight():
    source = FakeSource(projects=[make_project()], entries=[make_entry()])
    source.release = threading.Event()
    sink = FakeSink()
    scheduler = Scheduler(SyncExecutor(source, sink))
    results = {}

    def first():
        results["first"] = scheduler.trigger(WINDOW)

    t = threading.Thread(target=first)
    t.start()
    assert source.started.wait(5)

    second = scheduler.trigger(WINDOW)
    with pytest.raises(AlreadyRunningError):
        scheduler.run_once(WINDOW)

    source.release.set()
    t.join(5)

    assert second.status == STATUS_CONFLICT
    assert second.error == "sync already running"
    assert results["first"].status == STATUS_OK
    assert len(sink.entry_batches) == 1


def test_trigger_reports_failure_and_releases_guard():
    source = FakeSource(projects_error=RuntimeError("toggl: unexpected status 401: bad token"))
    scheduler = Scheduler(SyncExecutor(source, FakeSink()))

    result = scheduler.trigger(WINDOW)

    assert result.status == STATUS_ERROR
    assert "401" in result.error
    assert result.as_dict()["from"] == "2025-08-01T08:00:00Z"
    assert scheduler.guard.try_begin() is True


def test_trigger_result_body():
    source = FakeSource(projects=[make_project()], entries=[make_entry(1), make_entry(2)])
    result = Scheduler(SyncExecutor(source, FakeSink())).trigger(WINDOW)
    assert result.as_dict() == {
        "status": "ok",
        "from": "2025-08-01T08:00:00Z",
        "to": "2025-08-01T13:00:00Z",
        "projects": 1,
        "entries": 2,
    }


def test_run_interval_uses_first_window_then_24h_lookback():
    stop = threading.Event()
    executor = RecordingExecutor(stop, stop_after=3)
    scheduler = Scheduler(executor, clock=lambda: NOW)

    scheduler.run_interval(timedelta(milliseconds=10), stop, first_window=WINDOW)

    assert executor.windows[0] == WINDOW
    lookback = SyncWindow(NOW - timedelta(hours=24), NOW)
    assert executor.windows[1:] == [lookback, lookback]


def test_run_interval_keeps_going_after_failure():
    stop = threading.Event()
    executor = RecordingExecutor(stop, stop_after=2, fail_first=True)
    Scheduler(executor, clock=lambda: NOW).run_interval(timedelta(milliseconds=10), stop)
    assert len(executor.windows) == 2


def test_run_interval_does_not_start_when_cancelled():
    stop = threading.Event()
    stop.set()
    executor = RecordingExecutor(stop, stop_after=1)
    Scheduler(executor, clock=lambda: NOW).run_interval(timedelta(minutes=15), stop)
    assert executor.windows == []


def test_run_interval_rejects_non_positive_interval():
    stop = threading.Event()
    with pytest.raises(ValueError):
        Scheduler(RecordingExecutor(stop, 1)).run_interval(timedelta(0), stop)


def test_run_daily_fires_at_midnight_for_previous_day():
    tz = ZoneInfo("Europe/Berlin")
    almost = datetime(2025, 8, 15, 23, 59, 59, 950000, tzinfo=tz)
    stop = threading.Event()
    executor = RecordingExecutor(stop, stop_after=1)

    Scheduler(executor, clock=lambda: almost.astimezone(UTC)).run_daily(tz, stop)

    assert executor.windows == [
        SyncWindow(datetime(2025, 8, 14, 22, 0, tzinfo=UTC), datetime(2025, 8, 15, 22, 0, tzinfo=UTC))
    ]


def test_run_daily_cancellation_while_sleeping():
    stop = threading.Event()
    executor = RecordingExecutor(stop, stop_after=1)
    timer = threading.Timer(0.05, stop.set)
    timer.start()
    try:
        Scheduler(executor, clock=lambda: NOW).run_daily(ZoneInfo("UTC"), stop)
    finally:
        timer.cancel()
    assert executor.windows == []
