from __future__ import annotations
import logging
import threading
import time as _time
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Callable, Optional

from togglsync.domain.models import SyncWindow, format_utc_z
from togglsync.errors import AlreadyRunningError
from togglsync.sync.executor import SyncExecutor, SyncOutcome
from togglsync.sync.guard import SingleFlightGuard
from togglsync.sync.window import DEFAULT_LOOKBACK

log = logging.getLogger("scheduler")

STATUS_OK = "ok"
STATUS_CONFLICT = "conflict"
STATUS_ERROR = "error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_midnight(now: datetime) -> datetime:
    """Next local midnight strictly after ``now``, in ``now``'s zone.

    At exactly 00:00 the result is the following day's midnight, never ``now``.
    """
    if now.tzinfo is None:
        raise ValueError("next_midnight needs an aware datetime")
    return datetime.combine(now.date() + timedelta(days=1), time.min, tzinfo=now.tzinfo)


def daily_window(midnight: datetime) -> SyncWindow:
    end = midnight.astimezone(timezone.utc)
    return SyncWindow(end - DEFAULT_LOOKBACK, end)


@dataclass(frozen=True)
class TriggerResult:
    status: str
    window: SyncWindow
    error: Optional[str] = None
    outcome: Optional[SyncOutcome] = None

    def as_dict(self) -> dict:
        body = {"status": self.status, **self.window.as_dict()}
        if self.error is not None:
            body["error"] = self.error
        if self.outcome is not None:
            body["projects"] = self.outcome.projects
            body["entries"] = self.outcome.entries
        return body


class Scheduler:
    """Drives the executor under one of the scheduling modes.

    Every mode goes through the same guard, so timer runs, HTTP triggers and
    manual runs never overlap.
    """

    def __init__(
        self,
        executor: SyncExecutor,
        guard: Optional[SingleFlightGuard] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.executor = executor
        self.guard = guard or SingleFlightGuard()
        self.clock = clock

    def lookback_window(self) -> SyncWindow:
        end = self.clock().astimezone(timezone.utc)
        return SyncWindow(end - DEFAULT_LOOKBACK, end)

    def run_once(self, window: SyncWindow, deadline: Optional[float] = None) -> SyncOutcome:
        with self.guard.hold():
            return self.executor.run(window, deadline=deadline)

    def trigger(self, window: SyncWindow, deadline: Optional[float] = None) -> TriggerResult:
        try:
            outcome = self.run_once(window, deadline=deadline)
        except AlreadyRunningError as exc:
            log.warning("sync trigger rejected from=%s to=%s: %s",
                        format_utc_z(window.start), format_utc_z(window.end), exc)
            return TriggerResult(STATUS_CONFLICT, window, error=str(exc))
        except Exception as exc:
            log.error("triggered sync failed from=%s to=%s error=%s",
                      format_utc_z(window.start), format_utc_z(window.end), exc)
            return TriggerResult(STATUS_ERROR, window, error=str(exc))
        return TriggerResult(STATUS_OK, window, outcome=outcome)

    def _run_logged(self, window: SyncWindow, label: str) -> Optional[SyncOutcome]:
        try:
            outcome = self.run_once(window)
        except AlreadyRunningError:
            log.info("%s sync skipped: another sync is running", label)
            return None
        except Exception as exc:
            log.error("%s sync failed error=%s", label, exc)
            return None
        log.info("%s sync completed from=%s to=%s", label,
                 format_utc_z(window.start), format_utc_z(window.end))
        return outcome

    def run_interval(
        self,
        interval: timedelta,
        stop: threading.Event,
        first_window: Optional[SyncWindow] = None,
    ) -> None:
        """Sync now, then on every tick with a fixed 24h lookback.

        The lookback does not depend on the interval; overlaps are absorbed by
        the upserts. Ticks missed while a run is in progress are dropped.
        """
        seconds = interval.total_seconds()
        if seconds <= 0:
            raise ValueError("interval must be positive")
        log.info("starting periodic sync interval=%ss", seconds)
        if stop.is_set():
            log.info("shutting down")
            return
        next_tick = _time.monotonic() + seconds
        self._run_logged(first_window or self.lookback_window(), "initial")
        while True:
            now = _time.monotonic()
            while next_tick <= now:
                next_tick += seconds
            if stop.wait(next_tick - now):
                log.info("shutting down")
                return
            self._run_logged(self.lookback_window(), "periodic")

    def run_daily(self, tz: tzinfo, stop: threading.Event) -> None:
        """Sync the previous local day right after each local midnight."""
        log.info("starting daily sync at midnight tz=%s", tz)
        last: Optional[datetime] = None
        while not stop.is_set():
            now_local = self.clock().astimezone(tz)
            midnight = next_midnight(now_local)
            if last is not None and midnight <= last:
                # woke up a little early; that midnight already ran
                midnight = next_midnight(last)
            # subtract in UTC so DST transitions are accounted for
            delay = (midnight.astimezone(timezone.utc) - now_local.astimezone(timezone.utc)).total_seconds()
            log.info("sleeping until next midnight next=%s sleep=%ss", midnight.isoformat(), int(delay))
            if stop.wait(max(delay, 0.0)):
                break
            last = midnight
            self._run_logged(daily_window(midnight), "daily")
        log.info("shutting down")
