from __future__ import annotations
import logging
import time
from dataclasses import dataclass
from typing import Optional

from togglsync.domain.models import SyncWindow, format_utc_z
from togglsync.domain.ports import Sink, TimeSource
from togglsync.errors import DeadlineExceededError, SyncError

log = logging.getLogger("sync")


@dataclass(frozen=True)
class SyncOutcome:
    window: SyncWindow
    projects: int
    entries: int
    elapsed: float = 0.0


class SyncExecutor:
    """Fetches projects, then entries for a window, and upserts both.

    Source and sink errors propagate unchanged; nothing is retried here.
    Projects written before an entries failure stay written, which is safe
    because every write is an upsert.
    """

    def __init__(self, source: TimeSource, sink: Sink) -> None:
        if source is None or sink is None:
            raise SyncError("sync executor not initialized: missing source or sink")
        self.source = source
        self.sink = sink

    def _check_deadline(self, deadline: Optional[float], stage: str) -> None:
        if deadline is not None and time.monotonic() >= deadline:
            raise DeadlineExceededError(f"deadline exceeded before {stage}")

    def run(self, window: SyncWindow, deadline: Optional[float] = None) -> SyncOutcome:
        t0 = time.monotonic()
        span = window.as_dict()

        self._check_deadline(deadline, "fetching projects")
        log.info("fetching projects")
        projects = self.source.list_projects(deadline=deadline)
        log.info("fetched projects count=%s", len(projects))

        if projects:
            self._check_deadline(deadline, "persisting projects")
            self.sink.upsert_projects(projects)
        else:
            log.info("no projects to sync")

        self._check_deadline(deadline, "fetching time entries")
        log.info("fetching time entries from=%s to=%s", span["from"], span["to"])
        entries = self.source.list_time_entries(window.start, window.end, deadline=deadline)
        log.info("fetched time entries count=%s", len(entries))

        if entries:
            self._check_deadline(deadline, "persisting time entries")
            self.sink.upsert_entries(entries)
        else:
            log.info("no entries to sync")

        elapsed = time.monotonic() - t0
        log.info(
            "sync completed from=%s to=%s projects=%s entries=%s elapsed=%.2fs",
            format_utc_z(window.start), format_utc_z(window.end), len(projects), len(entries), elapsed,
        )
        return SyncOutcome(window=window, projects=len(projects), entries=len(entries), elapsed=elapsed)
