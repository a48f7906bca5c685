from __future__ import annotations
from datetime import datetime
from typing import List, Optional, Protocol

from togglsync.domain.models import Project, TimeEntry


class TimeSource(Protocol):
    """Where time entries and projects come from.

    ``deadline`` is a ``time.monotonic()`` instant; a source should give up
    (raising ``DeadlineExceededError``) rather than keep retrying past it.
    """

    def list_time_entries(
        self, start: datetime, end: datetime, deadline: Optional[float] = None
    ) -> List[TimeEntry]: ...

    def list_projects(self, deadline: Optional[float] = None) -> List[Project]: ...


class Sink(Protocol):
    """Persists entries and projects. Each call is one atomic batch."""

    def upsert_entries(self, entries: List[TimeEntry]) -> None: ...

    def upsert_projects(self, projects: List[Project]) -> None: ...
