from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import text

from fakes import FakeSource
from togglsync.db.migrate import run_migrations
from togglsync.db.sink import PostgresSink
from togglsync.domain.models import SyncWindow, TimeEntry
from togglsync.sync.executor import SyncExecutor
from togglsync.sync.scheduler import Scheduler

UTC = timezone.utc
START = datetime(2025, 8, 1, 9, 0, tzinfo=UTC)
STOP = START + timedelta(minutes=90)
WINDOW = SyncWindow(datetime(2025, 8, 1, 8, tzinfo=UTC), datetime(2025, 8, 1, 13, tzinfo=UTC))
TEST_IDS = (900000001, 900000002)


def _entries():
    return [
        TimeEntry(id=TEST_IDS[0], description="Dev work", project_id=123, workspace_id=456,
                  tags=["dev", "feature"], start=START, stop=STOP, duration=5400),
        TimeEntry(id=TEST_IDS[1], description="Meeting", project_id=None, workspace_id=456,
                  tags=["meeting"], start=START + timedelta(hours=2), stop=STOP, duration=3600),
    ]


def _snapshot(engine):
    with engine.connect() as conn:
        rows = conn.execute(
            text("""
                SELECT id, description, project_id, workspace_id, tags, duration_sec
                FROM toggl_time_entries
                WHERE id IN (:a, :b)
                ORDER BY id
            """),
            {"a": TEST_IDS[0], "b": TEST_IDS[1]},
        ).mappings().all()
    return [dict(r) for r in rows]


def _sync_twice(engine):
    scheduler = Scheduler(SyncExecutor(FakeSource(entries=_entries()), PostgresSink(engine)))

    first = scheduler.run_once(WINDOW)
    after_first = _snapshot(engine)
    second = scheduler.run_once(WINDOW)
    after_second = _snapshot(engine)

    assert first.entries == second.entries == 2
    assert first.projects == 0
    assert len(after_first) == 2
    assert after_first == after_second
    assert after_first[0]["project_id"] == 123
    assert after_first[1]["project_id"] is None
    assert after_first[1]["workspace_id"] == 456
    assert after_first[0]["tags"] == '["dev","feature"]'


def test_sync_upserts_entries_sqlite(sqlite_engine):
    _sync_twice(sqlite_engine)


def _cleanup(engine):
    with engine.begin() as conn:
        conn.execute(text("DELETE FROM toggl_time_entries WHERE id IN (:a, :b)"),
                     {"a": TEST_IDS[0], "b": TEST_IDS[1]})


@pytest.mark.e2e
def test_sync_upserts_entries_postgres(db_engine):
    run_migrations(db_engine)
    _cleanup(db_engine)
    try:
        _sync_twice(db_engine)
        with db_engine.connect() as conn:
            start_at = conn.execute(
                text("SELECT start_at FROM toggl_time_entries WHERE id = :id"), {"id": TEST_IDS[0]}
            ).scalar()
        assert start_at == START
    finally:
        _cleanup(db_engine)
