from __future__ import annotations
import json
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine

from togglsync.domain.models import Project, TimeEntry

log = logging.getLogger("sink")

UPSERT_ENTRY = text("""
INSERT INTO toggl_time_entries (
    id, description, project_id, workspace_id, tags, start_at, stop_at, duration_sec
) VALUES (
    :id, :description, :project_id, :workspace_id, :tags, :start_at, :stop_at, :duration_sec
)
ON CONFLICT (id) DO UPDATE SET
    description = EXCLUDED.description,
    project_id = EXCLUDED.project_id,
    workspace_id = EXCLUDED.workspace_id,
    tags = EXCLUDED.tags,
    start_at = EXCLUDED.start_at,
    stop_at = EXCLUDED.stop_at,
    duration_sec = EXCLUDED.duration_sec
""")

UPSERT_PROJECT = text("""
INSERT INTO toggl_projects (
    id, workspace_id, name, active, is_private, color, client_id, updated_at
) VALUES (
    :id, :workspace_id, :name, :active, :is_private, :color, :client_id, :updated_at
)
ON CONFLICT (id) DO UPDATE SET
    workspace_id = EXCLUDED.workspace_id,
    name = EXCLUDED.name,
    active = EXCLUDED.active,
    is_private = EXCLUDED.is_private,
    color = EXCLUDED.color,
    client_id = EXCLUDED.client_id,
    updated_at = EXCLUDED.updated_at
""")


def serialize_tags(tags: List[str]) -> str:
    # order-preserving and compact so identical input is byte-identical
    return json.dumps(list(tags), ensure_ascii=False, separators=(",", ":"))


def _iso_utc(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


def entry_row(entry: TimeEntry) -> Dict:
    return {
        "id": entry.id,
        "description": entry.description,
        "project_id": entry.project_id,
        "workspace_id": entry.workspace_id,
        "tags": serialize_tags(entry.tags),
        "start_at": _iso_utc(entry.start),
        "stop_at": _iso_utc(entry.stop),
        "duration_sec": entry.duration,
    }


def project_row(project: Project) -> Dict:
    return {
        "id": project.id,
        "workspace_id": project.workspace_id,
        "name": project.name,
        "active": bool(project.active),
        "is_private": bool(project.private),
        "color": project.color,
        "client_id": project.client_id,
        "updated_at": _iso_utc(project.updated_at),
    }


class PostgresSink:
    """Upserts batches of entries and projects, one transaction per batch."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def upsert_entries(self, entries: List[TimeEntry]) -> None:
        if not entries:
            return
        rows = [entry_row(e) for e in entries]
        with self.engine.begin() as conn:
            conn.execute(UPSERT_ENTRY, rows)
        log.info("upserted entries count=%s", len(rows))

    def upsert_projects(self, projects: List[Project]) -> None:
        if not projects:
            return
        rows = [project_row(p) for p in projects]
        with self.engine.begin() as conn:
            conn.execute(UPSERT_PROJECT, rows)
        log.info("upserted projects count=%s", len(rows))
