from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_utc_z(value: datetime) -> str:
    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _opt_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    return int(value)


@dataclass(frozen=True)
class SyncWindow:
    """Half-open interval [start, end) in UTC."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        start = _to_utc(self.start)
        end = _to_utc(self.end)
        if start >= end:
            raise ValueError(f"window start {start.isoformat()} must be before end {end.isoformat()}")
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    def as_dict(self) -> Dict[str, str]:
        return {"from": format_utc_z(self.start), "to": format_utc_z(self.end)}


@dataclass
class TimeEntry:
    id: int
    start: datetime
    description: str = ""
    project_id: Optional[int] = None
    workspace_id: Optional[int] = None
    tags: List[str] = field(default_factory=list)
    stop: Optional[datetime] = None
    # negative means the entry is still running at the source
    duration: int = 0

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "TimeEntry":
        start = parse_iso_datetime(raw.get("start"))
        if start is None:
            raise ValueError(f"time entry {raw.get('id')} has no start")
        return cls(
            id=int(raw["id"]),
            description=raw.get("description") or "",
            project_id=_opt_int(raw.get("project_id")),
            workspace_id=_opt_int(raw.get("workspace_id")),
            tags=[str(t) for t in (raw.get("tags") or [])],
            start=start,
            stop=parse_iso_datetime(raw.get("stop")),
            duration=int(raw.get("duration") or 0),
        )


@dataclass
class Project:
    id: int
    workspace_id: int
    name: str
    updated_at: datetime
    active: bool = True
    private: bool = False
    color: str = ""
    client_id: Optional[int] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Project":
        updated_at = parse_iso_datetime(raw.get("at"))
        if updated_at is None:
            raise ValueError(f"project {raw.get('id')} has no 'at' timestamp")
        return cls(
            id=int(raw["id"]),
            workspace_id=int(raw["workspace_id"]),
            name=raw.get("name") or "",
            active=bool(raw.get("active")),
            private=bool(raw.get("is_private")),
            color=raw.get("color") or "",
            client_id=_opt_int(raw.get("client_id")),
            updated_at=updated_at,
        )
