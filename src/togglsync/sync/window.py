"""Window boundary parsing.

Boundaries are either empty (use the default), a full timestamp (RFC 3339,
used as given and normalized to UTC) or a calendar date ``YYYY-MM-DD``.
A date start means 00:00 UTC of that day; a date end means 00:00 UTC of the
following day, so ``--to 2025-08-15`` includes all of the 15th.

``strict=True`` is for the command line, where a bad value must stop the
process. ``strict=False`` is for the HTTP trigger, which falls back to the
default instead of rejecting the request.
"""
from __future__ import annotations
import math
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from togglsync.domain.models import SyncWindow, parse_iso_datetime
from togglsync.errors import WindowError

DEFAULT_LOOKBACK = timedelta(hours=24)

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# RFC 3339 date-time; a missing offset is read as UTC
TIMESTAMP_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2})[Tt ](?P<clock>\d{2}:\d{2}:\d{2})(?:\.(?P<frac>\d+))?(?P<offset>[Zz]|[+-]\d{2}:\d{2})?$"
)

DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def _parse_date(token: str) -> Optional[date]:
    if not DATE_RE.match(token):
        return None
    try:
        return date.fromisoformat(token)
    except ValueError:
        return None


def _parse_timestamp(token: str) -> Optional[datetime]:
    m = TIMESTAMP_RE.match(token)
    if not m:
        return None
    # fromisoformat only takes 3 or 6 fraction digits on older interpreters
    frac = (m.group("frac") or "").ljust(6, "0")[:6]
    offset = (m.group("offset") or "").upper()
    try:
        return parse_iso_datetime(f"{m.group('base')}T{m.group('clock')}.{frac}{offset}")
    except ValueError:
        return None


def _midnight_utc(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _parse_boundary(token: Optional[str], default: datetime, strict: bool, flag: str, is_end: bool) -> datetime:
    token = (token or "").strip()
    if not token:
        return default
    day = _parse_date(token)
    if day is not None:
        return _midnight_utc(day + timedelta(days=1) if is_end else day)
    ts = _parse_timestamp(token)
    if ts is not None:
        return ts
    if strict:
        raise WindowError(f"invalid {flag} {token!r}, expected RFC3339 or YYYY-MM-DD")
    return default


def parse_start(token: Optional[str], default: datetime, strict: bool = True) -> datetime:
    return _parse_boundary(token, default, strict, "--from", is_end=False)


def parse_end(token: Optional[str], default: datetime, strict: bool = True) -> datetime:
    return _parse_boundary(token, default, strict, "--to", is_end=True)


def resolve_window(
    start_token: Optional[str],
    end_token: Optional[str],
    now: datetime,
    strict: bool = True,
) -> SyncWindow:
    """Resolve tokens into a window; end defaults to now, start to end - 24h."""
    end = parse_end(end_token, now.astimezone(timezone.utc), strict)
    start = parse_start(start_token, end - DEFAULT_LOOKBACK, strict)
    try:
        return SyncWindow(start, end)
    except ValueError as exc:
        if strict:
            raise WindowError(str(exc)) from exc
        # keep the trigger endpoint available: fall back to the default lookback
        return SyncWindow(end - DEFAULT_LOOKBACK, end)


def parse_duration(value: str) -> timedelta:
    """Parse ``90s``, ``15m``, ``1h30m``, ``250ms`` or a bare number of seconds."""
    value = (value or "").strip()
    if not value:
        raise ValueError("empty duration")
    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds):
            raise ValueError(f"invalid duration {value!r}")
        return timedelta(seconds=seconds)
    pos = 0
    total = 0.0
    for m in DURATION_PART_RE.finditer(value):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _UNIT_SECONDS[m.group(2)]
        pos = m.end()
    if pos != len(value):
        raise ValueError(f"invalid duration {value!r}")
    return timedelta(seconds=total)
