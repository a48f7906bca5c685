"""HTTP trigger for on-demand syncs.

``GET|POST /sync?from=...&to=...&timeout=5m`` runs one sync inside the
request. ``from``/``to`` accept RFC 3339 or ``YYYY-MM-DD`` and default to
``[now-24h, now)``; unparseable values fall back to those defaults so the
endpoint never rejects a trigger over its window. Returns 409 when a sync is
already running and 500 when the sync itself fails.
"""
from __future__ import annotations
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from togglsync.sync.scheduler import STATUS_CONFLICT, STATUS_OK, Scheduler
from togglsync.sync.window import parse_duration, resolve_window

log = logging.getLogger("http")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _deadline_from(timeout: Optional[str]) -> Optional[float]:
    if not timeout:
        return None
    try:
        seconds = parse_duration(timeout).total_seconds()
    except ValueError:
        log.debug("ignoring invalid timeout=%s", timeout)
        return None
    if seconds <= 0:
        return None
    return time.monotonic() + seconds


def create_app(scheduler: Scheduler, clock: Callable[[], datetime] = _utcnow) -> FastAPI:
    app = FastAPI(title="togglsync trigger")

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        t0 = time.perf_counter()
        response = await call_next(request)
        remote = request.client.host if request.client else "-"
        log.info(
            "http request method=%s path=%s remote=%s status=%s dur=%.3fs",
            request.method, request.url.path, remote, response.status_code, time.perf_counter() - t0,
        )
        return response

    @app.get("/healthz", response_class=PlainTextResponse)
    def healthz() -> str:
        return "ok"

    @app.api_route("/sync", methods=["GET", "POST"])
    def sync(
        from_: Optional[str] = Query(default=None, alias="from"),
        to: Optional[str] = Query(default=None),
        timeout: Optional[str] = Query(default=None),
    ) -> JSONResponse:
        window = resolve_window(from_, to, clock(), strict=False)
        result = scheduler.trigger(window, deadline=_deadline_from(timeout))
        if result.status == STATUS_OK:
            status_code = 200
        elif result.status == STATUS_CONFLICT:
            status_code = 409
        else:
            status_code = 500
        return JSONResponse(status_code=status_code, content=result.as_dict())

    return app
