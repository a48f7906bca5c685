from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging
import time
import requests
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from togglsync.config import DEFAULT_BASE_URL
from togglsync.domain.models import Project, TimeEntry, format_utc_z
from togglsync.errors import DeadlineExceededError, TogglSyncError

REQUEST_TIMEOUT = 30
MAX_ERROR_BODY = 4096

BACKOFF = wait_exponential(min=1, max=30)

log = logging.getLogger("toggl")


class TogglAPIError(TogglSyncError):
    def __init__(self, status: int, body: str, url: str = "") -> None:
        self.status = status
        self.body = body
        self.url = url
        super().__init__(f"toggl: unexpected status {status}: {body}")


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, TogglAPIError):
        return exc.status == 429 or exc.status >= 500
    return False


def _backoff_past_deadline(retry_state) -> bool:
    deadline = retry_state.kwargs.get("deadline")
    if deadline is None:
        return False
    # no point sleeping into a retry that would start after the deadline
    return time.monotonic() + BACKOFF(retry_state) >= deadline


class TogglClient:
    """Read-only client for the Toggl Track API v9.

    Transient failures (connection errors, timeouts, 429 and 5xx) are retried
    with exponential backoff. Anything else is raised to the caller as is.
    With a ``deadline``, each request timeout is capped to the time left and
    no retry is scheduled past it.
    """

    def __init__(
        self,
        api_token: str,
        workspace_id: Optional[int] = None,
        base_url: str = DEFAULT_BASE_URL,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.workspace_id = workspace_id
        self.session = session or requests.Session()
        # Basic auth: <token>:api_token
        self.session.auth = (api_token, "api_token")
        self.session.headers.update({"Accept": "application/json"})

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(5) | _backoff_past_deadline,
        wait=BACKOFF,
        reraise=True,
    )
    def _get(self, path: str, params: Optional[Dict[str, str]] = None, deadline: Optional[float] = None) -> Any:
        url = f"{self.base_url}{path}"
        timeout = REQUEST_TIMEOUT
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise DeadlineExceededError(f"deadline exceeded before GET {path}")
            timeout = min(timeout, remaining)
        resp = self.session.get(url, params=params, timeout=timeout)
        if resp.status_code != 200:
            raise TogglAPIError(resp.status_code, resp.text[:MAX_ERROR_BODY], url)
        return resp.json()

    def list_time_entries(self, start: datetime, end: datetime, deadline: Optional[float] = None) -> List[TimeEntry]:
        params = {"start_date": format_utc_z(start), "end_date": format_utc_z(end)}
        log.debug("GET time entries start=%s end=%s", params["start_date"], params["end_date"])
        data = self._get("/api/v9/me/time_entries", params, deadline=deadline) or []
        return [TimeEntry.from_api(raw) for raw in data]

    def list_projects(self, deadline: Optional[float] = None) -> List[Project]:
        if self.workspace_id:
            path = f"/api/v9/workspaces/{self.workspace_id}/projects"
        else:
            path = "/api/v9/me/projects"
        log.debug("GET projects path=%s", path)
        data = self._get(path, deadline=deadline) or []
        return [Project.from_api(raw) for raw in data]
