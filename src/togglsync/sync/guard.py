from __future__ import annotations
import threading
from contextlib import contextmanager
from typing import Iterator

from togglsync.errors import AlreadyRunningError


class SingleFlightGuard:
    """Allows at most one sync in flight per process.

    Example:
        >>> guard = SingleFlightGuard()
        >>> with guard.hold():
        ...     pass  # run the sync

    A second ``hold()`` while the first is active raises AlreadyRunningError
    and leaves the active run untouched.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def try_begin(self) -> bool:
        return self._lock.acquire(blocking=False)

    def end(self) -> None:
        try:
            self._lock.release()
        except RuntimeError:
            # already idle
            pass

    @contextmanager
    def hold(self) -> Iterator[None]:
        if not self.try_begin():
            raise AlreadyRunningError()
        try:
            yield
        finally:
            self.end()
