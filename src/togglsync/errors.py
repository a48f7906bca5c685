from __future__ import annotations


class TogglSyncError(Exception):
    """Base class for errors raised by togglsync."""


class ConfigError(TogglSyncError):
    """Invalid or missing configuration. Fatal at startup."""


class WindowError(ConfigError):
    """A --from/--to boundary could not be parsed."""


class SyncError(TogglSyncError):
    pass


class DeadlineExceededError(SyncError):
    pass


class AlreadyRunningError(TogglSyncError):
    """Another sync holds the run slot. Not a failure of the sync itself."""

    def __init__(self, message: str = "sync already running") -> None:
        super().__init__(message)


class MigrationError(TogglSyncError):
    pass
