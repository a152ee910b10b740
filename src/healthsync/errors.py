"""Exception taxonomy for the sync engine.

Each error carries a short, user-facing ``message`` alongside the technical
exception text so a UI (or the CLI) can show something actionable.

Propagation:
    UnsupportedPlatform, PermissionDenied, NotAuthenticated and
    SessionExpired abort a sync before any store read.  SourceUnavailable is
    absorbed by the source adapters and never reaches the caller.
    UploadFailed is the terminal result of a failed upload; the caller
    decides whether to try again later.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for every error surfaced by the sync engine."""

    message: str = "Something went wrong while syncing. Give it another shot?"

    def __init__(self, detail: str | None = None, message: str | None = None) -> None:
        super().__init__(detail or self.message)
        if message is not None:
            self.message = message


class UnsupportedPlatform(SyncError):
    """No biometric source exists on this runtime.  Not retried."""

    message = "Apple Watch data isn't available on this device."


class PermissionDenied(SyncError):
    """The user declined the health-data read permissions."""

    message = "Health access was declined. Enable it in Settings to sync your watch data."


class SourceUnavailable(SyncError):
    """A single metric could not be read from the health store."""

    message = "Some health data couldn't be read."


class NotAuthenticated(SyncError):
    """No bearer credential is stored; nothing was sent."""

    message = "You're signed out. Log in to sync your watch data."


class SessionExpired(SyncError):
    """The backend rejected the credential (HTTP 401) or it has expired."""

    message = "Your session expired. Please log in again."


class RemoteCallFailed(SyncError):
    """Network or server failure talking to the backend."""

    message = "I'm having trouble connecting. Mind checking your internet?"

    def __init__(
        self,
        detail: str | None = None,
        message: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(detail, message)
        self.status_code = status_code


class UploadFailed(RemoteCallFailed):
    """The batch upload failed.  Safe to retry the whole sync later."""

    message = "Couldn't sync your watch data right now. We'll try again later."
