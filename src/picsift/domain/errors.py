"""Error taxonomy for triage sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from picsift.domain.photos import UndoStackItem
    from picsift.domain.sessions import PendingDelete

_CRITICAL_STATUSES = {401, 403}
_CRITICAL_MARKERS = (
    "access denied",
    "unauthorized",
    "authorized users only",
    "authentication",
)


class TriageError(Exception):
    """Base class for all triage errors."""


class InvalidSessionStateError(TriageError):
    """Raised when an action's preconditions do not hold."""


class UndoInProgressError(InvalidSessionStateError):
    """Raised when an undo is requested while another is still running."""


class RemoteOperationError(TriageError):
    """A remote call failed; the same call may be retried."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class ListingError(RemoteOperationError):
    """Listing a folder failed."""


class DeleteFailedError(RemoteOperationError):
    """A background quarantine failed; ``pending`` re-issues it exactly."""

    def __init__(self, pending: PendingDelete, cause: RemoteOperationError) -> None:
        super().__init__(cause.message, cause.status)
        self.pending = pending


class UndoFailedError(RemoteOperationError):
    """Restoring a quarantined photo failed; the undo stack is unchanged."""

    def __init__(self, item: UndoStackItem, cause: RemoteOperationError) -> None:
        super().__init__(cause.message, cause.status)
        self.item = item


def is_critical_error(error: Exception) -> bool:
    """Return True when the error needs re-authentication rather than a retry."""
    status = getattr(error, "status", None)
    if status in _CRITICAL_STATUSES:
        return True
    message = str(error).lower()
    return any(marker in message for marker in _CRITICAL_MARKERS)
