"""Request and response models for the triage API."""

from datetime import datetime

from pydantic import BaseModel

from picsift.domain.photos import FolderInfo, PhotoEntry
from picsift.domain.sessions import DeleteOutcome, EmptyReason, SessionState


class FolderRequest(BaseModel):
    """Identifies the folder an action applies to."""

    folder: FolderInfo


class StartRequest(FolderRequest):
    """Start a new session, optionally forgetting previous progress."""

    fresh_start: bool = False


class FailedDeleteView(BaseModel):
    """A delete that can be retried as-is."""

    path: str
    session_id: str
    entry: PhotoEntry


class SessionView(BaseModel):
    """Current engine state as seen by a client."""

    state: SessionState
    session_id: str | None = None
    folder: FolderInfo | None = None
    cursor: int = 0
    total_count: int = 0
    kept_count: int = 0
    trashed_count: int = 0
    remaining_count: int = 0
    current: PhotoEntry | None = None
    upcoming: list[PhotoEntry] = []
    can_undo: bool = False
    undo_in_flight: bool = False
    pending_deletes: int = 0
    failed_delete: FailedDeleteView | None = None
    errors: list[str] = []


class StartResponse(BaseModel):
    """Result of starting a session."""

    session: SessionView
    notice: str | None = None
    empty_reason: EmptyReason | None = None
    truncated_from: int | None = None


class ResumeOffer(BaseModel):
    """Whether a persisted session can be resumed for a folder."""

    resumable: bool
    session_id: str | None = None
    index: int | None = None
    total_count: int | None = None
    saved_at: datetime | None = None


class DeleteResponse(BaseModel):
    """Result of a delete; ``outcome`` is set only when the call was awaited."""

    session: SessionView
    deleted: PhotoEntry | None
    outcome: DeleteOutcome | None = None
