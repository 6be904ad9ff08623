"""Domain models for triage sessions."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from picsift.domain.photos import FolderInfo, PhotoEntry, UndoStackItem


class SessionState(StrEnum):
    """Lifecycle of a triage engine."""

    IDLE = "idle"
    LOADING = "loading"
    ACTIVE = "active"
    COMPLETE = "complete"


class EmptyReason(StrEnum):
    """Why a queue came out empty."""

    NO_PHOTOS = "no_photos"
    ALL_REVIEWED = "all_reviewed"


class DeleteOutcome(StrEnum):
    """How a background quarantine resolved."""

    CONFIRMED = "confirmed"
    STALE = "stale"
    FAILED = "failed"


@dataclass(frozen=True)
class QueueReady:
    """A shuffled, deduplicated review queue."""

    queue: list[PhotoEntry]
    truncated_from: int | None = None

    @property
    def truncation_message(self) -> str | None:
        """User-facing notice when the queue was capped."""
        if self.truncated_from is None:
            return None
        return (
            f"Showing first {len(self.queue)} of {self.truncated_from} images. "
            "Start another session for the rest."
        )


@dataclass(frozen=True)
class EmptyQueue:
    """Nothing to review, with the reason why."""

    reason: EmptyReason
    message: str


QueueBuildResult = QueueReady | EmptyQueue


@dataclass(frozen=True)
class PendingDelete:
    """Everything needed to re-issue one quarantine call verbatim."""

    path: str
    session_id: str
    folder_path: str
    entry: PhotoEntry


class PersistedSessionSnapshot(BaseModel):
    """Serialized form of the most recent in-progress session."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId", min_length=1)
    folder: FolderInfo
    queue: list[PhotoEntry]
    index: int = Field(ge=0)
    undo_stack: list[UndoStackItem] = Field(alias="undoStack")
    saved_at: datetime = Field(alias="savedAt")

    @field_validator("saved_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @model_validator(mode="after")
    def _check_index(self) -> "PersistedSessionSnapshot":
        if self.index > len(self.queue):
            raise ValueError("index is past the end of the queue")
        return self


@dataclass
class Session:
    """A live review pass over one folder's queue."""

    id: str
    folder: FolderInfo
    queue: list[PhotoEntry]
    cursor: int = 0
    undo_stack: list[UndoStackItem] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    @property
    def current_entry(self) -> PhotoEntry | None:
        if self.cursor < len(self.queue):
            return self.queue[self.cursor]
        return None

    @property
    def is_complete(self) -> bool:
        return self.cursor >= len(self.queue)

    @property
    def trashed_count(self) -> int:
        return len(self.undo_stack)

    @property
    def kept_count(self) -> int:
        """Derived; holds while no undone photo has been re-decided."""
        return self.cursor - len(self.undo_stack)

    @property
    def remaining_count(self) -> int:
        return len(self.queue) - self.cursor

    def upcoming(self, count: int) -> list[PhotoEntry]:
        """Return the entries after the current one, for prefetching."""
        return self.queue[self.cursor + 1 : self.cursor + 1 + count]

    def to_snapshot(self, saved_at: datetime) -> PersistedSessionSnapshot:
        """Capture the session for persistence."""
        return PersistedSessionSnapshot(
            session_id=self.id,
            folder=self.folder,
            queue=list(self.queue),
            index=self.cursor,
            undo_stack=list(self.undo_stack),
            saved_at=saved_at,
        )

    @classmethod
    def from_snapshot(cls, snapshot: PersistedSessionSnapshot) -> "Session":
        """Restore a session verbatim from a snapshot."""
        return cls(
            id=snapshot.session_id,
            folder=snapshot.folder,
            queue=list(snapshot.queue),
            cursor=snapshot.index,
            undo_stack=list(snapshot.undo_stack),
            created_at=snapshot.saved_at,
        )


@dataclass(frozen=True)
class StartResult:
    """Outcome of starting a session."""

    session: Session | None
    build: QueueBuildResult

    @property
    def notice(self) -> str | None:
        """Message to show the user, if any."""
        if isinstance(self.build, EmptyQueue):
            return self.build.message
        return self.build.truncation_message
