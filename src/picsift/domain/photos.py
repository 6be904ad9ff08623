"""Models for remote photo listings and quarantine records."""

from pydantic import BaseModel, ConfigDict, Field


class PhotoEntry(BaseModel):
    """A single image file as returned by the remote listing."""

    model_config = ConfigDict(frozen=True)

    name: str
    path_lower: str
    path_display: str
    id: str
    rev: str = ""
    size: int = Field(default=0, ge=0)
    client_modified: str | None = None
    server_modified: str | None = None
    content_hash: str | None = None
    is_downloadable: bool = True

    @property
    def key(self) -> str:
        """Stable identity used for deduplication and progress tracking."""
        return self.path_lower or self.path_display


class FolderInfo(BaseModel):
    """A folder selected for triage."""

    model_config = ConfigDict(frozen=True)

    path: str
    name: str
    image_count: int = Field(default=0, ge=0)
    display_path: str = ""


class TrashRecord(BaseModel):
    """Where a quarantined photo was moved, for undo."""

    model_config = ConfigDict(frozen=True)

    original_path: str
    trashed_path: str
    session_id: str
    timestamp: str


class UndoStackItem(BaseModel):
    """Quarantine record paired with the entry to re-insert on undo."""

    model_config = ConfigDict(frozen=True)

    record: TrashRecord
    entry: PhotoEntry
