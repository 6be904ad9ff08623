"""Single-slot persistence of the most recent in-progress session."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from pydantic import ValidationError

from picsift.domain.sessions import PersistedSessionSnapshot
from picsift.services.storage import KeyValueStorage

SESSION_PERSIST_KEY = "picsift:session"
DEFAULT_EXPIRY = timedelta(hours=24)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class SessionSnapshotStore:
    """Stores one snapshot; expiry is judged by the reader."""

    storage: KeyValueStorage
    expiry: timedelta = DEFAULT_EXPIRY
    clock: Callable[[], datetime] = field(default=_utcnow)

    def save(self, snapshot: PersistedSessionSnapshot) -> None:
        """Overwrite the stored snapshot."""
        try:
            self.storage.set_item(
                SESSION_PERSIST_KEY, snapshot.model_dump_json(by_alias=True)
            )
        except OSError:
            logger.warning(
                "Session %s not persisted; resume unavailable after reload",
                snapshot.session_id,
                exc_info=True,
            )

    def load(self) -> PersistedSessionSnapshot | None:
        """Return the stored snapshot, or None when missing or unreadable."""
        try:
            raw = self.storage.get_item(SESSION_PERSIST_KEY)
        except OSError:
            logger.warning("Session snapshot unavailable", exc_info=True)
            return None
        if not raw:
            return None
        try:
            return PersistedSessionSnapshot.model_validate_json(raw)
        except ValidationError:
            logger.warning("Ignoring unreadable session snapshot")
            return None

    def clear(self) -> None:
        """Remove the stored snapshot."""
        try:
            self.storage.remove_item(SESSION_PERSIST_KEY)
        except OSError:
            logger.warning("Failed to clear session snapshot", exc_info=True)

    def is_resumable(self, snapshot: PersistedSessionSnapshot) -> bool:
        """True if the snapshot was saved within the expiry window."""
        return self.clock() - snapshot.saved_at < self.expiry

    def load_resumable(self, folder_path: str) -> PersistedSessionSnapshot | None:
        """Return the snapshot only if it belongs to the folder and is fresh."""
        snapshot = self.load()
        if snapshot is None:
            return None
        if snapshot.folder.path != folder_path or not self.is_resumable(snapshot):
            return None
        return snapshot
