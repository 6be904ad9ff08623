"""Triage session engine: keep, delete and undo over a review queue."""

import asyncio
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol
from uuid import uuid4

from picsift.domain.errors import (
    DeleteFailedError,
    InvalidSessionStateError,
    RemoteOperationError,
    TriageError,
    UndoFailedError,
    UndoInProgressError,
)
from picsift.domain.photos import FolderInfo, PhotoEntry, TrashRecord, UndoStackItem
from picsift.domain.sessions import (
    DeleteOutcome,
    EmptyQueue,
    PendingDelete,
    PersistedSessionSnapshot,
    Session,
    SessionState,
    StartResult,
)
from picsift.services.progress import FolderProgressStore
from picsift.services.queue_builder import MAX_QUEUE_SIZE, build_queue
from picsift.services.snapshots import SessionSnapshotStore

logger = logging.getLogger(__name__)

ErrorListener = Callable[[TriageError], None]


class PhotoListingClient(Protocol):
    """Interface for listing the photos in a remote folder."""

    async def list_photos(self, folder_path: str) -> list[PhotoEntry]:
        """Return every image in the folder, across all pages."""


class QuarantineClient(Protocol):
    """Interface for reversible remote deletes."""

    async def quarantine(self, path: str, session_id: str) -> TrashRecord:
        """Move a file into quarantine; raises ``RemoteOperationError``."""

    async def restore(self, trashed_path: str, original_path: str) -> None:
        """Move a quarantined file back; raises ``RemoteOperationError``."""


@dataclass
class TriageEngine:
    """Owns one live session and drives its persistence.

    Runs on a single event loop. ``delete`` advances immediately and confirms in a
    background task tagged with the issuing session id; completions for a session
    that is no longer live are dropped.
    """

    listing_client: PhotoListingClient
    quarantine_client: QuarantineClient
    progress_store: FolderProgressStore
    snapshot_store: SessionSnapshotStore
    max_queue_size: int = MAX_QUEUE_SIZE
    rng: random.Random = field(default_factory=random.Random)
    on_error: ErrorListener | None = None
    session: Session | None = field(default=None, init=False)
    state: SessionState = field(default=SessionState.IDLE, init=False)
    failed_delete: PendingDelete | None = field(default=None, init=False)
    _undo_in_flight: bool = field(default=False, init=False)
    _pending: set[asyncio.Task[DeleteOutcome]] = field(
        default_factory=set, init=False
    )

    @property
    def undo_in_flight(self) -> bool:
        return self._undo_in_flight

    @property
    def pending_deletes(self) -> int:
        """Number of quarantine calls still awaiting confirmation."""
        return len(self._pending)

    def resumable_snapshot(self, folder: FolderInfo) -> PersistedSessionSnapshot | None:
        """Return a snapshot that can be resumed for ``folder``.

        Snapshots for another folder or past the expiry window are discarded.
        """
        snapshot = self.snapshot_store.load()
        if snapshot is None:
            return None
        if snapshot.folder.path != folder.path or not self.snapshot_store.is_resumable(
            snapshot
        ):
            self.snapshot_store.clear()
            return None
        return snapshot

    async def start(self, folder: FolderInfo, fresh_start: bool = False) -> StartResult:
        """Build a new queue for ``folder`` and make it the live session."""
        if self.state is SessionState.LOADING:
            raise InvalidSessionStateError("A session is already loading")

        abandoned = self.snapshot_store.load_resumable(folder.path)
        if abandoned is not None:
            seen = [entry.key for entry in abandoned.queue[: abandoned.index]]
            self.progress_store.add_many(folder.path, seen)
        self.snapshot_store.clear()
        if fresh_start:
            self.progress_store.clear(folder.path)

        self.session = None
        self.failed_delete = None
        self.state = SessionState.LOADING
        try:
            entries = await self.listing_client.list_photos(folder.path)
        finally:
            self.state = SessionState.IDLE

        build = build_queue(
            entries,
            self.progress_store.get_reviewed(folder.path),
            cap=self.max_queue_size,
            fresh_start=fresh_start,
            rng=self.rng,
        )
        if isinstance(build, EmptyQueue):
            logger.info("Nothing to review in %s: %s", folder.path, build.reason)
            return StartResult(session=None, build=build)

        session = Session(id=str(uuid4()), folder=folder, queue=build.queue)
        self.session = session
        self.state = SessionState.ACTIVE
        self._persist(session)
        if build.truncated_from is not None:
            logger.info(
                "Capped queue for %s at %d of %d photos",
                folder.path,
                len(build.queue),
                build.truncated_from,
            )
        logger.info("Started session %s with %d photos", session.id, len(build.queue))
        return StartResult(session=session, build=build)

    def resume(self, folder: FolderInfo) -> Session | None:
        """Restore the persisted session for ``folder`` if it is still valid."""
        if self.state is SessionState.LOADING:
            raise InvalidSessionStateError("A session is already loading")
        snapshot = self.snapshot_store.load_resumable(folder.path)
        if snapshot is None or snapshot.index >= len(snapshot.queue):
            return None
        session = Session.from_snapshot(snapshot)
        self.session = session
        self.state = SessionState.ACTIVE
        self.failed_delete = None
        logger.info("Resumed session %s at %d", session.id, session.cursor)
        return session

    def keep(self) -> PhotoEntry:
        """Mark the current photo as kept and advance."""
        session, entry = self._require_current()
        self.progress_store.add(session.folder.path, entry.key)
        session.cursor += 1
        self._after_advance(session)
        return entry

    def delete(self) -> asyncio.Task[DeleteOutcome]:
        """Optimistically delete the current photo and advance.

        Must be called from a running event loop. The returned task resolves once
        the quarantine call settles; callers are not required to await it.
        """
        session, entry = self._require_current()
        pending = PendingDelete(
            path=entry.path_display,
            session_id=session.id,
            folder_path=session.folder.path,
            entry=entry,
        )
        self.failed_delete = None
        self.progress_store.add(pending.folder_path, entry.key)
        session.cursor += 1
        self._after_advance(session)
        return self._schedule(pending)

    async def retry_failed_delete(self) -> DeleteOutcome:
        """Re-issue the last failed quarantine exactly as it was first sent."""
        pending = self.failed_delete
        if pending is None:
            raise InvalidSessionStateError("No failed delete to retry")
        self.failed_delete = None
        self.progress_store.add(pending.folder_path, pending.entry.key)
        return await self._schedule(pending)

    async def undo(self) -> UndoStackItem:
        """Restore the most recently deleted photo as the next one to review."""
        session = self.session
        if session is None or self.state not in {
            SessionState.ACTIVE,
            SessionState.COMPLETE,
        }:
            raise InvalidSessionStateError("No active session")
        if self._undo_in_flight:
            raise UndoInProgressError("An undo is already in progress")
        if not session.undo_stack:
            raise InvalidSessionStateError("Nothing to undo")

        index = len(session.undo_stack) - 1
        item = session.undo_stack[index]
        self._undo_in_flight = True
        try:
            await self.quarantine_client.restore(
                item.record.trashed_path, item.record.original_path
            )
        except RemoteOperationError as exc:
            logger.warning("Undo failed for %s: %s", item.record.original_path, exc)
            raise UndoFailedError(item, exc) from exc
        finally:
            self._undo_in_flight = False

        self.progress_store.remove(session.folder.path, item.entry.key)
        if self.session is not session:
            logger.info("Restored %s after its session ended", item.entry.key)
            return item
        session.undo_stack.pop(index)
        session.queue.insert(session.cursor, item.entry)
        self.state = SessionState.ACTIVE
        self._persist(session)
        return item

    def reset(self) -> None:
        """Drop the live session and its snapshot."""
        self.session = None
        self.state = SessionState.IDLE
        self.failed_delete = None
        self.snapshot_store.clear()

    def clear_progress(self, folder: FolderInfo) -> None:
        """Forget every decision made for ``folder``."""
        self.progress_store.clear(folder.path)

    async def wait_for_pending(self) -> list[DeleteOutcome]:
        """Wait for every in-flight quarantine call to settle."""
        if not self._pending:
            return []
        return list(await asyncio.gather(*self._pending))

    def _require_current(self) -> tuple[Session, PhotoEntry]:
        session = self.session
        if session is None or self.state is not SessionState.ACTIVE:
            raise InvalidSessionStateError("No active session")
        if self._undo_in_flight:
            raise UndoInProgressError("Wait for the undo to finish")
        entry = session.current_entry
        if entry is None:
            raise InvalidSessionStateError("Session is already complete")
        return session, entry

    def _after_advance(self, session: Session) -> None:
        if session.is_complete:
            self.state = SessionState.COMPLETE
            logger.info(
                "Session %s complete: kept %d, deleted %d",
                session.id,
                session.kept_count,
                session.trashed_count,
            )
        self._persist(session)

    def _persist(self, session: Session) -> None:
        # A completed session must never be offered for resume.
        if session.is_complete:
            self.snapshot_store.clear()
            return
        self.snapshot_store.save(session.to_snapshot(self.snapshot_store.clock()))

    def _schedule(self, pending: PendingDelete) -> asyncio.Task[DeleteOutcome]:
        task = asyncio.get_running_loop().create_task(self._confirm_delete(pending))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _confirm_delete(self, pending: PendingDelete) -> DeleteOutcome:
        try:
            record = await self.quarantine_client.quarantine(
                pending.path, pending.session_id
            )
        except RemoteOperationError as exc:
            return self._fail_delete(pending, exc)
        except Exception as exc:
            logger.exception("Unexpected error deleting %s", pending.path)
            return self._fail_delete(
                pending, RemoteOperationError(str(exc) or type(exc).__name__)
            )

        session = self.session
        if session is None or session.id != pending.session_id:
            logger.debug("Dropping stale delete for session %s", pending.session_id)
            return DeleteOutcome.STALE
        session.undo_stack.append(UndoStackItem(record=record, entry=pending.entry))
        self._persist(session)
        return DeleteOutcome.CONFIRMED

    def _fail_delete(
        self, pending: PendingDelete, cause: RemoteOperationError
    ) -> DeleteOutcome:
        self.progress_store.remove(pending.folder_path, pending.entry.key)
        self.failed_delete = pending
        logger.warning("Delete failed for %s: %s", pending.path, cause)
        self._notify(DeleteFailedError(pending, cause))
        return DeleteOutcome.FAILED

    def _notify(self, error: TriageError) -> None:
        if self.on_error is not None:
            self.on_error(error)
