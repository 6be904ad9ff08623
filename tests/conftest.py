"""Shared test fixtures."""

import asyncio
import random
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import pytest

from picsift.config import Settings
from picsift.containers import AppContainer
from picsift.domain.errors import RemoteOperationError
from picsift.domain.photos import FolderInfo, PhotoEntry, TrashRecord
from picsift.services.progress import FolderProgressStore
from picsift.services.snapshots import SessionSnapshotStore
from picsift.services.storage import InMemoryStorage
from picsift.services.triage import PhotoListingClient, QuarantineClient, TriageEngine

FOLDER = FolderInfo(
    path="/Camera Uploads",
    name="Camera Uploads",
    image_count=10,
    display_path="Camera Uploads",
)
OTHER_FOLDER = FolderInfo(
    path="/Screenshots", name="Screenshots", image_count=3, display_path="Screenshots"
)
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def make_entry(index: int, folder: str = "/Camera Uploads") -> PhotoEntry:
    name = f"IMG_{index:04d}.jpg"
    return PhotoEntry(
        name=name,
        path_lower=f"{folder.lower()}/{name.lower()}",
        path_display=f"{folder}/{name}",
        id=f"id:{index}",
        rev=f"rev{index}",
        size=1024 + index,
    )


def make_entries(count: int, folder: str = "/Camera Uploads") -> list[PhotoEntry]:
    return [make_entry(index, folder) for index in range(count)]


@dataclass
class FakeRemoteClient(PhotoListingClient, QuarantineClient):
    """Fake Dropbox client with switchable failures and gates."""

    entries: list[PhotoEntry] = field(default_factory=list)
    listing_error: Exception | None = None
    fail_quarantine: bool = False
    fail_restore: bool = False
    quarantine_gate: asyncio.Event | None = None
    restore_gate: asyncio.Event | None = None
    list_calls: list[str] = field(default_factory=list)
    quarantined: list[tuple[str, str]] = field(default_factory=list)
    restored: list[tuple[str, str]] = field(default_factory=list)

    async def list_photos(self, folder_path: str) -> list[PhotoEntry]:
        self.list_calls.append(folder_path)
        if self.listing_error is not None:
            raise self.listing_error
        return list(self.entries)

    async def quarantine(self, path: str, session_id: str) -> TrashRecord:
        if self.quarantine_gate is not None:
            await self.quarantine_gate.wait()
        if self.fail_quarantine:
            raise RemoteOperationError("Delete failed", status=500)
        self.quarantined.append((path, session_id))
        return TrashRecord(
            original_path=path,
            trashed_path=f"/_TRASHME/{session_id}{path}",
            session_id=session_id,
            timestamp=NOW.isoformat(),
        )

    async def restore(self, trashed_path: str, original_path: str) -> None:
        if self.restore_gate is not None:
            await self.restore_gate.wait()
        if self.fail_restore:
            raise RemoteOperationError("Restore failed", status=500)
        self.restored.append((trashed_path, original_path))


@dataclass
class FullStorage(InMemoryStorage):
    """Storage whose writes always fail, like an exhausted quota."""

    def set_item(self, key: str, value: str) -> None:
        raise OSError(28, "No space left on device")

    def remove_item(self, key: str) -> None:
        raise OSError(28, "No space left on device")


@dataclass
class FakeClock:
    """Manually advanced clock."""

    now: datetime = NOW

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


def build_engine(
    storage: InMemoryStorage,
    remote_client: FakeRemoteClient,
    clock: FakeClock | None = None,
    max_queue_size: int = 5000,
) -> TriageEngine:
    return TriageEngine(
        listing_client=remote_client,
        quarantine_client=remote_client,
        progress_store=FolderProgressStore(storage),
        snapshot_store=SessionSnapshotStore(storage, clock=clock or FakeClock()),
        max_queue_size=max_queue_size,
        rng=random.Random(1234),
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        dropbox_app_key="app-key",
        dropbox_app_secret="app-secret",
        dropbox_refresh_token="refresh-token",
    )


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def remote_client() -> FakeRemoteClient:
    return FakeRemoteClient(entries=make_entries(3))


@pytest.fixture
def engine(
    storage: InMemoryStorage, remote_client: FakeRemoteClient, clock: FakeClock
) -> TriageEngine:
    return build_engine(storage, remote_client, clock)


@pytest.fixture
def container(
    settings: Settings, storage: InMemoryStorage, engine: TriageEngine
) -> AppContainer:
    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        storage=storage,
        triage_engine=engine,
        close_resources=close_resources,
    )
