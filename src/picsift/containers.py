"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta

from picsift.adapters.dropbox_client import HttpxDropboxClient
from picsift.adapters.json_file_storage import JsonFileStorage
from picsift.config import Settings
from picsift.services.progress import FolderProgressStore
from picsift.services.snapshots import SessionSnapshotStore
from picsift.services.storage import InMemoryStorage, KeyValueStorage
from picsift.services.triage import TriageEngine


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    storage: KeyValueStorage
    triage_engine: TriageEngine
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    storage: KeyValueStorage = (
        JsonFileStorage(resolved_settings.storage_path)
        if resolved_settings.storage_path is not None
        else InMemoryStorage()
    )
    dropbox_client = HttpxDropboxClient.create(
        app_key=resolved_settings.dropbox_app_key,
        app_secret=resolved_settings.dropbox_app_secret,
        refresh_token=resolved_settings.dropbox_refresh_token,
        api_url=resolved_settings.dropbox_api_url,
        token_url=resolved_settings.dropbox_token_url,
        quarantine_root=resolved_settings.quarantine_root,
    )
    triage_engine = TriageEngine(
        listing_client=dropbox_client,
        quarantine_client=dropbox_client,
        progress_store=FolderProgressStore(storage),
        snapshot_store=SessionSnapshotStore(
            storage,
            expiry=timedelta(hours=resolved_settings.session_expiry_hours),
        ),
        max_queue_size=resolved_settings.max_queue_size,
    )

    async def close_resources() -> None:
        await dropbox_client.close()

    return AppContainer(
        settings=resolved_settings,
        storage=storage,
        triage_engine=triage_engine,
        close_resources=close_resources,
    )
