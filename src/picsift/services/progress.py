"""Per-folder record of photos that were already reviewed."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from pydantic import TypeAdapter, ValidationError

from picsift.services.storage import KeyValueStorage

FOLDER_PROGRESS_KEY = "picsift:folderProgress"

_PROGRESS_ADAPTER = TypeAdapter(dict[str, list[str]])

logger = logging.getLogger(__name__)


@dataclass
class FolderProgressStore:
    """Read-modify-write access to ``{folder: [photo_key, ...]}``."""

    storage: KeyValueStorage

    def get_reviewed(self, folder_key: str) -> set[str]:
        """Return the reviewed photo keys for a folder."""
        return set(self._read().get(folder_key, []))

    def add(self, folder_key: str, photo_key: str) -> None:
        """Mark a single photo as reviewed."""
        self.add_many(folder_key, [photo_key])

    def add_many(self, folder_key: str, photo_keys: Iterable[str]) -> None:
        """Mark several photos as reviewed, preserving insertion order."""
        store = self._read()
        reviewed = store.get(folder_key, [])
        seen = set(reviewed)
        added = False
        for photo_key in photo_keys:
            if photo_key and photo_key not in seen:
                seen.add(photo_key)
                reviewed.append(photo_key)
                added = True
        if not added:
            return
        store[folder_key] = reviewed
        self._write(store)

    def remove(self, folder_key: str, photo_key: str) -> None:
        """Forget a reviewed photo, e.g. after an undo or a failed delete."""
        store = self._read()
        reviewed = store.get(folder_key)
        if reviewed is None or photo_key not in reviewed:
            return
        remaining = [key for key in reviewed if key != photo_key]
        if remaining:
            store[folder_key] = remaining
        else:
            store.pop(folder_key)
        self._write(store)

    def clear(self, folder_key: str) -> None:
        """Drop all progress for a folder."""
        store = self._read()
        if store.pop(folder_key, None) is None:
            return
        self._write(store)

    def _read(self) -> dict[str, list[str]]:
        try:
            raw = self.storage.get_item(FOLDER_PROGRESS_KEY)
        except OSError:
            logger.warning("Folder progress unavailable", exc_info=True)
            return {}
        if not raw:
            return {}
        try:
            return _PROGRESS_ADAPTER.validate_json(raw)
        except ValidationError:
            logger.warning("Ignoring unreadable folder progress")
            return {}

    def _write(self, store: dict[str, list[str]]) -> None:
        try:
            self.storage.set_item(
                FOLDER_PROGRESS_KEY, _PROGRESS_ADAPTER.dump_json(store).decode()
            )
        except OSError:
            logger.warning("Folder progress not persisted", exc_info=True)
