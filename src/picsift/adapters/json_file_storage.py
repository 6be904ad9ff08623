"""Durable key-value storage backed by a single JSON document on disk."""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from picsift.services.storage import KeyValueStorage

logger = logging.getLogger(__name__)


@dataclass
class JsonFileStorage(KeyValueStorage):
    """Stores string values in one JSON object; every write replaces the file."""

    path: Path

    def get_item(self, key: str) -> str | None:
        """Return the stored value for a key, if present."""
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        """Overwrite the value for a key."""
        data = self._read()
        data[key] = value
        self._write(data)

    def remove_item(self, key: str) -> None:
        """Remove a key if it exists."""
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)

    def _read(self) -> dict[str, object]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("Ignoring corrupt storage file %s", self.path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring storage file %s: expected object", self.path)
            return {}
        return data

    def _write(self, data: dict[str, object]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        tmp_path.write_text(json.dumps(data, separators=(",", ":")), encoding="utf-8")
        os.replace(tmp_path, self.path)
