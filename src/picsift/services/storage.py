"""Key-value storage abstractions for client-local persistence."""

from dataclasses import dataclass, field
from typing import Protocol


class KeyValueStorage(Protocol):
    """Synchronous string storage; writes may raise ``OSError`` when full."""

    def get_item(self, key: str) -> str | None:
        """Return the stored value for a key, if present."""

    def set_item(self, key: str, value: str) -> None:
        """Overwrite the value stored for a key."""

    def remove_item(self, key: str) -> None:
        """Remove a key if it exists."""


@dataclass
class InMemoryStorage(KeyValueStorage):
    """Non-durable storage, used when no storage path is configured."""

    items: dict[str, str] = field(default_factory=dict)

    def get_item(self, key: str) -> str | None:
        """Return the stored value for a key."""
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        """Store a value for a key."""
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        """Remove a key if present."""
        self.items.pop(key, None)
