"""
Data Layer Protocol Definitions

This module defines typing.Protocol interfaces for the data layer.
These protocols let the session manager work against any compatible
key-value backend (JSON file on disk, in-memory store in tests, etc.).

Protocols defined:
- KeyValueStore: Durable, asynchronous string storage keyed by string
"""

from typing import Protocol, Optional


class KeyValueStore(Protocol):
    """Protocol defining the interface for persistent key-value storage.

    Implementations should provide per-key asynchronous operations.
    Every method raises PersistenceError when the backend cannot be
    read or written.
    """

    async def get_item(self, key: str) -> Optional[str]:
        """Read a value.

        Args:
            key: The storage key.

        Returns:
            The stored string, or None if the key is absent.
        """
        ...

    async def set_item(self, key: str, value: str) -> None:
        """Write a value, replacing any previous one.

        Args:
            key: The storage key.
            value: The string to store.
        """
        ...

    async def remove_item(self, key: str) -> None:
        """Delete a key. Removing an absent key is not an error.

        Args:
            key: The storage key.
        """
        ...

    async def clear(self) -> None:
        """Delete every key held by the store."""
        ...
