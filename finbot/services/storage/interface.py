"""
Abstract Blob Backend Interface

DESIGN DECISION: The ledger persists one serialized blob per collection.
A backend only needs to move opaque strings around by key, which allows us to:
1. Keep everything in memory for tests
2. Write one JSON file per collection on disk
3. Mirror the same blobs into Google Sheets as a cloud backup
4. Keep RecordStore decoupled from where the bytes actually live

The interface is intentionally tiny - no queries, no partial updates.
Every write replaces the whole blob.
"""

from abc import ABC, abstractmethod
from typing import Optional


class BlobBackend(ABC):
    """
    Abstract key -> string store.

    Any storage implementation (memory, files, Google Sheets)
    must implement these methods.
    """

    @abstractmethod
    def read(self, key: str) -> Optional[str]:
        """
        Read the blob stored under `key`.

        Returns:
            The raw blob, or None if nothing was ever written

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    def write(self, key: str, blob: str) -> None:
        """
        Replace the blob stored under `key`.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """
        Remove the blob stored under `key`.

        Returns:
            True if something was removed
        """
        pass

    @abstractmethod
    def keys(self) -> list[str]:
        """List every key currently holding a blob."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class UndecodableBlobError(StorageError):
    """Stored bytes are not valid UTF-8. `blob` keeps them via surrogateescape."""

    def __init__(self, message: str, blob: str):
        super().__init__(message)
        self.blob = blob
