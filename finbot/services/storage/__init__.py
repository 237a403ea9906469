"""
Storage Services Package

Provides the blob backend interface, its implementations, and the
RecordStore repository built on top of them.
"""

from finbot.services.storage.interface import (
    BlobBackend,
    ConnectionError,
    NotFoundError,
    StorageError,
    UndecodableBlobError,
)
from finbot.services.storage.backends import FileBackend, MemoryBackend
from finbot.services.storage.google_sheets import (
    GoogleSheetsBackend,
    GoogleSheetsClient,
)
from finbot.services.storage.repository import (
    COLLECTION_MODELS,
    RecordStore,
)

__all__ = [
    # Interfaces
    "BlobBackend",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    "UndecodableBlobError",
    # Implementations
    "FileBackend",
    "GoogleSheetsBackend",
    "GoogleSheetsClient",
    "MemoryBackend",
    # Repository
    "COLLECTION_MODELS",
    "RecordStore",
]
