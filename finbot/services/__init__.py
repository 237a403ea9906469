"""Services package."""

from finbot.services.storage import (
    BlobBackend,
    ConnectionError,
    FileBackend,
    GoogleSheetsBackend,
    MemoryBackend,
    NotFoundError,
    RecordStore,
    StorageError,
)

__all__ = [
    "BlobBackend",
    "ConnectionError",
    "FileBackend",
    "GoogleSheetsBackend",
    "MemoryBackend",
    "NotFoundError",
    "RecordStore",
    "StorageError",
]
