"""
Local Blob Backends

MemoryBackend keeps blobs in a dict (tests, throwaway sessions).
FileBackend keeps one `<key>.json` file per collection in a directory.
"""

import os
import re
import tempfile
from pathlib import Path
from typing import Optional, Union

from finbot.services.storage.interface import BlobBackend, StorageError, UndecodableBlobError


class MemoryBackend(BlobBackend):
    """In-process backend. Nothing survives the process."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._blobs: dict[str, str] = dict(initial or {})

    def read(self, key: str) -> Optional[str]:
        return self._blobs.get(key)

    def write(self, key: str, blob: str) -> None:
        self._blobs[key] = blob

    def delete(self, key: str) -> bool:
        return self._blobs.pop(key, None) is not None

    def keys(self) -> list[str]:
        return sorted(self._blobs)


_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.\-]+$")


class FileBackend(BlobBackend):
    """
    Directory of JSON files, one per key.

    Writes go to a temporary file first and are renamed into place,
    so a crash mid-write leaves the previous blob intact.
    """

    SUFFIX = ".json"

    def __init__(self, directory: Union[str, Path]):
        self._dir = Path(directory)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create data directory {self._dir}: {e}")

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self._dir / f"{key}{self.SUFFIX}"

    def read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            data = path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}")
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise UndecodableBlobError(
                f"{path} is not valid UTF-8: {e}",
                blob=data.decode("utf-8", errors="surrogateescape"),
            )

    def write(self, key: str, blob: str) -> None:
        path = self._path(key)
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self._dir, prefix=f".{key}.", suffix=".tmp")
            # surrogateescape writes quarantined bytes back unchanged
            with os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape") as handle:
                handle.write(blob)
            os.replace(tmp_name, path)
        except (OSError, UnicodeEncodeError) as e:
            raise StorageError(f"Failed to write {path}: {e}")

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}")
        return True

    def keys(self) -> list[str]:
        return sorted(
            p.name[: -len(self.SUFFIX)]
            for p in self._dir.glob(f"*{self.SUFFIX}")
            if not p.name.startswith(".")
        )
