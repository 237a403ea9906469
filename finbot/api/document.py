"""
Server Document Store

All REST backend state lives in one JSON document on disk. It is read
whole and written whole on every request.

On first read the file is created with a fixed skeleton. A file that
cannot be parsed is copied aside to `<name>.<utc stamp>.corrupt`, an error
is logged, and the request proceeds with the skeleton; the next write
replaces it.
"""

import copy
import json
import os
import shutil
import tempfile
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Union

import structlog

from finbot.models.ledger import SubscriptionLevel, Theme
from finbot.services.storage.interface import StorageError


logger = structlog.get_logger()

COLLECTION_KEYS = ("transactions", "categories", "goals", "subscriptions", "debts")

DEFAULT_DOCUMENT: dict[str, Any] = {
    "transactions": [],
    "categories": [],
    "goals": [],
    "subscriptions": [],
    "debts": [],
    "subscriptionLevel": SubscriptionLevel.FREE.value,
    "theme": Theme.DARK.value,
}


def default_document() -> dict[str, Any]:
    return copy.deepcopy(DEFAULT_DOCUMENT)


class ServerDocumentStore:
    """
    JSON-file document with a process-wide lock.

    FastAPI runs sync endpoints in a thread pool, so every
    read-modify-write goes through `mutate()` to keep requests from
    overwriting each other.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> dict[str, Any]:
        with self._lock:
            if not self._path.exists():
                data = default_document()
                self.write(data)
                return data

            try:
                parsed = json.loads(self._path.read_text(encoding="utf-8"))
                if not isinstance(parsed, dict):
                    raise ValueError("document root is not an object")
            except (OSError, ValueError) as e:
                self._quarantine(str(e))
                return default_document()

            data = default_document()
            data.update(parsed)
            return data

    def write(self, data: dict[str, Any]) -> None:
        with self._lock:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, suffix=".tmp")
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(data, handle, ensure_ascii=False, indent=2)
                os.replace(tmp_name, self._path)
            except OSError as e:
                raise StorageError(f"Failed to write {self._path}: {e}")

    @contextmanager
    def mutate(self) -> Iterator[dict[str, Any]]:
        """Read, let the caller modify, write back. Nothing is written on error."""
        with self._lock:
            data = self.read()
            yield data
            self.write(data)

    def _quarantine(self, error: str) -> None:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        corrupt = self._path.with_name(f"{self._path.name}.{stamp}.corrupt")
        logger.error(
            "document_unreadable_reset",
            path=str(self._path),
            error=error,
            quarantined_as=str(corrupt),
        )
        try:
            shutil.copyfile(self._path, corrupt)
        except OSError as e:
            logger.error("document_quarantine_failed", path=str(self._path), error=str(e))
