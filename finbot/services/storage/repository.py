"""
Record Store

DESIGN DECISION: One explicit repository object per session replaces the
implicit global key-value store. It exposes the same get/save/delete
contract over named collections and delegates the bytes to an injectable
BlobBackend.

Every write re-serializes the whole collection. There are no partial
updates and no indexes; the expected data volume is thousands of records.

Unreadable blobs are NOT silently discarded: the raw text is copied to
`<collection>.<utc stamp>.corrupt` in the same backend and a warning is
logged before the collection falls back to its default. Repeated
corruption never overwrites an earlier copy.
"""

import json
from datetime import datetime, timezone
from typing import Any, Optional, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from finbot.models.audit import AuditEvent, AuditEventBuilder
from finbot.models.catalog import DEFAULT_CATEGORIES
from finbot.models.ledger import (
    Achievement,
    Category,
    Collection,
    Debt,
    Goal,
    Reminder,
    ReminderHistoryItem,
    Subscription,
    Transaction,
)
from finbot.services.storage.interface import BlobBackend, StorageError, UndecodableBlobError


logger = structlog.get_logger()

T = TypeVar("T", bound=BaseModel)

COLLECTION_MODELS: dict[Collection, type[BaseModel]] = {
    Collection.TRANSACTIONS: Transaction,
    Collection.CATEGORIES: Category,
    Collection.GOALS: Goal,
    Collection.DEBTS: Debt,
    Collection.SUBSCRIPTIONS: Subscription,
    Collection.ACHIEVEMENTS: Achievement,
    Collection.REMINDERS: Reminder,
    Collection.REMINDER_HISTORY: ReminderHistoryItem,
    Collection.ACTIVITY: AuditEvent,
}

SETTINGS_KEY = "settings"
CORRUPT_SUFFIX = ".corrupt"


def _to_record(item: BaseModel) -> dict:
    return item.to_record() if hasattr(item, "to_record") else item.model_dump(mode="json")


class RecordStore:
    """
    Repository over named collections of pydantic records.

    Usage:
        store = RecordStore(FileBackend("./finbot_data"))
        store.save(Collection.GOALS, Goal(name="Car", target_amount=500_000))
        goals = store.get_all(Collection.GOALS)
    """

    def __init__(self, backend: BlobBackend):
        self._backend = backend
        self._audit = None

    @property
    def backend(self) -> BlobBackend:
        return self._backend

    def attach_audit(self, audit) -> None:
        """Report blob resets, backups and restores through an AuditLogger."""
        self._audit = audit

    # =========================================================================
    # COLLECTIONS
    # =========================================================================

    def default_for(self, collection: Collection) -> list[BaseModel]:
        """Contents of a collection that was never written."""
        if collection == Collection.CATEGORIES:
            return [c.model_copy() for c in DEFAULT_CATEGORIES]
        return []

    def get_all(self, collection: Collection) -> list:
        """
        Read every record of a collection.

        Missing blob -> default. Corrupt blob -> quarantined, warning,
        default. Individual records that no longer validate are skipped.
        """
        model = COLLECTION_MODELS[collection]
        blob = self._read_blob(collection.value)
        if blob is None:
            return self.default_for(collection)

        try:
            raw = json.loads(blob)
            if not isinstance(raw, list):
                raise ValueError(f"expected a JSON array, got {type(raw).__name__}")
        except ValueError as e:
            self._reset(collection.value, blob, str(e))
            return self.default_for(collection)

        items = []
        for index, entry in enumerate(raw):
            try:
                items.append(model.model_validate(entry))
            except ValidationError as e:
                logger.warning(
                    "record_skipped",
                    collection=collection.value,
                    index=index,
                    error_count=e.error_count(),
                )
        return items

    def get(self, collection: Collection, item_id: str) -> Optional[Any]:
        for item in self.get_all(collection):
            if item.id == item_id:
                return item
        return None

    def replace_all(self, collection: Collection, items: list[BaseModel]) -> None:
        """Serialize the whole collection in one write."""
        blob = json.dumps([_to_record(item) for item in items], ensure_ascii=False)
        self._backend.write(collection.value, blob)

    def save(self, collection: Collection, item: T) -> T:
        """Upsert by id: replace in place if present, append otherwise."""
        items = self.get_all(collection)
        for index, existing in enumerate(items):
            if existing.id == item.id:
                items[index] = item
                break
        else:
            items.append(item)
        self.replace_all(collection, items)
        return item

    def append(self, collection: Collection, item: T) -> T:
        items = self.get_all(collection)
        items.append(item)
        self.replace_all(collection, items)
        return item

    def update(self, collection: Collection, item: BaseModel) -> bool:
        """Replace an existing record. Returns False if the id is unknown."""
        items = self.get_all(collection)
        for index, existing in enumerate(items):
            if existing.id == item.id:
                items[index] = item
                self.replace_all(collection, items)
                return True
        return False

    def delete(self, collection: Collection, item_id: str) -> bool:
        items = self.get_all(collection)
        remaining = [item for item in items if item.id != item_id]
        if len(remaining) == len(items):
            return False
        self.replace_all(collection, remaining)
        return True

    # =========================================================================
    # SCALAR VALUES
    # =========================================================================

    def _read_settings(self) -> dict:
        blob = self._read_blob(SETTINGS_KEY)
        if blob is None:
            return {}
        try:
            raw = json.loads(blob)
            if not isinstance(raw, dict):
                raise ValueError(f"expected a JSON object, got {type(raw).__name__}")
            return raw
        except ValueError as e:
            self._reset(SETTINGS_KEY, blob, str(e))
            return {}

    def get_value(self, key: str, default: Any = None) -> Any:
        """Read a scalar setting (theme, subscription level, counters...)."""
        return self._read_settings().get(key, default)

    def set_value(self, key: str, value: Any) -> None:
        values = self._read_settings()
        values[key] = value
        self._backend.write(SETTINGS_KEY, json.dumps(values, ensure_ascii=False))

    # =========================================================================
    # SNAPSHOTS & BACKUP
    # =========================================================================

    def export_snapshot(self) -> dict[str, Any]:
        """Every collection plus the scalar settings as plain JSON data."""
        snapshot: dict[str, Any] = {
            collection.value: [_to_record(item) for item in self.get_all(collection)]
            for collection in Collection
        }
        snapshot[SETTINGS_KEY] = self._read_settings()
        return snapshot

    def import_snapshot(self, snapshot: dict[str, Any]) -> None:
        """
        Replace stored data with a snapshot produced by export_snapshot.

        Collections absent from the snapshot are left untouched. Records
        that fail validation are dropped with a warning.
        """
        for collection in Collection:
            if collection.value not in snapshot:
                continue
            model = COLLECTION_MODELS[collection]
            items = []
            for entry in snapshot[collection.value] or []:
                try:
                    items.append(model.model_validate(entry))
                except ValidationError as e:
                    logger.warning(
                        "snapshot_record_skipped",
                        collection=collection.value,
                        error_count=e.error_count(),
                    )
            self.replace_all(collection, items)

        if isinstance(snapshot.get(SETTINGS_KEY), dict):
            self._backend.write(
                SETTINGS_KEY,
                json.dumps(snapshot[SETTINGS_KEY], ensure_ascii=False),
            )

    def _data_keys(self, backend: BlobBackend) -> list[str]:
        return [key for key in backend.keys() if not key.endswith(CORRUPT_SUFFIX)]

    def backup_to(self, target: BlobBackend) -> list[str]:
        """
        Copy every blob to another backend (last write wins).

        Returns the keys that were copied.
        """
        copied = []
        for key in self._data_keys(self._backend):
            blob = self._read_blob(key)
            if blob is not None:
                target.write(key, blob)
                copied.append(key)
        logger.info("backup_completed", keys=copied)
        if self._audit is not None:
            self._audit.log_backup(copied)
        return copied

    def restore_from(self, source: BlobBackend) -> list[str]:
        """Overwrite local blobs with the ones held by `source`."""
        restored = []
        for key in self._data_keys(source):
            blob = source.read(key)
            if blob is not None:
                self._backend.write(key, blob)
                restored.append(key)
        logger.info("restore_completed", keys=restored)
        if self._audit is not None:
            self._audit.log_backup(restored, restore=True)
        return restored

    # =========================================================================
    # RECOVERY
    # =========================================================================

    def _read_blob(self, key: str) -> Optional[str]:
        """Backend read where undecodable bytes count as a corrupt blob."""
        try:
            return self._backend.read(key)
        except UndecodableBlobError as e:
            self._reset(key, e.blob, str(e))
            return None

    def _quarantine_key(self, key: str) -> str:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        taken = set(self._backend.keys())
        candidate = f"{key}.{stamp}{CORRUPT_SUFFIX}"
        attempt = 1
        while candidate in taken:
            candidate = f"{key}.{stamp}-{attempt}{CORRUPT_SUFFIX}"
            attempt += 1
        return candidate

    def _reset(self, key: str, blob: str, error: str) -> None:
        """Quarantine an unreadable blob and clear the original key."""
        # The activity log cannot audit its own reset
        audit = self._audit if key != Collection.ACTIVITY.value else None
        try:
            quarantine_key = self._quarantine_key(key)
            logger.warning(
                "corrupt_blob_reset",
                key=key,
                error=error,
                quarantined_as=quarantine_key,
            )
            self._backend.write(quarantine_key, blob)
            self._backend.delete(key)
        except StorageError as e:
            logger.error("corrupt_blob_quarantine_failed", key=key, error=str(e))
            if audit is not None:
                audit.log_error("quarantine_failed", str(e), {"key": key})

        if audit is not None:
            audit.log(AuditEventBuilder.store_reset(key, error))
