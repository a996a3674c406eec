"""Record stores backing the workflow.

The workflow only talks to a :class:`RecordStore`. Two implementations are
provided: an in-memory store for tests and embedding, and a JSON file store
that keeps every collection in a single document on disk.
"""

from __future__ import annotations

import copy
import json
import os
import threading
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any, Protocol

from .exceptions import PersistenceError

Record = dict[str, Any]


class Collection(StrEnum):
    """Collections known to the workflow."""

    USERS = "users"
    REQUESTS = "requests"
    APPROVALS = "approvals"
    TICKET_OPTIONS = "ticketOptions"
    AUDIT_LOG = "auditLog"


KEY_FIELDS: dict[Collection, str] = {
    Collection.USERS: "id",
    Collection.REQUESTS: "request_id",
    Collection.APPROVALS: "approval_id",
    Collection.TICKET_OPTIONS: "option_id",
    Collection.AUDIT_LOG: "log_id",
}


class RecordStore(Protocol):
    """Persistence collaborator consumed by the workflow.

    ``insert`` and ``update`` must be atomic per call, and ``get`` must
    reflect the latest committed ``update``.
    """

    def get(self, collection: Collection | str, record_id: int) -> Record | None: ...

    def get_all_by(
        self, collection: Collection | str, field_name: str, value: object
    ) -> list[Record]: ...

    def insert(self, collection: Collection | str, record: Record) -> int: ...

    def update(self, collection: Collection | str, record: Record) -> None: ...


def _resolve(collection: Collection | str, operation: str) -> Collection:
    try:
        return Collection(collection)
    except ValueError:
        raise PersistenceError(operation, str(collection), "unknown collection") from None


@dataclass
class InMemoryRecordStore:
    """Thread-safe in-memory store with auto-incrementing keys.

    Records are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    tables: dict[Collection, dict[int, Record]] = field(
        default_factory=lambda: {collection: {} for collection in Collection}
    )
    sequences: dict[Collection, int] = field(
        default_factory=lambda: {collection: 0 for collection in Collection}
    )
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def get(self, collection: Collection | str, record_id: int) -> Record | None:
        name = _resolve(collection, "get")
        with self._lock:
            record = self.tables[name].get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def get_all_by(
        self, collection: Collection | str, field_name: str, value: object
    ) -> list[Record]:
        name = _resolve(collection, "get_all_by")
        with self._lock:
            return [
                copy.deepcopy(record)
                for _, record in sorted(self.tables[name].items())
                if record.get(field_name) == value
            ]

    def all(self, collection: Collection | str) -> list[Record]:
        """Return every record of a collection ordered by key."""

        name = _resolve(collection, "all")
        with self._lock:
            return [copy.deepcopy(record) for _, record in sorted(self.tables[name].items())]

    def insert(self, collection: Collection | str, record: Record) -> int:
        name = _resolve(collection, "insert")
        key_field = KEY_FIELDS[name]
        with self._lock:
            previous_sequence = self.sequences[name]
            new_id = record.get(key_field) or previous_sequence + 1
            if new_id in self.tables[name]:
                raise PersistenceError("insert", name.value, f"duplicate key {new_id}")
            stored = copy.deepcopy(record)
            stored[key_field] = new_id
            self.tables[name][new_id] = stored
            self.sequences[name] = max(previous_sequence, new_id)
            try:
                self._persist()
            except PersistenceError:
                del self.tables[name][new_id]
                self.sequences[name] = previous_sequence
                raise
            return new_id

    def update(self, collection: Collection | str, record: Record) -> None:
        name = _resolve(collection, "update")
        key_field = KEY_FIELDS[name]
        record_id = record.get(key_field)
        with self._lock:
            if record_id not in self.tables[name]:
                raise PersistenceError(
                    "update", name.value, f"no record with {key_field}={record_id}"
                )
            previous = self.tables[name][record_id]
            self.tables[name][record_id] = copy.deepcopy(record)
            try:
                self._persist()
            except PersistenceError:
                self.tables[name][record_id] = previous
                raise

    def _persist(self) -> None:
        """Hook for durable subclasses; called while the lock is held."""


class JsonFileRecordStore(InMemoryRecordStore):
    """Record store persisted to a single JSON document.

    Every successful write replaces the file atomically; a failed write is
    rolled back in memory and reported as a PersistenceError.
    """

    def __init__(self, path: str | Path):
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            self._load()

    def _load(self) -> None:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError("load", str(self.path), str(exc)) from exc
        for collection in Collection:
            records = payload.get("collections", {}).get(collection.value, [])
            key_field = KEY_FIELDS[collection]
            self.tables[collection] = {int(record[key_field]): record for record in records}
            self.sequences[collection] = int(
                payload.get("sequences", {}).get(collection.value, 0)
            )

    def _persist(self) -> None:
        payload = {
            "collections": {
                collection.value: [record for _, record in sorted(table.items())]
                for collection, table in self.tables.items()
            },
            "sequences": {
                collection.value: sequence for collection, sequence in self.sequences.items()
            },
        }
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(
                json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8"
            )
            os.replace(temp_path, self.path)
        except OSError as exc:
            raise PersistenceError("write", str(self.path), str(exc)) from exc
