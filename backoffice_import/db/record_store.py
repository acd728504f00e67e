from __future__ import annotations

import threading
import uuid
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

"""Record store adapter contract and an in-memory implementation.

The pipeline talks to persistence only through ``RecordStore``. Each call
is atomic on its own; constraint failures surface as ``StoreError``.
"""

__all__ = [
    "StoreError",
    "RecordStore",
    "InMemoryRecordStore",
]


class StoreError(Exception):
    """Store-level rejection (constraint violation, transient failure)."""

    def __init__(self, message: str, constraint: str | None = None) -> None:
        super().__init__(message)
        self.constraint = constraint


class RecordStore(Protocol):
    def find_by_key(self, key: str) -> str | None: ...

    def exists(self, record_id: str) -> bool: ...

    def find_by_fields(self, criteria: Mapping[str, Any]) -> str | None: ...

    def create(self, key: str, record: Mapping[str, Any]) -> str: ...

    def update(self, record_id: str, record: Mapping[str, Any]) -> None: ...


def _fold(value: Any) -> Any:
    return value.casefold() if isinstance(value, str) else value


class InMemoryRecordStore:
    """Dict-backed store used by the CLI dry-run mode and the tests.

    Natural keys are unique. ``unique_fields`` adds further per-field
    uniqueness (case-insensitive for text), mirroring database constraints.
    """

    def __init__(self, name: str = "records", unique_fields: Sequence[str] = ()) -> None:
        self.name = name
        self.unique_fields = tuple(unique_fields)
        self._records: dict[str, dict[str, Any]] = {}
        self._keys: dict[str, str] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def get(self, record_id: str) -> dict[str, Any] | None:
        record = self._records.get(record_id)
        return dict(record) if record is not None else None

    def records(self) -> list[dict[str, Any]]:
        return [dict(r) for r in self._records.values()]

    def find_by_key(self, key: str) -> str | None:
        return self._keys.get(key)

    def exists(self, record_id: str) -> bool:
        return record_id in self._records

    def find_by_fields(self, criteria: Mapping[str, Any]) -> str | None:
        wanted = {k: _fold(v) for k, v in criteria.items()}
        for record_id, record in self._records.items():
            if all(_fold(record.get(k)) == v for k, v in wanted.items()):
                return record_id
        return None

    def create(self, key: str, record: Mapping[str, Any]) -> str:
        with self._lock:
            if key in self._keys:
                raise StoreError(f"{self.name}: duplicate key {key!r}", constraint=f"{self.name}_key_unique")
            self._check_unique(record, exclude=None)
            record_id = uuid.uuid4().hex
            self._records[record_id] = dict(record)
            self._keys[key] = record_id
            return record_id

    def update(self, record_id: str, record: Mapping[str, Any]) -> None:
        with self._lock:
            current = self._records.get(record_id)
            if current is None:
                raise StoreError(f"{self.name}: record {record_id} does not exist")
            changes = {k: v for k, v in record.items() if v is not None}
            self._check_unique(changes, exclude=record_id)
            current.update(changes)

    def _check_unique(self, record: Mapping[str, Any], exclude: str | None) -> None:
        for field in self.unique_fields:
            value = record.get(field)
            if value is None:
                continue
            for other_id, other in self._records.items():
                if other_id != exclude and _fold(other.get(field)) == _fold(value):
                    raise StoreError(
                        f"{self.name}: {field} {value!r} already exists",
                        constraint=f"{self.name}_{field}_unique",
                    )

