"""Record store adapters (in-memory and PostgreSQL)."""

from .record_store import InMemoryRecordStore, RecordStore, StoreError

__all__ = [
    "InMemoryRecordStore",
    "RecordStore",
    "StoreError",
]
