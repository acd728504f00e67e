from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from backoffice_import.db.record_store import RecordStore

"""Natural-key duplicate detection against the record store.

One point read per row; nothing is cached between rows so that records
created earlier in the same run are seen by later rows.
"""

__all__ = [
    "Found",
    "NotFound",
    "Resolution",
    "DedupeResolver",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Found:
    record_id: str


@dataclass(frozen=True)
class NotFound:
    pass


Resolution = Found | NotFound


class DedupeResolver:
    """Resolve ``Found(record_id)`` / ``NotFound`` for a candidate record.

    Args:
        key_of: entity-specific natural-key extractor
        store: record store for the entity
    """

    def __init__(self, key_of: Callable[[Mapping[str, Any]], str], store: RecordStore) -> None:
        self._key_of = key_of
        self._store = store

    def key_for(self, record: Mapping[str, Any]) -> str | None:
        """Natural key of ``record``; None when it cannot be derived."""
        try:
            key = self._key_of(record)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            logger.debug("natural key not derivable: %s", e)
            return None
        return key or None

    def resolve_key(self, key: str | None) -> Resolution:
        # キー不正は重複扱いにしない
        if key is None:
            return NotFound()
        record_id = self._store.find_by_key(key)
        if record_id is None:
            return NotFound()
        return Found(record_id)

    def resolve(self, record: Mapping[str, Any]) -> Resolution:
        return self.resolve_key(self.key_for(record))
