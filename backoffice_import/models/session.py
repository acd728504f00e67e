from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from .mapping import FieldMapping

if TYPE_CHECKING:
    from .summary import ImportSummary

"""ImportSession model.

A session carries one uploaded file through Upload -> SaveMapping -> Execute.
Instances are immutable; the session store swaps in a new value on every
transition via ``ImportSession.evolve``.
"""

__all__ = [
    "EntityType",
    "SessionStatus",
    "ImportSession",
]


class EntityType(Enum):
    LEAD = "LEAD"
    CONTACT = "CONTACT"
    EMPLOYEE = "EMPLOYEE"
    CANDIDATE = "CANDIDATE"
    CHECK_IN_OUT = "CHECK_IN_OUT"

    @classmethod
    def parse(cls, value: str | EntityType) -> EntityType:
        """Accept ``lead``, ``LEAD``, ``check-in-out`` or ``check_in_out``.

        Raises:
            ValueError: if the value names no entity type
        """
        if isinstance(value, cls):
            return value
        token = str(value).strip().upper().replace("-", "_").replace(" ", "_")
        try:
            return cls[token]
        except KeyError:
            raise ValueError(f"unknown entity type: {value!r}") from None


class SessionStatus(Enum):
    UPLOADED = "UPLOADED"
    MAPPED = "MAPPED"
    EXECUTING = "EXECUTING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ImportSession:
    """Uploaded file plus everything the operator has confirmed so far.

    Attributes:
        session_id: opaque id returned by Upload
        entity_type: target record kind, fixed at Upload
        raw_headers: trimmed header cells
        raw_rows: data rows, each padded/truncated to ``len(raw_headers)``
        status: lifecycle state
        mapping: set by SaveMapping
        file_name: original upload name (used in error logs)
        created_at / expires_at: TTL bookkeeping
        summary: set when Execute finishes
        failure_reason: set when status is FAILED
    """
    session_id: str
    entity_type: EntityType
    raw_headers: tuple[str, ...]
    raw_rows: tuple[tuple[str, ...], ...]
    status: SessionStatus
    created_at: datetime
    expires_at: datetime
    file_name: str = ""
    mapping: FieldMapping | None = None
    summary: ImportSummary | None = None
    failure_reason: str | None = None

    @property
    def total_rows(self) -> int:
        return len(self.raw_rows)

    def evolve(self, **changes) -> ImportSession:
        return replace(self, **changes)
