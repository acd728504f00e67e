from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .session import EntityType

"""Result models for one Execute call.

Row accounting invariant: ``created + updated + skipped + len(errors)``
equals ``total_rows`` unless the run was cancelled, in which case it equals
the number of rows processed before cancellation.
"""

__all__ = [
    "RowErrorReason",
    "RowError",
    "RowAction",
    "RowOutcome",
    "ImportSummary",
]


class RowErrorReason(Enum):
    FIELD_VALIDATION = "FieldValidation"
    BUSINESS_RULE_VIOLATION = "BusinessRuleViolation"
    STORE_REJECTED = "StoreRejected"


@dataclass(frozen=True)
class RowError:
    row_index: int  # 1-based, header row excluded
    reason: RowErrorReason
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row_index, "reason": self.reason.value, "message": self.message}


class RowAction(Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class RowOutcome:
    row_index: int
    action: RowAction
    record_id: str | None = None
    error: RowError | None = None


@dataclass(frozen=True)
class ImportSummary:
    session_id: str
    entity_type: EntityType
    total_rows: int
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: tuple[RowError, ...] = field(default_factory=tuple)
    cancelled: bool = False
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def processed_rows(self) -> int:
        return self.created + self.updated + self.skipped + self.failed

    @property
    def elapsed_seconds(self) -> float:
        if self.started_at is None or self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "entity_type": self.entity_type.value,
            "total_rows": self.total_rows,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": [e.to_dict() for e in self.errors],
            "cancelled": self.cancelled,
        }
