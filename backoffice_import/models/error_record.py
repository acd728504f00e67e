from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the JSON Lines row error log.

One record per rejected row. ``row`` is the 1-based data row index, the same
number reported in ``ImportSummary.errors``.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        session: import session id
        entity: entity type value (LEAD, EMPLOYEE, ...)
        row: data row number (1-based)
        error_type: FieldValidation | BusinessRuleViolation | StoreRejected
        message: human readable reason
    """
    timestamp: str  # ISO8601 UTC
    session: str
    entity: str
    row: int
    error_type: str
    message: str

    @staticmethod
    def create(session: str, entity: str, row: int, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            session=session,
            entity=entity,
            row=row,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # 追加キー阻止: dataclass -> dict して json.dumps
        return json.dumps(asdict(self), ensure_ascii=False)
