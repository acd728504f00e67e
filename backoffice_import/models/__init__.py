"""Domain models for the bulk import pipeline.

Sessions, field schemas, mappings, execution options and the per-run summary.
"""

from .error_record import ErrorRecord
from .field_schema import FieldSpec, FieldType
from .mapping import FieldBinding, FieldMapping
from .options import ExecutionOptions
from .session import EntityType, ImportSession, SessionStatus
from .summary import ImportSummary, RowAction, RowError, RowErrorReason, RowOutcome

__all__ = [
    # Schema / mapping
    "FieldSpec",
    "FieldType",
    "FieldBinding",
    "FieldMapping",
    "ExecutionOptions",
    # Session lifecycle
    "EntityType",
    "ImportSession",
    "SessionStatus",
    # Results
    "ImportSummary",
    "RowAction",
    "RowError",
    "RowErrorReason",
    "RowOutcome",
    "ErrorRecord",
]
