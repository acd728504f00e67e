from __future__ import annotations

from collections.abc import Mapping

"""Error taxonomy for the import pipeline.

Session-level and mapping-level errors propagate to the caller of
``ImportPipeline``. Row-level errors (``RowRejected`` subclasses) are raised
inside the executor and recorded in the ``ImportSummary`` instead.
"""

__all__ = [
    "PipelineError",
    "UnknownEntityType",
    "FileTooLarge",
    "SessionError",
    "SessionNotFound",
    "SessionExpired",
    "SessionBusy",
    "SessionConsumed",
    "SessionNotMapped",
    "StoreUnavailable",
    "InvalidMapping",
    "RowRejected",
    "FieldValidationError",
    "BusinessRuleViolation",
]


class PipelineError(Exception):
    """Base class for errors that reject a whole pipeline operation."""


class UnknownEntityType(PipelineError):
    pass


class FileTooLarge(PipelineError):
    pass


class SessionError(PipelineError):
    """Raised for session lookups and state transitions."""

    default_message = "session error"

    def __init__(self, session_id: str, message: str | None = None) -> None:
        self.session_id = session_id
        super().__init__(message or f"{self.default_message}: {session_id}")


class SessionNotFound(SessionError):
    default_message = "import session not found"


class SessionExpired(SessionError):
    default_message = "import session expired"


class SessionBusy(SessionError):
    default_message = "import session is already executing"


class SessionConsumed(SessionBusy):
    """The session already ran to completion (or failed) and cannot run again."""

    default_message = "import session was already executed"


class SessionNotMapped(SessionError):
    default_message = "field mapping must be saved before executing the import"


class StoreUnavailable(PipelineError):
    pass


class InvalidMapping(PipelineError):
    """Mapping rejected before any row is read.

    ``problems`` maps each offending target field to a human readable reason.
    """

    def __init__(self, problems: Mapping[str, str]) -> None:
        self.problems = dict(problems)
        detail = "; ".join(f"{key}: {msg}" for key, msg in self.problems.items())
        super().__init__(f"invalid mapping ({detail})")

    @property
    def field_keys(self) -> list[str]:
        return list(self.problems)


class RowRejected(Exception):
    """Base for failures isolated to a single input row."""


class FieldValidationError(RowRejected):
    pass


class BusinessRuleViolation(RowRejected):
    pass
