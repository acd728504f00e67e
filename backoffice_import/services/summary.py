from __future__ import annotations

from datetime import UTC, datetime

from ..models.session import EntityType
from ..models.summary import ImportSummary, RowAction, RowError, RowOutcome

"""Outcome aggregation and SUMMARY line rendering.

The reporter is fed one ``RowOutcome`` per processed row, in row order, and
folds them into an ``ImportSummary``. It never touches the store.

SUMMARY line format::

    SUMMARY entity=LEAD rows=10/10 created=9 updated=0 skipped=0 failed=1 elapsed_sec=0.42
"""

__all__ = [
    "SummaryReporter",
    "render_summary_line",
]


class SummaryReporter:
    def __init__(self, session_id: str, entity_type: EntityType, total_rows: int) -> None:
        self.session_id = session_id
        self.entity_type = entity_type
        self.total_rows = total_rows
        self.started_at = datetime.now(UTC)
        self._counts = {RowAction.CREATED: 0, RowAction.UPDATED: 0, RowAction.SKIPPED: 0}
        self._errors: list[RowError] = []

    def add(self, outcome: RowOutcome) -> None:
        if outcome.action is RowAction.FAILED:
            if outcome.error is None:
                raise ValueError(f"row {outcome.row_index} failed without an error entry")
            self._errors.append(outcome.error)
        else:
            self._counts[outcome.action] += 1

    @property
    def processed(self) -> int:
        return sum(self._counts.values()) + len(self._errors)

    def counts(self) -> dict[str, int]:
        return {
            "created": self._counts[RowAction.CREATED],
            "updated": self._counts[RowAction.UPDATED],
            "skipped": self._counts[RowAction.SKIPPED],
            "failed": len(self._errors),
        }

    def build(self, cancelled: bool = False) -> ImportSummary:
        errors = tuple(sorted(self._errors, key=lambda e: e.row_index))
        return ImportSummary(
            session_id=self.session_id,
            entity_type=self.entity_type,
            total_rows=self.total_rows,
            created=self._counts[RowAction.CREATED],
            updated=self._counts[RowAction.UPDATED],
            skipped=self._counts[RowAction.SKIPPED],
            errors=errors,
            cancelled=cancelled,
            started_at=self.started_at,
            finished_at=datetime.now(UTC),
        )


def _format_seconds(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # 指数表記を避ける
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.2f}".rstrip("0").rstrip(".")


def render_summary_line(summary: ImportSummary) -> str:
    line = (
        f"SUMMARY entity={summary.entity_type.value} "
        f"rows={summary.processed_rows}/{summary.total_rows} "
        f"created={summary.created} "
        f"updated={summary.updated} "
        f"skipped={summary.skipped} "
        f"failed={summary.failed} "
        f"elapsed_sec={_format_seconds(summary.elapsed_seconds)}"
    )
    if summary.cancelled:
        line += " cancelled=1"
    return line
