from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

"""Column sampling for operator review.

Returns the headers untouched and the first few rows. The authoritative rows
stay in the session; callers only ever get a copy of the head.
"""

__all__ = [
    "ColumnSample",
    "sample",
    "MIN_PREVIEW_ROWS",
    "MAX_PREVIEW_ROWS",
]

MIN_PREVIEW_ROWS = 5
MAX_PREVIEW_ROWS = 10


@dataclass(frozen=True)
class ColumnSample:
    headers: tuple[str, ...]
    preview_rows: tuple[tuple[str, ...], ...]
    total_rows: int

    def as_records(self) -> list[dict[str, str]]:
        """Preview rows keyed by header, for display (duplicate headers collapse)."""
        return [dict(zip(self.headers, row)) for row in self.preview_rows]


def sample(
    headers: Sequence[str],
    rows: Sequence[Sequence[str]],
    preview_size: int = MIN_PREVIEW_ROWS,
) -> ColumnSample:
    size = max(MIN_PREVIEW_ROWS, min(MAX_PREVIEW_ROWS, preview_size))
    preview = tuple(tuple(r) for r in rows[:size])
    return ColumnSample(headers=tuple(headers), preview_rows=preview, total_rows=len(rows))
