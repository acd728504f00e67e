from __future__ import annotations

from dataclasses import dataclass
from typing import Any

"""FieldMapping model: operator-confirmed binding of entity fields to columns.

Each binding points at a source column index or carries a literal default
that applies to every row. Literals are stored as text and coerced per row
exactly like cell values.
"""

__all__ = [
    "FieldBinding",
    "FieldMapping",
]


@dataclass(frozen=True)
class FieldBinding:
    target_field: str
    column_index: int | None = None
    literal: str | None = None

    @property
    def is_literal(self) -> bool:
        return self.column_index is None

    def resolve(self, cells: tuple[str, ...]) -> str:
        """Return the raw text this binding yields for one row."""
        if self.column_index is None:
            return self.literal or ""
        if self.column_index < len(cells):
            return cells[self.column_index]
        return ""

    def to_dict(self) -> dict[str, Any]:
        if self.column_index is None:
            return {"literal": self.literal}
        return {"column": self.column_index}


@dataclass(frozen=True)
class FieldMapping:
    bindings: tuple[FieldBinding, ...]

    def get(self, target_field: str) -> FieldBinding | None:
        for binding in self.bindings:
            if binding.target_field == target_field:
                return binding
        return None

    @property
    def target_fields(self) -> list[str]:
        return [b.target_field for b in self.bindings]

    def __len__(self) -> int:
        return len(self.bindings)

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {b.target_field: b.to_dict() for b in self.bindings}
