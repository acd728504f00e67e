from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

__all__ = [
    "ExecutionOptions",
]


def _text_map(raw: Mapping[str, Any] | None) -> dict[str, str]:
    return {str(k): str(v) for k, v in (raw or {}).items() if v is not None}


@dataclass(frozen=True)
class ExecutionOptions:
    """Conflict policy and per-field fallbacks for one Execute call.

    update_existing: a dedupe match updates the existing record (True) or
        skips the row (False).
    defaults: target field -> raw text used when the row's value is blank.
    manual_matches: operator-confirmed employee ids for check-in/out rows,
        keyed by ``First|Last|Card``, ``First|Last``, ``First Last`` or the
        card number alone.
    """
    update_existing: bool = True
    defaults: Mapping[str, str] = field(default_factory=dict)
    manual_matches: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ExecutionOptions:
        if not data:
            return cls()
        update = data.get("update_existing", data.get("updateExisting", True))
        matches = data.get("manual_matches", data.get("manualMatches"))
        return cls(
            update_existing=bool(update),
            defaults=_text_map(data.get("defaults")),
            manual_matches=_text_map(matches),
        )
