from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

"""Field schema models shared by every importable entity.

An entity declares an ordered tuple of ``FieldSpec``. The mapper validates
operator bindings against it and the executor coerces cell text with it.
"""

__all__ = [
    "FieldType",
    "FieldSpec",
    "index_schema",
]


class FieldType(Enum):
    """Declared type of an importable field.

    - STRING: kept as trimmed text
    - EMAIL: lower-cased, must look like an address
    - NUMBER: float, thousands separators allowed
    - DATE / DATETIME: parsed with pandas
    - ENUM: upper-cased, must be one of ``FieldSpec.choices``
    """
    STRING = "string"
    EMAIL = "email"
    NUMBER = "number"
    DATE = "date"
    DATETIME = "datetime"
    ENUM = "enum"


@dataclass(frozen=True)
class FieldSpec:
    key: str
    label: str
    required: bool = False
    type: FieldType = FieldType.STRING
    description: str = ""
    choices: tuple[str, ...] = ()
    # 値の揺れ (例: "Division 5-1 In") を型変換前に吸収するフック
    normalizer: Callable[[str], str] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "key": self.key,
            "label": self.label,
            "required": self.required,
            "type": self.type.value,
            "description": self.description,
        }
        if self.choices:
            payload["choices"] = list(self.choices)
        return payload


def index_schema(schema: Iterable[FieldSpec]) -> dict[str, FieldSpec]:
    return {spec.key: spec for spec in schema}
