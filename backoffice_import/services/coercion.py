from __future__ import annotations

import math
import re
from typing import Any

import pandas as pd

from backoffice_import.models.field_schema import FieldSpec, FieldType

"""Per-field type coercion of raw cell text.

Used both by the mapper (to validate literal defaults) and by the executor
(to build typed candidate records). Blank input is never coerced; callers
decide what blank means for a field.
"""

__all__ = [
    "CoercionError",
    "is_blank",
    "coerce_value",
]

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
# pd.to_datetime はこれらを実行時刻に解決してしまう
RELATIVE_DATE_WORDS = frozenset({"now", "today"})


class CoercionError(ValueError):
    """Raised when a raw value does not satisfy the field's declared type."""


def is_blank(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and raw.strip() == "")


def coerce_value(spec: FieldSpec, raw: str) -> Any:
    """Convert one raw text value for ``spec``.

    Raises:
        CoercionError: value cannot be interpreted as ``spec.type``
    """
    text = raw.strip()
    if spec.normalizer is not None:
        text = spec.normalizer(text)

    if spec.type is FieldType.STRING:
        return text
    if spec.type is FieldType.EMAIL:
        return _to_email(spec, text)
    if spec.type is FieldType.NUMBER:
        return _to_number(spec, text)
    if spec.type is FieldType.DATE:
        return _to_timestamp(spec, text).date()
    if spec.type is FieldType.DATETIME:
        return _to_timestamp(spec, text).to_pydatetime()
    if spec.type is FieldType.ENUM:
        return _to_choice(spec, text)
    raise CoercionError(f"{spec.key}: unsupported field type {spec.type!r}")


def _to_email(spec: FieldSpec, text: str) -> str:
    value = text.lower()
    if not EMAIL_RE.match(value):
        raise CoercionError(f"{spec.key}: invalid email address {text!r}")
    return value


def _to_number(spec: FieldSpec, text: str) -> float:
    # 桁区切り (1,234.5) と空白を許容
    cleaned = text.replace(",", "").replace(" ", "")
    try:
        value = float(cleaned)
    except ValueError:
        raise CoercionError(f"{spec.key}: not a number {text!r}") from None
    if math.isnan(value) or math.isinf(value):
        raise CoercionError(f"{spec.key}: not a finite number {text!r}")
    return value


def _to_timestamp(spec: FieldSpec, text: str) -> pd.Timestamp:
    if text.strip().lower() in RELATIVE_DATE_WORDS:
        raise CoercionError(f"{spec.key}: relative date {text!r} is not accepted")
    try:
        ts = pd.to_datetime(text)
    except (ValueError, TypeError, OverflowError):
        raise CoercionError(f"{spec.key}: not a valid date {text!r}") from None
    if ts is pd.NaT or pd.isna(ts):
        raise CoercionError(f"{spec.key}: not a valid date {text!r}")
    return ts


def _to_choice(spec: FieldSpec, text: str) -> str:
    value = text.upper().replace(" ", "_").replace("-", "_")
    if value not in spec.choices:
        allowed = ", ".join(spec.choices)
        raise CoercionError(f"{spec.key}: {text!r} is not one of {allowed}")
    return value

