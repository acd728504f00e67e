from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from difflib import SequenceMatcher
from typing import Any

from backoffice_import.models.field_schema import FieldSpec, index_schema
from backoffice_import.models.mapping import FieldBinding, FieldMapping
from backoffice_import.services.coercion import CoercionError, coerce_value, is_blank
from backoffice_import.services.errors import InvalidMapping

"""Field mapping validation and header-based suggestions.

Accepted payload shapes::

    {"email": 0, "title": "Deal name", "status": {"literal": "NEW"}}
    [{"targetField": "email", "sourceColumn": 0}, {"targetField": "status", "literal": "NEW"}]

A string column reference is resolved against the upload's header row
(exact match first, then case/whitespace-insensitive).
"""

__all__ = [
    "build_mapping",
    "validate_defaults",
    "suggest_mapping",
    "normalize_label",
    "DEFAULT_MIN_CONFIDENCE",
]

logger = logging.getLogger(__name__)

DEFAULT_MIN_CONFIDENCE = 0.3

_COLUMN_KEYS = ("sourceColumn", "source_column", "sourceColumnIndex", "column")
_LITERAL_KEYS = ("literal", "literalDefault", "literal_default")
_TARGET_KEYS = ("targetField", "target_field", "field")


def build_mapping(
    payload: Mapping[str, Any] | Sequence[Mapping[str, Any]],
    headers: Sequence[str],
    schema: Sequence[FieldSpec],
) -> FieldMapping:
    """Validate an operator mapping against the entity schema.

    Returns:
        FieldMapping with bindings in schema order

    Raises:
        InvalidMapping: collecting every offending field
    """
    by_key = index_schema(schema)
    problems: dict[str, str] = {}
    bound: dict[str, FieldBinding] = {}
    seen: set[str] = set()

    for target, ref in _iter_entries(payload, problems):
        if target in seen:
            problems[target] = "bound more than once"
            bound.pop(target, None)
            continue
        seen.add(target)
        spec = by_key.get(target)
        if spec is None:
            problems[target] = "not an importable field"
            continue
        if ref is None:
            continue
        binding = _bind(spec, ref, headers, problems)
        if binding is not None:
            bound[target] = binding

    for spec in schema:
        if spec.required and spec.key not in bound and spec.key not in problems:
            problems[spec.key] = "required field is not mapped"

    if problems:
        logger.warning("mapping rejected: %s", ", ".join(sorted(problems)))
        raise InvalidMapping(problems)

    ordered = tuple(bound[spec.key] for spec in schema if spec.key in bound)
    return FieldMapping(bindings=ordered)


def _iter_entries(payload, problems: dict[str, str]):
    if isinstance(payload, Mapping):
        yield from ((str(k), v) for k, v in payload.items())
        return
    for position, entry in enumerate(payload):
        if not isinstance(entry, Mapping):
            problems[f"#{position}"] = "mapping entry must be an object"
            continue
        target = next((entry[k] for k in _TARGET_KEYS if k in entry), None)
        if target is None:
            problems[f"#{position}"] = "mapping entry has no target field"
            continue
        literal_key = next((k for k in _LITERAL_KEYS if k in entry), None)
        if literal_key is not None:
            yield str(target), {"literal": entry[literal_key]}
            continue
        column = next((entry[k] for k in _COLUMN_KEYS if k in entry), None)
        yield str(target), column


def _bind(
    spec: FieldSpec,
    ref: Any,
    headers: Sequence[str],
    problems: dict[str, str],
) -> FieldBinding | None:
    if isinstance(ref, Mapping):
        if "literal" in ref:
            return _bind_literal(spec, ref["literal"], problems)
        ref = ref.get("column")
        if ref is None:
            problems[spec.key] = "binding needs a column or a literal"
            return None

    if isinstance(ref, bool):
        problems[spec.key] = f"invalid column reference {ref!r}"
        return None
    if isinstance(ref, int):
        if not 0 <= ref < len(headers):
            problems[spec.key] = f"column index {ref} out of range [0, {len(headers)})"
            return None
        return FieldBinding(target_field=spec.key, column_index=ref)
    if isinstance(ref, str):
        index = _find_header(ref, headers)
        if index is None:
            problems[spec.key] = f"no source column named {ref!r}"
            return None
        return FieldBinding(target_field=spec.key, column_index=index)

    problems[spec.key] = f"invalid column reference {ref!r}"
    return None


def _bind_literal(spec: FieldSpec, literal: Any, problems: dict[str, str]) -> FieldBinding | None:
    if is_blank(literal):
        problems[spec.key] = "literal default is blank"
        return None
    text = str(literal).strip()
    try:
        coerce_value(spec, text)
    except CoercionError as exc:
        problems[spec.key] = str(exc)
        return None
    return FieldBinding(target_field=spec.key, literal=text)


def _find_header(name: str, headers: Sequence[str]) -> int | None:
    for i, header in enumerate(headers):
        if header == name:
            return i
    wanted = name.strip().casefold()
    for i, header in enumerate(headers):
        if header.strip().casefold() == wanted:
            return i
    return None


def validate_defaults(defaults: Mapping[str, str], schema: Sequence[FieldSpec]) -> dict[str, str]:
    """Check execution defaults; every key must be a schema field and every value coercible.

    Raises:
        InvalidMapping: for unknown fields or values of the wrong type
    """
    by_key = index_schema(schema)
    problems: dict[str, str] = {}
    cleaned: dict[str, str] = {}
    for key, value in defaults.items():
        spec = by_key.get(key)
        if spec is None:
            problems[key] = "not an importable field"
            continue
        if is_blank(value):
            continue
        text = str(value).strip()
        try:
            coerce_value(spec, text)
        except CoercionError as exc:
            problems[key] = str(exc)
            continue
        cleaned[key] = text
    if problems:
        raise InvalidMapping(problems)
    return cleaned


def normalize_label(name: str) -> str:
    """"Contact E-mail" -> "contactemail"."""
    return re.sub(r"[^a-z0-9]", "", name.lower())


def _score(header: str, spec: FieldSpec) -> float:
    h = normalize_label(header)
    if not h:
        return 0.0
    best = 0.0
    for candidate in (normalize_label(spec.label), normalize_label(spec.key)):
        if not candidate:
            continue
        if h == candidate:
            return 1.0
        if h in candidate or candidate in h:
            best = max(best, 0.9)
        else:
            best = max(best, SequenceMatcher(None, h, candidate).ratio())
    return best


def suggest_mapping(
    headers: Sequence[str],
    schema: Sequence[FieldSpec],
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
) -> dict[str, int]:
    """Greedy best-first header -> field pairing by label similarity.

    Each header and each field is used at most once. Pairs scoring below
    ``min_confidence`` are left unmapped.
    """
    scored: list[tuple[float, int, int]] = []
    for col, header in enumerate(headers):
        for pos, spec in enumerate(schema):
            score = _score(header, spec)
            if score >= min_confidence:
                scored.append((score, col, pos))
    # 同点は列順・スキーマ順を優先
    scored.sort(key=lambda t: (-t[0], t[1], t[2]))

    used_cols: set[int] = set()
    result: dict[str, int] = {}
    for _score_value, col, pos in scored:
        key = schema[pos].key
        if col in used_cols or key in result:
            continue
        result[key] = col
        used_cols.add(col)
    return {spec.key: result[spec.key] for spec in schema if spec.key in result}
