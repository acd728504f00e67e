from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from backoffice_import.db.record_store import RecordStore
from backoffice_import.models.field_schema import FieldSpec
from backoffice_import.models.session import EntityType
from backoffice_import.services.errors import BusinessRuleViolation, StoreUnavailable

"""Entity adapter contract.

An adapter is static configuration: the importable field schema, the
natural-key extractor used for dedupe, an optional ``prepare`` hook that
enforces the entity's own invariants on a coerced record, and the fields
that must be unique apart from the natural key.
"""

__all__ = [
    "PrepareContext",
    "EntityAdapter",
    "split_full_name",
    "require",
]


@dataclass(frozen=True)
class PrepareContext:
    """Stores an adapter may consult while preparing a record (read only).

    ``manual_matches`` carries the operator's employee matches for the run.
    """
    stores: Mapping[EntityType, RecordStore] = field(default_factory=dict)
    manual_matches: Mapping[str, str] = field(default_factory=dict)

    def store(self, entity_type: EntityType) -> RecordStore:
        try:
            return self.stores[entity_type]
        except KeyError:
            raise StoreUnavailable(f"no record store configured for {entity_type.value}") from None


def _identity(record: dict[str, Any], context: PrepareContext) -> dict[str, Any]:
    return record


@dataclass(frozen=True)
class EntityAdapter:
    entity_type: EntityType
    field_schema: tuple[FieldSpec, ...]
    natural_key: Callable[[Mapping[str, Any]], str]
    prepare: Callable[[dict[str, Any], PrepareContext], dict[str, Any]] = _identity
    unique_fields: tuple[str, ...] = ()
    # prepare から参照する他エンティティのストア
    requires: tuple[EntityType, ...] = ()

    @property
    def field_keys(self) -> list[str]:
        return [spec.key for spec in self.field_schema]


def split_full_name(record: dict[str, Any], full_key: str, first_key: str, last_key: str) -> None:
    """Fill first/last name from a "First Middle Last" value when they are blank."""
    full = record.pop(full_key, None)
    if not full:
        return
    parts = full.split()
    if not record.get(first_key) and parts:
        record[first_key] = parts[0]
    if not record.get(last_key) and len(parts) > 1:
        record[last_key] = " ".join(parts[1:])


def require(record: Mapping[str, Any], *keys: str, label: str = "record") -> None:
    missing = [k for k in keys if not record.get(k)]
    if missing:
        raise BusinessRuleViolation(f"{label} requires {', '.join(missing)}")
