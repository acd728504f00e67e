from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from backoffice_import.db.postgres_store import PostgresRecordStore
from backoffice_import.db.record_store import InMemoryRecordStore, RecordStore
from backoffice_import.models.session import EntityType
from backoffice_import.services.errors import UnknownEntityType

from .base import EntityAdapter
from .candidates import CANDIDATES
from .check_in_outs import CHECK_IN_OUTS
from .contacts import CONTACTS
from .employees import EMPLOYEES
from .leads import LEADS

__all__ = [
    "DEFAULT_ADAPTERS",
    "EntityRegistry",
    "in_memory_registry",
    "postgres_registry",
]

logger = logging.getLogger(__name__)

DEFAULT_ADAPTERS: tuple[EntityAdapter, ...] = (LEADS, CONTACTS, EMPLOYEES, CANDIDATES, CHECK_IN_OUTS)


class EntityRegistry:
    """Entity adapters plus the record store bound to each entity type."""

    def __init__(
        self,
        adapters: Iterable[EntityAdapter] = DEFAULT_ADAPTERS,
        stores: Mapping[EntityType, RecordStore] | None = None,
    ) -> None:
        self._adapters: dict[EntityType, EntityAdapter] = {}
        self._stores: dict[EntityType, RecordStore] = dict(stores or {})
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: EntityAdapter, store: RecordStore | None = None) -> None:
        self._adapters[adapter.entity_type] = adapter
        if store is not None:
            self._stores[adapter.entity_type] = store

    def bind_store(self, entity_type: EntityType, store: RecordStore) -> None:
        self._stores[entity_type] = store

    def adapter(self, entity_type: EntityType | str) -> EntityAdapter:
        try:
            key = EntityType.parse(entity_type)
            return self._adapters[key]
        except (ValueError, KeyError):
            raise UnknownEntityType(f"no importer registered for {entity_type!r}") from None

    def store(self, entity_type: EntityType) -> RecordStore | None:
        return self._stores.get(entity_type)

    @property
    def stores(self) -> dict[EntityType, RecordStore]:
        return dict(self._stores)

    def types(self) -> list[EntityType]:
        return list(self._adapters)


def in_memory_registry(adapters: Iterable[EntityAdapter] = DEFAULT_ADAPTERS) -> EntityRegistry:
    adapters = tuple(adapters)
    stores = {
        a.entity_type: InMemoryRecordStore(a.entity_type.value.lower(), unique_fields=a.unique_fields)
        for a in adapters
    }
    return EntityRegistry(adapters, stores)


def postgres_registry(
    connection: Any,
    entity_tables: Mapping[EntityType, Any],
    adapters: Iterable[EntityAdapter] = DEFAULT_ADAPTERS,
) -> EntityRegistry:
    """Bind every configured entity to a table on ``connection``.

    ``entity_tables`` values are ``EntityStoreConfig`` (table/key_column/id_column).
    Entities without a table keep no store; executing them fails with StoreUnavailable.
    """
    registry = EntityRegistry(adapters)
    for entity_type, cfg in entity_tables.items():
        registry.bind_store(
            entity_type,
            PostgresRecordStore(
                connection, cfg.table, key_column=cfg.key_column, id_column=cfg.id_column
            ),
        )
        logger.debug("bound %s -> %s", entity_type.value, cfg.table)
    return registry
