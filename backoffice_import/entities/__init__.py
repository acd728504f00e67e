"""Importable entity definitions (field schema, natural key, row invariants)."""

from .base import EntityAdapter, PrepareContext
from .registry import DEFAULT_ADAPTERS, EntityRegistry, in_memory_registry, postgres_registry

__all__ = [
    "EntityAdapter",
    "PrepareContext",
    "DEFAULT_ADAPTERS",
    "EntityRegistry",
    "in_memory_registry",
    "postgres_registry",
]
