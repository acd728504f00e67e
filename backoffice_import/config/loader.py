from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from backoffice_import.models.session import EntityType

"""YAML config loading and validation.

Responsibilities:
- Load YAML (default ``config/import.yml``); a missing file yields defaults
  only when ``required=False``
- Validate against the bundled ``config_schema.json``
- Apply defaults (session TTL 60 min, preview 5 rows, upload cap 10 MB)
"""

__all__ = [
    "ConfigError",
    "DatabaseConfig",
    "EntityStoreConfig",
    "ImportConfig",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "load_config",
    "parse_config",
]

DEFAULT_CONFIG_PATH = Path("config/import.yml")
SCHEMA_PATH = Path(__file__).with_name("config_schema.json")


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class EntityStoreConfig:
    table: str
    key_column: str = "import_key"
    id_column: str = "id"


@dataclass(frozen=True)
class ImportConfig:
    session_ttl_minutes: int = 60
    preview_rows: int = 5
    max_upload_mb: float = 10
    error_log_dir: str | None = "./logs"
    suggest_min_confidence: float = 0.3
    entities: dict[EntityType, EntityStoreConfig] = field(default_factory=dict)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(minutes=self.session_ttl_minutes)

    @property
    def max_upload_bytes(self) -> int:
        return int(self.max_upload_mb * 1024 * 1024)


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the bundled JSON schema.

    Raises:
        ConfigError: schema file missing or unreadable, or the data violates it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def parse_config(data: dict[str, Any]) -> ImportConfig:
    _validate_config_schema(data)

    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    entities = {
        EntityType[name]: EntityStoreConfig(
            table=raw["table"],
            key_column=raw.get("key_column", "import_key"),
            id_column=raw.get("id_column", "id"),
        )
        for name, raw in (data.get("entities") or {}).items()
    }
    defaults = ImportConfig()
    return ImportConfig(
        session_ttl_minutes=data.get("session_ttl_minutes", defaults.session_ttl_minutes),
        preview_rows=data.get("preview_rows", defaults.preview_rows),
        max_upload_mb=data.get("max_upload_mb", defaults.max_upload_mb),
        error_log_dir=data.get("error_log_dir", defaults.error_log_dir),
        suggest_min_confidence=data.get("suggest_min_confidence", defaults.suggest_min_confidence),
        entities=entities,
        database=db,
    )


def load_config(path: Path = DEFAULT_CONFIG_PATH, *, required: bool = True) -> ImportConfig:
    if not path.exists():
        if required:
            raise ConfigError(f"config file not found: {path}")
        return ImportConfig()
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config validation failed: top level must be a mapping")
    return parse_config(data)
