from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from backoffice_import.config.loader import (
    SCHEMA_PATH,
    ConfigError,
    EntityStoreConfig,
    ImportConfig,
    load_config,
    parse_config,
)
from backoffice_import.models.session import EntityType


def test_load_config_success(write_config: Path):
    cfg = load_config(write_config)
    assert cfg.session_ttl == timedelta(minutes=30)
    assert cfg.max_upload_bytes == 1024 * 1024
    assert cfg.entities[EntityType.LEAD] == EntityStoreConfig(table="crm.leads")
    assert cfg.entities[EntityType.EMPLOYEE].key_column == "email_key"
    assert cfg.database.user == "appuser"


def test_missing_file(temp_workdir: Path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(temp_workdir / "config" / "nope.yml")


def test_missing_optional_file_gives_defaults(temp_workdir: Path):
    cfg = load_config(temp_workdir / "config" / "nope.yml", required=False)
    assert cfg == ImportConfig()
    assert cfg.preview_rows == 5
    assert cfg.session_ttl_minutes == 60


def test_invalid_yaml(temp_workdir: Path):
    path = temp_workdir / "config" / "import.yml"
    path.write_text("entities: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid yaml"):
        load_config(path)


@pytest.mark.parametrize("data", [
    {"preview_rows": 50},
    {"session_ttl_minutes": 0},
    {"unknown_key": 1},
    {"entities": {"INVOICE": {"table": "x"}}},
    {"entities": {"LEAD": {}}},
    {"database": {"port": "5432"}},
])
def test_schema_violations(data):
    with pytest.raises(ConfigError, match="config validation failed"):
        parse_config(data)


def test_schema_file_ships_with_package():
    assert SCHEMA_PATH.exists()


def test_empty_file_uses_defaults(temp_workdir: Path):
    path = temp_workdir / "config" / "import.yml"
    path.write_text("", encoding="utf-8")
    assert load_config(path) == ImportConfig()


def test_null_error_log_dir_disables_error_log():
    assert parse_config({"error_log_dir": None}).error_log_dir is None
