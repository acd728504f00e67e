# Shared pytest fixtures
from __future__ import annotations

import io
import os
import tempfile
from collections.abc import Sequence
from pathlib import Path

import pandas as pd
import pytest

from backoffice_import.entities.registry import in_memory_registry
from backoffice_import.logging.init import reset_logging
from backoffice_import.services.pipeline import ImportPipeline
from backoffice_import.services.session_store import InMemorySessionStore

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

LEAD_HEADERS = ["Deal name", "Contact Email", "First name", "Last name", "Status", "Probability"]


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """session_ttl_minutes: 30
preview_rows: 5
max_upload_mb: 1
error_log_dir: ./logs
entities:
  LEAD:
    table: crm.leads
  EMPLOYEE:
    table: hr.employees
    key_column: email_key
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


def _csv_bytes(headers: Sequence[str], rows: Sequence[Sequence[object]]) -> bytes:
    lines = [",".join(headers)]
    lines += [",".join(str(c) for c in row) for row in rows]
    return ("\n".join(lines) + "\n").encode("utf-8")


def _xlsx_bytes(headers: Sequence[str], rows: Sequence[Sequence[object]]) -> bytes:
    buf = io.BytesIO()
    df = pd.DataFrame(list(rows), columns=list(headers))
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name="Sheet1", index=False)
    return buf.getvalue()


def _lead_rows(count: int, start: int = 1) -> list[list[str]]:
    return [
        [f"Deal {i}", f"contact{i}@example.com", f"First{i}", f"Last{i}", "", str(10 * (i % 10))]
        for i in range(start, start + count)
    ]


LEAD_MAPPING = {
    "title": 0,
    "contact_email": 1,
    "contact_first_name": 2,
    "contact_last_name": 3,
    "status": 4,
    "probability": 5,
}


@pytest.fixture()
def registry():
    return in_memory_registry()


@pytest.fixture()
def session_store():
    return InMemorySessionStore()


@pytest.fixture()
def pipeline(registry, session_store, tmp_path: Path) -> ImportPipeline:
    return ImportPipeline(registry, session_store, error_log_dir=tmp_path / "logs")


@pytest.fixture()
def no_db_env(monkeypatch):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    for key in ("DATABASE_URL", "PGDSN"):
        monkeypatch.delenv(key, raising=False)
    yield os.environ


@pytest.fixture()
def make_csv():
    return _csv_bytes


@pytest.fixture()
def make_xlsx():
    return _xlsx_bytes


@pytest.fixture()
def lead_rows():
    return _lead_rows


@pytest.fixture()
def lead_mapping() -> dict[str, int]:
    return dict(LEAD_MAPPING)


@pytest.fixture()
def lead_headers() -> list[str]:
    return list(LEAD_HEADERS)
