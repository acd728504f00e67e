from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from unittest.mock import MagicMock, patch

import psycopg2
from backoffice_import.cli import main as cli_main
from backoffice_import.entities.registry import in_memory_registry

HEADERS = "Title,Contact Email,Contact First Name,Contact Last Name,Probability"


def _write_leads(workdir: Path, rows: list[str]) -> Path:
    path = workdir / "data" / "leads.csv"
    path.write_text("\n".join([HEADERS, *rows]) + "\n", encoding="utf-8")
    return path


def _write_mapping(workdir: Path, body: str) -> Path:
    path = workdir / "config" / "lead_mapping.yml"
    path.write_text(body, encoding="utf-8")
    return path


GOOD_ROWS = [
    "Deal A,a@example.com,Ann,Lee,20",
    "Deal B,b@example.com,Ben,Ito,40",
    "Deal C,c@example.com,Cy,Ng,60",
]

MAPPING_YAML = """mapping:
  title: 0
  contact_email: Contact Email
  contact_first_name: 2
  contact_last_name: 3
  probability: 4
defaults:
  status: QUALIFIED
"""


def test_inspect_prints_headers_and_suggestion(temp_workdir: Path, capsys):
    path = _write_leads(temp_workdir, GOOD_ROWS)
    code = cli_main(["inspect", str(path), "--entity", "lead"])
    out = capsys.readouterr().out
    assert code == 0
    assert "FILE: leads.csv rows=3" in out
    assert "[1] Contact Email" in out
    assert "contact_email <- [1] Contact Email" in out
    assert "UNMAPPED REQUIRED" not in out


def test_run_success(temp_workdir: Path, capsys):
    path = _write_leads(temp_workdir, GOOD_ROWS)
    mapping = _write_mapping(temp_workdir, MAPPING_YAML)
    code = cli_main(["run", str(path), "--entity", "lead", "--mapping", str(mapping)])
    out = capsys.readouterr().out
    assert code == 0
    assert "SUMMARY entity=LEAD rows=3/3 created=3 updated=0 skipped=0 failed=0" in out
    assert "mode=mock" in out


def test_run_with_suggested_mapping(temp_workdir: Path, capsys):
    path = _write_leads(temp_workdir, GOOD_ROWS)
    code = cli_main(["run", str(path), "--entity", "lead"])
    out = capsys.readouterr().out
    assert code == 0
    assert "created=3" in out


def test_run_partial_failure(temp_workdir: Path, capsys):
    path = _write_leads(temp_workdir, [*GOOD_ROWS, "Deal D,not-an-email,Di,Ox,10"])
    mapping = _write_mapping(temp_workdir, MAPPING_YAML)
    code = cli_main(["run", str(path), "--entity", "lead", "--mapping", str(mapping)])
    out = capsys.readouterr().out
    assert code == 2
    assert "ERROR row 4 FieldValidation" in out
    assert "created=3" in out and "failed=1" in out
    assert list((temp_workdir / "logs").glob("errors-*.log"))


def test_run_invalid_mapping(temp_workdir: Path, capsys):
    path = _write_leads(temp_workdir, GOOD_ROWS)
    mapping = _write_mapping(temp_workdir, "title: 0\n")
    code = cli_main(["run", str(path), "--entity", "lead", "--mapping", str(mapping)])
    out = capsys.readouterr().out
    assert code == 1
    assert "ERROR mapping:" in out
    assert "contact_email: required field is not mapped" in out


def test_default_flag_overrides_mapping_file(temp_workdir: Path, capsys):
    path = _write_leads(temp_workdir, GOOD_ROWS)
    mapping = _write_mapping(temp_workdir, MAPPING_YAML)
    code = cli_main([
        "run", str(path), "--entity", "lead", "--mapping", str(mapping), "--default", "status=bogus",
    ])
    assert code == 1
    assert "status" in capsys.readouterr().out


def test_malformed_default_flag(temp_workdir: Path, capsys):
    path = _write_leads(temp_workdir, GOOD_ROWS)
    code = cli_main(["run", str(path), "--entity", "lead", "--default", "novalue"])
    assert code == 1
    assert "KEY=VALUE" in capsys.readouterr().out


def test_unknown_entity(temp_workdir: Path, capsys):
    path = _write_leads(temp_workdir, GOOD_ROWS)
    assert cli_main(["inspect", str(path), "--entity", "invoice"]) == 1
    assert "unknown entity type" in capsys.readouterr().out


def test_missing_file(temp_workdir: Path, capsys):
    assert cli_main(["run", "data/none.csv", "--entity", "lead"]) == 1
    assert "file not found" in capsys.readouterr().out


def test_unsupported_file(temp_workdir: Path, capsys):
    path = temp_workdir / "data" / "leads.pdf"
    path.write_bytes(b"%PDF-1.4")
    assert cli_main(["inspect", str(path), "--entity", "lead"]) == 1
    assert "UnsupportedFormat" in capsys.readouterr().out


def test_invalid_config(temp_workdir: Path, capsys):
    (temp_workdir / "config" / "import.yml").write_text("preview_rows: 99\n", encoding="utf-8")
    path = _write_leads(temp_workdir, GOOD_ROWS)
    assert cli_main(["inspect", str(path), "--entity", "lead"]) == 1
    assert "ERROR config:" in capsys.readouterr().out


def test_explicit_missing_config(temp_workdir: Path, capsys):
    path = _write_leads(temp_workdir, GOOD_ROWS)
    assert cli_main(["--config", "config/other.yml", "inspect", str(path), "--entity", "lead"]) == 1


def test_db_connection_failure_falls_back_to_mock(temp_workdir: Path, capsys, monkeypatch):
    monkeypatch.delenv("DISABLE_DB_CONNECT", raising=False)
    path = _write_leads(temp_workdir, GOOD_ROWS)

    def refuse(cfg):
        raise psycopg2.OperationalError("connection refused")

    with patch("backoffice_import.cli.__main__._db_connection", refuse):
        code = cli_main(["run", str(path), "--entity", "lead"])
    out = capsys.readouterr().out
    assert code == 0
    assert "fallback to mock mode" in out


def test_live_mode_binds_postgres_stores(temp_workdir: Path, capsys, monkeypatch):
    monkeypatch.delenv("DISABLE_DB_CONNECT", raising=False)
    path = _write_leads(temp_workdir, GOOD_ROWS)
    conn = MagicMock()

    @contextmanager
    def fake_connection(cfg):
        yield conn

    registry = in_memory_registry()
    with patch("backoffice_import.cli.__main__._db_connection", fake_connection), \
         patch("backoffice_import.cli.__main__.postgres_registry", return_value=registry) as pg:
        code = cli_main(["run", str(path), "--entity", "lead"])
    assert code == 0
    assert pg.call_args[0][0] is conn
    assert "mode=live" in capsys.readouterr().out


def test_dry_run_never_connects(temp_workdir: Path, monkeypatch):
    monkeypatch.delenv("DISABLE_DB_CONNECT", raising=False)
    path = _write_leads(temp_workdir, GOOD_ROWS)
    with patch("backoffice_import.cli.__main__._db_connection") as conn:
        assert cli_main(["run", str(path), "--entity", "lead", "--dry-run"]) == 0
    conn.assert_not_called()


def test_check_in_run_warns_about_unmatched_employees(temp_workdir: Path, capsys):
    path = temp_workdir / "data" / "punches.csv"
    path.write_text(
        "First Name,Last Name,Card Number,Date/Time,Status\n"
        "Ann,Lee,C-1,2024-03-01 09:00,Division 5-1 In\n",
        encoding="utf-8",
    )
    code = cli_main(["run", str(path), "--entity", "check-in-out", "--match", "Ann|Lee|C-1=emp-404"])
    out = capsys.readouterr().out
    # モックの従業員ストアは空なので手動マッチ先も存在しない
    assert code == 2
    assert "unmatched employees (use --match KEY=EMPLOYEE_ID): Ann|Lee|C-1" in out
    assert "failed=1" in out


def test_malformed_match_flag(temp_workdir: Path, capsys):
    path = _write_leads(temp_workdir, GOOD_ROWS)
    code = cli_main(["run", str(path), "--entity", "lead", "--match", "Ann|Lee"])
    assert code == 1
    assert "--match expects KEY=VALUE" in capsys.readouterr().out
