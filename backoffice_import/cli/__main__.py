from __future__ import annotations

import argparse
import os
import signal
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
import yaml
from dotenv import load_dotenv

from backoffice_import.config.loader import DEFAULT_CONFIG_PATH, ConfigError, ImportConfig, load_config
from backoffice_import.entities.registry import EntityRegistry, in_memory_registry, postgres_registry
from backoffice_import.logging.init import log_summary, setup_logging
from backoffice_import.models.options import ExecutionOptions
from backoffice_import.models.session import EntityType
from backoffice_import.services.errors import InvalidMapping, PipelineError
from backoffice_import.services.pipeline import ImportPipeline
from backoffice_import.services.summary import render_summary_line

"""CLI entrypoint.

    backoffice-import inspect FILE --entity lead
    backoffice-import run FILE --entity lead [--mapping map.yml] [--default status=NEW] [--dry-run]
    backoffice-import run FILE --entity check-in-out [--match "Ann|Lee=42"]

``run`` drives the same Upload -> SaveMapping -> Execute sequence an HTTP
handler would. Without ``--mapping`` the suggested header mapping is used.

Mapping file (YAML)::

    mapping:
      title: Deal name
      contact_email: 3
      status: {literal: NEW}
    defaults:
      owner_email: sales@example.com
    update_existing: true
    manual_matches:          # check-in/out only
      "Ann|Lee|C-7": "42"
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

CONTENT_TYPES = {
    ".csv": "text/csv",
    ".txt": "text/plain",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".xls": "application/vnd.ms-excel",
}


@contextmanager
def _db_connection(cfg: ImportConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    """Provide a psycopg2 connection.

    接続情報の解決優先順位 (.env を最優先):
        1. `.env` で読み込まれた環境変数 (main() 冒頭で上書き読み込み済み)
           - DATABASE_URL / PGDSN があれば DSN 全体をそのまま使用
           - 個別 PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
        2. config の database セクション (不足分のフォールバック)
    """
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if not dsn:
        host = os.getenv("PGHOST", db_cfg.host or "localhost")
        port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
        user = os.getenv("PGUSER", db_cfg.user or "postgres")
        password = os.getenv("PGPASSWORD", db_cfg.password or "")
        database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
        dsn = f"host={host} port={port} user={user} dbname={database}"
        if password:
            dsn += f" password={password}"

    conn = psycopg2.connect(dsn)
    try:
        conn.autocommit = False  # 行ごとに store 側で commit / rollback
        yield conn
    finally:
        conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv; override=True で既存の環境変数より優先。"""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="backoffice-import", description="Bulk spreadsheet importer")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--config", type=Path, default=None, help=f"Config YAML (default: {DEFAULT_CONFIG_PATH})")
    sub = p.add_subparsers(dest="command", required=True)

    inspect = sub.add_parser("inspect", help="Print headers, preview rows and the suggested mapping")
    inspect.add_argument("file", type=Path)
    inspect.add_argument("--entity", required=True, help="lead | contact | employee | candidate | check-in-out")

    run = sub.add_parser("run", help="Import a file")
    run.add_argument("file", type=Path)
    run.add_argument("--entity", required=True, help="lead | contact | employee | candidate | check-in-out")
    run.add_argument("--mapping", type=Path, default=None, help="Mapping YAML; suggested mapping when omitted")
    run.add_argument("--default", action="append", default=[], metavar="FIELD=VALUE",
                     help="Fallback value for blank cells (repeatable)")
    run.add_argument("--match", action="append", default=[], metavar="KEY=EMPLOYEE_ID",
                     help="Check-in/out: employee id for an unmatched First|Last[|Card] key (repeatable)")
    run.add_argument("--no-update-existing", action="store_true",
                     help="Skip rows whose natural key already exists instead of updating")
    run.add_argument("--dry-run", action="store_true", help="Use in-memory stores (no database)")
    return p.parse_args(argv)


def _content_type(path: Path) -> str:
    return CONTENT_TYPES.get(path.suffix.lower(), "application/octet-stream")


def _parse_pairs(pairs: list[str], flag: str) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"{flag} expects KEY=VALUE, got {pair!r}")
        parsed[key.strip()] = value
    return parsed


def _load_mapping_file(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"invalid mapping yaml: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("mapping file must contain a mapping")
    if "mapping" not in data:
        # 省略形: ファイル全体がマッピング
        data = {"mapping": data}
    return data


def _upload(pipeline: ImportPipeline, args: argparse.Namespace):
    data = args.file.read_bytes()
    return pipeline.upload(args.entity, data, _content_type(args.file), file_name=args.file.name)


def _inspect(cfg: ImportConfig, args: argparse.Namespace) -> int:
    pipeline = ImportPipeline.from_config(cfg, in_memory_registry())
    result = _upload(pipeline, args)
    print(f"FILE: {args.file.name} rows={result.total_rows}")
    for index, header in enumerate(result.headers):
        print(f"  [{index}] {header}")
    print("PREVIEW:")
    for row in result.preview_rows:
        print("  " + " | ".join(row))
    print("SUGGESTED MAPPING:")
    for field, column in (result.suggested_mapping or {}).items():
        print(f"  {field} <- [{column}] {result.headers[column]}")
    required = [f["key"] for f in result.available_fields if f["required"]]
    unmapped = [key for key in required if key not in (result.suggested_mapping or {})]
    if unmapped:
        print(f"UNMAPPED REQUIRED: {', '.join(unmapped)}")
    return EXIT_SUCCESS_ALL


def _run(cfg: ImportConfig, registry: EntityRegistry, args: argparse.Namespace, logger) -> int:
    pipeline = ImportPipeline.from_config(cfg, registry, show_progress=True)
    result = _upload(pipeline, args)

    mapping_doc: dict[str, Any] = {}
    if args.mapping is not None:
        mapping_doc = _load_mapping_file(args.mapping)
        mapping = mapping_doc["mapping"]
    else:
        mapping = dict(result.suggested_mapping or {})
        logger.info("no mapping file given; using suggested mapping: %s", mapping)

    options = ExecutionOptions.from_dict({
        "update_existing": bool(mapping_doc.get("update_existing", True)) and not args.no_update_existing,
        "defaults": {**(mapping_doc.get("defaults") or {}), **_parse_pairs(args.default, "--default")},
        "manual_matches": {**(mapping_doc.get("manual_matches") or {}), **_parse_pairs(args.match, "--match")},
    })

    pipeline.save_mapping(result.session_id, mapping)

    if EntityType.parse(args.entity) is EntityType.CHECK_IN_OUT:
        unmatched = pipeline.unmatched_employees(result.session_id, options.manual_matches)
        if unmatched:
            logger.warning("unmatched employees (use --match KEY=EMPLOYEE_ID): %s", ", ".join(unmatched))

    cancel_event = threading.Event()

    def _on_sigint(signum, frame):
        logger.warning("interrupt received; stopping after the current row")
        cancel_event.set()

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        summary = pipeline.execute(
            result.session_id,
            options,
            cancel_event=cancel_event,
        )
    finally:
        signal.signal(signal.SIGINT, previous)

    for error in summary.errors:
        logger.error("row %d %s: %s", error.row_index, error.reason.value, error.message)

    summary_line = render_summary_line(summary)
    log_summary(summary_line[len("SUMMARY "):])

    if summary.errors or summary.cancelled:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    # None のときのみシステム引数を読む ([] を渡したテストで pytest の引数が混入しないように)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    if args.debug:
        logger.debug("debug mode enabled")

    # .env を最優先で読み込む (DB 接続パラメータ優先順位保証)
    _load_env_file(Path(".env"), override=True)
    try:
        if args.config is not None:
            cfg = load_config(args.config)
        else:
            cfg = load_config(DEFAULT_CONFIG_PATH, required=False)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if not args.file.exists():
        logger.error(f"file not found: {args.file}")
        return EXIT_FATAL

    try:
        EntityType.parse(args.entity)
    except ValueError as e:
        logger.error(str(e))
        return EXIT_FATAL

    try:
        if args.command == "inspect":
            return _inspect(cfg, args)

        # DB 接続制御: テスト等で完全に無効化したい場合 DISABLE_DB_CONNECT=1
        if args.dry_run or os.getenv("DISABLE_DB_CONNECT") == "1":
            logger.info("mode=mock (in-memory stores)")
            return _run(cfg, in_memory_registry(), args, logger)
        try:
            with _db_connection(cfg) as conn:
                logger.info("mode=live")
                return _run(cfg, postgres_registry(conn, cfg.entities), args, logger)
        except psycopg2.OperationalError as db_e:
            logger.info(f"DB connection failed -> fallback to mock mode: {db_e}")
            return _run(cfg, in_memory_registry(), args, logger)
    except InvalidMapping as e:
        logger.error(f"mapping: {e}")
        for key, problem in e.problems.items():
            logger.error(f"  {key}: {problem}")
        return EXIT_FATAL
    except PipelineError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return EXIT_FATAL
    except (OSError, ValueError) as e:
        logger.error(str(e))
        return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
