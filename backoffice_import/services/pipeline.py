from __future__ import annotations

import logging
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from backoffice_import.config.loader import ImportConfig
from backoffice_import.entities.registry import EntityRegistry
from backoffice_import.logging.error_log import ErrorLogBuffer
from backoffice_import.models.options import ExecutionOptions
from backoffice_import.models.session import EntityType, ImportSession, SessionStatus
from backoffice_import.models.summary import ImportSummary
from backoffice_import.entities.check_in_outs import match_key, resolve_employee
from backoffice_import.services.errors import (
    FieldValidationError,
    FileTooLarge,
    PipelineError,
    SessionNotMapped,
    StoreUnavailable,
)
from backoffice_import.services.executor import ImportExecutor
from backoffice_import.services.mapper import (
    DEFAULT_MIN_CONFIDENCE,
    build_mapping,
    suggest_mapping,
    validate_defaults,
)
from backoffice_import.services.session_store import DEFAULT_TTL, InMemorySessionStore
from backoffice_import.spreadsheet.reader import parse_upload
from backoffice_import.spreadsheet.sampler import MIN_PREVIEW_ROWS, sample

"""Three-phase import protocol: Upload -> SaveMapping -> Execute.

``ImportPipeline`` is the boundary every transport (CLI, HTTP handler, job
runner) calls. It owns the session store and hands a session to exactly
one executor at a time.
"""

__all__ = [
    "UploadResult",
    "MappingResult",
    "ImportPipeline",
]

logger = logging.getLogger(__name__)

CANCELLED = "cancelled"


@dataclass(frozen=True)
class UploadResult:
    session_id: str
    headers: tuple[str, ...]
    preview_rows: tuple[tuple[str, ...], ...]
    total_rows: int
    available_fields: tuple[dict[str, Any], ...] = ()
    suggested_mapping: Mapping[str, int] | None = None


@dataclass(frozen=True)
class MappingResult:
    session_id: str
    status: SessionStatus


class ImportPipeline:
    def __init__(
        self,
        registry: EntityRegistry,
        session_store: InMemorySessionStore | None = None,
        *,
        preview_rows: int = MIN_PREVIEW_ROWS,
        max_upload_bytes: int | None = 10 * 1024 * 1024,
        error_log_dir: Path | str | None = None,
        suggest_min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        show_progress: bool = False,
    ) -> None:
        self.registry = registry
        self.sessions = session_store if session_store is not None else InMemorySessionStore(DEFAULT_TTL)
        self.preview_rows = preview_rows
        self.max_upload_bytes = max_upload_bytes
        self.error_log_dir = error_log_dir
        self.suggest_min_confidence = suggest_min_confidence
        self.show_progress = show_progress

    @classmethod
    def from_config(cls, cfg: ImportConfig, registry: EntityRegistry, **kwargs: Any) -> ImportPipeline:
        return cls(
            registry,
            InMemorySessionStore(cfg.session_ttl),
            preview_rows=cfg.preview_rows,
            max_upload_bytes=cfg.max_upload_bytes,
            error_log_dir=cfg.error_log_dir,
            suggest_min_confidence=cfg.suggest_min_confidence,
            **kwargs,
        )

    def upload(
        self,
        entity_type: EntityType | str,
        data: bytes,
        content_type: str,
        file_name: str = "",
    ) -> UploadResult:
        """Parse a file and open an UPLOADED session.

        Raises:
            UnknownEntityType, FileTooLarge, UnsupportedFormat, EmptyFile
        """
        adapter = self.registry.adapter(entity_type)
        if self.max_upload_bytes is not None and len(data) > self.max_upload_bytes:
            raise FileTooLarge(
                f"upload is {len(data)} bytes; limit is {self.max_upload_bytes} bytes"
            )
        table = parse_upload(data, content_type)
        session = self.sessions.create(adapter.entity_type, table.headers, table.rows, file_name=file_name)
        preview = sample(table.headers, table.rows, self.preview_rows)
        suggestion = suggest_mapping(table.headers, adapter.field_schema, self.suggest_min_confidence)
        logger.info(
            "upload session=%s entity=%s file=%s rows=%d",
            session.session_id, adapter.entity_type.value, file_name or "-", session.total_rows,
        )
        return UploadResult(
            session_id=session.session_id,
            headers=preview.headers,
            preview_rows=preview.preview_rows,
            total_rows=preview.total_rows,
            available_fields=tuple(spec.to_dict() for spec in adapter.field_schema),
            suggested_mapping=suggestion,
        )

    def save_mapping(
        self,
        session_id: str,
        mapping: Mapping[str, Any] | Sequence[Mapping[str, Any]],
    ) -> MappingResult:
        """Validate and attach a field mapping (UPLOADED/MAPPED -> MAPPED).

        Raises:
            SessionNotFound, SessionExpired, SessionBusy, InvalidMapping
        """
        session = self.sessions.get(session_id)
        adapter = self.registry.adapter(session.entity_type)
        field_mapping = build_mapping(mapping, session.raw_headers, adapter.field_schema)
        updated = self.sessions.attach_mapping(session_id, field_mapping)
        logger.info("mapping saved session=%s fields=%s", session_id, ",".join(field_mapping.target_fields))
        return MappingResult(session_id=updated.session_id, status=updated.status)

    def execute(
        self,
        session_id: str,
        options: ExecutionOptions | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ImportSummary:
        """Run the import for a MAPPED session.

        Raises:
            SessionNotFound, SessionExpired, SessionNotMapped, SessionBusy,
            InvalidMapping (bad defaults), StoreUnavailable
        """
        options = options or ExecutionOptions()
        session = self.sessions.get(session_id)
        adapter = self.registry.adapter(session.entity_type)
        defaults = validate_defaults(options.defaults, adapter.field_schema)
        options = replace(options, defaults=defaults)

        session = self.sessions.begin_execution(session_id)
        store = self.registry.store(adapter.entity_type)
        missing = [t.value for t in adapter.requires if self.registry.store(t) is None]
        if store is None or missing:
            names = [adapter.entity_type.value] if store is None else missing
            reason = f"no record store available for {', '.join(names)}"
            self.sessions.finish(session_id, SessionStatus.FAILED, failure_reason=reason)
            logger.error("session=%s %s", session_id, reason)
            raise StoreUnavailable(reason)

        error_log = ErrorLogBuffer(self.error_log_dir) if self.error_log_dir else None
        executor = ImportExecutor(
            adapter,
            store,
            stores=self.registry.stores,
            error_log=error_log,
            show_progress=self.show_progress,
        )
        try:
            summary = executor.run(session, options, cancel_event)
        except BaseException as e:
            self.sessions.finish(session_id, SessionStatus.FAILED, failure_reason=str(e) or type(e).__name__)
            raise

        if summary.cancelled:
            self.sessions.finish(session_id, SessionStatus.FAILED, summary, failure_reason=CANCELLED)
        else:
            self.sessions.finish(session_id, SessionStatus.COMPLETED, summary)
        logger.info(
            "session=%s finished created=%d updated=%d skipped=%d failed=%d cancelled=%s",
            session_id, summary.created, summary.updated, summary.skipped, summary.failed, summary.cancelled,
        )
        return summary

    def unmatched_employees(
        self,
        session_id: str,
        manual_matches: Mapping[str, str] | None = None,
    ) -> list[str]:
        """Match keys (``First|Last|Card``) of check-in/out rows with no employee.

        Read-only validation run before Execute so the operator can supply
        ``ExecutionOptions.manual_matches``. Rows that fail field validation
        are ignored here; Execute reports them.

        Raises:
            SessionNotFound, SessionExpired, SessionNotMapped, StoreUnavailable,
            PipelineError (not a check-in/out session)
        """
        session = self.sessions.get(session_id)
        if session.entity_type is not EntityType.CHECK_IN_OUT:
            raise PipelineError(f"session {session_id} is a {session.entity_type.value} import, not CHECK_IN_OUT")
        if session.mapping is None:
            raise SessionNotMapped(session_id)
        adapter = self.registry.adapter(session.entity_type)
        stores = self.registry.stores
        if EntityType.EMPLOYEE not in stores:
            raise StoreUnavailable("no record store available for EMPLOYEE")

        executor = ImportExecutor(adapter, stores.get(adapter.entity_type), stores=stores, show_progress=False)
        context = executor.context_for(ExecutionOptions(manual_matches=dict(manual_matches or {})))
        seen: set[str] = set()
        unmatched: set[str] = set()
        for cells in session.raw_rows:
            try:
                record = executor.project(cells, session.mapping, {})
            except FieldValidationError:
                continue
            key = match_key(record)
            if key in seen:
                continue
            seen.add(key)
            if resolve_employee(record, context) is None:
                unmatched.add(key)
        logger.info("session=%s unmatched employees=%d", session_id, len(unmatched))
        return sorted(unmatched)

    def get_session(self, session_id: str) -> ImportSession:
        return self.sessions.get(session_id)

    def purge_expired(self) -> int:
        return self.sessions.purge_expired()
