from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from backoffice_import.db.record_store import RecordStore, StoreError
from backoffice_import.entities.base import EntityAdapter, PrepareContext
from backoffice_import.logging.error_log import ErrorLogBuffer
from backoffice_import.models.error_record import ErrorRecord
from backoffice_import.models.field_schema import index_schema
from backoffice_import.models.mapping import FieldMapping
from backoffice_import.models.options import ExecutionOptions
from backoffice_import.models.session import ImportSession
from backoffice_import.models.summary import (
    ImportSummary,
    RowAction,
    RowError,
    RowErrorReason,
    RowOutcome,
)
from backoffice_import.services.coercion import CoercionError, coerce_value, is_blank
from backoffice_import.services.dedupe import DedupeResolver, Found
from backoffice_import.services.errors import (
    BusinessRuleViolation,
    FieldValidationError,
    SessionNotMapped,
)
from backoffice_import.services.progress import ProgressTracker
from backoffice_import.services.summary import SummaryReporter

"""Row-by-row import execution.

Per row, in file order:

1. project cells through the mapping, fill blanks from ``defaults``, coerce
   (failure -> FieldValidation)
2. entity ``prepare`` hook and unique business identifiers
   (failure -> BusinessRuleViolation)
3. dedupe on the natural key, then create / update / skip
   (store failure -> StoreRejected)

A failing row is recorded and the next row is processed. Store calls are
atomic per row, so rows committed before a failure or a cancellation stay
committed.
"""

__all__ = [
    "ImportExecutor",
]

logger = logging.getLogger(__name__)


class ImportExecutor:
    def __init__(
        self,
        adapter: EntityAdapter,
        store: RecordStore,
        *,
        stores: Mapping[Any, RecordStore] | None = None,
        error_log: ErrorLogBuffer | None = None,
        show_progress: bool = True,
    ) -> None:
        self.adapter = adapter
        self.store = store
        self.context = PrepareContext(stores=dict(stores or {}))
        self.resolver = DedupeResolver(adapter.natural_key, store)
        self.error_log = error_log
        self.show_progress = show_progress
        self._schema = index_schema(adapter.field_schema)

    def run(
        self,
        session: ImportSession,
        options: ExecutionOptions,
        cancel_event: threading.Event | None = None,
    ) -> ImportSummary:
        """Process every row of a mapped session.

        Returns:
            ImportSummary; ``cancelled`` is set when ``cancel_event`` fired
            before the last row
        """
        if session.mapping is None:
            raise SessionNotMapped(session.session_id)
        mapping = session.mapping
        reporter = SummaryReporter(session.session_id, session.entity_type, session.total_rows)
        cancelled = False

        logger.info(
            "executing session=%s entity=%s rows=%d update_existing=%s",
            session.session_id, session.entity_type.value, session.total_rows, options.update_existing,
        )
        with ProgressTracker(session.total_rows, enabled=self.show_progress) as progress:
            for row_index, cells in enumerate(session.raw_rows, start=1):
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    logger.warning(
                        "import cancelled after %d of %d rows", reporter.processed, session.total_rows
                    )
                    break
                outcome = self.process_row(row_index, cells, mapping, options)
                reporter.add(outcome)
                if outcome.error is not None:
                    self._log_row_error(session, outcome.error)
                progress.advance(**reporter.counts())

        summary = reporter.build(cancelled=cancelled)
        self._flush_error_log()
        return summary

    def process_row(
        self,
        row_index: int,
        cells: tuple[str, ...],
        mapping: FieldMapping,
        options: ExecutionOptions,
    ) -> RowOutcome:
        try:
            record = self.project(cells, mapping, options.defaults)
            record = self.adapter.prepare(record, self.context_for(options))
            key = self.resolver.key_for(record)
            if key is None:
                raise FieldValidationError("natural key could not be derived from the row")
            resolution = self.resolver.resolve_key(key)
            existing = resolution.record_id if isinstance(resolution, Found) else None
            if existing is not None and not options.update_existing:
                return RowOutcome(row_index, RowAction.SKIPPED, record_id=existing)
            self._check_unique(record, existing)
            if existing is None:
                record_id = self.store.create(key, record)
                return RowOutcome(row_index, RowAction.CREATED, record_id=record_id)
            self.store.update(existing, record)
            return RowOutcome(row_index, RowAction.UPDATED, record_id=existing)
        except FieldValidationError as e:
            return self._failed(row_index, RowErrorReason.FIELD_VALIDATION, str(e))
        except BusinessRuleViolation as e:
            return self._failed(row_index, RowErrorReason.BUSINESS_RULE_VIOLATION, str(e))
        except StoreError as e:
            logger.warning("row %d rejected by store: %s", row_index, e)
            return self._failed(row_index, RowErrorReason.STORE_REJECTED, str(e))
        except Exception as e:  # 1 行の失敗でバッチ全体を止めない
            logger.exception("unexpected failure on row %d", row_index)
            return self._failed(row_index, RowErrorReason.STORE_REJECTED, f"{type(e).__name__}: {e}")

    def context_for(self, options: ExecutionOptions) -> PrepareContext:
        if not options.manual_matches:
            return self.context
        return replace(self.context, manual_matches=dict(options.manual_matches))

    def project(
        self,
        cells: tuple[str, ...],
        mapping: FieldMapping,
        defaults: Mapping[str, str],
    ) -> dict[str, Any]:
        """Mapped, defaulted and coerced field values of one row.

        Raises:
            FieldValidationError: listing every blank required or uncoercible field
        """
        raw: dict[str, str] = {}
        for binding in mapping.bindings:
            raw[binding.target_field] = binding.resolve(cells)
        for key, value in defaults.items():
            if is_blank(raw.get(key)):
                raw[key] = value

        record: dict[str, Any] = {}
        problems: list[str] = []
        for spec in self.adapter.field_schema:
            text = raw.get(spec.key)
            if is_blank(text):
                if spec.required:
                    problems.append(f"{spec.key} is required")
                continue
            try:
                record[spec.key] = coerce_value(spec, text)
            except CoercionError as e:
                problems.append(str(e))
        if problems:
            raise FieldValidationError("; ".join(problems))
        return record

    def _check_unique(self, record: Mapping[str, Any], existing: str | None) -> None:
        for field in self.adapter.unique_fields:
            value = record.get(field)
            if value is None:
                continue
            holder = self.store.find_by_fields({field: value})
            if holder is not None and holder != existing:
                raise BusinessRuleViolation(f"{field} {value!r} is already used by another record")

    @staticmethod
    def _failed(row_index: int, reason: RowErrorReason, message: str) -> RowOutcome:
        return RowOutcome(row_index, RowAction.FAILED, error=RowError(row_index, reason, message))

    def _log_row_error(self, session: ImportSession, error: RowError) -> None:
        if self.error_log is None:
            return
        self.error_log.append(
            ErrorRecord.create(
                session=session.session_id,
                entity=session.entity_type.value,
                row=error.row_index,
                error_type=error.reason.value,
                message=error.message,
            )
        )

    def _flush_error_log(self) -> None:
        if self.error_log is None:
            return
        try:
            path = self.error_log.flush()
        except OSError as e:
            logger.warning("could not write error log: %s", e)
            return
        if path is not None:
            logger.info("row errors written to %s", path)
