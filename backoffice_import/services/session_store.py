from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from backoffice_import.models.mapping import FieldMapping
from backoffice_import.models.session import EntityType, ImportSession, SessionStatus
from backoffice_import.models.summary import ImportSummary
from backoffice_import.services.errors import (
    SessionBusy,
    SessionConsumed,
    SessionExpired,
    SessionNotFound,
    SessionNotMapped,
)

"""In-process session storage with TTL and the execution guard.

All transitions go through one lock so that two Execute calls racing on the
same session see exactly one winner (the other gets ``SessionBusy``).
"""

__all__ = [
    "DEFAULT_TTL",
    "InMemorySessionStore",
]

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(minutes=60)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InMemorySessionStore:
    def __init__(
        self,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._sessions: dict[str, ImportSession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def create(
        self,
        entity_type: EntityType,
        headers: tuple[str, ...],
        rows: tuple[tuple[str, ...], ...],
        file_name: str = "",
    ) -> ImportSession:
        now = self._clock()
        session = ImportSession(
            session_id=uuid.uuid4().hex,
            entity_type=entity_type,
            raw_headers=tuple(headers),
            raw_rows=tuple(tuple(r) for r in rows),
            status=SessionStatus.UPLOADED,
            created_at=now,
            expires_at=now + self.ttl,
            file_name=file_name,
        )
        with self._lock:
            self._sessions[session.session_id] = session
        logger.debug("session %s created (%d rows)", session.session_id, session.total_rows)
        return session

    def _get_locked(self, session_id: str) -> ImportSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        # 実行中のセッションは期限切れにしない
        if session.status is not SessionStatus.EXECUTING and self._clock() >= session.expires_at:
            del self._sessions[session_id]
            logger.info("session %s expired and was discarded", session_id)
            raise SessionExpired(session_id)
        return session

    def get(self, session_id: str) -> ImportSession:
        with self._lock:
            return self._get_locked(session_id)

    def attach_mapping(self, session_id: str, mapping: FieldMapping) -> ImportSession:
        with self._lock:
            session = self._get_locked(session_id)
            if session.status is SessionStatus.EXECUTING:
                raise SessionBusy(session_id)
            if session.status in (SessionStatus.COMPLETED, SessionStatus.FAILED):
                raise SessionConsumed(session_id)
            updated = session.evolve(mapping=mapping, status=SessionStatus.MAPPED)
            self._sessions[session_id] = updated
            return updated

    def begin_execution(self, session_id: str) -> ImportSession:
        """MAPPED -> EXECUTING under the lock; the single entry to Execute."""
        with self._lock:
            session = self._get_locked(session_id)
            if session.status is SessionStatus.UPLOADED:
                raise SessionNotMapped(session_id)
            if session.status is SessionStatus.EXECUTING:
                raise SessionBusy(session_id)
            if session.status in (SessionStatus.COMPLETED, SessionStatus.FAILED):
                raise SessionConsumed(session_id)
            updated = session.evolve(status=SessionStatus.EXECUTING)
            self._sessions[session_id] = updated
            return updated

    def finish(
        self,
        session_id: str,
        status: SessionStatus,
        summary: ImportSummary | None = None,
        failure_reason: str | None = None,
    ) -> ImportSession:
        if status not in (SessionStatus.COMPLETED, SessionStatus.FAILED):
            raise ValueError(f"finish() needs a terminal status, got {status}")
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            # 完了後は保持期間を張り直す (結果参照用)
            updated = session.evolve(
                status=status,
                summary=summary,
                failure_reason=failure_reason,
                expires_at=self._clock() + self.ttl,
            )
            self._sessions[session_id] = updated
            return updated

    def discard(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [
                sid for sid, s in self._sessions.items()
                if s.status is not SessionStatus.EXECUTING and now >= s.expires_at
            ]
            for sid in stale:
                del self._sessions[sid]
        if stale:
            logger.info("purged %d expired import session(s)", len(stale))
        return len(stale)
