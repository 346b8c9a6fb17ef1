"""Implementação de SessionStore em memória (apenas dev/testes)."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from booth_verify.domain.errors import DuplicateActiveSession, NotFound, VersionConflict
from booth_verify.domain.models import SessionRecord
from booth_verify.domain.protocols.session_store import SessionStore
from booth_verify.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)


class InMemorySessionStore(SessionStore):
    """Armazenamento em memória (não usar em produção).

    Um único asyncio.Lock serializa o compare-and-set; leituras devolvem
    as instâncias imutáveis diretamente.
    """

    def __init__(self) -> None:
        self._records: dict[str, SessionRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, session_id: str) -> SessionRecord:
        record = self._records.get(session_id)
        if record is None:
            logger.debug(
                "Session not found (in-memory)", extra={"session_id": short_id(session_id)}
            )
            raise NotFound("session not found", session_id=session_id)
        return record

    async def put(self, record: SessionRecord, expected_version: int) -> SessionRecord:
        async with self._lock:
            current = self._records.get(record.session_id)
            if current is None and expected_version != 0:
                raise NotFound("session not found", session_id=record.session_id)
            if current is not None and current.sync_version != expected_version:
                raise VersionConflict(
                    f"expected version {expected_version}, found {current.sync_version}",
                    session_id=record.session_id,
                    state=current.state,
                    attempt_count=current.attempt_count,
                )
            if current is not None and expected_version == 0:
                raise VersionConflict(
                    "session already exists",
                    session_id=record.session_id,
                    state=current.state,
                    attempt_count=current.attempt_count,
                )
            if current is None and record.is_active and self._active_for(record):
                raise DuplicateActiveSession(
                    "active session exists for identity and booth",
                    session_id=record.session_id,
                    state=record.state,
                )

            stored = record.model_copy(
                update={
                    "sync_version": expected_version + 1,
                    "synced_version": current.synced_version if current else None,
                }
            )
            self._records[record.session_id] = stored

        logger.debug(
            "Session saved (in-memory)",
            extra={
                "session_id": short_id(record.session_id),
                "sync_version": stored.sync_version,
                "state": stored.state,
            },
        )
        return stored

    def _active_for(self, record: SessionRecord) -> bool:
        return any(
            r.is_active and r.identity_ref == record.identity_ref and r.booth_ref == record.booth_ref
            for r in self._records.values()
        )

    async def find_active(self, identity_ref: str, booth_ref: str) -> list[SessionRecord]:
        return [
            r
            for r in self._records.values()
            if r.identity_ref == identity_ref and r.booth_ref == booth_ref and r.is_active
        ]

    async def find_expired(self, now: datetime, limit: int = 100) -> list[SessionRecord]:
        expired = [r for r in self._records.values() if r.is_active and r.timeout_at <= now]
        expired.sort(key=lambda r: r.timeout_at)
        return expired[:limit]

    async def list_unsynced(self, limit: int = 100) -> list[SessionRecord]:
        return [r for r in self._records.values() if not r.is_synced][:limit]

    async def mark_synced(self, session_id: str, version: int) -> bool:
        async with self._lock:
            current = self._records.get(session_id)
            if current is None or current.sync_version != version:
                return False
            self._records[session_id] = current.model_copy(update={"synced_version": version})
        return True
