"""Casos de uso da trilha de auditoria de sessões."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from booth_verify.domain.audit import AuditLogStore, AuditRecord, compute_event_hash
from booth_verify.domain.models import AuditEntry, redact
from booth_verify.domain.protocols.audit_sink import AuditSink
from booth_verify.observability.context import get_correlation_id
from booth_verify.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)


class AuditChainConflict(RuntimeError):
    """Cadeia não pôde ser estendida após os retries."""


@dataclass(slots=True)
class RecordAuditEventUseCase:
    """Append-only de eventos de auditoria com hash encadeado."""

    store: AuditLogStore
    max_retries: int = 3

    def execute(
        self,
        *,
        session_id: str,
        event: str,
        timestamp: datetime,
        data: dict[str, Any],
        correlation_id: str | None = None,
    ) -> AuditRecord:
        """Registra evento com tolerância a concorrência."""

        for attempt in range(self.max_retries):
            latest = self.store.get_latest_event(session_id)
            prev_hash = latest.hash if latest else None

            event_data: dict[str, Any] = {
                "event_id": str(uuid.uuid4()),
                "session_id": session_id,
                "sequence": latest.sequence + 1 if latest else 1,
                "timestamp": timestamp,
                "event": event,
                "data": data,
                "prev_hash": prev_hash,
                "correlation_id": correlation_id,
            }
            record = AuditRecord(**event_data, hash=compute_event_hash(event_data, prev_hash))

            if self.store.append_event(record, expected_prev_hash=prev_hash):
                logger.info(
                    "Audit event appended",
                    extra={
                        "session_id": short_id(session_id),
                        "event": event,
                        "sequence": record.sequence,
                        "attempt": attempt + 1,
                    },
                )
                return record

        raise AuditChainConflict("Falha ao registrar evento de auditoria após retries")


class ChainedAuditSink:
    """AuditSink assíncrono sobre um AuditLogStore síncrono (thread pool)."""

    def __init__(self, store: AuditLogStore, max_retries: int = 3) -> None:
        self.store = store
        self._use_case = RecordAuditEventUseCase(store=store, max_retries=max_retries)

    async def append(
        self,
        session_id: str,
        event: str,
        timestamp: datetime,
        data: dict[str, Any],
    ) -> None:
        await asyncio.to_thread(
            self._use_case.execute,
            session_id=session_id,
            event=event,
            timestamp=timestamp,
            data=data,
            correlation_id=get_correlation_id() or None,
        )


class AuditDispatcher:
    """Publica eventos já commitados no sink.

    Falhas do sink são logadas e nunca desfazem a transição.
    """

    def __init__(self, sink: AuditSink) -> None:
        self._sink = sink

    async def publish(self, session_id: str, entries: Iterable[AuditEntry]) -> None:
        for entry in entries:
            try:
                await self._sink.append(
                    session_id,
                    entry.event.value,
                    entry.timestamp,
                    redact(entry.data),
                )
            except Exception as e:
                logger.error(
                    "audit_sink_failed",
                    extra={
                        "session_id": short_id(session_id),
                        "event": entry.event.value,
                        "error": type(e).__name__,
                    },
                )
