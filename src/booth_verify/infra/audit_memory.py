"""Sinks de auditoria sem backend durável (dev/testes e log estruturado)."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any

from booth_verify.domain.audit import AuditLogStore, AuditRecord
from booth_verify.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)


class InMemoryAuditLogStore(AuditLogStore):
    """Trilha encadeada em memória (não usar em produção)."""

    def __init__(self) -> None:
        self._events: dict[str, list[AuditRecord]] = {}
        self._lock = threading.Lock()

    def get_latest_event(self, session_id: str) -> AuditRecord | None:
        events = self._events.get(session_id)
        return events[-1] if events else None

    def list_events(self, session_id: str, limit: int = 500) -> list[AuditRecord]:
        return list(self._events.get(session_id, ()))[:limit]

    def append_event(self, record: AuditRecord, expected_prev_hash: str | None) -> bool:
        with self._lock:
            latest = self.get_latest_event(record.session_id)
            latest_hash = latest.hash if latest else None
            if latest_hash != expected_prev_hash:
                return False
            self._events.setdefault(record.session_id, []).append(record)
        return True


class LoggingAuditSink:
    """Emite uma linha JSON por evento (Cloud Logging como destino durável)."""

    def __init__(self, logger_name: str = "booth_verify.audit") -> None:
        self._logger = get_logger(logger_name)

    async def append(
        self,
        session_id: str,
        event: str,
        timestamp: datetime,
        data: dict[str, Any],
    ) -> None:
        self._logger.info(
            "session_audit_event",
            extra={
                "session_id": short_id(session_id),
                "event": event,
                "event_timestamp": timestamp.isoformat(),
                "event_data": data,
            },
        )
