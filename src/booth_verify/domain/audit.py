"""Modelos e portas para a trilha de auditoria durável (append-only)."""

from __future__ import annotations

import hashlib
import json
from datetime import datetime
from typing import Any, Protocol

from pydantic import BaseModel, Field


class AuditRecord(BaseModel):
    """Evento de ciclo de vida da sessão encadeado por hash."""

    event_id: str
    session_id: str
    sequence: int
    timestamp: datetime
    event: str
    data: dict[str, Any] = Field(default_factory=dict)
    prev_hash: str | None = None
    hash: str
    correlation_id: str | None = None


def compute_event_hash(event_data: dict[str, Any], prev_hash: str | None) -> str:
    """Calcula SHA256 do json canônico + prev_hash (append-only).

    event_data não deve conter o campo "hash".
    """

    def _default(obj: Any) -> str:
        if isinstance(obj, datetime):
            return obj.isoformat()
        return str(obj)

    canonical = json.dumps(event_data, sort_keys=True, separators=(",", ":"), default=_default)
    payload = f"{canonical}{prev_hash or ''}".encode()
    return hashlib.sha256(payload).hexdigest()


def verify_chain(records: list[AuditRecord]) -> bool:
    """Valida encadeamento e hashes de uma trilha ordenada por sequence."""
    prev_hash: str | None = None
    for record in records:
        if record.prev_hash != prev_hash:
            return False
        expected = compute_event_hash(record.model_dump(exclude={"hash"}), prev_hash)
        if record.hash != expected:
            return False
        prev_hash = record.hash
    return True


class AuditLogStore(Protocol):
    """Porta para armazenamento de eventos de auditoria por sessão."""

    def get_latest_event(self, session_id: str) -> AuditRecord | None:
        """Retorna o último evento, se existir."""

    def list_events(self, session_id: str, limit: int = 500) -> list[AuditRecord]:
        """Lista eventos ordenados por sequence asc."""

    def append_event(self, record: AuditRecord, expected_prev_hash: str | None) -> bool:
        """Append condicional; retorna False em conflito de cadeia."""
