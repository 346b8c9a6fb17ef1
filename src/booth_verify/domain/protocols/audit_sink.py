"""Porta do Audit Sink (log durável append-only, colaborador externo)."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol


class AuditSink(Protocol):
    """Recebe eventos de ciclo de vida da sessão.

    Implementações devem logar suas próprias falhas; o motor não depende
    da durabilidade do sink para seus invariantes.
    """

    async def append(
        self,
        session_id: str,
        event: str,
        timestamp: datetime,
        data: dict[str, Any],
    ) -> None:
        """Anexa um evento à trilha da sessão."""
