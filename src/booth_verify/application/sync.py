"""Sincronização offline: cabine -> servidor central.

O transporte é colaborador externo. Este serviço só expõe as sessões cuja
versão corrente ainda não foi confirmada e registra confirmações.
"""

from __future__ import annotations

import logging

from booth_verify.domain.models import SessionView
from booth_verify.domain.protocols import SessionStore
from booth_verify.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)


class OfflineSyncService:
    def __init__(self, store: SessionStore, batch_size: int = 100) -> None:
        self._store = store
        self._batch_size = batch_size

    async def pending(self, limit: int | None = None) -> list[SessionView]:
        """Sessões com sync_version ainda não enviada (visão redigida)."""
        records = await self._store.list_unsynced(limit or self._batch_size)
        return [r.to_view() for r in records]

    async def acknowledge(self, session_id: str, version: int) -> bool:
        """Confirma o envio de `version`.

        Retorna False quando a sessão mudou depois do envio; ela continua
        pendente com a versão nova.
        """
        marked = await self._store.mark_synced(session_id, version)
        if not marked:
            logger.info(
                "sync_ack_stale",
                extra={"session_id": short_id(session_id), "version": version},
            )
        return marked
