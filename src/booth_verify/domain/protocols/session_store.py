"""Contrato de persistência de sessão com versionamento otimista."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from booth_verify.domain.models import SessionRecord


class SessionStore(ABC):
    """Armazenamento de SessionRecord por session_id.

    `put` é o único ponto de controle de concorrência: compare-and-set
    atômico sobre `sync_version`.
    """

    @abstractmethod
    async def get(self, session_id: str) -> SessionRecord:
        """Carrega sessão por ID.

        Raises:
            NotFound: se a sessão não existe
        """
        ...

    @abstractmethod
    async def put(self, record: SessionRecord, expected_version: int) -> SessionRecord:
        """Grava se a versão armazenada == expected_version.

        `expected_version=0` insere (o id não pode existir). O registro
        gravado recebe `sync_version = expected_version + 1` e é retornado.

        Raises:
            VersionConflict: versão divergente (ou id já existente na inserção)
            NotFound: atualização de id inexistente
        """
        ...

    @abstractmethod
    async def find_active(self, identity_ref: str, booth_ref: str) -> list[SessionRecord]:
        """Sessões INITIATED/IN_PROGRESS para o par (identidade, cabine)."""
        ...

    @abstractmethod
    async def find_expired(self, now: datetime, limit: int = 100) -> list[SessionRecord]:
        """Sessões ativas com timeout_at <= now (mais antigas primeiro)."""
        ...

    @abstractmethod
    async def list_unsynced(self, limit: int = 100) -> list[SessionRecord]:
        """Sessões cuja versão corrente ainda não foi sincronizada."""
        ...

    @abstractmethod
    async def mark_synced(self, session_id: str, version: int) -> bool:
        """Registra `version` como sincronizada sem alterar sync_version.

        Retorna False se a sessão mudou depois do envio (versão diferente).
        """
        ...
