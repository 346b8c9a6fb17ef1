"""Porta de consulta ao cadastro de identidades (eleitores)."""

from __future__ import annotations

from typing import Protocol

from booth_verify.domain.models import IdentityStatus


class IdentityDirectory(Protocol):
    async def find_active_identity(self, identity_ref: str) -> IdentityStatus:
        """Retorna existência, bloqueio e cabine designada da identidade."""
