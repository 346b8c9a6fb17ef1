"""Diretório de identidades em memória (dev/testes)."""

from __future__ import annotations

from booth_verify.domain.models import IdentityStatus

_UNKNOWN = IdentityStatus(exists=False)


class InMemoryIdentityDirectory:
    """Cadastro local; o CRUD real de eleitores é colaborador externo."""

    def __init__(self, identities: dict[str, IdentityStatus] | None = None) -> None:
        self._identities: dict[str, IdentityStatus] = dict(identities or {})

    def register(
        self,
        identity_ref: str,
        *,
        is_blocked: bool = False,
        assigned_booth_ref: str | None = None,
    ) -> None:
        self._identities[identity_ref] = IdentityStatus(
            exists=True, is_blocked=is_blocked, assigned_booth_ref=assigned_booth_ref
        )

    async def find_active_identity(self, identity_ref: str) -> IdentityStatus:
        return self._identities.get(identity_ref, _UNKNOWN)
