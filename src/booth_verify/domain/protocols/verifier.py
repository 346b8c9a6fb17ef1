"""Porta do Verifier Provider (estratégia plugável por método)."""

from __future__ import annotations

from typing import Any, Protocol

from booth_verify.domain.enums import VerificationMethod
from booth_verify.domain.models import VerificationOutcome


class VerifierProvider(Protocol):
    """Avalia uma tentativa de verificação.

    Falhas de contato com o serviço externo devem retornar
    `OutcomeKind.ERROR` ou levantar `VerifierUnavailable`.
    """

    async def attempt(
        self,
        method: VerificationMethod,
        identity_ref: str,
        payload: dict[str, Any],
    ) -> VerificationOutcome:
        """Executa a verificação e retorna o outcome com confiança [0, 1]."""
