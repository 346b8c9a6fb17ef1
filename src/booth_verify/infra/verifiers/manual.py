"""Override manual por supervisor."""

from __future__ import annotations

from typing import Any

from booth_verify.domain.enums import OutcomeKind, VerificationMethod
from booth_verify.domain.errors import MethodNotSupported
from booth_verify.domain.models import VerificationOutcome


class ManualOverrideVerifier:
    """MATCH apenas com referência de supervisor e aprovação explícita.

    `allowed_supervisors` vazio aceita qualquer referência não vazia.
    """

    def __init__(self, allowed_supervisors: frozenset[str] = frozenset()) -> None:
        self._allowed = allowed_supervisors

    async def attempt(
        self,
        method: VerificationMethod,
        identity_ref: str,
        payload: dict[str, Any],
    ) -> VerificationOutcome:
        if method != VerificationMethod.MANUAL:
            raise MethodNotSupported(f"ManualOverrideVerifier não atende {method.value}")

        supervisor_ref = payload.get("supervisor_ref")
        if not supervisor_ref:
            return VerificationOutcome(
                kind=OutcomeKind.NO_MATCH, details={"reason": "missing_supervisor"}
            )
        if self._allowed and supervisor_ref not in self._allowed:
            return VerificationOutcome(
                kind=OutcomeKind.NO_MATCH,
                details={"reason": "supervisor_not_authorized", "supervisor_ref": supervisor_ref},
            )
        if payload.get("approved") is not True:
            return VerificationOutcome(
                kind=OutcomeKind.NO_MATCH,
                details={"reason": "not_approved", "supervisor_ref": supervisor_ref},
            )
        return VerificationOutcome(
            kind=OutcomeKind.MATCH,
            confidence=1.0,
            details={"supervisor_ref": supervisor_ref, "note": payload.get("note")},
        )
