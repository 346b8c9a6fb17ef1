"""Taxonomia de erros do motor de verificação.

Toda operação rejeitada carrega o tipo (`kind`) e o estado corrente da
sessão (`state`, `attempt_count`) para que o chamador decida entre
repetir, abandonar ou escalar para revisão manual.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from booth_verify.domain.session.states import SessionState


class ErrorKind(StrEnum):
    DUPLICATE_ACTIVE_SESSION = "DuplicateActiveSession"
    INVALID_STATE_TRANSITION = "InvalidStateTransition"
    SESSION_EXPIRED = "SessionExpired"
    RATE_LIMITED = "RateLimited"
    VERSION_CONFLICT = "VersionConflict"
    IDENTITY_NOT_ELIGIBLE = "IdentityNotEligible"
    VERIFIER_UNAVAILABLE = "VerifierUnavailable"
    NOT_FOUND = "NotFound"
    METHOD_NOT_SUPPORTED = "MethodNotSupported"
    STORE_FAILURE = "SessionStoreError"


class VerificationEngineError(Exception):
    """Erro estruturado com snapshot da sessão."""

    kind: ErrorKind = ErrorKind.INVALID_STATE_TRANSITION

    def __init__(
        self,
        message: str,
        *,
        session_id: str | None = None,
        state: SessionState | None = None,
        attempt_count: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.session_id = session_id
        self.state = state
        self.attempt_count = attempt_count

    def to_dict(self) -> dict[str, Any]:
        """Representação para a camada HTTP (sem PII)."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "session_id": self.session_id,
            "state": self.state.value if self.state else None,
            "attempt_count": self.attempt_count,
        }


class DuplicateActiveSession(VerificationEngineError):
    kind = ErrorKind.DUPLICATE_ACTIVE_SESSION


class InvalidStateTransition(VerificationEngineError):
    kind = ErrorKind.INVALID_STATE_TRANSITION


class SessionExpired(VerificationEngineError):
    kind = ErrorKind.SESSION_EXPIRED


class RateLimited(VerificationEngineError):
    kind = ErrorKind.RATE_LIMITED

    def __init__(
        self,
        message: str,
        *,
        retry_after_seconds: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retry_after_seconds"] = self.retry_after_seconds
        return data


class VersionConflict(VerificationEngineError):
    """Sinal interno de concorrência otimista (retry no SessionManager)."""

    kind = ErrorKind.VERSION_CONFLICT


class IdentityNotEligible(VerificationEngineError):
    kind = ErrorKind.IDENTITY_NOT_ELIGIBLE


class VerifierUnavailable(VerificationEngineError):
    kind = ErrorKind.VERIFIER_UNAVAILABLE


class NotFound(VerificationEngineError):
    kind = ErrorKind.NOT_FOUND


class MethodNotSupported(VerificationEngineError):
    kind = ErrorKind.METHOD_NOT_SUPPORTED


class SessionStoreError(VerificationEngineError):
    """Erro de I/O no backend de persistência."""

    kind = ErrorKind.STORE_FAILURE
