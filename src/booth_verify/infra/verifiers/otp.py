"""Verificação por código OTP.

A entrega (SMS) é colaborador externo: `issue_code` devolve o código em
claro uma única vez para o transporte. Aqui só ficam digests HMAC-SHA256
com pepper; o código em claro nunca é persistido nem logado.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from booth_verify.domain.clock import Clock, SystemClock
from booth_verify.domain.enums import OutcomeKind, VerificationMethod
from booth_verify.domain.errors import MethodNotSupported
from booth_verify.domain.models import VerificationOutcome
from booth_verify.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class _IssuedCode:
    digest: str
    expires_at: datetime


class OtpVerifier:
    """Emite e valida códigos numéricos de uso único por identidade."""

    def __init__(
        self,
        pepper: str,
        code_length: int = 6,
        expiry_minutes: int = 5,
        clock: Clock | None = None,
    ) -> None:
        if not pepper:
            raise ValueError("pepper obrigatório para OTP")
        self._pepper = pepper.encode()
        self._code_length = code_length
        self._expiry = timedelta(minutes=expiry_minutes)
        self._clock = clock or SystemClock()
        self._codes: dict[str, _IssuedCode] = {}
        self._lock = threading.Lock()

    def _digest(self, identity_ref: str, code: str) -> str:
        message = f"{identity_ref}:{code}".encode()
        return hmac.new(self._pepper, message, hashlib.sha256).hexdigest()

    def issue_code(self, identity_ref: str) -> str:
        """Gera novo código (invalida o anterior) e retorna o valor em claro."""
        code = "".join(str(secrets.randbelow(10)) for _ in range(self._code_length))
        issued = _IssuedCode(
            digest=self._digest(identity_ref, code),
            expires_at=self._clock.now() + self._expiry,
        )
        with self._lock:
            self._codes[identity_ref] = issued
        logger.info("otp_issued", extra={"expires_at": issued.expires_at.isoformat()})
        return code

    async def attempt(
        self,
        method: VerificationMethod,
        identity_ref: str,
        payload: dict[str, Any],
    ) -> VerificationOutcome:
        if method != VerificationMethod.OTP:
            raise MethodNotSupported(f"OtpVerifier não atende {method.value}")

        code = str(payload.get("code") or "")
        with self._lock:
            issued = self._codes.get(identity_ref)
            if issued is None:
                return _no_match("no_active_code")
            if self._clock.now() > issued.expires_at:
                del self._codes[identity_ref]
                return _no_match("code_expired")
            if not hmac.compare_digest(issued.digest, self._digest(identity_ref, code)):
                return _no_match("code_mismatch")
            # Uso único
            del self._codes[identity_ref]

        return VerificationOutcome(kind=OutcomeKind.MATCH, confidence=1.0)


def _no_match(reason: str) -> VerificationOutcome:
    logger.info("otp_rejected", extra={"reason": reason})
    return VerificationOutcome(kind=OutcomeKind.NO_MATCH, details={"reason": reason})
