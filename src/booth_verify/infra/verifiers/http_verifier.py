"""Verifier Provider HTTP (FACE, BIOMETRIC, DOCUMENT).

O algoritmo de matching/OCR é do serviço externo; aqui só transporte e
normalização da resposta em VerificationOutcome.

Contrato do serviço:
    POST {base_url}/{method}
    {"identity_ref": "...", "payload": {...}}
    -> {"outcome": "MATCH" | "NO_MATCH", "confidence": 0.0-1.0, "details": {...}}
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from booth_verify.domain.enums import OutcomeKind, VerificationMethod
from booth_verify.domain.models import VerificationOutcome
from booth_verify.infra.http import HttpClient, HttpError
from booth_verify.observability.logging import get_logger
from booth_verify.observability.timing import timed

logger: logging.Logger = get_logger(__name__)


class HttpVerifierProvider:
    """Adapter do serviço externo de verificação."""

    def __init__(self, client: HttpClient) -> None:
        self._client = client

    async def attempt(
        self,
        method: VerificationMethod,
        identity_ref: str,
        payload: dict[str, Any],
    ) -> VerificationOutcome:
        path = f"/{method.value.lower()}"
        try:
            with timed("verifier_http", method=method.value):
                response = await self._client.post(
                    path, json={"identity_ref": identity_ref, "payload": payload}
                )
        except HttpError as e:
            logger.warning(
                "verifier_http_error",
                extra={"method": method.value, "status_code": e.status_code, "error": str(e)},
            )
            return VerificationOutcome(
                kind=OutcomeKind.ERROR,
                details={"error": str(e), "status_code": e.status_code},
            )

        try:
            body = response.json()
            outcome = VerificationOutcome(
                kind=OutcomeKind(body["outcome"]),
                confidence=float(body.get("confidence", 0.0)),
                details=body.get("details") or {},
            )
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            logger.error(
                "verifier_response_malformed",
                extra={"method": method.value, "error": type(e).__name__},
            )
            return VerificationOutcome(
                kind=OutcomeKind.ERROR, details={"error": "malformed verifier response"}
            )

        logger.info(
            "verifier_http_outcome",
            extra={
                "method": method.value,
                "outcome": outcome.kind.value,
                "confidence": outcome.confidence,
            },
        )
        return outcome
