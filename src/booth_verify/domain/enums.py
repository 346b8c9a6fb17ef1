"""Enums de domínio: métodos de verificação, outcomes e etapas do fluxo."""

from __future__ import annotations

from enum import StrEnum


class VerificationMethod(StrEnum):
    """Métodos de verificação suportados pela cabine."""

    OTP = "OTP"
    FACE = "FACE"
    BIOMETRIC = "BIOMETRIC"
    DOCUMENT = "DOCUMENT"
    MANUAL = "MANUAL"


class OutcomeKind(StrEnum):
    """Resultado bruto de uma tentativa no verificador externo."""

    MATCH = "MATCH"
    NO_MATCH = "NO_MATCH"
    ERROR = "ERROR"


class AttemptStatus(StrEnum):
    """Situação de uma tentativa registrada na sessão."""

    PENDING = "PENDING"
    MATCH = "MATCH"
    NO_MATCH = "NO_MATCH"
    ERROR = "ERROR"
    DISCARDED = "DISCARDED"


class WorkflowStep(StrEnum):
    """Etapa corrente exibida ao operador."""

    METHOD_SELECTION = "METHOD_SELECTION"
    OTP_VERIFICATION = "OTP_VERIFICATION"
    FACE_VERIFICATION = "FACE_VERIFICATION"
    BIOMETRIC_VERIFICATION = "BIOMETRIC_VERIFICATION"
    DOCUMENT_VERIFICATION = "DOCUMENT_VERIFICATION"
    MANUAL_REVIEW = "MANUAL_REVIEW"
    COMPLETION = "COMPLETION"


class SecurityFlag(StrEnum):
    """Sinalizações de segurança anexadas à sessão."""

    MULTIPLE_ATTEMPTS = "MULTIPLE_ATTEMPTS"
    VERIFIER_UNAVAILABLE = "VERIFIER_UNAVAILABLE"


STEP_BY_METHOD: dict[VerificationMethod, WorkflowStep] = {
    VerificationMethod.OTP: WorkflowStep.OTP_VERIFICATION,
    VerificationMethod.FACE: WorkflowStep.FACE_VERIFICATION,
    VerificationMethod.BIOMETRIC: WorkflowStep.BIOMETRIC_VERIFICATION,
    VerificationMethod.DOCUMENT: WorkflowStep.DOCUMENT_VERIFICATION,
    VerificationMethod.MANUAL: WorkflowStep.MANUAL_REVIEW,
}
