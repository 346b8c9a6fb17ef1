"""Modelos da sessão de verificação.

SessionRecord é o documento central:
- Uma sessão = um session_id único, uma identidade, um método
- Uma sessão = exatamente um resultado terminal (write-once)
- Serializável para Redis/JSON preservando sync_version
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from booth_verify.domain.enums import (
    AttemptStatus,
    OutcomeKind,
    SecurityFlag,
    VerificationMethod,
    WorkflowStep,
)
from booth_verify.domain.session.events import SessionEvent
from booth_verify.domain.session.states import (
    ACTIVE_STATES,
    TERMINAL_STATES,
    SessionState,
)

# Chaves removidas de qualquer visão externa (segredos OTP e templates biométricos)
SENSITIVE_KEYS = frozenset({
    "code",
    "otp",
    "hashed_code",
    "template",
    "embedding",
    "landmarks",
    "image",
    "face_image",
})


class AuditEntry(BaseModel):
    """Entrada append-only da trilha de eventos do registro."""

    model_config = ConfigDict(frozen=True)

    event: SessionEvent
    timestamp: datetime
    data: dict[str, Any] = Field(default_factory=dict)


class AttemptEntry(BaseModel):
    """Histórico de uma tentativa de verificação."""

    model_config = ConfigDict(frozen=True)

    number: int
    status: AttemptStatus = AttemptStatus.PENDING
    confidence: float | None = None
    started_at: datetime
    resolved_at: datetime | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class SessionResult(BaseModel):
    """Resumo terminal da sessão (gravado uma única vez)."""

    model_config = ConfigDict(frozen=True)

    overall_status: SessionState
    score: int = Field(default=0, ge=0, le=100)
    failure_reason: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class VerificationOutcome(BaseModel):
    """Resposta de um Verifier Provider para uma tentativa."""

    model_config = ConfigDict(frozen=True)

    kind: OutcomeKind
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    details: dict[str, Any] = Field(default_factory=dict)


class IdentityStatus(BaseModel):
    """Resposta do diretório de identidades (colaborador externo)."""

    model_config = ConfigDict(frozen=True)

    exists: bool
    is_blocked: bool = False
    assigned_booth_ref: str | None = None


class SessionRecord(BaseModel):
    """Estado completo e versionado da sessão.

    Imutável: transições produzem uma nova instância via `model_copy`.
    `sync_version` é atribuído pelo SessionStore a cada commit.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    identity_ref: str
    operator_ref: str
    booth_ref: str
    method: VerificationMethod | None = None
    state: SessionState = SessionState.INITIATED
    current_step: WorkflowStep = WorkflowStep.METHOD_SELECTION
    attempt_count: int = 0
    max_attempts: int = 3
    started_at: datetime
    timeout_at: datetime
    method_started_at: datetime | None = None
    completed_at: datetime | None = None
    result: SessionResult | None = None
    sync_version: int = 0
    synced_version: int | None = None
    events: tuple[AuditEntry, ...] = ()
    attempts: tuple[AttemptEntry, ...] = ()
    flags: tuple[SecurityFlag, ...] = ()

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def remaining_attempts(self) -> int:
        return max(self.max_attempts - self.attempt_count, 0)

    @property
    def pending_attempts(self) -> tuple[AttemptEntry, ...]:
        return tuple(a for a in self.attempts if a.status == AttemptStatus.PENDING)

    @property
    def is_synced(self) -> bool:
        return self.synced_version == self.sync_version

    @property
    def duration(self) -> timedelta | None:
        if self.completed_at is None:
            return None
        return self.completed_at - self.started_at

    def time_remaining(self, now: datetime) -> timedelta:
        return max(self.timeout_at - now, timedelta(0))

    def is_expired(self, now: datetime) -> bool:
        return now > self.timeout_at

    def to_view(self) -> SessionView:
        """Visão somente-leitura com segredos removidos."""
        return SessionView(
            session_id=self.session_id,
            identity_ref=self.identity_ref,
            operator_ref=self.operator_ref,
            booth_ref=self.booth_ref,
            method=self.method,
            state=self.state,
            current_step=self.current_step,
            attempt_count=self.attempt_count,
            max_attempts=self.max_attempts,
            remaining_attempts=self.remaining_attempts,
            started_at=self.started_at,
            timeout_at=self.timeout_at,
            completed_at=self.completed_at,
            result=(
                self.result.model_copy(update={"details": redact(self.result.details)})
                if self.result
                else None
            ),
            sync_version=self.sync_version,
            is_synced=self.is_synced,
            events=tuple(
                e.model_copy(update={"data": redact(e.data)}) for e in self.events
            ),
            attempts=tuple(
                a.model_copy(update={"details": redact(a.details)}) for a in self.attempts
            ),
            flags=self.flags,
        )


class SessionView(BaseModel):
    """Visão exposta a colaboradores (camada HTTP, sync central)."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    identity_ref: str
    operator_ref: str
    booth_ref: str
    method: VerificationMethod | None
    state: SessionState
    current_step: WorkflowStep
    attempt_count: int
    max_attempts: int
    remaining_attempts: int
    started_at: datetime
    timeout_at: datetime
    completed_at: datetime | None
    result: SessionResult | None
    sync_version: int
    is_synced: bool
    events: tuple[AuditEntry, ...]
    attempts: tuple[AttemptEntry, ...]
    flags: tuple[SecurityFlag, ...]


class AttemptResult(BaseModel):
    """Retorno de record_attempt para o chamador."""

    model_config = ConfigDict(frozen=True)

    session: SessionView
    outcome: OutcomeKind
    confidence: float
    applied: bool
    """False quando a sessão encerrou enquanto o verificador respondia."""

    @property
    def remaining_attempts(self) -> int:
        return self.session.remaining_attempts


def redact(data: Any) -> Any:
    """Remove recursivamente chaves sensíveis de dicts/listas."""
    if isinstance(data, dict):
        return {
            key: redact(value)
            for key, value in data.items()
            if str(key).lower() not in SENSITIVE_KEYS
        }
    if isinstance(data, list | tuple):
        return [redact(item) for item in data]
    return data
