"""Transições puras da sessão: registro atual -> (novo registro, eventos).

Nenhuma função aqui toca persistência ou auditoria externa; o
SessionManager aplica o resultado via compare-and-set no SessionStore e só
então publica os eventos. Isso mantém todos os efeitos colaterais
explícitos e testáveis sem backend.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from booth_verify.domain.enums import (
    STEP_BY_METHOD,
    AttemptStatus,
    SecurityFlag,
    VerificationMethod,
    WorkflowStep,
)
from booth_verify.domain.errors import InvalidStateTransition, SessionExpired
from booth_verify.domain.models import AttemptEntry, AuditEntry, SessionRecord, SessionResult
from booth_verify.domain.session.events import SessionEvent
from booth_verify.domain.session.states import SessionState
from booth_verify.domain.session.transitions import validate_transition

MAX_ATTEMPTS_REASON = "max attempts exhausted"
VERIFIER_UNAVAILABLE_REASON = "verifier unavailable"
TIMEOUT_REASON = "session timeout"


@dataclass(frozen=True, slots=True)
class Transition:
    """Resultado de uma transição: novo registro + eventos a publicar."""

    record: SessionRecord
    events: tuple[AuditEntry, ...]


def new_session(
    *,
    session_id: str,
    identity_ref: str,
    operator_ref: str,
    booth_ref: str,
    now: datetime,
    timeout: timedelta,
    max_attempts: int,
) -> Transition:
    """Cria o registro INITIATED (timeout_at fixo a partir daqui)."""
    entry = AuditEntry(
        event=SessionEvent.CREATE,
        timestamp=now,
        data={"booth_ref": booth_ref, "operator_ref": operator_ref},
    )
    record = SessionRecord(
        session_id=session_id,
        identity_ref=identity_ref,
        operator_ref=operator_ref,
        booth_ref=booth_ref,
        max_attempts=max_attempts,
        started_at=now,
        timeout_at=now + timeout,
        events=(entry,),
    )
    return Transition(record=record, events=(entry,))


def start_method(
    record: SessionRecord, method: VerificationMethod, now: datetime
) -> Transition:
    next_state = _require(record, SessionEvent.START_METHOD, now)
    return _apply(
        record,
        SessionEvent.START_METHOD,
        now,
        data={"method": method.value},
        state=next_state,
        method=method,
        method_started_at=now,
        current_step=STEP_BY_METHOD[method],
    )


def reserve_attempt(record: SessionRecord, now: datetime) -> Transition:
    """Incrementa attempt_count e registra a tentativa como PENDING.

    Quem chama garante `attempt_count < max_attempts`.
    """
    _require(record, SessionEvent.RECORD_ATTEMPT, now)
    if record.attempt_count >= record.max_attempts:
        raise InvalidStateTransition(
            "max attempts reached",
            session_id=record.session_id,
            state=record.state,
            attempt_count=record.attempt_count,
        )
    number = record.attempt_count + 1
    attempt = AttemptEntry(number=number, started_at=now)
    return _apply(
        record,
        SessionEvent.RECORD_ATTEMPT,
        now,
        data={"attempt": number},
        attempt_count=number,
        attempts=(*record.attempts, attempt),
    )


def reject_attempt(
    record: SessionRecord,
    number: int,
    now: datetime,
    *,
    confidence: float,
    details: dict[str, Any],
) -> Transition:
    """NO_MATCH (ou confiança abaixo do threshold) na tentativa `number`.

    Na última tentativa permitida a sessão vai para FAILED.
    """
    attempts = _resolve_attempt(
        record, number, AttemptStatus.NO_MATCH, now, confidence=confidence, details=details
    )
    if number >= record.max_attempts:
        flags = record.flags
        if record.max_attempts > 1:
            flags = _add_flag(flags, SecurityFlag.MULTIPLE_ATTEMPTS)
        return fail(
            record,
            now,
            MAX_ATTEMPTS_REASON,
            score=_score(confidence),
            attempts=attempts,
            flags=flags,
            data={"attempt": number},
        )

    _require(record, SessionEvent.ATTEMPT_EVALUATED, now)
    return _apply(
        record,
        SessionEvent.ATTEMPT_EVALUATED,
        now,
        data={
            "attempt": number,
            "outcome": AttemptStatus.NO_MATCH.value,
            "confidence": confidence,
            "remaining_attempts": record.remaining_attempts,
        },
        attempts=attempts,
    )


def accept_attempt(
    record: SessionRecord,
    number: int,
    now: datetime,
    *,
    confidence: float,
    details: dict[str, Any],
) -> Transition:
    """MATCH acima do threshold na tentativa `number` -> SUCCESS."""
    attempts = _resolve_attempt(
        record, number, AttemptStatus.MATCH, now, confidence=confidence, details=details
    )
    return complete(
        record,
        now,
        score=_score(confidence),
        details={"method": record.method.value if record.method else None},
        attempts=attempts,
        data={"attempt": number, "confidence": confidence},
    )


def complete(
    record: SessionRecord,
    now: datetime,
    *,
    score: int,
    details: dict[str, Any] | None = None,
    attempts: tuple[AttemptEntry, ...] | None = None,
    data: dict[str, Any] | None = None,
) -> Transition:
    next_state = _require(record, SessionEvent.COMPLETE, now)
    result = SessionResult(overall_status=next_state, score=score, details=details or {})
    return _terminal(
        record,
        SessionEvent.COMPLETE,
        now,
        next_state,
        result,
        data={"score": score, **(data or {})},
        attempts=attempts,
    )


def fail(
    record: SessionRecord,
    now: datetime,
    reason: str,
    *,
    score: int = 0,
    attempts: tuple[AttemptEntry, ...] | None = None,
    flags: tuple[SecurityFlag, ...] | None = None,
    data: dict[str, Any] | None = None,
) -> Transition:
    next_state = _require(record, SessionEvent.FAIL, now)
    result = SessionResult(overall_status=next_state, score=score, failure_reason=reason)
    return _terminal(
        record,
        SessionEvent.FAIL,
        now,
        next_state,
        result,
        data={"reason": reason, **(data or {})},
        attempts=attempts,
        flags=flags,
    )


def verifier_unavailable(
    record: SessionRecord, number: int, now: datetime, *, details: dict[str, Any]
) -> Transition:
    """Provider sem contato após os retries: FAILED, nunca ambíguo."""
    attempts = _resolve_attempt(record, number, AttemptStatus.ERROR, now, details=details)
    return fail(
        record,
        now,
        VERIFIER_UNAVAILABLE_REASON,
        attempts=attempts,
        flags=_add_flag(record.flags, SecurityFlag.VERIFIER_UNAVAILABLE),
        data={"attempt": number},
    )


def cancel(record: SessionRecord, now: datetime, reason: str) -> Transition:
    next_state = _require(record, SessionEvent.CANCEL, now)
    result = SessionResult(overall_status=next_state, failure_reason=reason)
    return _terminal(
        record,
        SessionEvent.CANCEL,
        now,
        next_state,
        result,
        data={"reason": reason},
    )


def force_timeout(record: SessionRecord, now: datetime) -> Transition | None:
    """TIMEOUT para sessão ativa expirada.

    Retorna None (no-op) se a sessão já está terminal: chamadas repetidas
    não geram evento duplicado.
    """
    if record.is_terminal:
        return None
    if not record.is_expired(now):
        raise InvalidStateTransition(
            "session has not reached timeout_at",
            session_id=record.session_id,
            state=record.state,
            attempt_count=record.attempt_count,
        )
    ok, next_state, reason = validate_transition(record.state, SessionEvent.FORCE_TIMEOUT)
    if not ok or next_state is None:
        raise _invalid(record, reason)
    result = SessionResult(overall_status=next_state, failure_reason=TIMEOUT_REASON)
    return _terminal(
        record,
        SessionEvent.FORCE_TIMEOUT,
        now,
        next_state,
        result,
        data={"timeout_at": record.timeout_at.isoformat()},
    )


def _require(record: SessionRecord, event: SessionEvent, now: datetime) -> SessionState:
    """Valida transição + prazo; retorna o próximo estado."""
    if record.state == SessionState.TIMEOUT:
        raise SessionExpired(
            "session timed out",
            session_id=record.session_id,
            state=record.state,
            attempt_count=record.attempt_count,
        )
    ok, next_state, reason = validate_transition(record.state, event)
    if not ok or next_state is None:
        raise _invalid(record, reason)
    if record.is_expired(now):
        raise SessionExpired(
            "session passed timeout_at",
            session_id=record.session_id,
            state=record.state,
            attempt_count=record.attempt_count,
        )
    return next_state


def _invalid(record: SessionRecord, reason: str) -> InvalidStateTransition:
    return InvalidStateTransition(
        reason,
        session_id=record.session_id,
        state=record.state,
        attempt_count=record.attempt_count,
    )


def _apply(
    record: SessionRecord,
    event: SessionEvent,
    now: datetime,
    *,
    data: dict[str, Any],
    **changes: Any,
) -> Transition:
    entry = AuditEntry(event=event, timestamp=now, data=data)
    changes["events"] = (*record.events, entry)
    return Transition(record=record.model_copy(update=changes), events=(entry,))


def _terminal(
    record: SessionRecord,
    event: SessionEvent,
    now: datetime,
    state: SessionState,
    result: SessionResult,
    *,
    data: dict[str, Any],
    attempts: tuple[AttemptEntry, ...] | None = None,
    flags: tuple[SecurityFlag, ...] | None = None,
) -> Transition:
    if record.result is not None:
        raise _invalid(record, "result already written")
    return _apply(
        record,
        event,
        now,
        data={"state": state.value, **data},
        state=state,
        result=result,
        completed_at=now,
        current_step=WorkflowStep.COMPLETION,
        attempts=_discard_pending(record.attempts if attempts is None else attempts, now),
        flags=record.flags if flags is None else flags,
    )


def _resolve_attempt(
    record: SessionRecord,
    number: int,
    status: AttemptStatus,
    now: datetime,
    *,
    confidence: float | None = None,
    details: dict[str, Any] | None = None,
) -> tuple[AttemptEntry, ...]:
    resolved = []
    for attempt in record.attempts:
        if attempt.number == number and attempt.status == AttemptStatus.PENDING:
            attempt = attempt.model_copy(
                update={
                    "status": status,
                    "confidence": confidence,
                    "resolved_at": now,
                    "details": details or {},
                }
            )
        resolved.append(attempt)
    return tuple(resolved)


def _discard_pending(
    attempts: tuple[AttemptEntry, ...], now: datetime
) -> tuple[AttemptEntry, ...]:
    return tuple(
        a.model_copy(update={"status": AttemptStatus.DISCARDED, "resolved_at": now})
        if a.status == AttemptStatus.PENDING
        else a
        for a in attempts
    )


def _add_flag(
    flags: tuple[SecurityFlag, ...], flag: SecurityFlag
) -> tuple[SecurityFlag, ...]:
    return flags if flag in flags else (*flags, flag)


def _score(confidence: float) -> int:
    return max(0, min(100, round(confidence * 100)))
