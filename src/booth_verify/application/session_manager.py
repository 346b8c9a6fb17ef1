"""Session Manager: orquestra o ciclo de vida das sessões de verificação.

Responsabilidades:
- Elegibilidade, unicidade por (identidade, cabine) e rate limiting
- Aplicar transições puras (domain.session.commands) via compare-and-set
- Reservar tentativas antes de chamar o verificador externo
- Publicar eventos no Audit Sink somente após commit

Não há lock de processo sobre a sessão: a ordem das mutações é decidida
exclusivamente pela `sync_version` no SessionStore.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from booth_verify.application.audit import AuditDispatcher
from booth_verify.application.verification import ThresholdPolicy, VerifierRegistry
from booth_verify.domain.clock import Clock, SystemClock
from booth_verify.domain.enums import AttemptStatus, OutcomeKind, VerificationMethod
from booth_verify.domain.errors import (
    DuplicateActiveSession,
    IdentityNotEligible,
    InvalidStateTransition,
    MethodNotSupported,
    RateLimited,
    SessionExpired,
    VerifierUnavailable,
    VersionConflict,
)
from booth_verify.domain.models import (
    AttemptResult,
    SessionRecord,
    SessionView,
    VerificationOutcome,
)
from booth_verify.domain.protocols import IdentityDirectory, SessionStore, VerifierProvider
from booth_verify.domain.rate_governor import RateGovernor
from booth_verify.domain.session import commands
from booth_verify.domain.session.commands import Transition
from booth_verify.domain.session.states import SessionState
from booth_verify.observability.logging import get_logger, short_id
from booth_verify.observability.timing import timed
from booth_verify.utils.ids import new_session_id

logger: logging.Logger = get_logger(__name__)

Builder = Callable[[SessionRecord, datetime], Transition | None]


class SessionManager:
    """Ponto único de mutação de SessionRecord."""

    def __init__(
        self,
        *,
        store: SessionStore,
        registry: VerifierRegistry,
        audit: AuditDispatcher,
        identities: IdentityDirectory,
        identity_governor: RateGovernor,
        booth_governor: RateGovernor,
        clock: Clock | None = None,
        policy: ThresholdPolicy | None = None,
        session_timeout: timedelta = timedelta(minutes=10),
        max_attempts: int = 3,
        conflict_retries: int = 3,
        verifier_retries: int = 2,
        verifier_backoff_seconds: float = 0.0,
        enforce_assigned_booth: bool = False,
        id_factory: Callable[[], str] = new_session_id,
    ) -> None:
        self._store = store
        self._registry = registry
        self._audit = audit
        self._identities = identities
        self._identity_governor = identity_governor
        self._booth_governor = booth_governor
        self._clock = clock or SystemClock()
        self._policy = policy or ThresholdPolicy()
        self._session_timeout = session_timeout
        self._max_attempts = max_attempts
        self._conflict_retries = conflict_retries
        self._verifier_retries = verifier_retries
        self._verifier_backoff = verifier_backoff_seconds
        self._enforce_assigned_booth = enforce_assigned_booth
        self._id_factory = id_factory
        self._pair_locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    # ------------------------------------------------------------------
    # Operações públicas
    # ------------------------------------------------------------------

    async def create_session(
        self, identity_ref: str, operator_ref: str, booth_ref: str
    ) -> SessionView:
        """Cria sessão INITIATED para o par (identidade, cabine).

        Raises:
            IdentityNotEligible, DuplicateActiveSession, RateLimited
        """
        status = await self._identities.find_active_identity(identity_ref)
        if not status.exists:
            raise IdentityNotEligible("identity not found")
        if status.is_blocked:
            raise IdentityNotEligible("identity is blocked")
        if (
            self._enforce_assigned_booth
            and status.assigned_booth_ref
            and status.assigned_booth_ref != booth_ref
        ):
            raise IdentityNotEligible("identity assigned to another booth")

        async with self._pair_lock(identity_ref, booth_ref):
            await self._ensure_no_active_session(identity_ref, booth_ref)

            decision = await self._identity_governor.allow(f"identity:{identity_ref}")
            if not decision.allowed:
                raise RateLimited(
                    "too many sessions for identity",
                    retry_after_seconds=decision.retry_after_seconds,
                )

            transition = commands.new_session(
                session_id=self._id_factory(),
                identity_ref=identity_ref,
                operator_ref=operator_ref,
                booth_ref=booth_ref,
                now=self._clock.now(),
                timeout=self._session_timeout,
                max_attempts=self._max_attempts,
            )
            stored = await self._store.put(transition.record, expected_version=0)

        await self._audit.publish(stored.session_id, transition.events)
        logger.info(
            "session_created",
            extra={
                "session_id": short_id(stored.session_id),
                "timeout_at": stored.timeout_at.isoformat(),
                "max_attempts": stored.max_attempts,
            },
        )
        return stored.to_view()

    async def start_method(self, session_id: str, method: VerificationMethod) -> SessionView:
        if method not in self._registry:
            record = await self._store.get(session_id)
            raise MethodNotSupported(
                f"no verifier registered for {method.value}",
                session_id=session_id,
                state=record.state,
                attempt_count=record.attempt_count,
            )
        stored, _ = await self._mutate(
            session_id, lambda record, now: commands.start_method(record, method, now)
        )
        logger.info(
            "session_method_started",
            extra={"session_id": short_id(session_id), "method": method.value},
        )
        return stored.to_view()

    async def record_attempt(self, session_id: str, payload: dict[str, Any]) -> AttemptResult:
        """Executa uma tentativa de verificação.

        Fluxo: pré-validação -> governor da cabine -> reserva (commit) ->
        verificador -> resolução (commit). O payload nunca é persistido.
        """
        record = await self._store.get(session_id)
        await self._check_attempt_allowed(record)

        decision = await self._booth_governor.allow(f"booth:{record.booth_ref}")
        if not decision.allowed:
            raise RateLimited(
                "too many attempts for booth",
                retry_after_seconds=decision.retry_after_seconds,
                session_id=session_id,
                state=record.state,
                attempt_count=record.attempt_count,
            )

        reserved, _ = await self._mutate(session_id, commands.reserve_attempt)
        number = reserved.attempt_count
        method = reserved.method
        if method is None:
            raise InvalidStateTransition(
                "method not selected", session_id=session_id, state=reserved.state
            )

        outcome, error_details = await self._invoke_verifier(
            self._registry.resolve(method), method, reserved, payload
        )

        stored, transition = await self._mutate(
            session_id,
            lambda current, now: self._resolve(current, now, number, method, outcome, error_details),
        )
        applied = transition is not None

        if outcome is None:
            if applied:
                logger.error(
                    "session_failed_verifier_unavailable",
                    extra={"session_id": short_id(session_id), "attempt": number},
                )
                raise VerifierUnavailable(
                    "verifier unavailable",
                    session_id=session_id,
                    state=stored.state,
                    attempt_count=stored.attempt_count,
                )
            outcome = VerificationOutcome(kind=OutcomeKind.ERROR, details=error_details)

        logger.info(
            "attempt_resolved",
            extra={
                "session_id": short_id(session_id),
                "attempt": number,
                "outcome": outcome.kind.value,
                "confidence": outcome.confidence,
                "state": stored.state,
                "applied": applied,
            },
        )
        return AttemptResult(
            session=stored.to_view(),
            outcome=outcome.kind,
            confidence=outcome.confidence,
            applied=applied,
        )

    async def cancel(self, session_id: str, reason: str = "cancelled by operator") -> SessionView:
        stored, _ = await self._mutate(
            session_id, lambda record, now: commands.cancel(record, now, reason)
        )
        logger.info("session_cancelled", extra={"session_id": short_id(session_id)})
        return stored.to_view()

    async def complete(
        self,
        session_id: str,
        score: int,
        details: dict[str, Any] | None = None,
    ) -> SessionView:
        """Conclusão pelo operador (ex.: após revisão manual)."""
        stored, _ = await self._mutate(
            session_id,
            lambda record, now: commands.complete(record, now, score=score, details=details),
        )
        logger.info(
            "session_completed", extra={"session_id": short_id(session_id), "score": score}
        )
        return stored.to_view()

    async def fail(self, session_id: str, reason: str) -> SessionView:
        stored, _ = await self._mutate(
            session_id, lambda record, now: commands.fail(record, now, reason)
        )
        logger.info("session_failed", extra={"session_id": short_id(session_id)})
        return stored.to_view()

    async def force_timeout(self, session_id: str) -> SessionView:
        """Uso do sweeper. Idempotente: sessão terminal não gera evento."""
        stored, transition = await self._mutate(session_id, commands.force_timeout)
        if transition is not None:
            logger.info("session_timed_out", extra={"session_id": short_id(session_id)})
        return stored.to_view()

    async def get_session(self, session_id: str) -> SessionView:
        record = await self._store.get(session_id)
        return record.to_view()

    # ------------------------------------------------------------------
    # Internos
    # ------------------------------------------------------------------

    def _pair_lock(self, identity_ref: str, booth_ref: str) -> asyncio.Lock:
        key = (identity_ref, booth_ref)
        lock = self._pair_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._pair_locks[key] = lock
        return lock

    async def _ensure_no_active_session(self, identity_ref: str, booth_ref: str) -> None:
        now = self._clock.now()
        for existing in await self._store.find_active(identity_ref, booth_ref):
            if existing.is_expired(now):
                # Vencida e ainda não varrida: encerra antes de abrir outra
                await self.force_timeout(existing.session_id)
                continue
            raise DuplicateActiveSession(
                "active session exists for identity and booth",
                session_id=existing.session_id,
                state=existing.state,
                attempt_count=existing.attempt_count,
            )

    async def _check_attempt_allowed(self, record: SessionRecord) -> None:
        """Pré-validação sem efeitos (não consome cota do governor)."""
        try:
            commands.reserve_attempt(record, self._clock.now())
        except InvalidStateTransition:
            exhausted = (
                record.state == SessionState.IN_PROGRESS
                and record.attempt_count >= record.max_attempts
                and not record.pending_attempts
            )
            if exhausted:
                await self._mutate(record.session_id, self._fail_exhausted)
            raise

    @staticmethod
    def _fail_exhausted(record: SessionRecord, now: datetime) -> Transition | None:
        if record.is_terminal or record.pending_attempts:
            return None
        return commands.fail(record, now, commands.MAX_ATTEMPTS_REASON)

    async def _invoke_verifier(
        self,
        provider: VerifierProvider,
        method: VerificationMethod,
        record: SessionRecord,
        payload: dict[str, Any],
    ) -> tuple[VerificationOutcome | None, dict[str, Any]]:
        """Chama o provider com até `verifier_retries` repetições em erro.

        Retorna (outcome, {}) ou (None, detalhes do último erro).
        """
        last_error: dict[str, Any] = {}

        for call in range(self._verifier_retries + 1):
            try:
                with timed("verifier", method=method.value, attempt=record.attempt_count):
                    outcome = await provider.attempt(method, record.identity_ref, payload)
            except VerifierUnavailable as e:
                last_error = {"error": e.message}
            except Exception as e:
                logger.error(
                    "verifier_unexpected_error",
                    extra={
                        "session_id": short_id(record.session_id),
                        "method": method.value,
                        "error": type(e).__name__,
                    },
                )
                last_error = {"error": type(e).__name__}
            else:
                if outcome.kind != OutcomeKind.ERROR:
                    return outcome, {}
                last_error = dict(outcome.details)

            logger.warning(
                "verifier_call_failed",
                extra={
                    "session_id": short_id(record.session_id),
                    "method": method.value,
                    "call": call + 1,
                    "max_calls": self._verifier_retries + 1,
                },
            )
            if call < self._verifier_retries and self._verifier_backoff > 0:
                await asyncio.sleep(self._verifier_backoff * (2**call))

        return None, last_error

    def _resolve(
        self,
        record: SessionRecord,
        now: datetime,
        number: int,
        method: VerificationMethod,
        outcome: VerificationOutcome | None,
        error_details: dict[str, Any],
    ) -> Transition | None:
        """Interpreta o outcome contra o estado corrente (relido)."""
        if record.is_terminal and record.state != SessionState.TIMEOUT:
            return None
        if record.state == SessionState.TIMEOUT or record.is_expired(now):
            raise SessionExpired(
                "session expired while verifier was running",
                session_id=record.session_id,
                state=record.state,
                attempt_count=record.attempt_count,
            )
        if not any(
            a.number == number and a.status == AttemptStatus.PENDING for a in record.attempts
        ):
            return None

        if outcome is None:
            return commands.verifier_unavailable(record, number, now, details=error_details)
        if self._policy.accepts(method, outcome):
            return commands.accept_attempt(
                record, number, now, confidence=outcome.confidence, details=outcome.details
            )
        return commands.reject_attempt(
            record,
            number,
            now,
            confidence=outcome.confidence,
            details={**outcome.details, "outcome": outcome.kind.value},
        )

    async def _mutate(
        self, session_id: str, build: Builder
    ) -> tuple[SessionRecord, Transition | None]:
        """Lê, aplica `build` e grava com compare-and-set.

        Em VersionConflict relê e reaplica até `conflict_retries` vezes.
        `build` retornando None significa no-op (nada gravado nem publicado).
        """
        for retry in range(self._conflict_retries + 1):
            current = await self._store.get(session_id)
            transition = build(current, self._clock.now())
            if transition is None:
                return current, None
            try:
                stored = await self._store.put(
                    transition.record, expected_version=current.sync_version
                )
            except VersionConflict:
                logger.info(
                    "version_conflict_retry",
                    extra={
                        "session_id": short_id(session_id),
                        "expected_version": current.sync_version,
                        "retry": retry + 1,
                    },
                )
                if retry >= self._conflict_retries:
                    raise
                continue

            await self._audit.publish(session_id, transition.events)
            return stored, transition

        raise VersionConflict("retries exhausted", session_id=session_id)
