"""Eventos de auditoria: um por mutação, nomeado pela transição."""

from __future__ import annotations

from enum import StrEnum


class SessionEvent(StrEnum):
    """Nomes de evento gravados no registro e no Audit Sink."""

    CREATE = "create"
    START_METHOD = "startMethod"
    RECORD_ATTEMPT = "recordAttempt"
    """Tentativa reservada (attempt_count incrementado)."""

    ATTEMPT_EVALUATED = "attemptEvaluated"
    """NO_MATCH com tentativas restantes; sessão segue IN_PROGRESS."""

    COMPLETE = "complete"
    FAIL = "fail"
    CANCEL = "cancel"
    FORCE_TIMEOUT = "forceTimeout"
