"""Estados canônicos de uma sessão de verificação.

- Toda sessão termina em exatamente 1 estado terminal
- Nenhuma transição sai de um estado terminal
"""

from __future__ import annotations

from enum import StrEnum


class SessionState(StrEnum):
    """6 Estados canônicos de uma sessão de verificação."""

    # === Ativos ===
    INITIATED = "INITIATED"
    """Sessão criada, aguardando escolha do método."""

    IN_PROGRESS = "IN_PROGRESS"
    """Método escolhido, tentativas em andamento."""

    # === Terminais ===
    SUCCESS = "SUCCESS"
    """Identidade confirmada."""

    FAILED = "FAILED"
    """Tentativas esgotadas, verificador indisponível ou falha do operador."""

    TIMEOUT = "TIMEOUT"
    """timeout_at ultrapassado antes da conclusão."""

    CANCELLED = "CANCELLED"
    """Cancelada pelo operador."""


TERMINAL_STATES = frozenset({
    SessionState.SUCCESS,
    SessionState.FAILED,
    SessionState.TIMEOUT,
    SessionState.CANCELLED,
})
"""Estados que encerram a sessão (sem transições posteriores)."""

ACTIVE_STATES = frozenset({s for s in SessionState if s not in TERMINAL_STATES})
"""Estados "ativos": no máximo 1 por (identity_ref, booth_ref)."""
