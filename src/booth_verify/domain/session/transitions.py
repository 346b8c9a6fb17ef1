"""Tabela de transições da sessão.

- TRANSITIONS[(current_state, event)] = next_state
- Estados terminais não aparecem como origem
- Validação pura: sem side effects
"""

from __future__ import annotations

from booth_verify.domain.session.events import SessionEvent
from booth_verify.domain.session.states import TERMINAL_STATES, SessionState

TRANSITIONS: dict[tuple[SessionState, SessionEvent], SessionState] = {
    # === INITIATED → ... ===
    (SessionState.INITIATED, SessionEvent.START_METHOD): SessionState.IN_PROGRESS,
    (SessionState.INITIATED, SessionEvent.CANCEL): SessionState.CANCELLED,
    (SessionState.INITIATED, SessionEvent.FORCE_TIMEOUT): SessionState.TIMEOUT,
    # === IN_PROGRESS → ... ===
    (SessionState.IN_PROGRESS, SessionEvent.RECORD_ATTEMPT): SessionState.IN_PROGRESS,
    (SessionState.IN_PROGRESS, SessionEvent.ATTEMPT_EVALUATED): SessionState.IN_PROGRESS,
    (SessionState.IN_PROGRESS, SessionEvent.COMPLETE): SessionState.SUCCESS,
    (SessionState.IN_PROGRESS, SessionEvent.FAIL): SessionState.FAILED,
    (SessionState.IN_PROGRESS, SessionEvent.CANCEL): SessionState.CANCELLED,
    (SessionState.IN_PROGRESS, SessionEvent.FORCE_TIMEOUT): SessionState.TIMEOUT,
}


def validate_transition(
    current_state: SessionState, event: SessionEvent
) -> tuple[bool, SessionState | None, str]:
    """Valida se uma transição é permitida.

    Retorna:
    - (True, next_state, ""): transição válida
    - (False, None, motivo): transição inválida

    Nunca lança exceção; apenas valida.
    """
    if current_state in TERMINAL_STATES:
        return False, None, f"Terminal state {current_state} has no transitions"

    next_state = TRANSITIONS.get((current_state, event))
    if next_state is None:
        return False, None, f"No transition from {current_state} on event {event}"

    return True, next_state, ""
