"""Máquina de estados da sessão de verificação.

Exporta:
- SessionState: 6 estados canônicos
- SessionEvent: eventos de auditoria (um por mutação)
- validate_transition: validador puro
"""

from booth_verify.domain.session.events import SessionEvent
from booth_verify.domain.session.states import (
    ACTIVE_STATES,
    TERMINAL_STATES,
    SessionState,
)
from booth_verify.domain.session.transitions import TRANSITIONS, validate_transition

__all__ = [
    "SessionState",
    "SessionEvent",
    "validate_transition",
    "TRANSITIONS",
    "TERMINAL_STATES",
    "ACTIVE_STATES",
]
