"""Re-exports dos Protocolos de domínio para uso pela camada de aplicação."""

from __future__ import annotations

from booth_verify.domain.protocols.audit_sink import AuditSink
from booth_verify.domain.protocols.identity_directory import IdentityDirectory
from booth_verify.domain.protocols.session_store import SessionStore
from booth_verify.domain.protocols.verifier import VerifierProvider

__all__ = [
    "AuditSink",
    "IdentityDirectory",
    "SessionStore",
    "VerifierProvider",
]
