"""Camada de infraestrutura: adapters para serviços externos.

- Session: InMemorySessionStore, RedisSessionStore, create_session_store
- Audit: InMemoryAuditLogStore, LoggingAuditSink, FirestoreAuditLogStore
- HTTP: HttpClient (verificador externo)
- Secrets: infra.secrets

Infraestrutura não decide regra de negócio; nenhum import de config em
tempo de execução aqui (config depende de infra.secrets).
"""

from booth_verify.infra.audit_memory import InMemoryAuditLogStore, LoggingAuditSink
from booth_verify.infra.http import HttpClient, HttpClientConfig, HttpError
from booth_verify.infra.session_store_memory import InMemorySessionStore
from booth_verify.infra.session_store_redis import RedisSessionStore

__all__ = [
    "InMemorySessionStore",
    "RedisSessionStore",
    "InMemoryAuditLogStore",
    "LoggingAuditSink",
    "HttpClient",
    "HttpClientConfig",
    "HttpError",
]
