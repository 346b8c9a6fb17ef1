"""Factories de infraestrutura a partir de Settings.

Padrão seguro:
- Desenvolvimento: memory/log (suficiente para testes locais)
- Staging/produção: redis + firestore (múltiplas instâncias)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from booth_verify.application.audit import ChainedAuditSink
from booth_verify.domain.protocols import AuditSink, SessionStore
from booth_verify.domain.rate_governor import (
    InMemoryRateGovernor,
    RateGovernor,
    RedisRateGovernor,
)
from booth_verify.infra.audit_memory import InMemoryAuditLogStore, LoggingAuditSink
from booth_verify.infra.session_store_memory import InMemorySessionStore
from booth_verify.infra.session_store_redis import RedisSessionStore
from booth_verify.observability.logging import get_logger

if TYPE_CHECKING:
    from booth_verify.config.settings import Settings

logger: logging.Logger = get_logger(__name__)


def _forbid_memory_outside_dev(settings: Settings, name: str, backend: str) -> None:
    if (settings.is_production or settings.is_staging) and backend == "memory":
        msg = f"{name}=memory is unsuitable for staging/production. Use 'redis'."
        raise ValueError(msg)


def create_redis_client(settings: Settings) -> Any:
    """Cria cliente redis.asyncio a partir de REDIS_URL."""
    if not settings.redis_url:
        raise ValueError("REDIS_URL obrigatório para backend redis")

    import redis.asyncio as redis

    logger.info("Redis client created", extra={"backend": "redis"})
    return redis.from_url(settings.redis_url)


def create_session_store(settings: Settings, redis_client: Any | None = None) -> SessionStore:
    """Factory para SessionStore.

    Raises:
        ValueError: backend inválido ou memory em staging/produção
    """
    backend = settings.session_store_backend.lower()
    _forbid_memory_outside_dev(settings, "SESSION_STORE_BACKEND", backend)

    if backend == "memory":
        logger.warning("Using in-memory session store (dev only)")
        return InMemorySessionStore()

    if backend == "redis":
        logger.info("Using Redis session store")
        return RedisSessionStore(redis_client or create_redis_client(settings))

    raise ValueError(f"Unknown session store backend: {backend}")


def create_rate_governors(
    settings: Settings, redis_client: Any | None = None
) -> tuple[RateGovernor, RateGovernor]:
    """Retorna (governor por identidade, governor por cabine)."""
    backend = settings.rate_governor_backend.lower()
    _forbid_memory_outside_dev(settings, "RATE_GOVERNOR_BACKEND", backend)

    limits = {
        "identity": (settings.identity_rate_limit, settings.identity_rate_window_seconds),
        "booth": (settings.booth_rate_limit, settings.booth_rate_window_seconds),
    }
    logger.info(
        "Creating rate governors",
        extra={"backend": backend, "limits": {k: list(v) for k, v in limits.items()}},
    )

    if backend == "memory":
        return (
            InMemoryRateGovernor(*limits["identity"]),
            InMemoryRateGovernor(*limits["booth"]),
        )

    if backend == "redis":
        client = redis_client or create_redis_client(settings)
        return (
            RedisRateGovernor(client, *limits["identity"]),
            RedisRateGovernor(client, *limits["booth"]),
        )

    raise ValueError(f"Unknown rate governor backend: {backend}")


def create_audit_sink(settings: Settings, firestore_client: Any | None = None) -> AuditSink:
    """Factory para AuditSink (memory | log | firestore)."""
    backend = settings.audit_sink_backend.lower()

    if backend == "memory":
        logger.warning("Using in-memory audit sink (dev only)")
        return ChainedAuditSink(InMemoryAuditLogStore())

    if backend == "log":
        logger.info("Using logging audit sink")
        return LoggingAuditSink()

    if backend == "firestore":
        from booth_verify.infra.audit_firestore import FirestoreAuditLogStore

        if firestore_client is None:
            from google.cloud import firestore

            firestore_client = firestore.Client(project=settings.firestore_project_id)
        logger.info(
            "Using Firestore audit sink",
            extra={"collection": settings.audit_collection},
        )
        return ChainedAuditSink(
            FirestoreAuditLogStore(firestore_client, collection=settings.audit_collection)
        )

    raise ValueError(f"Unknown audit sink backend: {backend}")
