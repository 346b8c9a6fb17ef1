"""Testes das factories de infraestrutura."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from booth_verify.application.audit import ChainedAuditSink
from booth_verify.config.settings import Settings
from booth_verify.domain.rate_governor import InMemoryRateGovernor, RedisRateGovernor
from booth_verify.infra.audit_memory import LoggingAuditSink
from booth_verify.infra.factories import (
    create_audit_sink,
    create_rate_governors,
    create_redis_client,
    create_session_store,
)
from booth_verify.infra.session_store_memory import InMemorySessionStore
from booth_verify.infra.session_store_redis import RedisSessionStore


def test_default_session_store_is_memory() -> None:
    assert isinstance(create_session_store(Settings()), InMemorySessionStore)


def test_redis_session_store_uses_given_client() -> None:
    settings = Settings(session_store_backend="redis", redis_url="redis://localhost:6379/0")
    store = create_session_store(settings, redis_client=MagicMock())
    assert isinstance(store, RedisSessionStore)


def test_memory_store_forbidden_in_production() -> None:
    with pytest.raises(ValueError, match="staging/production"):
        create_session_store(Settings(environment="production"))


def test_unknown_store_backend() -> None:
    with pytest.raises(ValueError, match="Unknown session store backend"):
        create_session_store(Settings(session_store_backend="sqlite"))


@pytest.mark.asyncio
async def test_rate_governors_memory() -> None:
    identity, booth = create_rate_governors(Settings(identity_rate_limit=2, booth_rate_limit=7))
    assert isinstance(identity, InMemoryRateGovernor)
    assert isinstance(booth, InMemoryRateGovernor)

    decisions = [await identity.allow("identity:voter-1") for _ in range(3)]
    assert [d.allowed for d in decisions] == [True, True, False]
    assert (await booth.allow("booth:A")).limit == 7


def test_rate_governors_redis_share_client() -> None:
    client = MagicMock()
    identity, booth = create_rate_governors(
        Settings(rate_governor_backend="redis", redis_url="redis://x"), redis_client=client
    )
    assert isinstance(identity, RedisRateGovernor)
    assert isinstance(booth, RedisRateGovernor)


def test_redis_client_requires_url() -> None:
    with pytest.raises(ValueError, match="REDIS_URL"):
        create_redis_client(Settings())


def test_audit_sink_backends() -> None:
    assert isinstance(create_audit_sink(Settings(audit_sink_backend="log")), LoggingAuditSink)
    assert isinstance(create_audit_sink(Settings(audit_sink_backend="memory")), ChainedAuditSink)


def test_firestore_audit_sink_with_injected_client() -> None:
    settings = Settings(audit_sink_backend="firestore", firestore_project_id="proj")
    sink = create_audit_sink(settings, firestore_client=MagicMock())
    assert isinstance(sink, ChainedAuditSink)


def test_unknown_audit_backend() -> None:
    with pytest.raises(ValueError, match="Unknown audit sink backend"):
        create_audit_sink(Settings(audit_sink_backend="s3"))
