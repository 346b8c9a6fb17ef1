"""Testes de montagem do motor (build_engine)."""

from __future__ import annotations

import logging

import httpx
import pytest

from booth_verify.bootstrap import build_engine
from booth_verify.config.settings import Settings
from booth_verify.domain.enums import OutcomeKind, VerificationMethod
from booth_verify.domain.session import SessionState
from booth_verify.infra.identity_memory import InMemoryIdentityDirectory
from tests.helpers.fakes import FakeClock


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def directory() -> InMemoryIdentityDirectory:
    directory = InMemoryIdentityDirectory()
    directory.register("voter-1")
    return directory


def _production_settings(**overrides) -> Settings:
    params = {
        "environment": "production",
        "session_store_backend": "redis",
        "rate_governor_backend": "redis",
        "audit_sink_backend": "firestore",
        "redis_url": "redis://redis:6379/0",
        "firestore_project_id": "booth-project",
        "otp_pepper_secret": "pepper",
    }
    params.update(overrides)
    return Settings(**params)


def test_builds_local_engine_without_remote_verifier() -> None:
    engine = build_engine(Settings())

    assert engine.registry.methods == frozenset(
        {VerificationMethod.OTP, VerificationMethod.MANUAL}
    )
    assert engine.http_client is None
    assert engine.sweeper.running is False


def test_remote_methods_registered_with_base_url() -> None:
    engine = build_engine(Settings(verifier_base_url="https://verifier.test"))

    assert VerificationMethod.FACE in engine.registry
    assert VerificationMethod.DOCUMENT in engine.registry
    assert VerificationMethod.BIOMETRIC in engine.registry
    assert engine.http_client is not None


def test_invalid_configuration_is_rejected() -> None:
    with pytest.raises(ValueError, match="Configuração inválida"):
        build_engine(Settings(session_max_attempts=0, face_match_threshold=2.0))


def test_production_requires_identity_directory() -> None:
    with pytest.raises(ValueError, match="IdentityDirectory"):
        build_engine(_production_settings(), redis_client=object(), firestore_client=object())


def test_production_without_supervisors_disables_manual(directory) -> None:
    engine = build_engine(
        _production_settings(),
        redis_client=object(),
        firestore_client=object(),
        identities=directory,
    )

    assert VerificationMethod.MANUAL not in engine.registry
    assert VerificationMethod.OTP in engine.registry


@pytest.mark.asyncio
async def test_manual_override_restricted_to_configured_supervisors(directory) -> None:
    engine = build_engine(
        Settings(audit_sink_backend="memory", manual_supervisor_refs="sup-1, sup-2"),
        clock=FakeClock(),
        identities=directory,
    )
    manual = engine.registry.resolve(VerificationMethod.MANUAL)

    rejected = await manual.attempt(
        VerificationMethod.MANUAL, "voter-1", {"supervisor_ref": "sup-9", "approved": True}
    )
    accepted = await manual.attempt(
        VerificationMethod.MANUAL, "voter-1", {"supervisor_ref": "sup-2", "approved": True}
    )

    assert rejected.kind == OutcomeKind.NO_MATCH
    assert rejected.details["reason"] == "supervisor_not_authorized"
    assert accepted.kind == OutcomeKind.MATCH
    await engine.aclose()


@pytest.mark.asyncio
async def test_otp_flow_end_to_end(directory) -> None:
    clock = FakeClock()
    engine = build_engine(
        Settings(audit_sink_backend="memory", otp_pepper_secret="pepper"),
        clock=clock,
        identities=directory,
    )
    manager = engine.manager

    view = await manager.create_session("voter-1", "op-1", "booth-A")
    await manager.start_method(view.session_id, VerificationMethod.OTP)
    code = engine.otp.issue_code("voter-1")
    result = await manager.record_attempt(view.session_id, {"code": code})

    assert result.outcome == OutcomeKind.MATCH
    assert result.session.state == SessionState.SUCCESS
    assert result.session.result.score == 100
    assert [p.session_id for p in await engine.sync.pending()] == [view.session_id]
    await engine.aclose()


@pytest.mark.asyncio
async def test_remote_verifier_through_http_transport(directory) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer token-1"
        return httpx.Response(200, json={"outcome": "MATCH", "confidence": 0.97})

    engine = build_engine(
        Settings(verifier_base_url="https://verifier.test", verifier_api_token="token-1"),
        clock=FakeClock(),
        identities=directory,
        http_transport=httpx.MockTransport(handler),
    )

    view = await engine.manager.create_session("voter-1", "op-1", "booth-A")
    await engine.manager.start_method(view.session_id, VerificationMethod.FACE)
    result = await engine.manager.record_attempt(view.session_id, {"image": "b64"})

    assert result.session.state == SessionState.SUCCESS
    assert result.confidence == 0.97
    await engine.aclose()


@pytest.mark.asyncio
async def test_sweeper_lifecycle_via_engine() -> None:
    engine = build_engine(Settings(sweeper_interval_seconds=3600))

    engine.sweeper.start()
    assert engine.sweeper.running is True
    await engine.aclose()
    assert engine.sweeper.running is False
