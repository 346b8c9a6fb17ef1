from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta
from typing import Any

import pytest

from booth_verify.application.audit import AuditDispatcher
from booth_verify.application.session_manager import SessionManager
from booth_verify.application.verification import VerifierRegistry
from booth_verify.config.settings import get_settings
from booth_verify.domain.enums import VerificationMethod
from booth_verify.domain.rate_governor import InMemoryRateGovernor
from booth_verify.infra.identity_memory import InMemoryIdentityDirectory
from booth_verify.infra.session_store_memory import InMemorySessionStore
from tests.helpers.fakes import FakeClock, RecordingSink, ScriptedVerifier


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def verifier() -> ScriptedVerifier:
    return ScriptedVerifier()


@pytest.fixture
def identities() -> InMemoryIdentityDirectory:
    directory = InMemoryIdentityDirectory()
    directory.register("voter-1", assigned_booth_ref="booth-A")
    directory.register("voter-2")
    directory.register("voter-blocked", is_blocked=True)
    return directory


@pytest.fixture
def make_manager(
    clock: FakeClock,
    store: InMemorySessionStore,
    sink: RecordingSink,
    verifier: ScriptedVerifier,
    identities: InMemoryIdentityDirectory,
) -> Callable[..., SessionManager]:
    def _make(**overrides: Any) -> SessionManager:
        params: dict[str, Any] = {
            "store": store,
            "registry": VerifierRegistry(
                {
                    VerificationMethod.FACE: verifier,
                    VerificationMethod.OTP: verifier,
                    VerificationMethod.MANUAL: verifier,
                }
            ),
            "audit": AuditDispatcher(sink),
            "identities": identities,
            "identity_governor": InMemoryRateGovernor(100, 86400, time_fn=clock.timestamp),
            "booth_governor": InMemoryRateGovernor(100, 900, time_fn=clock.timestamp),
            "clock": clock,
            "session_timeout": timedelta(minutes=10),
            "max_attempts": 3,
        }
        params.update(overrides)
        return SessionManager(**params)

    return _make


@pytest.fixture
def manager(make_manager: Callable[..., SessionManager]) -> SessionManager:
    return make_manager()
