"""Testes dos adapters de verificação (HTTP, OTP, override manual)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import httpx
import pytest

from booth_verify.domain.enums import OutcomeKind, VerificationMethod
from booth_verify.domain.errors import MethodNotSupported
from booth_verify.infra.http import HttpClient, HttpClientConfig
from booth_verify.infra.verifiers import HttpVerifierProvider, ManualOverrideVerifier, OtpVerifier


class _Clock:
    def __init__(self) -> None:
        self.current = datetime(2024, 10, 6, 8, 0, tzinfo=UTC)

    def now(self) -> datetime:
        return self.current


def _provider(handler) -> HttpVerifierProvider:
    client = HttpClient(
        HttpClientConfig(base_url="https://verifier.test"),
        transport=httpx.MockTransport(handler),
    )
    return HttpVerifierProvider(client)


class TestHttpVerifierProvider:
    @pytest.mark.asyncio
    async def test_maps_match_response(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/face"
            return httpx.Response(
                200, json={"outcome": "MATCH", "confidence": 0.91, "details": {"model": "v2"}}
            )

        outcome = await _provider(handler).attempt(
            VerificationMethod.FACE, "voter-1", {"image": "b64"}
        )

        assert outcome.kind == OutcomeKind.MATCH
        assert outcome.confidence == 0.91
        assert outcome.details == {"model": "v2"}

    @pytest.mark.asyncio
    async def test_http_error_becomes_error_outcome(self) -> None:
        outcome = await _provider(lambda request: httpx.Response(503)).attempt(
            VerificationMethod.DOCUMENT, "voter-1", {}
        )

        assert outcome.kind == OutcomeKind.ERROR
        assert outcome.details["status_code"] == 503

    @pytest.mark.asyncio
    async def test_malformed_body_becomes_error_outcome(self) -> None:
        outcome = await _provider(
            lambda request: httpx.Response(200, json={"confidence": 2})
        ).attempt(VerificationMethod.BIOMETRIC, "voter-1", {})

        assert outcome.kind == OutcomeKind.ERROR
        assert outcome.details == {"error": "malformed verifier response"}


class TestOtpVerifier:
    @pytest.mark.asyncio
    async def test_issued_code_matches_once(self) -> None:
        otp = OtpVerifier("pepper", code_length=6, clock=_Clock())
        code = otp.issue_code("voter-1")

        first = await otp.attempt(VerificationMethod.OTP, "voter-1", {"code": code})
        second = await otp.attempt(VerificationMethod.OTP, "voter-1", {"code": code})

        assert len(code) == 6 and code.isdigit()
        assert first.kind == OutcomeKind.MATCH
        assert first.confidence == 1.0
        assert second.kind == OutcomeKind.NO_MATCH
        assert second.details["reason"] == "no_active_code"

    @pytest.mark.asyncio
    async def test_wrong_code_keeps_code_active(self) -> None:
        otp = OtpVerifier("pepper", clock=_Clock())
        code = otp.issue_code("voter-1")
        wrong = "0" * 6 if code != "0" * 6 else "1" * 6

        rejected = await otp.attempt(VerificationMethod.OTP, "voter-1", {"code": wrong})
        accepted = await otp.attempt(VerificationMethod.OTP, "voter-1", {"code": code})

        assert rejected.details["reason"] == "code_mismatch"
        assert accepted.kind == OutcomeKind.MATCH

    @pytest.mark.asyncio
    async def test_expired_code(self) -> None:
        clock = _Clock()
        otp = OtpVerifier("pepper", expiry_minutes=5, clock=clock)
        code = otp.issue_code("voter-1")
        clock.current += timedelta(minutes=6)

        outcome = await otp.attempt(VerificationMethod.OTP, "voter-1", {"code": code})

        assert outcome.kind == OutcomeKind.NO_MATCH
        assert outcome.details["reason"] == "code_expired"

    @pytest.mark.asyncio
    async def test_code_bound_to_identity(self) -> None:
        otp = OtpVerifier("pepper", clock=_Clock())
        code = otp.issue_code("voter-1")
        otp.issue_code("voter-2")

        outcome = await otp.attempt(VerificationMethod.OTP, "voter-2", {"code": code})

        assert outcome.kind == OutcomeKind.NO_MATCH

    def test_digest_never_stores_plain_code(self) -> None:
        otp = OtpVerifier("pepper", clock=_Clock())
        code = otp.issue_code("voter-1")
        assert code not in repr(otp._codes)

    def test_requires_pepper(self) -> None:
        with pytest.raises(ValueError):
            OtpVerifier("")

    @pytest.mark.asyncio
    async def test_rejects_other_methods(self) -> None:
        with pytest.raises(MethodNotSupported):
            await OtpVerifier("p").attempt(VerificationMethod.FACE, "voter-1", {})


class TestManualOverrideVerifier:
    @pytest.mark.asyncio
    async def test_approved_by_supervisor(self) -> None:
        outcome = await ManualOverrideVerifier().attempt(
            VerificationMethod.MANUAL, "voter-1", {"supervisor_ref": "sup-1", "approved": True}
        )
        assert outcome.kind == OutcomeKind.MATCH
        assert outcome.details["supervisor_ref"] == "sup-1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("payload", "reason"),
        [
            ({"approved": True}, "missing_supervisor"),
            ({"supervisor_ref": "sup-1"}, "not_approved"),
            ({"supervisor_ref": "sup-1", "approved": "yes"}, "not_approved"),
        ],
    )
    async def test_rejections(self, payload, reason) -> None:
        outcome = await ManualOverrideVerifier().attempt(
            VerificationMethod.MANUAL, "voter-1", payload
        )
        assert outcome.kind == OutcomeKind.NO_MATCH
        assert outcome.details["reason"] == reason

    @pytest.mark.asyncio
    async def test_allow_list(self) -> None:
        verifier = ManualOverrideVerifier(allowed_supervisors=frozenset({"sup-1"}))
        outcome = await verifier.attempt(
            VerificationMethod.MANUAL, "voter-1", {"supervisor_ref": "sup-9", "approved": True}
        )
        assert outcome.details["reason"] == "supervisor_not_authorized"
