"""Adapters de Verifier Provider por método."""

from __future__ import annotations

from booth_verify.infra.verifiers.http_verifier import HttpVerifierProvider
from booth_verify.infra.verifiers.manual import ManualOverrideVerifier
from booth_verify.infra.verifiers.otp import OtpVerifier

__all__ = ["HttpVerifierProvider", "ManualOverrideVerifier", "OtpVerifier"]
