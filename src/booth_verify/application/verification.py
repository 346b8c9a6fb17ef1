"""Registro estático de verificadores e política de thresholds por método."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from booth_verify.domain.enums import OutcomeKind, VerificationMethod
from booth_verify.domain.errors import MethodNotSupported
from booth_verify.domain.models import VerificationOutcome
from booth_verify.domain.protocols.verifier import VerifierProvider

if TYPE_CHECKING:
    from booth_verify.config.settings import Settings

# OTP e MANUAL só aceitam confirmação exata
EXACT_MATCH = 1.0


@dataclass(frozen=True, slots=True)
class ThresholdPolicy:
    """Confiança mínima para aceitar MATCH por método."""

    thresholds: Mapping[VerificationMethod, float] = field(
        default_factory=lambda: MappingProxyType(
            {
                VerificationMethod.OTP: EXACT_MATCH,
                VerificationMethod.FACE: 0.8,
                VerificationMethod.BIOMETRIC: 0.7,
                VerificationMethod.DOCUMENT: 0.7,
                VerificationMethod.MANUAL: EXACT_MATCH,
            }
        )
    )

    @classmethod
    def from_settings(cls, settings: Settings) -> ThresholdPolicy:
        return cls(
            thresholds=MappingProxyType(
                {
                    VerificationMethod.OTP: EXACT_MATCH,
                    VerificationMethod.FACE: settings.face_match_threshold,
                    VerificationMethod.BIOMETRIC: settings.biometric_match_threshold,
                    VerificationMethod.DOCUMENT: settings.document_match_threshold,
                    VerificationMethod.MANUAL: EXACT_MATCH,
                }
            )
        )

    def threshold_for(self, method: VerificationMethod) -> float:
        return self.thresholds[method]

    def accepts(self, method: VerificationMethod, outcome: VerificationOutcome) -> bool:
        """MATCH com confiança >= threshold do método."""
        return (
            outcome.kind == OutcomeKind.MATCH
            and outcome.confidence >= self.threshold_for(method)
        )


class VerifierRegistry:
    """Tabela somente-leitura VerificationMethod -> VerifierProvider.

    Montada uma vez no bootstrap; não há registro dinâmico.
    """

    def __init__(self, providers: Mapping[VerificationMethod, VerifierProvider]) -> None:
        self._providers = MappingProxyType(dict(providers))

    def __contains__(self, method: object) -> bool:
        return method in self._providers

    @property
    def methods(self) -> frozenset[VerificationMethod]:
        return frozenset(self._providers)

    def resolve(self, method: VerificationMethod) -> VerifierProvider:
        provider = self._providers.get(method)
        if provider is None:
            raise MethodNotSupported(f"no verifier registered for {method.value}")
        return provider
