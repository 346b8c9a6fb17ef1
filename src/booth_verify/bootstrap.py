"""Montagem do motor de verificação a partir de Settings.

Uso típico (camada HTTP ou worker da cabine):
    engine = build_engine()
    engine.sweeper.start()
    ...
    await engine.aclose()
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

import httpx

from booth_verify.application.audit import AuditDispatcher
from booth_verify.application.expiry_sweeper import ExpirySweeper
from booth_verify.application.session_manager import SessionManager
from booth_verify.application.sync import OfflineSyncService
from booth_verify.application.verification import ThresholdPolicy, VerifierRegistry
from booth_verify.config.settings import Settings, get_settings
from booth_verify.domain.clock import Clock, SystemClock
from booth_verify.domain.enums import VerificationMethod
from booth_verify.domain.protocols import IdentityDirectory, VerifierProvider
from booth_verify.infra.factories import (
    create_audit_sink,
    create_rate_governors,
    create_redis_client,
    create_session_store,
)
from booth_verify.infra.http import HttpClient, create_verifier_http_client
from booth_verify.infra.identity_memory import InMemoryIdentityDirectory
from booth_verify.infra.verifiers import HttpVerifierProvider, ManualOverrideVerifier, OtpVerifier
from booth_verify.observability.logging import configure_logging, get_logger

logger = get_logger(__name__)

_REMOTE_METHODS = (
    VerificationMethod.FACE,
    VerificationMethod.BIOMETRIC,
    VerificationMethod.DOCUMENT,
)


@dataclass(slots=True)
class VerificationEngine:
    """Componentes montados do motor."""

    settings: Settings
    manager: SessionManager
    sweeper: ExpirySweeper
    sync: OfflineSyncService
    registry: VerifierRegistry
    otp: OtpVerifier
    http_client: HttpClient | None = None

    async def aclose(self) -> None:
        await self.sweeper.stop()
        if self.http_client is not None:
            await self.http_client.close()


def _otp_pepper(settings: Settings) -> str:
    if settings.otp_pepper_secret:
        return settings.otp_pepper_secret
    if settings.is_production or settings.is_staging:
        raise ValueError("OTP_PEPPER_SECRET obrigatório em staging/production")
    logger.warning("OTP_PEPPER_SECRET ausente; usando pepper efêmero (dev only)")
    return secrets.token_urlsafe(32)


def _build_registry(
    settings: Settings,
    otp: OtpVerifier,
    http_client: HttpClient | None,
) -> VerifierRegistry:
    providers: dict[VerificationMethod, VerifierProvider] = {VerificationMethod.OTP: otp}
    supervisors = settings.manual_supervisors
    if supervisors:
        providers[VerificationMethod.MANUAL] = ManualOverrideVerifier(supervisors)
    elif settings.is_production or settings.is_staging:
        logger.warning("MANUAL_SUPERVISOR_REFS ausente; override manual desabilitado")
    else:
        logger.warning("MANUAL_SUPERVISOR_REFS ausente; override manual aceita qualquer supervisor")
        providers[VerificationMethod.MANUAL] = ManualOverrideVerifier()
    if http_client is not None:
        remote = HttpVerifierProvider(http_client)
        for method in _REMOTE_METHODS:
            providers[method] = remote
    else:
        logger.warning(
            "VERIFIER_BASE_URL ausente; FACE/BIOMETRIC/DOCUMENT indisponíveis",
            extra={"methods": [m.value for m in _REMOTE_METHODS]},
        )
    return VerifierRegistry(providers)


def build_engine(
    settings: Settings | None = None,
    *,
    clock: Clock | None = None,
    identities: IdentityDirectory | None = None,
    redis_client: Any | None = None,
    firestore_client: Any | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> VerificationEngine:
    """Valida configuração e monta o motor completo.

    Raises:
        ValueError: configuração inválida (lista agregada de erros)
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.service_name)

    validation_errors = settings.validate_all()
    if validation_errors:
        raise ValueError(f"Configuração inválida: {'; '.join(validation_errors)}")

    clock = clock or SystemClock()
    needs_redis = "redis" in (
        settings.session_store_backend.lower(),
        settings.rate_governor_backend.lower(),
    )
    if needs_redis and redis_client is None:
        redis_client = create_redis_client(settings)

    store = create_session_store(settings, redis_client=redis_client)
    identity_governor, booth_governor = create_rate_governors(settings, redis_client=redis_client)
    audit = AuditDispatcher(create_audit_sink(settings, firestore_client=firestore_client))

    otp = OtpVerifier(
        _otp_pepper(settings),
        code_length=settings.otp_code_length,
        expiry_minutes=settings.otp_expiry_minutes,
        clock=clock,
    )
    http_client = (
        create_verifier_http_client(settings, transport=http_transport)
        if settings.verifier_base_url
        else None
    )
    registry = _build_registry(settings, otp, http_client)

    if identities is None:
        if settings.is_production or settings.is_staging:
            raise ValueError("IdentityDirectory obrigatório em staging/production")
        identities = InMemoryIdentityDirectory()

    manager = SessionManager(
        store=store,
        registry=registry,
        audit=audit,
        identities=identities,
        identity_governor=identity_governor,
        booth_governor=booth_governor,
        clock=clock,
        policy=ThresholdPolicy.from_settings(settings),
        session_timeout=timedelta(minutes=settings.session_default_timeout_minutes),
        max_attempts=settings.session_max_attempts,
        conflict_retries=settings.version_conflict_max_retries,
        verifier_retries=settings.verifier_max_retries,
        verifier_backoff_seconds=settings.verifier_retry_backoff_seconds,
        enforce_assigned_booth=settings.enforce_assigned_booth,
    )
    sweeper = ExpirySweeper(
        manager,
        store,
        clock=clock,
        interval_seconds=settings.sweeper_interval_seconds,
        batch_size=settings.sweeper_batch_size,
    )

    logger.info(
        "verification_engine_built",
        extra={
            "environment": settings.environment,
            "methods": sorted(m.value for m in registry.methods),
            "session_store_backend": settings.session_store_backend,
            "audit_sink_backend": settings.audit_sink_backend,
        },
    )
    return VerificationEngine(
        settings=settings,
        manager=manager,
        sweeper=sweeper,
        sync=OfflineSyncService(store, batch_size=settings.sync_batch_size),
        registry=registry,
        otp=otp,
        http_client=http_client,
    )
