"""Configurações do motor de verificação via variáveis de ambiente.

Todas as configurações são carregadas de env vars ou Secret Manager.
Nunca hardcode secrets (pepper de OTP, token do verificador externo).
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict

from booth_verify.infra.secrets import create_secret_provider, load_engine_secrets
from booth_verify.observability.logging import get_logger

_VALID_STORE_BACKENDS = {"memory", "redis"}
_VALID_GOVERNOR_BACKENDS = {"memory", "redis"}
_VALID_AUDIT_BACKENDS = {"memory", "log", "firestore"}


class Settings(BaseSettings):
    """Configurações lidas do ambiente."""

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    # Aplicação
    service_name: str = "booth_verify"
    version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"

    # Sessão: limites da máquina de estados
    session_default_timeout_minutes: int = 10  # timeout_at = criação + N min
    session_max_attempts: int = 3
    version_conflict_max_retries: int = 3  # re-leituras em conflito otimista
    enforce_assigned_booth: bool = False  # rejeita eleitor designado a outra cabine

    # Verificadores
    verifier_max_retries: int = 2  # tentativas extras em erro do provider
    verifier_retry_backoff_seconds: float = 0.5
    face_match_threshold: float = 0.8
    biometric_match_threshold: float = 0.7
    document_match_threshold: float = 0.7
    verifier_base_url: str | None = None  # serviço externo FACE/BIOMETRIC/DOCUMENT
    verifier_api_token: str | None = None  # Secret Manager em staging/prod
    verifier_timeout_seconds: float = 10.0
    verifier_circuit_breaker_enabled: bool = True
    verifier_circuit_breaker_fail_max: int = 5
    verifier_circuit_breaker_reset_timeout_seconds: float = 60.0
    verifier_circuit_breaker_half_open_max_calls: int = 1

    # OTP (entrega via SMS é colaborador externo)
    otp_pepper_secret: str | None = None  # Secret Manager em staging/prod
    otp_code_length: int = 6
    otp_expiry_minutes: int = 5

    # Override manual: refs de supervisor separadas por vírgula
    manual_supervisor_refs: str = ""

    # Expiry sweeper
    sweeper_interval_seconds: float = 60.0
    sweeper_batch_size: int = 100

    # Rate governors
    rate_governor_backend: str = "memory"  # memory | redis
    identity_rate_limit: int = 3  # sessões por eleitor na janela
    identity_rate_window_seconds: int = 86400  # 24h
    booth_rate_limit: int = 20  # tentativas por cabine na janela
    booth_rate_window_seconds: int = 900  # 15 min

    # Persistência
    session_store_backend: str = "memory"  # memory | redis
    redis_url: str | None = None
    audit_sink_backend: str = "log"  # memory | log | firestore
    firestore_project_id: str | None = None
    audit_collection: str = "verification_audit"

    # Sincronização offline (cabine -> servidor central)
    sync_batch_size: int = 100

    def validate_session_config(self) -> list[str]:
        """Valida limites de sessão. Retorna lista de erros (vazia = OK)."""
        errors: list[str] = []
        if self.session_default_timeout_minutes <= 0:
            errors.append("SESSION_DEFAULT_TIMEOUT_MINUTES deve ser > 0")
        if self.session_max_attempts < 1:
            errors.append("SESSION_MAX_ATTEMPTS deve ser >= 1")
        if self.version_conflict_max_retries < 1:
            errors.append("VERSION_CONFLICT_MAX_RETRIES deve ser >= 1")
        if self.verifier_max_retries < 0:
            errors.append("VERIFIER_MAX_RETRIES deve ser >= 0")
        return errors

    def validate_thresholds(self) -> list[str]:
        """Valida thresholds de confiança por método."""
        errors: list[str] = []
        thresholds = {
            "FACE_MATCH_THRESHOLD": self.face_match_threshold,
            "BIOMETRIC_MATCH_THRESHOLD": self.biometric_match_threshold,
            "DOCUMENT_MATCH_THRESHOLD": self.document_match_threshold,
        }
        for name, value in thresholds.items():
            if not 0 < value <= 1:
                errors.append(f"{name} deve estar entre 0 e 1")
        return errors

    def validate_backends(self) -> list[str]:
        """Valida backends de store, governors e auditoria por ambiente.

        Em staging/prod, memory é proibido (múltiplas instâncias).
        """
        errors: list[str] = []
        store = self.session_store_backend.lower()
        governor = self.rate_governor_backend.lower()
        audit = self.audit_sink_backend.lower()

        if store not in _VALID_STORE_BACKENDS:
            errors.append(
                f"SESSION_STORE_BACKEND '{store}' inválido. "
                f"Valores válidos: {_VALID_STORE_BACKENDS}"
            )
        if governor not in _VALID_GOVERNOR_BACKENDS:
            errors.append(
                f"RATE_GOVERNOR_BACKEND '{governor}' inválido. "
                f"Valores válidos: {_VALID_GOVERNOR_BACKENDS}"
            )
        if audit not in _VALID_AUDIT_BACKENDS:
            errors.append(
                f"AUDIT_SINK_BACKEND '{audit}' inválido. Valores válidos: {_VALID_AUDIT_BACKENDS}"
            )

        if self.is_staging or self.is_production:
            if store == "memory":
                errors.append("SESSION_STORE_BACKEND=memory é proibido em staging/production")
            if governor == "memory":
                errors.append("RATE_GOVERNOR_BACKEND=memory é proibido em staging/production")
            if audit != "firestore":
                errors.append("AUDIT_SINK_BACKEND deve ser firestore em staging/production")

        if "redis" in (store, governor) and not self.redis_url:
            errors.append("Backend redis requer REDIS_URL configurado")
        if audit == "firestore" and not self.firestore_project_id:
            errors.append("AUDIT_SINK_BACKEND=firestore requer FIRESTORE_PROJECT_ID")
        return errors

    def validate_otp_config(self) -> list[str]:
        """Valida configuração de OTP."""
        errors: list[str] = []
        if not 4 <= self.otp_code_length <= 8:
            errors.append("OTP_CODE_LENGTH deve estar entre 4 e 8")
        if not 1 <= self.otp_expiry_minutes <= 15:
            errors.append("OTP_EXPIRY_MINUTES deve estar entre 1 e 15")
        if (self.is_staging or self.is_production) and not self.otp_pepper_secret:
            errors.append("OTP_PEPPER_SECRET obrigatório em staging/production")
        return errors

    def validate_all(self) -> list[str]:
        """Agrega todas as validações."""
        return [
            *self.validate_session_config(),
            *self.validate_thresholds(),
            *self.validate_backends(),
            *self.validate_otp_config(),
        ]

    @property
    def manual_supervisors(self) -> frozenset[str]:
        """Allow-list de supervisores para o override manual."""
        return frozenset(r.strip() for r in self.manual_supervisor_refs.split(",") if r.strip())

    @property
    def is_production(self) -> bool:
        """Retorna True se ambiente é produção."""
        return self.environment.lower() in ("production", "prod")

    @property
    def is_staging(self) -> bool:
        """Retorna True se ambiente é staging."""
        return self.environment.lower() in ("staging", "stage")

    @property
    def is_development(self) -> bool:
        """Retorna True se ambiente é desenvolvimento."""
        return self.environment.lower() in ("development", "dev", "local")

    def model_post_init(self, __context: Any) -> None:
        """Carrega secrets do Secret Manager em staging/production.

        - Nunca logar valores de secrets
        - Fail-closed em produção se o pepper de OTP faltar
        """
        logger: logging.Logger = get_logger(__name__)

        if not (self.is_staging or self.is_production):
            logger.info(
                "Usando configuração local (secrets via env vars)",
                extra={"environment": self.environment},
            )
            return

        # PYTEST_CURRENT_TEST é setado pelo pytest; evita chamada real ao GCP.
        if os.getenv("PYTEST_CURRENT_TEST"):
            logger.info(
                "Pulando Secret Manager em ambiente de teste controlado",
                extra={"environment": self.environment},
            )
            return

        project_id = os.getenv("GOOGLE_CLOUD_PROJECT") or self.firestore_project_id
        if not project_id:
            logger.error(
                "GOOGLE_CLOUD_PROJECT não configurado para Secret Manager",
                extra={"environment": self.environment},
            )
            raise RuntimeError("GOOGLE_CLOUD_PROJECT obrigatório em staging/production")

        try:
            provider = create_secret_provider(backend="secret_manager", project_id=project_id)
            loaded = load_engine_secrets(provider)
        except Exception as e:
            logger.error(
                "Falha ao carregar secrets do Secret Manager",
                extra={"error": type(e).__name__, "environment": self.environment},
            )
            raise RuntimeError(
                f"Não foi possível carregar secrets: {type(e).__name__}"
            ) from e

        for attr_name, value in loaded.items():
            setattr(self, attr_name, value)

        logger.info(
            "Secrets carregados do Secret Manager",
            extra={"secrets": sorted(loaded), "environment": self.environment},
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Retorna uma instância cacheada de Settings."""
    return Settings()
