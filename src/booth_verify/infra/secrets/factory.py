from __future__ import annotations

import logging

from booth_verify.observability.logging import get_logger

from .env_provider import EnvSecretProvider
from .gcp_provider import SecretManagerProvider
from .protocol import SecretProvider

logger: logging.Logger = get_logger(__name__)

# Nome no Secret Manager -> atributo em Settings
ENGINE_SECRETS: dict[str, str] = {
    "OTP_PEPPER_SECRET": "otp_pepper_secret",
    "VERIFIER_API_TOKEN": "verifier_api_token",
}


def create_secret_provider(backend: str = "env", project_id: str | None = None) -> SecretProvider:
    """Factory para criar o provider de secrets apropriado."""
    if backend == "env":
        logger.info("Usando EnvSecretProvider para secrets")
        return EnvSecretProvider()

    if backend == "secret_manager":
        logger.info(
            "Usando SecretManagerProvider para secrets",
            extra={"project_id": project_id},
        )
        return SecretManagerProvider(project_id=project_id)

    raise ValueError(f"Backend de secrets não reconhecido: {backend}")


def load_engine_secrets(provider: SecretProvider) -> dict[str, str]:
    """Carrega os secrets do motor de verificação.

    OTP_PEPPER_SECRET é obrigatório; VERIFIER_API_TOKEN é opcional (o
    serviço externo pode estar em rede privada sem token).
    """
    secrets: dict[str, str] = {}
    for secret_name, attr_name in ENGINE_SECRETS.items():
        if secret_name == "OTP_PEPPER_SECRET":
            secrets[attr_name] = provider.get_secret(secret_name)
            continue
        if provider.secret_exists(secret_name):
            secrets[attr_name] = provider.get_secret(secret_name)
        else:
            logger.warning(
                "Secret opcional não encontrado",
                extra={"secret_name": secret_name},
            )
    return secrets
