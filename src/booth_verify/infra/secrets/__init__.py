from __future__ import annotations

from .env_provider import EnvSecretProvider
from .factory import ENGINE_SECRETS, create_secret_provider, load_engine_secrets
from .gcp_provider import SecretManagerProvider
from .protocol import SecretProvider

__all__ = [
    "SecretProvider",
    "EnvSecretProvider",
    "SecretManagerProvider",
    "ENGINE_SECRETS",
    "create_secret_provider",
    "load_engine_secrets",
]
