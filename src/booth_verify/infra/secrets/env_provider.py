from __future__ import annotations

import logging
import os

from booth_verify.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


class EnvSecretProvider:
    """Lê segredos de variáveis de ambiente (cabine local, dev, CI).

    Env vars não têm versão: `version` existe só para casar com a porta.
    """

    def get_secret(self, name: str, version: str = "latest") -> str:
        value = os.environ.get(name, "")
        if value:
            return value

        logger.warning("secret_missing", extra={"secret_name": name, "provider": "env"})
        raise RuntimeError(f"Secret {name} não encontrado no ambiente")

    def secret_exists(self, name: str) -> bool:
        return name in os.environ
