from __future__ import annotations

import logging
import os
from typing import Any

from booth_verify.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


class SecretManagerProvider:
    """Segredos do motor no Google Cloud Secret Manager.

    A service account da cabine/servidor precisa de secretAccessor. O
    cliente só é criado no primeiro acesso; testes injetam `client`.
    """

    def __init__(self, project_id: str | None = None, client: Any | None = None) -> None:
        self._project_id = project_id or os.getenv("GOOGLE_CLOUD_PROJECT")
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            from google.cloud import secretmanager

            self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    def _secret_path(self, name: str) -> str:
        if not self._project_id:
            raise RuntimeError(
                "project_id não configurado (GOOGLE_CLOUD_PROJECT ou argumento do construtor)"
            )
        return f"projects/{self._project_id}/secrets/{name}"

    def _build_secret_name(self, name: str, version: str = "latest") -> str:
        return f"{self._secret_path(name)}/versions/{version}"

    def get_secret(self, name: str, version: str = "latest") -> str:
        path = self._build_secret_name(name, version)
        try:
            data = self.client.access_secret_version(name=path).payload.data
        except Exception as e:
            logger.error(
                "secret_manager_access_failed",
                extra={"secret_name": name, "version": version, "error_type": type(e).__name__},
            )
            raise RuntimeError(
                f"Não foi possível acessar secret {name}: acesso negado ou não existe"
            ) from e

        logger.info("secret_loaded", extra={"secret_name": name, "provider": "secret_manager"})
        return data.decode("utf-8")

    def secret_exists(self, name: str) -> bool:
        try:
            self.client.get_secret(name=self._secret_path(name))
        except Exception:  # pylint: disable=broad-except
            return False
        return True
