from __future__ import annotations

from typing import Protocol


class SecretProvider(Protocol):
    """Origem dos segredos do motor (pepper de OTP, token do verificador).

    Valores nunca vão para log. Ausência de um secret é RuntimeError.
    """

    def get_secret(self, name: str, version: str = "latest") -> str: ...

    def secret_exists(self, name: str) -> bool: ...
