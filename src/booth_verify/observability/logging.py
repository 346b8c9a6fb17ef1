"""Logging estruturado (JSON) do motor de verificação."""

from __future__ import annotations

import logging

from pythonjsonlogger.json import JsonFormatter

from booth_verify.observability.context import get_correlation_id

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s %(correlation_id)s %(service)s"

# Bibliotecas que logam cada request em INFO (URLs do verificador, tokens de auth)
_NOISY_LOGGERS = ("httpx", "httpcore", "google.auth", "urllib3")


class CorrelationIdFilter(logging.Filter):
    """Completa o record com `correlation_id` e `service`.

    Um correlation_id passado via `extra` tem precedência sobre o contexto.
    Payloads de verificação (códigos OTP, imagens, templates) nunca entram
    em `extra`.
    """

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id()
        record.service = self._service_name
        return True


def configure_logging(level: str, service_name: str) -> None:
    """Instala um único handler JSON no root logger."""

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(
        JsonFormatter(_FORMAT, rename_fields={"levelname": "level", "name": "logger"})
    )
    handler.addFilter(CorrelationIdFilter(service_name))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def short_id(session_id: str | None) -> str | None:
    """Trunca identificadores para logs (nunca logar o id completo)."""
    if not session_id:
        return None
    return session_id[:8] + "..."
