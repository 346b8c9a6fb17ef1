"""Cliente HTTP para o serviço externo de verificação.

- Timeout sempre configurado
- Retry com backoff exponencial (429 / 5xx / timeout / conexão)
- Circuit breaker opcional
- Logging estruturado sem payloads (imagens e templates nunca vão a log)
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from booth_verify.infra.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from booth_verify.observability.logging import get_logger

if TYPE_CHECKING:
    from booth_verify.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

_TOKEN_PATTERN = re.compile(r"(token|access_token|api_key)=[^&]+")


def _sanitize_url(url: str) -> str:
    """Remove credenciais de query string para logging seguro."""
    return _TOKEN_PATTERN.sub(r"\1=***", url)


@dataclass
class HttpClientConfig:
    """Configuração do cliente HTTP (defaults conservadores)."""

    base_url: str = ""
    timeout_seconds: float = 10.0
    max_retries: int = 0
    backoff_base_seconds: float = 0.5
    backoff_max_seconds: float = 8.0
    default_headers: dict[str, str] = field(default_factory=dict)
    verify_ssl: bool = True
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)


class HttpError(Exception):
    """Erro de requisição HTTP sem expor informações sensíveis."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        is_retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.is_retryable = is_retryable


def _is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code < 600


def _calculate_backoff(attempt: int, base_seconds: float, max_seconds: float) -> float:
    return min((2**attempt) * base_seconds, max_seconds)


def _transient_error(exc: Exception, method: str, url: str, attempt: int) -> HttpError:
    """Converte timeout/conexão em HttpError retentável; demais propagam."""
    if isinstance(exc, httpx.TimeoutException):
        message = "Timeout"
    elif isinstance(exc, httpx.TransportError):
        message = "Erro de conexão"
    else:
        logger.error(
            "Erro inesperado em requisição HTTP",
            extra={"method": method, "url": _sanitize_url(url), "error_type": type(exc).__name__},
        )
        raise HttpError(f"Erro inesperado: {type(exc).__name__}") from exc

    logger.warning(
        f"{message} em requisição HTTP",
        extra={
            "method": method,
            "url": _sanitize_url(url),
            "attempt": attempt + 1,
            "error_type": type(exc).__name__,
        },
    )
    return HttpError(message, is_retryable=True)


class HttpClient:
    """Cliente HTTP assíncrono com retry e circuit breaker.

    Uso típico:
        async with HttpClient(config) as client:
            response = await client.post("/face", json=payload)
    """

    def __init__(
        self,
        config: HttpClientConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or HttpClientConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._breaker = CircuitBreaker(self._config.circuit_breaker)

    @property
    def breaker_state(self) -> CircuitState:
        return self._breaker.state

    async def _get_client(self) -> httpx.AsyncClient:
        """Retorna cliente httpx (lazy loading)."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url,
                timeout=httpx.Timeout(self._config.timeout_seconds),
                headers=self._config.default_headers,
                verify=self._config.verify_ssl,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _request_with_retry(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        client = await self._get_client()
        cfg = self._config
        last_error: HttpError | None = None

        for attempt in range(cfg.max_retries + 1):
            logger.debug(
                "Executando requisição HTTP",
                extra={"method": method, "url": _sanitize_url(url), "attempt": attempt + 1},
            )
            try:
                response = await client.request(method, url, **kwargs)
            except Exception as exc:
                last_error = _transient_error(exc, method, url, attempt)
            else:
                if response.is_success:
                    return response
                if not _is_retryable_status(response.status_code):
                    logger.warning(
                        "Requisição HTTP falhou (não retryable)",
                        extra={
                            "method": method,
                            "url": _sanitize_url(url),
                            "status_code": response.status_code,
                        },
                    )
                    raise HttpError(
                        f"HTTP {response.status_code}",
                        status_code=response.status_code,
                        is_retryable=False,
                    )
                last_error = HttpError(
                    f"HTTP {response.status_code}",
                    status_code=response.status_code,
                    is_retryable=True,
                )

            if attempt < cfg.max_retries:
                backoff = _calculate_backoff(
                    attempt, cfg.backoff_base_seconds, cfg.backoff_max_seconds
                )
                logger.info(
                    "Aguardando backoff antes de retry",
                    extra={"backoff_seconds": backoff, "next_attempt": attempt + 2},
                )
                await asyncio.sleep(backoff)

        logger.error(
            "Esgotou tentativas de retry",
            extra={
                "method": method,
                "url": _sanitize_url(url),
                "total_attempts": cfg.max_retries + 1,
            },
        )
        raise last_error or HttpError("Falha após todos os retries")

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Orquestra circuit breaker + retry."""
        if not await self._breaker.allow_request():
            logger.warning(
                "Circuit breaker aberto - falha rápida",
                extra={"method": method, "url": _sanitize_url(url)},
            )
            raise HttpError("Circuit breaker aberto", is_retryable=True)

        try:
            response = await self._request_with_retry(method, url, **kwargs)
        except HttpError as exc:
            state = await self._breaker.record_failure(exc.is_retryable)
            if state == CircuitState.OPEN:
                logger.error(
                    "Circuit breaker aberto após falhas consecutivas",
                    extra={"method": method, "failures": self._breaker.failure_count},
                )
            raise

        previous = self._breaker.state
        await self._breaker.record_success()
        if previous != CircuitState.CLOSED:
            logger.info("Circuit breaker fechado após sucesso", extra={"method": method})
        return response

    async def post(
        self,
        url: str,
        json: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        return await self.request("POST", url, json=json, **kwargs)


def create_verifier_http_client(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> HttpClient:
    """Factory do cliente do verificador externo a partir de Settings.

    Retries ficam com o SessionManager (`verifier_max_retries`); o cliente
    faz uma única chamada por tentativa.
    """
    headers = {"User-Agent": f"{settings.service_name}/{settings.version}"}
    if settings.verifier_api_token:
        headers["Authorization"] = f"Bearer {settings.verifier_api_token}"

    config = HttpClientConfig(
        base_url=settings.verifier_base_url or "",
        timeout_seconds=float(settings.verifier_timeout_seconds),
        max_retries=0,
        backoff_base_seconds=float(settings.verifier_retry_backoff_seconds),
        default_headers=headers,
        verify_ssl=settings.is_production or settings.is_staging,
        circuit_breaker=CircuitBreakerConfig(
            enabled=settings.verifier_circuit_breaker_enabled,
            fail_max=settings.verifier_circuit_breaker_fail_max,
            reset_timeout_seconds=float(settings.verifier_circuit_breaker_reset_timeout_seconds),
            half_open_max_calls=settings.verifier_circuit_breaker_half_open_max_calls,
        ),
    )

    logger.info(
        "Cliente HTTP do verificador criado",
        extra={"timeout_seconds": config.timeout_seconds, "breaker": config.circuit_breaker.enabled},
    )
    return HttpClient(config, transport=transport)
