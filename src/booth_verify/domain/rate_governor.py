"""Controle de admissão por janela deslizante (rate governor).

Dois governors no motor:
- Escopo identidade: limita criação de sessões por eleitor (3 / 24h)
- Escopo cabine: limita tentativas de verificação por cabine (20 / 15min)

A verificação e o registro do evento são atômicos por chave: duas
chamadas concorrentes nunca admitem acima do limite.
"""

from __future__ import annotations

import logging
import math
import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from booth_verify.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

# KEYS[1]=chave; ARGV: now, window, limit, member
_SLIDING_WINDOW_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
if count < limit then
    redis.call('ZADD', key, now, ARGV[4])
    redis.call('EXPIRE', key, math.ceil(window))
    return {1, count + 1, 0}
end
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
local retry = math.ceil(tonumber(oldest[2]) + window - now)
return {0, count, retry}
"""


@dataclass(slots=True, frozen=True)
class RateDecision:
    """Resultado de uma consulta ao governor."""

    allowed: bool
    count: int
    limit: int
    window_seconds: int
    retry_after_seconds: int = 0


class RateGovernor(ABC):
    """Contrato abstrato de admissão por chave."""

    @abstractmethod
    async def allow(self, key: str) -> RateDecision:
        """Registra o evento se houver capacidade na janela.

        Args:
            key: escopo do limite (ex.: "identity:<ref>", "booth:<ref>")

        Returns:
            RateDecision; quando negado, nada é registrado
        """
        ...


class InMemoryRateGovernor(RateGovernor):
    """Ring buffer por chave (deque com maxlen=limit).

    Chaves cuja janela esvaziou são descartadas numa varredura feita no
    máximo uma vez por janela.

    ⚠️ Estado local ao processo: apenas dev/testes ou cabine única.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        time_fn: Callable[[], float] = time.time,
    ) -> None:
        if limit < 1:
            raise ValueError("limit deve ser >= 1")
        self._limit = limit
        self._window = window_seconds
        self._time = time_fn
        self._buffers: dict[str, deque[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = self._time()

    def _sweep(self, now: float) -> None:
        """Remove chaves sem eventos na janela (chamar com o lock)."""
        cutoff = now - self._window
        stale = [k for k, buffer in self._buffers.items() if not buffer or buffer[-1] <= cutoff]
        for key in stale:
            del self._buffers[key]
        self._last_sweep = now
        if stale:
            logger.debug("rate_governor_keys_reclaimed", extra={"count": len(stale)})

    async def allow(self, key: str) -> RateDecision:
        with self._lock:
            now = self._time()
            if now - self._last_sweep >= self._window:
                self._sweep(now)
            buffer = self._buffers.get(key)
            if buffer is None:
                buffer = self._buffers[key] = deque(maxlen=self._limit)
            cutoff = now - self._window
            while buffer and buffer[0] <= cutoff:
                buffer.popleft()

            if len(buffer) < self._limit:
                buffer.append(now)
                return RateDecision(
                    allowed=True,
                    count=len(buffer),
                    limit=self._limit,
                    window_seconds=self._window,
                )

            retry_after = max(math.ceil(buffer[0] + self._window - now), 1)
            count = len(buffer)

        logger.warning(
            "rate_limited",
            extra={
                "key_scope": key.split(":", 1)[0],
                "count": count,
                "limit": self._limit,
                "window_seconds": self._window,
                "retry_after_seconds": retry_after,
            },
        )
        return RateDecision(
            allowed=False,
            count=count,
            limit=self._limit,
            window_seconds=self._window,
            retry_after_seconds=retry_after,
        )


class RedisRateGovernor(RateGovernor):
    """Janela deslizante em sorted set Redis (script Lua atômico).

    Características:
    - Escalável para múltiplas instâncias/cabines
    - TTL da chave = janela (limpeza automática)
    """

    def __init__(
        self,
        redis_client: Any,
        limit: int,
        window_seconds: int,
        prefix: str = "rate:",
        time_fn: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis_client
        self._limit = limit
        self._window = window_seconds
        self._prefix = prefix
        self._time = time_fn

    async def allow(self, key: str) -> RateDecision:
        try:
            allowed, count, retry_after = await self._redis.eval(
                _SLIDING_WINDOW_LUA,
                1,
                f"{self._prefix}{key}",
                self._time(),
                self._window,
                self._limit,
                uuid.uuid4().hex,
            )
        except Exception as e:
            logger.error(
                "Redis rate governor error",
                extra={"key_scope": key.split(":", 1)[0], "error": type(e).__name__},
            )
            # Falha do backend não bloqueia a cabine
            return RateDecision(
                allowed=True,
                count=0,
                limit=self._limit,
                window_seconds=self._window,
            )

        decision = RateDecision(
            allowed=bool(int(allowed)),
            count=int(count),
            limit=self._limit,
            window_seconds=self._window,
            retry_after_seconds=max(int(retry_after), 0),
        )
        if not decision.allowed:
            logger.warning(
                "rate_limited",
                extra={
                    "key_scope": key.split(":", 1)[0],
                    "count": decision.count,
                    "limit": self._limit,
                    "retry_after_seconds": decision.retry_after_seconds,
                },
            )
        return decision
