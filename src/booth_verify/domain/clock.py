"""Fonte de tempo injetável."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    """Porta de relógio (sempre UTC, timezone-aware)."""

    def now(self) -> datetime:
        """Retorna o instante corrente."""


class SystemClock:
    """Relógio de parede do sistema."""

    def now(self) -> datetime:
        return datetime.now(tz=UTC)
