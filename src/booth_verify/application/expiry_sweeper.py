"""Varredura periódica de sessões vencidas (força TIMEOUT)."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from booth_verify.application.session_manager import SessionManager
from booth_verify.domain.clock import Clock, SystemClock
from booth_verify.domain.errors import InvalidStateTransition, NotFound, VersionConflict
from booth_verify.domain.protocols import SessionStore
from booth_verify.domain.session.states import SessionState
from booth_verify.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)


class ExpirySweeper:
    """Loop asyncio que chama `force_timeout` em lotes.

    Conflitos de versão e sessões já encerradas por outro caminho são
    esperados e ignorados; erros inesperados são logados sem parar o loop.
    """

    def __init__(
        self,
        manager: SessionManager,
        store: SessionStore,
        clock: Clock | None = None,
        interval_seconds: float = 60.0,
        batch_size: int = 100,
    ) -> None:
        self._manager = manager
        self._store = store
        self._clock = clock or SystemClock()
        self._interval = interval_seconds
        self._batch_size = batch_size
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        """Processa um lote; retorna quantas sessões foram para TIMEOUT."""
        expired = await self._store.find_expired(self._clock.now(), self._batch_size)
        timed_out = 0

        for record in expired:
            try:
                view = await self._manager.force_timeout(record.session_id)
            except (VersionConflict, InvalidStateTransition, NotFound) as e:
                logger.debug(
                    "sweeper_skip",
                    extra={"session_id": short_id(record.session_id), "reason": e.kind.value},
                )
                continue
            except Exception as e:
                logger.error(
                    "sweeper_error",
                    extra={"session_id": short_id(record.session_id), "error": type(e).__name__},
                )
                continue
            if view.state == SessionState.TIMEOUT and record.is_active:
                timed_out += 1

        if expired:
            logger.info(
                "sweeper_batch_done",
                extra={"scanned": len(expired), "timed_out": timed_out},
            )
        return timed_out

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error("sweeper_run_failed", extra={"error": type(e).__name__})
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        """Agenda o loop no event loop corrente (idempotente)."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="expiry-sweeper")
        logger.info("sweeper_started", extra={"interval_seconds": self._interval})

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("sweeper_stopped")
