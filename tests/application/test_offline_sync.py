"""Testes do OfflineSyncService (cabine -> servidor central)."""

from __future__ import annotations

import pytest

from booth_verify.application.sync import OfflineSyncService
from booth_verify.domain.enums import VerificationMethod
from booth_verify.domain.session import SessionState


@pytest.mark.asyncio
async def test_new_sessions_are_pending(manager, store) -> None:
    view = await manager.create_session("voter-1", "op-1", "booth-A")
    sync = OfflineSyncService(store)

    pending = await sync.pending()

    assert [p.session_id for p in pending] == [view.session_id]
    assert pending[0].is_synced is False


@pytest.mark.asyncio
async def test_acknowledge_current_version(manager, store) -> None:
    view = await manager.create_session("voter-1", "op-1", "booth-A")
    sync = OfflineSyncService(store)

    assert await sync.acknowledge(view.session_id, view.sync_version) is True
    assert await sync.pending() == []
    assert (await manager.get_session(view.session_id)).is_synced is True


@pytest.mark.asyncio
async def test_stale_acknowledge_keeps_session_pending(manager, store) -> None:
    view = await manager.create_session("voter-1", "op-1", "booth-A")
    sync = OfflineSyncService(store)
    sent = (await sync.pending())[0]

    await manager.start_method(view.session_id, VerificationMethod.OTP)

    assert await sync.acknowledge(view.session_id, sent.sync_version) is False
    pending = await sync.pending()
    assert len(pending) == 1
    assert pending[0].state == SessionState.IN_PROGRESS
    assert pending[0].sync_version == 2


@pytest.mark.asyncio
async def test_mutation_after_ack_is_pending_again(manager, store) -> None:
    view = await manager.create_session("voter-1", "op-1", "booth-A")
    sync = OfflineSyncService(store)
    await sync.acknowledge(view.session_id, view.sync_version)

    cancelled = await manager.cancel(view.session_id)

    assert cancelled.is_synced is False
    assert [p.sync_version for p in await sync.pending()] == [2]


@pytest.mark.asyncio
async def test_pending_honours_limit(manager, store) -> None:
    await manager.create_session("voter-1", "op-1", "booth-A")
    await manager.create_session("voter-2", "op-1", "booth-A")
    sync = OfflineSyncService(store, batch_size=10)

    assert len(await sync.pending(limit=1)) == 1
    assert len(await sync.pending()) == 2
