"""Testes do InMemorySessionStore (compare-and-set e consultas)."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from booth_verify.domain.enums import VerificationMethod
from booth_verify.domain.errors import DuplicateActiveSession, NotFound, VersionConflict
from booth_verify.domain.session import SessionState
from booth_verify.domain.session import commands
from booth_verify.infra.session_store_memory import InMemorySessionStore

T0 = datetime(2024, 10, 6, 8, 0, tzinfo=UTC)


def _record(session_id: str = "s-1", identity_ref: str = "voter-1", minutes: int = 10):
    return commands.new_session(
        session_id=session_id,
        identity_ref=identity_ref,
        operator_ref="op-1",
        booth_ref="booth-A",
        now=T0,
        timeout=timedelta(minutes=minutes),
        max_attempts=3,
    ).record


class TestPut:
    @pytest.mark.asyncio
    async def test_insert_assigns_version_one(self):
        store = InMemorySessionStore()

        stored = await store.put(_record(), expected_version=0)

        assert stored.sync_version == 1
        assert (await store.get("s-1")).sync_version == 1

    @pytest.mark.asyncio
    async def test_insert_existing_id_conflicts(self):
        store = InMemorySessionStore()
        await store.put(_record(), 0)

        with pytest.raises(VersionConflict):
            await store.put(_record(), 0)

    @pytest.mark.asyncio
    async def test_insert_second_active_for_pair_rejected(self):
        store = InMemorySessionStore()
        await store.put(_record("s-1"), 0)

        with pytest.raises(DuplicateActiveSession):
            await store.put(_record("s-2"), 0)

    @pytest.mark.asyncio
    async def test_update_unknown_id_not_found(self):
        store = InMemorySessionStore()
        with pytest.raises(NotFound):
            await store.put(_record(), 3)

    @pytest.mark.asyncio
    async def test_stale_version_conflicts_and_keeps_stored(self):
        store = InMemorySessionStore()
        v1 = await store.put(_record(), 0)
        updated = commands.start_method(v1, VerificationMethod.FACE, T0).record
        await store.put(updated, 1)

        stale = commands.cancel(v1, T0, "late")
        with pytest.raises(VersionConflict):
            await store.put(stale.record, 1)

        current = await store.get("s-1")
        assert current.state == SessionState.IN_PROGRESS
        assert current.sync_version == 2

    @pytest.mark.asyncio
    async def test_concurrent_writers_same_version_only_one_wins(self):
        store = InMemorySessionStore()
        v1 = await store.put(_record(), 0)
        a = commands.start_method(v1, VerificationMethod.FACE, T0).record
        b = commands.cancel(v1, T0, "x").record

        results = await asyncio.gather(store.put(a, 1), store.put(b, 1), return_exceptions=True)

        assert sum(isinstance(r, VersionConflict) for r in results) == 1
        assert (await store.get("s-1")).sync_version == 2


class TestQueries:
    @pytest.mark.asyncio
    async def test_get_missing_raises_not_found(self):
        with pytest.raises(NotFound):
            await InMemorySessionStore().get("nope")

    @pytest.mark.asyncio
    async def test_find_active_filters_pair_and_state(self):
        store = InMemorySessionStore()
        v1 = await store.put(_record("s-1"), 0)
        await store.put(_record("s-2", identity_ref="voter-2"), 0)
        await store.put(commands.cancel(v1, T0, "x").record, 1)
        await store.put(_record("s-3"), 0)

        active = await store.find_active("voter-1", "booth-A")

        assert [r.session_id for r in active] == ["s-3"]

    @pytest.mark.asyncio
    async def test_find_expired_orders_by_timeout_and_limits(self):
        store = InMemorySessionStore()
        await store.put(_record("late", identity_ref="voter-1", minutes=30), 0)
        await store.put(_record("early", identity_ref="voter-2", minutes=5), 0)
        await store.put(_record("mid", identity_ref="voter-3", minutes=10), 0)

        expired = await store.find_expired(T0 + timedelta(minutes=20), limit=5)
        limited = await store.find_expired(T0 + timedelta(minutes=20), limit=1)

        assert [r.session_id for r in expired] == ["early", "mid"]
        assert [r.session_id for r in limited] == ["early"]


class TestSyncBookkeeping:
    @pytest.mark.asyncio
    async def test_mark_synced_does_not_bump_version(self):
        store = InMemorySessionStore()
        await store.put(_record(), 0)

        assert await store.mark_synced("s-1", 1) is True

        current = await store.get("s-1")
        assert current.sync_version == 1
        assert current.is_synced is True
        assert await store.list_unsynced() == []

    @pytest.mark.asyncio
    async def test_mark_synced_stale_version_rejected(self):
        store = InMemorySessionStore()
        v1 = await store.put(_record(), 0)
        await store.put(commands.start_method(v1, VerificationMethod.FACE, T0).record, 1)

        assert await store.mark_synced("s-1", 1) is False
        assert [r.session_id for r in await store.list_unsynced()] == ["s-1"]

    @pytest.mark.asyncio
    async def test_put_preserves_synced_version(self):
        store = InMemorySessionStore()
        v1 = await store.put(_record(), 0)
        await store.mark_synced("s-1", 1)

        v2 = await store.put(commands.start_method(v1, VerificationMethod.FACE, T0).record, 1)

        assert v2.synced_version == 1
        assert v2.is_synced is False
