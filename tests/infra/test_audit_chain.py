"""Testes da trilha encadeada em memória, do sink de log e do dispatcher."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import pytest

from booth_verify.application.audit import (
    AuditChainConflict,
    AuditDispatcher,
    ChainedAuditSink,
    RecordAuditEventUseCase,
)
from booth_verify.domain.audit import verify_chain
from booth_verify.domain.models import AuditEntry
from booth_verify.domain.session import SessionEvent
from booth_verify.infra.audit_memory import InMemoryAuditLogStore, LoggingAuditSink
from booth_verify.observability.context import correlation_scope

T0 = datetime(2024, 10, 6, 8, 0, tzinfo=UTC)


class _AlwaysConflictStore(InMemoryAuditLogStore):
    def append_event(self, record, expected_prev_hash):
        return False


def test_hash_chain_links_prev_hash():
    store = InMemoryAuditLogStore()
    use_case = RecordAuditEventUseCase(store=store)

    first = use_case.execute(session_id="s-1", event="create", timestamp=T0, data={})
    second = use_case.execute(session_id="s-1", event="cancel", timestamp=T0, data={"r": 1})

    assert second.prev_hash == first.hash
    assert second.sequence == 2
    assert verify_chain(store.list_events("s-1")) is True


def test_verify_chain_detects_tampering():
    store = InMemoryAuditLogStore()
    use_case = RecordAuditEventUseCase(store=store)
    use_case.execute(session_id="s-1", event="create", timestamp=T0, data={})
    use_case.execute(session_id="s-1", event="cancel", timestamp=T0, data={})

    events = store.list_events("s-1")
    events[0] = events[0].model_copy(update={"data": {"forged": True}})

    assert verify_chain(events) is False


def test_chain_conflict_exhausts_retries():
    use_case = RecordAuditEventUseCase(store=_AlwaysConflictStore(), max_retries=2)
    with pytest.raises(AuditChainConflict):
        use_case.execute(session_id="s-1", event="create", timestamp=T0, data={})


@pytest.mark.asyncio
async def test_chained_sink_propagates_correlation_id():
    store = InMemoryAuditLogStore()
    sink = ChainedAuditSink(store)

    with correlation_scope("corr-123"):
        await sink.append("s-1", "create", T0, {"booth_ref": "booth-A"})

    [record] = store.list_events("s-1")
    assert record.correlation_id == "corr-123"
    assert record.data == {"booth_ref": "booth-A"}


@pytest.mark.asyncio
async def test_logging_sink_emits_event(caplog):
    caplog.set_level(logging.INFO, logger="booth_verify.audit")

    await LoggingAuditSink().append("session-abcdef123", "complete", T0, {"score": 90})

    [log] = [r for r in caplog.records if r.name == "booth_verify.audit"]
    assert log.event == "complete"
    assert log.session_id == "session-..."


class _FailingSink:
    async def append(self, session_id, event, timestamp, data):
        raise RuntimeError("down")


class _ListSink:
    def __init__(self):
        self.items = []

    async def append(self, session_id, event, timestamp, data):
        self.items.append((event, data))


@pytest.mark.asyncio
async def test_dispatcher_redacts_before_sink():
    sink = _ListSink()
    entry = AuditEntry(
        event=SessionEvent.ATTEMPT_EVALUATED, timestamp=T0, data={"code": "1234", "attempt": 1}
    )

    await AuditDispatcher(sink).publish("s-1", [entry])

    assert sink.items == [("attemptEvaluated", {"attempt": 1})]


@pytest.mark.asyncio
async def test_dispatcher_logs_sink_failure(caplog):
    entry = AuditEntry(event=SessionEvent.CANCEL, timestamp=T0)

    await AuditDispatcher(_FailingSink()).publish("s-1", [entry])

    assert any(r.getMessage() == "audit_sink_failed" for r in caplog.records)
