"""Testes de SessionRecord: serialização, derivados e redação."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from booth_verify.domain.enums import VerificationMethod
from booth_verify.domain.models import AttemptEntry, AuditEntry, SessionRecord, redact
from booth_verify.domain.session import SessionEvent, SessionState
from booth_verify.domain.session import commands

T0 = datetime(2024, 10, 6, 8, 0, tzinfo=UTC)


def _record() -> SessionRecord:
    record = commands.new_session(
        session_id="s-1",
        identity_ref="voter-1",
        operator_ref="op-1",
        booth_ref="booth-A",
        now=T0,
        timeout=timedelta(minutes=10),
        max_attempts=3,
    ).record
    record = commands.start_method(record, VerificationMethod.OTP, T0).record
    record = commands.reserve_attempt(record, T0).record
    return record.model_copy(update={"sync_version": 3, "synced_version": 2})


def test_json_round_trip_preserves_every_field():
    record = _record()

    restored = SessionRecord.model_validate_json(record.model_dump_json())

    assert restored == record
    assert restored.sync_version == 3
    assert restored.synced_version == 2
    assert restored.events[-1].event == SessionEvent.RECORD_ATTEMPT


def test_derived_properties():
    record = _record()

    assert record.is_active is True
    assert record.is_terminal is False
    assert record.remaining_attempts == 2
    assert len(record.pending_attempts) == 1
    assert record.is_synced is False
    assert record.duration is None
    assert record.time_remaining(T0 + timedelta(minutes=4)) == timedelta(minutes=6)
    assert record.time_remaining(T0 + timedelta(hours=1)) == timedelta(0)


def test_duration_after_terminal():
    record = commands.cancel(_record(), T0 + timedelta(minutes=2), "x").record
    assert record.duration == timedelta(minutes=2)
    assert record.state == SessionState.CANCELLED


def test_view_redacts_secrets_recursively():
    record = _record().model_copy(
        update={
            "events": (
                AuditEntry(
                    event=SessionEvent.ATTEMPT_EVALUATED,
                    timestamp=T0,
                    data={"otp": "123456", "nested": {"template": "xx", "keep": 1}},
                ),
            ),
            "attempts": (
                AttemptEntry(
                    number=1,
                    started_at=T0,
                    details={"hashed_code": "abc", "items": [{"embedding": [1, 2]}], "ok": True},
                ),
            ),
        }
    )

    view = record.to_view()

    assert view.events[0].data == {"nested": {"keep": 1}}
    assert view.attempts[0].details == {"items": [{}], "ok": True}
    assert view.remaining_attempts == 2
    assert view.is_synced is False


def test_redact_is_case_insensitive():
    assert redact({"Code": "1", "Face_Image": "b64", "score": 9}) == {"score": 9}
