"""Tests for AuditEmitter — guard first, stamp, then append to the sink."""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.errors import LogGuardViolation
from src.models.enums import ActorScope
from src.schemas.audit import AuditEvent, EventType
from src.security.audit import AuditEmitter, DatabaseAuditSink, LoggingAuditSink
from tests.conftest import T0, make_scope


# ── Helpers ──────────────────────────────────────────────────────────


def _make_event(**kwargs) -> AuditEvent:
    fields = {
        "event_name": EventType.CONSENT_GRANTED.value,
        "actor_scope": ActorScope.MEMBER,
        "actor_id": str(uuid.uuid4()),
        "tenant_id": "t1",
        "metadata": {"purpose": "ai_processing"},
    }
    fields.update(kwargs)
    return AuditEvent(**fields)


# ── Emit ─────────────────────────────────────────────────────────────


class TestEmit:
    @pytest.mark.asyncio()
    async def test_stamps_occurred_at_from_clock(self, audit, sink):
        event = await audit.emit(_make_event())

        assert event.occurred_at == T0
        assert sink.events == [event]

    @pytest.mark.asyncio()
    async def test_keeps_existing_timestamp(self, audit, sink, clock):
        earlier = clock.now().replace(year=2024)
        event = await audit.emit(_make_event(occurred_at=earlier))

        assert event.occurred_at == earlier

    @pytest.mark.asyncio()
    async def test_event_is_frozen(self, audit):
        event = await audit.emit(_make_event())
        with pytest.raises(Exception):
            event.event_name = "other"  # type: ignore[misc]

    @pytest.mark.asyncio()
    async def test_platform_event_without_tenant(self, audit, sink):
        await audit.emit(_make_event(
            event_name=EventType.TENANT_CREATED.value,
            actor_scope=ActorScope.PLATFORM,
            tenant_id=None,
            metadata={},
        ))

        assert sink.names == ["tenant.created"]
        assert sink.events[0].tenant_id is None


# ── Guard ────────────────────────────────────────────────────────────


class TestGuard:
    @pytest.mark.asyncio()
    @pytest.mark.parametrize(
        "metadata",
        [
            {"actor": "someone@example.com"},
            {"email": "x"},
            {"session": "eyJhbGciOiJIUzI1NiJ9.eyJzdWIiOiIxIn0.c2ln"},
            {"credential": "sk-abcdefghijklmnopqrstuvwxyz012345"},
            {"data": 1},
            {"nested": {"a": 1}},
        ],
    )
    async def test_unsafe_metadata_is_never_written(self, audit, sink, metadata):
        with pytest.raises(LogGuardViolation):
            await audit.emit(_make_event(metadata=metadata))
        assert sink.events == []

    @pytest.mark.asyncio()
    async def test_unsafe_actor_id_rejected(self, audit, sink):
        with pytest.raises(LogGuardViolation):
            await audit.emit(_make_event(actor_id="someone@example.com"))
        assert sink.events == []

    @pytest.mark.asyncio()
    async def test_invalid_event_name_rejected(self, audit, sink):
        with pytest.raises(LogGuardViolation):
            await audit.emit(_make_event(event_name="Consent granted to user"))
        assert sink.events == []

    @pytest.mark.asyncio()
    async def test_sink_failure_propagates(self, clock):
        failing = MagicMock()
        failing.write = AsyncMock(side_effect=RuntimeError("disk full"))
        emitter = AuditEmitter(sink=failing, clock=clock)

        with pytest.raises(RuntimeError):
            await emitter.emit(_make_event())

    def test_validate_is_pure(self):
        AuditEmitter.validate(_make_event())


# ── Sinks ────────────────────────────────────────────────────────────


class TestDatabaseSink:
    @pytest.mark.asyncio()
    async def test_writes_in_current_scope(self):
        repo = MagicMock()
        repo.add = AsyncMock()
        scope = make_scope("t1")
        sink = DatabaseAuditSink(repo=repo)
        event = _make_event(occurred_at=T0)

        with patch("src.security.audit.current_scope", return_value=scope):
            await sink.write(event)

        used_scope, row = repo.add.call_args.args
        assert used_scope is scope
        assert row.id == event.id
        assert row.event_name == "consent.granted"
        assert row.actor_scope == "MEMBER"
        assert row.metadata_ == {"purpose": "ai_processing"}

    @pytest.mark.asyncio()
    async def test_empty_metadata_stored_as_null(self):
        repo = MagicMock()
        repo.add = AsyncMock()
        sink = DatabaseAuditSink(repo=repo)

        with patch("src.security.audit.current_scope", return_value=make_scope()):
            await sink.write(_make_event(metadata={}, occurred_at=T0))

        assert repo.add.call_args.args[1].metadata_ is None


class TestLoggingSink:
    @pytest.mark.asyncio()
    async def test_logs_event_fields(self):
        with patch("src.security.audit.logger") as mock_logger:
            await LoggingAuditSink().write(_make_event(occurred_at=T0))

        args, kwargs = mock_logger.info.call_args
        assert args == ("consent.granted",)
        assert kwargs["purpose"] == "ai_processing"
        assert kwargs["occurred_at"] == T0.isoformat()
