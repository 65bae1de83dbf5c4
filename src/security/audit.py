"""Audit emitter — guard, stamp, then hand the event to an append-only sink.

``AuditEmitter.emit`` runs the event guard over the event name, id, actor,
tenant, target and every metadata entry. If the guard raises, nothing is
written and the exception propagates: the operation that wanted to audit
fails instead of silently skipping its audit trail.

The database sink writes inside the caller's open scope when there is one,
so the audit row commits or rolls back with the mutation it describes.

Usage:
    from src.security.audit import audit_emitter

    await audit_emitter.emit(AuditEvent(
        event_name=EventType.EXPORT_CREATED.value,
        actor_scope=ActorScope.MEMBER,
        actor_id=str(user_id),
        tenant_id=scope.tenant_id,
        metadata={"export_id": str(export_id)},
    ))
"""

from __future__ import annotations

from typing import Any, Protocol

from src.db.tenancy import current_scope, platform_scope
from src.models.audit import AuditLog
from src.repositories.audit_events import AuditEventRepo, audit_event_repo
from src.schemas.audit import AuditEvent
from src.security.clock import Clock, system_clock
from src.security.log_guard import assert_safe
from src.security.safe_log import get_logger

logger = get_logger(__name__)


class AuditSink(Protocol):
    async def write(self, event: AuditEvent) -> None:
        """Append the event. No update or delete exists on this port."""
        ...


class DatabaseAuditSink:
    """Persists events to ``audit_events`` inside the current scope (or a platform one)."""

    def __init__(self, repo: AuditEventRepo | None = None) -> None:
        self._repo = repo or audit_event_repo

    def _row(self, event: AuditEvent) -> AuditLog:
        return AuditLog(
            id=event.id,
            event_name=event.event_name,
            actor_scope=event.actor_scope.value,
            actor_id=event.actor_id,
            tenant_id=event.tenant_id,
            target_id=event.target_id,
            metadata_=dict(event.metadata) or None,
            occurred_at=event.occurred_at,
        )

    async def write(self, event: AuditEvent) -> None:
        scope = current_scope()
        if scope is not None:
            await self._repo.add(scope, self._row(event))
            return
        async with platform_scope() as own:
            await self._repo.add(own, self._row(event))


class LoggingAuditSink:
    """Writes events to the structured log (the logger re-checks them)."""

    async def write(self, event: AuditEvent) -> None:
        logger.info(
            event.event_name,
            audit_id=str(event.id),
            actor_scope=event.actor_scope.value,
            actor_id=event.actor_id,
            tenant_id=event.tenant_id,
            target_id=event.target_id,
            occurred_at=event.occurred_at.isoformat() if event.occurred_at else None,
            **event.metadata,
        )


class AuditEmitter:
    """Validates and stamps audit events before delegating to the sink."""

    def __init__(self, sink: AuditSink | None = None, clock: Clock | None = None) -> None:
        self._sink: AuditSink = sink or DatabaseAuditSink()
        self._clock = clock or system_clock

    def set_sink(self, sink: AuditSink) -> None:
        self._sink = sink

    @staticmethod
    def validate(event: AuditEvent) -> None:
        """Raise LogGuardViolation if any field of the event is unsafe to persist."""
        fields: dict[str, Any] = {
            "id": str(event.id),
            "actor_id": event.actor_id,
            "tenant_id": event.tenant_id,
            "target_id": event.target_id,
        }
        assert_safe(event.event_name, fields)
        # Metadata checked on its own so its keys cannot shadow the envelope fields
        assert_safe(event.event_name, event.metadata)

    async def emit(self, event: AuditEvent) -> AuditEvent:
        """Guard, stamp ``occurred_at`` if absent, then write. Errors propagate."""
        self.validate(event)
        if event.occurred_at is None:
            event = event.model_copy(update={"occurred_at": self._clock.now()})
        await self._sink.write(event)
        return event


# Module-level singleton
audit_emitter = AuditEmitter()
