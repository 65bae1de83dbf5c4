"""Audit trail persistence. The core only appends; reads serve the export bundle."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import delete, or_, select, update

from src.db.tenancy import PlatformScope, Scope, TenantScope
from src.models.audit import AuditLog


class AuditEventRepo(Protocol):
    async def add(self, scope: Scope, event: AuditLog) -> None: ...

    async def list_for_subject(self, scope: TenantScope, user_id: Any, limit: int) -> list[AuditLog]: ...

    async def anonymize_actor(self, scope: TenantScope, actor_id: Any) -> int: ...

    async def delete_older_than(self, scope: PlatformScope, cutoff: datetime) -> int: ...


class SqlAuditEventRepo:
    async def add(self, scope: Scope, event: AuditLog) -> None:
        scope.session.add(event)
        await scope.session.flush()

    async def list_for_subject(self, scope: TenantScope, user_id: Any, limit: int) -> list[AuditLog]:
        """Most recent events where the user is the actor or the target."""
        uid = str(user_id)
        result = await scope.session.execute(
            select(AuditLog)
            .where(
                AuditLog.tenant_id == scope.tenant_id,
                or_(AuditLog.actor_id == uid, AuditLog.target_id == uid),
            )
            .order_by(AuditLog.occurred_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def anonymize_actor(self, scope: TenantScope, actor_id: Any) -> int:
        result = await scope.session.execute(
            update(AuditLog)
            .where(AuditLog.tenant_id == scope.tenant_id, AuditLog.actor_id == str(actor_id))
            .values(actor_id=None)
        )
        return result.rowcount  # type: ignore[attr-defined]

    async def delete_older_than(self, scope: PlatformScope, cutoff: datetime) -> int:
        result = await scope.session.execute(delete(AuditLog).where(AuditLog.occurred_at < cutoff))
        return result.rowcount  # type: ignore[attr-defined]


audit_event_repo = SqlAuditEventRepo()
