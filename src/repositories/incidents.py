"""Security incident persistence. Append-only: no delete method exists."""

from __future__ import annotations

from typing import Any, Protocol

from sqlalchemy import select

from src.db.tenancy import PlatformScope, Scope, TenantScope
from src.models.incident import SecurityIncident


class IncidentRepo(Protocol):
    async def add(self, scope: Scope, incident: SecurityIncident) -> SecurityIncident: ...

    async def get(self, scope: Scope, incident_id: Any) -> SecurityIncident | None: ...

    async def save(self, scope: Scope, incident: SecurityIncident) -> None: ...

    async def list_cnil_unnotified(self, scope: PlatformScope) -> list[SecurityIncident]: ...


class SqlIncidentRepo:
    async def add(self, scope: Scope, incident: SecurityIncident) -> SecurityIncident:
        scope.session.add(incident)
        await scope.session.flush()
        return incident

    async def get(self, scope: Scope, incident_id: Any) -> SecurityIncident | None:
        stmt = select(SecurityIncident).where(SecurityIncident.id == incident_id)
        if isinstance(scope, TenantScope):
            stmt = stmt.where(SecurityIncident.tenant_id == scope.tenant_id)
        result = await scope.session.execute(stmt)
        return result.scalar_one_or_none()

    async def save(self, scope: Scope, incident: SecurityIncident) -> None:
        scope.session.add(incident)
        await scope.session.flush()

    async def list_cnil_unnotified(self, scope: PlatformScope) -> list[SecurityIncident]:
        result = await scope.session.execute(
            select(SecurityIncident).where(SecurityIncident.cnil_notified_at.is_(None))
        )
        return list(result.scalars().all())


incident_repo = SqlIncidentRepo()
