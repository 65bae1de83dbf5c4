"""Platform routes — incident registry, tenant lifecycle and scheduled jobs.

Platform administrators only (``get_platform_scope`` rejects anyone else).
Jobs are exposed as routes so an external scheduler can trigger them; each
one is idempotent.
"""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, status

from src.api.deps import get_actor, get_platform_scope
from src.db.tenancy import PlatformScope
from src.models.incident import SecurityIncident
from src.models.tenant import Tenant
from src.schemas.api import CnilNotifiedIn, IncidentOut, ResolveIn, TenantIn, TenantOut, TenantSuspendIn
from src.security.clock import system_clock
from src.security.erasure import erasure_processor
from src.security.incidents import (
    IncidentInput,
    get_cnil_deadline,
    incident_registry,
    is_cnil_deadline_approaching,
    is_cnil_deadline_overdue,
    is_cnil_notification_required,
    is_users_notification_required,
)
from src.security.policy import Actor, Permission, authorize
from src.security.retention import retention_enforcer
from src.security.tenants import tenant_manager

router = APIRouter(prefix="/platform", tags=["platform"])


def _incident_out(incident: SecurityIncident, now: datetime) -> IncidentOut:
    return IncidentOut(
        id=str(incident.id),
        severity=incident.severity,
        risk_level=incident.risk_level,
        detected_at=incident.detected_at,
        cnil_deadline=get_cnil_deadline(incident),
        cnil_required=is_cnil_notification_required(incident),
        users_notification_required=is_users_notification_required(incident),
        cnil_deadline_approaching=is_cnil_deadline_approaching(incident, now),
        cnil_deadline_overdue=is_cnil_deadline_overdue(incident, now),
        cnil_notified_at=incident.cnil_notified_at,
        users_notified_at=incident.users_notified_at,
        resolved_at=incident.resolved_at,
    )


def _tenant_out(tenant: Tenant) -> TenantOut:
    return TenantOut(id=str(tenant.id), slug=tenant.slug, name=tenant.name, suspended=tenant.is_suspended)


# ── Incidents ────────────────────────────────────────────────────────


@router.post("/incidents", response_model=IncidentOut, status_code=status.HTTP_201_CREATED)
async def create_incident(
    body: IncidentInput,
    actor: Actor = Depends(get_actor),
    scope: PlatformScope = Depends(get_platform_scope),
) -> IncidentOut:
    data = body.model_copy(update={"created_by": actor.user_id})
    incident = await incident_registry.create_incident(scope, data)
    return _incident_out(incident, system_clock.now())


@router.get("/incidents/pending", response_model=list[IncidentOut])
async def pending_incidents(scope: PlatformScope = Depends(get_platform_scope)) -> list[IncidentOut]:
    now = system_clock.now()
    return [_incident_out(i, now) for i in await incident_registry.list_pending_notifications(scope)]


@router.post("/incidents/{incident_id}/cnil-notified", response_model=IncidentOut)
async def cnil_notified(
    incident_id: uuid.UUID,
    body: CnilNotifiedIn,
    actor: Actor = Depends(get_actor),
    scope: PlatformScope = Depends(get_platform_scope),
) -> IncidentOut:
    incident = await incident_registry.mark_cnil_notified(scope, str(incident_id), actor.user_id, body.cnil_reference)
    return _incident_out(incident, system_clock.now())


@router.post("/incidents/{incident_id}/users-notified", response_model=IncidentOut)
async def users_notified(
    incident_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    scope: PlatformScope = Depends(get_platform_scope),
) -> IncidentOut:
    incident = await incident_registry.mark_users_notified(scope, str(incident_id), actor.user_id)
    return _incident_out(incident, system_clock.now())


@router.post("/incidents/{incident_id}/resolve", response_model=IncidentOut)
async def resolve_incident(
    incident_id: uuid.UUID,
    body: ResolveIn,
    actor: Actor = Depends(get_actor),
    scope: PlatformScope = Depends(get_platform_scope),
) -> IncidentOut:
    incident = await incident_registry.resolve(scope, str(incident_id), actor.user_id, body.remediation_actions)
    return _incident_out(incident, system_clock.now())


# ── Tenants ──────────────────────────────────────────────────────────


@router.post("/tenants", response_model=TenantOut, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    body: TenantIn,
    actor: Actor = Depends(get_actor),
    scope: PlatformScope = Depends(get_platform_scope),
) -> TenantOut:
    return _tenant_out(await tenant_manager.create_tenant(scope, body.slug, body.name, actor.user_id))


@router.post("/tenants/{tenant_id}/suspend", response_model=TenantOut)
async def suspend_tenant(
    tenant_id: uuid.UUID,
    body: TenantSuspendIn,
    actor: Actor = Depends(get_actor),
    scope: PlatformScope = Depends(get_platform_scope),
) -> TenantOut:
    return _tenant_out(await tenant_manager.suspend_tenant(scope, str(tenant_id), body.reason, actor.user_id))


@router.post("/tenants/{tenant_id}/reactivate", response_model=TenantOut)
async def reactivate_tenant(
    tenant_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    scope: PlatformScope = Depends(get_platform_scope),
) -> TenantOut:
    return _tenant_out(await tenant_manager.reactivate_tenant(scope, str(tenant_id), actor.user_id))


@router.delete("/tenants/{tenant_id}")
async def delete_tenant(
    tenant_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    scope: PlatformScope = Depends(get_platform_scope),
) -> dict[str, int]:
    return {"users": await tenant_manager.soft_delete_tenant(scope, str(tenant_id), actor.user_id)}


# ── Jobs ─────────────────────────────────────────────────────────────


@router.post("/jobs/purges")
async def run_purges(actor: Actor = Depends(get_actor)) -> dict[str, Any]:
    """Hard-purge every deletion request past its grace period."""
    authorize(actor, Permission.PLATFORM_JOBS)
    results = await erasure_processor.run_pending_purges()
    return {
        "purged": sum(1 for r in results if r.success and not r.skipped),
        "failed": sum(1 for r in results if r.error is not None),
    }


@router.post("/jobs/retention")
async def run_retention(
    dry_run: bool = Query(default=False),
    actor: Actor = Depends(get_actor),
) -> dict[str, int]:
    """Apply retention policies to AI jobs, expired exports and the audit trail."""
    authorize(actor, Permission.PLATFORM_JOBS)
    return await retention_enforcer.enforce_data_retention(dry_run=dry_run)
