"""Security incident registry — Art. 33/34 breach records and the CNIL 72h clock.

Records are append-only. After creation only the nullable notification and
resolution timestamps can be filled, once each. Deadlines are derived from
``detected_at`` on every read and never stored:

    cnil_deadline = detected_at + 72h

"Approaching" and "overdue" are functions of the current time, so they are
plain predicates taking ``now`` rather than cached flags.

Usage:
    from src.security.incidents import incident_registry, get_cnil_deadline

    # Records the incident and fans it out to the alert channels of its severity
    incident = await incident_registry.create_incident(platform, IncidentInput(...))
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Any

import httpx
from pydantic import BaseModel, Field, field_validator

from src.admin.alerts import AlertChannel, AlertPort, alert_engine
from src.config import settings
from src.db.tenancy import PlatformScope, Scope, TenantScope
from src.errors import StateTransitionError, ValidationError
from src.models.enums import (
    ActorScope,
    DataCategory,
    DetectionSource,
    IncidentSeverity,
    IncidentType,
    RiskLevel,
)
from src.models.incident import SecurityIncident
from src.repositories.incidents import IncidentRepo, incident_repo
from src.schemas.audit import AuditEvent, EventType
from src.security.audit import AuditEmitter, audit_emitter
from src.security.clock import Clock, system_clock
from src.security.safe_log import get_logger

logger = get_logger(__name__)

CNIL_DEADLINE_HOURS = 72
APPROACHING_WINDOW_HOURS = 24

_NOTIFIABLE_RISKS = frozenset({RiskLevel.HIGH.value, RiskLevel.CRITICAL.value})


class IncidentInput(BaseModel):
    """Validated input for a new incident."""

    severity: IncidentSeverity
    type: IncidentType
    title: str = Field(max_length=200)
    description: str
    tenant_id: str | None = None
    data_categories: list[DataCategory] = Field(default_factory=list)
    users_affected: int = Field(default=0, ge=0)
    records_affected: int = Field(default=0, ge=0)
    risk_level: RiskLevel = RiskLevel.UNKNOWN
    detected_at: datetime | None = None
    detected_by: DetectionSource = DetectionSource.SYSTEM
    source_ip: str | None = Field(default=None, max_length=45)
    created_by: str | None = None

    @field_validator("title", "description")
    @classmethod
    def not_blank(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            msg = "must not be empty"
            raise ValueError(msg)
        return stripped


# ── Derived predicates ───────────────────────────────────────────────


def get_cnil_deadline(incident: SecurityIncident) -> datetime:
    return incident.detected_at + timedelta(hours=CNIL_DEADLINE_HOURS)


def is_cnil_notification_required(incident: SecurityIncident) -> bool:
    """Art. 33: notify the authority when the risk is HIGH or CRITICAL."""
    return incident.risk_level in _NOTIFIABLE_RISKS


def is_users_notification_required(incident: SecurityIncident, threshold: int | None = None) -> bool:
    """Art. 34: notify data subjects on CRITICAL risk, or HIGH risk above the threshold."""
    if threshold is None:
        threshold = settings.incidents.users_affected_threshold
    if incident.risk_level == RiskLevel.CRITICAL.value:
        return True
    return incident.risk_level == RiskLevel.HIGH.value and incident.users_affected > threshold


def is_cnil_deadline_approaching(incident: SecurityIncident, now: datetime) -> bool:
    if incident.cnil_notified_at is not None:
        return False
    remaining = get_cnil_deadline(incident) - now
    return timedelta(0) < remaining < timedelta(hours=APPROACHING_WINDOW_HOURS)


def is_cnil_deadline_overdue(incident: SecurityIncident, now: datetime) -> bool:
    if incident.cnil_notified_at is not None:
        return False
    return now > get_cnil_deadline(incident)


def pending_notifications(incidents: list[SecurityIncident], now: datetime) -> list[SecurityIncident]:
    """Incidents still owing a CNIL notification: overdue, then approaching, then by deadline.

    Three stable sorts, least significant key first.
    """
    pending = [i for i in incidents if is_cnil_notification_required(i) and i.cnil_notified_at is None]
    pending.sort(key=get_cnil_deadline)
    pending.sort(key=lambda i: not is_cnil_deadline_approaching(i, now))
    pending.sort(key=lambda i: not is_cnil_deadline_overdue(i, now))
    return pending


def format_alert(incident: SecurityIncident) -> tuple[str, str]:
    """Title and body of an incident alert. Identifiers and classification only."""
    title = f"[{incident.severity}] Security incident {incident.type}"
    lines = [
        f"Incident: {incident.id}",
        f"Risk level: {incident.risk_level}",
        f"Users affected: {incident.users_affected}",
        f"Detected at: {incident.detected_at.isoformat()}",
    ]
    if is_cnil_notification_required(incident):
        lines.append(f"CNIL deadline: {get_cnil_deadline(incident).isoformat()}")
    return title, "\n".join(lines)


# ── Registry ─────────────────────────────────────────────────────────


class IncidentRegistry:
    """Append-only incident registry with alert fan-out."""

    def __init__(
        self,
        repo: IncidentRepo | None = None,
        alerts: AlertPort | None = None,
        audit: AuditEmitter | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._repo = repo or incident_repo
        self._alerts = alerts or alert_engine
        self._audit = audit or audit_emitter
        self._clock = clock or system_clock

    async def create_incident(self, scope: Scope, data: IncidentInput | dict[str, Any]) -> SecurityIncident:
        """Validate and record a new incident. Tenant scopes may only record their own incidents."""
        if not isinstance(data, IncidentInput):
            try:
                data = IncidentInput.model_validate(data)
            except ValueError:
                msg = "Invalid incident"
                raise ValidationError(msg) from None

        tenant_id = data.tenant_id
        if isinstance(scope, TenantScope):
            if tenant_id is not None and tenant_id != scope.tenant_id:
                msg = "Incident tenant does not match the current scope"
                raise ValidationError(msg)
            tenant_id = scope.tenant_id

        incident = SecurityIncident(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            severity=data.severity.value,
            type=data.type.value,
            title=data.title,
            description=data.description,
            data_categories=[c.value for c in data.data_categories],
            users_affected=data.users_affected,
            records_affected=data.records_affected,
            risk_level=data.risk_level.value,
            detected_at=data.detected_at or self._clock.now(),
            detected_by=data.detected_by.value,
            source_ip=data.source_ip,
            created_by=data.created_by,
        )
        await self._repo.add(scope, incident)

        await self._emit(EventType.INCIDENT_CREATED, incident, data.created_by, {
            "severity": incident.severity,
            "type": incident.type,
            "risk_level": incident.risk_level,
            "users_affected": incident.users_affected,
            "records_affected": incident.records_affected,
            "cnil_required": is_cnil_notification_required(incident),
            "users_notification_required": is_users_notification_required(incident),
        })
        logger.info("incident.created", severity=incident.severity, risk_level=incident.risk_level)

        # The record stands even when no channel is reachable
        try:
            await self.notify_incident(incident)
        except (httpx.HTTPError, OSError):
            logger.error("incident.alert.failed", severity=incident.severity)
        return incident

    async def notify_incident(self, incident: SecurityIncident) -> list[AlertChannel]:
        """Fan the incident out to the alert channels of its severity."""
        title, body = format_alert(incident)
        return await self._alerts.send_alert(incident.severity, title, body, {
            "incident_id": str(incident.id),
            "risk_level": incident.risk_level,
            "cnil_required": is_cnil_notification_required(incident),
        })

    async def get(self, scope: Scope, incident_id: Any) -> SecurityIncident:
        incident = await self._repo.get(scope, incident_id)
        if incident is None:
            msg = "Incident not found"
            raise ValidationError(msg)
        return incident

    async def mark_cnil_notified(
        self,
        scope: Scope,
        incident_id: Any,
        actor_id: str,
        cnil_reference: str | None = None,
    ) -> SecurityIncident:
        incident = await self.get(scope, incident_id)
        if incident.cnil_notified_at is not None:
            msg = "CNIL notification already recorded"
            raise StateTransitionError(msg)
        now = self._clock.now()
        incident.cnil_notified_at = now
        if cnil_reference:
            incident.cnil_reference = cnil_reference.strip()
        await self._repo.save(scope, incident)
        await self._emit(EventType.INCIDENT_CNIL_NOTIFIED, incident, actor_id, {
            "within_deadline": now <= get_cnil_deadline(incident),
        })
        return incident

    async def mark_users_notified(self, scope: Scope, incident_id: Any, actor_id: str) -> SecurityIncident:
        incident = await self.get(scope, incident_id)
        if incident.users_notified_at is not None:
            msg = "User notification already recorded"
            raise StateTransitionError(msg)
        incident.users_notified_at = self._clock.now()
        await self._repo.save(scope, incident)
        await self._emit(EventType.INCIDENT_USERS_NOTIFIED, incident, actor_id, {
            "users_affected": incident.users_affected,
        })
        return incident

    async def resolve(
        self,
        scope: Scope,
        incident_id: Any,
        actor_id: str,
        remediation_actions: str | None = None,
    ) -> SecurityIncident:
        incident = await self.get(scope, incident_id)
        if incident.resolved_at is not None:
            msg = "Incident already resolved"
            raise StateTransitionError(msg)
        incident.resolved_at = self._clock.now()
        if remediation_actions and remediation_actions.strip():
            incident.remediation_actions = remediation_actions.strip()
        await self._repo.save(scope, incident)
        await self._emit(EventType.INCIDENT_RESOLVED, incident, actor_id, {
            "has_remediation": incident.remediation_actions is not None,
        })
        return incident

    async def list_pending_notifications(self, scope: PlatformScope) -> list[SecurityIncident]:
        """Platform-wide CNIL backlog, most urgent first."""
        return pending_notifications(await self._repo.list_cnil_unnotified(scope), self._clock.now())

    async def _emit(
        self,
        event_type: EventType,
        incident: SecurityIncident,
        actor_id: str | None,
        metadata: dict[str, Any],
    ) -> None:
        await self._audit.emit(AuditEvent(
            event_name=event_type.value,
            actor_scope=ActorScope.PLATFORM if incident.tenant_id is None else ActorScope.TENANT,
            actor_id=actor_id,
            tenant_id=str(incident.tenant_id) if incident.tenant_id is not None else None,
            target_id=str(incident.id),
            metadata={"incident_id": str(incident.id), **metadata},
        ))


# Module-level singleton
incident_registry = IncidentRegistry()
