"""AuditEvent schema — the fixed, minimal shape of every audit trail entry.

Immutable once created. Metadata is a flat map of P0/P1 scalars; the
AuditEmitter runs the event guard over every field before any sink sees it.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from src.models.enums import ActorScope


class EventType(str, Enum):
    """All audit event names emitted by the kernel."""

    # Consent
    CONSENT_GRANTED = "consent.granted"
    CONSENT_REVOKED = "consent.revoked"

    # Data subject rights
    EXPORT_CREATED = "rgpd.export.created"
    EXPORT_DOWNLOADED = "rgpd.export.downloaded"
    EXPORT_EXPIRED = "rgpd.export.expired"
    DELETION_REQUESTED = "rgpd.deletion.requested"
    DELETION_COMPLETED = "rgpd.deletion.completed"
    SUSPENSION_APPLIED = "rgpd.suspension.applied"
    SUSPENSION_LIFTED = "rgpd.suspension.lifted"
    DISPUTE_SUBMITTED = "rgpd.dispute.submitted"
    DISPUTE_REVIEWED = "rgpd.dispute.reviewed"
    OPPOSITION_SUBMITTED = "rgpd.opposition.submitted"
    OPPOSITION_REVIEWED = "rgpd.opposition.reviewed"

    # Incidents
    INCIDENT_CREATED = "incident.created"
    INCIDENT_CNIL_NOTIFIED = "incident.cnil_notified"
    INCIDENT_USERS_NOTIFIED = "incident.users_notified"
    INCIDENT_RESOLVED = "incident.resolved"

    # Tenants
    TENANT_CREATED = "tenant.created"
    TENANT_SUSPENDED = "tenant.suspended"
    TENANT_REACTIVATED = "tenant.reactivated"
    TENANT_DELETED = "tenant.deleted"

    # AI gateway
    AI_INVOKED = "ai.invoked"
    AI_JOB_STATUS_CHANGED = "ai.job.status_changed"

    # Retention jobs
    AI_JOBS_PURGED = "retention.ai_jobs.purged"
    EXPORTS_SWEPT = "retention.exports.swept"
    AUDIT_TRAIL_PRUNED = "retention.audit.pruned"


class AuditEvent(BaseModel):
    """One audit trail entry, before or after the emitter stamps ``occurred_at``."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_name: str
    actor_scope: ActorScope

    # Context: platform events have no tenant, jobs have no actor
    actor_id: str | None = None
    tenant_id: str | None = None
    target_id: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime | None = None

    model_config = {"frozen": True}
