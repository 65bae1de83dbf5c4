"""Request and response bodies of the HTTP edge."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import AiJobStatus, ReviewStatus, SuspensionReason, TreatmentType


class ConsentOut(BaseModel):
    purpose: str
    granted: bool
    recorded_at: datetime


class AiInvokeIn(BaseModel):
    purpose: str = Field(min_length=1, max_length=100)
    model_ref: str | None = Field(default=None, max_length=100)


class AiJobOut(BaseModel):
    job_id: str
    status: AiJobStatus
    requested_at: datetime


class AiJobAdvanceIn(BaseModel):
    status: AiJobStatus


class ExportOut(BaseModel):
    """Returned once. The password is never stored server-side."""

    export_id: str
    download_token: str
    password: str
    expires_at: datetime


class ExportDownloadOut(BaseModel):
    """Encrypted envelope in its at-rest shape (``authTag``) plus download bookkeeping."""

    model_config = ConfigDict(populate_by_name=True)

    export_id: str
    downloads_remaining: int
    ciphertext: str
    iv: str
    auth_tag: str = Field(alias="authTag")
    salt: str


class DeletionOut(BaseModel):
    request_id: str
    status: str
    scheduled_purge_at: datetime | None


class SuspensionIn(BaseModel):
    reason: SuspensionReason
    notes: str | None = Field(default=None, max_length=1000)


class SuspensionOut(BaseModel):
    suspended: bool
    suspended_at: datetime | None
    reason: SuspensionReason | None


class DisputeIn(BaseModel):
    reason: str
    ai_job_id: str | None = None
    attachment_ref: str | None = Field(default=None, max_length=500)


class OppositionIn(BaseModel):
    treatment_type: TreatmentType
    reason: str


class ReviewIn(BaseModel):
    status: ReviewStatus
    admin_response: str | None = None


class ReviewOut(BaseModel):
    id: str
    status: ReviewStatus
    submitted_at: datetime
    resolved_at: datetime | None = None


class IncidentOut(BaseModel):
    id: str
    severity: str
    risk_level: str
    detected_at: datetime
    cnil_deadline: datetime
    cnil_required: bool
    users_notification_required: bool
    cnil_deadline_approaching: bool
    cnil_deadline_overdue: bool
    cnil_notified_at: datetime | None = None
    users_notified_at: datetime | None = None
    resolved_at: datetime | None = None


class CnilNotifiedIn(BaseModel):
    cnil_reference: str | None = Field(default=None, max_length=100)


class ResolveIn(BaseModel):
    remediation_actions: str | None = None


class TenantIn(BaseModel):
    slug: str
    name: str


class TenantSuspendIn(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class TenantOut(BaseModel):
    id: str
    slug: str
    name: str
    suspended: bool
