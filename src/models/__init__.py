"""SQLAlchemy ORM models for the compliance kernel.

Import all models here so Alembic and Base.metadata.create_all() discover them.
"""

from __future__ import annotations

from src.models.ai_job import AiJob
from src.models.audit import AuditLog
from src.models.base import Base
from src.models.consent import Consent
from src.models.enums import (
    ActorScope,
    AiJobStatus,
    DataCategory,
    DetectionSource,
    IncidentSeverity,
    IncidentType,
    ReviewStatus,
    RgpdRequestStatus,
    RgpdRequestType,
    RiskLevel,
    SuspensionReason,
    TreatmentType,
    UserRole,
)
from src.models.export import ExportRecord
from src.models.incident import SecurityIncident
from src.models.review import UserDispute, UserOpposition
from src.models.rgpd_request import RgpdRequest
from src.models.tenant import Tenant
from src.models.user import User

__all__ = [
    # Base
    "Base",
    # Models
    "Tenant",
    "User",
    "Consent",
    "AiJob",
    "RgpdRequest",
    "ExportRecord",
    "UserDispute",
    "UserOpposition",
    "SecurityIncident",
    "AuditLog",
    # Enums
    "ActorScope",
    "UserRole",
    "AiJobStatus",
    "RgpdRequestType",
    "RgpdRequestStatus",
    "SuspensionReason",
    "ReviewStatus",
    "TreatmentType",
    "IncidentSeverity",
    "IncidentType",
    "RiskLevel",
    "DataCategory",
    "DetectionSource",
]
