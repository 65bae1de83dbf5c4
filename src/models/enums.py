"""Domain enums used across SQLAlchemy models and Pydantic schemas.

All enums use str mixin for JSON serialization; columns store the value.
"""

from __future__ import annotations

from enum import Enum


class ActorScope(str, Enum):
    """Where an actor lives. TENANT/MEMBER actors always carry a tenant id."""

    PLATFORM = "PLATFORM"
    TENANT = "TENANT"
    MEMBER = "MEMBER"
    SYSTEM = "SYSTEM"


class UserRole(str, Enum):
    """Fixed RBAC roles."""

    SUPERADMIN = "SUPERADMIN"
    TENANT_ADMIN = "TENANT_ADMIN"
    DPO = "DPO"
    MEMBER = "MEMBER"


class AiJobStatus(str, Enum):
    """AI invocation lifecycle — forward-only."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RgpdRequestType(str, Enum):
    EXPORT = "EXPORT"
    DELETE = "DELETE"


class RgpdRequestStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class SuspensionReason(str, Enum):
    """Art. 18 grounds for limiting processing."""

    USER_REQUEST = "user_request"
    DATA_ACCURACY_CONTEST = "data_accuracy_contest"
    UNLAWFUL_PROCESSING = "unlawful_processing"
    LEGAL_CLAIM = "legal_claim"
    OPPOSITION_PENDING = "opposition_pending"


class ReviewStatus(str, Enum):
    """Human review states shared by disputes (Art. 22) and oppositions (Art. 21)."""

    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class TreatmentType(str, Enum):
    """Processing an opposition (Art. 21) can target."""

    MARKETING = "marketing"
    PROFILING = "profiling"
    ANALYTICS = "analytics"
    AI_PROCESSING = "ai_processing"
    LEGITIMATE_INTEREST = "legitimate_interest"


class IncidentSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class IncidentType(str, Enum):
    UNAUTHORIZED_ACCESS = "UNAUTHORIZED_ACCESS"
    CROSS_TENANT_ACCESS = "CROSS_TENANT_ACCESS"
    DATA_LEAK = "DATA_LEAK"
    PII_IN_LOGS = "PII_IN_LOGS"
    DATA_LOSS = "DATA_LOSS"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    MALWARE = "MALWARE"
    VULNERABILITY_EXPLOITED = "VULNERABILITY_EXPLOITED"
    OTHER = "OTHER"


class RiskLevel(str, Enum):
    """Risk to the rights and freedoms of data subjects (Art. 33-34)."""

    UNKNOWN = "UNKNOWN"
    NONE = "NONE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class DataCategory(str, Enum):
    """Sensitivity tiers: P0 public, P1 technical, P2 personal, P3 sensitive."""

    P0 = "P0"
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"


class DetectionSource(str, Enum):
    SYSTEM = "SYSTEM"
    MONITORING = "MONITORING"
    USER = "USER"
    AUDIT = "AUDIT"
    PENTEST = "PENTEST"
