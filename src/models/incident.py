"""SecurityIncident model — append-only breach registry.

Notification deadlines are never stored: they are derived from
``detected_at`` on every read (see src.security.incidents).
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TimestampMixin
from src.models.enums import DetectionSource, RiskLevel


class SecurityIncident(TimestampMixin, Base):
    """Tenant id is NULL for platform-wide incidents."""

    __tablename__ = "security_incidents"

    tenant_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), index=True)

    # Classification
    severity: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # Affected data (Art. 33.3)
    data_categories: Mapped[list[str]] = mapped_column(ARRAY(String(2)), default=list, nullable=False)
    users_affected: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    records_affected: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    risk_level: Mapped[str] = mapped_column(String(10), default=RiskLevel.UNKNOWN.value, nullable=False)

    # Notifications (Art. 33 / 34), filled once and never cleared
    cnil_notified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cnil_reference: Mapped[str | None] = mapped_column(String(100))
    users_notified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Remediation
    remediation_actions: Mapped[str | None] = mapped_column(Text)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Detection
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    detected_by: Mapped[str] = mapped_column(String(20), default=DetectionSource.SYSTEM.value, nullable=False)
    source_ip: Mapped[str | None] = mapped_column(String(45))
    created_by: Mapped[str | None] = mapped_column(String(100))

    def __repr__(self) -> str:
        return f"<SecurityIncident id={self.id} severity={self.severity} risk={self.risk_level}>"
