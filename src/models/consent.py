"""Consent model — append-only consent history.

Each grant or revocation inserts a new row; the latest row per
(tenant, user, purpose) is authoritative. A set ``revoked_at`` means
"not granted" whatever the stored flag says.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Identity, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, SoftDeleteMixin, TenantOwnedMixin, TimestampMixin


class Consent(TimestampMixin, TenantOwnedMixin, SoftDeleteMixin, Base):
    """A consent grant or revocation event for one processing purpose."""

    __tablename__ = "consents"
    __table_args__ = (
        Index("ix_consents_lookup", "tenant_id", "user_id", "purpose", "recorded_at", "seq"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    purpose: Mapped[str] = mapped_column(String(100), nullable=False)
    granted: Mapped[bool] = mapped_column(Boolean, nullable=False)
    granted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Clock-stamped so ordering does not depend on transaction start time
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # Insertion order; breaks ties between rows recorded at the same instant
    seq: Mapped[int] = mapped_column(BigInteger, Identity(always=True), nullable=False)

    @property
    def is_effective(self) -> bool:
        return self.granted and self.revoked_at is None

    def __repr__(self) -> str:
        return f"<Consent purpose={self.purpose} granted={self.granted} revoked={self.revoked_at is not None}>"
