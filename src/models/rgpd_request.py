"""RgpdRequest model — data subject export/deletion requests."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TenantOwnedMixin, TimestampMixin
from src.models.enums import RgpdRequestStatus


class RgpdRequest(TimestampMixin, TenantOwnedMixin, Base):
    """One active request per (tenant, user, type); duplicates return the PENDING row."""

    __tablename__ = "rgpd_requests"
    __table_args__ = (
        Index(
            "uq_rgpd_requests_one_pending",
            "tenant_id",
            "user_id",
            "type",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
        ),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=RgpdRequestStatus.PENDING.value, nullable=False
    )
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    scheduled_purge_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), index=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<RgpdRequest type={self.type} status={self.status}>"
