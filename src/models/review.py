"""UserDispute and UserOpposition models — human-review workflows.

Disputes contest an automated decision on one AI job (Art. 22); oppositions
object to a kind of processing (Art. 21). Both follow ReviewStatus.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TenantOwnedMixin, TimestampMixin
from src.models.enums import ReviewStatus


class ReviewMixin:
    """Columns shared by both review workflows."""

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False, comment="P2 free text, never logged")
    status: Mapped[str] = mapped_column(String(20), default=ReviewStatus.PENDING.value, nullable=False)
    admin_response: Mapped[str | None] = mapped_column(Text)
    reviewed_by: Mapped[str | None] = mapped_column(String(100))
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class UserDispute(TimestampMixin, TenantOwnedMixin, ReviewMixin, Base):
    __tablename__ = "user_disputes"

    ai_job_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), index=True)
    attachment_ref: Mapped[str | None] = mapped_column(String(500))

    @property
    def has_attachment(self) -> bool:
        return bool(self.attachment_ref)

    def __repr__(self) -> str:
        return f"<UserDispute id={self.id} status={self.status}>"


class UserOpposition(TimestampMixin, TenantOwnedMixin, ReviewMixin, Base):
    __tablename__ = "user_oppositions"

    treatment_type: Mapped[str] = mapped_column(String(30), nullable=False)
    auto_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<UserOpposition id={self.id} treatment={self.treatment_type} status={self.status}>"
