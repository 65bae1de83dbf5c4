"""AiJob model — metadata of one AI invocation. Never stores prompt or output."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, SoftDeleteMixin, TenantOwnedMixin, TimestampMixin
from src.models.enums import AiJobStatus


class AiJob(TimestampMixin, TenantOwnedMixin, SoftDeleteMixin, Base):
    __tablename__ = "ai_jobs"

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    purpose: Mapped[str] = mapped_column(String(100), nullable=False)
    model_ref: Mapped[str | None] = mapped_column(String(100))
    status: Mapped[str] = mapped_column(String(20), default=AiJobStatus.PENDING.value, nullable=False)

    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<AiJob id={self.id} status={self.status}>"
