"""ExportRecord model — P1 metadata of an encrypted export bundle.

The bundle itself lives in export storage, encrypted with a password that is
never persisted. This row only bounds access: token, TTL, download count.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TenantOwnedMixin, TimestampMixin


class ExportRecord(TimestampMixin, TenantOwnedMixin, Base):
    __tablename__ = "export_records"

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    download_token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    download_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<ExportRecord id={self.id} downloads={self.download_count}>"
