"""Tenant model — the isolation boundary."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, SoftDeleteMixin, TimestampMixin


class Tenant(TimestampMixin, SoftDeleteMixin, Base):
    """A customer organization. Platform-level table (no RLS on itself)."""

    __tablename__ = "tenants"

    slug: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, comment="Immutable")
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Suspension toggles the timestamp + reason pair
    suspended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    suspension_reason: Mapped[str | None] = mapped_column(String(500))

    @property
    def is_suspended(self) -> bool:
        return self.suspended_at is not None

    def __repr__(self) -> str:
        return f"<Tenant slug={self.slug} suspended={self.is_suspended}>"
