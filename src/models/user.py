"""User model — belongs to one tenant, or to the platform (tenant_id NULL).

Only a one-way email hash is stored for lookup. The Art. 18 suspension flag
lives on the row so the SuspensionGate is a single read.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, SoftDeleteMixin, TimestampMixin
from src.models.enums import ActorScope, UserRole


class User(TimestampMixin, SoftDeleteMixin, Base):
    """A platform or tenant user."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "scope NOT IN ('TENANT', 'MEMBER') OR tenant_id IS NOT NULL",
            name="ck_users_tenant_scope_has_tenant",
        ),
    )

    tenant_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), index=True)
    email_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True, comment="SHA-256, lookup only")
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default=UserRole.MEMBER.value, nullable=False)
    scope: Mapped[str] = mapped_column(String(20), default=ActorScope.MEMBER.value, nullable=False)

    # Art. 18 limitation of processing
    data_suspended: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    data_suspended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    data_suspended_reason: Mapped[str | None] = mapped_column(String(50))
    data_suspended_by: Mapped[str | None] = mapped_column(String(100))
    data_suspended_notes: Mapped[str | None] = mapped_column(String(1000))

    def __repr__(self) -> str:
        return f"<User id={self.id} scope={self.scope} suspended={self.data_suspended}>"
