"""Dispute and opposition persistence."""

from __future__ import annotations

from typing import Any, Protocol

from sqlalchemy import select

from src.db.tenancy import TenantScope
from src.models.enums import ReviewStatus
from src.models.review import UserDispute, UserOpposition


class DisputeRepo(Protocol):
    async def add(self, scope: TenantScope, dispute: UserDispute) -> UserDispute: ...

    async def get(self, scope: TenantScope, dispute_id: Any) -> UserDispute | None: ...

    async def save(self, scope: TenantScope, dispute: UserDispute) -> None: ...

    async def list_open(self, scope: TenantScope) -> list[UserDispute]: ...


class OppositionRepo(Protocol):
    async def add(self, scope: TenantScope, opposition: UserOpposition) -> UserOpposition: ...

    async def get(self, scope: TenantScope, opposition_id: Any) -> UserOpposition | None: ...

    async def save(self, scope: TenantScope, opposition: UserOpposition) -> None: ...

    async def list_open(self, scope: TenantScope) -> list[UserOpposition]: ...


_OPEN = (ReviewStatus.PENDING.value, ReviewStatus.UNDER_REVIEW.value)


class SqlDisputeRepo:
    async def add(self, scope: TenantScope, dispute: UserDispute) -> UserDispute:
        scope.session.add(dispute)
        await scope.session.flush()
        return dispute

    async def get(self, scope: TenantScope, dispute_id: Any) -> UserDispute | None:
        result = await scope.session.execute(
            select(UserDispute).where(
                UserDispute.id == dispute_id,
                UserDispute.tenant_id == scope.tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def save(self, scope: TenantScope, dispute: UserDispute) -> None:
        scope.session.add(dispute)
        await scope.session.flush()

    async def list_open(self, scope: TenantScope) -> list[UserDispute]:
        result = await scope.session.execute(
            select(UserDispute)
            .where(UserDispute.tenant_id == scope.tenant_id, UserDispute.status.in_(_OPEN))
            .order_by(UserDispute.submitted_at.asc())
        )
        return list(result.scalars().all())


class SqlOppositionRepo:
    async def add(self, scope: TenantScope, opposition: UserOpposition) -> UserOpposition:
        scope.session.add(opposition)
        await scope.session.flush()
        return opposition

    async def get(self, scope: TenantScope, opposition_id: Any) -> UserOpposition | None:
        result = await scope.session.execute(
            select(UserOpposition).where(
                UserOpposition.id == opposition_id,
                UserOpposition.tenant_id == scope.tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def save(self, scope: TenantScope, opposition: UserOpposition) -> None:
        scope.session.add(opposition)
        await scope.session.flush()

    async def list_open(self, scope: TenantScope) -> list[UserOpposition]:
        result = await scope.session.execute(
            select(UserOpposition)
            .where(UserOpposition.tenant_id == scope.tenant_id, UserOpposition.status.in_(_OPEN))
            .order_by(UserOpposition.submitted_at.asc())
        )
        return list(result.scalars().all())


dispute_repo = SqlDisputeRepo()
opposition_repo = SqlOppositionRepo()
