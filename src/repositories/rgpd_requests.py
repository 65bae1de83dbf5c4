"""Export/deletion request persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from src.db.tenancy import PlatformScope, TenantScope
from src.models.enums import RgpdRequestStatus, RgpdRequestType
from src.models.rgpd_request import RgpdRequest


class RgpdRequestRepo(Protocol):
    async def add_pending(self, scope: TenantScope, request: RgpdRequest) -> RgpdRequest | None: ...

    async def get(self, scope: TenantScope, request_id: Any) -> RgpdRequest | None: ...

    async def save(self, scope: TenantScope, request: RgpdRequest) -> None: ...

    async def find_deletion_request(self, scope: TenantScope, user_id: Any) -> RgpdRequest | None: ...

    async def find_pending_purges(self, scope: PlatformScope, now: datetime) -> list[RgpdRequest]: ...


class SqlRgpdRequestRepo:
    async def add_pending(self, scope: TenantScope, request: RgpdRequest) -> RgpdRequest | None:
        """Insert a PENDING request, or return None if the user already has one of that type.

        The insert runs in a SAVEPOINT so a unique violation on
        ``uq_rgpd_requests_one_pending`` leaves the outer transaction usable.
        """
        try:
            async with scope.session.begin_nested():
                scope.session.add(request)
        except IntegrityError as exc:
            if "uq_rgpd_requests_one_pending" not in str(exc.orig):
                raise
            return None
        return request

    async def get(self, scope: TenantScope, request_id: Any) -> RgpdRequest | None:
        result = await scope.session.execute(
            select(RgpdRequest).where(
                RgpdRequest.id == request_id,
                RgpdRequest.tenant_id == scope.tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def save(self, scope: TenantScope, request: RgpdRequest) -> None:
        scope.session.add(request)
        await scope.session.flush()

    async def find_deletion_request(self, scope: TenantScope, user_id: Any) -> RgpdRequest | None:
        """Latest PENDING or COMPLETED deletion request for the user."""
        result = await scope.session.execute(
            select(RgpdRequest)
            .where(
                RgpdRequest.tenant_id == scope.tenant_id,
                RgpdRequest.user_id == user_id,
                RgpdRequest.type == RgpdRequestType.DELETE.value,
                RgpdRequest.status.in_([
                    RgpdRequestStatus.PENDING.value,
                    RgpdRequestStatus.COMPLETED.value,
                ]),
            )
            .order_by(RgpdRequest.requested_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_pending_purges(self, scope: PlatformScope, now: datetime) -> list[RgpdRequest]:
        result = await scope.session.execute(
            select(RgpdRequest)
            .where(
                RgpdRequest.type == RgpdRequestType.DELETE.value,
                RgpdRequest.status == RgpdRequestStatus.PENDING.value,
                RgpdRequest.scheduled_purge_at <= now,
            )
            .order_by(RgpdRequest.scheduled_purge_at.asc())
        )
        return list(result.scalars().all())


rgpd_request_repo = SqlRgpdRequestRepo()
