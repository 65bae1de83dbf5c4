"""AI job metadata persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import delete, func, select, update

from src.db.tenancy import TenantScope
from src.models.ai_job import AiJob


class AiJobRepo(Protocol):
    async def add(self, scope: TenantScope, job: AiJob) -> AiJob: ...

    async def get(self, scope: TenantScope, job_id: Any) -> AiJob | None: ...

    async def save(self, scope: TenantScope, job: AiJob) -> None: ...

    async def list_for_user(self, scope: TenantScope, user_id: Any) -> list[AiJob]: ...

    async def soft_delete_for_user(self, scope: TenantScope, user_id: Any, at: datetime) -> int: ...

    async def hard_delete_for_user(self, scope: TenantScope, user_id: Any) -> int: ...

    async def count_older_than(self, scope: TenantScope, cutoff: datetime) -> int: ...

    async def delete_older_than(self, scope: TenantScope, cutoff: datetime) -> int: ...


class SqlAiJobRepo:
    async def add(self, scope: TenantScope, job: AiJob) -> AiJob:
        scope.session.add(job)
        await scope.session.flush()
        return job

    async def get(self, scope: TenantScope, job_id: Any) -> AiJob | None:
        result = await scope.session.execute(
            select(AiJob).where(
                AiJob.id == job_id,
                AiJob.tenant_id == scope.tenant_id,
                AiJob.deleted_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def save(self, scope: TenantScope, job: AiJob) -> None:
        scope.session.add(job)
        await scope.session.flush()

    async def list_for_user(self, scope: TenantScope, user_id: Any) -> list[AiJob]:
        result = await scope.session.execute(
            select(AiJob)
            .where(AiJob.tenant_id == scope.tenant_id, AiJob.user_id == user_id)
            .order_by(AiJob.requested_at.asc())
        )
        return list(result.scalars().all())

    async def soft_delete_for_user(self, scope: TenantScope, user_id: Any, at: datetime) -> int:
        result = await scope.session.execute(
            update(AiJob)
            .where(
                AiJob.tenant_id == scope.tenant_id,
                AiJob.user_id == user_id,
                AiJob.deleted_at.is_(None),
            )
            .values(deleted_at=at)
        )
        return result.rowcount  # type: ignore[attr-defined]

    async def hard_delete_for_user(self, scope: TenantScope, user_id: Any) -> int:
        result = await scope.session.execute(
            delete(AiJob).where(AiJob.tenant_id == scope.tenant_id, AiJob.user_id == user_id)
        )
        return result.rowcount  # type: ignore[attr-defined]

    async def count_older_than(self, scope: TenantScope, cutoff: datetime) -> int:
        result = await scope.session.execute(
            select(func.count())
            .select_from(AiJob)
            .where(AiJob.tenant_id == scope.tenant_id, AiJob.requested_at < cutoff)
        )
        return int(result.scalar_one())

    async def delete_older_than(self, scope: TenantScope, cutoff: datetime) -> int:
        result = await scope.session.execute(
            delete(AiJob).where(AiJob.tenant_id == scope.tenant_id, AiJob.requested_at < cutoff)
        )
        return result.rowcount  # type: ignore[attr-defined]


ai_job_repo = SqlAiJobRepo()
