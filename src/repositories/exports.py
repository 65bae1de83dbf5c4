"""Export metadata persistence (P1 only, never the bundle)."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import delete, select, update

from src.db.tenancy import PlatformScope, TenantScope
from src.models.export import ExportRecord


class ExportRepo(Protocol):
    async def add(self, scope: TenantScope, record: ExportRecord) -> ExportRecord: ...

    async def get_by_token(self, scope: TenantScope, download_token: str) -> ExportRecord | None: ...

    async def claim_download(self, scope: TenantScope, export_id: Any, max_downloads: int) -> int | None: ...

    async def delete(self, scope: TenantScope, export_id: Any) -> int: ...

    async def list_for_user(self, scope: TenantScope, user_id: Any) -> list[ExportRecord]: ...

    async def list_expired(self, scope: PlatformScope, now: datetime) -> list[ExportRecord]: ...

    async def delete_many(self, scope: PlatformScope, export_ids: list[Any]) -> int: ...


class SqlExportRepo:
    async def add(self, scope: TenantScope, record: ExportRecord) -> ExportRecord:
        scope.session.add(record)
        await scope.session.flush()
        return record

    async def get_by_token(self, scope: TenantScope, download_token: str) -> ExportRecord | None:
        result = await scope.session.execute(
            select(ExportRecord).where(
                ExportRecord.download_token == download_token,
                ExportRecord.tenant_id == scope.tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def claim_download(self, scope: TenantScope, export_id: Any, max_downloads: int) -> int | None:
        """Increment the download counter unless the limit is reached.

        Returns the new count, or None when no download slot is left. The
        conditional UPDATE takes the row lock, so a concurrent download
        re-evaluates the limit against the committed count.
        """
        result = await scope.session.execute(
            update(ExportRecord)
            .where(
                ExportRecord.id == export_id,
                ExportRecord.tenant_id == scope.tenant_id,
                ExportRecord.download_count < max_downloads,
            )
            .values(download_count=ExportRecord.download_count + 1)
            .returning(ExportRecord.download_count)
            .execution_options(synchronize_session="fetch")
        )
        return result.scalar_one_or_none()

    async def delete(self, scope: TenantScope, export_id: Any) -> int:
        result = await scope.session.execute(
            delete(ExportRecord).where(
                ExportRecord.id == export_id,
                ExportRecord.tenant_id == scope.tenant_id,
            )
        )
        return result.rowcount  # type: ignore[attr-defined]

    async def list_for_user(self, scope: TenantScope, user_id: Any) -> list[ExportRecord]:
        result = await scope.session.execute(
            select(ExportRecord).where(
                ExportRecord.tenant_id == scope.tenant_id,
                ExportRecord.user_id == user_id,
            )
        )
        return list(result.scalars().all())

    async def list_expired(self, scope: PlatformScope, now: datetime) -> list[ExportRecord]:
        result = await scope.session.execute(select(ExportRecord).where(ExportRecord.expires_at < now))
        return list(result.scalars().all())

    async def delete_many(self, scope: PlatformScope, export_ids: list[Any]) -> int:
        if not export_ids:
            return 0
        result = await scope.session.execute(delete(ExportRecord).where(ExportRecord.id.in_(export_ids)))
        return result.rowcount  # type: ignore[attr-defined]


export_repo = SqlExportRepo()
