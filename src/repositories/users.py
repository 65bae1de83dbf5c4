"""Tenant and user persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import delete, select, update

from src.db.tenancy import PlatformScope, TenantScope
from src.models.tenant import Tenant
from src.models.user import User


class TenantRepo(Protocol):
    async def add(self, scope: PlatformScope, tenant: Tenant) -> Tenant: ...

    async def get(self, scope: PlatformScope, tenant_id: Any) -> Tenant | None: ...

    async def get_by_slug(self, scope: PlatformScope, slug: str) -> Tenant | None: ...

    async def save(self, scope: PlatformScope, tenant: Tenant) -> None: ...

    async def list_active(self, scope: PlatformScope) -> list[Tenant]: ...


class UserRepo(Protocol):
    async def add(self, scope: TenantScope, user: User) -> User: ...

    async def get(self, scope: TenantScope, user_id: Any, include_deleted: bool = False) -> User | None: ...

    async def save(self, scope: TenantScope, user: User) -> None: ...

    async def hard_delete(self, scope: TenantScope, user_id: Any) -> int: ...

    async def soft_delete_tenant_users(self, scope: PlatformScope, tenant_id: Any, at: datetime) -> int: ...


class SqlTenantRepo:
    async def add(self, scope: PlatformScope, tenant: Tenant) -> Tenant:
        scope.session.add(tenant)
        await scope.session.flush()
        return tenant

    async def get(self, scope: PlatformScope, tenant_id: Any) -> Tenant | None:
        return await scope.session.get(Tenant, tenant_id)

    async def get_by_slug(self, scope: PlatformScope, slug: str) -> Tenant | None:
        result = await scope.session.execute(select(Tenant).where(Tenant.slug == slug))
        return result.scalar_one_or_none()

    async def save(self, scope: PlatformScope, tenant: Tenant) -> None:
        scope.session.add(tenant)
        await scope.session.flush()

    async def list_active(self, scope: PlatformScope) -> list[Tenant]:
        result = await scope.session.execute(
            select(Tenant).where(Tenant.deleted_at.is_(None)).order_by(Tenant.slug.asc())
        )
        return list(result.scalars().all())


class SqlUserRepo:
    async def add(self, scope: TenantScope, user: User) -> User:
        scope.session.add(user)
        await scope.session.flush()
        return user

    async def get(self, scope: TenantScope, user_id: Any, include_deleted: bool = False) -> User | None:
        stmt = select(User).where(User.id == user_id, User.tenant_id == scope.tenant_id)
        if not include_deleted:
            stmt = stmt.where(User.deleted_at.is_(None))
        result = await scope.session.execute(stmt)
        return result.scalar_one_or_none()

    async def save(self, scope: TenantScope, user: User) -> None:
        scope.session.add(user)
        await scope.session.flush()

    async def hard_delete(self, scope: TenantScope, user_id: Any) -> int:
        result = await scope.session.execute(
            delete(User).where(User.id == user_id, User.tenant_id == scope.tenant_id)
        )
        return result.rowcount  # type: ignore[attr-defined]

    async def soft_delete_tenant_users(self, scope: PlatformScope, tenant_id: Any, at: datetime) -> int:
        result = await scope.session.execute(
            update(User)
            .where(User.tenant_id == tenant_id, User.deleted_at.is_(None))
            .values(deleted_at=at)
        )
        return result.rowcount  # type: ignore[attr-defined]


# Module-level singletons
tenant_repo = SqlTenantRepo()
user_repo = SqlUserRepo()
