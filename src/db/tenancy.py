"""Tenant isolation — every read/write on tenant-owned tables runs inside one of two scopes.

``tenant_scope(tenant_id)`` opens a transaction on a pooled connection and
sets ``app.current_tenant_id`` with ``set_config(..., true)`` (transaction-local,
the Python equivalent of ``SET LOCAL``). PostgreSQL drops the value at COMMIT
or ROLLBACK, so the next borrower of the same pooled connection never inherits
it. Row-level security policies (see alembic) filter on that marker.

``platform_scope()`` is for cross-tenant platform-admin work. It sets no tenant
marker, only ``app.platform_scope``; callers must gate it behind a PLATFORM
authorization check (``src.security.policy``).

Repositories take the yielded ``TenantScope`` as their first argument, so
"forgot the tenant" is a type error rather than a silent cross-tenant read.

Usage:
    async with tenant_scope(tenant_id) as scope:
        await consent_repo.latest(scope, user_id, purpose)

    result = await run_in_tenant_scope(tenant_id, lambda scope: work(scope))
"""

from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator, Awaitable, Callable
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, TypeVar

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.errors import TenantIsolationError

T = TypeVar("T")

SessionFactory = Callable[[], Any]

_SET_TENANT = text("SELECT set_config('app.current_tenant_id', :tenant_id, true)")
_SET_PLATFORM = text("SELECT set_config('app.platform_scope', 'on', true)")


@dataclass(frozen=True)
class TenantScope:
    """An open transaction bound to exactly one tenant."""

    session: AsyncSession
    tenant_id: str


@dataclass(frozen=True)
class PlatformScope:
    """An open transaction with no tenant marker (platform admins, jobs)."""

    session: AsyncSession


Scope = TenantScope | PlatformScope

_current_scope: ContextVar[Scope | None] = ContextVar("current_scope", default=None)


def current_scope() -> Scope | None:
    """The innermost scope opened by the running task, if any."""
    return _current_scope.get()


def require_tenant_id(tenant_id: Any) -> str:
    """Normalize a tenant id, rejecting empty or whitespace-only values."""
    if tenant_id is None or not str(tenant_id).strip():
        msg = "Tenant isolation violation: tenant id required for database operations"
        raise TenantIsolationError(msg)
    return str(tenant_id).strip()


def _default_factory() -> SessionFactory:
    from src.db.engine import async_session_factory

    return async_session_factory


@contextlib.asynccontextmanager
async def tenant_scope(
    tenant_id: Any,
    session_factory: SessionFactory | None = None,
) -> AsyncIterator[TenantScope]:
    """Open a transaction with the tenant marker set. Commits on exit, rolls back on error."""
    tid = require_tenant_id(tenant_id)
    factory = session_factory or _default_factory()
    async with factory() as session, session.begin():
        await session.execute(_SET_TENANT, {"tenant_id": tid})
        scope = TenantScope(session=session, tenant_id=tid)
        token = _current_scope.set(scope)
        try:
            yield scope
        finally:
            _current_scope.reset(token)


@contextlib.asynccontextmanager
async def platform_scope(
    session_factory: SessionFactory | None = None,
) -> AsyncIterator[PlatformScope]:
    """Open a transaction for cross-tenant platform work. Sets no tenant marker."""
    factory = session_factory or _default_factory()
    async with factory() as session, session.begin():
        await session.execute(_SET_PLATFORM)
        scope = PlatformScope(session=session)
        token = _current_scope.set(scope)
        try:
            yield scope
        finally:
            _current_scope.reset(token)


async def run_in_tenant_scope(
    tenant_id: Any,
    work: Callable[[TenantScope], Awaitable[T]],
    session_factory: SessionFactory | None = None,
) -> T:
    """Run ``work`` inside ``tenant_scope``; exceptions roll back and propagate."""
    async with tenant_scope(tenant_id, session_factory) as scope:
        return await work(scope)


async def run_in_platform_scope(
    work: Callable[[PlatformScope], Awaitable[T]],
    session_factory: SessionFactory | None = None,
) -> T:
    """Run ``work`` inside ``platform_scope``; exceptions roll back and propagate."""
    async with platform_scope(session_factory) as scope:
        return await work(scope)


def ensure_same_tenant(scope: TenantScope, tenant_id: Any) -> None:
    """Second line of defense: reject an entity or request for another tenant."""
    if str(tenant_id) != scope.tenant_id:
        msg = "Tenant isolation violation: cross-tenant access"
        raise TenantIsolationError(msg)
