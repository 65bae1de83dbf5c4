"""Async database engine, session factory, and lifespan management.

Uses SQLAlchemy 2.0 async with asyncpg driver for PostgreSQL. The pool is
shared by every tenant; isolation comes from the transaction-local tenant
marker set in ``src.db.tenancy``, never from per-tenant connections.
"""

from __future__ import annotations

import contextlib
from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.config import settings
from src.errors import TenantIsolationError
from src.security.safe_log import get_logger

logger = get_logger(__name__)

# Superusers and BYPASSRLS roles ignore every policy, FORCE included
_ROLE_BYPASSES_RLS = text(
    "SELECT rolsuper OR rolbypassrls FROM pg_roles WHERE rolname = current_user"
)

# ── Async PostgreSQL engine ──────────────────────────────────────────

engine: AsyncEngine = create_async_engine(
    settings.db.database_url,
    echo=False,
    pool_size=settings.db.pool_size,
    max_overflow=settings.db.max_overflow,
    pool_pre_ping=True,
    pool_recycle=3600,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Lifespan helpers ─────────────────────────────────────────────────


async def check_rls_role(conn: AsyncConnection) -> None:
    """Refuse to serve tenants through a role that row-level security does not bind.

    Outside production the check only warns, so local superuser setups still boot.
    """
    bypasses = (await conn.execute(_ROLE_BYPASSES_RLS)).scalar()
    if not bypasses:
        return
    if settings.is_production:
        raise TenantIsolationError("Database role bypasses row-level security")
    logger.warning("db.role_bypasses_rls", environment=settings.environment)


async def init_db() -> None:
    """Check the connection role, then create tables outside production.

    In production, tables and policies come from Alembic migrations only.
    """
    async with engine.begin() as conn:
        await check_rls_role(conn)
        if not settings.is_production:
            from src.models import Base

            await conn.run_sync(Base.metadata.create_all)


@contextlib.asynccontextmanager
async def db_lifespan() -> AsyncGenerator[None, None]:
    """Open the pool for the app's lifetime and dispose it on shutdown."""
    await init_db()
    try:
        yield
    finally:
        await engine.dispose()
