"""Consent history persistence (append-only)."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import delete, select, update

from src.db.tenancy import TenantScope
from src.models.consent import Consent


class ConsentRepo(Protocol):
    async def add(self, scope: TenantScope, consent: Consent) -> Consent: ...

    async def latest(self, scope: TenantScope, user_id: Any, purpose: str) -> Consent | None: ...

    async def list_for_user(self, scope: TenantScope, user_id: Any) -> list[Consent]: ...

    async def soft_delete_for_user(self, scope: TenantScope, user_id: Any, at: datetime) -> int: ...

    async def hard_delete_for_user(self, scope: TenantScope, user_id: Any) -> int: ...


class SqlConsentRepo:
    async def add(self, scope: TenantScope, consent: Consent) -> Consent:
        scope.session.add(consent)
        await scope.session.flush()
        return consent

    async def latest(self, scope: TenantScope, user_id: Any, purpose: str) -> Consent | None:
        result = await scope.session.execute(
            select(Consent)
            .where(
                Consent.tenant_id == scope.tenant_id,
                Consent.user_id == user_id,
                Consent.purpose == purpose,
                Consent.deleted_at.is_(None),
            )
            .order_by(Consent.recorded_at.desc(), Consent.seq.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_for_user(self, scope: TenantScope, user_id: Any) -> list[Consent]:
        result = await scope.session.execute(
            select(Consent)
            .where(Consent.tenant_id == scope.tenant_id, Consent.user_id == user_id)
            .order_by(Consent.recorded_at.asc(), Consent.seq.asc())
        )
        return list(result.scalars().all())

    async def soft_delete_for_user(self, scope: TenantScope, user_id: Any, at: datetime) -> int:
        result = await scope.session.execute(
            update(Consent)
            .where(
                Consent.tenant_id == scope.tenant_id,
                Consent.user_id == user_id,
                Consent.deleted_at.is_(None),
            )
            .values(deleted_at=at)
        )
        return result.rowcount  # type: ignore[attr-defined]

    async def hard_delete_for_user(self, scope: TenantScope, user_id: Any) -> int:
        result = await scope.session.execute(
            delete(Consent).where(Consent.tenant_id == scope.tenant_id, Consent.user_id == user_id)
        )
        return result.rowcount  # type: ignore[attr-defined]


consent_repo = SqlConsentRepo()
