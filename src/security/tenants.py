"""Tenant lifecycle — platform-scope operations only.

Slugs are immutable once created. Suspension toggles the timestamp/reason
pair. Deletion is soft and cascades ``deleted_at`` to the tenant's users;
hard purge of their data goes through the per-user erasure flow.
"""

from __future__ import annotations

import re
import uuid
from typing import Any

from src.db.tenancy import PlatformScope
from src.errors import StateTransitionError, ValidationError
from src.models.enums import ActorScope
from src.models.tenant import Tenant
from src.repositories.users import TenantRepo, UserRepo, tenant_repo, user_repo
from src.schemas.audit import AuditEvent, EventType
from src.security.audit import AuditEmitter, audit_emitter
from src.security.clock import Clock, system_clock
from src.security.safe_log import get_logger

logger = get_logger(__name__)

SLUG_PATTERN = re.compile(r"^[a-z0-9-]{3,50}$")
MAX_NAME_LENGTH = 200


class TenantManager:
    """Create, suspend, reactivate and soft-delete tenants."""

    def __init__(
        self,
        tenants: TenantRepo | None = None,
        users: UserRepo | None = None,
        audit: AuditEmitter | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._tenants = tenants or tenant_repo
        self._users = users or user_repo
        self._audit = audit or audit_emitter
        self._clock = clock or system_clock

    async def create_tenant(self, scope: PlatformScope, slug: str, name: str, actor_id: str) -> Tenant:
        slug = (slug or "").strip()
        name = (name or "").strip()
        if not SLUG_PATTERN.match(slug):
            msg = "Slug must be 3-50 characters of lowercase letters, digits and dashes"
            raise ValidationError(msg)
        if not name or len(name) > MAX_NAME_LENGTH:
            msg = f"Name is required and must not exceed {MAX_NAME_LENGTH} characters"
            raise ValidationError(msg)
        if await self._tenants.get_by_slug(scope, slug) is not None:
            msg = "Slug already in use"
            raise StateTransitionError(msg)

        tenant = Tenant(id=uuid.uuid4(), slug=slug, name=name)
        await self._tenants.add(scope, tenant)
        await self._emit(EventType.TENANT_CREATED, tenant, actor_id, {"slug": slug})
        logger.info("tenant.created", tenant_id=str(tenant.id))
        return tenant

    async def suspend_tenant(self, scope: PlatformScope, tenant_id: Any, reason: str, actor_id: str) -> Tenant:
        tenant = await self._load(scope, tenant_id)
        if tenant.is_suspended:
            msg = "Tenant already suspended"
            raise StateTransitionError(msg)
        reason = (reason or "").strip()
        if not reason:
            msg = "A suspension reason is required"
            raise ValidationError(msg)
        tenant.suspended_at = self._clock.now()
        tenant.suspension_reason = reason[:500]
        await self._tenants.save(scope, tenant)
        await self._emit(EventType.TENANT_SUSPENDED, tenant, actor_id, {"suspended": True})
        return tenant

    async def reactivate_tenant(self, scope: PlatformScope, tenant_id: Any, actor_id: str) -> Tenant:
        tenant = await self._load(scope, tenant_id)
        if not tenant.is_suspended:
            msg = "Tenant is not suspended"
            raise StateTransitionError(msg)
        tenant.suspended_at = None
        tenant.suspension_reason = None
        await self._tenants.save(scope, tenant)
        await self._emit(EventType.TENANT_REACTIVATED, tenant, actor_id, {"suspended": False})
        return tenant

    async def soft_delete_tenant(self, scope: PlatformScope, tenant_id: Any, actor_id: str) -> int:
        """Soft-delete the tenant and its users. Returns the number of users affected."""
        tenant = await self._load(scope, tenant_id)
        now = self._clock.now()
        tenant.deleted_at = now
        await self._tenants.save(scope, tenant)
        users = await self._users.soft_delete_tenant_users(scope, tenant.id, now)
        await self._emit(EventType.TENANT_DELETED, tenant, actor_id, {"users": users})
        logger.info("tenant.deleted", tenant_id=str(tenant.id), users=users)
        return users

    async def _load(self, scope: PlatformScope, tenant_id: Any) -> Tenant:
        tenant = await self._tenants.get(scope, tenant_id)
        if tenant is None or tenant.deleted_at is not None:
            msg = "Tenant not found"
            raise ValidationError(msg)
        return tenant

    async def _emit(self, event_type: EventType, tenant: Tenant, actor_id: str, metadata: dict[str, Any]) -> None:
        await self._audit.emit(AuditEvent(
            event_name=event_type.value,
            actor_scope=ActorScope.PLATFORM,
            actor_id=actor_id,
            tenant_id=str(tenant.id),
            target_id=str(tenant.id),
            metadata=metadata,
        ))


# Module-level singleton
tenant_manager = TenantManager()
