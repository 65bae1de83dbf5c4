"""Policy engine — who may do what, and to which tenant.

The HTTP edge authenticates; this module only consumes the resulting actor
tuple (tenant_id, user_id, scope, role). ``authorize`` raises on denial:

- ``TenantIsolationError`` when a tenant actor targets another tenant
- ``PolicyDenied`` when the role lacks the permission

Platform actors (SUPERADMIN) hold every permission. Tenant admins and DPOs
act within their own tenant. Members act on themselves only.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from src.errors import PolicyDenied, TenantIsolationError
from src.models.enums import ActorScope, UserRole


class Permission(str, Enum):
    # Self-service data subject rights
    CONSENT_MANAGE = "consent:manage"
    AI_INVOKE = "ai:invoke"
    EXPORT_REQUEST = "export:request"
    DELETION_REQUEST = "deletion:request"
    DISPUTE_SUBMIT = "dispute:submit"
    OPPOSITION_SUBMIT = "opposition:submit"
    SUSPENSION_REQUEST = "suspension:request"

    # Tenant administration
    REVIEW_DECIDE = "review:decide"
    SUSPENSION_MANAGE = "suspension:manage"
    INCIDENT_MANAGE = "incident:manage"
    AUDIT_READ = "audit:read"

    # Platform only
    TENANT_MANAGE = "tenant:manage"
    PLATFORM_JOBS = "platform:jobs"


SELF_SERVICE: frozenset[Permission] = frozenset({
    Permission.CONSENT_MANAGE,
    Permission.AI_INVOKE,
    Permission.EXPORT_REQUEST,
    Permission.DELETION_REQUEST,
    Permission.DISPUTE_SUBMIT,
    Permission.OPPOSITION_SUBMIT,
    Permission.SUSPENSION_REQUEST,
})

PLATFORM_ONLY: frozenset[Permission] = frozenset({Permission.TENANT_MANAGE, Permission.PLATFORM_JOBS})

ROLE_PERMISSIONS: dict[UserRole, frozenset[Permission]] = {
    UserRole.SUPERADMIN: frozenset(Permission),
    UserRole.TENANT_ADMIN: frozenset(Permission) - PLATFORM_ONLY,
    UserRole.DPO: frozenset(Permission) - PLATFORM_ONLY,
    UserRole.MEMBER: SELF_SERVICE,
}


@dataclass(frozen=True)
class Actor:
    """Already-authenticated caller."""

    tenant_id: str | None
    user_id: str
    scope: ActorScope
    role: UserRole

    @property
    def is_platform(self) -> bool:
        return self.scope == ActorScope.PLATFORM and self.role == UserRole.SUPERADMIN


def authorize(
    actor: Actor,
    permission: Permission,
    resource_tenant_id: str | None = None,
    subject_user_id: Any | None = None,
) -> None:
    """Raise unless ``actor`` may exercise ``permission`` on the given tenant (and subject)."""
    if actor.is_platform:
        return

    if permission in PLATFORM_ONLY:
        msg = "Platform permission required"
        raise PolicyDenied(msg)

    if not actor.tenant_id:
        msg = "Actor has no tenant"
        raise TenantIsolationError(msg)
    if resource_tenant_id is not None and str(resource_tenant_id) != str(actor.tenant_id):
        msg = "Cross-tenant access denied"
        raise TenantIsolationError(msg)

    if permission not in ROLE_PERMISSIONS.get(actor.role, frozenset()):
        msg = "Permission denied"
        raise PolicyDenied(msg)

    if actor.role == UserRole.MEMBER and subject_user_id is not None and str(subject_user_id) != actor.user_id:
        msg = "Members may only act on their own data"
        raise PolicyDenied(msg)


def can(actor: Actor, permission: Permission, resource_tenant_id: str | None = None) -> bool:
    """Boolean form of ``authorize`` for UI-style checks. Isolation errors still raise."""
    try:
        authorize(actor, permission, resource_tenant_id)
    except PolicyDenied:
        return False
    return True
