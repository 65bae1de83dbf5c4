"""Tests for the policy engine — role permissions and tenant boundaries."""

from __future__ import annotations

import pytest

from src.errors import PolicyDenied, TenantIsolationError
from src.models.enums import ActorScope, UserRole
from src.security.policy import PLATFORM_ONLY, SELF_SERVICE, Actor, Permission, authorize, can


# ── Helpers ──────────────────────────────────────────────────────────


def _member(tenant_id="t1", user_id="u1"):
    return Actor(tenant_id=tenant_id, user_id=user_id, scope=ActorScope.MEMBER, role=UserRole.MEMBER)


def _admin(role=UserRole.TENANT_ADMIN, tenant_id="t1"):
    return Actor(tenant_id=tenant_id, user_id="admin-1", scope=ActorScope.TENANT, role=role)


def _superadmin():
    return Actor(tenant_id=None, user_id="root", scope=ActorScope.PLATFORM, role=UserRole.SUPERADMIN)


# ── Platform ─────────────────────────────────────────────────────────


class TestPlatform:
    @pytest.mark.parametrize("permission", list(Permission))
    def test_superadmin_holds_everything(self, permission):
        authorize(_superadmin(), permission, resource_tenant_id="any-tenant", subject_user_id="anyone")

    def test_platform_scope_requires_superadmin_role(self):
        fake = Actor(tenant_id=None, user_id="x", scope=ActorScope.PLATFORM, role=UserRole.DPO)
        assert fake.is_platform is False
        with pytest.raises(PolicyDenied):
            authorize(fake, Permission.TENANT_MANAGE)

    @pytest.mark.parametrize("permission", sorted(PLATFORM_ONLY))
    def test_tenant_admin_cannot_use_platform_permissions(self, permission):
        with pytest.raises(PolicyDenied):
            authorize(_admin(), permission)


# ── Tenant boundary ──────────────────────────────────────────────────


class TestTenantBoundary:
    def test_cross_tenant_rejected(self):
        with pytest.raises(TenantIsolationError):
            authorize(_admin(), Permission.REVIEW_DECIDE, resource_tenant_id="t2")

    def test_actor_without_tenant_rejected(self):
        with pytest.raises(TenantIsolationError):
            authorize(_member(tenant_id=None), Permission.AI_INVOKE)

    def test_same_tenant_allowed(self):
        authorize(_admin(UserRole.DPO), Permission.SUSPENSION_MANAGE, resource_tenant_id="t1")


# ── Roles ────────────────────────────────────────────────────────────


class TestRoles:
    @pytest.mark.parametrize("permission", sorted(SELF_SERVICE))
    def test_member_self_service(self, permission):
        authorize(_member(), permission, resource_tenant_id="t1", subject_user_id="u1")

    @pytest.mark.parametrize(
        "permission",
        [Permission.REVIEW_DECIDE, Permission.SUSPENSION_MANAGE, Permission.INCIDENT_MANAGE, Permission.AUDIT_READ],
    )
    def test_member_cannot_administer(self, permission):
        with pytest.raises(PolicyDenied):
            authorize(_member(), permission)

    def test_member_cannot_act_for_someone_else(self):
        with pytest.raises(PolicyDenied):
            authorize(_member(), Permission.EXPORT_REQUEST, subject_user_id="u2")

    def test_admin_may_act_for_members(self):
        authorize(_admin(), Permission.CONSENT_MANAGE, resource_tenant_id="t1", subject_user_id="u2")


class TestCan:
    def test_true_and_false(self):
        assert can(_admin(), Permission.REVIEW_DECIDE) is True
        assert can(_member(), Permission.REVIEW_DECIDE) is False

    def test_isolation_still_raises(self):
        with pytest.raises(TenantIsolationError):
            can(_admin(), Permission.REVIEW_DECIDE, resource_tenant_id="t2")
