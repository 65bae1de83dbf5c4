"""Tests for the HTTP edge.

Covers:
- Bearer token decoding (claims, expiry, missing secret)
- Error kind to status mapping with generic bodies
- Self-service and admin RGPD routes (services patched)
- Platform routes gated to superadmins
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import jwt
import pytest
from fastapi.testclient import TestClient

from src.api.deps import decode_actor, get_actor, get_platform_scope, get_tenant_scope
from src.config import settings
from src.errors import ConsentError, ConsentReason, ExportAccessError, LogGuardViolation, StateTransitionError
from src.main import app
from src.models.enums import ActorScope, UserRole
from src.security.encryption import EncryptedEnvelope
from src.security.erasure import ErasureResult
from src.security.policy import Actor
from tests.conftest import T0, make_platform, make_scope

SECRET = "test-secret-with-enough-entropy-0123456789"

MEMBER = Actor(tenant_id="t1", user_id="u1", scope=ActorScope.MEMBER, role=UserRole.MEMBER)
DPO = Actor(tenant_id="t1", user_id="dpo-1", scope=ActorScope.TENANT, role=UserRole.DPO)
ROOT = Actor(tenant_id=None, user_id="root", scope=ActorScope.PLATFORM, role=UserRole.SUPERADMIN)


# ── Helpers ──────────────────────────────────────────────────────────


def _token(**claims):
    payload = {
        "sub": "u1",
        "tenant": "t1",
        "scope": "MEMBER",
        "role": "MEMBER",
        "exp": datetime.now(UTC) + timedelta(minutes=5),
    }
    payload.update(claims)
    return jwt.encode({k: v for k, v in payload.items() if v is not None}, SECRET, algorithm="HS256")


@pytest.fixture
def jwt_secret(monkeypatch):
    monkeypatch.setattr(settings.security, "jwt_secret", SECRET)
    return SECRET


@pytest.fixture
def as_actor():
    """Authenticate every request as the given actor, inside a fake tenant scope."""

    def _use(actor: Actor) -> TestClient:
        app.dependency_overrides[get_actor] = lambda: actor
        app.dependency_overrides[get_tenant_scope] = lambda: make_scope(actor.tenant_id or "none")
        app.dependency_overrides[get_platform_scope] = lambda: make_platform()
        return TestClient(app)

    yield _use
    app.dependency_overrides.clear()


# ── Token decoding ───────────────────────────────────────────────────


class TestDecodeActor:
    def test_member_token(self, jwt_secret):
        actor = decode_actor(_token())
        assert actor == MEMBER

    def test_platform_token_without_tenant(self, jwt_secret):
        actor = decode_actor(_token(sub="root", tenant=None, scope="PLATFORM", role="SUPERADMIN"))
        assert actor.is_platform
        assert actor.tenant_id is None

    def test_tenant_claim_required_for_members(self, jwt_secret):
        with pytest.raises(jwt.InvalidTokenError):
            decode_actor(_token(tenant=None))

    def test_expired(self, jwt_secret):
        with pytest.raises(jwt.ExpiredSignatureError):
            decode_actor(_token(exp=datetime.now(UTC) - timedelta(seconds=1)))

    def test_unknown_role(self, jwt_secret):
        with pytest.raises(jwt.InvalidTokenError):
            decode_actor(_token(role="GOD"))

    def test_wrong_signature(self, jwt_secret):
        forged = jwt.encode({"sub": "u1", "scope": "PLATFORM", "role": "SUPERADMIN", "exp": T0}, "other-secret")
        with pytest.raises(jwt.InvalidTokenError):
            decode_actor(forged)

    def test_missing_secret_rejects_everything(self, monkeypatch):
        monkeypatch.setattr(settings.security, "jwt_secret", "")
        with pytest.raises(jwt.InvalidTokenError):
            decode_actor(_token())


class TestAuthentication:
    def test_no_token_401(self):
        client = TestClient(app)
        assert client.get("/rgpd/consents").status_code == 401

    def test_bad_token_401(self, jwt_secret):
        client = TestClient(app)
        response = client.get("/rgpd/consents", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_valid_token_reaches_route(self, jwt_secret):
        app.dependency_overrides[get_tenant_scope] = lambda: make_scope("t1")
        try:
            with patch("src.api.rgpd.consent_manager") as manager:
                manager.history = AsyncMock(return_value=[])
                response = TestClient(app).get(
                    "/rgpd/consents", headers={"Authorization": f"Bearer {_token()}"}
                )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 200
        assert response.json() == []
        assert manager.history.call_args.args[1] == "u1"


# ── Error mapping ────────────────────────────────────────────────────


class TestErrorMapping:
    def test_consent_error_is_403_without_message(self, as_actor):
        client = as_actor(MEMBER)
        with patch("src.api.rgpd.ai_gateway") as gateway:
            gateway.invoke = AsyncMock(side_effect=ConsentError(ConsentReason.REVOKED, "Consent revoked: detail"))
            response = client.post("/rgpd/ai/invoke", json={"purpose": "ai_processing"})

        assert response.status_code == 403
        assert response.json() == {"error": "consent_required"}

    def test_export_error_is_generic_404(self, as_actor):
        client = as_actor(MEMBER)
        with patch("src.api.rgpd.data_exporter") as exporter:
            exporter.download_export = AsyncMock(side_effect=ExportAccessError("expired", "Export has expired"))
            response = client.get("/rgpd/exports/some-token")

        assert response.status_code == 404
        assert response.json() == {"error": "export_unavailable"}

    def test_conflict_is_409(self, as_actor):
        client = as_actor(DPO)
        with patch("src.api.rgpd.review_manager") as manager:
            manager.review_dispute = AsyncMock(side_effect=StateTransitionError("Review already final"))
            response = client.patch(
                f"/rgpd/admin/disputes/{uuid.uuid4()}", json={"status": "rejected", "admin_response": "No."}
            )

        assert response.status_code == 409
        assert response.json() == {"error": "conflict"}

    def test_log_guard_violation_is_500(self, as_actor):
        client = as_actor(MEMBER)
        with patch("src.api.rgpd.consent_manager") as manager:
            manager.grant = AsyncMock(side_effect=LogGuardViolation("Unsafe value"))
            response = client.post("/rgpd/consents/ai_processing")

        assert response.status_code == 500
        assert response.json() == {"error": "internal"}

    def test_member_on_admin_route_is_403(self, as_actor):
        client = as_actor(MEMBER)
        response = client.get("/rgpd/admin/reviews/overdue")
        assert response.status_code == 403
        assert response.json() == {"error": "forbidden"}

    def test_request_validation_is_422(self, as_actor):
        client = as_actor(MEMBER)
        response = client.post("/rgpd/suspension", json={"reason": "bored"})
        assert response.status_code == 422


# ── RGPD routes ──────────────────────────────────────────────────────


class TestRgpdRoutes:
    def test_grant_consent(self, as_actor):
        client = as_actor(MEMBER)
        record = SimpleNamespace(purpose="ai_processing", granted=True, recorded_at=T0)
        with patch("src.api.rgpd.consent_manager") as manager:
            manager.grant = AsyncMock(return_value=record)
            response = client.post("/rgpd/consents/ai_processing")

        assert response.status_code == 201
        assert response.json()["granted"] is True
        scope, user_id, purpose, actor_id, actor_scope = manager.grant.call_args.args
        assert (scope.tenant_id, user_id, purpose, actor_id) == ("t1", "u1", "ai_processing", "u1")
        assert actor_scope is ActorScope.MEMBER

    def test_create_export_returns_password_once(self, as_actor):
        client = as_actor(MEMBER)
        result = SimpleNamespace(export_id="e1", download_token="tok", password="pw", expires_at=T0)
        with patch("src.api.rgpd.data_exporter") as exporter:
            exporter.export_user_data = AsyncMock(return_value=result)
            response = client.post("/rgpd/exports")

        assert response.status_code == 201
        assert response.json()["password"] == "pw"

    def test_download_uses_camel_case_auth_tag(self, as_actor):
        client = as_actor(MEMBER)
        envelope = EncryptedEnvelope(ciphertext="Yw==", iv="aXY=", auth_tag="dGFn", salt="c2FsdA==")
        result = SimpleNamespace(export_id="e1", envelope=envelope, downloads_remaining=2)
        with patch("src.api.rgpd.data_exporter") as exporter:
            exporter.download_export = AsyncMock(return_value=result)
            response = client.get("/rgpd/exports/tok")

        body = response.json()
        assert body["authTag"] == "dGFn"
        assert body["downloads_remaining"] == 2
        assert exporter.download_export.call_args.args[1:] == ("tok", "u1")

    def test_deletion_is_accepted(self, as_actor):
        client = as_actor(MEMBER)
        request = SimpleNamespace(id=uuid.uuid4(), status="PENDING", scheduled_purge_at=T0 + timedelta(days=30))
        with patch("src.api.rgpd.erasure_processor") as processor:
            processor.delete_user_data = AsyncMock(return_value=request)
            response = client.post("/rgpd/deletion")

        assert response.status_code == 202
        assert response.json()["request_id"] == str(request.id)

    def test_admin_suspends_member(self, as_actor):
        client = as_actor(DPO)
        target = uuid.uuid4()
        user = SimpleNamespace(data_suspended=True, data_suspended_at=T0, data_suspended_reason="legal_claim")
        with patch("src.api.rgpd.suspension_manager") as manager:
            manager.toggle_suspension = AsyncMock(return_value=user)
            response = client.post(f"/rgpd/admin/users/{target}/suspension", json={"reason": "legal_claim"})

        assert response.status_code == 200
        assert response.json()["reason"] == "legal_claim"
        args = manager.toggle_suspension.call_args.args
        assert args[1] == str(target)
        assert args[3] == "dpo-1"

    def test_member_cannot_use_admin_suspension(self, as_actor):
        client = as_actor(MEMBER)
        response = client.delete(f"/rgpd/admin/users/{uuid.uuid4()}/suspension")
        assert response.status_code == 403

    @pytest.mark.parametrize(
        ("method", "path"),
        [
            ("post", "/rgpd/admin/ai-jobs/not-a-uuid/status"),
            ("delete", "/rgpd/admin/users/u9/suspension"),
            ("patch", "/rgpd/admin/disputes/not-a-uuid"),
            ("patch", "/rgpd/admin/oppositions/1"),
        ],
    )
    def test_malformed_path_id_is_422(self, as_actor, method, path):
        client = as_actor(DPO)
        body = {"status": "RUNNING"} if "/ai-jobs/" in path else {"status": "resolved"}
        with patch("src.api.rgpd.review_manager") as manager, patch("src.api.rgpd.suspension_manager") as suspensions:
            response = client.request(method, path, json=body)

        assert response.status_code == 422
        manager.review_dispute.assert_not_called()
        suspensions.unsuspend.assert_not_called()

    def test_review_records_reviewer(self, as_actor):
        client = as_actor(DPO)
        item = SimpleNamespace(id=uuid.uuid4(), status="resolved", submitted_at=T0, resolved_at=T0)
        with patch("src.api.rgpd.review_manager") as manager:
            manager.review_opposition = AsyncMock(return_value=item)
            response = client.patch(
                f"/rgpd/admin/oppositions/{item.id}", json={"status": "resolved", "admin_response": "Accepted."}
            )

        assert response.status_code == 200
        decision = manager.review_opposition.call_args.args[2]
        assert decision.reviewed_by == "dpo-1"
        assert decision.admin_response == "Accepted."


# ── Platform routes ──────────────────────────────────────────────────


class TestPlatformRoutes:
    def test_tenant_admin_rejected(self):
        app.dependency_overrides[get_actor] = lambda: DPO
        try:
            response = TestClient(app).get("/platform/incidents/pending")
        finally:
            app.dependency_overrides.clear()
        assert response.status_code == 403
        assert response.json() == {"error": "forbidden"}

    def test_create_incident_sets_creator(self, as_actor):
        client = as_actor(ROOT)
        incident = SimpleNamespace(
            id=uuid.uuid4(),
            severity="CRITICAL",
            risk_level="CRITICAL",
            users_affected=10,
            detected_at=T0,
            cnil_notified_at=None,
            users_notified_at=None,
            resolved_at=None,
        )
        with patch("src.api.platform.incident_registry") as registry:
            registry.create_incident = AsyncMock(return_value=incident)
            response = client.post("/platform/incidents", json={
                "severity": "CRITICAL",
                "type": "DATA_LEAK",
                "title": "Leak",
                "description": "Public bucket",
                "risk_level": "CRITICAL",
            })

        assert response.status_code == 201
        body = response.json()
        assert body["cnil_required"] is True
        assert body["cnil_deadline"].startswith("2025-01-04T00:00:00")
        assert registry.create_incident.call_args.args[1].created_by == "root"
        registry.notify_incident.assert_not_called()

    @pytest.mark.parametrize(
        "path",
        [
            "/platform/incidents/not-a-uuid/users-notified",
            "/platform/incidents/42/resolve",
            "/platform/tenants/acme/reactivate",
        ],
    )
    def test_malformed_path_id_is_422(self, as_actor, path):
        client = as_actor(ROOT)
        with patch("src.api.platform.incident_registry") as registry, patch("src.api.platform.tenant_manager") as tenants:
            response = client.post(path, json={})

        assert response.status_code == 422
        registry.resolve.assert_not_called()
        tenants.reactivate_tenant.assert_not_called()

    def test_incident_id_passed_as_string(self, as_actor):
        client = as_actor(ROOT)
        incident_id = uuid.uuid4()
        incident = SimpleNamespace(
            id=incident_id,
            severity="LOW",
            risk_level="LOW",
            users_affected=0,
            detected_at=T0,
            cnil_notified_at=None,
            users_notified_at=T0,
            resolved_at=None,
        )
        with patch("src.api.platform.incident_registry") as registry:
            registry.mark_users_notified = AsyncMock(return_value=incident)
            response = client.post(f"/platform/incidents/{incident_id}/users-notified")

        assert response.status_code == 200
        assert registry.mark_users_notified.call_args.args[1:] == (str(incident_id), "root")

    def test_run_purges(self, as_actor):
        client = as_actor(ROOT)
        results = [
            ErasureResult(success=True, request_id="r1"),
            ErasureResult(success=True, skipped=True, request_id="r2"),
            ErasureResult(request_id="r3", error="RuntimeError"),
        ]
        with patch("src.api.platform.erasure_processor") as processor:
            processor.run_pending_purges = AsyncMock(return_value=results)
            response = client.post("/platform/jobs/purges")

        assert response.json() == {"purged": 1, "failed": 1}

    def test_retention_dry_run(self, as_actor):
        client = as_actor(ROOT)
        summary = {"ai_jobs_deleted": 0, "exports_deleted": 0, "audit_events_deleted": 0}
        with patch("src.api.platform.retention_enforcer") as enforcer:
            enforcer.enforce_data_retention = AsyncMock(return_value=summary)
            response = client.post("/platform/jobs/retention?dry_run=true")

        assert response.json() == summary
        enforcer.enforce_data_retention.assert_awaited_once_with(dry_run=True)

    def test_jobs_forbidden_to_tenant_admin(self, as_actor):
        client = as_actor(DPO)
        assert client.post("/platform/jobs/purges").status_code == 403


class TestHealth:
    def test_health(self):
        response = TestClient(app).get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
