"""Tests for RetentionEnforcer — AI job purge, export sweep, audit trail pruning."""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from src.models.ai_job import AiJob
from src.models.audit import AuditLog
from src.models.enums import ActorScope
from src.models.export import ExportRecord
from src.models.tenant import Tenant
from src.security.encryption import encrypt
from src.security.export_storage import FileExportStorage
from src.security.retention import RetentionEnforcer
from tests.conftest import (
    T0,
    FakeAiJobRepo,
    FakeAuditEventRepo,
    FakeExportRepo,
    FakeTenantRepo,
    make_scope,
)


# ── Helpers ──────────────────────────────────────────────────────────


def _make_job(tenant_id, requested_at):
    return AiJob(
        id=uuid.uuid4(),
        tenant_id=tenant_id,
        user_id=uuid.uuid4(),
        purpose="ai_processing",
        status="COMPLETED",
        requested_at=requested_at,
        deleted_at=None,
    )


def _make_audit_row(occurred_at):
    return AuditLog(
        id=uuid.uuid4(),
        event_name="consent.granted",
        actor_scope="MEMBER",
        actor_id="u1",
        tenant_id="t1",
        occurred_at=occurred_at,
    )


class _Ctx:
    def __init__(self, audit, clock, tmp_path):
        self.tenants = FakeTenantRepo()
        self.ai_jobs = FakeAiJobRepo()
        self.exports = FakeExportRepo()
        self.audit_events = FakeAuditEventRepo()
        self.storage = FileExportStorage(tmp_path)
        self.clock = clock
        self.enforcer = RetentionEnforcer(
            tenants=self.tenants,
            ai_jobs=self.ai_jobs,
            exports=self.exports,
            audit_events=self.audit_events,
            storage=self.storage,
            audit=audit,
            clock=clock,
        )

    async def add_export(self, tenant_id, expires_at):
        export_id = uuid.uuid4()
        await self.storage.write_encrypted_bundle(export_id, encrypt("{}", "pw"))
        await self.exports.add(None, ExportRecord(
            id=export_id,
            tenant_id=tenant_id,
            user_id=uuid.uuid4(),
            download_token=uuid.uuid4().hex,
            expires_at=expires_at,
            download_count=0,
        ))
        return export_id


@pytest.fixture
def ctx(audit, clock, tmp_path):
    return _Ctx(audit, clock, tmp_path)


# ── AI jobs ──────────────────────────────────────────────────────────


class TestPurgeAiJobs:
    @pytest.mark.asyncio()
    async def test_deletes_only_older_than_window(self, ctx, scope, sink):
        ctx.clock.advance(days=100)
        old = await ctx.ai_jobs.add(scope, _make_job("t1", T0))
        recent = await ctx.ai_jobs.add(scope, _make_job("t1", T0 + timedelta(days=20)))

        report = await ctx.enforcer.purge_ai_jobs(scope)

        assert (report.matched, report.deleted, report.dry_run) == (1, 1, False)
        assert ctx.ai_jobs.items == [recent]
        assert old not in ctx.ai_jobs.items
        assert sink.names == ["retention.ai_jobs.purged"]
        assert sink.events[0].actor_scope is ActorScope.SYSTEM
        assert sink.events[0].metadata == {"deleted": 1, "retention_days": 90}

    @pytest.mark.asyncio()
    async def test_dry_run_deletes_nothing(self, ctx, scope, sink):
        ctx.clock.advance(days=100)
        await ctx.ai_jobs.add(scope, _make_job("t1", T0))

        report = await ctx.enforcer.purge_ai_jobs(scope, dry_run=True)

        assert (report.matched, report.deleted) == (1, 0)
        assert len(ctx.ai_jobs.items) == 1
        assert sink.events == []

    @pytest.mark.asyncio()
    async def test_other_tenant_untouched(self, ctx, sink):
        ctx.clock.advance(days=100)
        await ctx.ai_jobs.add(None, _make_job("t2", T0))

        report = await ctx.enforcer.purge_ai_jobs(make_scope("t1"))

        assert report.matched == 0
        assert len(ctx.ai_jobs.items) == 1
        assert sink.events == []


# ── Exports ──────────────────────────────────────────────────────────


class TestSweepExpiredExports:
    @pytest.mark.asyncio()
    async def test_removes_expired_bundles_and_rows(self, ctx, platform, tmp_path, sink):
        expired = await ctx.add_export("t1", T0 - timedelta(seconds=1))
        valid = await ctx.add_export("t2", T0 + timedelta(days=1))

        assert await ctx.enforcer.sweep_expired_exports(platform) == 1

        assert [r.id for r in ctx.exports.items] == [valid]
        assert [f.stem for f in tmp_path.glob("*.enc")] == [str(valid)]
        assert str(expired) not in {f.stem for f in tmp_path.glob("*.enc")}
        assert sink.names == ["retention.exports.swept"]

    @pytest.mark.asyncio()
    async def test_metadata_left_by_lazy_expiry(self, ctx, platform):
        export_id = await ctx.add_export("t1", T0 - timedelta(days=1))
        await ctx.storage.delete_bundle(export_id)

        assert await ctx.enforcer.sweep_expired_exports(platform) == 1
        assert ctx.exports.items == []

    @pytest.mark.asyncio()
    async def test_nothing_expired(self, ctx, platform, sink):
        await ctx.add_export("t1", T0 + timedelta(days=7))
        assert await ctx.enforcer.sweep_expired_exports(platform) == 0
        assert sink.events == []


# ── Audit trail ──────────────────────────────────────────────────────


class TestPruneAuditTrail:
    @pytest.mark.asyncio()
    async def test_three_year_window(self, ctx, platform, sink):
        await ctx.audit_events.add(None, _make_audit_row(T0 - timedelta(days=3 * 365 + 1)))
        kept = _make_audit_row(T0 - timedelta(days=3 * 365 - 1))
        await ctx.audit_events.add(None, kept)

        assert await ctx.enforcer.prune_audit_trail(platform) == 1

        assert ctx.audit_events.items == [kept]
        assert sink.names == ["retention.audit.pruned"]
        assert sink.events[0].tenant_id is None


# ── Full run ─────────────────────────────────────────────────────────


class TestEnforceDataRetention:
    @pytest.mark.asyncio()
    async def test_runs_every_active_tenant(self, ctx, pool):
        await ctx.tenants.add(None, Tenant(id=uuid.uuid4(), slug="acme", name="Acme", deleted_at=None))
        second = await ctx.tenants.add(None, Tenant(id=uuid.uuid4(), slug="globex", name="Globex", deleted_at=None))
        gone = await ctx.tenants.add(None, Tenant(id=uuid.uuid4(), slug="gone", name="Gone", deleted_at=T0))
        ctx.clock.advance(days=100)
        await ctx.ai_jobs.add(None, _make_job(str(second.id), T0))
        await ctx.ai_jobs.add(None, _make_job(str(gone.id), T0))
        await ctx.add_export(str(second.id), T0)

        summary = await ctx.enforcer.enforce_data_retention(session_factory=pool)

        assert summary == {"ai_jobs_deleted": 1, "exports_deleted": 1, "audit_events_deleted": 0}
        # Soft-deleted tenants are skipped
        assert [str(j.tenant_id) for j in ctx.ai_jobs.items] == [str(gone.id)]
        assert pool.conn.settings == {}

    @pytest.mark.asyncio()
    async def test_dry_run_skips_platform_jobs(self, ctx, pool):
        tenant = await ctx.tenants.add(None, Tenant(id=uuid.uuid4(), slug="acme", name="Acme", deleted_at=None))
        ctx.clock.advance(days=100)
        await ctx.ai_jobs.add(None, _make_job(str(tenant.id), T0))
        await ctx.add_export(str(tenant.id), T0)

        summary = await ctx.enforcer.enforce_data_retention(dry_run=True, session_factory=pool)

        assert summary == {"ai_jobs_deleted": 0, "exports_deleted": 0, "audit_events_deleted": 0}
        assert len(ctx.ai_jobs.items) == 1
        assert len(ctx.exports.items) == 1
