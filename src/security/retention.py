"""Data retention enforcement — scheduled jobs for GDPR storage limitation.

Enforces three retention tiers:
- AI job metadata: 90 days per tenant (configurable via AI_JOB_RETENTION_DAYS)
- Export artifacts: removed once past their TTL (lazy expiry leaves metadata behind)
- Audit trail: 3 years (configurable via AUDIT_RETENTION_DAYS)

Every job is idempotent: it works from cutoff dates, so running it twice is
harmless. ``purge_ai_jobs`` supports ``dry_run`` to report what would go.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from src.config import settings
from src.db.tenancy import PlatformScope, SessionFactory, TenantScope, platform_scope, tenant_scope
from src.models.enums import ActorScope
from src.repositories.ai_jobs import AiJobRepo, ai_job_repo
from src.repositories.audit_events import AuditEventRepo, audit_event_repo
from src.repositories.exports import ExportRepo, export_repo
from src.repositories.users import TenantRepo, tenant_repo
from src.schemas.audit import AuditEvent, EventType
from src.security.audit import AuditEmitter, audit_emitter
from src.security.clock import Clock, system_clock
from src.security.export_storage import ExportStorage, export_storage
from src.security.safe_log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PurgeReport:
    tenant_id: str
    cutoff: str
    matched: int
    deleted: int
    dry_run: bool


class RetentionEnforcer:
    """Retention jobs. Scopes are opened by ``enforce_data_retention`` or passed in."""

    def __init__(
        self,
        tenants: TenantRepo | None = None,
        ai_jobs: AiJobRepo | None = None,
        exports: ExportRepo | None = None,
        audit_events: AuditEventRepo | None = None,
        storage: ExportStorage | None = None,
        audit: AuditEmitter | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._tenants = tenants or tenant_repo
        self._ai_jobs = ai_jobs or ai_job_repo
        self._exports = exports or export_repo
        self._audit_events = audit_events or audit_event_repo
        self._storage = storage or export_storage
        self._audit = audit or audit_emitter
        self._clock = clock or system_clock

    async def purge_ai_jobs(self, scope: TenantScope, dry_run: bool = False) -> PurgeReport:
        """Delete AI job metadata older than the retention window for one tenant."""
        cutoff = self._clock.now() - timedelta(days=settings.retention.ai_job_retention_days)
        matched = await self._ai_jobs.count_older_than(scope, cutoff)
        deleted = 0
        if not dry_run and matched:
            deleted = await self._ai_jobs.delete_older_than(scope, cutoff)
            await self._audit.emit(AuditEvent(
                event_name=EventType.AI_JOBS_PURGED.value,
                actor_scope=ActorScope.SYSTEM,
                actor_id="system",
                tenant_id=scope.tenant_id,
                metadata={"deleted": deleted, "retention_days": settings.retention.ai_job_retention_days},
            ))
        logger.info("retention.ai_jobs", matched=matched, deleted=deleted, dry_run=dry_run)
        return PurgeReport(
            tenant_id=scope.tenant_id,
            cutoff=cutoff.isoformat(),
            matched=matched,
            deleted=deleted,
            dry_run=dry_run,
        )

    async def sweep_expired_exports(self, scope: PlatformScope) -> int:
        """Remove bundles and metadata of every export past its TTL."""
        expired = await self._exports.list_expired(scope, self._clock.now())
        if not expired:
            return 0
        for record in expired:
            await self._storage.delete_bundle(record.id)
        count = await self._exports.delete_many(scope, [r.id for r in expired])
        await self._audit.emit(AuditEvent(
            event_name=EventType.EXPORTS_SWEPT.value,
            actor_scope=ActorScope.SYSTEM,
            actor_id="system",
            metadata={"deleted": count},
        ))
        logger.info("retention.exports", deleted=count)
        return count

    async def prune_audit_trail(self, scope: PlatformScope) -> int:
        """Delete audit events older than the compliance retention period."""
        cutoff = self._clock.now() - timedelta(days=settings.retention.audit_retention_days)
        count = await self._audit_events.delete_older_than(scope, cutoff)
        if count:
            await self._audit.emit(AuditEvent(
                event_name=EventType.AUDIT_TRAIL_PRUNED.value,
                actor_scope=ActorScope.SYSTEM,
                actor_id="system",
                metadata={"deleted": count, "cutoff": cutoff.date().isoformat()},
            ))
        logger.info("retention.audit", deleted=count)
        return count

    async def enforce_data_retention(
        self,
        dry_run: bool = False,
        session_factory: SessionFactory | None = None,
    ) -> dict[str, int]:
        """Run all retention policies. Returns a summary dict."""
        summary: dict[str, int] = {
            "ai_jobs_deleted": 0,
            "exports_deleted": 0,
            "audit_events_deleted": 0,
        }

        async with platform_scope(session_factory) as platform:
            tenant_ids = [str(t.id) for t in await self._tenants.list_active(platform)]

        for tenant_id in tenant_ids:
            async with tenant_scope(tenant_id, session_factory) as scope:
                report = await self.purge_ai_jobs(scope, dry_run=dry_run)
                summary["ai_jobs_deleted"] += report.deleted

        if not dry_run:
            async with platform_scope(session_factory) as platform:
                summary["exports_deleted"] = await self.sweep_expired_exports(platform)
                summary["audit_events_deleted"] = await self.prune_audit_trail(platform)

        logger.info("retention.run", tenants=len(tenant_ids), dry_run=dry_run, **summary)
        return summary


# Module-level singleton
retention_enforcer = RetentionEnforcer()
