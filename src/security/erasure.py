"""Right-to-erasure processor — GDPR Art. 17 two-phase deletion.

Phase 1, ``delete_user_data``: inside the caller's tenant transaction,
soft-delete the user and cascade ``deleted_at`` to consents and AI jobs, then
record a PENDING DELETE request scheduled for purge 30 days later. A second
call while PENDING returns the same request; after COMPLETED it fails.

Phase 2, ``purge_user_data``: physically removes consents, AI jobs, export
bundles (crypto-shredding) and the user row, anonymizes the subject as actor
in the audit trail, and marks the request COMPLETED. ``run_pending_purges``
drives it for every due request; running it twice is harmless.

The compliance audit trail itself is kept (3-year policy) with only the actor
reference cleared.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from src.config import settings
from src.db.tenancy import SessionFactory, TenantScope, platform_scope, tenant_scope
from src.errors import AlreadyDeletedError, StateTransitionError, ValidationError
from src.models.enums import ActorScope, RgpdRequestStatus, RgpdRequestType
from src.models.rgpd_request import RgpdRequest
from src.repositories.ai_jobs import AiJobRepo, ai_job_repo
from src.repositories.audit_events import AuditEventRepo, audit_event_repo
from src.repositories.consents import ConsentRepo, consent_repo
from src.repositories.rgpd_requests import RgpdRequestRepo, rgpd_request_repo
from src.repositories.users import UserRepo, user_repo
from src.schemas.audit import AuditEvent, EventType
from src.security.audit import AuditEmitter, audit_emitter
from src.security.clock import Clock, system_clock
from src.security.data_export import DataExporter, data_exporter
from src.security.safe_log import get_logger

logger = get_logger(__name__)

SYSTEM_ACTOR = "system"


@dataclass
class ErasureResult:
    """Summary of a hard purge (or of a failed attempt in a batch run)."""

    success: bool = False
    request_id: str | None = None
    consents: int = 0
    ai_jobs: int = 0
    exports: int = 0
    users: int = 0
    audit_events_anonymized: int = 0
    skipped: bool = False
    error: str | None = None


class ErasureProcessor:
    """Processes GDPR right-to-erasure requests."""

    def __init__(
        self,
        users: UserRepo | None = None,
        consents: ConsentRepo | None = None,
        ai_jobs: AiJobRepo | None = None,
        requests: RgpdRequestRepo | None = None,
        audit_events: AuditEventRepo | None = None,
        exporter: DataExporter | None = None,
        audit: AuditEmitter | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._users = users or user_repo
        self._consents = consents or consent_repo
        self._ai_jobs = ai_jobs or ai_job_repo
        self._requests = requests or rgpd_request_repo
        self._audit_events = audit_events or audit_event_repo
        self._exporter = exporter or data_exporter
        self._audit = audit or audit_emitter
        self._clock = clock or system_clock

    async def delete_user_data(self, scope: TenantScope, user_id: Any) -> RgpdRequest:
        """Soft-delete the user's data and schedule the hard purge. Idempotent while PENDING."""
        if user_id is None or not str(user_id).strip():
            msg = "user id is required"
            raise ValidationError(msg)

        existing = await self._requests.find_deletion_request(scope, user_id)
        if existing is not None:
            if existing.status == RgpdRequestStatus.PENDING.value:
                return existing
            msg = "User data has already been deleted"
            raise AlreadyDeletedError(msg)

        user = await self._users.get(scope, user_id)
        if user is None:
            msg = "User not found"
            raise ValidationError(msg)

        now = self._clock.now()
        request = RgpdRequest(
            id=uuid.uuid4(),
            tenant_id=scope.tenant_id,
            user_id=user_id,
            type=RgpdRequestType.DELETE.value,
            status=RgpdRequestStatus.PENDING.value,
            requested_at=now,
            scheduled_purge_at=now + timedelta(days=settings.retention.purge_delay_days),
        )
        if await self._requests.add_pending(scope, request) is None:
            # A concurrent call committed its PENDING request first
            winner = await self._requests.find_deletion_request(scope, user_id)
            if winner is None or winner.status != RgpdRequestStatus.PENDING.value:
                msg = "Conflicting deletion request"
                raise StateTransitionError(msg)
            return winner

        user.deleted_at = now
        await self._users.save(scope, user)
        consents = await self._consents.soft_delete_for_user(scope, user_id, now)
        jobs = await self._ai_jobs.soft_delete_for_user(scope, user_id, now)

        await self._audit.emit(AuditEvent(
            event_name=EventType.DELETION_REQUESTED.value,
            actor_scope=ActorScope.MEMBER,
            actor_id=str(user_id),
            tenant_id=scope.tenant_id,
            target_id=str(user_id),
            metadata={
                "request_id": str(request.id),
                "scheduled_purge_at": request.scheduled_purge_at.isoformat(),
            },
        ))
        logger.info("rgpd.deletion.requested", consents=consents, ai_jobs=jobs)
        return request

    async def purge_user_data(self, scope: TenantScope, request: RgpdRequest) -> ErasureResult:
        """Hard-delete everything the request covers and mark it COMPLETED."""
        result = ErasureResult(request_id=str(request.id))
        if request.status == RgpdRequestStatus.COMPLETED.value:
            result.success = True
            result.skipped = True
            return result
        if request.type != RgpdRequestType.DELETE.value or request.status != RgpdRequestStatus.PENDING.value:
            msg = "Only pending deletion requests can be purged"
            raise ValidationError(msg)

        user_id = request.user_id
        result.consents = await self._consents.hard_delete_for_user(scope, user_id)
        result.ai_jobs = await self._ai_jobs.hard_delete_for_user(scope, user_id)
        result.exports = await self._exporter.shred_user_exports(scope, user_id)
        result.audit_events_anonymized = await self._audit_events.anonymize_actor(scope, user_id)
        result.users = await self._users.hard_delete(scope, user_id)

        request.status = RgpdRequestStatus.COMPLETED.value
        request.completed_at = self._clock.now()
        await self._requests.save(scope, request)

        await self._audit.emit(AuditEvent(
            event_name=EventType.DELETION_COMPLETED.value,
            actor_scope=ActorScope.PLATFORM,
            actor_id=SYSTEM_ACTOR,
            tenant_id=scope.tenant_id,
            target_id=str(request.id),
            metadata={
                "consents": result.consents,
                "ai_jobs": result.ai_jobs,
                "exports": result.exports,
                "users": result.users,
            },
        ))
        result.success = True
        logger.info(
            "rgpd.deletion.completed",
            consents=result.consents,
            ai_jobs=result.ai_jobs,
            exports=result.exports,
        )
        return result

    async def run_pending_purges(self, session_factory: SessionFactory | None = None) -> list[ErasureResult]:
        """Purge every DELETE request whose grace period is over.

        Each request is purged in its own tenant transaction; a failure rolls
        back that request only (it stays PENDING for the next run).
        """
        async with platform_scope(session_factory) as platform:
            due = await self._requests.find_pending_purges(platform, self._clock.now())
            targets = [(str(r.tenant_id), r.id) for r in due]

        results: list[ErasureResult] = []
        for tenant_id, request_id in targets:
            try:
                async with tenant_scope(tenant_id, session_factory) as scope:
                    request = await self._requests.get(scope, request_id)
                    if request is None:
                        continue
                    results.append(await self.purge_user_data(scope, request))
            except Exception as exc:
                logger.error("rgpd.deletion.purge_failed")
                results.append(ErasureResult(request_id=str(request_id), error=type(exc).__name__))

        logger.info("rgpd.deletion.purge_run", due=len(targets), purged=sum(r.success for r in results))
        return results


# Module-level singleton
erasure_processor = ErasureProcessor()
