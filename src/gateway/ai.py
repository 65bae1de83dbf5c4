"""AI gateway — the only entry point for AI processing of a user's data.

Every invocation runs the same chain, in order, and stops at the first
failure:

    policy → consent → suspension → AiJob(PENDING) → audit ``ai.invoked``

The gateway records metadata only. Prompts and model outputs belong to the
model provider call made by the caller and never reach this module's
persistence, logs or audit trail.

Job status moves forward only:

    PENDING → RUNNING → COMPLETED | FAILED
    PENDING → FAILED
"""

from __future__ import annotations

import uuid
from typing import Any

from src.db.tenancy import TenantScope, ensure_same_tenant
from src.errors import StateTransitionError, ValidationError
from src.models.ai_job import AiJob
from src.models.enums import ActorScope, AiJobStatus
from src.repositories.ai_jobs import AiJobRepo, ai_job_repo
from src.schemas.audit import AuditEvent, EventType
from src.security.audit import AuditEmitter, audit_emitter
from src.security.clock import Clock, system_clock
from src.security.consent import ConsentManager, consent_manager
from src.security.log_guard import require_label
from src.security.policy import Actor, Permission, authorize
from src.security.safe_log import get_logger
from src.security.suspension import SuspensionManager, suspension_manager

logger = get_logger(__name__)

JOB_TRANSITIONS: dict[AiJobStatus, frozenset[AiJobStatus]] = {
    AiJobStatus.PENDING: frozenset({AiJobStatus.RUNNING, AiJobStatus.FAILED}),
    AiJobStatus.RUNNING: frozenset({AiJobStatus.COMPLETED, AiJobStatus.FAILED}),
    AiJobStatus.COMPLETED: frozenset(),
    AiJobStatus.FAILED: frozenset(),
}


class AiGateway:
    """Gatekeeper for AI invocations — TenantScope passed per call."""

    def __init__(
        self,
        consents: ConsentManager | None = None,
        suspensions: SuspensionManager | None = None,
        jobs: AiJobRepo | None = None,
        audit: AuditEmitter | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._consents = consents or consent_manager
        self._suspensions = suspensions or suspension_manager
        self._jobs = jobs or ai_job_repo
        self._audit = audit or audit_emitter
        self._clock = clock or system_clock

    async def invoke(self, scope: TenantScope, actor: Actor, purpose: str, model_ref: str | None = None) -> AiJob:
        """Authorize an AI invocation for ``actor`` and record its PENDING job."""
        require_label("purpose", purpose)
        if model_ref is not None:
            require_label("model_ref", model_ref)
        ensure_same_tenant(scope, actor.tenant_id)
        authorize(actor, Permission.AI_INVOKE, scope.tenant_id, actor.user_id)
        await self._consents.check_consent(scope, actor.user_id, purpose)
        await self._suspensions.check_suspension(scope, actor.user_id)

        job = AiJob(
            id=uuid.uuid4(),
            tenant_id=scope.tenant_id,
            user_id=actor.user_id,
            purpose=purpose,
            model_ref=model_ref,
            status=AiJobStatus.PENDING.value,
            requested_at=self._clock.now(),
        )
        await self._jobs.add(scope, job)

        metadata: dict[str, Any] = {"job_id": str(job.id), "purpose": purpose}
        if model_ref:
            metadata["model_ref"] = model_ref
        await self._audit.emit(AuditEvent(
            event_name=EventType.AI_INVOKED.value,
            actor_scope=actor.scope,
            actor_id=actor.user_id,
            tenant_id=scope.tenant_id,
            target_id=actor.user_id,
            metadata=metadata,
        ))
        logger.info("ai.invoked", purpose=purpose)
        return job

    async def advance_job(self, scope: TenantScope, job_id: Any, status: AiJobStatus | str) -> AiJob:
        """Move a job forward. Backward or repeated transitions raise StateTransitionError."""
        job = await self._jobs.get(scope, job_id)
        if job is None:
            msg = "AI job not found"
            raise ValidationError(msg)

        try:
            target = AiJobStatus(status)
        except ValueError:
            msg = "Unknown job status"
            raise ValidationError(msg) from None

        current = AiJobStatus(job.status)
        if target not in JOB_TRANSITIONS[current]:
            msg = f"Transition {current.value} -> {target.value} not allowed"
            raise StateTransitionError(msg)

        now = self._clock.now()
        job.status = target.value
        if target == AiJobStatus.RUNNING:
            job.started_at = now
        else:
            job.finished_at = now
        await self._jobs.save(scope, job)

        await self._audit.emit(AuditEvent(
            event_name=EventType.AI_JOB_STATUS_CHANGED.value,
            actor_scope=ActorScope.SYSTEM,
            actor_id="system",
            tenant_id=scope.tenant_id,
            target_id=str(job.id),
            metadata={"from_status": current.value, "to_status": target.value},
        ))
        return job


# Module-level singleton
ai_gateway = AiGateway()
