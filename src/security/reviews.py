"""Human-review workflows — disputes of automated decisions (Art. 22) and objections (Art. 21).

Both share one fixed transition table:

    pending ──► under_review ──► resolved | rejected
       └──────────────────────► resolved | rejected

Terminal states are final. Entering a terminal state requires a non-empty
``admin_response``: Art. 22 demands a reasoned human answer. Audit events
carry identifiers and flags only, never the reason text.

Objections to direct marketing and profiling are absolute (Art. 21.2-3) and
are accepted automatically at submission.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from src.config import settings
from src.db.tenancy import TenantScope
from src.errors import StateTransitionError, ValidationError
from src.models.enums import ActorScope, ReviewStatus, TreatmentType
from src.models.review import UserDispute, UserOpposition
from src.repositories.ai_jobs import AiJobRepo, ai_job_repo
from src.repositories.reviews import DisputeRepo, OppositionRepo, dispute_repo, opposition_repo
from src.schemas.audit import AuditEvent, EventType
from src.security.audit import AuditEmitter, audit_emitter
from src.security.clock import Clock, system_clock
from src.security.safe_log import get_logger

logger = get_logger(__name__)

MIN_REASON_LENGTH = 10
MAX_DISPUTE_REASON_LENGTH = 2000
MAX_OPPOSITION_REASON_LENGTH = 1000

TERMINAL_STATUSES: frozenset[ReviewStatus] = frozenset({ReviewStatus.RESOLVED, ReviewStatus.REJECTED})

ALLOWED_TRANSITIONS: dict[ReviewStatus, frozenset[ReviewStatus]] = {
    ReviewStatus.PENDING: frozenset({ReviewStatus.UNDER_REVIEW, ReviewStatus.RESOLVED, ReviewStatus.REJECTED}),
    ReviewStatus.UNDER_REVIEW: frozenset({ReviewStatus.RESOLVED, ReviewStatus.REJECTED}),
    ReviewStatus.RESOLVED: frozenset(),
    ReviewStatus.REJECTED: frozenset(),
}

AUTO_APPROVED_TREATMENTS: frozenset[TreatmentType] = frozenset({TreatmentType.MARKETING, TreatmentType.PROFILING})

AUTO_APPROVAL_RESPONSE = "Objection accepted automatically: objection to direct marketing or profiling is absolute."

ReviewItem = UserDispute | UserOpposition


@dataclass(frozen=True)
class ReviewDecision:
    """Admin decision on a dispute or opposition."""

    status: ReviewStatus | str
    reviewed_by: str
    admin_response: str | None = None


def _validate_reason(reason: str, max_length: int) -> str:
    text_ = (reason or "").strip()
    if len(text_) < MIN_REASON_LENGTH:
        msg = f"Reason must be at least {MIN_REASON_LENGTH} characters"
        raise ValidationError(msg)
    if len(text_) > max_length:
        msg = f"Reason must not exceed {max_length} characters"
        raise ValidationError(msg)
    return text_


def apply_review(item: ReviewItem, decision: ReviewDecision, now: datetime) -> ReviewStatus:
    """Apply a decision to a dispute or opposition in place. Returns the new status."""
    current = ReviewStatus(item.status)
    if current in TERMINAL_STATUSES:
        msg = f"Review already final ({current.value})"
        raise StateTransitionError(msg)

    try:
        target = ReviewStatus(decision.status)
    except ValueError:
        msg = "Unknown review status"
        raise ValidationError(msg) from None

    if target not in ALLOWED_TRANSITIONS[current]:
        msg = f"Transition {current.value} -> {target.value} not allowed"
        raise StateTransitionError(msg)

    response = (decision.admin_response or "").strip()
    if target in TERMINAL_STATUSES and not response:
        msg = "An admin response is required to close a review"
        raise ValidationError(msg)
    if not decision.reviewed_by or not str(decision.reviewed_by).strip():
        msg = "reviewed_by is required"
        raise ValidationError(msg)

    item.status = target.value
    item.reviewed_by = str(decision.reviewed_by)
    item.reviewed_at = now
    if response:
        item.admin_response = response
    if target in TERMINAL_STATUSES:
        item.resolved_at = now
    return target


def is_overdue(item: ReviewItem, now: datetime) -> bool:
    """Open review older than the SLA."""
    if ReviewStatus(item.status) in TERMINAL_STATUSES:
        return False
    return now - item.submitted_at > timedelta(days=settings.retention.review_sla_days)


class ReviewManager:
    """Dispute and opposition lifecycle — TenantScope passed per call."""

    def __init__(
        self,
        disputes: DisputeRepo | None = None,
        oppositions: OppositionRepo | None = None,
        ai_jobs: AiJobRepo | None = None,
        audit: AuditEmitter | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._disputes = disputes or dispute_repo
        self._oppositions = oppositions or opposition_repo
        self._ai_jobs = ai_jobs or ai_job_repo
        self._audit = audit or audit_emitter
        self._clock = clock or system_clock

    # ── Disputes (Art. 22) ───────────────────────────────────────────

    async def submit_dispute(
        self,
        scope: TenantScope,
        user_id: Any,
        reason: str,
        ai_job_id: Any | None = None,
        attachment_ref: str | None = None,
    ) -> UserDispute:
        reason = _validate_reason(reason, MAX_DISPUTE_REASON_LENGTH)
        now = self._clock.now()

        if ai_job_id is not None:
            job = await self._ai_jobs.get(scope, ai_job_id)
            if job is None or str(job.user_id) != str(user_id):
                msg = "AI job not found"
                raise ValidationError(msg)
            if now - job.requested_at > timedelta(days=settings.retention.dispute_max_age_days):
                msg = "AI job is too old to be disputed"
                raise ValidationError(msg)

        dispute = UserDispute(
            id=uuid.uuid4(),
            tenant_id=scope.tenant_id,
            user_id=user_id,
            ai_job_id=ai_job_id,
            reason=reason,
            attachment_ref=attachment_ref,
            status=ReviewStatus.PENDING.value,
            submitted_at=now,
        )
        await self._disputes.add(scope, dispute)

        metadata: dict[str, Any] = {
            "dispute_id": str(dispute.id),
            "status": dispute.status,
            "has_attachment": dispute.has_attachment,
        }
        if ai_job_id is not None:
            metadata["ai_job_id"] = str(ai_job_id)
        await self._emit(scope, EventType.DISPUTE_SUBMITTED, str(user_id), ActorScope.MEMBER, user_id, metadata)
        return dispute

    async def review_dispute(self, scope: TenantScope, dispute_id: Any, decision: ReviewDecision) -> UserDispute:
        dispute = await self._disputes.get(scope, dispute_id)
        if dispute is None:
            msg = "Dispute not found"
            raise ValidationError(msg)
        await self.review(scope, dispute, decision)
        return dispute

    # ── Oppositions (Art. 21) ────────────────────────────────────────

    async def submit_opposition(
        self,
        scope: TenantScope,
        user_id: Any,
        treatment_type: TreatmentType | str,
        reason: str,
    ) -> UserOpposition:
        try:
            treatment = TreatmentType(treatment_type)
        except ValueError:
            msg = "Unknown treatment type"
            raise ValidationError(msg) from None
        reason = _validate_reason(reason, MAX_OPPOSITION_REASON_LENGTH)
        now = self._clock.now()

        opposition = UserOpposition(
            id=uuid.uuid4(),
            tenant_id=scope.tenant_id,
            user_id=user_id,
            treatment_type=treatment.value,
            reason=reason,
            status=ReviewStatus.PENDING.value,
            auto_approved=False,
            submitted_at=now,
        )
        if treatment in AUTO_APPROVED_TREATMENTS:
            opposition.auto_approved = True
            apply_review(
                opposition,
                ReviewDecision(ReviewStatus.RESOLVED, reviewed_by="system", admin_response=AUTO_APPROVAL_RESPONSE),
                now,
            )
        await self._oppositions.add(scope, opposition)

        await self._emit(scope, EventType.OPPOSITION_SUBMITTED, str(user_id), ActorScope.MEMBER, user_id, {
            "opposition_id": str(opposition.id),
            "treatment_type": treatment.value,
            "status": opposition.status,
            "auto_approved": opposition.auto_approved,
        })
        return opposition

    async def review_opposition(
        self, scope: TenantScope, opposition_id: Any, decision: ReviewDecision
    ) -> UserOpposition:
        opposition = await self._oppositions.get(scope, opposition_id)
        if opposition is None:
            msg = "Opposition not found"
            raise ValidationError(msg)
        await self.review(scope, opposition, decision)
        return opposition

    # ── Shared ───────────────────────────────────────────────────────

    async def review(self, scope: TenantScope, item: ReviewItem, decision: ReviewDecision) -> ReviewItem:
        """Apply an admin decision, persist it and audit it."""
        status = apply_review(item, decision, self._clock.now())

        if isinstance(item, UserDispute):
            await self._disputes.save(scope, item)
            event_type = EventType.DISPUTE_REVIEWED
            metadata: dict[str, Any] = {
                "dispute_id": str(item.id),
                "user_id": str(item.user_id),
                "status": status.value,
                "has_attachment": item.has_attachment,
                "human_review_completed": True,
            }
        else:
            await self._oppositions.save(scope, item)
            event_type = EventType.OPPOSITION_REVIEWED
            metadata = {
                "opposition_id": str(item.id),
                "user_id": str(item.user_id),
                "status": status.value,
                "treatment_type": item.treatment_type,
                "human_review_completed": True,
            }

        await self._emit(scope, event_type, str(decision.reviewed_by), ActorScope.TENANT, item.user_id, metadata)
        logger.info(event_type.value, status=status.value)
        return item

    async def list_overdue(self, scope: TenantScope) -> list[ReviewItem]:
        """Open disputes and oppositions past the review SLA, oldest first."""
        now = self._clock.now()
        items: list[ReviewItem] = [*await self._disputes.list_open(scope), *await self._oppositions.list_open(scope)]
        overdue = [i for i in items if is_overdue(i, now)]
        return sorted(overdue, key=lambda i: i.submitted_at)

    async def _emit(
        self,
        scope: TenantScope,
        event_type: EventType,
        actor_id: str,
        actor_scope: ActorScope,
        user_id: Any,
        metadata: dict[str, Any],
    ) -> None:
        await self._audit.emit(AuditEvent(
            event_name=event_type.value,
            actor_scope=actor_scope,
            actor_id=actor_id,
            tenant_id=scope.tenant_id,
            target_id=str(user_id),
            metadata=metadata,
        ))


# Module-level singleton
review_manager = ReviewManager()
