"""Data subject rights routes — consent, AI gateway, export, erasure, suspension, reviews.

Self-service routes act on the authenticated actor. Admin routes under
``/admin`` take the subject in the path and require a tenant admin or DPO.
Every route runs in one tenant transaction opened by ``get_tenant_scope``;
a raised error rolls the whole request back, audit rows included.
"""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status

from src.api.deps import get_actor, get_tenant_scope
from src.db.tenancy import TenantScope
from src.gateway.ai import ai_gateway
from src.models.user import User
from src.schemas.api import (
    AiInvokeIn,
    AiJobAdvanceIn,
    AiJobOut,
    ConsentOut,
    DeletionOut,
    DisputeIn,
    ExportDownloadOut,
    ExportOut,
    OppositionIn,
    ReviewIn,
    ReviewOut,
    SuspensionIn,
    SuspensionOut,
)
from src.security.consent import consent_manager
from src.security.data_export import data_exporter
from src.security.erasure import erasure_processor
from src.security.policy import Actor, Permission, authorize
from src.security.reviews import ReviewDecision, ReviewItem, review_manager
from src.security.suspension import suspension_manager

router = APIRouter(prefix="/rgpd", tags=["rgpd"])


# ── Consent ──────────────────────────────────────────────────────────


@router.post("/consents/{purpose}", response_model=ConsentOut, status_code=status.HTTP_201_CREATED)
async def grant_consent(
    purpose: str,
    actor: Actor = Depends(get_actor),
    scope: TenantScope = Depends(get_tenant_scope),
) -> ConsentOut:
    authorize(actor, Permission.CONSENT_MANAGE, scope.tenant_id, actor.user_id)
    record = await consent_manager.grant(scope, actor.user_id, purpose, actor.user_id, actor.scope)
    return ConsentOut(purpose=record.purpose, granted=record.granted, recorded_at=record.recorded_at)


@router.delete("/consents/{purpose}", response_model=ConsentOut)
async def revoke_consent(
    purpose: str,
    actor: Actor = Depends(get_actor),
    scope: TenantScope = Depends(get_tenant_scope),
) -> ConsentOut:
    authorize(actor, Permission.CONSENT_MANAGE, scope.tenant_id, actor.user_id)
    record = await consent_manager.revoke(scope, actor.user_id, purpose, actor.user_id, actor.scope)
    return ConsentOut(purpose=record.purpose, granted=record.granted, recorded_at=record.recorded_at)


@router.get("/consents", response_model=list[ConsentOut])
async def consent_history(
    actor: Actor = Depends(get_actor),
    scope: TenantScope = Depends(get_tenant_scope),
) -> list[ConsentOut]:
    authorize(actor, Permission.CONSENT_MANAGE, scope.tenant_id, actor.user_id)
    return [
        ConsentOut(purpose=c.purpose, granted=c.granted, recorded_at=c.recorded_at)
        for c in await consent_manager.history(scope, actor.user_id)
    ]


# ── AI gateway ───────────────────────────────────────────────────────


@router.post("/ai/invoke", response_model=AiJobOut, status_code=status.HTTP_201_CREATED)
async def invoke_ai(
    body: AiInvokeIn,
    actor: Actor = Depends(get_actor),
    scope: TenantScope = Depends(get_tenant_scope),
) -> AiJobOut:
    job = await ai_gateway.invoke(scope, actor, body.purpose, body.model_ref)
    return AiJobOut(job_id=str(job.id), status=job.status, requested_at=job.requested_at)


@router.post("/admin/ai-jobs/{job_id}/status", response_model=AiJobOut)
async def advance_ai_job(
    job_id: uuid.UUID,
    body: AiJobAdvanceIn,
    actor: Actor = Depends(get_actor),
    scope: TenantScope = Depends(get_tenant_scope),
) -> AiJobOut:
    authorize(actor, Permission.REVIEW_DECIDE, scope.tenant_id)
    job = await ai_gateway.advance_job(scope, str(job_id), body.status)
    return AiJobOut(job_id=str(job.id), status=job.status, requested_at=job.requested_at)


# ── Export (Art. 15 / 20) ────────────────────────────────────────────


@router.post("/exports", response_model=ExportOut, status_code=status.HTTP_201_CREATED)
async def create_export(
    actor: Actor = Depends(get_actor),
    scope: TenantScope = Depends(get_tenant_scope),
) -> ExportOut:
    authorize(actor, Permission.EXPORT_REQUEST, scope.tenant_id, actor.user_id)
    result = await data_exporter.export_user_data(scope, actor.user_id)
    return ExportOut(
        export_id=result.export_id,
        download_token=result.download_token,
        password=result.password,
        expires_at=result.expires_at,
    )


@router.get("/exports/{download_token}", response_model=ExportDownloadOut)
async def download_export(
    download_token: str,
    actor: Actor = Depends(get_actor),
    scope: TenantScope = Depends(get_tenant_scope),
) -> ExportDownloadOut:
    authorize(actor, Permission.EXPORT_REQUEST, scope.tenant_id, actor.user_id)
    result = await data_exporter.download_export(scope, download_token, actor.user_id)
    return ExportDownloadOut(
        export_id=result.export_id,
        downloads_remaining=result.downloads_remaining,
        ciphertext=result.envelope.ciphertext,
        iv=result.envelope.iv,
        auth_tag=result.envelope.auth_tag,
        salt=result.envelope.salt,
    )


# ── Erasure (Art. 17) ────────────────────────────────────────────────


@router.post("/deletion", response_model=DeletionOut, status_code=status.HTTP_202_ACCEPTED)
async def request_deletion(
    actor: Actor = Depends(get_actor),
    scope: TenantScope = Depends(get_tenant_scope),
) -> DeletionOut:
    authorize(actor, Permission.DELETION_REQUEST, scope.tenant_id, actor.user_id)
    request = await erasure_processor.delete_user_data(scope, actor.user_id)
    return DeletionOut(
        request_id=str(request.id),
        status=request.status,
        scheduled_purge_at=request.scheduled_purge_at,
    )


# ── Suspension (Art. 18) ─────────────────────────────────────────────


def _suspension_out(user: User) -> SuspensionOut:
    return SuspensionOut(
        suspended=bool(user.data_suspended),
        suspended_at=user.data_suspended_at,
        reason=user.data_suspended_reason,
    )


@router.post("/suspension", response_model=SuspensionOut)
async def suspend_self(
    body: SuspensionIn,
    actor: Actor = Depends(get_actor),
    scope: TenantScope = Depends(get_tenant_scope),
) -> SuspensionOut:
    authorize(actor, Permission.SUSPENSION_REQUEST, scope.tenant_id, actor.user_id)
    user = await suspension_manager.toggle_suspension(scope, actor.user_id, body.reason, actor.user_id, body.notes)
    return _suspension_out(user)


@router.post("/admin/users/{user_id}/suspension", response_model=SuspensionOut)
async def suspend_user(
    user_id: uuid.UUID,
    body: SuspensionIn,
    actor: Actor = Depends(get_actor),
    scope: TenantScope = Depends(get_tenant_scope),
) -> SuspensionOut:
    authorize(actor, Permission.SUSPENSION_MANAGE, scope.tenant_id)
    user = await suspension_manager.toggle_suspension(scope, str(user_id), body.reason, actor.user_id, body.notes)
    return _suspension_out(user)


@router.delete("/admin/users/{user_id}/suspension", response_model=SuspensionOut)
async def lift_suspension(
    user_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    scope: TenantScope = Depends(get_tenant_scope),
) -> SuspensionOut:
    authorize(actor, Permission.SUSPENSION_MANAGE, scope.tenant_id)
    user = await suspension_manager.unsuspend(scope, str(user_id), actor.user_id)
    return _suspension_out(user)


# ── Disputes (Art. 22) and oppositions (Art. 21) ─────────────────────


def _review_out(item: ReviewItem) -> ReviewOut:
    return ReviewOut(
        id=str(item.id),
        status=item.status,
        submitted_at=item.submitted_at,
        resolved_at=item.resolved_at,
    )


@router.post("/disputes", response_model=ReviewOut, status_code=status.HTTP_201_CREATED)
async def submit_dispute(
    body: DisputeIn,
    actor: Actor = Depends(get_actor),
    scope: TenantScope = Depends(get_tenant_scope),
) -> ReviewOut:
    authorize(actor, Permission.DISPUTE_SUBMIT, scope.tenant_id, actor.user_id)
    dispute = await review_manager.submit_dispute(
        scope, actor.user_id, body.reason, ai_job_id=body.ai_job_id, attachment_ref=body.attachment_ref
    )
    return _review_out(dispute)


@router.post("/oppositions", response_model=ReviewOut, status_code=status.HTTP_201_CREATED)
async def submit_opposition(
    body: OppositionIn,
    actor: Actor = Depends(get_actor),
    scope: TenantScope = Depends(get_tenant_scope),
) -> ReviewOut:
    authorize(actor, Permission.OPPOSITION_SUBMIT, scope.tenant_id, actor.user_id)
    opposition = await review_manager.submit_opposition(scope, actor.user_id, body.treatment_type, body.reason)
    return _review_out(opposition)


@router.patch("/admin/disputes/{dispute_id}", response_model=ReviewOut)
async def review_dispute(
    dispute_id: uuid.UUID,
    body: ReviewIn,
    actor: Actor = Depends(get_actor),
    scope: TenantScope = Depends(get_tenant_scope),
) -> ReviewOut:
    authorize(actor, Permission.REVIEW_DECIDE, scope.tenant_id)
    decision = ReviewDecision(status=body.status, reviewed_by=actor.user_id, admin_response=body.admin_response)
    return _review_out(await review_manager.review_dispute(scope, str(dispute_id), decision))


@router.patch("/admin/oppositions/{opposition_id}", response_model=ReviewOut)
async def review_opposition(
    opposition_id: uuid.UUID,
    body: ReviewIn,
    actor: Actor = Depends(get_actor),
    scope: TenantScope = Depends(get_tenant_scope),
) -> ReviewOut:
    authorize(actor, Permission.REVIEW_DECIDE, scope.tenant_id)
    decision = ReviewDecision(status=body.status, reviewed_by=actor.user_id, admin_response=body.admin_response)
    return _review_out(await review_manager.review_opposition(scope, str(opposition_id), decision))


@router.get("/admin/reviews/overdue", response_model=list[ReviewOut])
async def overdue_reviews(
    actor: Actor = Depends(get_actor),
    scope: TenantScope = Depends(get_tenant_scope),
) -> list[ReviewOut]:
    authorize(actor, Permission.REVIEW_DECIDE, scope.tenant_id)
    return [_review_out(i) for i in await review_manager.list_overdue(scope)]
