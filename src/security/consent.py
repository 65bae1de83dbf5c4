"""Consent gate and lifecycle — the mandatory precondition for AI processing.

Consent history is append-only: a grant or a revocation inserts a new row and
the latest row per (tenant, user, purpose) is authoritative. ``check_consent``
re-reads that row on every call; nothing is cached, so a revocation takes
effect on the very next check.

Usage:
    from src.security.consent import consent_manager

    await consent_manager.check_consent(scope, user_id, "ai_processing")
"""

from __future__ import annotations

import uuid
from typing import Any

from src.db.tenancy import TenantScope
from src.errors import ConsentError, ConsentReason, ValidationError
from src.models.consent import Consent
from src.models.enums import ActorScope
from src.repositories.consents import ConsentRepo, consent_repo
from src.schemas.audit import AuditEvent, EventType
from src.security.audit import AuditEmitter, audit_emitter
from src.security.clock import Clock, system_clock
from src.security.log_guard import require_label
from src.security.safe_log import get_logger

logger = get_logger(__name__)


def _blank(value: Any) -> bool:
    return value is None or not str(value).strip()


class ConsentManager:
    """Stateless consent operations — TenantScope passed per call."""

    def __init__(
        self,
        repo: ConsentRepo | None = None,
        audit: AuditEmitter | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._repo = repo or consent_repo
        self._audit = audit or audit_emitter
        self._clock = clock or system_clock

    async def check_consent(self, scope: TenantScope, user_id: Any, purpose: str) -> None:
        """Return normally when consent is valid; raise ConsentError otherwise.

        Revocation is checked before the granted flag because it is the more
        specific reason.
        """
        if _blank(scope.tenant_id) or _blank(user_id) or _blank(purpose):
            msg = "tenant id, user id and purpose are required"
            raise ConsentError(ConsentReason.MISSING, msg)

        latest = await self._repo.latest(scope, user_id, purpose)
        if latest is None:
            msg = "Consent required: user has not granted consent"
            raise ConsentError(ConsentReason.MISSING, msg)
        if latest.revoked_at is not None:
            msg = "Consent revoked: user has withdrawn consent"
            raise ConsentError(ConsentReason.REVOKED, msg)
        if not latest.granted:
            msg = "Consent denied: user consent for this purpose is not granted"
            raise ConsentError(ConsentReason.NOT_GRANTED, msg)

    async def grant(
        self,
        scope: TenantScope,
        user_id: Any,
        purpose: str,
        actor_id: str | None = None,
        actor_scope: ActorScope = ActorScope.MEMBER,
    ) -> Consent:
        """Append a granted consent row and audit it."""
        self._require(user_id, purpose)
        now = self._clock.now()
        record = Consent(
            id=uuid.uuid4(),
            tenant_id=scope.tenant_id,
            user_id=user_id,
            purpose=purpose,
            granted=True,
            granted_at=now,
            revoked_at=None,
            recorded_at=now,
        )
        await self._repo.add(scope, record)
        await self._emit(scope, EventType.CONSENT_GRANTED, user_id, purpose, actor_id, actor_scope)
        logger.info("consent.granted", purpose=purpose)
        return record

    async def revoke(
        self,
        scope: TenantScope,
        user_id: Any,
        purpose: str,
        actor_id: str | None = None,
        actor_scope: ActorScope = ActorScope.MEMBER,
    ) -> Consent:
        """Append a revocation row. Effective immediately for the next check."""
        self._require(user_id, purpose)
        now = self._clock.now()
        previous = await self._repo.latest(scope, user_id, purpose)
        record = Consent(
            id=uuid.uuid4(),
            tenant_id=scope.tenant_id,
            user_id=user_id,
            purpose=purpose,
            granted=False,
            granted_at=previous.granted_at if previous is not None else None,
            revoked_at=now,
            recorded_at=now,
        )
        await self._repo.add(scope, record)
        await self._emit(scope, EventType.CONSENT_REVOKED, user_id, purpose, actor_id, actor_scope)
        logger.info("consent.revoked", purpose=purpose)
        return record

    async def history(self, scope: TenantScope, user_id: Any) -> list[Consent]:
        """Full consent trail of the user, oldest first."""
        return await self._repo.list_for_user(scope, user_id)

    @staticmethod
    def _require(user_id: Any, purpose: str) -> None:
        if _blank(user_id) or _blank(purpose):
            msg = "user id and purpose are required"
            raise ValidationError(msg)
        require_label("purpose", purpose)

    async def _emit(
        self,
        scope: TenantScope,
        event_type: EventType,
        user_id: Any,
        purpose: str,
        actor_id: str | None,
        actor_scope: ActorScope,
    ) -> None:
        await self._audit.emit(AuditEvent(
            event_name=event_type.value,
            actor_scope=actor_scope,
            actor_id=actor_id or str(user_id),
            tenant_id=scope.tenant_id,
            target_id=str(user_id),
            metadata={"purpose": purpose},
        ))


# Module-level singleton
consent_manager = ConsentManager()
