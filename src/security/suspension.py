"""Suspension gate and lifecycle — GDPR Art. 18 limitation of processing.

``check_suspension`` is read-only and runs next to the consent gate on every
AI-invocation path. ``toggle_suspension`` sets the flag (re-stamping it when it
is already set); ``unsuspend`` requires the user to actually be suspended.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from src.db.tenancy import TenantScope
from src.errors import DataSuspensionError, StateTransitionError, ValidationError
from src.models.enums import ActorScope, SuspensionReason
from src.models.user import User
from src.repositories.users import UserRepo, user_repo
from src.schemas.audit import AuditEvent, EventType
from src.security.audit import AuditEmitter, audit_emitter
from src.security.clock import Clock, system_clock
from src.security.safe_log import get_logger

logger = get_logger(__name__)

MAX_NOTES_LENGTH = 1000


@dataclass(frozen=True)
class SuspensionState:
    """Read model of a user's suspension flag."""

    suspended: bool
    suspended_at: datetime | None
    reason: SuspensionReason | None
    requested_by: str | None
    notes: str | None

    def duration_days(self, now: datetime) -> int | None:
        if self.suspended_at is None:
            return None
        return (now - self.suspended_at).days


def _validate_notes(notes: str | None) -> None:
    if notes is not None and len(notes) > MAX_NOTES_LENGTH:
        msg = f"Notes must not exceed {MAX_NOTES_LENGTH} characters"
        raise ValidationError(msg)


class SuspensionManager:
    """Stateless suspension operations — TenantScope passed per call."""

    def __init__(
        self,
        users: UserRepo | None = None,
        audit: AuditEmitter | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._users = users or user_repo
        self._audit = audit or audit_emitter
        self._clock = clock or system_clock

    async def check_suspension(self, scope: TenantScope, user_id: Any) -> None:
        """Raise DataSuspensionError if the user is unknown or their processing is suspended."""
        user = await self._users.get(scope, user_id)
        if user is None:
            msg = "User not found"
            raise DataSuspensionError(msg)
        if user.data_suspended:
            msg = "Data processing suspended for this user (Art. 18)"
            raise DataSuspensionError(msg)

    async def get_suspension(self, scope: TenantScope, user_id: Any) -> SuspensionState:
        user = await self._load(scope, user_id)
        return SuspensionState(
            suspended=bool(user.data_suspended),
            suspended_at=user.data_suspended_at,
            reason=SuspensionReason(user.data_suspended_reason) if user.data_suspended_reason else None,
            requested_by=user.data_suspended_by,
            notes=user.data_suspended_notes,
        )

    async def toggle_suspension(
        self,
        scope: TenantScope,
        user_id: Any,
        reason: SuspensionReason | str,
        requested_by: str,
        notes: str | None = None,
    ) -> User:
        """Suspend processing of the user's data."""
        if not requested_by or not str(requested_by).strip():
            msg = "requested_by is required"
            raise ValidationError(msg)
        try:
            reason = SuspensionReason(reason)
        except ValueError:
            msg = "Unknown suspension reason"
            raise ValidationError(msg) from None
        _validate_notes(notes)

        user = await self._load(scope, user_id)
        user.data_suspended = True
        user.data_suspended_at = self._clock.now()
        user.data_suspended_reason = reason.value
        user.data_suspended_by = str(requested_by)
        user.data_suspended_notes = notes
        await self._users.save(scope, user)

        await self._emit(scope, EventType.SUSPENSION_APPLIED, user_id, requested_by, {
            "reason": reason.value,
            "suspended": True,
        })
        logger.info("rgpd.suspension.applied", reason=reason.value)
        return user

    async def unsuspend(
        self,
        scope: TenantScope,
        user_id: Any,
        requested_by: str,
        notes: str | None = None,
    ) -> User:
        """Lift the suspension. Fails if the user is not currently suspended."""
        _validate_notes(notes)
        user = await self._load(scope, user_id)
        if not user.data_suspended:
            msg = "User data is not currently suspended"
            raise StateTransitionError(msg)

        user.data_suspended = False
        user.data_suspended_at = None
        user.data_suspended_reason = None
        user.data_suspended_by = str(requested_by)
        user.data_suspended_notes = notes
        await self._users.save(scope, user)

        await self._emit(scope, EventType.SUSPENSION_LIFTED, user_id, requested_by, {"suspended": False})
        logger.info("rgpd.suspension.lifted")
        return user

    async def _load(self, scope: TenantScope, user_id: Any) -> User:
        user = await self._users.get(scope, user_id)
        if user is None:
            msg = "User not found"
            raise DataSuspensionError(msg)
        return user

    async def _emit(
        self,
        scope: TenantScope,
        event_type: EventType,
        user_id: Any,
        requested_by: str,
        metadata: dict[str, Any],
    ) -> None:
        await self._audit.emit(AuditEvent(
            event_name=event_type.value,
            actor_scope=ActorScope.TENANT if str(requested_by) != str(user_id) else ActorScope.MEMBER,
            actor_id=str(requested_by),
            tenant_id=scope.tenant_id,
            target_id=str(user_id),
            metadata=metadata,
        ))


# Module-level singleton
suspension_manager = SuspensionManager()
