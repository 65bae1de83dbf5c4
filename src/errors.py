"""Error taxonomy for the compliance kernel.

Every error carries a ``kind`` that the HTTP edge maps to a status code and a
generic response body. Messages are for logs and tests only: they never reach
non-admin callers and must never contain tenant ids or personal data.
"""

from __future__ import annotations

from enum import Enum


class ComplianceError(Exception):
    """Base error for the compliance kernel."""

    kind = "internal"


class ValidationError(ComplianceError):
    """Malformed input (missing identifier, bad length, unknown enum value)."""

    kind = "validation"


class ConsentReason(str, Enum):
    """Why a consent check failed."""

    MISSING = "missing"
    REVOKED = "revoked"
    NOT_GRANTED = "not_granted"


class ConsentError(ComplianceError):
    """Consent precondition not met for the requested processing purpose."""

    kind = "consent_required"

    def __init__(self, reason: ConsentReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class DataSuspensionError(ComplianceError):
    """Processing of the user's data is suspended (Art. 18) or the user is unknown."""

    kind = "processing_suspended"


class TenantIsolationError(ComplianceError):
    """Missing tenant identifier or cross-tenant access attempt."""

    kind = "tenant_isolation"


class PolicyDenied(ComplianceError):
    """Actor is not authorized for the requested action."""

    kind = "forbidden"


class StateTransitionError(ComplianceError):
    """Requested transition is not allowed from the current state."""

    kind = "conflict"


class AlreadyDeletedError(StateTransitionError):
    """The user's data has already been purged."""


class ExportAccessError(ComplianceError):
    """Export bundle is unknown, not owned by the caller, expired or exhausted.

    ``reason`` is for tests and internal logs; the HTTP edge only ever answers
    with a generic "export not available".
    """

    kind = "export_unavailable"

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class StorageError(ComplianceError):
    """Artifact storage or decryption failure."""

    kind = "export_unavailable"


class LogGuardViolation(ComplianceError):
    """A log or audit payload would leak personal data. Programming error."""

    kind = "internal"
