"""GDPR Art. 15/20 data export — encrypted, TTL-bounded, download-count-bounded bundles.

Lifecycle (derived from artifacts, no stored state):
    Requested → BundleGenerated → Downloadable (≤3 downloads, ≤7 days) → Expired | Exhausted

``export_user_data`` collects the subject's consents, AI job metadata and most
recent audit events, encrypts them with a one-time password returned to the
caller, and stores the ciphertext apart from its P1 metadata.
``download_export`` enforces ownership, TTL and the download limit; expiry is
checked lazily on read and removes the artifact as a side effect.

Usage:
    from src.security.data_export import data_exporter

    result = await data_exporter.export_user_data(scope, user_id)
    download = await data_exporter.download_export(scope, result.download_token, user_id)
"""

from __future__ import annotations

import json
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from src.config import settings
from src.db.tenancy import TenantScope
from src.errors import ExportAccessError, ValidationError
from src.models.ai_job import AiJob
from src.models.audit import AuditLog
from src.models.consent import Consent
from src.models.enums import ActorScope
from src.models.export import ExportRecord
from src.repositories.ai_jobs import AiJobRepo, ai_job_repo
from src.repositories.audit_events import AuditEventRepo, audit_event_repo
from src.repositories.consents import ConsentRepo, consent_repo
from src.repositories.exports import ExportRepo, export_repo
from src.schemas.audit import AuditEvent, EventType
from src.security.audit import AuditEmitter, audit_emitter
from src.security.clock import Clock, system_clock
from src.security.encryption import EncryptedEnvelope, decrypt, encrypt, generate_password
from src.security.export_storage import ExportStorage, export_storage
from src.security.safe_log import get_logger

logger = get_logger(__name__)

EXPORT_FORMAT_VERSION = "1.0"


@dataclass(frozen=True)
class ExportResult:
    """Returned once to the requester. The password is not stored anywhere."""

    export_id: str
    download_token: str
    password: str
    expires_at: datetime


@dataclass(frozen=True)
class DownloadResult:
    export_id: str
    envelope: EncryptedEnvelope
    downloads_remaining: int


# ── Bundle serialization ─────────────────────────────────────────────


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def serialize_consent(consent: Consent) -> dict[str, Any]:
    return {
        "id": str(consent.id),
        "purpose": consent.purpose,
        "granted": consent.granted,
        "grantedAt": _iso(consent.granted_at),
        "revokedAt": _iso(consent.revoked_at),
        "recordedAt": _iso(consent.recorded_at),
    }


def serialize_ai_job(job: AiJob) -> dict[str, Any]:
    return {
        "id": str(job.id),
        "purpose": job.purpose,
        "modelRef": job.model_ref,
        "status": job.status,
        "requestedAt": _iso(job.requested_at),
        "startedAt": _iso(job.started_at),
        "finishedAt": _iso(job.finished_at),
    }


def serialize_audit_event(event: AuditLog) -> dict[str, Any]:
    return {
        "id": str(event.id),
        "eventName": event.event_name,
        "actorScope": event.actor_scope,
        "targetId": event.target_id,
        "metadata": event.metadata_ or {},
        "occurredAt": _iso(event.occurred_at),
    }


def decrypt_bundle(envelope: EncryptedEnvelope, password: str) -> dict[str, Any]:
    """Decrypt an export envelope back into the bundle dict."""
    return json.loads(decrypt(envelope, password))


# ── Exporter ─────────────────────────────────────────────────────────


class DataExporter:
    """Builds and serves encrypted export bundles — TenantScope passed per call."""

    def __init__(
        self,
        consents: ConsentRepo | None = None,
        ai_jobs: AiJobRepo | None = None,
        audit_events: AuditEventRepo | None = None,
        exports: ExportRepo | None = None,
        storage: ExportStorage | None = None,
        audit: AuditEmitter | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._consents = consents or consent_repo
        self._ai_jobs = ai_jobs or ai_job_repo
        self._audit_events = audit_events or audit_event_repo
        self._exports = exports or export_repo
        self._storage = storage or export_storage
        self._audit = audit or audit_emitter
        self._clock = clock or system_clock

    async def export_user_data(self, scope: TenantScope, user_id: Any) -> ExportResult:
        """Generate, encrypt and store the subject's export bundle."""
        if user_id is None or not str(user_id).strip():
            msg = "user id is required"
            raise ValidationError(msg)

        consents = await self._consents.list_for_user(scope, user_id)
        jobs = await self._ai_jobs.list_for_user(scope, user_id)
        events = await self._audit_events.list_for_subject(
            scope, user_id, settings.retention.max_audit_events_per_export
        )

        now = self._clock.now()
        export_id = uuid.uuid4()
        download_token = secrets.token_urlsafe(32)
        password = generate_password()
        expires_at = now + timedelta(days=settings.retention.export_ttl_days)

        bundle = {
            "exportId": str(export_id),
            "tenantId": scope.tenant_id,
            "userId": str(user_id),
            "generatedAt": now.isoformat(),
            "expiresAt": expires_at.isoformat(),
            "version": EXPORT_FORMAT_VERSION,
            "data": {
                "consents": [serialize_consent(c) for c in consents],
                "aiJobs": [serialize_ai_job(j) for j in jobs],
                "auditEvents": [serialize_audit_event(e) for e in events],
            },
        }
        envelope = encrypt(json.dumps(bundle), password)

        await self._storage.write_encrypted_bundle(export_id, envelope)
        try:
            await self._exports.add(scope, ExportRecord(
                id=export_id,
                tenant_id=scope.tenant_id,
                user_id=user_id,
                download_token=download_token,
                expires_at=expires_at,
                download_count=0,
            ))
            await self._audit.emit(AuditEvent(
                event_name=EventType.EXPORT_CREATED.value,
                actor_scope=ActorScope.MEMBER,
                actor_id=str(user_id),
                tenant_id=scope.tenant_id,
                target_id=str(user_id),
                metadata={"export_id": str(export_id)},
            ))
        except Exception:
            # Metadata or audit failed: the transaction rolls back, drop the orphan bundle too
            await self._storage.delete_bundle(export_id)
            raise

        logger.info(
            "rgpd.export.created",
            consents=len(consents),
            ai_jobs=len(jobs),
            audit_events=len(events),
        )
        return ExportResult(
            export_id=str(export_id),
            download_token=download_token,
            password=password,
            expires_at=expires_at,
        )

    async def download_export(
        self,
        scope: TenantScope,
        download_token: str,
        requesting_user_id: Any,
    ) -> DownloadResult:
        """Serve the encrypted bundle to its owner within TTL and download limit."""
        if not download_token:
            msg = "Export not found"
            raise ExportAccessError("unknown", msg)

        record = await self._exports.get_by_token(scope, download_token)
        if record is None:
            msg = "Export not found"
            raise ExportAccessError("unknown", msg)

        if str(record.tenant_id) != scope.tenant_id or str(record.user_id) != str(requesting_user_id):
            msg = "Export does not belong to the requesting user"
            raise ExportAccessError("forbidden", msg)

        if self._clock.now() > record.expires_at:
            # Lazy expiry: the artifact goes now, metadata is reclaimed by the sweep job
            await self._storage.delete_bundle(record.id)
            logger.info("rgpd.export.expired", export_id=str(record.id))
            msg = "Export has expired"
            raise ExportAccessError("expired", msg)

        # Check and increment in one statement: concurrent downloads cannot both take the last slot
        max_downloads = settings.retention.export_max_downloads
        download_count = await self._exports.claim_download(scope, record.id, max_downloads)
        if download_count is None:
            msg = "Download limit reached"
            raise ExportAccessError("limit", msg)

        envelope = await self._storage.read_encrypted_bundle(record.id)

        await self._audit.emit(AuditEvent(
            event_name=EventType.EXPORT_DOWNLOADED.value,
            actor_scope=ActorScope.MEMBER,
            actor_id=str(requesting_user_id),
            tenant_id=scope.tenant_id,
            target_id=str(requesting_user_id),
            metadata={"export_id": str(record.id), "download_count": download_count},
        ))
        return DownloadResult(
            export_id=str(record.id),
            envelope=envelope,
            downloads_remaining=max_downloads - download_count,
        )

    async def shred_user_exports(self, scope: TenantScope, user_id: Any) -> int:
        """Delete every bundle and metadata row of the user. Returns the number of exports."""
        records = await self._exports.list_for_user(scope, user_id)
        for record in records:
            await self._storage.delete_bundle(record.id)
            await self._exports.delete(scope, record.id)
        return len(records)


# Module-level singleton
data_exporter = DataExporter()
