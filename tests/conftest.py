"""Shared fakes: a pooled connection with transaction-local settings, in-memory repositories, a recording sink."""

from __future__ import annotations

import contextlib
import itertools
import uuid
from datetime import UTC, datetime
from typing import Any
from unittest.mock import MagicMock

import pytest

from src.db.tenancy import PlatformScope, TenantScope
from src.models.enums import RgpdRequestStatus, RgpdRequestType, ReviewStatus
from src.models.user import User
from src.security.audit import AuditEmitter
from src.security.clock import FixedClock

T0 = datetime(2025, 1, 1, tzinfo=UTC)


# ── Fake pooled connection ───────────────────────────────────────────


class FakeConnection:
    """One physical connection. ``settings`` models set_config(..., true): cleared at transaction end."""

    def __init__(self) -> None:
        self.settings: dict[str, str] = {}
        self.in_transaction = False
        self.commits = 0
        self.rollbacks = 0

    def end_transaction(self, committed: bool) -> None:
        self.settings.clear()
        self.in_transaction = False
        if committed:
            self.commits += 1
        else:
            self.rollbacks += 1


class FakeSession:
    """Just enough of AsyncSession for tenant_scope/platform_scope."""

    def __init__(self, conn: FakeConnection) -> None:
        self.conn = conn
        self.executed: list[tuple[str, dict[str, Any] | None]] = []
        self.added: list[Any] = []

    async def __aenter__(self) -> FakeSession:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None

    @contextlib.asynccontextmanager
    async def begin(self):
        self.conn.in_transaction = True
        try:
            yield self
        except BaseException:
            self.conn.end_transaction(committed=False)
            raise
        self.conn.end_transaction(committed=True)

    async def execute(self, stmt: Any, params: dict[str, Any] | None = None) -> MagicMock:
        sql = str(stmt)
        self.executed.append((sql, params))
        if "app.current_tenant_id" in sql:
            self.conn.settings["app.current_tenant_id"] = params["tenant_id"]
        elif "app.platform_scope" in sql:
            self.conn.settings["app.platform_scope"] = "on"
        return MagicMock()

    def add(self, obj: Any) -> None:
        self.added.append(obj)

    async def flush(self) -> None:
        return None


class FakePool:
    """A pool of size one: every session borrows the same connection."""

    def __init__(self) -> None:
        self.conn = FakeConnection()
        self.sessions: list[FakeSession] = []

    def __call__(self) -> FakeSession:
        session = FakeSession(self.conn)
        self.sessions.append(session)
        return session


class RlsTable:
    """Rows filtered the way the tenant isolation policy filters them."""

    def __init__(self) -> None:
        self.rows: list[dict[str, Any]] = []

    def insert(self, conn: FakeConnection, row: dict[str, Any]) -> None:
        if not self._visible(conn, row):
            msg = "new row violates row-level security policy"
            raise PermissionError(msg)
        self.rows.append(row)

    def select(self, conn: FakeConnection) -> list[dict[str, Any]]:
        return [r for r in self.rows if self._visible(conn, r)]

    @staticmethod
    def _visible(conn: FakeConnection, row: dict[str, Any]) -> bool:
        if conn.settings.get("app.platform_scope") == "on":
            return True
        return str(row["tenant_id"]) == conn.settings.get("app.current_tenant_id")


# ── In-memory repositories ───────────────────────────────────────────


def _owned(items: list[Any], scope: TenantScope) -> list[Any]:
    return [i for i in items if str(i.tenant_id) == scope.tenant_id]


class FakeTenantRepo:
    def __init__(self) -> None:
        self.items: list[Any] = []

    async def add(self, scope, tenant):
        self.items.append(tenant)
        return tenant

    async def get(self, scope, tenant_id):
        return next((t for t in self.items if str(t.id) == str(tenant_id)), None)

    async def get_by_slug(self, scope, slug):
        return next((t for t in self.items if t.slug == slug), None)

    async def save(self, scope, tenant):
        return None

    async def list_active(self, scope):
        return [t for t in self.items if t.deleted_at is None]


class FakeUserRepo:
    def __init__(self) -> None:
        self.items: list[User] = []

    async def add(self, scope, user):
        self.items.append(user)
        return user

    async def get(self, scope, user_id, include_deleted=False):
        for user in _owned(self.items, scope):
            if str(user.id) == str(user_id) and (include_deleted or user.deleted_at is None):
                return user
        return None

    async def save(self, scope, user):
        return None

    async def hard_delete(self, scope, user_id):
        doomed = [u for u in _owned(self.items, scope) if str(u.id) == str(user_id)]
        self.items = [u for u in self.items if u not in doomed]
        return len(doomed)

    async def soft_delete_tenant_users(self, scope, tenant_id, at):
        count = 0
        for user in self.items:
            if str(user.tenant_id) == str(tenant_id) and user.deleted_at is None:
                user.deleted_at = at
                count += 1
        return count


class FakeConsentRepo:
    def __init__(self) -> None:
        self.items: list[Any] = []
        self._seq = itertools.count(1)

    async def add(self, scope, consent):
        consent.seq = next(self._seq)
        self.items.append(consent)
        return consent

    async def latest(self, scope, user_id, purpose):
        rows = [
            c for c in _owned(self.items, scope)
            if str(c.user_id) == str(user_id) and c.purpose == purpose and c.deleted_at is None
        ]
        return max(rows, key=lambda c: (c.recorded_at, c.seq)) if rows else None

    async def list_for_user(self, scope, user_id):
        rows = [c for c in _owned(self.items, scope) if str(c.user_id) == str(user_id)]
        return sorted(rows, key=lambda c: (c.recorded_at, c.seq))

    async def soft_delete_for_user(self, scope, user_id, at):
        rows = [c for c in await self.list_for_user(scope, user_id) if c.deleted_at is None]
        for c in rows:
            c.deleted_at = at
        return len(rows)

    async def hard_delete_for_user(self, scope, user_id):
        rows = await self.list_for_user(scope, user_id)
        self.items = [c for c in self.items if c not in rows]
        return len(rows)


class FakeAiJobRepo:
    def __init__(self) -> None:
        self.items: list[Any] = []

    async def add(self, scope, job):
        self.items.append(job)
        return job

    async def get(self, scope, job_id):
        return next(
            (j for j in _owned(self.items, scope) if str(j.id) == str(job_id) and j.deleted_at is None),
            None,
        )

    async def save(self, scope, job):
        return None

    async def list_for_user(self, scope, user_id):
        rows = [j for j in _owned(self.items, scope) if str(j.user_id) == str(user_id)]
        return sorted(rows, key=lambda j: j.requested_at)

    async def soft_delete_for_user(self, scope, user_id, at):
        rows = [j for j in await self.list_for_user(scope, user_id) if j.deleted_at is None]
        for j in rows:
            j.deleted_at = at
        return len(rows)

    async def hard_delete_for_user(self, scope, user_id):
        rows = await self.list_for_user(scope, user_id)
        self.items = [j for j in self.items if j not in rows]
        return len(rows)

    async def count_older_than(self, scope, cutoff):
        return len([j for j in _owned(self.items, scope) if j.requested_at < cutoff])

    async def delete_older_than(self, scope, cutoff):
        rows = [j for j in _owned(self.items, scope) if j.requested_at < cutoff]
        self.items = [j for j in self.items if j not in rows]
        return len(rows)


class FakeRequestRepo:
    def __init__(self) -> None:
        self.items: list[Any] = []

    async def add_pending(self, scope, request):
        # Mirrors the partial unique index on (tenant_id, user_id, type) WHERE PENDING
        if any(
            str(r.user_id) == str(request.user_id)
            and r.type == request.type
            and r.status == RgpdRequestStatus.PENDING.value
            for r in _owned(self.items, scope)
        ):
            return None
        self.items.append(request)
        return request

    async def get(self, scope, request_id):
        return next((r for r in _owned(self.items, scope) if str(r.id) == str(request_id)), None)

    async def save(self, scope, request):
        return None

    async def find_deletion_request(self, scope, user_id):
        rows = [
            r for r in _owned(self.items, scope)
            if str(r.user_id) == str(user_id)
            and r.type == RgpdRequestType.DELETE.value
            and r.status in (RgpdRequestStatus.PENDING.value, RgpdRequestStatus.COMPLETED.value)
        ]
        return max(rows, key=lambda r: r.requested_at) if rows else None

    async def find_pending_purges(self, scope, now):
        rows = [
            r for r in self.items
            if r.type == RgpdRequestType.DELETE.value
            and r.status == RgpdRequestStatus.PENDING.value
            and r.scheduled_purge_at <= now
        ]
        return sorted(rows, key=lambda r: r.scheduled_purge_at)


class FakeExportRepo:
    def __init__(self) -> None:
        self.items: list[Any] = []

    async def add(self, scope, record):
        self.items.append(record)
        return record

    async def get_by_token(self, scope, download_token):
        return next((r for r in _owned(self.items, scope) if r.download_token == download_token), None)

    async def claim_download(self, scope, export_id, max_downloads):
        record = next((r for r in _owned(self.items, scope) if str(r.id) == str(export_id)), None)
        if record is None or record.download_count >= max_downloads:
            return None
        record.download_count += 1
        return record.download_count

    async def delete(self, scope, export_id):
        rows = [r for r in _owned(self.items, scope) if str(r.id) == str(export_id)]
        self.items = [r for r in self.items if r not in rows]
        return len(rows)

    async def list_for_user(self, scope, user_id):
        return [r for r in _owned(self.items, scope) if str(r.user_id) == str(user_id)]

    async def list_expired(self, scope, now):
        return [r for r in self.items if r.expires_at < now]

    async def delete_many(self, scope, export_ids):
        ids = {str(i) for i in export_ids}
        rows = [r for r in self.items if str(r.id) in ids]
        self.items = [r for r in self.items if r not in rows]
        return len(rows)


class FakeAuditEventRepo:
    def __init__(self) -> None:
        self.items: list[Any] = []

    async def add(self, scope, event):
        self.items.append(event)

    async def list_for_subject(self, scope, user_id, limit):
        uid = str(user_id)
        rows = [
            e for e in _owned(self.items, scope)
            if e.actor_id == uid or e.target_id == uid
        ]
        return sorted(rows, key=lambda e: e.occurred_at, reverse=True)[:limit]

    async def anonymize_actor(self, scope, actor_id):
        rows = [e for e in _owned(self.items, scope) if e.actor_id == str(actor_id)]
        for e in rows:
            e.actor_id = None
        return len(rows)

    async def delete_older_than(self, scope, cutoff):
        rows = [e for e in self.items if e.occurred_at < cutoff]
        self.items = [e for e in self.items if e not in rows]
        return len(rows)


class FakeReviewRepo:
    """Serves both disputes and oppositions."""

    def __init__(self) -> None:
        self.items: list[Any] = []

    async def add(self, scope, item):
        self.items.append(item)
        return item

    async def get(self, scope, item_id):
        return next((i for i in _owned(self.items, scope) if str(i.id) == str(item_id)), None)

    async def save(self, scope, item):
        return None

    async def list_open(self, scope):
        open_states = (ReviewStatus.PENDING.value, ReviewStatus.UNDER_REVIEW.value)
        return [i for i in _owned(self.items, scope) if i.status in open_states]


class FakeIncidentRepo:
    def __init__(self) -> None:
        self.items: list[Any] = []

    async def add(self, scope, incident):
        self.items.append(incident)
        return incident

    async def get(self, scope, incident_id):
        for incident in self.items:
            if str(incident.id) != str(incident_id):
                continue
            if isinstance(scope, TenantScope) and str(incident.tenant_id) != scope.tenant_id:
                return None
            return incident
        return None

    async def save(self, scope, incident):
        return None

    async def list_cnil_unnotified(self, scope):
        return [i for i in self.items if i.cnil_notified_at is None]


class RecordingSink:
    """Audit sink keeping every written event in memory."""

    def __init__(self) -> None:
        self.events: list[Any] = []

    async def write(self, event):
        self.events.append(event)

    @property
    def names(self) -> list[str]:
        return [e.event_name for e in self.events]


# ── Helpers ──────────────────────────────────────────────────────────


def make_scope(tenant_id: str = "t1") -> TenantScope:
    return TenantScope(session=MagicMock(), tenant_id=tenant_id)


def make_platform() -> PlatformScope:
    return PlatformScope(session=MagicMock())


def make_user(tenant_id: str = "t1", user_id: uuid.UUID | None = None, **kwargs: Any) -> User:
    fields: dict[str, Any] = {
        "id": user_id or uuid.uuid4(),
        "tenant_id": tenant_id,
        "email_hash": "0" * 64,
        "display_name": "Member",
        "role": "MEMBER",
        "scope": "MEMBER",
        "data_suspended": False,
        "deleted_at": None,
    }
    fields.update(kwargs)
    return User(**fields)


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(T0)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def audit(sink: RecordingSink, clock: FixedClock) -> AuditEmitter:
    return AuditEmitter(sink=sink, clock=clock)


@pytest.fixture
def scope() -> TenantScope:
    return make_scope("t1")


@pytest.fixture
def platform() -> PlatformScope:
    return make_platform()


@pytest.fixture
def pool() -> FakePool:
    return FakePool()
