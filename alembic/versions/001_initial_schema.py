"""Initial schema — tenants, users, RGPD tables, incidents, audit trail, row-level security.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from __future__ import annotations

from typing import Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, tuple[str, ...], None] = None
depends_on: Union[str, tuple[str, ...], None] = None

TENANT_MARKER = "current_setting('app.current_tenant_id', true)"
PLATFORM_MARKER = "current_setting('app.platform_scope', true) = 'on'"

# Tables whose every row belongs to exactly one tenant
TENANT_TABLES = (
    "consents",
    "ai_jobs",
    "rgpd_requests",
    "export_records",
    "user_disputes",
    "user_oppositions",
)

# Tables whose rows may also be platform-level (tenant_id NULL)
OPTIONAL_TENANT_TABLES = ("users", "security_incidents", "audit_events")


def _id_and_timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def _tenant_fk(nullable: bool = False) -> sa.Column:
    return sa.Column(
        "tenant_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=nullable,
        index=True,
    )


def _review_columns() -> list[sa.Column]:
    """Columns shared by disputes and oppositions."""
    return [
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("reason", sa.Text(), nullable=False, comment="P2 free text, never logged"),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("admin_response", sa.Text()),
        sa.Column("reviewed_by", sa.String(100)),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True)),
        sa.Column("resolved_at", sa.DateTime(timezone=True)),
    ]


def _enable_tenant_rls(table_name: str, allow_platform_rows: bool = False) -> None:
    """Rows are visible to their tenant's scope, or to the platform scope."""
    op.execute(f"ALTER TABLE {table_name} ENABLE ROW LEVEL SECURITY")
    op.execute(f"ALTER TABLE {table_name} FORCE ROW LEVEL SECURITY")
    using = f"tenant_id::text = {TENANT_MARKER} OR {PLATFORM_MARKER}"
    check = f"{using} OR tenant_id IS NULL" if allow_platform_rows else using
    op.execute(
        f"""
        CREATE POLICY {table_name}_tenant_isolation
        ON {table_name}
        USING ({using})
        WITH CHECK ({check})
        """
    )


def _disable_tenant_rls(table_name: str) -> None:
    op.execute(f"DROP POLICY IF EXISTS {table_name}_tenant_isolation ON {table_name}")
    op.execute(f"ALTER TABLE {table_name} NO FORCE ROW LEVEL SECURITY")
    op.execute(f"ALTER TABLE {table_name} DISABLE ROW LEVEL SECURITY")


def upgrade() -> None:
    # ── Platform tables ────────────────────────────────────────────────

    op.create_table(
        "tenants",
        sa.Column("slug", sa.String(50), nullable=False, comment="Immutable"),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("suspended_at", sa.DateTime(timezone=True)),
        sa.Column("suspension_reason", sa.String(500)),
        sa.Column("deleted_at", sa.DateTime(timezone=True), index=True),
        *_id_and_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )

    op.create_table(
        "users",
        _tenant_fk(nullable=True),
        sa.Column("email_hash", sa.String(64), nullable=False, index=True, comment="SHA-256, lookup only"),
        sa.Column("display_name", sa.String(200), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("scope", sa.String(20), nullable=False),
        sa.Column("data_suspended", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("data_suspended_at", sa.DateTime(timezone=True)),
        sa.Column("data_suspended_reason", sa.String(50)),
        sa.Column("data_suspended_by", sa.String(100)),
        sa.Column("data_suspended_notes", sa.String(1000)),
        sa.Column("deleted_at", sa.DateTime(timezone=True), index=True),
        *_id_and_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "scope NOT IN ('TENANT', 'MEMBER') OR tenant_id IS NOT NULL",
            name="ck_users_tenant_scope_has_tenant",
        ),
    )

    # ── Tenant-owned tables ────────────────────────────────────────────

    op.create_table(
        "consents",
        _tenant_fk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("purpose", sa.String(100), nullable=False),
        sa.Column("granted", sa.Boolean(), nullable=False),
        sa.Column("granted_at", sa.DateTime(timezone=True)),
        sa.Column("revoked_at", sa.DateTime(timezone=True)),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("seq", sa.BigInteger(), sa.Identity(always=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), index=True),
        *_id_and_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_consents_lookup", "consents", ["tenant_id", "user_id", "purpose", "recorded_at", "seq"])

    op.create_table(
        "ai_jobs",
        _tenant_fk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("purpose", sa.String(100), nullable=False),
        sa.Column("model_ref", sa.String(100)),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("finished_at", sa.DateTime(timezone=True)),
        sa.Column("deleted_at", sa.DateTime(timezone=True), index=True),
        *_id_and_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "rgpd_requests",
        _tenant_fk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("type", sa.String(10), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scheduled_purge_at", sa.DateTime(timezone=True), index=True),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        *_id_and_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_rgpd_requests_one_pending",
        "rgpd_requests",
        ["tenant_id", "user_id", "type"],
        unique=True,
        postgresql_where=sa.text("status = 'PENDING'"),
    )

    op.create_table(
        "export_records",
        _tenant_fk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("download_token", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("download_count", sa.Integer(), server_default="0", nullable=False),
        *_id_and_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("download_token"),
    )

    op.create_table(
        "user_disputes",
        _tenant_fk(),
        *_review_columns(),
        sa.Column("ai_job_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("attachment_ref", sa.String(500)),
        *_id_and_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "user_oppositions",
        _tenant_fk(),
        *_review_columns(),
        sa.Column("treatment_type", sa.String(30), nullable=False),
        sa.Column("auto_approved", sa.Boolean(), server_default=sa.false(), nullable=False),
        *_id_and_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    # ── Incidents and audit trail ──────────────────────────────────────

    op.create_table(
        "security_incidents",
        _tenant_fk(nullable=True),
        sa.Column("severity", sa.String(10), nullable=False, index=True),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("data_categories", postgresql.ARRAY(sa.String(2)), server_default="{}", nullable=False),
        sa.Column("users_affected", sa.Integer(), server_default="0", nullable=False),
        sa.Column("records_affected", sa.Integer(), server_default="0", nullable=False),
        sa.Column("risk_level", sa.String(10), nullable=False),
        sa.Column("cnil_notified_at", sa.DateTime(timezone=True)),
        sa.Column("cnil_reference", sa.String(100)),
        sa.Column("users_notified_at", sa.DateTime(timezone=True)),
        sa.Column("remediation_actions", sa.Text()),
        sa.Column("resolved_at", sa.DateTime(timezone=True)),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("detected_by", sa.String(20), nullable=False),
        sa.Column("source_ip", sa.String(45)),
        sa.Column("created_by", sa.String(100)),
        *_id_and_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event_name", sa.String(121), nullable=False, index=True),
        sa.Column("actor_scope", sa.String(20), nullable=False),
        sa.Column("actor_id", sa.String(100), index=True),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("target_id", sa.String(100), index=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text())),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.PrimaryKeyConstraint("id"),
    )

    # ── Row-level security ─────────────────────────────────────────────

    for table_name in TENANT_TABLES:
        _enable_tenant_rls(table_name)
    for table_name in OPTIONAL_TENANT_TABLES:
        _enable_tenant_rls(table_name, allow_platform_rows=table_name == "audit_events")


def downgrade() -> None:
    for table_name in (*TENANT_TABLES, *OPTIONAL_TENANT_TABLES):
        _disable_tenant_rls(table_name)

    op.drop_table("audit_events")
    op.drop_table("security_incidents")
    op.drop_table("user_oppositions")
    op.drop_table("user_disputes")
    op.drop_table("export_records")
    op.drop_table("rgpd_requests")
    op.drop_table("ai_jobs")
    op.drop_table("consents")
    op.drop_table("users")
    op.drop_table("tenants")
