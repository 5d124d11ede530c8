"""paywall_core_tables

Revision ID: 7c1e2a9b4d10
Revises:
Create Date: 2026-10-18 10:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "7c1e2a9b4d10"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "entitlements",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("has_plus", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("plus_status", sa.String(16), nullable=False, server_default=sa.text("'none'")),
        sa.Column("plus_current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("provider_customer_id", sa.String(64), nullable=True),
        sa.Column("provider_subscription_id", sa.String(64), nullable=True),
        sa.Column("plan_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "plus_status IN ('none','active','past_due','canceled')",
            name="ck_entitlements_plus_status",
        ),
        sa.CheckConstraint(
            "NOT has_plus OR plus_status = 'active'",
            name="ck_entitlements_has_plus_requires_active",
        ),
        sa.UniqueConstraint("provider_customer_id", name="uq_entitlements_provider_customer_id"),
    )
    op.create_index("idx_entitlements_subscription", "entitlements", ["provider_subscription_id"])
    op.create_index("idx_entitlements_period_end", "entitlements", ["plus_current_period_end"])

    op.create_table(
        "unlocks",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("unlock_type", sa.String(16), nullable=False),
        sa.Column("character_id", sa.String(64), nullable=False),
        sa.Column("situation_id", sa.String(64), nullable=True),
        sa.Column("moment_level", sa.String(16), nullable=True),
        sa.Column("media_id", sa.String(64), nullable=True),
        sa.Column("source_event_id", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("unlock_type IN ('moment','media')", name="ck_unlocks_type"),
        sa.CheckConstraint(
            "moment_level IS NULL OR moment_level IN ('private','intimate','exclusive')",
            name="ck_unlocks_moment_level",
        ),
        sa.CheckConstraint(
            "unlock_type <> 'moment' OR (situation_id IS NOT NULL AND moment_level IS NOT NULL)",
            name="ck_unlocks_moment_shape",
        ),
        sa.CheckConstraint("unlock_type <> 'media' OR media_id IS NOT NULL", name="ck_unlocks_media_shape"),
    )
    op.create_index("idx_unlocks_user", "unlocks", ["user_id"])
    op.create_index(
        "uq_unlocks_moment",
        "unlocks",
        ["user_id", "character_id", "situation_id", "moment_level"],
        unique=True,
        postgresql_where=sa.text("unlock_type = 'moment'"),
    )
    op.create_index(
        "uq_unlocks_media",
        "unlocks",
        ["user_id", "character_id", "media_id"],
        unique=True,
        postgresql_where=sa.text("unlock_type = 'media'"),
    )

    op.create_table(
        "processed_events",
        sa.Column("provider_event_id", sa.String(255), primary_key=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("outcome", sa.String(16), nullable=False),
        sa.Column(
            "detail",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "outcome IN ('APPLIED','ANOMALY','RECOVERED','PENDING_REVIEW')",
            name="ck_processed_events_outcome",
        ),
    )
    op.create_index("idx_processed_events_processed_at", "processed_events", ["processed_at"])
    op.create_index(
        "idx_processed_events_open_anomalies",
        "processed_events",
        ["processed_at"],
        postgresql_where=sa.text("outcome = 'ANOMALY'"),
    )

    op.create_table(
        "purchase_records",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("provider_event_id", sa.String(255), nullable=False),
        sa.Column("checkout_session_id", sa.String(255), nullable=False),
        sa.Column("payment_intent_id", sa.String(255), nullable=True),
        sa.Column("subscription_id", sa.String(255), nullable=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("purchase_type", sa.String(16), nullable=True),
        sa.Column("product_code", sa.String(64), nullable=True),
        sa.Column("character_id", sa.String(64), nullable=True),
        sa.Column("situation_id", sa.String(64), nullable=True),
        sa.Column("moment_level", sa.String(16), nullable=True),
        sa.Column("media_id", sa.String(64), nullable=True),
        sa.Column("amount_total", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(8), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("provider_event_id", name="uq_purchase_records_provider_event_id"),
    )
    op.create_index("idx_purchase_records_user_created", "purchase_records", ["user_id", "created_at"])
    op.create_index("idx_purchase_records_checkout_session", "purchase_records", ["checkout_session_id"])

    op.create_table(
        "reconciliation_runs",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("diff_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "report",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.CheckConstraint("status IN ('OK','DIFF')", name="ck_reconciliation_runs_status"),
    )


def downgrade() -> None:
    op.drop_table("reconciliation_runs")
    op.drop_index("idx_purchase_records_checkout_session", table_name="purchase_records")
    op.drop_index("idx_purchase_records_user_created", table_name="purchase_records")
    op.drop_table("purchase_records")
    op.drop_index("idx_processed_events_open_anomalies", table_name="processed_events")
    op.drop_index("idx_processed_events_processed_at", table_name="processed_events")
    op.drop_table("processed_events")
    op.drop_index("uq_unlocks_media", table_name="unlocks")
    op.drop_index("uq_unlocks_moment", table_name="unlocks")
    op.drop_index("idx_unlocks_user", table_name="unlocks")
    op.drop_table("unlocks")
    op.drop_index("idx_entitlements_period_end", table_name="entitlements")
    op.drop_index("idx_entitlements_subscription", table_name="entitlements")
    op.drop_table("entitlements")
