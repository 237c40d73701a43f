"""Initial schema: platform and creator tables with row-level security.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

platform holds system tables written only through the bypass session
(webhook events, function logs, billing customers and catalog). creator
holds user-owned rows protected by RLS policies keyed on
app.current_user_id.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

from src.copilot.core.rls import row_level_security_statements

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))


def _owner(name: str = "user_id") -> sa.Column:
    return sa.Column(
        name,
        UUID(as_uuid=True),
        sa.ForeignKey("creator.profiles.id", ondelete="CASCADE"),
        nullable=False,
    )


def _jsonb(name: str, default: str = "'{}'::jsonb") -> sa.Column:
    return sa.Column(name, JSONB(), server_default=sa.text(default))


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS platform")
    op.execute("CREATE SCHEMA IF NOT EXISTS creator")

    # ── platform ────────────────────────────────────────────────────────
    op.create_table(
        "webhook_events",
        _id(),
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column("event_id", sa.String(255), nullable=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        _jsonb("payload"),
        sa.Column("status", sa.String(20), server_default=sa.text("'received'")),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        schema="platform",
    )
    op.create_index(
        "ix_webhook_events_source_event", "webhook_events", ["source", "event_id"], schema="platform"
    )

    op.create_table(
        "function_logs",
        _id(),
        sa.Column("function_name", sa.String(100), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("duration_ms", sa.Float(), nullable=True),
        _jsonb("request_data"),
        _jsonb("response_data"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        schema="platform",
    )
    op.create_index(
        "ix_function_logs_user_created", "function_logs", ["user_id", "created_at"], schema="platform"
    )

    op.create_table(
        "billing_customers",
        sa.Column("user_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("customer_id", sa.String(255), unique=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        *_timestamps(),
        schema="platform",
    )

    op.create_table(
        "billing_products",
        sa.Column("id", sa.String(255), primary_key=True),
        sa.Column("active", sa.Boolean(), server_default=sa.text("true")),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        _jsonb("metadata"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        schema="platform",
    )

    op.create_table(
        "billing_prices",
        sa.Column("id", sa.String(255), primary_key=True),
        sa.Column("product_id", sa.String(255), nullable=True),
        sa.Column("active", sa.Boolean(), server_default=sa.text("true")),
        sa.Column("currency", sa.String(10), nullable=True),
        sa.Column("unit_amount", sa.BigInteger(), nullable=True),
        sa.Column("type", sa.String(20), nullable=True),
        sa.Column("interval", sa.String(20), nullable=True),
        sa.Column("interval_count", sa.Integer(), nullable=True),
        sa.Column("trial_period_days", sa.Integer(), nullable=True),
        _jsonb("metadata"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        schema="platform",
    )

    # ── creator ─────────────────────────────────────────────────────────
    op.create_table(
        "profiles",
        _id(),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(200), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("niche", sa.String(100), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        _jsonb("social_links"),
        sa.Column("follower_count", sa.Integer(), server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true")),
        sa.Column("is_admin", sa.Boolean(), server_default=sa.text("false")),
        sa.Column("is_pro", sa.Boolean(), server_default=sa.text("false")),
        sa.Column("subscription_tier", sa.String(20), server_default=sa.text("'free'")),
        sa.Column("subscription_status", sa.String(20), server_default=sa.text("'active'")),
        sa.Column("subscription_id", sa.String(255), nullable=True),
        sa.Column("trial_ends_at", sa.DateTime(timezone=True), nullable=True),
        _jsonb("usage_limits"),
        _jsonb("usage_counts"),
        sa.Column(
            "usage_period_start",
            sa.DateTime(timezone=True),
            server_default=sa.text("date_trunc('month', now())"),
        ),
        *_timestamps(),
        schema="creator",
    )

    op.create_table(
        "generated_content",
        _id(),
        _owner(),
        sa.Column("content_type", sa.String(20), nullable=False),
        sa.Column("platform", sa.String(50), nullable=False),
        sa.Column("niche", sa.String(100), nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        _jsonb("metadata"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        schema="creator",
    )
    op.create_index(
        "ix_generated_content_user_created", "generated_content", ["user_id", "created_at"], schema="creator"
    )

    op.create_table(
        "voiceovers",
        _id(),
        _owner(),
        sa.Column("title", sa.String(300), server_default=sa.text("'Untitled Voiceover'")),
        sa.Column("script", sa.Text(), nullable=False),
        sa.Column("voice_id", sa.String(100), nullable=False),
        sa.Column("audio_url", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), server_default=sa.text("'generating'")),
        sa.Column("estimated_minutes", sa.Float(), server_default=sa.text("0")),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
        schema="creator",
    )
    op.create_index("ix_voiceovers_user_created", "voiceovers", ["user_id", "created_at"], schema="creator")

    op.create_table(
        "video_projects",
        _id(),
        _owner(),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("script", sa.Text(), nullable=False),
        sa.Column("replica_id", sa.String(100), nullable=False),
        sa.Column("provider_video_id", sa.String(100), nullable=True),
        sa.Column("background", sa.String(100), server_default=sa.text("'office'")),
        sa.Column("subtitles", sa.Boolean(), server_default=sa.text("true")),
        sa.Column("status", sa.String(20), server_default=sa.text("'generating'")),
        sa.Column("progress", sa.Integer(), server_default=sa.text("0")),
        sa.Column("video_url", sa.Text(), nullable=True),
        sa.Column("thumbnail_url", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("poll_attempts", sa.Integer(), server_default=sa.text("0")),
        *_timestamps(),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        schema="creator",
    )
    op.create_index(
        "ix_video_projects_user_created", "video_projects", ["user_id", "created_at"], schema="creator"
    )
    op.create_index(
        "ix_video_projects_provider_video_id", "video_projects", ["provider_video_id"], schema="creator"
    )
    op.create_index("ix_video_projects_status", "video_projects", ["status"], schema="creator")

    op.create_table(
        "campaigns",
        _id(),
        _owner("brand_id"),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("budget", sa.Numeric(12, 2), nullable=False),
        sa.Column("niche", sa.String(100), nullable=False),
        _jsonb("requirements", "'[]'::jsonb"),
        sa.Column("status", sa.String(20), server_default=sa.text("'active'")),
        sa.Column("applications_count", sa.Integer(), server_default=sa.text("0")),
        *_timestamps(),
        schema="creator",
    )
    op.create_index("ix_campaigns_status_niche", "campaigns", ["status", "niche"], schema="creator")
    op.create_index("ix_campaigns_brand", "campaigns", ["brand_id"], schema="creator")

    op.create_table(
        "campaign_applications",
        _id(),
        sa.Column(
            "campaign_id",
            UUID(as_uuid=True),
            sa.ForeignKey("creator.campaigns.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _owner("creator_id"),
        sa.Column("proposal", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'pending'")),
        *_timestamps(),
        sa.UniqueConstraint("campaign_id", "creator_id", name="uq_campaign_applications_campaign_creator"),
        schema="creator",
    )
    op.create_index(
        "ix_campaign_applications_creator", "campaign_applications", ["creator_id"], schema="creator"
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.String(255), primary_key=True),
        _owner(),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("price_id", sa.String(255), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=True),
        sa.Column("cancel_at_period_end", sa.Boolean(), server_default=sa.text("false")),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trial_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trial_end", sa.DateTime(timezone=True), nullable=True),
        _jsonb("metadata"),
        *_timestamps(),
        schema="creator",
    )
    op.create_index("ix_subscriptions_user", "subscriptions", ["user_id"], schema="creator")

    op.create_table(
        "invoices",
        sa.Column("id", sa.String(255), primary_key=True),
        _owner(),
        sa.Column("subscription_id", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=True),
        sa.Column("currency", sa.String(10), nullable=True),
        sa.Column("amount_due", sa.BigInteger(), nullable=True),
        sa.Column("amount_paid", sa.BigInteger(), nullable=True),
        sa.Column("amount_remaining", sa.BigInteger(), nullable=True),
        sa.Column("invoice_pdf", sa.Text(), nullable=True),
        sa.Column("hosted_invoice_url", sa.Text(), nullable=True),
        *_timestamps(),
        schema="creator",
    )
    op.create_index("ix_invoices_user_created", "invoices", ["user_id", "created_at"], schema="creator")

    op.create_table(
        "oauth_tokens",
        _id(),
        _owner(),
        sa.Column("platform", sa.String(30), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("token_type", sa.String(30), nullable=True),
        sa.Column("scope", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("platform_user_id", sa.String(255), nullable=True),
        sa.Column("platform_username", sa.String(255), nullable=True),
        _jsonb("metadata"),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "platform", name="uq_oauth_tokens_user_platform"),
        schema="creator",
    )

    op.create_table(
        "analytics_snapshots",
        _id(),
        _owner(),
        sa.Column("platform", sa.String(30), nullable=False),
        sa.Column("snapshot_date", sa.Date(), nullable=False),
        sa.Column("followers", sa.BigInteger(), server_default=sa.text("0")),
        sa.Column("engagement_rate", sa.Float(), server_default=sa.text("0")),
        sa.Column("reach", sa.BigInteger(), server_default=sa.text("0")),
        sa.Column("impressions", sa.BigInteger(), server_default=sa.text("0")),
        _jsonb("metadata"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "platform", "snapshot_date", name="uq_analytics_snapshots_day"),
        schema="creator",
    )

    # ── Row-level security, updated_at and is_pro triggers ──────────────
    for statement in row_level_security_statements():
        op.execute(statement)


def downgrade() -> None:
    op.execute("DROP SCHEMA IF EXISTS creator CASCADE")
    op.execute("DROP SCHEMA IF EXISTS platform CASCADE")
