"""Initial PostgreSQL schema

Revision ID: 001
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create schema for DealsHub Telegram ingestion."""

    # 1. telegram_messages (one row per channel post)
    op.create_table(
        "telegram_messages",
        sa.Column("id", sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column("telegram_message_id", sa.BigInteger(), nullable=False),
        sa.Column("channel_id", sa.String(length=100), nullable=False),
        sa.Column("text", sa.Text(), nullable=True),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("price", sa.String(length=50), nullable=True),
        sa.Column("price_numeric", sa.Float(), nullable=True),
        sa.Column("store", sa.String(length=100), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("links", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("has_photo", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("photo_file_id", sa.Text(), nullable=True),
        sa.Column("photo_url", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("telegram_message_id"),
    )
    op.create_index(
        "idx_telegram_messages_created_at", "telegram_messages", ["created_at"]
    )
    op.create_index("idx_telegram_messages_date", "telegram_messages", ["date"])
    op.create_index(
        "idx_telegram_messages_store_category",
        "telegram_messages",
        ["store", "category"],
    )

    # 2. telegram_message_engagement (at most one counters row per message)
    op.create_table(
        "telegram_message_engagement",
        sa.Column("id", sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column("message_id", sa.BigInteger(), nullable=False),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("click_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("save_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("share_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_viewed", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_clicked", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("message_id"),
        sa.ForeignKeyConstraint(
            ["message_id"], ["telegram_messages.id"], ondelete="CASCADE"
        ),
        sa.CheckConstraint(
            "view_count >= 0 AND click_count >= 0 "
            "AND save_count >= 0 AND share_count >= 0",
            name="ck_engagement_counts_non_negative",
        ),
    )

    # 3. telegram_message_tags (tag set per message)
    op.create_table(
        "telegram_message_tags",
        sa.Column("id", sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column("message_id", sa.BigInteger(), nullable=False),
        sa.Column("tag_name", sa.String(length=100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("message_id", "tag_name"),
        sa.ForeignKeyConstraint(
            ["message_id"], ["telegram_messages.id"], ondelete="CASCADE"
        ),
    )
    op.create_index("idx_message_tags_name", "telegram_message_tags", ["tag_name"])

    # 4. telegram_health_checks (monitor snapshots)
    op.create_table(
        "telegram_health_checks",
        sa.Column("id", sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column("result", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "notification_sent", sa.Boolean(), nullable=False, server_default="false"
        ),
        sa.Column("notification_time", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_health_checks_created_at", "telegram_health_checks", ["created_at"]
    )

    # 5. telegram_bot_runs (polling batches)
    op.create_table(
        "telegram_bot_runs",
        sa.Column("id", sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column("run_timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("messages_found", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "messages_processed", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("success_rate", sa.Float(), nullable=False, server_default="0"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_bot_runs_timestamp", "telegram_bot_runs", ["run_timestamp"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index("idx_bot_runs_timestamp", table_name="telegram_bot_runs")
    op.drop_table("telegram_bot_runs")
    op.drop_index("idx_health_checks_created_at", table_name="telegram_health_checks")
    op.drop_table("telegram_health_checks")
    op.drop_index("idx_message_tags_name", table_name="telegram_message_tags")
    op.drop_table("telegram_message_tags")
    op.drop_table("telegram_message_engagement")
    op.drop_index(
        "idx_telegram_messages_store_category", table_name="telegram_messages"
    )
    op.drop_index("idx_telegram_messages_date", table_name="telegram_messages")
    op.drop_index("idx_telegram_messages_created_at", table_name="telegram_messages")
    op.drop_table("telegram_messages")
