"""Create subscription, usage and webhook bookkeeping tables.

Revision ID: a7c1e2d3f4b5
Revises:
Create Date: 2026-09-28 10:00:00.000000

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision = "a7c1e2d3f4b5"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create user_subscription, usage_event, processed_webhook_event and team_seat."""
    op.create_table(
        "user_subscription",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("stripe_customer_id", sa.String(255), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(255), nullable=True),
        sa.Column("plan_id", sa.String(50), nullable=False, server_default="free"),
        sa.Column("status", sa.String(50), nullable=False, server_default="none"),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_event_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("modified_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_user_subscription"),
        sa.UniqueConstraint("user_id", name="uq_user_subscription_user_id"),
        sa.UniqueConstraint("stripe_customer_id", name="uq_user_subscription_stripe_customer_id"),
        sa.UniqueConstraint(
            "stripe_subscription_id", name="uq_user_subscription_stripe_subscription_id"
        ),
    )
    op.create_index("idx_user_subscription_status", "user_subscription", ["status"])

    op.create_table(
        "usage_event",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("feature_type", sa.String(50), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("external_usage_record_id", sa.String(255), nullable=True),
        sa.Column("reported_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_usage_event"),
        sa.CheckConstraint("quantity > 0", name="ck_usage_event_positive_quantity"),
    )
    # Period summaries: SUM(quantity) per feature since the period start
    op.create_index(
        "idx_usage_event_user_feature_created",
        "usage_event",
        ["user_id", "feature_type", "created_at"],
    )
    # Reconciler scan over the unreported tail only
    op.create_index(
        "idx_usage_event_unreported",
        "usage_event",
        ["created_at"],
        postgresql_where=sa.text("external_usage_record_id IS NULL"),
    )

    op.create_table(
        "processed_webhook_event",
        sa.Column("event_id", sa.String(255), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("event_id", name="pk_processed_webhook_event"),
    )

    op.create_table(
        "team_seat",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("member_email", sa.String(320), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_team_seat"),
        sa.UniqueConstraint("owner_user_id", "member_email", name="uq_team_seat_owner_member"),
    )
    op.create_index("ix_team_seat_owner_user_id", "team_seat", ["owner_user_id"])


def downgrade():
    """Drop the billing tables."""
    op.drop_index("ix_team_seat_owner_user_id", table_name="team_seat")
    op.drop_table("team_seat")
    op.drop_table("processed_webhook_event")
    op.drop_index("idx_usage_event_unreported", table_name="usage_event")
    op.drop_index("idx_usage_event_user_feature_created", table_name="usage_event")
    op.drop_table("usage_event")
    op.drop_index("idx_user_subscription_status", table_name="user_subscription")
    op.drop_table("user_subscription")
