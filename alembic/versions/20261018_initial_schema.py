"""Short links, clicks, impressions, conversion goals and conversions.

Revision ID: 5c1e7a90b2d4
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

revision = "5c1e7a90b2d4"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "short_links",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("short_code", sa.String(64), nullable=False),
        sa.Column("original_url", sa.Text, nullable=False),
        sa.Column("title", sa.String(500), nullable=True),
        sa.Column("user_id", sa.Integer, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("redirect_type", sa.String(3), nullable=False, server_default="302"),
        sa.Column("has_password", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_short_links_short_code", "short_links", ["short_code"], unique=True)
    op.create_index("ix_short_links_user_id", "short_links", ["user_id"])

    op.create_table(
        "clicks",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("url_id", sa.Integer, sa.ForeignKey("short_links.id", ondelete="CASCADE"), nullable=False),
        sa.Column("clicked_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("referrer", sa.String(1000), nullable=True),
        sa.Column("country", sa.String(2), nullable=True),
        sa.Column("device_type", sa.String(20), nullable=False, server_default="unknown"),
        sa.Column("browser", sa.String(50), nullable=False, server_default="unknown"),
    )
    op.create_index("ix_clicks_url_clicked", "clicks", ["url_id", "clicked_at"])

    op.create_table(
        "impressions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("url_id", sa.Integer, sa.ForeignKey("short_links.id", ondelete="CASCADE"), nullable=False),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("referrer", sa.String(1000), nullable=True),
        sa.Column("source", sa.String(255), nullable=True),
        sa.Column("is_unique", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_impressions_dedup", "impressions", ["url_id", "ip_address", "timestamp"])

    op.create_table(
        "conversion_goals",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("url_id", sa.Integer, sa.ForeignKey("short_links.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_conversion_goals_url_id", "conversion_goals", ["url_id"])

    op.create_table(
        "conversions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("click_id", sa.Integer, sa.ForeignKey("clicks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("url_id", sa.Integer, sa.ForeignKey("short_links.id", ondelete="CASCADE"), nullable=False),
        sa.Column("goal_id", sa.Integer, sa.ForeignKey("conversion_goals.id", ondelete="SET NULL"), nullable=True),
        sa.Column("tracking_id", sa.String(64), nullable=False),
        sa.Column("conversion_value", sa.Float, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_conversions_click_id", "conversions", ["click_id"])
    op.create_index("ix_conversions_tracking_id", "conversions", ["tracking_id"])
    op.create_index("ix_conversions_url_created", "conversions", ["url_id", "created_at"])


def downgrade() -> None:
    op.drop_table("conversions")
    op.drop_table("conversion_goals")
    op.drop_table("impressions")
    op.drop_table("clicks")
    op.drop_table("short_links")
