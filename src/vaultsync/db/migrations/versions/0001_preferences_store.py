"""Preferences store: devices, user_preferences, active_sessions

Revision ID: 0001_preferences_store
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_preferences_store'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "devices",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("fingerprint", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "user_preferences",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "device_id",
            sa.Integer(),
            sa.ForeignKey("devices.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("default_duration_minutes", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("privacy_mode", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("panic_url", sa.String(2048), nullable=False, server_default="https://google.com"),
        sa.Column("panic_shortcut", sa.String(64), nullable=False, server_default="Escape"),
        sa.Column("theme_config", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("date_time_format", sa.String(64), nullable=False, server_default="yyyy-MM-dd HH:mm"),
        sa.Column("compact_mode", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sidebar_open", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("confirm_delete", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("confirm_extend", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("auto_refresh_interval", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cache_ttl_minutes", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("auto_privacy_delay_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("api_url", sa.String(2048), nullable=True),
        sa.Column("api_token", sa.String(512), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "active_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "device_id",
            sa.Integer(),
            sa.ForeignKey("devices.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("item_id", sa.String(255), nullable=False),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("device_id", "item_id", name="uq_active_sessions_device_item"),
    )
    op.create_index(
        "ix_active_sessions_item_last_active",
        "active_sessions",
        ["item_id", "last_active_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_active_sessions_item_last_active", table_name="active_sessions")
    op.drop_table("active_sessions")
    op.drop_table("user_preferences")
    op.drop_table("devices")
