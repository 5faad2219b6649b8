"""contest core

Revision ID: 0001_contest_core
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_contest_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "contest_participants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("username", sa.String(length=64), nullable=True),
        sa.Column("first_name", sa.String(length=255), nullable=False),
        sa.Column("last_name", sa.String(length=255), nullable=True),
        sa.Column("points", sa.Integer(), server_default="0", nullable=False),
        sa.Column("tiktok_task_completed", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("tiktok_links", sa.JSON(), nullable=False),
        sa.Column("referral_code", sa.String(length=32), nullable=False),
        sa.Column("referred_by", sa.BigInteger(), nullable=True),
        sa.Column("referral_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("first_referral_point_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", "chat_id", name="uq_contest_participants_user_chat"),
    )
    op.create_index("ix_contest_participants_user_id", "contest_participants", ["user_id"])
    op.create_index("ix_contest_participants_chat_id", "contest_participants", ["chat_id"])
    op.create_index("ix_contest_participants_referral_code", "contest_participants", ["referral_code"], unique=True)
    op.create_index("ix_contest_participants_referred_by", "contest_participants", ["referred_by"])

    op.create_table(
        "contest_referrals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("referrer_id", sa.BigInteger(), nullable=False),
        sa.Column("referred_user_id", sa.BigInteger(), nullable=False),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(length=16), server_default="ACTIVE", nullable=False),
        sa.Column("points_awarded", sa.Integer(), server_default="2", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("left_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_contest_referrals_referrer_id", "contest_referrals", ["referrer_id"])
    op.create_index("ix_contest_referrals_referred_user_id", "contest_referrals", ["referred_user_id"])
    op.create_index("ix_contest_referrals_chat_id", "contest_referrals", ["chat_id"])

    op.create_table(
        "app_settings",
        sa.Column("key", sa.String(length=128), primary_key=True),
        sa.Column("int_value", sa.Integer(), nullable=True),
        sa.Column("str_value", sa.String(length=512), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("app_settings")
    op.drop_index("ix_contest_referrals_chat_id", table_name="contest_referrals")
    op.drop_index("ix_contest_referrals_referred_user_id", table_name="contest_referrals")
    op.drop_index("ix_contest_referrals_referrer_id", table_name="contest_referrals")
    op.drop_table("contest_referrals")
    op.drop_index("ix_contest_participants_referred_by", table_name="contest_participants")
    op.drop_index("ix_contest_participants_referral_code", table_name="contest_participants")
    op.drop_index("ix_contest_participants_chat_id", table_name="contest_participants")
    op.drop_index("ix_contest_participants_user_id", table_name="contest_participants")
    op.drop_table("contest_participants")
