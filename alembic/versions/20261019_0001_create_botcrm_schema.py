"""create bot users, content, coupon and dispatch queue tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "bot_users",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("chat_id", sa.String(length=64), nullable=False),
        sa.Column("user_name", sa.String(length=100), nullable=True),
        sa.Column("first_name", sa.String(length=100), nullable=True),
        sa.Column("last_name", sa.String(length=100), nullable=True),
        sa.Column("is_blocked", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("attention_needed", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_bot_users_chat_id"), "bot_users", ["chat_id"], unique=True)
    op.create_index("ix_bot_users_attention_updated_at", "bot_users", ["attention_needed", "updated_at"], unique=False)
    op.create_index("ix_bot_users_blocked_attention", "bot_users", ["is_blocked", "attention_needed"], unique=False)

    op.create_table(
        "posts",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("image", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "sales_rules",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image", sa.String(length=255), nullable=True),
        sa.Column("max_uses", sa.Integer(), server_default="1", nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "user_sales_rules",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("sales_rule_id", sa.String(length=36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["bot_users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sales_rule_id"], ["sales_rules.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "sales_rule_id", name="uq_user_sales_rules_user_rule"),
    )
    op.create_index(op.f("ix_user_sales_rules_user_id"), "user_sales_rules", ["user_id"], unique=False)
    op.create_index(op.f("ix_user_sales_rules_sales_rule_id"), "user_sales_rules", ["sales_rule_id"], unique=False)

    op.create_table(
        "coupon_codes",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("code", sa.String(length=20), nullable=False),
        sa.Column("chat_id", sa.String(length=64), nullable=False),
        sa.Column("sales_rule_id", sa.String(length=36), nullable=False),
        sa.Column("max_uses", sa.Integer(), server_default="1", nullable=False),
        sa.Column("uses_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_sent", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("uses_count >= 0", name="ck_coupon_codes_uses_non_negative"),
        sa.CheckConstraint("uses_count <= max_uses", name="ck_coupon_codes_uses_within_cap"),
        sa.ForeignKeyConstraint(["sales_rule_id"], ["sales_rules.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_coupon_codes_code"), "coupon_codes", ["code"], unique=True)
    op.create_index(op.f("ix_coupon_codes_chat_id"), "coupon_codes", ["chat_id"], unique=False)
    op.create_index(op.f("ix_coupon_codes_sales_rule_id"), "coupon_codes", ["sales_rule_id"], unique=False)
    op.create_index(
        "ix_coupon_codes_sales_rule_created_at",
        "coupon_codes",
        ["sales_rule_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "post_queue_items",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("post_id", sa.String(length=36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["bot_users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "post_id", name="uq_post_queue_items_user_post"),
    )
    op.create_index(op.f("ix_post_queue_items_user_id"), "post_queue_items", ["user_id"], unique=False)
    op.create_index(op.f("ix_post_queue_items_post_id"), "post_queue_items", ["post_id"], unique=False)
    op.create_index("ix_post_queue_items_created_at", "post_queue_items", ["created_at"], unique=False)

    op.create_table(
        "sales_rule_queue_items",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("sales_rule_id", sa.String(length=36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["bot_users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "sales_rule_id", name="uq_sales_rule_queue_items_user_rule"),
    )
    op.create_index(op.f("ix_sales_rule_queue_items_user_id"), "sales_rule_queue_items", ["user_id"], unique=False)
    op.create_index(
        op.f("ix_sales_rule_queue_items_sales_rule_id"),
        "sales_rule_queue_items",
        ["sales_rule_id"],
        unique=False,
    )
    op.create_index("ix_sales_rule_queue_items_created_at", "sales_rule_queue_items", ["created_at"], unique=False)

    op.create_table(
        "configurations",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("path", sa.String(length=120), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_configurations_path"), "configurations", ["path"], unique=True)


def downgrade() -> None:
    op.drop_index(op.f("ix_configurations_path"), table_name="configurations")
    op.drop_table("configurations")

    op.drop_index("ix_sales_rule_queue_items_created_at", table_name="sales_rule_queue_items")
    op.drop_index(op.f("ix_sales_rule_queue_items_sales_rule_id"), table_name="sales_rule_queue_items")
    op.drop_index(op.f("ix_sales_rule_queue_items_user_id"), table_name="sales_rule_queue_items")
    op.drop_table("sales_rule_queue_items")

    op.drop_index("ix_post_queue_items_created_at", table_name="post_queue_items")
    op.drop_index(op.f("ix_post_queue_items_post_id"), table_name="post_queue_items")
    op.drop_index(op.f("ix_post_queue_items_user_id"), table_name="post_queue_items")
    op.drop_table("post_queue_items")

    op.drop_index("ix_coupon_codes_sales_rule_created_at", table_name="coupon_codes")
    op.drop_index(op.f("ix_coupon_codes_sales_rule_id"), table_name="coupon_codes")
    op.drop_index(op.f("ix_coupon_codes_chat_id"), table_name="coupon_codes")
    op.drop_index(op.f("ix_coupon_codes_code"), table_name="coupon_codes")
    op.drop_table("coupon_codes")

    op.drop_index(op.f("ix_user_sales_rules_sales_rule_id"), table_name="user_sales_rules")
    op.drop_index(op.f("ix_user_sales_rules_user_id"), table_name="user_sales_rules")
    op.drop_table("user_sales_rules")

    op.drop_table("sales_rules")
    op.drop_table("posts")

    op.drop_index("ix_bot_users_blocked_attention", table_name="bot_users")
    op.drop_index("ix_bot_users_attention_updated_at", table_name="bot_users")
    op.drop_index(op.f("ix_bot_users_chat_id"), table_name="bot_users")
    op.drop_table("bot_users")
