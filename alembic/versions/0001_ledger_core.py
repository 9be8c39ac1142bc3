"""ledger core: users, login tokens, reminders, expenses, ideas
Revision ID: 0001_ledger_core
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_ledger_core"
down_revision = None
branch_labels = None
depends_on = None


def _base_columns():
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    op.create_table(
        "users",
        *_base_columns(),
        sa.Column("phone_number", sa.String(length=20), nullable=False, unique=True),
        sa.Column("name", sa.String(length=200), nullable=True),
        sa.Column("onboarded", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("timezone", sa.String(length=64), nullable=False, server_default="Asia/Kolkata"),
    )
    op.create_index("ix_users_phone_number", "users", ["phone_number"], unique=True)
    op.create_index("ix_users_created_at", "users", ["created_at"])

    op.create_table(
        "login_tokens",
        *_base_columns(),
        sa.Column("phone_number", sa.String(length=20), nullable=False),
        sa.Column("code_hash", sa.String(length=64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_login_tokens_phone_number", "login_tokens", ["phone_number"])
    op.create_index("ix_login_tokens_code_hash", "login_tokens", ["code_hash"])
    op.create_index("ix_login_tokens_expires_at", "login_tokens", ["expires_at"])
    op.create_index("ix_login_tokens_created_at", "login_tokens", ["created_at"])

    op.create_table(
        "reminders",
        *_base_columns(),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("remind_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_reminders_user_id", "reminders", ["user_id"])
    op.create_index("ix_reminders_created_at", "reminders", ["created_at"])
    op.create_index("ix_reminders_due", "reminders", ["sent_at", "cancelled_at", "remind_at"])

    op.create_table(
        "expenses",
        *_base_columns(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="INR"),
        sa.Column("category", sa.String(length=50), nullable=False, server_default="OTHER"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_reimbursement", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("expense_datetime", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_expenses_user_id", "expenses", ["user_id"])
    op.create_index("ix_expenses_category", "expenses", ["category"])
    op.create_index("ix_expenses_created_at", "expenses", ["created_at"])
    op.create_index("ix_expenses_expense_datetime", "expenses", ["expense_datetime"])

    op.create_table(
        "idea_items",
        *_base_columns(),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("source_url", sa.String(length=2048), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
    )
    op.create_index("ix_idea_items_user_id", "idea_items", ["user_id"])
    op.create_index("ix_idea_items_created_at", "idea_items", ["created_at"])


def downgrade():
    op.drop_table("idea_items")
    op.drop_table("expenses")
    op.drop_table("reminders")
    op.drop_table("login_tokens")
    op.drop_table("users")
