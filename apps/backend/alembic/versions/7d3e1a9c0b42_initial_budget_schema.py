"""initial budget schema

Revision ID: 7d3e1a9c0b42
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "7d3e1a9c0b42"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


TXN_TYPE = sa.Enum("income", "expense", name="txn_type")
TXN_RECURRENCE = sa.Enum("none", "weekly", "monthly", "yearly", name="txn_recurrence")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "statenamespace",
        sa.Column("name", sa.String(length=64), primary_key=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("goal_target_income", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("goal_savings_rate", sa.Integer(), nullable=False, server_default="20"),
        *_timestamps(),
        sa.CheckConstraint("goal_savings_rate BETWEEN 0 AND 100", name="ck_goal_rate_range"),
    )
    op.create_table(
        "category",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("namespace", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=30), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["namespace"], ["statenamespace.name"], ondelete="CASCADE"),
        sa.UniqueConstraint("namespace", "name", name="uq_category_name"),
    )
    op.create_table(
        "transaction",
        sa.Column("namespace", sa.String(length=64), primary_key=True),
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("occurred_on", sa.Date(), nullable=False),
        sa.Column("type", TXN_TYPE, nullable=False),
        sa.Column("category", sa.String(length=30), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("note", sa.Text(), nullable=False),
        sa.Column("recurring", TXN_RECURRENCE, nullable=False),
        sa.Column("next_occurrence", sa.Date(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["namespace"], ["statenamespace.name"], ondelete="CASCADE"),
        sa.CheckConstraint("amount > 0", name="ck_txn_amount_positive"),
    )
    op.create_index("ix_txn_namespace_date", "transaction", ["namespace", "occurred_on"], unique=False)
    op.create_index("ix_txn_namespace_category", "transaction", ["namespace", "category"], unique=False)
    op.create_table(
        "budget",
        sa.Column("namespace", sa.String(length=64), primary_key=True),
        sa.Column("category", sa.String(length=30), primary_key=True),
        sa.Column("limit_amount", sa.Integer(), nullable=False),
        sa.Column("manual_spent", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["namespace"], ["statenamespace.name"], ondelete="CASCADE"),
        sa.CheckConstraint("limit_amount >= 0", name="ck_budget_limit"),
        sa.CheckConstraint("manual_spent IS NULL OR manual_spent >= 0", name="ck_budget_manual_spent"),
    )
    op.create_table(
        "setting",
        sa.Column("namespace", sa.String(length=64), primary_key=True),
        sa.Column("key", sa.String(length=100), primary_key=True),
        sa.Column("value", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["namespace"], ["statenamespace.name"], ondelete="CASCADE"),
    )


def downgrade() -> None:
    op.drop_table("setting")
    op.drop_table("budget")
    op.drop_index("ix_txn_namespace_category", table_name="transaction")
    op.drop_index("ix_txn_namespace_date", table_name="transaction")
    op.drop_table("transaction")
    op.drop_table("category")
    op.drop_table("statenamespace")
    TXN_RECURRENCE.drop(op.get_bind(), checkfirst=True)
    TXN_TYPE.drop(op.get_bind(), checkfirst=True)
