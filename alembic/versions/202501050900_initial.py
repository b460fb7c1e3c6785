"""initial schema

Revision ID: 202501050900
Revises:
Create Date: 2025-01-05 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202501050900"
down_revision = None
branch_labels = None
depends_on = None

TRANSACTION_TYPE = sa.Enum(
    "income", "expense", name="transactiontype", native_enum=False
)
EXPENSE_STATUS = sa.Enum(
    "cleared", "pending", "reconciled", name="expensestatus", native_enum=False
)


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("type", TRANSACTION_TYPE, nullable=False),
        sa.Column("color", sa.String(length=50)),
        sa.Column("icon", sa.String(length=50)),
        sa.Column("description", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("type", TRANSACTION_TYPE, nullable=False),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False
        ),
        sa.Column("notes", sa.Text()),
        sa.Column(
            "status",
            EXPENSE_STATUS,
            nullable=False,
            server_default="cleared",
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount_cents >= 0", name="ck_expense_amount_positive"),
    )
    op.create_index("ix_expenses_user_id", "expenses", ["user_id"])
    op.create_index("ix_expenses_date", "expenses", ["date"])
    op.create_index("ix_expenses_category_id", "expenses", ["category_id"])


def downgrade():
    op.drop_index("ix_expenses_category_id", table_name="expenses")
    op.drop_index("ix_expenses_date", table_name="expenses")
    op.drop_index("ix_expenses_user_id", table_name="expenses")
    op.drop_table("expenses")
    op.drop_table("categories")
