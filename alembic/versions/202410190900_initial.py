"""initial schema

Revision ID: 202410190900
Revises:
Create Date: 2024-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202410190900"
down_revision = None
branch_labels = None
depends_on = None


TRANSACTION_TYPE = sa.Enum("income", "expense", name="transactiontype")
PAYMENT_METHOD = sa.Enum(
    "cash", "card", "bank_transfer", "other", name="paymentmethod"
)
CURRENCY_CODE = sa.Enum(
    "USD", "EUR", "GBP", "INR", "JPY", "CAD", "AUD", name="currencycode"
)
BUDGET_PERIOD = sa.Enum("monthly", "yearly", name="budgetperiod")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("currency", CURRENCY_CODE, nullable=False),
        sa.Column("preferences", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id")),
        sa.Column("name", sa.String(length=30), nullable=False),
        sa.Column("type", TRANSACTION_TYPE, nullable=False),
        sa.Column("icon", sa.String(length=16), nullable=False),
        sa.Column("color", sa.String(length=7), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id", "type", "name", name="uq_category_user_type_name"
        ),
        sa.CheckConstraint(
            "is_default OR user_id IS NOT NULL", name="ck_category_owner_required"
        ),
    )

    op.create_table(
        "tags",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "name", name="uq_tag_user_name"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", TRANSACTION_TYPE, nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id"),
            nullable=False,
        ),
        sa.Column("description", sa.String(length=200)),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("payment_method", PAYMENT_METHOD, nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
    )
    op.create_index("ix_transactions_user_date", "transactions", ["user_id", "date"])
    op.create_index(
        "ix_transactions_user_type_date", "transactions", ["user_id", "type", "date"]
    )
    op.create_index(
        "ix_transactions_user_category_date",
        "transactions",
        ["user_id", "category_id", "date"],
    )

    op.create_table(
        "transaction_tags",
        sa.Column(
            "transaction_id",
            sa.Integer(),
            sa.ForeignKey("transactions.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "tag_id",
            sa.Integer(),
            sa.ForeignKey("tags.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id"),
            nullable=False,
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("period", BUDGET_PERIOD, nullable=False),
        sa.Column("month", sa.Integer()),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("spent_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "alert_threshold", sa.Integer(), nullable=False, server_default="80"
        ),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_budget_amount_positive"),
        sa.CheckConstraint("spent_cents >= 0", name="ck_budget_spent_positive"),
        sa.CheckConstraint(
            "alert_threshold BETWEEN 0 AND 100", name="ck_budget_alert_threshold"
        ),
        sa.CheckConstraint(
            "month IS NULL OR month BETWEEN 1 AND 12", name="ck_budget_month_range"
        ),
        sa.CheckConstraint("year BETWEEN 2000 AND 2100", name="ck_budget_year_range"),
    )
    op.create_index(
        "ix_budget_user_year_month", "budgets", ["user_id", "year", "month"]
    )
    op.create_index(
        "uq_budget_scope",
        "budgets",
        [
            "user_id",
            "category_id",
            "period",
            sa.text("coalesce(month, 0)"),
            "year",
        ],
        unique=True,
    )


def downgrade():
    op.drop_index("uq_budget_scope", table_name="budgets")
    op.drop_index("ix_budget_user_year_month", table_name="budgets")
    op.drop_table("budgets")
    op.drop_table("transaction_tags")
    op.drop_index("ix_transactions_user_category_date", table_name="transactions")
    op.drop_index("ix_transactions_user_type_date", table_name="transactions")
    op.drop_index("ix_transactions_user_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("tags")
    op.drop_table("categories")
    op.drop_table("users")
    for enum in (BUDGET_PERIOD, PAYMENT_METHOD, CURRENCY_CODE, TRANSACTION_TYPE):
        enum.drop(op.get_bind(), checkfirst=True)
