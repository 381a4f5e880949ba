"""initial schema

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None

EXPENSE_CATEGORIES = (
    "food",
    "transport",
    "shopping",
    "entertainment",
    "healthcare",
    "utilities",
    "education",
    "travel",
    "fitness",
    "groceries",
    "dining",
    "fuel",
    "insurance",
    "investment",
    "charity",
    "personal_care",
    "home",
    "electronics",
    "clothing",
    "books",
    "subscriptions",
    "gifts",
    "taxi",
    "other",
)
CURRENCIES = ("INR", "USD", "EUR", "GBP", "JPY", "AUD", "CAD")
GOAL_TYPES = (
    "savings",
    "expense_reduction",
    "debt_payoff",
    "investment",
    "emergency_fund",
    "vacation",
    "purchase",
    "other",
)


def _currency():
    return sa.Column(
        "currency",
        sa.Enum(*CURRENCIES, name="currencycode"),
        nullable=False,
        server_default="INR",
    )


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("subject", sa.String(length=128), nullable=False, unique=True),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("email", sa.String(length=100), nullable=False, unique=True),
        _currency(),
        sa.Column(
            "timezone",
            sa.String(length=50),
            nullable=False,
            server_default="Asia/Kolkata",
        ),
        sa.Column(
            "monthly_income",
            sa.Numeric(15, 2),
            nullable=False,
            server_default="0",
        ),
        sa.Column("preferences", sa.JSON(), nullable=False),
        sa.Column("integrations", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_active", sa.DateTime()),
        *_timestamps(),
    )

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "category",
            sa.Enum(*EXPENSE_CATEGORIES, "total", name="budgetcategory"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("spent", sa.Numeric(15, 2), nullable=False, server_default="0"),
        _currency(),
        sa.Column("period", sa.JSON(), nullable=False),
        sa.Column("alert_thresholds", sa.JSON(), nullable=False),
        sa.Column("emotional_controls", sa.JSON(), nullable=False),
        sa.Column("rules", sa.JSON(), nullable=False),
        sa.Column("ai_optimization", sa.JSON(), nullable=False),
        sa.Column("performance", sa.JSON(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("notes", sa.String(length=500)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "is_archived", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("last_reset_at", sa.DateTime()),
        sa.Column("next_reset_at", sa.DateTime()),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="ck_budget_amount_non_negative"),
        sa.CheckConstraint("spent >= 0", name="ck_budget_spent_non_negative"),
    )
    op.create_index(
        "ix_budgets_user_active", "budgets", ["user_id", "is_active", "is_archived"]
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        _currency(),
        sa.Column("description", sa.String(length=500), nullable=False),
        sa.Column(
            "category",
            sa.Enum(*EXPENSE_CATEGORIES, name="expensecategory"),
            nullable=False,
        ),
        sa.Column("subcategory", sa.String(length=100)),
        sa.Column("vendor", sa.JSON(), nullable=False),
        sa.Column("payment_method", sa.JSON(), nullable=False),
        sa.Column("transaction_id", sa.String(length=100), unique=True),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("notes", sa.String(length=1000)),
        sa.Column(
            "is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("recurring_details", sa.JSON(), nullable=False),
        sa.Column("split_details", sa.JSON(), nullable=False),
        sa.Column("source", sa.JSON(), nullable=False),
        sa.Column("mood", sa.JSON(), nullable=False),
        sa.Column("emotional_context", sa.JSON(), nullable=False),
        sa.Column("ai_analysis", sa.JSON(), nullable=False),
        sa.Column("receipts", sa.JSON(), nullable=False),
        sa.Column("location", sa.JSON(), nullable=False),
        sa.Column("budget_id", sa.Integer(), sa.ForeignKey("budgets.id")),
        sa.Column(
            "is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("deleted_at", sa.DateTime()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_expense_amount_positive"),
    )
    op.create_index("ix_expenses_user_date", "expenses", ["user_id", "date"])
    op.create_index(
        "ix_expenses_user_category_date", "expenses", ["user_id", "category", "date"]
    )

    op.create_table(
        "goals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=500)),
        sa.Column("type", sa.Enum(*GOAL_TYPES, name="goaltype"), nullable=False),
        sa.Column("target_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column(
            "current_amount", sa.Numeric(15, 2), nullable=False, server_default="0"
        ),
        _currency(),
        sa.Column("timeline", sa.JSON(), nullable=False),
        sa.Column(
            "priority",
            sa.Enum("low", "medium", "high", "critical", name="goalpriority"),
            nullable=False,
            server_default="medium",
        ),
        sa.Column("category", sa.Enum(*EXPENSE_CATEGORIES, name="expensecategory")),
        sa.Column("recurring_contribution", sa.JSON(), nullable=False),
        sa.Column("milestones", sa.JSON(), nullable=False),
        sa.Column("strategies", sa.JSON(), nullable=False),
        sa.Column("tracking", sa.JSON(), nullable=False),
        sa.Column("ai_optimization", sa.JSON(), nullable=False),
        sa.Column("notifications", sa.JSON(), nullable=False),
        sa.Column("sharing", sa.JSON(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "active", "paused", "completed", "cancelled", "overdue",
                name="goalstatus",
            ),
            nullable=False,
            server_default="active",
        ),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("notes", sa.String(length=1000)),
        sa.Column("attachments", sa.JSON(), nullable=False),
        sa.Column(
            "is_archived", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        *_timestamps(),
        sa.CheckConstraint("target_amount >= 0", name="ck_goal_target_non_negative"),
        sa.CheckConstraint(
            "current_amount >= 0", name="ck_goal_current_non_negative"
        ),
    )
    op.create_index("ix_goals_user_status", "goals", ["user_id", "status"])
    op.create_index("ix_goals_user_priority", "goals", ["user_id", "priority"])


def downgrade():
    op.drop_index("ix_goals_user_priority", table_name="goals")
    op.drop_index("ix_goals_user_status", table_name="goals")
    op.drop_table("goals")
    op.drop_index("ix_expenses_user_category_date", table_name="expenses")
    op.drop_index("ix_expenses_user_date", table_name="expenses")
    op.drop_table("expenses")
    op.drop_index("ix_budgets_user_active", table_name="budgets")
    op.drop_table("budgets")
    op.drop_table("users")
