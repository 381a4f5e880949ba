from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base, JSONDocument
from documents import (
    AIAnalysis,
    AlertThresholds,
    BudgetAIOptimization,
    BudgetCategory,
    BudgetPerformance,
    BudgetPeriod,
    BudgetRules,
    BudgetStatus,
    ContributionSource,
    CurrencyCode,
    EmotionalContext,
    EmotionalControls,
    ExpenseCategory,
    ExpenseSource,
    GoalAIOptimization,
    GoalNotifications,
    GoalPriority,
    GoalStatus,
    GoalTracking,
    GoalType,
    Integrations,
    Location,
    Milestone,
    Mood,
    PaymentMethod,
    PeriodKind,
    Preferences,
    RecurringContribution,
    RecurringDetails,
    Sharing,
    SplitDetails,
    Strategies,
    Timeline,
    Vendor,
)
from periods import ceil_days, local_now, round_half_up

__all__ = [
    "BudgetCategory",
    "BudgetStatus",
    "ContributionSource",
    "CurrencyCode",
    "ExpenseCategory",
    "GoalPriority",
    "GoalStatus",
    "GoalType",
    "PeriodKind",
    "User",
    "Budget",
    "Expense",
    "Goal",
]

CURRENCY_CODE_ENUM = SAEnum(
    CurrencyCode,
    name="currencycode",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)

Money = Numeric(15, 2, asdecimal=False)


def _with_defaults(
    kwargs: dict[str, Any], defaults: dict[str, Callable[[], Any]]
) -> dict[str, Any]:
    for key, factory in defaults.items():
        if kwargs.get(key) is None:
            kwargs[key] = factory()
    return kwargs


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    subject: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    currency: Mapped[CurrencyCode] = mapped_column(
        CURRENCY_CODE_ENUM, nullable=False, default=CurrencyCode.inr
    )
    timezone: Mapped[str] = mapped_column(
        String(50), nullable=False, default="Asia/Kolkata"
    )
    monthly_income: Mapped[float] = mapped_column(Money, nullable=False, default=0)
    preferences: Mapped[Preferences] = mapped_column(
        JSONDocument(Preferences), nullable=False
    )
    integrations: Mapped[Integrations] = mapped_column(
        JSONDocument(Integrations), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_active: Mapped[Optional[datetime]] = mapped_column(DateTime)

    budgets: Mapped[list["Budget"]] = relationship("Budget", back_populates="user")
    expenses: Mapped[list["Expense"]] = relationship("Expense", back_populates="user")
    goals: Mapped[list["Goal"]] = relationship("Goal", back_populates="user")

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(
            **_with_defaults(
                kwargs,
                {
                    "preferences": Preferences,
                    "integrations": Integrations,
                    "is_active": lambda: True,
                },
            )
        )


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[BudgetCategory] = mapped_column(
        SAEnum(BudgetCategory), nullable=False
    )
    amount: Mapped[float] = mapped_column(Money, nullable=False)
    spent: Mapped[float] = mapped_column(Money, nullable=False, default=0)
    currency: Mapped[CurrencyCode] = mapped_column(
        CURRENCY_CODE_ENUM, nullable=False, default=CurrencyCode.inr
    )
    period: Mapped[BudgetPeriod] = mapped_column(
        JSONDocument(BudgetPeriod), nullable=False
    )
    alert_thresholds: Mapped[AlertThresholds] = mapped_column(
        JSONDocument(AlertThresholds), nullable=False
    )
    emotional_controls: Mapped[EmotionalControls] = mapped_column(
        JSONDocument(EmotionalControls), nullable=False
    )
    rules: Mapped[BudgetRules] = mapped_column(
        JSONDocument(BudgetRules), nullable=False
    )
    ai_optimization: Mapped[BudgetAIOptimization] = mapped_column(
        JSONDocument(BudgetAIOptimization), nullable=False
    )
    performance: Mapped[BudgetPerformance] = mapped_column(
        JSONDocument(BudgetPerformance), nullable=False
    )
    tags: Mapped[list[str]] = mapped_column(JSONDocument(list[str]), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(500))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_reset_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    next_reset_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    user: Mapped["User"] = relationship("User", back_populates="budgets")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_budget_amount_non_negative"),
        CheckConstraint("spent >= 0", name="ck_budget_spent_non_negative"),
        Index("ix_budgets_user_active", "user_id", "is_active", "is_archived"),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(
            **_with_defaults(
                kwargs,
                {
                    "spent": lambda: 0.0,
                    "currency": lambda: CurrencyCode.inr,
                    "period": BudgetPeriod,
                    "alert_thresholds": AlertThresholds,
                    "emotional_controls": EmotionalControls,
                    "rules": BudgetRules,
                    "ai_optimization": BudgetAIOptimization,
                    "performance": BudgetPerformance,
                    "tags": list,
                    "is_active": lambda: True,
                    "is_archived": lambda: False,
                },
            )
        )

    @property
    def remaining(self) -> float:
        return max(0.0, float(self.amount) - float(self.spent))

    @property
    def spent_percentage(self) -> int:
        if self.amount <= 0:
            return 0
        return round_half_up(float(self.spent) / float(self.amount) * 100)

    @property
    def status(self) -> BudgetStatus:
        percentage = self.spent_percentage
        critical = self.alert_thresholds.critical.percentage
        warning = self.alert_thresholds.warning.percentage
        if percentage >= 100:
            return BudgetStatus.exceeded
        if critical is not None and percentage >= critical:
            return BudgetStatus.critical
        if warning is not None and percentage >= warning:
            return BudgetStatus.warning
        return BudgetStatus.healthy

    def days_remaining(self, now: Optional[datetime] = None) -> Optional[int]:
        if self.period.end is None:
            return None
        return ceil_days(self.period.end - (now or local_now()))

    def projected_spend(self, now: Optional[datetime] = None) -> int:
        if self.period.start is None or self.period.end is None:
            return 0
        now = now or local_now()
        total_days = ceil_days(self.period.end - self.period.start)
        elapsed_days = ceil_days(now - self.period.start)
        if elapsed_days <= 0 or self.spent <= 0:
            return 0
        return round_half_up(float(self.spent) / elapsed_days * total_days)

    def adherence_score(self) -> float:
        if float(self.amount) == 0:
            return 100
        spent_pct = float(self.spent) / float(self.amount) * 100
        if spent_pct <= 80:
            return 100
        if spent_pct <= 100:
            return max(0, 100 - (spent_pct - 80) * 2)
        return max(0, 60 - (spent_pct - 100))


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    amount: Mapped[float] = mapped_column(Money, nullable=False)
    currency: Mapped[CurrencyCode] = mapped_column(
        CURRENCY_CODE_ENUM, nullable=False, default=CurrencyCode.inr
    )
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    category: Mapped[ExpenseCategory] = mapped_column(
        SAEnum(ExpenseCategory), nullable=False
    )
    subcategory: Mapped[Optional[str]] = mapped_column(String(100))
    vendor: Mapped[Vendor] = mapped_column(JSONDocument(Vendor), nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        JSONDocument(PaymentMethod), nullable=False
    )
    transaction_id: Mapped[Optional[str]] = mapped_column(String(100), unique=True)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    tags: Mapped[list[str]] = mapped_column(JSONDocument(list[str]), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(1000))
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurring_details: Mapped[RecurringDetails] = mapped_column(
        JSONDocument(RecurringDetails), nullable=False
    )
    split_details: Mapped[SplitDetails] = mapped_column(
        JSONDocument(SplitDetails), nullable=False
    )
    source: Mapped[ExpenseSource] = mapped_column(
        JSONDocument(ExpenseSource), nullable=False
    )
    mood: Mapped[Mood] = mapped_column(JSONDocument(Mood), nullable=False)
    emotional_context: Mapped[EmotionalContext] = mapped_column(
        JSONDocument(EmotionalContext), nullable=False
    )
    ai_analysis: Mapped[AIAnalysis] = mapped_column(
        JSONDocument(AIAnalysis), nullable=False
    )
    receipts: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONDocument(list[dict[str, Any]]), nullable=False
    )
    location: Mapped[Location] = mapped_column(JSONDocument(Location), nullable=False)
    budget_id: Mapped[Optional[int]] = mapped_column(ForeignKey("budgets.id"))
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="expenses")
    budget: Mapped[Optional["Budget"]] = relationship("Budget")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expense_amount_positive"),
        Index("ix_expenses_user_date", "user_id", "date"),
        Index("ix_expenses_user_category_date", "user_id", "category", "date"),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(
            **_with_defaults(
                kwargs,
                {
                    "currency": lambda: CurrencyCode.inr,
                    "vendor": Vendor,
                    "payment_method": PaymentMethod,
                    "tags": list,
                    "is_recurring": lambda: False,
                    "recurring_details": RecurringDetails,
                    "split_details": SplitDetails,
                    "source": ExpenseSource,
                    "mood": Mood,
                    "emotional_context": EmotionalContext,
                    "ai_analysis": AIAnalysis,
                    "receipts": list,
                    "location": Location,
                    "is_deleted": lambda: False,
                    "version": lambda: 1,
                },
            )
        )


class Goal(Base, TimestampMixin):
    __tablename__ = "goals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500))
    type: Mapped[GoalType] = mapped_column(SAEnum(GoalType), nullable=False)
    target_amount: Mapped[float] = mapped_column(Money, nullable=False)
    current_amount: Mapped[float] = mapped_column(Money, nullable=False, default=0)
    currency: Mapped[CurrencyCode] = mapped_column(
        CURRENCY_CODE_ENUM, nullable=False, default=CurrencyCode.inr
    )
    timeline: Mapped[Timeline] = mapped_column(JSONDocument(Timeline), nullable=False)
    priority: Mapped[GoalPriority] = mapped_column(
        SAEnum(GoalPriority), nullable=False, default=GoalPriority.medium
    )
    category: Mapped[Optional[ExpenseCategory]] = mapped_column(SAEnum(ExpenseCategory))
    recurring_contribution: Mapped[RecurringContribution] = mapped_column(
        JSONDocument(RecurringContribution), nullable=False
    )
    milestones: Mapped[list[Milestone]] = mapped_column(
        JSONDocument(list[Milestone]), nullable=False
    )
    strategies: Mapped[Strategies] = mapped_column(
        JSONDocument(Strategies), nullable=False
    )
    tracking: Mapped[GoalTracking] = mapped_column(
        JSONDocument(GoalTracking), nullable=False
    )
    ai_optimization: Mapped[GoalAIOptimization] = mapped_column(
        JSONDocument(GoalAIOptimization), nullable=False
    )
    notifications: Mapped[GoalNotifications] = mapped_column(
        JSONDocument(GoalNotifications), nullable=False
    )
    sharing: Mapped[Sharing] = mapped_column(JSONDocument(Sharing), nullable=False)
    status: Mapped[GoalStatus] = mapped_column(
        SAEnum(GoalStatus), nullable=False, default=GoalStatus.active
    )
    tags: Mapped[list[str]] = mapped_column(JSONDocument(list[str]), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(1000))
    attachments: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONDocument(list[dict[str, Any]]), nullable=False
    )
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="goals")

    __table_args__ = (
        CheckConstraint("target_amount >= 0", name="ck_goal_target_non_negative"),
        CheckConstraint("current_amount >= 0", name="ck_goal_current_non_negative"),
        Index("ix_goals_user_status", "user_id", "status"),
        Index("ix_goals_user_priority", "user_id", "priority"),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(
            **_with_defaults(
                kwargs,
                {
                    "current_amount": lambda: 0.0,
                    "currency": lambda: CurrencyCode.inr,
                    "priority": lambda: GoalPriority.medium,
                    "recurring_contribution": RecurringContribution,
                    "milestones": list,
                    "strategies": Strategies,
                    "tracking": GoalTracking,
                    "ai_optimization": GoalAIOptimization,
                    "notifications": GoalNotifications,
                    "sharing": Sharing,
                    "status": lambda: GoalStatus.active,
                    "tags": list,
                    "attachments": list,
                    "is_archived": lambda: False,
                },
            )
        )

    @property
    def progress_percentage(self) -> int:
        if float(self.target_amount) == 0:
            return 0
        return min(
            100,
            round_half_up(float(self.current_amount) / float(self.target_amount) * 100),
        )

    @property
    def remaining_amount(self) -> float:
        return max(0.0, float(self.target_amount) - float(self.current_amount))

    def days_remaining(self, now: Optional[datetime] = None) -> int:
        return ceil_days(self.timeline.target_date - (now or local_now()))

    def required_daily_savings(self, now: Optional[datetime] = None) -> int:
        days = self.days_remaining(now)
        if days <= 0:
            return 0
        return round_half_up(self.remaining_amount / days)

    @property
    def current_velocity(self) -> float:
        contributions = self.tracking.contributions
        if len(contributions) < 2:
            return 0
        recent = sorted(contributions, key=lambda c: c.date, reverse=True)[:5]
        total = sum(c.amount for c in recent)
        span = (recent[0].date - recent[-1].date).total_seconds() / 86400
        return total / span if span > 0 else 0
