"""Enums and the typed sub-documents stored in JSON columns.

Each sub-document is a small pydantic model so that budgets, expenses and
goals never carry untyped dicts around. They are persisted through
``database.JSONDocument``.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Optional
from zoneinfo import ZoneInfo

from pydantic import AfterValidator, BaseModel, Field

from config import get_settings


def to_local_wall_time(value: datetime) -> datetime:
    """Convert an offset-aware datetime to naive wall time in the configured zone."""
    if value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(get_settings().timezone)).replace(tzinfo=None)


LocalDateTime = Annotated[datetime, AfterValidator(to_local_wall_time)]


class ExpenseCategory(str, Enum):
    food = "food"
    transport = "transport"
    shopping = "shopping"
    entertainment = "entertainment"
    healthcare = "healthcare"
    utilities = "utilities"
    education = "education"
    travel = "travel"
    fitness = "fitness"
    groceries = "groceries"
    dining = "dining"
    fuel = "fuel"
    insurance = "insurance"
    investment = "investment"
    charity = "charity"
    personal_care = "personal_care"
    home = "home"
    electronics = "electronics"
    clothing = "clothing"
    books = "books"
    subscriptions = "subscriptions"
    gifts = "gifts"
    taxi = "taxi"
    other = "other"


BudgetCategory = Enum(
    "BudgetCategory",
    [(member.name, member.value) for member in ExpenseCategory] + [("total", "total")],
    type=str,
)


class CurrencyCode(str, Enum):
    inr = "INR"
    usd = "USD"
    eur = "EUR"
    gbp = "GBP"
    jpy = "JPY"
    aud = "AUD"
    cad = "CAD"


class PeriodKind(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


class BudgetStatus(str, Enum):
    healthy = "healthy"
    warning = "warning"
    critical = "critical"
    exceeded = "exceeded"


class TimeOfDay(str, Enum):
    morning = "morning"
    afternoon = "afternoon"
    evening = "evening"
    night = "night"
    late_night = "late_night"


class ExpenseSourceType(str, Enum):
    manual = "manual"
    email = "email"
    sms = "sms"


class GoalType(str, Enum):
    savings = "savings"
    expense_reduction = "expense_reduction"
    debt_payoff = "debt_payoff"
    investment = "investment"
    emergency_fund = "emergency_fund"
    vacation = "vacation"
    purchase = "purchase"
    other = "other"


class GoalPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class GoalStatus(str, Enum):
    active = "active"
    paused = "paused"
    completed = "completed"
    cancelled = "cancelled"
    overdue = "overdue"


class ContributionSource(str, Enum):
    manual = "manual"
    automatic = "automatic"
    bonus = "bonus"
    refund = "refund"
    cashback = "cashback"


class ContributionFrequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    quarterly = "quarterly"


class VelocityTrend(str, Enum):
    accelerating = "accelerating"
    stable = "stable"
    slowing = "slowing"


class RiskLevel(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


# -- budget --------------------------------------------------------------


class BudgetPeriod(BaseModel):
    kind: PeriodKind = PeriodKind.monthly
    start: Optional[LocalDateTime] = None
    end: Optional[LocalDateTime] = None
    auto_reset: bool = True


class ThresholdState(BaseModel):
    percentage: Optional[int] = Field(default=None, ge=0, le=100)
    triggered: bool = False
    last_triggered: Optional[LocalDateTime] = None


class AlertThresholds(BaseModel):
    warning: ThresholdState = Field(
        default_factory=lambda: ThresholdState(percentage=70)
    )
    critical: ThresholdState = Field(
        default_factory=lambda: ThresholdState(percentage=90)
    )
    exceeded: ThresholdState = Field(default_factory=ThresholdState)


class EmotionalControls(BaseModel):
    enabled: bool = False
    restricted_moods: list[str] = Field(default_factory=list)
    cooldown_minutes: int = Field(default=30, ge=0)
    max_impulsive_spend: float = Field(default=500, ge=0)


class TimeRestriction(BaseModel):
    days_of_week: list[str] = Field(default_factory=list)
    start: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    end: str = Field(..., pattern=r"^\d{2}:\d{2}$")


class TimeRestrictions(BaseModel):
    enabled: bool = False
    restricted_hours: list[TimeRestriction] = Field(default_factory=list)


class BudgetRules(BaseModel):
    strict_mode: bool = False
    allowance_override: float = 0
    block_categories: list[str] = Field(default_factory=list)
    allowed_vendors: list[str] = Field(default_factory=list)
    time_restrictions: TimeRestrictions = Field(default_factory=TimeRestrictions)


class AutoAdjustments(BaseModel):
    enabled: bool = False
    max_adjustment_percentage: int = 10
    last_adjustment: Optional[LocalDateTime] = None
    adjustment_history: list[dict[str, Any]] = Field(default_factory=list)


class PredictedSpend(BaseModel):
    amount: Optional[float] = None
    confidence: Optional[float] = None
    calculated_at: Optional[LocalDateTime] = None


class BudgetAIOptimization(BaseModel):
    learning_mode: str = "adaptive"
    auto_adjustments: AutoAdjustments = Field(default_factory=AutoAdjustments)
    predicted_spend: PredictedSpend = Field(default_factory=PredictedSpend)


class PeriodSnapshot(BaseModel):
    days_elapsed: Optional[int] = None
    days_remaining: Optional[int] = None
    average_daily_spend: Optional[float] = None
    projected_spend: Optional[float] = None
    adherence_score: Optional[float] = None


class ClosedPeriod(BaseModel):
    start: Optional[LocalDateTime] = None
    end: Optional[LocalDateTime] = None
    budgeted: float
    spent: float
    adherence_score: float
    savings: float
    note: Optional[str] = None


class BudgetPerformance(BaseModel):
    current_period: PeriodSnapshot = Field(default_factory=PeriodSnapshot)
    historical: list[ClosedPeriod] = Field(default_factory=list)


# -- expense -------------------------------------------------------------


class Vendor(BaseModel):
    name: Optional[str] = None
    type: str = "other"
    location: dict[str, Any] = Field(default_factory=dict)


class PaymentMethod(BaseModel):
    type: str = "cash"
    details: dict[str, Any] = Field(default_factory=dict)


class RecurringDetails(BaseModel):
    frequency: Optional[ContributionFrequency] = None
    interval: Optional[int] = Field(default=None, gt=0)
    end_date: Optional[LocalDateTime] = None
    next_date: Optional[LocalDateTime] = None
    is_active: bool = True


class SplitDetails(BaseModel):
    is_split: bool = False
    total_amount: Optional[float] = None
    user_share: Optional[float] = None
    split_with: list[dict[str, Any]] = Field(default_factory=list)


class ExpenseSource(BaseModel):
    type: ExpenseSourceType = ExpenseSourceType.manual
    raw_data: dict[str, Any] = Field(default_factory=dict)
    processed: bool = False
    verified: bool = False


class Mood(BaseModel):
    tag: Optional[str] = None
    confidence: Optional[float] = None
    detected_at: Optional[LocalDateTime] = None
    is_manual: bool = False


class EmotionalContext(BaseModel):
    time_of_day: Optional[TimeOfDay] = None
    day_of_week: Optional[str] = None
    is_weekend: bool = False
    is_holiday: bool = False
    weather_condition: Optional[str] = None
    is_impulsive: bool = False
    impulsive_score: Optional[float] = None


class AIAnalysis(BaseModel):
    category_confidence: Optional[float] = None
    anomaly_score: Optional[float] = None
    budget_impact: Optional[float] = None
    recommendations: list[str] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)
    processed_at: Optional[LocalDateTime] = None


class Location(BaseModel):
    coordinates: list[float] = Field(default_factory=list)
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


# -- goal ----------------------------------------------------------------


class Timeline(BaseModel):
    start_date: LocalDateTime
    target_date: LocalDateTime
    completed_date: Optional[LocalDateTime] = None


class RecurringContribution(BaseModel):
    enabled: bool = False
    amount: float = Field(default=0, ge=0)
    frequency: Optional[ContributionFrequency] = None
    next_contribution_date: Optional[LocalDateTime] = None
    auto_deduct: bool = False


class Milestone(BaseModel):
    percentage: float = Field(..., ge=0, le=100)
    amount: float
    description: Optional[str] = None
    achieved: bool = False
    achieved_date: Optional[LocalDateTime] = None
    reward: Optional[str] = None


class Strategies(BaseModel):
    budget_allocation: dict[str, Any] = Field(
        default_factory=lambda: {"percentage": None, "categories": []}
    )
    automated_savings: dict[str, Any] = Field(
        default_factory=lambda: {"enabled": False, "rules": []}
    )
    incentives: dict[str, Any] = Field(
        default_factory=lambda: {"enabled": False, "rewards": []}
    )


class Contribution(BaseModel):
    amount: float
    date: LocalDateTime
    source: ContributionSource = ContributionSource.manual
    description: str = ""
    transaction_id: Optional[str] = None


class ProgressEntry(BaseModel):
    date: LocalDateTime
    amount: float
    percentage: int
    note: str


class GoalAnalytics(BaseModel):
    average_monthly_contribution: Optional[float] = None
    projected_completion_date: Optional[LocalDateTime] = None
    velocity_trend: Optional[VelocityTrend] = None
    last_calculated: Optional[LocalDateTime] = None


class GoalTracking(BaseModel):
    contributions: list[Contribution] = Field(default_factory=list)
    progress: list[ProgressEntry] = Field(default_factory=list)
    analytics: GoalAnalytics = Field(default_factory=GoalAnalytics)


class Suggestion(BaseModel):
    type: str
    message: str
    impact: float
    confidence: float
    created_at: LocalDateTime
    implemented: bool = False


class RiskAssessment(BaseModel):
    level: Optional[RiskLevel] = None
    factors: list[str] = Field(default_factory=list)
    last_assessed: Optional[LocalDateTime] = None


class PredictiveInsights(BaseModel):
    likelihood_of_success: Optional[float] = None
    suggested_adjustments: list[str] = Field(default_factory=list)
    alternative_strategies: list[str] = Field(default_factory=list)


class GoalAIOptimization(BaseModel):
    enabled: bool = True
    suggestions: list[Suggestion] = Field(default_factory=list)
    risk_assessment: RiskAssessment = Field(default_factory=RiskAssessment)
    predictive_insights: PredictiveInsights = Field(default_factory=PredictiveInsights)


class GoalNotifications(BaseModel):
    milestone_alerts: bool = True
    progress_reminders: bool = True
    frequency: str = "weekly"
    custom_alerts: list[dict[str, Any]] = Field(default_factory=list)


class Sharing(BaseModel):
    is_public: bool = False
    shared_with: list[dict[str, Any]] = Field(default_factory=list)
    support_group: dict[str, Any] = Field(
        default_factory=lambda: {"enabled": False, "group_id": None, "role": None}
    )


# -- user ----------------------------------------------------------------


class NotificationPreferences(BaseModel):
    email: bool = True
    push: bool = True
    sms: bool = False
    weekly_report: bool = True
    monthly_report: bool = True
    budget_alerts: bool = True
    emotional_spending_alerts: bool = True


class Preferences(BaseModel):
    theme: str = "light"
    language: str = "en"
    notifications: NotificationPreferences = Field(
        default_factory=NotificationPreferences
    )
    privacy: dict[str, bool] = Field(
        default_factory=lambda: {
            "data_sharing": False,
            "anonymous_mode": False,
            "local_ml_only": True,
        }
    )


class IntegrationState(BaseModel):
    enabled: bool = False
    last_sync: Optional[LocalDateTime] = None


class Integrations(BaseModel):
    gmail: IntegrationState = Field(default_factory=IntegrationState)
    sms: IntegrationState = Field(default_factory=IntegrationState)
    bank_accounts: list[dict[str, Any]] = Field(default_factory=list)
