from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from documents import (
    AlertThresholds,
    BudgetPeriod,
    BudgetRules,
    ContributionSource,
    CurrencyCode,
    EmotionalContext,
    EmotionalControls,
    ExpenseSource,
    GoalPriority,
    GoalType,
    Integrations,
    LocalDateTime,
    Location,
    Milestone,
    Mood,
    PaymentMethod,
    Preferences,
    RecurringContribution,
    RecurringDetails,
    SplitDetails,
    Strategies,
    Timeline,
    Vendor,
)


class UserSyncIn(BaseModel):
    subject: str = Field(..., min_length=1, max_length=128)
    name: str = Field(..., min_length=1, max_length=50)
    email: str = Field(..., min_length=3, max_length=100)


class SettingsIn(BaseModel):
    user_id: str
    preferences: Optional[Preferences] = None
    integrations: Optional[Integrations] = None


class BudgetIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    # Resolved against the category enum by the service, which can suggest
    # the closest match.
    category: str = Field(..., min_length=1, max_length=50)
    amount: float = Field(..., ge=0)
    currency: CurrencyCode = CurrencyCode.inr
    period: BudgetPeriod = Field(default_factory=BudgetPeriod)
    alert_thresholds: AlertThresholds = Field(default_factory=AlertThresholds)
    emotional_controls: EmotionalControls = Field(default_factory=EmotionalControls)
    rules: BudgetRules = Field(default_factory=BudgetRules)
    tags: list[str] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=500)
    is_active: bool = True


class BudgetUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    category: Optional[str] = Field(default=None, min_length=1, max_length=50)
    amount: Optional[float] = Field(default=None, ge=0)
    currency: Optional[CurrencyCode] = None
    period: Optional[BudgetPeriod] = None
    alert_thresholds: Optional[AlertThresholds] = None
    emotional_controls: Optional[EmotionalControls] = None
    rules: Optional[BudgetRules] = None
    tags: Optional[list[str]] = None
    notes: Optional[str] = Field(default=None, max_length=500)
    is_active: Optional[bool] = None


class ExpenseCheckIn(BaseModel):
    amount: float = Field(default=0, ge=0)
    mood: Optional[str] = None


class ExpenseIn(BaseModel):
    amount: float = Field(..., gt=0)
    currency: CurrencyCode = CurrencyCode.inr
    description: str = Field(..., min_length=1, max_length=500)
    category: str = Field(..., min_length=1, max_length=50)
    subcategory: Optional[str] = Field(default=None, max_length=100)
    vendor: Vendor = Field(default_factory=Vendor)
    payment_method: PaymentMethod = Field(default_factory=PaymentMethod)
    transaction_id: Optional[str] = Field(default=None, max_length=100)
    date: Optional[LocalDateTime] = None
    tags: list[str] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=1000)
    is_recurring: bool = False
    recurring_details: RecurringDetails = Field(default_factory=RecurringDetails)
    split_details: SplitDetails = Field(default_factory=SplitDetails)
    source: ExpenseSource = Field(default_factory=ExpenseSource)
    mood: Mood = Field(default_factory=Mood)
    emotional_context: Optional[EmotionalContext] = None
    location: Location = Field(default_factory=Location)
    budget_id: Optional[int] = None


class ExpenseUpdateIn(BaseModel):
    amount: Optional[float] = Field(default=None, gt=0)
    currency: Optional[CurrencyCode] = None
    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    category: Optional[str] = Field(default=None, min_length=1, max_length=50)
    subcategory: Optional[str] = Field(default=None, max_length=100)
    vendor: Optional[Vendor] = None
    payment_method: Optional[PaymentMethod] = None
    date: Optional[LocalDateTime] = None
    tags: Optional[list[str]] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    is_recurring: Optional[bool] = None
    recurring_details: Optional[RecurringDetails] = None
    split_details: Optional[SplitDetails] = None
    mood: Optional[Mood] = None
    location: Optional[Location] = None


class GoalIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    type: GoalType
    target_amount: float = Field(..., ge=0)
    current_amount: float = Field(default=0, ge=0)
    currency: CurrencyCode = CurrencyCode.inr
    timeline: Timeline
    priority: GoalPriority = GoalPriority.medium
    category: Optional[str] = Field(default=None, max_length=50)
    recurring_contribution: RecurringContribution = Field(
        default_factory=RecurringContribution
    )
    milestones: list[Milestone] = Field(default_factory=list)
    strategies: Strategies = Field(default_factory=Strategies)
    tags: list[str] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=1000)


class GoalUpdateIn(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    type: Optional[GoalType] = None
    target_amount: Optional[float] = Field(default=None, ge=0)
    currency: Optional[CurrencyCode] = None
    timeline: Optional[Timeline] = None
    priority: Optional[GoalPriority] = None
    category: Optional[str] = Field(default=None, max_length=50)
    recurring_contribution: Optional[RecurringContribution] = None
    milestones: Optional[list[Milestone]] = None
    strategies: Optional[Strategies] = None
    tags: Optional[list[str]] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class ContributionIn(BaseModel):
    amount: float = Field(..., gt=0)
    source: ContributionSource = ContributionSource.manual
    description: str = Field(default="", max_length=200)
    transaction_id: Optional[str] = Field(default=None, max_length=100)


class CancelIn(BaseModel):
    reason: str = Field(default="", max_length=500)


class ChatIn(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)
    user_id: Optional[str] = None


class TrackEventIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    event_name: str = Field(..., min_length=1, max_length=100)
    event_properties: dict[str, Any] = Field(default_factory=dict)
    user_id: str = Field(..., min_length=1)
