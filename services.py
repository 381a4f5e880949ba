from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from rapidfuzz.distance import Levenshtein

import budgets as budget_engine
import goals as goal_engine
from anomaly import HISTORY_MONTHS, AnomalyResult, detect_anomaly
from database import touch
from documents import (
    AIAnalysis,
    ContributionSource,
    ExpenseSource,
    ExpenseSourceType,
    RecurringDetails,
    RiskAssessment,
    SplitDetails,
    Suggestion,
)
from emotions import derive_emotional_context
from errors import ExpenseNotAllowed, NotFoundError, ValidationError
from models import (
    Budget,
    BudgetCategory,
    BudgetStatus,
    Expense,
    ExpenseCategory,
    Goal,
    GoalPriority,
    GoalStatus,
    User,
)
from notifications import NotificationService
from periods import DAY, add_months, local_now
from schemas import (
    BudgetIn,
    BudgetUpdateIn,
    ContributionIn,
    ExpenseIn,
    ExpenseUpdateIn,
    GoalIn,
    GoalUpdateIn,
    SettingsIn,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

PRIORITY_RANK = {
    GoalPriority.low: 0,
    GoalPriority.medium: 1,
    GoalPriority.high: 2,
    GoalPriority.critical: 3,
}


def resolve_category(value: str, enum_cls: type[E], field: str = "category") -> E:
    clean = (value or "").strip().lower()
    try:
        return enum_cls(clean)
    except ValueError:
        pass

    best_distance: Optional[int] = None
    best: Optional[str] = None
    for member in enum_cls:
        dist = int(Levenshtein.distance(clean, member.value))
        if best_distance is None or dist < best_distance:
            best_distance = dist
            best = member.value
    message = f"Unknown category '{value}'"
    if best is not None and best_distance is not None and best_distance <= 2:
        message += f". Did you mean '{best}'?"
    raise ValidationError({field: message})


def _covers(budget: Budget, when: datetime) -> bool:
    start, end = budget.period.start, budget.period.end
    return start is not None and end is not None and start <= when <= end


BUDGET_FIELDS = (
    "name",
    "amount",
    "currency",
    "alert_thresholds",
    "emotional_controls",
    "rules",
    "tags",
    "notes",
    "is_active",
)
EXPENSE_FIELDS = (
    "amount",
    "currency",
    "subcategory",
    "vendor",
    "payment_method",
    "tags",
    "notes",
    "is_recurring",
    "recurring_details",
    "split_details",
    "mood",
    "location",
)
GOAL_FIELDS = (
    "title",
    "description",
    "type",
    "target_amount",
    "currency",
    "timeline",
    "priority",
    "recurring_contribution",
    "milestones",
    "strategies",
    "tags",
    "notes",
)


def _apply_changes(
    instance: object,
    data: Any,
    changes: dict[str, Any],
    fields: tuple[str, ...],
    nullable: tuple[str, ...] = (),
) -> None:
    for field in fields:
        if field not in changes:
            continue
        if changes[field] is None and field not in nullable:
            continue
        setattr(instance, field, getattr(data, field))


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def sync(self, subject: str, name: str, email: str) -> User:
        user = self.session.scalar(select(User).where(User.subject == subject))
        if user is None:
            taken = self.session.scalar(select(User).where(User.email == email))
            if taken is not None:
                raise ValidationError({"email": "User with that email already exists"})
            user = User(subject=subject, name=name, email=email)
            self.session.add(user)
            logger.info(f"user_created: subject={subject}")
        user.last_active = local_now()
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_by_subject(self, subject: str) -> User:
        user = self.session.scalar(select(User).where(User.subject == subject))
        if user is None:
            raise NotFoundError("User not found")
        return user

    def settings(self, subject: str) -> dict[str, Any]:
        user = self.get_by_subject(subject)
        return {
            "preferences": user.preferences.model_dump(mode="json"),
            "integrations": user.integrations.model_dump(mode="json"),
        }

    def update_settings(self, subject: str, data: SettingsIn) -> dict[str, Any]:
        user = self.get_by_subject(subject)
        if data.preferences is not None:
            user.preferences = data.preferences
        if data.integrations is not None:
            user.integrations = data.integrations
        self.session.commit()
        return self.settings(subject)


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self, active_only: bool = False) -> list[Budget]:
        stmt = (
            select(Budget)
            .where(Budget.user_id == self.user_id, Budget.is_archived.is_(False))
            .order_by(Budget.id)
        )
        if active_only:
            stmt = stmt.where(Budget.is_active.is_(True))
        return self.session.scalars(stmt).all()

    def get(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise NotFoundError("Budget not found")
        return budget

    def create(self, data: BudgetIn, now: Optional[datetime] = None) -> Budget:
        budget = Budget(
            user_id=self.user_id,
            name=data.name.strip(),
            category=resolve_category(data.category, BudgetCategory),
            amount=data.amount,
            currency=data.currency,
            period=data.period,
            alert_thresholds=data.alert_thresholds,
            emotional_controls=data.emotional_controls,
            rules=data.rules,
            tags=list(data.tags),
            notes=data.notes,
            is_active=data.is_active,
        )
        budget_engine.prepare_new_budget(budget, now)
        self.session.add(budget)
        self.session.commit()
        self.session.refresh(budget)
        logger.info(f"budget_created: user_id={self.user_id} budget_id={budget.id}")
        return budget

    def update(
        self, budget_id: int, data: BudgetUpdateIn, now: Optional[datetime] = None
    ) -> Budget:
        budget = self.get(budget_id)
        changes = data.model_dump(exclude_unset=True)
        if "category" in changes and data.category is not None:
            budget.category = resolve_category(data.category, BudgetCategory)
        _apply_changes(budget, data, changes, BUDGET_FIELDS, nullable=("notes",))

        if data.period is not None and data.period != budget.period:
            budget.period = data.period
            budget_engine.prepare_new_budget(budget, now)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def add_expense(
        self, budget_id: int, amount: float, now: Optional[datetime] = None
    ) -> Budget:
        budget = self.get(budget_id)
        budget_engine.add_expense(budget, amount, now)
        self.session.commit()
        return budget

    def reset_for_new_period(
        self, budget_id: int, now: Optional[datetime] = None
    ) -> Budget:
        budget = self.get(budget_id)
        budget_engine.reset_for_new_period(budget, now)
        self.session.commit()
        logger.info(f"budget_reset: user_id={self.user_id} budget_id={budget.id}")
        return budget

    def check_expense(
        self, budget_id: int, expense: Expense, now: Optional[datetime] = None
    ) -> budget_engine.ExpenseDecision:
        return budget_engine.is_expense_allowed(self.get(budget_id), expense, now)

    def archive(self, budget_id: int) -> Budget:
        budget = self.get(budget_id)
        budget.is_archived = True
        self.session.commit()
        return budget

    def matching_budgets(
        self,
        category: ExpenseCategory,
        when: datetime,
        now: Optional[datetime] = None,
    ) -> list[Budget]:
        now = now or local_now()
        stmt = (
            select(Budget)
            .where(
                Budget.user_id == self.user_id,
                Budget.is_active.is_(True),
                Budget.is_archived.is_(False),
                Budget.category.in_(
                    [BudgetCategory(category.value), BudgetCategory.total]
                ),
            )
            .order_by(Budget.id)
        )
        budgets = self.session.scalars(stmt).all()
        for budget in budgets:
            budget_engine.roll_forward_if_due(budget, now)
        return [b for b in budgets if _covers(b, when)]


class ExpenseService:
    def __init__(
        self,
        session: Session,
        user_id: int,
        notifier: Optional[NotificationService] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.notifier = notifier or NotificationService()

    def _subject(self) -> str:
        user = self.session.get(User, self.user_id)
        return user.subject if user else str(self.user_id)

    def get(self, expense_id: int, *, include_deleted: bool = False) -> Expense:
        expense = self.session.get(Expense, expense_id)
        if not expense or expense.user_id != self.user_id:
            raise NotFoundError("Expense not found")
        if expense.is_deleted and not include_deleted:
            raise NotFoundError("Expense not found")
        return expense

    def list(
        self,
        limit: int = 50,
        offset: int = 0,
        category: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        include_deleted: bool = False,
    ) -> list[Expense]:
        stmt = (
            select(Expense)
            .where(Expense.user_id == self.user_id)
            .order_by(Expense.date.desc(), Expense.id.desc())
            .offset(offset)
            .limit(limit)
        )
        if not include_deleted:
            stmt = stmt.where(Expense.is_deleted.is_(False))
        if category:
            stmt = stmt.where(
                Expense.category == resolve_category(category, ExpenseCategory)
            )
        if start:
            stmt = stmt.where(Expense.date >= start)
        if end:
            stmt = stmt.where(Expense.date <= end)
        return self.session.scalars(stmt).all()

    def recent(self, limit: int = 5) -> list[Expense]:
        return self.list(limit=limit)

    def recurring(self) -> list[Expense]:
        stmt = (
            select(Expense)
            .where(
                Expense.user_id == self.user_id,
                Expense.is_recurring.is_(True),
                Expense.is_deleted.is_(False),
            )
            .order_by(Expense.date.desc(), Expense.id.desc())
        )
        return [
            e for e in self.session.scalars(stmt).all() if e.recurring_details.is_active
        ]

    def category_history(
        self,
        category: ExpenseCategory,
        since: datetime,
        exclude_id: Optional[int] = None,
    ) -> list[float]:
        stmt = select(Expense.amount).where(
            Expense.user_id == self.user_id,
            Expense.category == category,
            Expense.date >= since,
            Expense.is_deleted.is_(False),
        )
        if exclude_id is not None:
            stmt = stmt.where(Expense.id != exclude_id)
        return [float(amount) for amount in self.session.scalars(stmt).all()]

    def create(self, data: ExpenseIn, now: Optional[datetime] = None) -> Expense:
        now = now or local_now()
        category = resolve_category(data.category, ExpenseCategory)
        when = data.date or now

        if data.transaction_id:
            clash = self.session.scalar(
                select(Expense.id).where(Expense.transaction_id == data.transaction_id)
            )
            if clash is not None:
                raise ValidationError({"transaction_id": "Transaction already recorded"})
        if data.budget_id is not None:
            BudgetService(self.session, self.user_id).get(data.budget_id)

        expense = Expense(
            user_id=self.user_id,
            amount=data.amount,
            currency=data.currency,
            description=data.description.strip(),
            category=category,
            subcategory=data.subcategory,
            vendor=data.vendor,
            payment_method=data.payment_method,
            transaction_id=data.transaction_id,
            date=when,
            tags=list(data.tags),
            notes=data.notes,
            is_recurring=data.is_recurring,
            recurring_details=data.recurring_details,
            split_details=data.split_details,
            source=data.source,
            mood=data.mood,
            emotional_context=derive_emotional_context(
                when, data.amount, data.emotional_context
            ),
            location=data.location,
            budget_id=data.budget_id,
        )

        matching = BudgetService(self.session, self.user_id).matching_budgets(
            category, when, now
        )
        for budget in matching:
            decision = budget_engine.is_expense_allowed(budget, expense, now)
            if not decision.allowed:
                logger.info(
                    f"expense_blocked: user_id={self.user_id} budget_id={budget.id} "
                    f"reason={decision.reason}"
                )
                raise ExpenseNotAllowed(decision.reason or "Expense not allowed", budget.id)

        self.session.add(expense)
        alerts: list[tuple[Budget, BudgetStatus]] = []
        for budget in matching:
            budget_engine.add_expense(budget, data.amount, now)
            status = budget_engine.evaluate_alerts(budget, now)
            if status is not None:
                alerts.append((budget, status))
        self.session.commit()
        self.session.refresh(expense)
        logger.info(
            f"expense_created: user_id={self.user_id} expense_id={expense.id} "
            f"budgets={len(matching)}"
        )

        subject = self._subject()
        for budget, status in alerts:
            self.notifier.send_budget_alert(
                subject,
                f"Budget '{budget.name}' is {status.value}: "
                f"{budget.spent_percentage}% of {float(budget.amount):.2f} "
                f"{budget.currency.value} spent.",
            )
        if expense.emotional_context.is_impulsive:
            self.notifier.send_emotional_spending_alert(
                subject,
                f"Late-night purchase of {float(expense.amount):.2f} "
                f"{expense.currency.value} ({expense.description}) looks impulsive.",
            )
        return expense

    def update(
        self, expense_id: int, data: ExpenseUpdateIn, now: Optional[datetime] = None
    ) -> Expense:
        expense = self.get(expense_id)
        changes = data.model_dump(exclude_unset=True)
        if "category" in changes and data.category is not None:
            expense.category = resolve_category(data.category, ExpenseCategory)
        if "description" in changes and data.description is not None:
            expense.description = data.description.strip()
        _apply_changes(
            expense, data, changes, EXPENSE_FIELDS, nullable=("subcategory", "notes")
        )

        if data.date is not None:
            expense.date = data.date
            expense.emotional_context = derive_emotional_context(
                data.date,
                float(expense.amount),
                expense.emotional_context,
                on_update=True,
            )
        expense.version += 1
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def soft_delete(self, expense_id: int, now: Optional[datetime] = None) -> None:
        expense = self.get(expense_id, include_deleted=True)
        if expense.is_deleted:
            return
        expense.is_deleted = True
        expense.deleted_at = now or local_now()
        self.session.commit()

    def restore(self, expense_id: int) -> Expense:
        expense = self.get(expense_id, include_deleted=True)
        if expense.is_deleted:
            expense.is_deleted = False
            expense.deleted_at = None
            self.session.commit()
        return expense

    def duplicate(self, expense_id: int, now: Optional[datetime] = None) -> Expense:
        original = self.get(expense_id)
        now = now or local_now()
        suffix = " (Copy)"
        description = original.description[: 500 - len(suffix)] + suffix
        copy = Expense(
            user_id=self.user_id,
            amount=float(original.amount),
            currency=original.currency,
            description=description,
            category=original.category,
            subcategory=original.subcategory,
            vendor=original.vendor.model_copy(deep=True),
            payment_method=original.payment_method.model_copy(deep=True),
            transaction_id=None,
            date=now,
            tags=list(original.tags),
            notes=original.notes,
            is_recurring=False,
            recurring_details=RecurringDetails(),
            split_details=SplitDetails(),
            source=ExpenseSource(type=ExpenseSourceType.manual),
            mood=original.mood.model_copy(deep=True),
            emotional_context=derive_emotional_context(
                now, float(original.amount), original.emotional_context
            ),
            ai_analysis=AIAnalysis(),
            receipts=[],
            location=original.location.model_copy(deep=True),
            budget_id=original.budget_id,
            is_deleted=False,
            version=1,
        )
        self.session.add(copy)
        self.session.commit()
        self.session.refresh(copy)
        return copy


class GoalService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _save(self, goal: Goal, now: Optional[datetime] = None) -> Goal:
        goal_engine.apply_status_rules(goal, now)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def _query(self, *conditions: Any) -> list[Goal]:
        stmt = (
            select(Goal)
            .where(Goal.user_id == self.user_id, Goal.is_archived.is_(False), *conditions)
            .order_by(Goal.id)
        )
        return self.session.scalars(stmt).all()

    @staticmethod
    def _by_target_date(goals: list[Goal]) -> list[Goal]:
        return sorted(goals, key=lambda g: g.timeline.target_date)

    def get(self, goal_id: int) -> Goal:
        goal = self.session.get(Goal, goal_id)
        if not goal or goal.user_id != self.user_id:
            raise NotFoundError("Goal not found")
        return goal

    def list(self) -> list[Goal]:
        return self._query()

    def active(self) -> list[Goal]:
        goals = self._query(Goal.status == GoalStatus.active)
        return sorted(
            goals,
            key=lambda g: (-PRIORITY_RANK[g.priority], g.timeline.target_date),
        )

    def by_priority(self, priority: GoalPriority) -> list[Goal]:
        return self._by_target_date(
            self._query(
                Goal.priority == priority,
                Goal.status.in_([GoalStatus.active, GoalStatus.paused]),
            )
        )

    def overdue(self) -> list[Goal]:
        return self._by_target_date(self._query(Goal.status == GoalStatus.overdue))

    def needing_attention(self, now: Optional[datetime] = None) -> list[Goal]:
        horizon = (now or local_now()) + 30 * DAY
        goals = self._query(Goal.status == GoalStatus.active)
        return self._by_target_date(
            [g for g in goals if g.timeline.target_date <= horizon]
        )

    def stats(self) -> dict[str, Any]:
        goals = self._query()
        total_target = sum(float(g.target_amount) for g in goals)
        total_current = sum(float(g.current_amount) for g in goals)
        return {
            "total_goals": len(goals),
            "active_goals": sum(1 for g in goals if g.status == GoalStatus.active),
            "completed_goals": sum(1 for g in goals if g.status == GoalStatus.completed),
            "overdue_goals": sum(1 for g in goals if g.status == GoalStatus.overdue),
            "total_target_amount": total_target,
            "total_current_amount": total_current,
            "overall_progress": (
                total_current / total_target * 100 if total_target > 0 else 0
            ),
        }

    def due_for_recurring_contribution(
        self, today: Optional[datetime] = None
    ) -> list[Goal]:
        cutoff = (today or local_now()).replace(hour=0, minute=0, second=0, microsecond=0)
        goals = self._query(Goal.status == GoalStatus.active)
        due = []
        for goal in goals:
            recurring = goal.recurring_contribution
            if (
                recurring.enabled
                and recurring.next_contribution_date is not None
                and recurring.next_contribution_date <= cutoff
            ):
                due.append(goal)
        return due

    def create(self, data: GoalIn, now: Optional[datetime] = None) -> Goal:
        if data.timeline.target_date < data.timeline.start_date:
            raise ValidationError({"timeline": "Target date must be after start date"})
        goal = Goal(
            user_id=self.user_id,
            title=data.title.strip(),
            description=data.description,
            type=data.type,
            target_amount=data.target_amount,
            current_amount=data.current_amount,
            currency=data.currency,
            timeline=data.timeline,
            priority=data.priority,
            category=(
                resolve_category(data.category, ExpenseCategory)
                if data.category
                else None
            ),
            recurring_contribution=data.recurring_contribution,
            milestones=list(data.milestones),
            strategies=data.strategies,
            tags=list(data.tags),
            notes=data.notes,
        )
        self.session.add(goal)
        self._save(goal, now)
        logger.info(f"goal_created: user_id={self.user_id} goal_id={goal.id}")
        return goal

    def update(
        self, goal_id: int, data: GoalUpdateIn, now: Optional[datetime] = None
    ) -> Goal:
        goal = self.get(goal_id)
        changes = data.model_dump(exclude_unset=True)
        if "category" in changes:
            goal.category = (
                resolve_category(data.category, ExpenseCategory)
                if data.category
                else None
            )
        _apply_changes(
            goal, data, changes, GOAL_FIELDS, nullable=("description", "notes")
        )
        if goal.timeline.target_date < goal.timeline.start_date:
            raise ValidationError({"timeline": "Target date must be after start date"})
        return self._save(goal, now)

    def add_contribution(
        self, goal_id: int, data: ContributionIn, now: Optional[datetime] = None
    ) -> Goal:
        goal = self.get(goal_id)
        goal_engine.add_contribution(
            goal,
            data.amount,
            source=data.source,
            description=data.description,
            transaction_id=data.transaction_id,
            now=now,
        )
        return self._save(goal, now)

    def refresh_suggestions(
        self, goal_id: int, now: Optional[datetime] = None
    ) -> list[Suggestion]:
        goal = self.get(goal_id)
        suggestions = goal_engine.generate_suggestions(goal, now)
        self._save(goal, now)
        return suggestions

    def assess_risk(
        self, goal_id: int, now: Optional[datetime] = None
    ) -> RiskAssessment:
        goal = self.get(goal_id)
        assessment = goal_engine.calculate_risk_assessment(goal, now)
        self._save(goal, now)
        return assessment

    def toggle_pause(self, goal_id: int, now: Optional[datetime] = None) -> Goal:
        goal = self.get(goal_id)
        goal_engine.toggle_pause(goal)
        return self._save(goal, now)

    def cancel(
        self, goal_id: int, reason: str = "", now: Optional[datetime] = None
    ) -> Goal:
        goal = self.get(goal_id)
        goal_engine.cancel(goal, reason)
        return self._save(goal, now)

    def archive(self, goal_id: int, now: Optional[datetime] = None) -> Goal:
        goal = self.get(goal_id)
        goal_engine.archive(goal)
        return self._save(goal, now)


class AnalyticsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _live_expenses(self) -> list[Expense]:
        stmt = select(Expense).where(
            Expense.user_id == self.user_id, Expense.is_deleted.is_(False)
        )
        return self.session.scalars(stmt).all()

    @staticmethod
    def _grouped(
        expenses: list[Expense], key: Callable[[Expense], Optional[str]]
    ) -> list[dict[str, Any]]:
        totals: dict[str, float] = defaultdict(float)
        counts: dict[str, int] = defaultdict(int)
        for expense in expenses:
            group = key(expense)
            if not group:
                continue
            totals[group] += float(expense.amount)
            counts[group] += 1
        rows = [
            {"key": group, "total_amount": totals[group], "expense_count": counts[group]}
            for group in totals
        ]
        rows.sort(key=lambda row: row["total_amount"], reverse=True)
        return rows

    def emotional_spend(self) -> list[dict[str, Any]]:
        rows = self._grouped(self._live_expenses(), lambda e: e.mood.tag)
        return [
            {
                "mood": row["key"],
                "total_amount": row["total_amount"],
                "expense_count": row["expense_count"],
            }
            for row in rows
        ]

    def top_vendors(self, limit: int = 5) -> list[dict[str, Any]]:
        rows = self._grouped(self._live_expenses(), lambda e: e.vendor.name)
        return [
            {
                "name": row["key"],
                "total_amount": row["total_amount"],
                "expense_count": row["expense_count"],
            }
            for row in rows[:limit]
        ]

    def track_event(self, name: str, properties: dict[str, Any]) -> None:
        logger.info(
            f"analytics_event: user_id={self.user_id} event={name} "
            f"properties={properties}"
        )


class AnomalyService:
    def __init__(
        self, session: Session, notifier: Optional[NotificationService] = None
    ) -> None:
        self.session = session
        self.notifier = notifier or NotificationService()

    def evaluate(
        self, expense_id: int, now: Optional[datetime] = None
    ) -> Optional[AnomalyResult]:
        expense = self.session.get(Expense, expense_id)
        if expense is None or expense.is_deleted:
            logger.info(f"anomaly_skip: expense_id={expense_id} reason=missing")
            return None
        now = now or local_now()
        history = ExpenseService(self.session, expense.user_id).category_history(
            expense.category, add_months(now, -HISTORY_MONTHS), exclude_id=expense.id
        )
        result = detect_anomaly(
            float(expense.amount), expense.category.value, history
        )
        if not result.is_anomaly:
            return result

        analysis = expense.ai_analysis
        analysis.anomaly_score = result.score
        analysis.recommendations.append(f"Anomaly detected: {result.reason}")
        analysis.processed_at = now
        touch(expense, "ai_analysis")
        self.session.commit()

        user = self.session.get(User, expense.user_id)
        self.notifier.send_anomaly_alert(
            user.subject,
            {
                "message": (
                    "Potential anomaly detected in your recent spending: "
                    f"{expense.description} ({float(expense.amount):.2f} "
                    f"{expense.currency.value}). Reason: {result.reason}"
                ),
                "expense_id": expense.id,
                "anomaly_score": result.score,
            },
        )
        return result


def run_anomaly_check(
    expense_id: int,
    session_factory: Callable[[], Session],
    notifier: Optional[NotificationService] = None,
) -> None:
    """Background entry point; failures are logged and never re-raised."""
    session = session_factory()
    try:
        AnomalyService(session, notifier).evaluate(expense_id)
    except Exception:
        session.rollback()
        logger.exception(f"anomaly_check_failed: expense_id={expense_id}")
    finally:
        session.close()


class InsightsService:
    def __init__(
        self, session: Session, notifier: Optional[NotificationService] = None
    ) -> None:
        self.session = session
        self.notifier = notifier or NotificationService()

    def _users(self) -> list[User]:
        return self.session.scalars(
            select(User).where(User.is_active.is_(True)).order_by(User.id)
        ).all()

    def _sweep(self, job: str, handler: Callable[[User], int]) -> int:
        processed = 0
        for user in self._users():
            try:
                processed += handler(user)
                self.session.commit()
            except Exception:
                self.session.rollback()
                logger.exception(f"{job}_failed: user_id={user.id}")
        logger.info(f"{job}_done: updated={processed}")
        return processed

    def run_daily(self, now: Optional[datetime] = None) -> int:
        now = now or local_now()

        def handle(user: User) -> int:
            updated = 0
            for budget in BudgetService(self.session, user.id).list(active_only=True):
                if budget_engine.roll_forward_if_due(budget, now):
                    updated += 1
            goal_service = GoalService(self.session, user.id)
            for goal in goal_service.due_for_recurring_contribution(now):
                recurring = goal.recurring_contribution
                goal_engine.add_contribution(
                    goal,
                    recurring.amount,
                    source=ContributionSource.automatic,
                    description="Recurring contribution",
                    now=now,
                )
                goal_engine.advance_recurring_contribution(goal)
                updated += 1
            for goal in goal_service.list():
                goal_engine.apply_status_rules(goal, now)
            return updated

        return self._sweep("daily_insights", handle)

    def run_weekly(self, now: Optional[datetime] = None) -> int:
        now = now or local_now()

        def handle(user: User) -> int:
            goals = GoalService(self.session, user.id).active()
            for goal in goals:
                goal_engine.update_analytics(goal, now)
                goal_engine.generate_suggestions(goal, now)
                goal_engine.calculate_risk_assessment(goal, now)
                goal_engine.apply_status_rules(goal, now)
            return len(goals)

        return self._sweep("weekly_insights", handle)

    def run_monthly(self, now: Optional[datetime] = None) -> int:
        now = now or local_now()
        since = add_months(now, -1)

        def handle(user: User) -> int:
            expenses = ExpenseService(self.session, user.id).list(
                limit=10_000, start=since, end=now
            )
            total = sum(float(e.amount) for e in expenses)
            impulsive = sum(1 for e in expenses if e.emotional_context.is_impulsive)
            logger.info(
                f"monthly_summary: user_id={user.id} expenses={len(expenses)} "
                f"total={total:.2f} impulsive={impulsive}"
            )
            return 1

        return self._sweep("monthly_insights", handle)
