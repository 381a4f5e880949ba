"""Budget lifecycle: period setup, spend tracking, resets and policy checks.

The functions here mutate a ``Budget`` in memory only; committing is the
caller's job (see ``services.BudgetService``).
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from database import touch
from documents import BudgetStatus, ClosedPeriod, PeriodSnapshot
from models import Budget, Expense
from periods import (
    ceil_days,
    compute_next_reset,
    compute_period_bounds,
    local_now,
    weekday_name,
)

_STATUS_RANK = {
    BudgetStatus.healthy: 0,
    BudgetStatus.warning: 1,
    BudgetStatus.critical: 2,
    BudgetStatus.exceeded: 3,
}


@dataclass(frozen=True)
class ExpenseDecision:
    allowed: bool
    reason: Optional[str] = None


def _apply_current_period(budget: Budget, now: datetime) -> None:
    bounds = compute_period_bounds(budget.period.kind, now)
    budget.period.start = bounds.start
    budget.period.end = bounds.end


def refresh_next_reset(budget: Budget) -> None:
    budget.next_reset_at = compute_next_reset(budget.period.kind, budget.period.end)


def prepare_new_budget(budget: Budget, now: Optional[datetime] = None) -> None:
    if budget.period.start is None or budget.period.end is None:
        _apply_current_period(budget, now or local_now())
        touch(budget, "period")
    refresh_next_reset(budget)


def update_performance_metrics(budget: Budget, now: Optional[datetime] = None) -> None:
    now = now or local_now()
    elapsed_days = ceil_days(now - budget.period.start)
    remaining_days = ceil_days(budget.period.end - now)
    spent = float(budget.spent)
    budget.performance.current_period = PeriodSnapshot(
        days_elapsed=max(0, elapsed_days),
        days_remaining=max(0, remaining_days),
        average_daily_spend=spent / elapsed_days if elapsed_days > 0 else 0,
        projected_spend=budget.projected_spend(now),
        adherence_score=budget.adherence_score(),
    )
    touch(budget, "performance")


def add_expense(budget: Budget, amount: float, now: Optional[datetime] = None) -> None:
    budget.spent = float(budget.spent) + float(amount)
    update_performance_metrics(budget, now)


def reset_for_new_period(budget: Budget, now: Optional[datetime] = None) -> None:
    now = now or local_now()
    amount = float(budget.amount)
    spent = float(budget.spent)
    budget.performance.historical.append(
        ClosedPeriod(
            start=budget.period.start,
            end=budget.period.end,
            budgeted=amount,
            spent=spent,
            adherence_score=budget.adherence_score(),
            savings=max(0.0, amount - spent),
            note=f"Auto-reset on {now.isoformat()}",
        )
    )

    budget.spent = 0.0
    _apply_current_period(budget, now)
    budget.last_reset_at = now
    refresh_next_reset(budget)

    thresholds = budget.alert_thresholds
    thresholds.warning.triggered = False
    thresholds.critical.triggered = False
    thresholds.exceeded.triggered = False
    touch(budget, "performance", "period", "alert_thresholds")


def roll_forward_if_due(budget: Budget, now: Optional[datetime] = None) -> bool:
    """Reset an auto-reset budget whose period ended before ``now``.

    The new period is the one that contains ``now``. Returns True when a
    reset happened.
    """
    now = now or local_now()
    end = budget.period.end
    if not budget.period.auto_reset or end is None or now <= end:
        return False
    reset_for_new_period(budget, now)
    return True


def is_expense_allowed(
    budget: Budget, expense: Expense, now: Optional[datetime] = None
) -> ExpenseDecision:
    if budget.rules.strict_mode and float(budget.spent) >= float(budget.amount):
        return ExpenseDecision(False, "Budget exceeded and strict mode is enabled")

    controls = budget.emotional_controls
    mood = expense.mood
    if controls.enabled and mood and mood.tag in controls.restricted_moods:
        return ExpenseDecision(False, f"Spending restricted during {mood.tag} mood")

    restrictions = budget.rules.time_restrictions
    if restrictions.enabled:
        now = now or local_now()
        current = now.strftime("%H:%M")
        today = weekday_name(now)
        for window in restrictions.restricted_hours:
            days = {day.lower() for day in window.days_of_week}
            if today in days and window.start <= current <= window.end:
                return ExpenseDecision(False, "Spending restricted during this time")

    return ExpenseDecision(True)


def evaluate_alerts(
    budget: Budget, now: Optional[datetime] = None
) -> Optional[BudgetStatus]:
    """Mark every threshold the budget has reached; return the status if any was new."""
    status = budget.status
    thresholds = budget.alert_thresholds
    newly_triggered = False
    for level, state in (
        (BudgetStatus.warning, thresholds.warning),
        (BudgetStatus.critical, thresholds.critical),
        (BudgetStatus.exceeded, thresholds.exceeded),
    ):
        if _STATUS_RANK[status] < _STATUS_RANK[level] or state.triggered:
            continue
        state.triggered = True
        state.last_triggered = now or local_now()
        newly_triggered = True
    if not newly_triggered:
        return None
    touch(budget, "alert_thresholds")
    return status
