from datetime import datetime

import pytest

import budgets
from documents import (
    BudgetPeriod,
    BudgetRules,
    EmotionalControls,
    Mood,
    TimeRestriction,
    TimeRestrictions,
)
from models import Budget, BudgetCategory, BudgetStatus, Expense, ExpenseCategory

JUNE = BudgetPeriod(
    kind="monthly",
    start=datetime(2024, 6, 1),
    end=datetime(2024, 6, 30, 23, 59, 59, 999000),
)


def _budget(amount: float = 1000, spent: float = 0, **kwargs) -> Budget:
    return Budget(
        user_id=1,
        name="Food",
        category=BudgetCategory.food,
        amount=amount,
        spent=spent,
        period=kwargs.pop("period", JUNE.model_copy()),
        **kwargs,
    )


def _expense(mood: str = None) -> Expense:
    return Expense(
        user_id=1,
        amount=100,
        description="Dinner",
        category=ExpenseCategory.dining,
        date=datetime(2024, 6, 15, 20, 0),
        mood=Mood(tag=mood),
    )


@pytest.mark.parametrize(
    ("spent", "status"),
    [
        (100, BudgetStatus.healthy),
        (700, BudgetStatus.warning),
        (950, BudgetStatus.critical),
        (1000, BudgetStatus.exceeded),
        (1500, BudgetStatus.exceeded),
    ],
)
def test_status_follows_thresholds(spent: float, status: BudgetStatus) -> None:
    assert _budget(spent=spent).status == status


@pytest.mark.parametrize(
    ("spent", "status"),
    [
        (0, BudgetStatus.healthy),
        (69, BudgetStatus.healthy),
        (69.5, BudgetStatus.warning),
        (70, BudgetStatus.warning),
        (89, BudgetStatus.warning),
        (90, BudgetStatus.critical),
        (99, BudgetStatus.critical),
        (100, BudgetStatus.exceeded),
        (150, BudgetStatus.exceeded),
    ],
)
def test_status_boundaries_on_a_hundred(spent: float, status: BudgetStatus) -> None:
    assert _budget(amount=100, spent=spent).status == status


def test_zero_amount_budget_is_healthy_and_fully_adherent() -> None:
    budget = _budget(amount=0, spent=50)

    assert budget.spent_percentage == 0
    assert budget.status == BudgetStatus.healthy
    assert budget.adherence_score() == 100
    assert budget.remaining == 0


@pytest.mark.parametrize(
    ("spent", "score"), [(500, 100), (800, 100), (900, 80), (1000, 60), (1200, 40)]
)
def test_adherence_score_bands(spent: float, score: float) -> None:
    assert _budget(spent=spent).adherence_score() == pytest.approx(score)


def test_projected_spend_extrapolates_daily_rate() -> None:
    budget = _budget(spent=300)
    now = datetime(2024, 6, 10, 12, 0)

    assert budget.projected_spend(now) == 900
    assert budget.days_remaining(now) == 21
    assert _budget(spent=0).projected_spend(now) == 0
    assert budget.projected_spend(datetime(2024, 5, 20)) == 0


def test_prepare_new_budget_fills_period_and_next_reset() -> None:
    budget = _budget(period=BudgetPeriod(kind="weekly"))
    budgets.prepare_new_budget(budget, datetime(2024, 5, 15, 9, 0))

    assert budget.period.start == datetime(2024, 5, 12)
    assert budget.period.end == datetime(2024, 5, 18, 23, 59, 59, 999000)
    assert budget.next_reset_at == datetime(2024, 5, 25, 23, 59, 59, 999000)


def test_add_expense_updates_performance_snapshot() -> None:
    budget = _budget(spent=200)
    budgets.add_expense(budget, 100, datetime(2024, 6, 10, 12, 0))

    snapshot = budget.performance.current_period
    assert budget.spent == 300
    assert snapshot.days_elapsed == 10
    assert snapshot.days_remaining == 21
    assert snapshot.average_daily_spend == pytest.approx(30)
    assert snapshot.projected_spend == 900
    assert snapshot.adherence_score == 100


def test_reset_archives_period_and_clears_alerts() -> None:
    budget = _budget(spent=500)
    budget.alert_thresholds.warning.triggered = True
    now = datetime(2024, 7, 1, 9, 0)

    budgets.reset_for_new_period(budget, now)

    closed = budget.performance.historical[-1]
    assert closed.start == datetime(2024, 6, 1)
    assert closed.budgeted == 1000
    assert closed.spent == 500
    assert closed.savings == 500
    assert closed.adherence_score == 100
    assert closed.note == "Auto-reset on 2024-07-01T09:00:00"
    assert budget.spent == 0
    assert budget.period.start == datetime(2024, 7, 1)
    assert budget.period.end == datetime(2024, 7, 31, 23, 59, 59, 999000)
    assert budget.last_reset_at == now
    assert budget.next_reset_at == datetime(2024, 8, 31, 23, 59, 59, 999000)
    assert budget.alert_thresholds.warning.triggered is False


def test_roll_forward_only_after_period_end() -> None:
    budget = _budget(spent=300)

    assert budgets.roll_forward_if_due(budget, datetime(2024, 6, 30, 23, 0)) is False
    assert budget.spent == 300

    assert budgets.roll_forward_if_due(budget, datetime(2024, 7, 15, 9, 0)) is True
    assert budget.spent == 0
    assert budget.period.start == datetime(2024, 7, 1)
    assert budget.performance.historical[-1].spent == 300

    assert budgets.roll_forward_if_due(budget, datetime(2024, 7, 16, 9, 0)) is False


def test_roll_forward_skips_manual_budgets() -> None:
    budget = _budget(spent=300, period=JUNE.model_copy(update={"auto_reset": False}))

    assert budgets.roll_forward_if_due(budget, datetime(2024, 7, 15, 9, 0)) is False
    assert budget.period.start == datetime(2024, 6, 1)


def test_strict_mode_blocks_before_other_rules() -> None:
    budget = _budget(
        spent=1000,
        rules=BudgetRules(strict_mode=True),
        emotional_controls=EmotionalControls(enabled=True, restricted_moods=["stressed"]),
    )

    decision = budgets.is_expense_allowed(budget, _expense("stressed"))

    assert decision.allowed is False
    assert decision.reason == "Budget exceeded and strict mode is enabled"


def test_restricted_mood_blocks_spending() -> None:
    budget = _budget(
        emotional_controls=EmotionalControls(enabled=True, restricted_moods=["stressed"])
    )

    blocked = budgets.is_expense_allowed(budget, _expense("stressed"))
    allowed = budgets.is_expense_allowed(budget, _expense("happy"))

    assert blocked.reason == "Spending restricted during stressed mood"
    assert allowed.allowed is True
    assert allowed.reason is None


def test_time_window_blocks_spending_on_listed_days() -> None:
    budget = _budget(
        rules=BudgetRules(
            time_restrictions=TimeRestrictions(
                enabled=True,
                restricted_hours=[
                    TimeRestriction(days_of_week=["Saturday"], start="22:00", end="23:59")
                ],
            )
        )
    )
    saturday_night = datetime(2024, 6, 15, 22, 30)
    saturday_noon = datetime(2024, 6, 15, 12, 0)
    sunday_night = datetime(2024, 6, 16, 22, 30)

    assert budgets.is_expense_allowed(budget, _expense(), saturday_night).reason == (
        "Spending restricted during this time"
    )
    assert budgets.is_expense_allowed(budget, _expense(), saturday_noon).allowed
    assert budgets.is_expense_allowed(budget, _expense(), sunday_night).allowed


def test_alerts_fire_once_per_level() -> None:
    budget = _budget(spent=950)
    now = datetime(2024, 6, 20, 9, 0)

    assert budgets.evaluate_alerts(budget, now) == BudgetStatus.critical
    assert budget.alert_thresholds.warning.triggered is True
    assert budget.alert_thresholds.critical.last_triggered == now
    assert budgets.evaluate_alerts(budget, now) is None

    budget.spent = 1000
    assert budgets.evaluate_alerts(budget, now) == BudgetStatus.exceeded
    assert budgets.evaluate_alerts(_budget(spent=100), now) is None
