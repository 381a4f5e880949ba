from datetime import datetime

import pytest

import goals
from documents import (
    ContributionFrequency,
    ContributionSource,
    GoalStatus,
    Milestone,
    RecurringContribution,
    RiskLevel,
    Timeline,
    VelocityTrend,
)
from models import Goal, GoalType


def _goal(target: float = 10000, current: float = 0, **kwargs) -> Goal:
    timeline = kwargs.pop(
        "timeline",
        Timeline(start_date=datetime(2024, 1, 1), target_date=datetime(2024, 12, 31)),
    )
    return Goal(
        user_id=1,
        title="New laptop",
        type=GoalType.purchase,
        target_amount=target,
        current_amount=current,
        timeline=timeline,
        **kwargs,
    )


def test_contribution_that_reaches_target_completes_goal() -> None:
    goal = _goal(current=9600)
    now = datetime(2024, 6, 1, 10, 0)

    goals.add_contribution(goal, 500, now=now)
    goals.apply_status_rules(goal, now)

    assert goal.current_amount == 10100
    assert goal.progress_percentage == 100
    assert goal.remaining_amount == 0
    assert goal.status == GoalStatus.completed
    assert goal.timeline.completed_date == now
    entry = goal.tracking.progress[-1]
    assert entry.amount == 10100
    assert entry.percentage == 100
    assert entry.note == "Added 500 via manual"


def test_contribution_records_source_and_transaction() -> None:
    goal = _goal()
    goals.add_contribution(
        goal,
        250,
        source=ContributionSource.bonus,
        description="Year-end bonus",
        transaction_id="txn-1",
        now=datetime(2024, 3, 1),
    )

    contribution = goal.tracking.contributions[0]
    assert contribution.source == ContributionSource.bonus
    assert contribution.description == "Year-end bonus"
    assert contribution.transaction_id == "txn-1"
    assert goal.tracking.progress[0].note == "Added 250 via bonus"


def test_analytics_average_projection_and_velocity() -> None:
    goal = _goal()
    goals.add_contribution(goal, 100, now=datetime(2024, 1, 10))
    goals.add_contribution(goal, 100, now=datetime(2024, 1, 20))
    assert goal.tracking.analytics.velocity_trend is None

    now = datetime(2024, 2, 5)
    goals.add_contribution(goal, 200, now=now)

    analytics = goal.tracking.analytics
    assert analytics.average_monthly_contribution == pytest.approx(200)
    assert analytics.projected_completion_date == datetime(2028, 2, 5)
    assert analytics.velocity_trend == VelocityTrend.accelerating
    assert analytics.last_calculated == now


@pytest.mark.parametrize(
    ("amounts", "trend"),
    [
        ([100, 100, 100, 100, 100, 100], VelocityTrend.stable),
        ([100, 100, 100, 50, 50, 50], VelocityTrend.slowing),
        ([50, 50, 50, 100, 100, 100], VelocityTrend.accelerating),
    ],
)
def test_velocity_compares_last_three_with_previous_three(
    amounts: list[float], trend: VelocityTrend
) -> None:
    goal = _goal(target=100000)
    for day, amount in enumerate(amounts, start=1):
        goals.add_contribution(goal, amount, now=datetime(2024, 3, day))

    assert goal.tracking.analytics.velocity_trend == trend


def test_suggestions_cover_urgency_and_milestone() -> None:
    now = datetime(2024, 6, 1)
    goal = _goal(
        current=1000,
        timeline=Timeline(start_date=datetime(2024, 1, 1), target_date=datetime(2024, 6, 11)),
        milestones=[Milestone(percentage=10, amount=1100)],
    )

    suggestions = goals.generate_suggestions(goal, now)

    assert [s.type for s in suggestions] == ["urgency", "milestone"]
    assert suggestions[0].impact == 0.8
    assert suggestions[1].message == (
        "You're almost at your 10% milestone! Just 100 more to go."
    )
    assert goal.ai_optimization.suggestions == suggestions


def test_slowing_goal_gets_motivation_suggestion() -> None:
    goal = _goal()
    goal.tracking.analytics.velocity_trend = VelocityTrend.slowing

    suggestions = goals.generate_suggestions(goal, datetime(2024, 2, 1))

    assert [s.type for s in suggestions] == ["motivation"]


def test_fresh_goal_is_low_risk() -> None:
    goal = _goal()

    assessment = goals.calculate_risk_assessment(goal, datetime(2024, 1, 1))

    assert assessment.level == RiskLevel.low
    assert assessment.factors == []


def test_unrealistic_savings_forces_medium_even_when_overdue() -> None:
    goal = _goal(
        timeline=Timeline(start_date=datetime(2024, 1, 1), target_date=datetime(2024, 3, 1)),
        status=GoalStatus.overdue,
    )
    goal.tracking.analytics.average_monthly_contribution = 300
    now = datetime(2024, 2, 20)

    first = goals.calculate_risk_assessment(goal, now)
    second = goals.calculate_risk_assessment(goal, now)

    assert first.level == RiskLevel.medium
    assert first.factors == [
        "Goal is overdue",
        "Progress is significantly behind schedule",
        "Required daily savings may be unrealistic",
    ]
    assert second == first
    assert goal.ai_optimization.risk_assessment == first


def test_overdue_goal_without_contribution_history_stays_high() -> None:
    goal = _goal(
        timeline=Timeline(start_date=datetime(2024, 1, 1), target_date=datetime(2024, 3, 1)),
        status=GoalStatus.overdue,
    )

    assessment = goals.calculate_risk_assessment(goal, datetime(2024, 2, 20))

    assert assessment.level == RiskLevel.high


def test_repeated_assessment_gives_same_level_and_factors() -> None:
    goal = _goal(current=1000)
    now = datetime(2024, 7, 1)

    first = goals.calculate_risk_assessment(goal, now)
    second = goals.calculate_risk_assessment(goal, now)

    assert first.level == RiskLevel.medium
    assert first.factors == ["Progress is significantly behind schedule"]
    assert second.level == first.level
    assert second.factors == first.factors


def test_same_day_goal_is_behind_schedule_once_the_day_passes() -> None:
    goal = _goal(
        timeline=Timeline(start_date=datetime(2024, 3, 1), target_date=datetime(2024, 3, 1))
    )

    on_the_day = goals.calculate_risk_assessment(goal, datetime(2024, 3, 1))
    assert on_the_day.factors == []

    next_day = goals.calculate_risk_assessment(goal, datetime(2024, 3, 2))
    assert next_day.level == RiskLevel.medium
    assert next_day.factors == ["Progress is significantly behind schedule"]


def test_status_rules_mark_milestones_and_overdue() -> None:
    goal = _goal(
        current=3000,
        milestones=[
            Milestone(percentage=25, amount=2500),
            Milestone(percentage=50, amount=5000),
        ],
    )
    now = datetime(2025, 1, 5)

    goals.apply_status_rules(goal, now)

    assert goal.milestones[0].achieved is True
    assert goal.milestones[0].achieved_date == now
    assert goal.milestones[1].achieved is False
    assert goal.status == GoalStatus.overdue


def test_status_rules_leave_paused_goal_alone_after_deadline() -> None:
    goal = _goal(status=GoalStatus.paused)

    goals.apply_status_rules(goal, datetime(2025, 1, 5))

    assert goal.status == GoalStatus.paused


def test_pause_toggle_cancel_and_archive() -> None:
    goal = _goal(notes="Saving slowly")

    goals.toggle_pause(goal)
    assert goal.status == GoalStatus.paused
    goals.toggle_pause(goal)
    assert goal.status == GoalStatus.active

    goals.cancel(goal, "Changed plans")
    assert goal.status == GoalStatus.cancelled
    assert goal.notes == "Saving slowly\n\nCancelled: Changed plans"
    goals.toggle_pause(goal)
    assert goal.status == GoalStatus.cancelled

    goals.archive(goal)
    assert goal.is_archived is True


def test_recurring_contribution_dates_advance() -> None:
    monthly = _goal(
        recurring_contribution=RecurringContribution(
            enabled=True,
            amount=500,
            frequency=ContributionFrequency.monthly,
            next_contribution_date=datetime(2024, 1, 31),
        )
    )
    weekly = _goal(
        recurring_contribution=RecurringContribution(
            enabled=True,
            amount=50,
            frequency=ContributionFrequency.weekly,
            next_contribution_date=datetime(2024, 1, 31),
        )
    )

    assert goals.advance_recurring_contribution(monthly) == datetime(2024, 2, 29)
    assert goals.advance_recurring_contribution(weekly) == datetime(2024, 2, 7)
    assert goals.advance_recurring_contribution(_goal()) is None


def test_required_daily_savings_and_velocity() -> None:
    goal = _goal(current=4000)
    now = datetime(2024, 12, 1)

    assert goal.days_remaining(now) == 30
    assert goal.required_daily_savings(now) == 200
    assert goal.required_daily_savings(datetime(2025, 2, 1)) == 0

    goals.add_contribution(goal, 100, now=datetime(2024, 3, 1))
    goals.add_contribution(goal, 200, now=datetime(2024, 3, 4))
    assert goal.current_velocity == pytest.approx(100)
