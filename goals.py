"""Goal lifecycle: contributions, analytics, suggestions and risk.

Like ``budgets``, everything here mutates a ``Goal`` in memory and leaves
the commit to ``services.GoalService``.
"""

import math
from collections import defaultdict
from datetime import datetime
from typing import Optional

from database import touch
from documents import (
    Contribution,
    ContributionFrequency,
    ContributionSource,
    GoalStatus,
    ProgressEntry,
    RiskAssessment,
    RiskLevel,
    Suggestion,
    VelocityTrend,
)
from models import Goal
from periods import DAY, add_months, ceil_days, local_now

RECURRING_STEP = {
    ContributionFrequency.daily: DAY,
    ContributionFrequency.weekly: 7 * DAY,
}
RECURRING_MONTHS = {
    ContributionFrequency.monthly: 1,
    ContributionFrequency.quarterly: 3,
}


def add_contribution(
    goal: Goal,
    amount: float,
    source: ContributionSource = ContributionSource.manual,
    description: str = "",
    transaction_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> None:
    now = now or local_now()
    source = ContributionSource(source)
    goal.current_amount = float(goal.current_amount) + float(amount)
    goal.tracking.contributions.append(
        Contribution(
            amount=amount,
            date=now,
            source=source,
            description=description,
            transaction_id=transaction_id,
        )
    )
    goal.tracking.progress.append(
        ProgressEntry(
            date=now,
            amount=float(goal.current_amount),
            percentage=goal.progress_percentage,
            note=f"Added {amount:g} via {source.value}",
        )
    )
    update_analytics(goal, now)
    touch(goal, "tracking")


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0


def update_analytics(goal: Goal, now: Optional[datetime] = None) -> None:
    contributions = goal.tracking.contributions
    if not contributions:
        return
    now = now or local_now()
    analytics = goal.tracking.analytics

    monthly: dict[tuple[int, int], float] = defaultdict(float)
    for contribution in contributions:
        monthly[(contribution.date.year, contribution.date.month)] += contribution.amount
    average = _mean(list(monthly.values()))
    analytics.average_monthly_contribution = average

    remaining = goal.remaining_amount
    if average > 0 and remaining > 0:
        # Whole months only: the fractional part of the estimate is dropped.
        analytics.projected_completion_date = add_months(
            now, math.trunc(remaining / average)
        )
    else:
        analytics.projected_completion_date = None

    if len(contributions) >= 3:
        recent_mean = _mean([c.amount for c in contributions[-3:]])
        older_mean = _mean([c.amount for c in contributions[-6:-3]])
        if recent_mean > older_mean * 1.1:
            analytics.velocity_trend = VelocityTrend.accelerating
        elif recent_mean < older_mean * 0.9:
            analytics.velocity_trend = VelocityTrend.slowing
        else:
            analytics.velocity_trend = VelocityTrend.stable
    else:
        analytics.velocity_trend = None

    analytics.last_calculated = now
    touch(goal, "tracking")


def generate_suggestions(
    goal: Goal, now: Optional[datetime] = None
) -> list[Suggestion]:
    now = now or local_now()
    suggestions: list[Suggestion] = []

    if goal.progress_percentage < 25 and goal.days_remaining(now) < 30:
        suggestions.append(
            Suggestion(
                type="urgency",
                message=(
                    "Your goal is behind schedule. Consider increasing your "
                    "contribution frequency."
                ),
                impact=0.8,
                confidence=0.9,
                created_at=now,
            )
        )

    if goal.tracking.analytics.velocity_trend == VelocityTrend.slowing:
        suggestions.append(
            Suggestion(
                type="motivation",
                message=(
                    "Your savings velocity is decreasing. Try setting up "
                    "automated contributions."
                ),
                impact=0.6,
                confidence=0.7,
                created_at=now,
            )
        )

    upcoming = next((m for m in goal.milestones if not m.achieved), None)
    current = float(goal.current_amount)
    if upcoming is not None and current >= upcoming.amount * 0.9:
        suggestions.append(
            Suggestion(
                type="milestone",
                message=(
                    f"You're almost at your {upcoming.percentage:g}% milestone! "
                    f"Just {upcoming.amount - current:g} more to go."
                ),
                impact=0.5,
                confidence=1.0,
                created_at=now,
            )
        )

    goal.ai_optimization.suggestions = suggestions
    touch(goal, "ai_optimization")
    return suggestions


def _escalate(level: RiskLevel) -> RiskLevel:
    return RiskLevel.high if level == RiskLevel.high else RiskLevel.medium


def calculate_risk_assessment(
    goal: Goal, now: Optional[datetime] = None
) -> RiskAssessment:
    now = now or local_now()
    factors: list[str] = []
    level = RiskLevel.low

    if goal.status == GoalStatus.overdue:
        factors.append("Goal is overdue")
        level = RiskLevel.high

    total_days = ceil_days(goal.timeline.target_date - goal.timeline.start_date)
    elapsed_days = ceil_days(now - goal.timeline.start_date)
    if total_days > 0:
        time_progress = elapsed_days / total_days
    else:
        time_progress = math.inf if elapsed_days > 0 else 0
    amount_progress = goal.progress_percentage / 100
    if time_progress > amount_progress + 0.2:
        factors.append("Progress is significantly behind schedule")
        level = _escalate(level)

    analytics = goal.tracking.analytics
    if analytics.velocity_trend == VelocityTrend.slowing:
        factors.append("Contribution velocity is decreasing")
        level = _escalate(level)

    average = analytics.average_monthly_contribution
    if average is not None and goal.required_daily_savings(now) > average / 30 * 2:
        factors.append("Required daily savings may be unrealistic")
        # Overrides an earlier "high" as well.
        level = RiskLevel.medium

    assessment = RiskAssessment(level=level, factors=factors, last_assessed=now)
    goal.ai_optimization.risk_assessment = assessment
    touch(goal, "ai_optimization")
    return assessment


def apply_status_rules(goal: Goal, now: Optional[datetime] = None) -> None:
    """Status and milestone bookkeeping run before every write of a goal."""
    now = now or local_now()
    current = float(goal.current_amount)

    if current >= float(goal.target_amount) and goal.status != GoalStatus.completed:
        goal.status = GoalStatus.completed
        goal.timeline.completed_date = now
        touch(goal, "timeline")
    elif now > goal.timeline.target_date and goal.status == GoalStatus.active:
        goal.status = GoalStatus.overdue

    reached = False
    for milestone in goal.milestones:
        if not milestone.achieved and current >= milestone.amount:
            milestone.achieved = True
            milestone.achieved_date = now
            reached = True
    if reached:
        touch(goal, "milestones")


def toggle_pause(goal: Goal) -> None:
    if goal.status == GoalStatus.active:
        goal.status = GoalStatus.paused
    elif goal.status == GoalStatus.paused:
        goal.status = GoalStatus.active


def cancel(goal: Goal, reason: str = "") -> None:
    goal.status = GoalStatus.cancelled
    note = f"Cancelled: {reason}"
    goal.notes = f"{goal.notes}\n\n{note}" if goal.notes else note


def archive(goal: Goal) -> None:
    goal.is_archived = True


def advance_recurring_contribution(goal: Goal) -> Optional[datetime]:
    recurring = goal.recurring_contribution
    current = recurring.next_contribution_date
    if current is None or recurring.frequency is None:
        return None
    if recurring.frequency in RECURRING_STEP:
        recurring.next_contribution_date = current + RECURRING_STEP[recurring.frequency]
    else:
        recurring.next_contribution_date = add_months(
            current, RECURRING_MONTHS[recurring.frequency]
        )
    touch(goal, "recurring_contribution")
    return recurring.next_contribution_date
