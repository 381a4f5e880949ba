from datetime import datetime
from typing import Optional

from documents import EmotionalContext, TimeOfDay
from periods import weekday_name

IMPULSIVE_AMOUNT = 1000


def time_of_day(hour: int) -> TimeOfDay:
    if 5 <= hour < 12:
        return TimeOfDay.morning
    if 12 <= hour < 17:
        return TimeOfDay.afternoon
    if 17 <= hour < 21:
        return TimeOfDay.evening
    if hour >= 21 or hour < 2:
        return TimeOfDay.night
    return TimeOfDay.late_night


def derive_emotional_context(
    when: datetime,
    amount: float,
    context: Optional[EmotionalContext] = None,
    *,
    on_update: bool = False,
) -> EmotionalContext:
    """Return ``context`` refreshed for an expense dated ``when``.

    Holiday and weather fields pass through. When the late-night heuristic
    does not fire, an update clears the impulsive fields while a create
    leaves whatever the caller supplied.
    """
    derived = (context or EmotionalContext()).model_copy()
    hour = when.hour
    derived.time_of_day = time_of_day(hour)
    derived.day_of_week = weekday_name(when)
    derived.is_weekend = when.weekday() >= 5

    if (hour >= 22 or hour <= 2) and float(amount) > IMPULSIVE_AMOUNT:
        derived.is_impulsive = True
        derived.impulsive_score = min(
            0.8, (0.7 if hour >= 23 else 0.5) + float(amount) / 10000
        )
    elif on_update:
        derived.is_impulsive = False
        derived.impulsive_score = None
    return derived
