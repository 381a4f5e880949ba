from datetime import datetime

import pytest

from documents import EmotionalContext, TimeOfDay
from emotions import derive_emotional_context, time_of_day


@pytest.mark.parametrize(
    ("hour", "expected"),
    [
        (5, TimeOfDay.morning),
        (11, TimeOfDay.morning),
        (12, TimeOfDay.afternoon),
        (17, TimeOfDay.evening),
        (21, TimeOfDay.night),
        (1, TimeOfDay.night),
        (2, TimeOfDay.late_night),
        (4, TimeOfDay.late_night),
    ],
)
def test_time_of_day_buckets(hour: int, expected: TimeOfDay) -> None:
    assert time_of_day(hour) == expected


def test_late_night_large_purchase_is_impulsive() -> None:
    context = derive_emotional_context(datetime(2024, 6, 15, 23, 30), 2000)

    assert context.time_of_day == TimeOfDay.night
    assert context.day_of_week == "saturday"
    assert context.is_weekend is True
    assert context.is_impulsive is True
    assert context.impulsive_score == pytest.approx(0.8)


def test_impulsive_score_before_eleven() -> None:
    context = derive_emotional_context(datetime(2024, 6, 12, 22, 15), 1500)

    assert context.is_weekend is False
    assert context.impulsive_score == pytest.approx(0.65)


def test_small_or_daytime_purchases_are_not_impulsive() -> None:
    assert derive_emotional_context(datetime(2024, 6, 12, 23, 0), 900).is_impulsive is False
    assert derive_emotional_context(datetime(2024, 6, 12, 9, 0), 5000).is_impulsive is False


def test_update_clears_impulsive_flag_but_create_keeps_supplied_values() -> None:
    supplied = EmotionalContext(is_impulsive=True, impulsive_score=0.6, weather_condition="rain")
    morning = datetime(2024, 6, 12, 10, 0)

    created = derive_emotional_context(morning, 2000, supplied)
    updated = derive_emotional_context(morning, 2000, supplied, on_update=True)

    assert created.is_impulsive is True
    assert created.weather_condition == "rain"
    assert updated.is_impulsive is False
    assert updated.impulsive_score is None
    assert updated.weather_condition == "rain"
    assert supplied.time_of_day is None
