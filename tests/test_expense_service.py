from datetime import datetime

import pytest
from sqlalchemy.orm import Session

from documents import EmotionalControls, Mood, Vendor
from errors import ExpenseNotAllowed, NotFoundError, ValidationError
from models import BudgetCategory, ExpenseCategory, User
from notifications import NotificationService
from schemas import BudgetIn, ExpenseIn, ExpenseUpdateIn
from services import BudgetService, ExpenseService, resolve_category

NOW = datetime(2024, 6, 10, 12, 0)


def _expense_in(**overrides) -> ExpenseIn:
    fields = {
        "amount": 750,
        "description": "Weekly groceries",
        "category": "food",
        "date": NOW,
    }
    fields.update(overrides)
    return ExpenseIn(**fields)


def test_create_accrues_to_matching_budgets_and_alerts(
    session: Session, user: User, push
) -> None:
    budgets = BudgetService(session, user.id)
    food = budgets.create(BudgetIn(name="Food", category="food", amount=1000), NOW)
    total = budgets.create(BudgetIn(name="All", category="total", amount=5000), NOW)
    travel = budgets.create(BudgetIn(name="Trips", category="travel", amount=800), NOW)

    service = ExpenseService(session, user.id, NotificationService(push))
    expense = service.create(_expense_in(), NOW)

    assert expense.id is not None
    assert expense.category == ExpenseCategory.food
    assert expense.emotional_context.day_of_week == "monday"
    assert food.spent == 750
    assert total.spent == 750
    assert travel.spent == 0
    assert food.performance.current_period.days_elapsed == 10
    assert food.alert_thresholds.warning.triggered is True

    alerts = push.named("budgetAlert")
    assert alerts == [{"message": "Budget 'Food' is warning: 75% of 1000.00 INR spent."}]
    assert push.events[0][0] == "auth0|alice"


def test_budget_outside_its_period_is_not_charged(session: Session, user: User) -> None:
    food = BudgetService(session, user.id).create(
        BudgetIn(name="Food", category="food", amount=1000), NOW
    )

    ExpenseService(session, user.id).create(
        _expense_in(date=datetime(2024, 5, 30, 12, 0)), NOW
    )

    assert food.spent == 0


def test_offset_dates_are_stored_as_local_wall_time(
    session: Session, user: User
) -> None:
    food = BudgetService(session, user.id).create(
        BudgetIn(name="Food", category="food", amount=1000), NOW
    )
    service = ExpenseService(session, user.id)

    expense = service.create(_expense_in(date="2024-06-10T06:30:00.000Z"), NOW)

    assert expense.date == datetime(2024, 6, 10, 12, 0)
    assert expense.date.tzinfo is None
    assert food.spent == 750

    updated = service.update(
        expense.id, ExpenseUpdateIn(date="2024-06-11T04:30:00+00:00"), NOW
    )
    assert updated.date == datetime(2024, 6, 11, 10, 0)


def test_expense_after_period_end_rolls_budget_forward(
    session: Session, user: User
) -> None:
    food = BudgetService(session, user.id).create(
        BudgetIn(name="Food", category="food", amount=1000), NOW
    )
    july = datetime(2024, 7, 2, 10, 0)

    ExpenseService(session, user.id).create(_expense_in(amount=200, date=july), july)

    assert food.period.start == datetime(2024, 7, 1)
    assert food.spent == 200
    assert food.performance.historical[-1].spent == 0


def test_blocked_expense_is_not_recorded(session: Session, user: User) -> None:
    budget = BudgetService(session, user.id).create(
        BudgetIn(
            name="Fun",
            category="entertainment",
            amount=500,
            emotional_controls=EmotionalControls(enabled=True, restricted_moods=["bored"]),
        ),
        NOW,
    )
    service = ExpenseService(session, user.id)

    with pytest.raises(ExpenseNotAllowed) as exc_info:
        service.create(
            _expense_in(category="entertainment", mood=Mood(tag="bored")), NOW
        )

    assert exc_info.value.budget_id == budget.id
    assert exc_info.value.reason == "Spending restricted during bored mood"
    assert service.list() == []
    assert budget.spent == 0


def test_late_night_purchase_sends_emotional_alert(
    session: Session, user: User, push
) -> None:
    service = ExpenseService(session, user.id, NotificationService(push))

    expense = service.create(
        _expense_in(amount=2500, category="shopping", date=datetime(2024, 6, 15, 23, 30)),
        NOW,
    )

    assert expense.emotional_context.is_impulsive is True
    assert len(push.named("emotionalSpendingAlert")) == 1


def test_duplicate_transaction_id_is_rejected(session: Session, user: User) -> None:
    service = ExpenseService(session, user.id)
    service.create(_expense_in(transaction_id="sms-42"), NOW)

    with pytest.raises(ValidationError) as exc_info:
        service.create(_expense_in(transaction_id="sms-42"), NOW)

    assert "transaction_id" in exc_info.value.field_errors


def test_unknown_category_suggests_closest_match(session: Session, user: User) -> None:
    service = ExpenseService(session, user.id)

    with pytest.raises(ValidationError) as exc_info:
        service.create(_expense_in(category="fod"), NOW)
    assert exc_info.value.field_errors["category"] == (
        "Unknown category 'fod'. Did you mean 'food'?"
    )

    with pytest.raises(ValidationError) as exc_info:
        resolve_category("zzzzzzzzzz", BudgetCategory)
    assert "Did you mean" not in exc_info.value.field_errors["category"]

    assert resolve_category(" Food ", ExpenseCategory) == ExpenseCategory.food


def test_soft_delete_and_restore(session: Session, user: User) -> None:
    service = ExpenseService(session, user.id)
    expense = service.create(_expense_in(), NOW)

    service.soft_delete(expense.id, NOW)

    with pytest.raises(NotFoundError):
        service.get(expense.id)
    assert service.list() == []
    assert [e.id for e in service.list(include_deleted=True)] == [expense.id]
    assert expense.deleted_at == NOW

    restored = service.restore(expense.id)
    assert restored.is_deleted is False
    assert restored.deleted_at is None
    assert [e.id for e in service.list()] == [expense.id]


def test_other_users_expenses_are_hidden(session: Session, user: User) -> None:
    other = User(subject="auth0|bob", name="Bob", email="bob@example.com")
    session.add(other)
    session.commit()
    expense = ExpenseService(session, user.id).create(_expense_in(), NOW)

    with pytest.raises(NotFoundError):
        ExpenseService(session, other.id).get(expense.id)


def test_update_recomputes_emotional_context_and_bumps_version(
    session: Session, user: User
) -> None:
    service = ExpenseService(session, user.id)
    expense = service.create(
        _expense_in(amount=2000, date=datetime(2024, 6, 15, 23, 30)), NOW
    )
    assert expense.emotional_context.is_impulsive is True

    updated = service.update(
        expense.id,
        ExpenseUpdateIn(date=datetime(2024, 6, 17, 10, 0), category="dining"),
    )

    assert updated.category == ExpenseCategory.dining
    assert updated.emotional_context.is_impulsive is False
    assert updated.emotional_context.time_of_day.value == "morning"
    assert updated.version == 2


def test_duplicate_copies_without_identity_or_budget_accrual(
    session: Session, user: User
) -> None:
    food = BudgetService(session, user.id).create(
        BudgetIn(name="Food", category="food", amount=1000), NOW
    )
    service = ExpenseService(session, user.id)
    original = service.create(
        _expense_in(
            amount=100,
            transaction_id="mail-7",
            vendor=Vendor(name="FreshMart"),
            is_recurring=True,
        ),
        NOW,
    )

    later = datetime(2024, 6, 12, 9, 0)
    copy = service.duplicate(original.id, later)

    assert copy.id != original.id
    assert copy.description == "Weekly groceries (Copy)"
    assert copy.transaction_id is None
    assert copy.is_recurring is False
    assert copy.date == later
    assert copy.vendor.name == "FreshMart"
    assert copy.version == 1
    assert food.spent == 100


def test_duplicate_truncates_long_description(session: Session, user: User) -> None:
    service = ExpenseService(session, user.id)
    original = service.create(_expense_in(description="x" * 500), NOW)

    copy = service.duplicate(original.id, NOW)

    assert len(copy.description) == 500
    assert copy.description.endswith(" (Copy)")


def test_duplicate_keeps_late_night_flag_of_the_original(
    session: Session, user: User
) -> None:
    service = ExpenseService(session, user.id)
    original = service.create(
        _expense_in(amount=2000, date=datetime(2024, 6, 15, 23, 30)), NOW
    )

    copy = service.duplicate(original.id, datetime(2024, 6, 16, 10, 0))

    assert copy.emotional_context.is_impulsive is True
    assert (
        copy.emotional_context.impulsive_score
        == original.emotional_context.impulsive_score
    )
    assert copy.emotional_context.time_of_day.value == "morning"


def test_list_filters_and_recurring(session: Session, user: User) -> None:
    service = ExpenseService(session, user.id)
    service.create(_expense_in(date=datetime(2024, 6, 1, 9, 0)), NOW)
    service.create(
        _expense_in(category="utilities", description="Internet", is_recurring=True),
        NOW,
    )

    utilities = service.list(category="utilities")
    june_first = service.list(end=datetime(2024, 6, 2))

    assert [e.description for e in utilities] == ["Internet"]
    assert [e.date.day for e in june_first] == [1]
    assert [e.description for e in service.recurring()] == ["Internet"]
    assert [e.description for e in service.recent(limit=1)] == ["Internet"]
