from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from finance_core.exceptions import (
    PermissionDeniedError,
    RecordNotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from finance_core.services import (
    BudgetService,
    CategoryService,
    ExpenseService,
    InvestmentService,
    SavingsGoalService,
    SettingsService,
)

from .conftest import NOW


@pytest.fixture
def expenses(store, clock):
    return ExpenseService(store, clock)


def _expense(service, user="u1", **overrides):
    payload = {
        "amount": "12.50",
        "category": "Food",
        "description": "Lunch",
        "date": "2026-03-10T12:00:00Z",
        "tags": ["Work"],
    }
    payload.update(overrides)
    return service.add(user, payload)


def test_add_expense_assigns_id_owner_and_created_at(expenses):
    expense = _expense(expenses)
    assert expense.id
    assert expense.user_id == "u1"
    assert expense.amount == Decimal("12.50")
    assert expense.tags == ["work"]
    assert expense.created_at == NOW
    assert expenses.get("u1", expense.id) == expense


def test_expense_requires_description_and_positive_amount(expenses):
    with pytest.raises(ValidationError):
        _expense(expenses, description="  ")
    with pytest.raises(ValidationError):
        _expense(expenses, amount="0")
    with pytest.raises(ValidationError):
        _expense(expenses, category="")


def test_missing_user_is_unauthenticated(expenses):
    with pytest.raises(UnauthenticatedError):
        _expense(expenses, user="")
    with pytest.raises(UnauthenticatedError):
        expenses.list("")


def test_records_are_scoped_to_their_owner(expenses):
    expense = _expense(expenses, user="u1")
    assert expenses.list("u2") == []
    with pytest.raises(PermissionDeniedError):
        expenses.get("u2", expense.id)
    with pytest.raises(PermissionDeniedError):
        expenses.update("u2", expense.id, {"amount": "1"})
    with pytest.raises(PermissionDeniedError):
        expenses.delete("u2", expense.id)
    with pytest.raises(RecordNotFoundError):
        expenses.get("u1", "does-not-exist")


def test_partial_update_keeps_identity_fields(expenses, clock):
    expense = _expense(expenses)
    clock.advance(days=1)
    updated = expenses.update(
        "u1", expense.id, {"amount": "20", "id": "hijack", "user_id": "u2", "created_at": "2000-01-01"}
    )
    assert updated.id == expense.id
    assert updated.user_id == "u1"
    assert updated.created_at == expense.created_at
    assert updated.amount == Decimal("20.00")
    assert updated.description == "Lunch"
    assert expenses.get("u1", expense.id).amount == Decimal("20.00")


def test_delete_expense(expenses):
    expense = _expense(expenses)
    expenses.delete("u1", expense.id)
    with pytest.raises(RecordNotFoundError):
        expenses.get("u1", expense.id)


def test_expense_filters_and_total(expenses):
    _expense(expenses, amount="10", date="2026-02-20T10:00:00Z", category="Food")
    _expense(expenses, amount="5.25", date="2026-03-02T10:00:00Z", category="food", tags=["home"])
    _expense(expenses, amount="30", date="2026-03-05T10:00:00Z", category="Travel")

    march = expenses.list("u1", start="2026-03-01", end="2026-03-31T23:59:59Z")
    assert [e.amount for e in march] == [Decimal("5.25"), Decimal("30.00")]

    food = expenses.list("u1", category="FOOD")
    assert len(food) == 2
    assert expenses.total("u1", category="food") == Decimal("15.25")
    assert [e.category for e in expenses.list("u1", tag="home")] == ["food"]
    assert expenses.total("u1") == sum(e.amount for e in expenses.list("u1"))


def test_expense_list_is_sorted_by_date(expenses):
    later = _expense(expenses, date="2026-03-09T00:00:00Z")
    earlier = _expense(expenses, date="2026-03-01T00:00:00Z")
    assert [e.id for e in expenses.list("u1")] == [earlier.id, later.id]


def test_rename_category_only_touches_owner(expenses):
    _expense(expenses, user="u1", category="Food")
    other = _expense(expenses, user="u2", category="Food")
    assert expenses.rename_category("u1", "food", "Groceries") == 1
    assert [e.category for e in expenses.list("u1")] == ["Groceries"]
    assert expenses.get("u2", other.id).category == "Food"
    assert expenses.is_category_in_use("u1", "groceries")
    assert not expenses.is_category_in_use("u1", "Food")


def test_category_names_unique_per_user(store, clock):
    categories = CategoryService(store, clock)
    food = categories.add("u1", {"name": "Food", "color": "#FF0000", "icon": "🍕"})
    assert food.color == "#ff0000"
    with pytest.raises(ValidationError, match="unique"):
        categories.add("u1", {"name": " food ", "color": "#00ff00", "icon": "🍕"})
    # Another user may reuse the name.
    categories.add("u2", {"name": "Food", "color": "#00ff00", "icon": "🍕"})
    # Renaming to its own name is fine.
    assert categories.update("u1", food.id, {"name": "FOOD"}).name == "FOOD"


def test_category_validation(store, clock):
    categories = CategoryService(store, clock)
    with pytest.raises(ValidationError):
        categories.add("u1", {"name": "F", "color": "#000000", "icon": "x"})
    with pytest.raises(ValidationError):
        categories.add("u1", {"name": "Food", "color": "red", "icon": "x"})
    with pytest.raises(ValidationError):
        categories.add("u1", {"name": "Food", "color": "#000000", "icon": ""})


def test_categories_sorted_by_name(store, clock):
    categories = CategoryService(store, clock)
    for name in ("travel", "Bills", "food"):
        categories.add("u1", {"name": name, "color": "#000000", "icon": "x"})
    assert [c.name for c in categories.list("u1")] == ["Bills", "food", "travel"]


def test_budget_service(store, clock):
    budgets = BudgetService(store, clock)
    budget = budgets.add(
        "u1", {"category": "Food", "amount": "200", "period": "Monthly", "start_date": "2026-03-01"}
    )
    assert budget.period == "monthly"
    assert budget.start_date == datetime(2026, 3, 1, tzinfo=timezone.utc)
    budgets.add("u1", {"category": "Fun", "amount": "50", "period": "weekly", "start_date": "2026-03-02"})

    assert [b.category for b in budgets.list("u1", period="weekly")] == ["Fun"]
    assert [b.category for b in budgets.list("u1", category="food")] == ["Food"]
    with pytest.raises(ValidationError):
        budgets.add("u1", {"category": "Food", "amount": "10", "period": "yearly", "start_date": "2026-03-01"})
    assert budgets.rename_category("u1", "FOOD", "Groceries") == 1
    assert budgets.get("u1", budget.id).category == "Groceries"


def test_savings_goal_contributions(store, clock):
    goals = SavingsGoalService(store, clock)
    goal = goals.add("u1", {"name": "Holiday", "target_amount": "1000", "deadline": "2026-08-01"})
    assert goal.current_amount == Decimal("0.00")
    assert goal.deadline == date(2026, 8, 1)

    goal = goals.contribute("u1", goal.id, "250")
    goal = goals.contribute("u1", goal.id, "100.50")
    assert goal.current_amount == Decimal("350.50")
    assert goal.progress == Decimal("35.05")
    assert goals.get("u1", goal.id).current_amount == Decimal("350.50")

    with pytest.raises(ValidationError):
        goals.contribute("u1", goal.id, "-5")
    with pytest.raises(PermissionDeniedError):
        goals.contribute("u2", goal.id, "5")


def test_concurrent_contributions_are_all_applied(store, clock):
    goals = SavingsGoalService(store, clock)
    goal = goals.add("u1", {"name": "Car", "target_amount": "500", "deadline": "2027-01-01"})

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda _: goals.contribute("u1", goal.id, "5"), range(40)))

    assert goals.get("u1", goal.id).current_amount == Decimal("200.00")


def test_contribution_to_missing_goal(store, clock):
    with pytest.raises(RecordNotFoundError):
        SavingsGoalService(store, clock).contribute("u1", "missing", "5")


def test_savings_goals_sorted_by_deadline(store, clock):
    goals = SavingsGoalService(store, clock)
    goals.add("u1", {"name": "Later", "target_amount": "10", "deadline": "2027-01-01"})
    goals.add("u1", {"name": "Sooner", "target_amount": "10", "deadline": "2026-06-01"})
    assert [g.name for g in goals.list("u1")] == ["Sooner", "Later"]


def test_investment_cost_basis_and_type_filter(store, clock):
    investments = InvestmentService(store, clock)
    btc = investments.add(
        "u1", {"name": "Bitcoin", "type": "crypto", "quantity": "0.5", "purchase_price": "30000"}
    )
    investments.add(
        "u1", {"name": "Index Fund", "type": "Mutual Fund", "quantity": 10, "purchase_price": "12.34"}
    )
    assert btc.cost_basis == Decimal("15000.00")
    assert investments.get("u1", btc.id).quantity == Decimal("0.5")
    assert [i.name for i in investments.list("u1", type="mutual fund")] == ["Index Fund"]
    assert investments.list("u1", type="mutual fund")[0].to_dict()["quantity"] == "10"
    with pytest.raises(ValidationError):
        investments.add("u1", {"name": "Gold", "type": "metal", "quantity": 1, "purchase_price": 1})


def test_settings_defaults_and_partial_update(store, clock):
    settings = SettingsService(store, clock)
    defaults = settings.get("u1")
    assert (defaults.theme, defaults.currency) == ("system", "USD")
    assert not defaults.email_notifications and not defaults.push_notifications

    updated = settings.update("u1", {"theme": "dark", "notifications": {"email": True}})
    assert updated.theme == "dark"
    assert updated.email_notifications is True
    assert updated.push_notifications is False
    assert updated.updated_at == NOW
    assert settings.get("u1") == updated
    assert settings.get("u2").theme == "system"

    with pytest.raises(ValidationError):
        settings.update("u1", {"theme": "neon"})
    with pytest.raises(ValidationError):
        settings.update("u1", {"notifications": {"push": "yes"}})
