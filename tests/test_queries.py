from decimal import Decimal

import pytest

from finance_core.exceptions import ValidationError
from finance_core.queries import FinanceQueries


def _add_expense(queries: FinanceQueries, amount="10.00", category="Food", when="2026-03-10", user="u1"):
    return queries.create_expense(
        user, {"amount": amount, "category": category, "description": "x", "date": when}
    )


def test_mutations_invalidate_cached_lists(queries: FinanceQueries):
    assert queries.list_expenses("u1") == []
    expense = _add_expense(queries)
    assert [e.id for e in queries.list_expenses("u1")] == [expense.id]

    queries.update_expense("u1", expense.id, {"amount": "11"})
    assert queries.list_expenses("u1")[0].amount == Decimal("11.00")

    queries.delete_expense("u1", expense.id)
    assert queries.list_expenses("u1") == []


def test_reads_are_served_from_cache_until_invalidated(queries: FinanceQueries):
    _add_expense(queries)
    assert len(queries.list_expenses("u1")) == 1
    # A write that bypasses the facade is not visible until the cache goes stale.
    queries.expenses.add("u1", {"amount": "1", "category": "Food", "description": "x", "date": "2026-03-11"})
    assert len(queries.list_expenses("u1")) == 1
    queries.cache.invalidate(("expenses", "u1"))
    assert len(queries.list_expenses("u1")) == 2


def test_expenses_with_total_matches_listed_items(queries: FinanceQueries):
    _add_expense(queries, amount="10.10")
    _add_expense(queries, amount="5.05", category="Travel")
    _add_expense(queries, amount="2.00", when="2026-02-01")

    items, total = queries.expenses_with_total("u1", start="2026-03-01")
    assert total == Decimal("15.15")
    assert total == sum(e.amount for e in items)


def test_current_month_expenses_excludes_other_months(queries: FinanceQueries):
    _add_expense(queries, when="2026-03-01T00:00:00Z")
    _add_expense(queries, when="2026-04-01T00:00:00Z")
    _add_expense(queries, when="2026-02-28T23:59:59Z")
    march = queries.current_month_expenses("u1")
    assert [e.date.month for e in march] == [3]


def test_category_rename_cascades_to_expenses_and_budgets(queries: FinanceQueries):
    category = queries.create_category("u1", {"name": "Food", "color": "#00ff00", "icon": "🍕"})
    _add_expense(queries, category="food")
    queries.create_budget(
        "u1", {"category": "Food", "amount": "100", "period": "monthly", "start_date": "2026-03-01"}
    )
    # Warm the caches so the rename has to invalidate them.
    queries.list_expenses("u1")
    queries.list_budgets("u1")

    queries.update_category("u1", category.id, {"name": "Groceries"})

    assert [c.name for c in queries.list_categories("u1")] == ["Groceries"]
    assert [e.category for e in queries.list_expenses("u1")] == ["Groceries"]
    assert [b.category for b in queries.list_budgets("u1")] == ["Groceries"]


def test_category_in_use_cannot_be_deleted(queries: FinanceQueries):
    category = queries.create_category("u1", {"name": "Food", "color": "#00ff00", "icon": "🍕"})
    expense = _add_expense(queries)
    with pytest.raises(ValidationError):
        queries.delete_category("u1", category.id)

    queries.delete_expense("u1", expense.id)
    queries.delete_category("u1", category.id)
    assert queries.list_categories("u1") == []


def test_goal_contribution_refreshes_dashboard(queries: FinanceQueries):
    goal = queries.create_savings_goal(
        "u1", {"name": "Trip", "target_amount": "500", "deadline": "2026-09-01"}
    )
    assert queries.dashboard("u1")["savings_goals"][0]["current_amount"] == Decimal("0.00")
    queries.contribute_to_goal("u1", goal.id, "125")
    row = queries.dashboard("u1")["savings_goals"][0]
    assert row["current_amount"] == Decimal("125.00")
    assert row["percentage"] == Decimal("25.00")


def test_dashboard_and_widgets_agree(queries: FinanceQueries):
    _add_expense(queries, amount="30", category="Food", when="2026-03-16T10:00:00Z")
    _add_expense(queries, amount="20", category="Travel", when="2026-03-02")
    _add_expense(queries, amount="70", category="Food", when="2026-02-14")
    queries.create_budget(
        "u1", {"category": "Food", "amount": "40", "period": "monthly", "start_date": "2026-01-01"}
    )
    queries.create_investment(
        "u1", {"name": "ACME", "type": "stock", "quantity": "3", "purchase_price": "10"}
    )

    snapshot = queries.dashboard("u1")
    assert snapshot["month"]["total"] == Decimal("50.00")
    assert snapshot["category_breakdown"] == queries.category_breakdown("u1")
    assert snapshot["budgets"] == queries.budget_overview("u1")
    assert snapshot["net_worth"] == queries.net_worth("u1")
    assert snapshot["insights"] == queries.insights("u1")
    assert snapshot["weekly_spending"] == queries.weekly_spending("u1")
    assert snapshot["spending_trends"] == queries.spending_trends("u1")
    assert snapshot["net_worth"]["investments"] == Decimal("30.00")
    assert snapshot["budgets"][0]["percentage"] == Decimal("75.00")
    assert [e.amount for e in queries.recent_expenses("u1", limit=1)] == [Decimal("30.00")]


def test_settings_are_cached_and_invalidated(queries: FinanceQueries):
    assert queries.get_settings("u1").currency == "USD"
    queries.update_settings("u1", {"currency": "eur"})
    assert queries.get_settings("u1").currency == "EUR"


def test_write_committed_during_list_load_is_seen_next_read(queries: FinanceQueries, monkeypatch):
    load_expenses = queries.expenses.list
    written = []

    def list_then_write(owner, **filters):
        records = load_expenses(owner, **filters)
        if not written:
            written.append(_add_expense(queries))
        return records

    monkeypatch.setattr(queries.expenses, "list", list_then_write)
    assert queries.list_expenses("u1") == []
    assert [e.id for e in queries.list_expenses("u1")] == [written[0].id]
