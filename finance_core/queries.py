"""Cached reads and cache-invalidating writes over the finance services.

Reads go through :class:`~finance_core.cache.QueryCache` under stable query
keys; every successful mutation invalidates the keys it affects so the next
read refetches from the store.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

from .cache import QueryCache, QueryKey
from .dashboard import (
    budget_utilization,
    category_breakdown,
    dashboard_snapshot,
    financial_insights,
    month_key,
    month_window,
    net_worth_summary,
    recent_expenses,
    spending_trends,
    total_spent,
    weekly_spending,
)
from .exceptions import ValidationError
from .models import Budget, Category, Expense, Investment, SavingsGoal, UserSettings
from .services import (
    BudgetService,
    CategoryService,
    ExpenseService,
    InvestmentService,
    SavingsGoalService,
    SettingsService,
)
from .storage import JSONDocumentStore
from .validators import require_user

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _filter_key(filters: Dict[str, object]) -> Tuple[Tuple[str, str], ...]:
    return tuple(sorted((k, str(v)) for k, v in filters.items() if v is not None))


class FinanceQueries:
    """Facade the API and CLI use instead of calling services directly."""

    def __init__(
        self,
        store: JSONDocumentStore,
        cache: Optional[QueryCache] = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.cache = cache if cache is not None else QueryCache(clock=clock)
        self._clock = clock
        self.categories = CategoryService(store, clock)
        self.expenses = ExpenseService(store, clock)
        self.budgets = BudgetService(store, clock)
        self.savings_goals = SavingsGoalService(store, clock)
        self.investments = InvestmentService(store, clock)
        self.settings = SettingsService(store, clock)

    # Reads ----------------------------------------------------------------
    def list_categories(self, user_id: str) -> List[Category]:
        owner = require_user(user_id)
        return list(self.cache.fetch(("categories", owner), lambda: self.categories.list(owner)))

    def list_expenses(self, user_id: str, **filters: object) -> List[Expense]:
        owner = require_user(user_id)
        key: QueryKey = ("expenses", owner, "list", _filter_key(filters))
        return list(self.cache.fetch(key, lambda: self.expenses.list(owner, **filters)))

    def expenses_with_total(self, user_id: str, **filters: object) -> Tuple[List[Expense], Decimal]:
        """Filtered expenses plus the total of exactly those expenses."""
        expenses = self.list_expenses(user_id, **filters)
        return expenses, total_spent(expenses)

    def current_month_expenses(self, user_id: str, now: Optional[datetime] = None) -> List[Expense]:
        owner = require_user(user_id)
        now = now or self._clock()
        start, end = month_window(now)
        key: QueryKey = ("expenses", owner, "month", month_key(start))

        def load() -> List[Expense]:
            # The store's end bound is inclusive; drop anything on the next month's first instant.
            return [e for e in self.expenses.list(owner, start=start, end=end) if e.date < end]

        return list(self.cache.fetch(key, load))

    def get_expense(self, user_id: str, expense_id: str) -> Expense:
        return self.expenses.get(user_id, expense_id)

    def list_budgets(self, user_id: str) -> List[Budget]:
        owner = require_user(user_id)
        return list(self.cache.fetch(("budgets", owner), lambda: self.budgets.list(owner)))

    def list_savings_goals(self, user_id: str) -> List[SavingsGoal]:
        owner = require_user(user_id)
        return list(
            self.cache.fetch(("savings_goals", owner), lambda: self.savings_goals.list(owner))
        )

    def list_investments(self, user_id: str) -> List[Investment]:
        owner = require_user(user_id)
        return list(
            self.cache.fetch(("investments", owner), lambda: self.investments.list(owner))
        )

    def get_settings(self, user_id: str) -> UserSettings:
        owner = require_user(user_id)
        return self.cache.fetch(("settings", owner), lambda: self.settings.get(owner))

    # Dashboard ------------------------------------------------------------
    def dashboard(self, user_id: str, now: Optional[datetime] = None) -> Dict[str, object]:
        now = now or self._clock()
        return dashboard_snapshot(
            self.list_expenses(user_id),
            self.list_budgets(user_id),
            self.list_savings_goals(user_id),
            self.list_investments(user_id),
            now,
        )

    def category_breakdown(self, user_id: str, now: Optional[datetime] = None):
        return category_breakdown(self.current_month_expenses(user_id, now))

    def spending_trends(self, user_id: str, now: Optional[datetime] = None, months: int = 6):
        return spending_trends(self.list_expenses(user_id), now or self._clock(), months)

    def weekly_spending(self, user_id: str, now: Optional[datetime] = None):
        return weekly_spending(self.list_expenses(user_id), now or self._clock())

    def recent_expenses(self, user_id: str, limit: int = 5) -> List[Expense]:
        return recent_expenses(self.list_expenses(user_id), limit)

    def budget_overview(self, user_id: str, now: Optional[datetime] = None):
        return budget_utilization(
            self.list_budgets(user_id), self.list_expenses(user_id), now or self._clock()
        )

    def net_worth(self, user_id: str, now: Optional[datetime] = None):
        return net_worth_summary(
            self.list_budgets(user_id),
            self.list_expenses(user_id),
            self.list_savings_goals(user_id),
            self.list_investments(user_id),
            now or self._clock(),
        )

    def insights(self, user_id: str, now: Optional[datetime] = None):
        return financial_insights(
            self.list_expenses(user_id), self.list_budgets(user_id), now or self._clock()
        )

    # Mutations ------------------------------------------------------------
    def create_category(self, user_id: str, payload: Dict[str, object]) -> Category:
        category = self.categories.add(user_id, payload)
        self._invalidate(user_id, "categories")
        return category

    def update_category(self, user_id: str, category_id: str, payload: Dict[str, object]) -> Category:
        existing = self.categories.get(user_id, category_id)
        category = self.categories.update(user_id, category_id, payload)
        self._invalidate(user_id, "categories")
        if existing.name != category.name:
            moved = self.expenses.rename_category(user_id, existing.name, category.name)
            moved += self.budgets.rename_category(user_id, existing.name, category.name)
            logger.info("Renamed category %r to %r across %d records", existing.name, category.name, moved)
            self._invalidate(user_id, "expenses", "budgets")
        return category

    def delete_category(self, user_id: str, category_id: str) -> None:
        category = self.categories.get(user_id, category_id)
        if self.expenses.is_category_in_use(user_id, category.name):
            raise ValidationError("Cannot delete a category that is in use by expenses")
        self.categories.delete(user_id, category_id)
        self._invalidate(user_id, "categories")

    def create_expense(self, user_id: str, payload: Dict[str, object]) -> Expense:
        expense = self.expenses.add(user_id, payload)
        self._invalidate(user_id, "expenses")
        return expense

    def update_expense(self, user_id: str, expense_id: str, payload: Dict[str, object]) -> Expense:
        expense = self.expenses.update(user_id, expense_id, payload)
        self._invalidate(user_id, "expenses")
        return expense

    def delete_expense(self, user_id: str, expense_id: str) -> None:
        self.expenses.delete(user_id, expense_id)
        self._invalidate(user_id, "expenses")

    def create_budget(self, user_id: str, payload: Dict[str, object]) -> Budget:
        budget = self.budgets.add(user_id, payload)
        self._invalidate(user_id, "budgets")
        return budget

    def update_budget(self, user_id: str, budget_id: str, payload: Dict[str, object]) -> Budget:
        budget = self.budgets.update(user_id, budget_id, payload)
        self._invalidate(user_id, "budgets")
        return budget

    def delete_budget(self, user_id: str, budget_id: str) -> None:
        self.budgets.delete(user_id, budget_id)
        self._invalidate(user_id, "budgets")

    def create_savings_goal(self, user_id: str, payload: Dict[str, object]) -> SavingsGoal:
        goal = self.savings_goals.add(user_id, payload)
        self._invalidate(user_id, "savings_goals")
        return goal

    def update_savings_goal(self, user_id: str, goal_id: str, payload: Dict[str, object]) -> SavingsGoal:
        goal = self.savings_goals.update(user_id, goal_id, payload)
        self._invalidate(user_id, "savings_goals")
        return goal

    def contribute_to_goal(self, user_id: str, goal_id: str, amount: object) -> SavingsGoal:
        goal = self.savings_goals.contribute(user_id, goal_id, amount)
        self._invalidate(user_id, "savings_goals")
        return goal

    def delete_savings_goal(self, user_id: str, goal_id: str) -> None:
        self.savings_goals.delete(user_id, goal_id)
        self._invalidate(user_id, "savings_goals")

    def create_investment(self, user_id: str, payload: Dict[str, object]) -> Investment:
        investment = self.investments.add(user_id, payload)
        self._invalidate(user_id, "investments")
        return investment

    def update_investment(self, user_id: str, investment_id: str, payload: Dict[str, object]) -> Investment:
        investment = self.investments.update(user_id, investment_id, payload)
        self._invalidate(user_id, "investments")
        return investment

    def delete_investment(self, user_id: str, investment_id: str) -> None:
        self.investments.delete(user_id, investment_id)
        self._invalidate(user_id, "investments")

    def update_settings(self, user_id: str, payload: Dict[str, object]) -> UserSettings:
        settings = self.settings.update(user_id, payload)
        self._invalidate(user_id, "settings")
        return settings

    def _invalidate(self, user_id: str, *collections: str) -> None:
        owner = require_user(user_id)
        for collection in collections:
            self.cache.invalidate((collection, owner))
