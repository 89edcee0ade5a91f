"""Core business logic package for the personal finance tracker."""

from .cache import QueryCache
from .config import AppConfig
from .exceptions import (
    FinanceError,
    PermissionDeniedError,
    PersistenceError,
    RecordNotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from .models import Budget, Category, Expense, Investment, SavingsGoal, UserSettings
from .queries import FinanceQueries
from .services import (
    BudgetService,
    CategoryService,
    ExpenseService,
    InvestmentService,
    SavingsGoalService,
    SettingsService,
)
from .storage import JSONDocumentStore

__all__ = [
    "AppConfig",
    "Budget",
    "BudgetService",
    "Category",
    "CategoryService",
    "Expense",
    "ExpenseService",
    "FinanceError",
    "FinanceQueries",
    "Investment",
    "InvestmentService",
    "JSONDocumentStore",
    "PermissionDeniedError",
    "PersistenceError",
    "QueryCache",
    "RecordNotFoundError",
    "SavingsGoal",
    "SavingsGoalService",
    "SettingsService",
    "UnauthenticatedError",
    "UserSettings",
    "ValidationError",
]
