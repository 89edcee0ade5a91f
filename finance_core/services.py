"""Framework-agnostic business services for the finance tracker.

Every operation takes the acting user's id first; records are stored with
that id and are only ever visible to their owner.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Type, TypeVar

from .exceptions import PermissionDeniedError, RecordNotFoundError, ValidationError
from .models import (
    Budget,
    Category,
    Expense,
    Investment,
    SavingsGoal,
    UserSettings,
    isoformat_utc,
)
from .storage import Condition, JSONDocumentStore
from .validators import (
    BUDGET_PERIODS,
    INVESTMENT_TYPES,
    THEMES,
    normalize_tags,
    parse_amount,
    parse_non_negative_amount,
    parse_quantity,
    require_user,
    validate_bool,
    validate_color,
    validate_currency,
    validate_date,
    validate_datetime,
    validate_enum,
    validate_required_str,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
T = TypeVar("T")

# Fields owned by the service; callers may not overwrite them.
PROTECTED_FIELDS = ("id", "user_id", "created_at")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OwnedCollectionService(Generic[T]):
    """CRUD over one user-scoped document collection.

    Subclasses name the collection and model and provide
    ``_validate_payload`` returning the validated, typed fields.
    """

    collection: str = ""
    model: Type[Any]
    label: str = "Record"

    def __init__(self, store: JSONDocumentStore, clock: Clock = _utcnow) -> None:
        self._store = store
        self._clock = clock

    # Public API -----------------------------------------------------------
    def add(self, user_id: str, payload: Dict[str, object]) -> T:
        owner = require_user(user_id)
        data = self._validate_payload(owner, payload)
        record = self.model(id="", user_id=owner, created_at=self._clock(), **data)
        document = record.to_dict()
        document.pop("id")
        doc_id = self._store.add(self.collection, document)
        logger.info("Created %s %s for user %s", self.label.lower(), doc_id, owner)
        return replace(record, id=doc_id)

    def update(self, user_id: str, record_id: str, changes: Dict[str, object]) -> T:
        existing = self._get_owned(user_id, record_id)
        cleaned = {k: v for k, v in changes.items() if k not in PROTECTED_FIELDS}
        # Merge existing serialised data with incoming changes to support partial updates.
        merged_payload = {**existing.to_dict(), **cleaned}
        data = self._validate_payload(existing.user_id, merged_payload, current=existing)
        updated = self.model(
            id=existing.id, user_id=existing.user_id, created_at=existing.created_at, **data
        )
        self._store.set(self.collection, existing.id, updated.to_dict())
        return updated

    def delete(self, user_id: str, record_id: str) -> None:
        existing = self._get_owned(user_id, record_id)
        self._store.delete(self.collection, existing.id)
        logger.info("Deleted %s %s", self.label.lower(), existing.id)

    def get(self, user_id: str, record_id: str) -> T:
        """Return a record owned by ``user_id`` or raise."""
        return self._get_owned(user_id, record_id)

    def list(self, user_id: str, **filters: object) -> List[T]:
        owner = require_user(user_id)
        where: List[Condition] = [("user_id", "==", owner)]
        where.extend(self._where(filters))
        documents = self._store.query(self.collection, where)
        records = [self.model.from_dict(document) for document in documents]
        return self._sort(list(self._apply_filters(records, filters)))

    # Hooks ----------------------------------------------------------------
    def _validate_payload(
        self, user_id: str, payload: Dict[str, object], *, current: Optional[T] = None
    ) -> Dict[str, object]:
        raise NotImplementedError

    def _where(self, filters: Dict[str, object]) -> List[Condition]:
        return []

    def _apply_filters(self, records: Iterable[T], filters: Dict[str, object]) -> Iterable[T]:
        return records

    def _sort(self, records: List[T]) -> List[T]:
        return sorted(records, key=lambda record: record.created_at)

    # Internal helpers -----------------------------------------------------
    def _get_owned(self, user_id: str, record_id: str) -> T:
        owner = require_user(user_id)
        return self._owned(owner, record_id, self._store.get(self.collection, record_id))

    def _owned(self, owner: str, record_id: str, document: Optional[Dict[str, Any]]) -> T:
        if document is None:
            raise RecordNotFoundError(f"{self.label} {record_id} not found")
        if document.get("user_id") != owner:
            raise PermissionDeniedError(
                f"You don't have permission to access {self.label.lower()} {record_id}"
            )
        return self.model.from_dict(document)

    def _save_all(self, records: Iterable[T]) -> None:
        for record in records:
            self._store.set(self.collection, record.id, record.to_dict())


def _lowered(filters: Dict[str, object], key: str) -> Optional[str]:
    value = filters.get(key)
    if value is None:
        return None
    return str(value).strip().lower()


class CategoryService(OwnedCollectionService[Category]):
    """Manages a user's expense categories."""

    collection = "categories"
    model = Category
    label = "Category"

    def _sort(self, records: List[Category]) -> List[Category]:
        return sorted(records, key=lambda cat: cat.name.lower())

    def find_by_name(self, user_id: str, name: str) -> Optional[Category]:
        canonical = name.strip().lower()
        for category in self.list(user_id):
            if category.name.lower() == canonical:
                return category
        return None

    def _validate_payload(
        self, user_id: str, payload: Dict[str, object], *, current: Optional[Category] = None
    ) -> Dict[str, object]:
        name = validate_required_str(payload.get("name"), "name", 50, min_length=2)
        existing = self.find_by_name(user_id, name)
        if existing and (current is None or existing.id != current.id):
            raise ValidationError("Category name must be unique")

        return {
            "name": name,
            "color": validate_color(payload.get("color")),
            "icon": validate_required_str(payload.get("icon"), "icon", 16),
        }


class ExpenseService(OwnedCollectionService[Expense]):
    """Manages expense records."""

    collection = "expenses"
    model = Expense
    label = "Expense"

    def total(self, user_id: str, **filters: object) -> Decimal:
        expenses = self.list(user_id, **filters)
        return sum((expense.amount for expense in expenses), start=Decimal("0.00"))

    def rename_category(self, user_id: str, old_name: str, new_name: str) -> int:
        canonical_old = old_name.strip().lower()
        canonical_new = new_name.strip()
        if not canonical_new:
            return 0

        renamed = [
            replace(expense, category=canonical_new)
            for expense in self.list(user_id)
            if expense.category.lower() == canonical_old
        ]
        self._save_all(renamed)
        return len(renamed)

    def is_category_in_use(self, user_id: str, category_name: str) -> bool:
        canonical = category_name.strip().lower()
        return any(expense.category.lower() == canonical for expense in self.list(user_id))

    def _sort(self, records: List[Expense]) -> List[Expense]:
        return sorted(records, key=lambda exp: exp.date)

    def _validate_payload(
        self, user_id: str, payload: Dict[str, object], *, current: Optional[Expense] = None
    ) -> Dict[str, object]:
        return {
            "amount": parse_amount(payload.get("amount"), "amount"),
            "category": validate_required_str(payload.get("category"), "category", 50),
            "description": validate_required_str(payload.get("description"), "description", 200),
            "date": validate_datetime(payload.get("date"), "date"),
            "tags": normalize_tags(payload.get("tags")),
        }

    def _where(self, filters: Dict[str, object]) -> List[Condition]:
        # Date bounds are pushed down to the store as range conditions.
        where: List[Condition] = []
        if filters.get("start") is not None:
            start = validate_datetime(filters["start"], "start")
            where.append(("date", ">=", isoformat_utc(start)))
        if filters.get("end") is not None:
            end = validate_datetime(filters["end"], "end")
            where.append(("date", "<=", isoformat_utc(end)))
        tag = _lowered(filters, "tag")
        if tag:
            where.append(("tags", "array-contains", tag))
        return where

    def _apply_filters(self, records: Iterable[Expense], filters: Dict[str, object]) -> Iterable[Expense]:
        category = _lowered(filters, "category")
        if not category:
            return records
        return (expense for expense in records if expense.category.lower() == category)


class BudgetService(OwnedCollectionService[Budget]):
    """Manages category budgets."""

    collection = "budgets"
    model = Budget
    label = "Budget"

    def rename_category(self, user_id: str, old_name: str, new_name: str) -> int:
        canonical_old = old_name.strip().lower()
        canonical_new = new_name.strip()
        if not canonical_new:
            return 0
        renamed = [
            replace(budget, category=canonical_new)
            for budget in self.list(user_id)
            if budget.category.lower() == canonical_old
        ]
        self._save_all(renamed)
        return len(renamed)

    def _sort(self, records: List[Budget]) -> List[Budget]:
        return sorted(records, key=lambda budget: (budget.category.lower(), budget.start_date))

    def _validate_payload(
        self, user_id: str, payload: Dict[str, object], *, current: Optional[Budget] = None
    ) -> Dict[str, object]:
        return {
            "category": validate_required_str(payload.get("category"), "category", 50),
            "amount": parse_amount(payload.get("amount"), "amount"),
            "period": validate_enum(payload.get("period"), "period", BUDGET_PERIODS),
            "start_date": validate_datetime(payload.get("start_date"), "start_date"),
        }

    def _where(self, filters: Dict[str, object]) -> List[Condition]:
        period = _lowered(filters, "period")
        return [("period", "==", period)] if period else []

    def _apply_filters(self, records: Iterable[Budget], filters: Dict[str, object]) -> Iterable[Budget]:
        category = _lowered(filters, "category")
        if not category:
            return records
        return (budget for budget in records if budget.category.lower() == category)


class SavingsGoalService(OwnedCollectionService[SavingsGoal]):
    """Manages savings goals and contributions towards them."""

    collection = "savings_goals"
    model = SavingsGoal
    label = "Savings goal"

    def contribute(self, user_id: str, goal_id: str, amount: object) -> SavingsGoal:
        """Add ``amount`` to the goal's current balance."""
        owner = require_user(user_id)
        contribution = parse_amount(amount, "amount")

        def add_contribution(document: Dict[str, Any]) -> Dict[str, Any]:
            goal = self._owned(owner, goal_id, document)
            return replace(goal, current_amount=goal.current_amount + contribution).to_dict()

        try:
            document = self._store.modify(self.collection, goal_id, add_contribution)
        except RecordNotFoundError as exc:
            raise RecordNotFoundError(f"{self.label} {goal_id} not found") from exc
        logger.info("Contributed %s to savings goal %s", contribution, goal_id)
        return self.model.from_dict(document)

    def _sort(self, records: List[SavingsGoal]) -> List[SavingsGoal]:
        return sorted(records, key=lambda goal: (goal.deadline, goal.name.lower()))

    def _validate_payload(
        self, user_id: str, payload: Dict[str, object], *, current: Optional[SavingsGoal] = None
    ) -> Dict[str, object]:
        current_amount = payload.get("current_amount")
        return {
            "name": validate_required_str(payload.get("name"), "name", 100, min_length=2),
            "target_amount": parse_amount(payload.get("target_amount"), "target_amount"),
            "current_amount": parse_non_negative_amount(
                "0" if current_amount is None else current_amount, "current_amount"
            ),
            "deadline": validate_date(payload.get("deadline"), "deadline"),
        }


class InvestmentService(OwnedCollectionService[Investment]):
    """Manages investment holdings."""

    collection = "investments"
    model = Investment
    label = "Investment"

    def _sort(self, records: List[Investment]) -> List[Investment]:
        return sorted(records, key=lambda inv: inv.name.lower())

    def _validate_payload(
        self, user_id: str, payload: Dict[str, object], *, current: Optional[Investment] = None
    ) -> Dict[str, object]:
        return {
            "name": validate_required_str(payload.get("name"), "name", 100, min_length=2),
            "type": validate_enum(payload.get("type"), "type", INVESTMENT_TYPES),
            "quantity": parse_quantity(payload.get("quantity"), "quantity"),
            "purchase_price": parse_amount(payload.get("purchase_price"), "purchase_price"),
        }

    def _where(self, filters: Dict[str, object]) -> List[Condition]:
        kind = _lowered(filters, "type")
        return [("type", "==", kind)] if kind else []


class SettingsService:
    """Reads and writes the per-user settings document."""

    collection = "user_settings"

    def __init__(self, store: JSONDocumentStore, clock: Clock = _utcnow) -> None:
        self._store = store
        self._clock = clock

    def get(self, user_id: str) -> UserSettings:
        owner = require_user(user_id)
        document = self._store.get(self.collection, owner)
        if document is None:
            return UserSettings(user_id=owner)
        return UserSettings.from_dict({**document, "user_id": owner})

    def update(self, user_id: str, changes: Dict[str, object]) -> UserSettings:
        current = self.get(user_id)
        notifications = changes.get("notifications")
        if notifications is not None and not isinstance(notifications, dict):
            raise ValidationError("notifications must be an object")
        notifications = notifications or {}

        settings = UserSettings(
            user_id=current.user_id,
            theme=validate_enum(changes.get("theme", current.theme), "theme", THEMES),
            currency=validate_currency(changes.get("currency", current.currency)),
            email_notifications=validate_bool(
                notifications.get("email", current.email_notifications), "notifications.email"
            ),
            push_notifications=validate_bool(
                notifications.get("push", current.push_notifications), "notifications.push"
            ),
            updated_at=self._clock(),
        )
        self._store.set(self.collection, settings.user_id, settings.to_dict())
        return settings
