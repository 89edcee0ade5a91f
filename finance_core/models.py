"""Data models for the personal finance domain."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

__all__ = [
    "Budget",
    "Category",
    "Expense",
    "Investment",
    "SavingsGoal",
    "UserSettings",
    "format_money",
    "isoformat_utc",
    "parse_date",
    "parse_datetime",
]


def isoformat_utc(dt: datetime) -> str:
    """Return an ISO 8601 string with trailing Z for UTC-aware datetimes."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    iso = dt.isoformat(timespec="seconds")
    # datetime.isoformat renders +00:00 for UTC; replace with the shorter Z form.
    return iso.replace("+00:00", "Z")


def parse_datetime(value: str) -> datetime:
    """Parse ISO 8601 datetime strings with optional trailing Z into UTC-aware datetime."""
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        # Naive values (including bare dates) are read as UTC.
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD string, tolerating a full ISO timestamp."""
    value = value.strip()
    if "T" in value:
        return parse_datetime(value).date()
    return date.fromisoformat(value)


def format_money(amount: Decimal) -> str:
    return f"{amount:.2f}"


@dataclass(frozen=True)
class Category:
    id: str
    user_id: str
    name: str
    color: str
    icon: str
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "color": self.color,
            "icon": self.icon,
            "created_at": isoformat_utc(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Category":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            name=data["name"],
            color=data["color"],
            icon=data["icon"],
            created_at=parse_datetime(data["created_at"]),
        )


@dataclass(frozen=True)
class Expense:
    id: str
    user_id: str
    amount: Decimal
    category: str
    description: str
    date: datetime
    created_at: datetime
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Serialise the expense to JSON-friendly natives."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": format_money(self.amount),
            "category": self.category,
            "description": self.description,
            "date": isoformat_utc(self.date),
            "created_at": isoformat_utc(self.created_at),
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Expense":
        """Hydrate an Expense from JSON-native data."""
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            amount=Decimal(str(data["amount"])),
            category=data["category"],
            description=data["description"],
            date=parse_datetime(data["date"]),
            created_at=parse_datetime(data["created_at"]),
            tags=list(data.get("tags", [])),
        )


@dataclass(frozen=True)
class Budget:
    id: str
    user_id: str
    category: str
    amount: Decimal
    period: str
    start_date: datetime
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "category": self.category,
            "amount": format_money(self.amount),
            "period": self.period,
            "start_date": isoformat_utc(self.start_date),
            "created_at": isoformat_utc(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Budget":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            category=data["category"],
            amount=Decimal(str(data["amount"])),
            period=data["period"],
            start_date=parse_datetime(data["start_date"]),
            created_at=parse_datetime(data["created_at"]),
        )


@dataclass(frozen=True)
class SavingsGoal:
    id: str
    user_id: str
    name: str
    target_amount: Decimal
    current_amount: Decimal
    deadline: date
    created_at: datetime

    @property
    def progress(self) -> Decimal:
        """Percentage of the target saved so far, uncapped."""
        return (self.current_amount / self.target_amount * 100).quantize(Decimal("0.01"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "target_amount": format_money(self.target_amount),
            "current_amount": format_money(self.current_amount),
            "deadline": self.deadline.isoformat(),
            "created_at": isoformat_utc(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SavingsGoal":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            name=data["name"],
            target_amount=Decimal(str(data["target_amount"])),
            current_amount=Decimal(str(data.get("current_amount", "0.00"))),
            deadline=parse_date(data["deadline"]),
            created_at=parse_datetime(data["created_at"]),
        )


@dataclass(frozen=True)
class Investment:
    id: str
    user_id: str
    name: str
    type: str
    quantity: Decimal
    purchase_price: Decimal
    created_at: datetime

    @property
    def cost_basis(self) -> Decimal:
        return (self.quantity * self.purchase_price).quantize(Decimal("0.01"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "type": self.type,
            # Quantities keep their full precision (fractional crypto holdings).
            "quantity": format(self.quantity, "f"),
            "purchase_price": format_money(self.purchase_price),
            "created_at": isoformat_utc(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Investment":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            name=data["name"],
            type=data["type"],
            quantity=Decimal(str(data["quantity"])),
            purchase_price=Decimal(str(data["purchase_price"])),
            created_at=parse_datetime(data["created_at"]),
        )


@dataclass(frozen=True)
class UserSettings:
    user_id: str
    theme: str = "system"
    currency: str = "USD"
    email_notifications: bool = False
    push_notifications: bool = False
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "theme": self.theme,
            "currency": self.currency,
            "notifications": {
                "email": self.email_notifications,
                "push": self.push_notifications,
            },
            "updated_at": isoformat_utc(self.updated_at) if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserSettings":
        notifications = data.get("notifications") or {}
        updated_at = data.get("updated_at")
        return cls(
            user_id=data["user_id"],
            theme=data.get("theme") or "system",
            currency=data.get("currency") or "USD",
            email_notifications=bool(notifications.get("email", False)),
            push_notifications=bool(notifications.get("push", False)),
            updated_at=parse_datetime(updated_at) if updated_at else None,
        )
