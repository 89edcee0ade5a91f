"""Validation helpers shared across finance tracker services."""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, List, Optional

from .exceptions import UnauthenticatedError, ValidationError
from .models import parse_date, parse_datetime

CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")
TAG_PATTERN = re.compile(r"^[a-z0-9_-]{1,30}$")
COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")

BUDGET_PERIODS = {"weekly", "monthly"}

INVESTMENT_TYPES = {"stock", "crypto", "mutual fund"}

THEMES = {"light", "dark", "system"}


def _quantize_two_decimals(amount: Decimal) -> Decimal:
    """Round the amount to two decimal places using HALF_UP rounding."""
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _to_decimal(raw: object, field: str) -> Decimal:
    if isinstance(raw, bool) or raw is None:
        raise ValidationError(f"{field} must be a numeric value")
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, TypeError) as exc:
        raise ValidationError(f"{field} must be a numeric value") from exc
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a numeric value")
    return amount


def parse_amount(raw: object, field: str) -> Decimal:
    """Convert raw input to a positive Decimal with exactly two fraction digits."""
    amount = _quantize_two_decimals(_to_decimal(raw, field))
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    return amount


def parse_non_negative_amount(raw: object, field: str) -> Decimal:
    amount = _quantize_two_decimals(_to_decimal(raw, field))
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative")
    return amount


def parse_quantity(raw: object, field: str) -> Decimal:
    """Positive decimal kept at its given precision."""
    quantity = _to_decimal(raw, field)
    if quantity <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    return quantity.normalize()


def validate_currency(code: object) -> str:
    if not isinstance(code, str) or not CURRENCY_PATTERN.fullmatch(code.strip().upper()):
        raise ValidationError("currency must be a 3-letter ISO 4217 code")
    return code.strip().upper()


def validate_required_str(
    value: object, field: str, max_length: int, *, min_length: int = 1
) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    trimmed = value.strip()
    if not trimmed:
        raise ValidationError(f"{field} cannot be empty")
    if len(trimmed) < min_length:
        raise ValidationError(f"{field} must be at least {min_length} characters")
    if len(trimmed) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return trimmed


def validate_color(value: object) -> str:
    if not isinstance(value, str) or not COLOR_PATTERN.fullmatch(value.strip()):
        raise ValidationError("color must be a hex color such as #1d4ed8")
    return value.strip().lower()


def normalize_tags(raw_tags: Optional[Iterable[object]]) -> List[str]:
    if raw_tags is None:
        return []
    if isinstance(raw_tags, str):
        raise ValidationError("tags must be a list of strings")
    normalized: List[str] = []
    seen = set()
    for raw in raw_tags:
        if not isinstance(raw, str):
            raise ValidationError("tags must be strings")
        tag = raw.strip().lower()
        if not tag:
            raise ValidationError("tags cannot be empty strings")
        if len(tag) > 30:
            raise ValidationError("tags must be at most 30 characters")
        if not TAG_PATTERN.fullmatch(tag):
            raise ValidationError("tags may only contain lowercase letters, digits, underscores, or hyphens")
        if tag in seen:
            continue
        seen.add(tag)
        normalized.append(tag)
    return normalized


def validate_datetime(value: object, field: str) -> datetime:
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    elif isinstance(value, str):
        try:
            dt = parse_datetime(value)
        except ValueError as exc:
            raise ValidationError(f"{field} must be an ISO 8601 date or datetime") from exc
    else:
        raise ValidationError(f"{field} must be a datetime or ISO 8601 string")
    return dt.astimezone(timezone.utc)


def validate_date(value: object, field: str) -> date:
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).date() if value.tzinfo else value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return parse_date(value)
        except ValueError as exc:
            raise ValidationError(f"{field} must be an ISO 8601 date") from exc
    raise ValidationError(f"{field} must be a date or ISO 8601 string")


def validate_enum(value: object, field: str, allowed: Iterable[str]) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    canonical = value.strip().lower()
    if canonical not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(sorted(allowed))}")
    return canonical


def validate_bool(value: object, field: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be true or false")
    return value


def require_user(user_id: object) -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise UnauthenticatedError("You must be signed in to perform this action")
    return user_id.strip()
