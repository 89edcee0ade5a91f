"""Dashboard aggregation over a user's finance records.

Functions that compute totals, breakdowns, trend windows and budget
utilisation from already-fetched collections. Date windows are half-open
``[start, end)`` ranges of UTC-aware datetimes unless noted otherwise.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .models import Budget, Expense, Investment, SavingsGoal

Window = Tuple[datetime, datetime]

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")
DEFAULT_ALERT_THRESHOLD = Decimal("80")


def _round(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _percentage(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return ZERO
    return _round(part / whole * HUNDRED)


def _start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def month_key(moment: datetime) -> str:
    return f"{moment.year:04d}-{moment.month:02d}"


def add_months(moment: datetime, months: int) -> datetime:
    """Return the first instant of the month ``months`` away from ``moment``'s month."""
    index = moment.year * 12 + (moment.month - 1) + months
    year, month = divmod(index, 12)
    return datetime(year, month + 1, 1, tzinfo=timezone.utc)


def month_window(moment: datetime) -> Window:
    moment = _as_utc(moment)
    return add_months(moment, 0), add_months(moment, 1)


def week_window(moment: datetime) -> Window:
    """The Sunday-to-Saturday week containing ``moment``."""
    moment = _as_utc(moment)
    days_since_sunday = (moment.weekday() + 1) % 7
    start = _start_of_day(moment.date() - timedelta(days=days_since_sunday))
    return start, start + timedelta(days=7)


def filter_by_window(
    expenses: Iterable[Expense], start: Optional[datetime], end: Optional[datetime]
) -> List[Expense]:
    return [
        expense
        for expense in expenses
        if (start is None or expense.date >= start) and (end is None or expense.date < end)
    ]


def total_spent(expenses: Iterable[Expense]) -> Decimal:
    return sum((expense.amount for expense in expenses), start=ZERO)


def monthly_total(expenses: Iterable[Expense], now: datetime) -> Decimal:
    """Total spending in the calendar month containing ``now``."""
    return total_spent(filter_by_window(expenses, *month_window(now)))


def category_breakdown(
    expenses: Iterable[Expense],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[Dict[str, object]]:
    """Sum expense amounts per category, largest first."""
    totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for expense in filter_by_window(expenses, start, end):
        totals[expense.category] += expense.amount
    ranked = sorted(totals.items(), key=lambda kv: (-kv[1], kv[0].lower()))
    return [{"category": category, "amount": amount} for category, amount in ranked]


def spending_trends(
    expenses: Sequence[Expense], now: datetime, months: int = 6
) -> List[Dict[str, object]]:
    """Monthly spending totals for the last ``months`` calendar months, oldest first."""
    by_month: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for expense in expenses:
        by_month[month_key(expense.date)] += expense.amount

    now = _as_utc(now)
    points = []
    for offset in range(months - 1, -1, -1):
        start = add_months(now, -offset)
        points.append({
            "month": start.strftime("%b %Y"),
            "start": start,
            "total": by_month.get(month_key(start), ZERO),
        })
    return points


def weekly_spending(expenses: Iterable[Expense], now: datetime) -> List[Dict[str, object]]:
    """Daily spending for each day of the current Sunday-start week."""
    week_start, week_end = week_window(now)
    by_day: Dict[date, Decimal] = defaultdict(lambda: ZERO)
    for expense in filter_by_window(expenses, week_start, week_end):
        by_day[expense.date.date()] += expense.amount

    days = []
    for offset in range(7):
        day = (week_start + timedelta(days=offset)).date()
        days.append({"day": day.strftime("%a"), "date": day, "total": by_day.get(day, ZERO)})
    return days


def recent_expenses(expenses: Iterable[Expense], limit: int = 5) -> List[Expense]:
    return sorted(expenses, key=lambda expense: expense.date, reverse=True)[:limit]


def budget_period_window(budget: Budget, now: datetime) -> Window:
    """The budget period that contains ``now``.

    Monthly budgets follow calendar months. Weekly budgets run in seven-day
    blocks counted from the budget's start date.
    """
    now = _as_utc(now)
    if budget.period == "weekly":
        week = timedelta(days=7)
        elapsed = max(now - budget.start_date, timedelta(0))
        start = budget.start_date + week * (elapsed // week)
        return start, start + week
    start, end = month_window(now)
    return max(start, budget.start_date), end


def budget_utilization(
    budgets: Iterable[Budget], expenses: Sequence[Expense], now: datetime
) -> List[Dict[str, object]]:
    """Spending against each active budget for its current period."""
    now = _as_utc(now)
    results = []
    for budget in budgets:
        if budget.start_date > now:
            continue
        start, end = budget_period_window(budget, now)
        category = budget.category.lower()
        spent = total_spent(
            expense
            for expense in filter_by_window(expenses, start, end)
            if expense.category.lower() == category
        )
        percentage = _percentage(spent, budget.amount)
        results.append({
            "budget_id": budget.id,
            "category": budget.category,
            "period": budget.period,
            "window_start": start,
            "window_end": end,
            "amount": budget.amount,
            "spent": spent,
            "remaining": budget.amount - spent,
            "percentage": percentage,
            "progress": min(percentage, HUNDRED),
            "over_budget": spent > budget.amount,
        })
    return results


def savings_progress(goals: Iterable[SavingsGoal]) -> List[Dict[str, object]]:
    results = []
    for goal in goals:
        percentage = _percentage(goal.current_amount, goal.target_amount)
        results.append({
            "goal_id": goal.id,
            "name": goal.name,
            "target_amount": goal.target_amount,
            "current_amount": goal.current_amount,
            "remaining": max(goal.target_amount - goal.current_amount, ZERO),
            "percentage": percentage,
            "progress": min(percentage, HUNDRED),
            "deadline": goal.deadline,
            "reached": goal.current_amount >= goal.target_amount,
        })
    return results


def investment_summary(investments: Iterable[Investment]) -> Dict[str, object]:
    by_type: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    holdings = []
    for investment in investments:
        by_type[investment.type] += investment.cost_basis
        holdings.append({
            "investment_id": investment.id,
            "name": investment.name,
            "type": investment.type,
            "quantity": investment.quantity,
            "purchase_price": investment.purchase_price,
            "cost_basis": investment.cost_basis,
        })
    return {
        "total_cost_basis": sum(by_type.values(), start=ZERO),
        "by_type": dict(sorted(by_type.items())),
        "holdings": holdings,
    }


def net_worth_summary(
    budgets: Sequence[Budget],
    expenses: Sequence[Expense],
    goals: Sequence[SavingsGoal],
    investments: Sequence[Investment],
    now: datetime,
) -> Dict[str, object]:
    """Assets less this month's spending, plus overall budget headroom."""
    month_spent = monthly_total(expenses, now)
    savings = sum((goal.current_amount for goal in goals), start=ZERO)
    invested = sum((investment.cost_basis for investment in investments), start=ZERO)
    assets = savings + invested
    total_budget = sum((budget.amount for budget in budgets), start=ZERO)
    return {
        "assets": assets,
        "savings": savings,
        "investments": invested,
        "liabilities": month_spent,
        "net_worth": assets - month_spent,
        "total_budget": total_budget,
        "budget_remaining": total_budget - month_spent,
        "budget_used_percentage": min(_percentage(month_spent, total_budget), HUNDRED),
    }


def financial_insights(
    expenses: Sequence[Expense],
    budgets: Sequence[Budget],
    now: datetime,
    threshold: Decimal = DEFAULT_ALERT_THRESHOLD,
) -> List[Dict[str, str]]:
    """Plain-language observations about this month's spending."""
    now = _as_utc(now)
    month_start, _ = month_window(now)
    last_month_start = add_months(now, -1)

    current_total = total_spent(e for e in expenses if month_start <= e.date <= now)
    last_total = total_spent(filter_by_window(expenses, last_month_start, month_start))

    insights = []
    if last_total > 0:
        change = (current_total - last_total) / last_total * HUNDRED
        direction = "higher" if change > 0 else "lower"
        insights.append({
            "title": "Spending Trend",
            "description": f"Your spending is {abs(change):.1f}% {direction} than last month",
            "type": "warning" if change > 0 else "success",
        })

    flagged = [
        row for row in budget_utilization(budgets, expenses, now)
        if row["percentage"] > threshold
    ]
    if flagged:
        noun = "category" if len(flagged) == 1 else "categories"
        insights.append({
            "title": "Budget Alert",
            "description": f"You're near or over budget in {len(flagged)} {noun}",
            "type": "warning",
        })
    return insights


def dashboard_snapshot(
    expenses: Sequence[Expense],
    budgets: Sequence[Budget],
    goals: Sequence[SavingsGoal],
    investments: Sequence[Investment],
    now: datetime,
) -> Dict[str, object]:
    """Everything the dashboard view renders, computed from one fetch of each collection."""
    month_start, month_end = month_window(now)
    return {
        "generated_at": _as_utc(now),
        "month": {
            "start": month_start,
            "label": month_start.strftime("%B %Y"),
            "total": monthly_total(expenses, now),
        },
        "category_breakdown": category_breakdown(expenses, month_start, month_end),
        "spending_trends": spending_trends(expenses, now),
        "weekly_spending": weekly_spending(expenses, now),
        "recent_expenses": [expense.to_dict() for expense in recent_expenses(expenses)],
        "budgets": budget_utilization(budgets, expenses, now),
        "savings_goals": savings_progress(goals),
        "investments": investment_summary(investments),
        "net_worth": net_worth_summary(budgets, expenses, goals, investments, now),
        "insights": financial_insights(expenses, budgets, now),
    }
