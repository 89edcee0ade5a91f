"""Console interface for the finance tracker."""

from __future__ import annotations

import argparse
import sys
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from finance_core.config import AppConfig
from finance_core.dashboard import ZERO, savings_progress
from finance_core.exceptions import FinanceError, PersistenceError, ValidationError
from finance_core.logging_setup import configure_logging
from finance_core.queries import FinanceQueries
from finance_core.storage import JSONDocumentStore
from finance_core.validators import BUDGET_PERIODS, INVESTMENT_TYPES

DATE_FORMAT = "%Y-%m-%d"


def _parse_date(value: str) -> str:
    try:
        datetime.strptime(value, DATE_FORMAT)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(
            f"Invalid date '{value}'. Expected format YYYY-MM-DD."
        ) from exc
    return value


def _parse_amount(value: str) -> str:
    try:
        amount = Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError("Amount must be a numeric value") from exc
    if amount <= 0:
        raise argparse.ArgumentTypeError("Amount must be greater than zero")
    return value


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def _comma_join(items: Iterable[str]) -> str:
    return ", ".join(items)


def _format_expense(expense: Dict[str, Any]) -> str:
    tags = _comma_join(expense.get("tags", [])) or "-"
    return (
        f"[{expense['id']}] {expense['date'][:10]} {expense['amount']}\n"
        f"  Category: {expense['category']} | {expense['description']}\n"
        f"  Tags: {tags}\n"
    )


def _format_budget(row: Dict[str, Any]) -> str:
    return (
        f"[{row['budget_id']}] {row['category']} ({row['period']}): "
        f"{row['spent']:.2f} / {row['amount']:.2f} ({row['percentage']:.1f}%)"
        + (" OVER BUDGET" if row["over_budget"] else "")
    )


def _format_goal(row: Dict[str, Any]) -> str:
    return (
        f"[{row['goal_id']}] {row['name']}: {row['current_amount']:.2f} / "
        f"{row['target_amount']:.2f} ({row['percentage']:.1f}%) due {row['deadline']}"
    )


def _clean(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def handle_expense(args: argparse.Namespace, queries: FinanceQueries) -> None:
    user = args.user
    if args.command == "add":
        payload = {
            "amount": args.amount,
            "category": args.category,
            "description": args.description,
            "date": args.date or _today(),
            "tags": args.tags,
        }
        expense = queries.create_expense(user, payload)
        print("Expense added:\n" + _format_expense(expense.to_dict()))
    elif args.command == "list":
        filters = _clean({
            "category": args.category,
            "tag": args.tag,
            "start": args.start,
            "end": args.end,
        })
        expenses, total = queries.expenses_with_total(user, **filters)
        if not expenses:
            print("No expenses found.")
            return
        print(f"Found {len(expenses)} expenses (total {total:.2f}):")
        for expense in expenses:
            print(_format_expense(expense.to_dict()))
    elif args.command == "edit":
        changes = _clean({
            "amount": args.amount,
            "category": args.category,
            "description": args.description,
            "date": args.date,
            "tags": args.tags,
        })
        expense = queries.update_expense(user, args.id, changes)
        print("Expense updated:\n" + _format_expense(expense.to_dict()))
    elif args.command == "delete":
        queries.delete_expense(user, args.id)
        print(f"Expense {args.id} deleted.")


def handle_budget(args: argparse.Namespace, queries: FinanceQueries) -> None:
    user = args.user
    if args.command == "add":
        budget = queries.create_budget(user, {
            "category": args.category,
            "amount": args.amount,
            "period": args.period,
            "start_date": args.start_date or _today(),
        })
        print(f"Budget added: [{budget.id}] {budget.category} {budget.amount:.2f} {budget.period}")
    elif args.command == "list":
        rows = queries.budget_overview(user)
        if not rows:
            print("No active budgets.")
            return
        for row in rows:
            print(_format_budget(row))
    elif args.command == "delete":
        queries.delete_budget(user, args.id)
        print(f"Budget {args.id} deleted.")


def handle_goal(args: argparse.Namespace, queries: FinanceQueries) -> None:
    user = args.user
    if args.command == "add":
        goal = queries.create_savings_goal(user, {
            "name": args.name,
            "target_amount": args.target,
            "current_amount": args.current,
            "deadline": args.deadline,
        })
        print(_format_goal(savings_progress([goal])[0]))
    elif args.command == "list":
        goals = queries.list_savings_goals(user)
        if not goals:
            print("No savings goals.")
            return
        for row in savings_progress(goals):
            print(_format_goal(row))
    elif args.command == "contribute":
        goal = queries.contribute_to_goal(user, args.id, args.amount)
        print(_format_goal(savings_progress([goal])[0]))


def handle_investment(args: argparse.Namespace, queries: FinanceQueries) -> None:
    user = args.user
    if args.command == "add":
        investment = queries.create_investment(user, {
            "name": args.name,
            "type": args.type,
            "quantity": args.quantity,
            "purchase_price": args.price,
        })
        print(f"Investment added: [{investment.id}] {investment.name} cost basis {investment.cost_basis:.2f}")
    elif args.command == "list":
        investments = queries.list_investments(user)
        if not investments:
            print("No investments.")
            return
        for investment in investments:
            print(
                f"[{investment.id}] {investment.name} ({investment.type}) "
                f"{investment.quantity} @ {investment.purchase_price:.2f} = {investment.cost_basis:.2f}"
            )


def handle_summary(args: argparse.Namespace, queries: FinanceQueries) -> None:
    snapshot = queries.dashboard(args.user)
    month = snapshot["month"]
    net_worth = snapshot["net_worth"]
    print(f"Spending for {month['label']}: {month['total']:.2f}")
    print("By category:")
    for row in snapshot["category_breakdown"] or [{"category": "-", "amount": ZERO}]:
        print(f"  {row['category']}: {row['amount']:.2f}")
    print("Last 6 months:")
    for point in snapshot["spending_trends"]:
        print(f"  {point['month']}: {point['total']:.2f}")
    print(f"Net worth: {net_worth['net_worth']:.2f} (assets {net_worth['assets']:.2f})")
    print(f"Budget used: {net_worth['budget_used_percentage']:.1f}%")
    for insight in snapshot["insights"]:
        print(f"* {insight['title']}: {insight['description']}")


def build_parser() -> argparse.ArgumentParser:
    defaults = AppConfig.from_env()
    parser = argparse.ArgumentParser(description="Personal Finance Tracker CLI")
    parser.add_argument(
        "--data-dir",
        default=defaults.data_dir,
        type=Path,
        help="Directory to store JSON data (default: ./data)",
    )
    parser.add_argument("--user", default="local", help="User id to act as (default: local)")
    parser.add_argument("--log-level", default=defaults.log_level)

    subparsers = parser.add_subparsers(dest="entity", required=True)

    expense_parser = subparsers.add_parser("expense", help="Manage expenses")
    expense_sub = expense_parser.add_subparsers(dest="command", required=True)

    expense_add = expense_sub.add_parser("add", help="Add a new expense")
    expense_add.add_argument("amount", type=_parse_amount)
    expense_add.add_argument("category")
    expense_add.add_argument("description")
    expense_add.add_argument("--date", type=_parse_date)
    expense_add.add_argument("--tags", nargs="*", default=[])

    expense_list = expense_sub.add_parser("list", help="List expenses")
    expense_list.add_argument("--category")
    expense_list.add_argument("--tag")
    expense_list.add_argument("--start", type=_parse_date)
    expense_list.add_argument("--end", type=_parse_date)

    expense_edit = expense_sub.add_parser("edit", help="Edit an existing expense")
    expense_edit.add_argument("id")
    expense_edit.add_argument("--amount", type=_parse_amount)
    expense_edit.add_argument("--category")
    expense_edit.add_argument("--description")
    expense_edit.add_argument("--date", type=_parse_date)
    expense_edit.add_argument("--tags", nargs="*")

    expense_delete = expense_sub.add_parser("delete", help="Delete an expense")
    expense_delete.add_argument("id")

    budget_parser = subparsers.add_parser("budget", help="Manage budgets")
    budget_sub = budget_parser.add_subparsers(dest="command", required=True)

    budget_add = budget_sub.add_parser("add", help="Add a budget")
    budget_add.add_argument("category")
    budget_add.add_argument("amount", type=_parse_amount)
    budget_add.add_argument("--period", choices=sorted(BUDGET_PERIODS), default="monthly")
    budget_add.add_argument("--start-date", type=_parse_date)

    budget_sub.add_parser("list", help="Show budget utilisation")

    budget_delete = budget_sub.add_parser("delete", help="Delete a budget")
    budget_delete.add_argument("id")

    goal_parser = subparsers.add_parser("goal", help="Manage savings goals")
    goal_sub = goal_parser.add_subparsers(dest="command", required=True)

    goal_add = goal_sub.add_parser("add", help="Add a savings goal")
    goal_add.add_argument("name")
    goal_add.add_argument("target", type=_parse_amount)
    goal_add.add_argument("deadline", type=_parse_date)
    goal_add.add_argument("--current", default="0")

    goal_sub.add_parser("list", help="List savings goals")

    goal_contribute = goal_sub.add_parser("contribute", help="Add money to a goal")
    goal_contribute.add_argument("id")
    goal_contribute.add_argument("amount", type=_parse_amount)

    investment_parser = subparsers.add_parser("investment", help="Manage investments")
    investment_sub = investment_parser.add_subparsers(dest="command", required=True)

    investment_add = investment_sub.add_parser("add", help="Add an investment")
    investment_add.add_argument("name")
    investment_add.add_argument("type", choices=sorted(INVESTMENT_TYPES))
    investment_add.add_argument("quantity", type=_parse_amount)
    investment_add.add_argument("price", type=_parse_amount)

    investment_sub.add_parser("list", help="List investments")

    subparsers.add_parser("summary", help="Show dashboard totals")

    return parser


HANDLERS = {
    "expense": handle_expense,
    "budget": handle_budget,
    "goal": handle_goal,
    "investment": handle_investment,
    "summary": handle_summary,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        queries = FinanceQueries(JSONDocumentStore(args.data_dir))
        HANDLERS[args.entity](args, queries)
    except ValidationError as exc:
        print(f"Validation error: {exc}", file=sys.stderr)
        return 1
    except PersistenceError as exc:
        print(f"Storage error: {exc}", file=sys.stderr)
        return 1
    except FinanceError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
