"""Flask REST API exposing the finance tracker services."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS

from finance_core.cache import QueryCache
from finance_core.config import AppConfig
from finance_core.exceptions import (
    FinanceError,
    PermissionDeniedError,
    PersistenceError,
    RecordNotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from finance_core.logging_setup import configure_logging
from finance_core.models import format_money, isoformat_utc
from finance_core.queries import FinanceQueries
from finance_core.storage import JSONDocumentStore
from finance_core.validators import validate_datetime

USER_HEADER = "X-User-Id"


def to_jsonable(value: Any) -> Any:
    """Convert aggregation results into JSON natives (money as two-place strings)."""
    if isinstance(value, Decimal):
        return format_money(value)
    if isinstance(value, datetime):
        return isoformat_utc(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


def create_app(
    data_dir: Optional[Path] = None,
    *,
    config: Optional[AppConfig] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> Flask:
    app = Flask(__name__)
    config = config or AppConfig.from_env()
    configure_logging(config.log_level)

    if config.is_dev:
        CORS(app, resources={r"/*": {"origins": "*"}}, supports_credentials=True)
    elif config.allowed_origins:
        CORS(app, resources={r"/*": {"origins": config.allowed_origins}}, supports_credentials=True)
    else:
        CORS(app)

    store = JSONDocumentStore(Path(data_dir or config.data_dir))
    cache_kwargs: Dict[str, Any] = {"clock": clock} if clock else {}
    cache = QueryCache(config.stale_after, **cache_kwargs)
    queries = FinanceQueries(store, cache, **cache_kwargs)
    app.extensions["finance_queries"] = queries

    def _success(payload: Any, status: int = 200):
        if status == 204:
            return ("", status)
        return jsonify(to_jsonable(payload)), status

    def _handle_error(exc: FinanceError, status: int, message: str):
        app.logger.error("%s: %s", message, exc)
        return jsonify({"error": message, "code": exc.code, "details": str(exc)}), status

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        return _handle_error(exc, 400, "Validation error")

    @app.errorhandler(UnauthenticatedError)
    def handle_unauthenticated(exc: UnauthenticatedError):
        return _handle_error(exc, 401, "Authentication required")

    @app.errorhandler(PermissionDeniedError)
    def handle_permission_denied(exc: PermissionDeniedError):
        return _handle_error(exc, 403, "Permission denied")

    @app.errorhandler(RecordNotFoundError)
    def handle_not_found(exc: RecordNotFoundError):
        return _handle_error(exc, 404, "Record not found")

    @app.errorhandler(PersistenceError)
    def handle_persistence_error(exc: PersistenceError):
        return _handle_error(exc, 500, "Persistence error")

    def _user() -> str:
        # The auth proxy in front of the API sets this after verifying the session.
        user_id = (request.headers.get(USER_HEADER) or "").strip()
        if not user_id:
            raise UnauthenticatedError("You must be signed in to perform this action")
        return user_id

    def _json_body() -> Dict[str, Any]:
        if not request.is_json:
            raise ValidationError("Request content must be application/json")
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Malformed JSON body")
        return data

    def _clean_filters(raw: Dict[str, Optional[str]]) -> Dict[str, str]:
        return {k: v for k, v in raw.items() if v not in (None, "")}

    def _as_of() -> Optional[datetime]:
        raw = request.args.get("as_of")
        return validate_datetime(raw, "as_of") if raw else None

    # Categories -----------------------------------------------------------
    @app.get("/categories")
    def list_categories():
        categories = queries.list_categories(_user())
        return _success({"items": categories})

    @app.post("/categories")
    def create_category():
        category = queries.create_category(_user(), _json_body())
        return _success(category, 201)

    @app.get("/categories/<category_id>")
    def get_category(category_id: str):
        return _success(queries.categories.get(_user(), category_id))

    @app.put("/categories/<category_id>")
    def update_category(category_id: str):
        category = queries.update_category(_user(), category_id, _json_body())
        return _success(category)

    @app.delete("/categories/<category_id>")
    def delete_category(category_id: str):
        queries.delete_category(_user(), category_id)
        return _success({}, 204)

    # Expenses -------------------------------------------------------------
    @app.get("/expenses")
    def list_expenses():
        filters = {
            "category": request.args.get("category"),
            "tag": request.args.get("tag"),
            "start": request.args.get("start"),
            "end": request.args.get("end"),
        }
        expenses, total = queries.expenses_with_total(_user(), **_clean_filters(filters))
        return _success({"items": expenses, "total": total})

    @app.post("/expenses")
    def create_expense():
        expense = queries.create_expense(_user(), _json_body())
        return _success(expense, 201)

    @app.get("/expenses/<expense_id>")
    def get_expense(expense_id: str):
        return _success(queries.get_expense(_user(), expense_id))

    @app.put("/expenses/<expense_id>")
    def update_expense(expense_id: str):
        expense = queries.update_expense(_user(), expense_id, _json_body())
        return _success(expense)

    @app.delete("/expenses/<expense_id>")
    def delete_expense(expense_id: str):
        queries.delete_expense(_user(), expense_id)
        return _success({}, 204)

    # Budgets, savings goals, investments ----------------------------------
    def _register_collection(
        path: str,
        endpoint: str,
        service: Any,
        lister: Callable[[str], Any],
        creator: Callable[[str, Dict[str, Any]], Any],
        updater: Callable[[str, str, Dict[str, Any]], Any],
        deleter: Callable[[str, str], None],
    ) -> None:
        def list_items():
            return _success({"items": lister(_user())})

        def create_item():
            return _success(creator(_user(), _json_body()), 201)

        def get_item(item_id: str):
            return _success(service.get(_user(), item_id))

        def update_item(item_id: str):
            return _success(updater(_user(), item_id, _json_body()))

        def delete_item(item_id: str):
            deleter(_user(), item_id)
            return _success({}, 204)

        app.add_url_rule(path, f"list_{endpoint}", list_items, methods=["GET"])
        app.add_url_rule(path, f"create_{endpoint}", create_item, methods=["POST"])
        item_path = f"{path}/<item_id>"
        app.add_url_rule(item_path, f"get_{endpoint}", get_item, methods=["GET"])
        app.add_url_rule(item_path, f"update_{endpoint}", update_item, methods=["PUT"])
        app.add_url_rule(item_path, f"delete_{endpoint}", delete_item, methods=["DELETE"])

    _register_collection(
        "/budgets", "budget", queries.budgets,
        queries.list_budgets, queries.create_budget, queries.update_budget, queries.delete_budget,
    )
    _register_collection(
        "/savings-goals", "savings_goal", queries.savings_goals,
        queries.list_savings_goals, queries.create_savings_goal,
        queries.update_savings_goal, queries.delete_savings_goal,
    )
    _register_collection(
        "/investments", "investment", queries.investments,
        queries.list_investments, queries.create_investment,
        queries.update_investment, queries.delete_investment,
    )

    @app.post("/savings-goals/<goal_id>/contributions")
    def contribute_to_goal(goal_id: str):
        user = _user()
        payload = _json_body()
        goal = queries.contribute_to_goal(user, goal_id, payload.get("amount"))
        return _success(goal)

    # Settings -------------------------------------------------------------
    @app.get("/settings")
    def get_settings():
        return _success(queries.get_settings(_user()))

    @app.put("/settings")
    def update_settings():
        return _success(queries.update_settings(_user(), _json_body()))

    # Dashboard ------------------------------------------------------------
    @app.get("/dashboard")
    def dashboard():
        return _success(queries.dashboard(_user(), _as_of()))

    @app.get("/dashboard/category-breakdown")
    def dashboard_category_breakdown():
        return _success({"items": queries.category_breakdown(_user(), _as_of())})

    @app.get("/dashboard/spending-trends")
    def dashboard_spending_trends():
        months = request.args.get("months", "6")
        if not months.isdigit() or not 1 <= int(months) <= 24:
            raise ValidationError("months must be an integer between 1 and 24")
        return _success({"items": queries.spending_trends(_user(), _as_of(), int(months))})

    @app.get("/dashboard/weekly")
    def dashboard_weekly():
        return _success({"items": queries.weekly_spending(_user(), _as_of())})

    @app.get("/dashboard/budgets")
    def dashboard_budgets():
        return _success({"items": queries.budget_overview(_user(), _as_of())})

    @app.get("/dashboard/net-worth")
    def dashboard_net_worth():
        return _success(queries.net_worth(_user(), _as_of()))

    @app.get("/dashboard/insights")
    def dashboard_insights():
        return _success({"items": queries.insights(_user(), _as_of())})

    @app.get("/dashboard/recent")
    def dashboard_recent():
        return _success({"items": queries.recent_expenses(_user())})

    return app
