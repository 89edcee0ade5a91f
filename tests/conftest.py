"""Shared fixtures for the finance tracker tests.

Every test gets its own document store under ``tmp_path`` and a frozen
clock, so dashboard windows ("this month", "this week") are deterministic.
The frozen instant is Wednesday 2026-03-18 12:00 UTC.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from finance_api.app import create_app
from finance_core.config import AppConfig
from finance_core.queries import FinanceQueries
from finance_core.storage import JSONDocumentStore

NOW = datetime(2026, 3, 18, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that tests can move forward explicitly."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "FINANCE_TRACKER_ENV",
        "FINANCE_TRACKER_ALLOWED_ORIGINS",
        "FINANCE_TRACKER_DATA_DIR",
        "FINANCE_TRACKER_CACHE_SECONDS",
        "FINANCE_TRACKER_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store(tmp_path: Path) -> JSONDocumentStore:
    return JSONDocumentStore(tmp_path / "data")


@pytest.fixture
def queries(store: JSONDocumentStore, clock: FrozenClock) -> FinanceQueries:
    return FinanceQueries(store, clock=clock)


@pytest.fixture
def app(tmp_path: Path, clock: FrozenClock):
    app = create_app(tmp_path / "api-data", config=AppConfig(env="dev"), clock=clock)
    app.config.update(TESTING=True)
    return app


@pytest.fixture
def client(app):
    return app.test_client()
