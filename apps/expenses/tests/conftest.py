"""Test fixtures for the expense approvals app and workflow core."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
import sys

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
REPO_ROOT = Path(__file__).resolve().parents[3]
for path in (PROJECT_ROOT, REPO_ROOT):
    if str(path) not in sys.path:
        sys.path.append(str(path))

from expense_approvals_web import AppConfig, create_app  # noqa: E402
from packages.expense_workflow import (  # noqa: E402
    ActionDispatcher,
    Expense,
    InMemoryDirectory,
    InMemoryExpenseRepository,
    LineItem,
    OrganizationRole,
)

OWNER = "owner-1"
MANAGER = "manager-1"
ADMIN = "admin-1"
STRANGER = "stranger-1"
ORG = "org-acme"


class FakeClock:
    """Deterministic clock that advances one minute per call."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(minutes=1)
        return current


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture()
def directory() -> InMemoryDirectory:
    """Owner and manager belong to ACME; ``ADMIN`` runs its finance team."""

    directory = InMemoryDirectory()
    directory.add_member(ORG, OWNER)
    directory.add_member(ORG, MANAGER)
    directory.add_member(ORG, ADMIN, OrganizationRole.ADMIN)
    return directory


@pytest.fixture()
def repository(clock: FakeClock) -> InMemoryExpenseRepository:
    return InMemoryExpenseRepository(clock=clock)


@pytest.fixture()
def dispatcher(repository, directory, clock) -> ActionDispatcher:
    return ActionDispatcher(repository, directory, clock=clock)


def line_item(amount: str = "120.00", **overrides) -> LineItem:
    values = {
        "amount": Decimal(amount),
        "date": date(2024, 4, 15),
        "description": "Client dinner",
        "category": "meals",
    }
    values.update(overrides)
    return LineItem(**values)


def make_expense(expense_id: str = "exp-1", **overrides) -> Expense:
    """Build a draft directly, bypassing creation and its audit entry."""

    values = {
        "id": expense_id,
        "owner_id": OWNER,
        "manager_ids": frozenset({MANAGER}),
        "total_amount": Decimal("120.00"),
        "line_items": (line_item(),),
    }
    values.update(overrides)
    return Expense(**values)


@pytest.fixture()
def app(tmp_path: Path):
    """Return a Flask app configured for testing."""

    db_path = tmp_path / "test.db"
    config = AppConfig(
        database_url=f"sqlite:///{db_path}",
        secret_key="testing",
        max_content_length=1024 * 1024,
    )
    application = create_app(config)
    application.config.update(TESTING=True)
    yield application


@pytest.fixture()
def client(app):
    """Return a Flask test client."""

    return app.test_client()
