"""
Shared fixtures: a throwaway SQLite database, a user, and a fixed clock.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from database_ops import DatabaseManager
from domain import BudgetPeriod
from repositories import BudgetRepository, ExpenseRepository, UserRepository

FIXED_NOW = datetime(2023, 3, 15, 12, 0, 0)


def fixed_clock():
    return FIXED_NOW


@pytest.fixture()
def db_manager(tmp_path):
    """Provide a DatabaseManager backed by a temporary SQLite file."""
    manager = DatabaseManager(f"sqlite:///{(tmp_path / 'test.db').as_posix()}")
    manager.create_tables()
    try:
        yield manager
    finally:
        manager.close()


@pytest.fixture()
def user(db_manager):
    return UserRepository(db_manager).create_user("alice@example.com", "Alice")


@pytest.fixture()
def make_budget(db_manager, user):
    """Factory persisting a budget for the test user."""
    repository = BudgetRepository(db_manager)

    def _make(category="Food", limit="200.00", period=BudgetPeriod.MONTHLY,
              start_date=datetime(2023, 1, 1), end_date=None):
        return repository.create_budget(
            user_id=user.id,
            category=category,
            limit=Decimal(limit),
            period=period,
            start_date=start_date,
            end_date=end_date,
        )

    return _make


@pytest.fixture()
def make_expense(db_manager, user):
    """Factory persisting an expense for the test user."""
    repository = ExpenseRepository(db_manager)

    def _make(amount="10.00", category="Food", date=datetime(2023, 3, 10), description="Test expense"):
        return repository.create_expense(
            user_id=user.id,
            amount=Decimal(amount),
            description=description,
            date=date,
            category=category,
        )

    return _make
