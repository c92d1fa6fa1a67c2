from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import inspect

from database_ops import DatabaseManager, ExpenseRow, SimulatedExpenseRow, SimulationRow, UserRow


def test_create_tables_is_idempotent(db_manager):
    db_manager.create_tables()

    tables = set(inspect(db_manager.engine).get_table_names())

    assert {
        "users", "budgets", "expenses", "incomes",
        "notifications", "simulations", "simulated_expenses",
    } <= tables


def test_session_scope_commits(db_manager):
    with db_manager.session_scope() as session:
        session.add(UserRow(email="carol@example.com"))

    with db_manager.session_scope() as session:
        assert session.query(UserRow).count() == 1


def test_session_scope_rolls_back_on_error(db_manager):
    with pytest.raises(ValueError):
        with db_manager.session_scope() as session:
            session.add(UserRow(email="dave@example.com"))
            session.flush()
            raise ValueError("boom")

    with db_manager.session_scope() as session:
        assert session.query(UserRow).count() == 0


def test_money_round_trips_as_decimal(db_manager, user):
    with db_manager.session_scope() as session:
        session.add(ExpenseRow(
            user_id=user.id, amount=Decimal("19.99"), description="x",
            date=datetime(2023, 3, 1), category="Food",
        ))

    with db_manager.session_scope() as session:
        assert session.query(ExpenseRow).one().amount == Decimal("19.99")


def test_deleting_simulation_cascades_to_items(db_manager, user):
    with db_manager.session_scope() as session:
        simulation = SimulationRow(user_id=user.id, name="s")
        simulation.expenses.append(SimulatedExpenseRow(
            position=0, amount=Decimal("1.00"), description="", category="Food", date=datetime(2023, 3, 1),
        ))
        session.add(simulation)

    with db_manager.session_scope() as session:
        session.delete(session.query(SimulationRow).one())

    with db_manager.session_scope() as session:
        assert session.query(SimulatedExpenseRow).count() == 0


def test_in_memory_manager():
    manager = DatabaseManager("sqlite:///:memory:")
    try:
        manager.create_tables()
        assert "expenses" in inspect(manager.engine).get_table_names()
    finally:
        manager.close()
