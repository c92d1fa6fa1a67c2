"""
Expense and income management module.

This module provides CRUD operations for expenses and income. Recording or
updating an expense also checks it against the user's budgets and returns
any notifications that were raised.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from budgeting import parse_amount
from database_ops import DatabaseManager
from domain import BudgetImpact, BudgetWindow, Expense, Income, Notification
from exceptions import InvalidInputError, NotFoundError
from notifications import BudgetNotifier
from repositories import ExpenseRepository, IncomeRepository
from utils import parse_date

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class ExpenseOutcome:
    """A saved expense with the budget feedback it produced."""
    expense: Expense
    notifications: List[Notification] = field(default_factory=list)
    budget_status: List[BudgetImpact] = field(default_factory=list)


def _required_text(value: Optional[str], field_name: str) -> str:
    text = (value or "").strip()
    if not text:
        raise InvalidInputError(f"{field_name.capitalize()} is required", details={"field": field_name})
    return text


class ExpenseManager:
    """
    Manages expenses.

    Provides CRUD operations; create and update run the budget notifier.
    """

    def __init__(self, db_manager: DatabaseManager, notifier: Optional[BudgetNotifier] = None):
        """
        Initialize the expense manager.

        Args:
            db_manager: DatabaseManager instance
            notifier: Budget notifier (defaults to one with email disabled)
        """
        self.db_manager = db_manager
        self.expenses = ExpenseRepository(db_manager)
        self.notifier = notifier or BudgetNotifier(db_manager)
        logger.info("Expense manager initialized")

    def create_expense(
        self,
        user_id: int,
        amount,
        description: str,
        category: str,
        date=None,
        notify: bool = True
    ) -> ExpenseOutcome:
        """
        Record an expense.

        Args:
            user_id: Owning user
            amount: Positive amount
            description: Free-text description
            category: Category tag
            date: When it was spent (defaults to now)
            notify: Whether to check budgets and emit notifications

        Returns:
            ExpenseOutcome with the saved expense and budget feedback

        Raises:
            InvalidInputError: If amount, category or date is malformed
        """
        expense = self.expenses.create_expense(
            user_id=user_id,
            amount=parse_amount(amount),
            description=(description or "").strip(),
            date=parse_date(date) if date is not None else datetime.now(),
            category=_required_text(category, "category"),
        )
        logger.info(f"Created expense {expense.id}: ${expense.amount} in '{expense.category}'")
        return self._with_feedback(expense, user_id, notify)

    def update_expense(
        self,
        expense_id: int,
        user_id: int,
        amount=None,
        description: Optional[str] = None,
        category: Optional[str] = None,
        date=None,
        notify: bool = True
    ) -> ExpenseOutcome:
        """
        Update an expense; only the given fields change.

        Raises:
            NotFoundError: If the expense does not exist or is not the user's
            InvalidInputError: If a new value is malformed
        """
        updated = self.expenses.update_expense(
            expense_id,
            user_id,
            amount=parse_amount(amount) if amount is not None else None,
            description=description.strip() if description is not None else None,
            date=parse_date(date) if date is not None else None,
            category=_required_text(category, "category") if category is not None else None,
        )
        if updated is None:
            raise NotFoundError("Expense not found", details={"expense_id": expense_id})
        logger.info(f"Updated expense {expense_id}")
        return self._with_feedback(updated, user_id, notify)

    def _with_feedback(self, expense: Expense, user_id: int, notify: bool) -> ExpenseOutcome:
        outcome = ExpenseOutcome(expense=expense)
        if notify:
            result = self.notifier.check_budget_limits_and_notify(expense, user_id)
            outcome.notifications = result.notifications
            outcome.budget_status = result.budget_status
        return outcome

    def get_expense(self, expense_id: int, user_id: int) -> Expense:
        expense = self.expenses.get_expense(expense_id, user_id)
        if expense is None:
            raise NotFoundError("Expense not found", details={"expense_id": expense_id})
        return expense

    def list_expenses(
        self,
        user_id: int,
        category: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> List[Expense]:
        """
        List expenses, optionally by category and ``[start_date, end_date)``.
        """
        date_range = None
        if start_date is not None or end_date is not None:
            date_range = BudgetWindow(
                period_start=start_date or datetime.min,
                period_end=end_date or datetime.max,
            )
        return self.expenses.list_expenses(user_id, category=category, date_range=date_range)

    def delete_expense(self, expense_id: int, user_id: int) -> None:
        if not self.expenses.delete_expense(expense_id, user_id):
            raise NotFoundError("Expense not found", details={"expense_id": expense_id})
        logger.info(f"Deleted expense {expense_id}")


class IncomeManager:
    """Manages income entries. Income does not affect budgets."""

    def __init__(self, db_manager: DatabaseManager):
        self.income = IncomeRepository(db_manager)

    def create_income(
        self,
        user_id: int,
        amount,
        source: str,
        category: str,
        date=None,
        description: Optional[str] = None
    ) -> Income:
        income = self.income.create_income(
            user_id=user_id,
            amount=parse_amount(amount),
            source=_required_text(source, "source"),
            date=parse_date(date) if date is not None else datetime.now(),
            category=_required_text(category, "category"),
            description=description,
        )
        logger.info(f"Created income {income.id}: ${income.amount} from '{income.source}'")
        return income

    def list_income(self, user_id: int) -> List[Income]:
        return self.income.list_income(user_id)

    def delete_income(self, income_id: int, user_id: int) -> None:
        if not self.income.delete_income(income_id, user_id):
            raise NotFoundError("Income not found", details={"income_id": income_id})
        logger.info(f"Deleted income {income_id}")
