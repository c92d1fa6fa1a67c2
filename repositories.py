"""
Repository layer translating between ORM rows and domain types.

Each entity has exactly one ``*_from_row`` mapping function; the rest of
the application only ever sees the frozen dataclasses from ``domain``.
Every write accepts an optional session so several writes can share one
unit of work (see ``DatabaseManager.session_scope``).
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Iterator, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from database_ops import (
    BudgetRow,
    DatabaseManager,
    ExpenseRow,
    IncomeRow,
    NotificationRow,
    SimulatedExpenseRow,
    SimulationRow,
    UserRow,
    utc_now,
)
from domain import (
    Budget,
    BudgetPeriod,
    BudgetWindow,
    Expense,
    Income,
    Notification,
    NotificationType,
    SimulatedExpense,
    Simulation,
    User,
)
from exceptions import DatabaseError

logger = logging.getLogger(__name__)


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def user_from_row(row: UserRow) -> User:
    return User(id=row.id, email=row.email, name=row.name)


def budget_from_row(row: BudgetRow) -> Budget:
    """
    Map a budget row to the domain type.

    Unrecognized stored periods map to ``period=None``; the period
    calculator applies its calendar-month fallback to those.
    """
    period = BudgetPeriod.from_value(row.period)
    if period is None:
        logger.warning("Budget %s has unrecognized period '%s'", row.id, row.period)
    return Budget(
        id=row.id,
        user_id=row.user_id,
        category=row.category,
        limit=_to_decimal(row.limit_amount),
        period=period,
        start_date=row.start_date,
        end_date=row.end_date,
        created_at=row.created_at,
        updated_at=row.updated_at,
        stored_period=row.period,
    )


def expense_from_row(row: ExpenseRow) -> Expense:
    return Expense(
        id=row.id,
        user_id=row.user_id,
        amount=_to_decimal(row.amount),
        description=row.description,
        date=row.date,
        category=row.category,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def income_from_row(row: IncomeRow) -> Income:
    return Income(
        id=row.id,
        user_id=row.user_id,
        amount=_to_decimal(row.amount),
        source=row.source,
        description=row.description,
        date=row.date,
        category=row.category,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def notification_from_row(row: NotificationRow) -> Notification:
    return Notification(
        id=row.id,
        user_id=row.user_id,
        type=row.type,
        message=row.message,
        is_read=bool(row.is_read),
        created_at=row.created_at,
    )


def simulated_expense_from_row(row: SimulatedExpenseRow) -> SimulatedExpense:
    return SimulatedExpense(
        id=row.id,
        simulation_id=row.simulation_id,
        amount=_to_decimal(row.amount),
        description=row.description,
        category=row.category,
        date=row.date,
    )


def simulation_from_row(row: SimulationRow) -> Simulation:
    return Simulation(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        created_at=row.created_at,
        expenses=tuple(simulated_expense_from_row(item) for item in row.expenses),
    )


class _Repository:
    """Shared session handling for repositories."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    @contextmanager
    def _session(self, session: Optional[Session] = None) -> Iterator[Session]:
        """
        Yield the caller's session, or a private unit of work.

        A caller-provided session is never committed here; the caller's
        scope decides.
        """
        if session is not None:
            yield session
        else:
            with self.db_manager.session_scope() as own_session:
                yield own_session

    @staticmethod
    def _fail(action: str, error: SQLAlchemyError, **details) -> DatabaseError:
        logger.error(f"Failed to {action}: {error}")
        return DatabaseError(f"Failed to {action}", details=details, original_error=error)


class UserRepository(_Repository):
    """Stores users; the core only needs their email address and name."""

    def create_user(self, email: str, name: Optional[str] = None,
                    session: Optional[Session] = None) -> User:
        try:
            with self._session(session) as s:
                row = UserRow(email=email, name=name)
                s.add(row)
                s.flush()
                user = user_from_row(row)
            logger.info(f"Created user {user.id} ({email})")
            return user
        except SQLAlchemyError as e:
            raise self._fail("create user", e, email=email) from e

    def get_user(self, user_id: int) -> Optional[User]:
        try:
            with self._session() as s:
                row = s.get(UserRow, user_id)
                return user_from_row(row) if row else None
        except SQLAlchemyError as e:
            raise self._fail("get user", e, user_id=user_id) from e

    def get_user_by_email(self, email: str) -> Optional[User]:
        try:
            with self._session() as s:
                row = s.query(UserRow).filter(UserRow.email == email).first()
                return user_from_row(row) if row else None
        except SQLAlchemyError as e:
            raise self._fail("get user by email", e, email=email) from e


class BudgetRepository(_Repository):
    """Budget persistence keyed by user and category."""

    def list_budgets(self, user_id: int, categories: Optional[Iterable[str]] = None) -> List[Budget]:
        """
        List a user's budgets, optionally restricted to a set of categories.

        No active/period filtering happens here; inactive budgets are
        returned too.

        Args:
            user_id: Owning user
            categories: Optional category filter (exact string match)

        Returns:
            Budgets ordered by id
        """
        category_list = None if categories is None else list(categories)
        if category_list is not None and not category_list:
            return []
        try:
            with self._session() as s:
                query = s.query(BudgetRow).filter(BudgetRow.user_id == user_id)
                if category_list is not None:
                    query = query.filter(BudgetRow.category.in_(category_list))
                return [budget_from_row(row) for row in query.order_by(BudgetRow.id).all()]
        except SQLAlchemyError as e:
            raise self._fail("list budgets", e, user_id=user_id) from e

    def get_budget(self, budget_id: int, user_id: int) -> Optional[Budget]:
        try:
            with self._session() as s:
                row = s.query(BudgetRow).filter(
                    BudgetRow.id == budget_id,
                    BudgetRow.user_id == user_id
                ).first()
                return budget_from_row(row) if row else None
        except SQLAlchemyError as e:
            raise self._fail("get budget", e, budget_id=budget_id) from e

    def create_budget(
        self,
        user_id: int,
        category: str,
        limit: Decimal,
        period: BudgetPeriod,
        start_date: datetime,
        end_date: Optional[datetime] = None,
        session: Optional[Session] = None
    ) -> Budget:
        try:
            with self._session(session) as s:
                row = BudgetRow(
                    user_id=user_id,
                    category=category,
                    limit_amount=limit,
                    period=period.value,
                    start_date=start_date,
                    end_date=end_date,
                )
                s.add(row)
                s.flush()
                return budget_from_row(row)
        except SQLAlchemyError as e:
            raise self._fail("create budget", e, category=category) from e

    def update_budget(
        self,
        budget_id: int,
        user_id: int,
        category: Optional[str] = None,
        limit: Optional[Decimal] = None,
        period: Optional[BudgetPeriod] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        clear_end_date: bool = False,
        session: Optional[Session] = None
    ) -> Optional[Budget]:
        """Apply the given changes; returns None if the budget is not the user's."""
        try:
            with self._session(session) as s:
                row = s.query(BudgetRow).filter(
                    BudgetRow.id == budget_id,
                    BudgetRow.user_id == user_id
                ).first()
                if row is None:
                    return None
                if category is not None:
                    row.category = category
                if limit is not None:
                    row.limit_amount = limit
                if period is not None:
                    row.period = period.value
                if start_date is not None:
                    row.start_date = start_date
                if clear_end_date:
                    row.end_date = None
                elif end_date is not None:
                    row.end_date = end_date
                row.updated_at = utc_now()
                s.flush()
                return budget_from_row(row)
        except SQLAlchemyError as e:
            raise self._fail("update budget", e, budget_id=budget_id) from e

    def delete_budget(self, budget_id: int, user_id: int) -> bool:
        try:
            with self._session() as s:
                deleted = s.query(BudgetRow).filter(
                    BudgetRow.id == budget_id,
                    BudgetRow.user_id == user_id
                ).delete(synchronize_session=False)
                return deleted > 0
        except SQLAlchemyError as e:
            raise self._fail("delete budget", e, budget_id=budget_id) from e


class ExpenseRepository(_Repository):
    """Expense persistence."""

    def list_expenses(
        self,
        user_id: int,
        category: Optional[str] = None,
        date_range: Optional[BudgetWindow] = None
    ) -> List[Expense]:
        """
        List a user's expenses.

        Args:
            user_id: Owning user
            category: Optional exact category match
            date_range: Optional half-open ``[period_start, period_end)`` window

        Returns:
            Expenses ordered by date, then id
        """
        try:
            with self._session() as s:
                query = s.query(ExpenseRow).filter(ExpenseRow.user_id == user_id)
                if category is not None:
                    query = query.filter(ExpenseRow.category == category)
                if date_range is not None:
                    query = query.filter(
                        ExpenseRow.date >= date_range.period_start,
                        ExpenseRow.date < date_range.period_end
                    )
                rows = query.order_by(ExpenseRow.date, ExpenseRow.id).all()
                return [expense_from_row(row) for row in rows]
        except SQLAlchemyError as e:
            raise self._fail("list expenses", e, user_id=user_id, category=category) from e

    def get_expense(self, expense_id: int, user_id: int) -> Optional[Expense]:
        try:
            with self._session() as s:
                row = s.query(ExpenseRow).filter(
                    ExpenseRow.id == expense_id,
                    ExpenseRow.user_id == user_id
                ).first()
                return expense_from_row(row) if row else None
        except SQLAlchemyError as e:
            raise self._fail("get expense", e, expense_id=expense_id) from e

    def create_expense(
        self,
        user_id: int,
        amount: Decimal,
        description: str,
        date: datetime,
        category: str,
        session: Optional[Session] = None
    ) -> Expense:
        try:
            with self._session(session) as s:
                row = ExpenseRow(
                    user_id=user_id,
                    amount=amount,
                    description=description,
                    date=date,
                    category=category,
                )
                s.add(row)
                s.flush()
                return expense_from_row(row)
        except SQLAlchemyError as e:
            raise self._fail("create expense", e, category=category) from e

    def update_expense(
        self,
        expense_id: int,
        user_id: int,
        amount: Optional[Decimal] = None,
        description: Optional[str] = None,
        date: Optional[datetime] = None,
        category: Optional[str] = None,
        session: Optional[Session] = None
    ) -> Optional[Expense]:
        try:
            with self._session(session) as s:
                row = s.query(ExpenseRow).filter(
                    ExpenseRow.id == expense_id,
                    ExpenseRow.user_id == user_id
                ).first()
                if row is None:
                    return None
                if amount is not None:
                    row.amount = amount
                if description is not None:
                    row.description = description
                if date is not None:
                    row.date = date
                if category is not None:
                    row.category = category
                row.updated_at = utc_now()
                s.flush()
                return expense_from_row(row)
        except SQLAlchemyError as e:
            raise self._fail("update expense", e, expense_id=expense_id) from e

    def delete_expense(self, expense_id: int, user_id: int) -> bool:
        try:
            with self._session() as s:
                deleted = s.query(ExpenseRow).filter(
                    ExpenseRow.id == expense_id,
                    ExpenseRow.user_id == user_id
                ).delete(synchronize_session=False)
                return deleted > 0
        except SQLAlchemyError as e:
            raise self._fail("delete expense", e, expense_id=expense_id) from e


class IncomeRepository(_Repository):
    """Income persistence. Income never participates in budget usage."""

    def list_income(self, user_id: int, date_range: Optional[BudgetWindow] = None) -> List[Income]:
        try:
            with self._session() as s:
                query = s.query(IncomeRow).filter(IncomeRow.user_id == user_id)
                if date_range is not None:
                    query = query.filter(
                        IncomeRow.date >= date_range.period_start,
                        IncomeRow.date < date_range.period_end
                    )
                rows = query.order_by(IncomeRow.date, IncomeRow.id).all()
                return [income_from_row(row) for row in rows]
        except SQLAlchemyError as e:
            raise self._fail("list income", e, user_id=user_id) from e

    def create_income(
        self,
        user_id: int,
        amount: Decimal,
        source: str,
        date: datetime,
        category: str,
        description: Optional[str] = None,
        session: Optional[Session] = None
    ) -> Income:
        try:
            with self._session(session) as s:
                row = IncomeRow(
                    user_id=user_id,
                    amount=amount,
                    source=source,
                    description=description,
                    date=date,
                    category=category,
                )
                s.add(row)
                s.flush()
                return income_from_row(row)
        except SQLAlchemyError as e:
            raise self._fail("create income", e, source=source) from e

    def delete_income(self, income_id: int, user_id: int) -> bool:
        try:
            with self._session() as s:
                deleted = s.query(IncomeRow).filter(
                    IncomeRow.id == income_id,
                    IncomeRow.user_id == user_id
                ).delete(synchronize_session=False)
                return deleted > 0
        except SQLAlchemyError as e:
            raise self._fail("delete income", e, income_id=income_id) from e


class NotificationRepository(_Repository):
    """Notification persistence. Rows are only ever created or marked read."""

    def create_notification(
        self,
        user_id: int,
        notification_type: NotificationType,
        message: str,
        session: Optional[Session] = None
    ) -> Notification:
        try:
            with self._session(session) as s:
                row = NotificationRow(
                    user_id=user_id,
                    type=notification_type,
                    message=message,
                    is_read=False,
                )
                s.add(row)
                s.flush()
                return notification_from_row(row)
        except SQLAlchemyError as e:
            raise self._fail(
                "create notification", e, user_id=user_id, type=notification_type.value
            ) from e

    def _filtered(self, s: Session, user_id: int, unread_only: bool,
                  notification_type: Optional[NotificationType]):
        query = s.query(NotificationRow).filter(NotificationRow.user_id == user_id)
        if unread_only:
            query = query.filter(NotificationRow.is_read.is_(False))
        if notification_type is not None:
            query = query.filter(NotificationRow.type == notification_type)
        return query

    def list_notifications(
        self,
        user_id: int,
        unread_only: bool = False,
        notification_type: Optional[NotificationType] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[Notification]:
        """Return notifications newest first."""
        try:
            with self._session() as s:
                query = self._filtered(s, user_id, unread_only, notification_type)
                query = query.order_by(NotificationRow.created_at.desc(), NotificationRow.id.desc())
                if offset:
                    query = query.offset(offset)
                if limit:
                    query = query.limit(limit)
                return [notification_from_row(row) for row in query.all()]
        except SQLAlchemyError as e:
            raise self._fail("list notifications", e, user_id=user_id) from e

    def count_notifications(
        self,
        user_id: int,
        unread_only: bool = False,
        notification_type: Optional[NotificationType] = None
    ) -> int:
        try:
            with self._session() as s:
                return self._filtered(s, user_id, unread_only, notification_type).count()
        except SQLAlchemyError as e:
            raise self._fail("count notifications", e, user_id=user_id) from e

    def count_unread(self, user_id: int) -> int:
        return self.count_notifications(user_id, unread_only=True)

    def mark_read(self, notification_id: int, user_id: int) -> Optional[Notification]:
        """Flip the read flag; returns None when the notification is not the user's."""
        try:
            with self._session() as s:
                row = s.query(NotificationRow).filter(
                    NotificationRow.id == notification_id,
                    NotificationRow.user_id == user_id
                ).first()
                if row is None:
                    return None
                row.is_read = True
                s.flush()
                return notification_from_row(row)
        except SQLAlchemyError as e:
            raise self._fail("mark notification read", e, notification_id=notification_id) from e

    def mark_all_read(self, user_id: int) -> int:
        try:
            with self._session() as s:
                return s.query(NotificationRow).filter(
                    NotificationRow.user_id == user_id,
                    NotificationRow.is_read.is_(False)
                ).update({NotificationRow.is_read: True}, synchronize_session=False)
        except SQLAlchemyError as e:
            raise self._fail("mark all notifications read", e, user_id=user_id) from e


class SimulationRepository(_Repository):
    """Simulation persistence; a simulation owns its line items."""

    def create_simulation(
        self,
        user_id: int,
        name: str,
        items: Sequence[SimulatedExpense],
        session: Optional[Session] = None
    ) -> Simulation:
        try:
            with self._session(session) as s:
                row = SimulationRow(user_id=user_id, name=name)
                for position, item in enumerate(items):
                    row.expenses.append(SimulatedExpenseRow(
                        position=position,
                        amount=item.amount,
                        description=item.description,
                        category=item.category,
                        date=item.date,
                    ))
                s.add(row)
                s.flush()
                return simulation_from_row(row)
        except SQLAlchemyError as e:
            raise self._fail("create simulation", e, name=name) from e

    def get_simulation_with_items(self, simulation_id: int, user_id: int) -> Optional[Simulation]:
        try:
            with self._session() as s:
                row = s.query(SimulationRow).options(
                    selectinload(SimulationRow.expenses)
                ).filter(
                    SimulationRow.id == simulation_id,
                    SimulationRow.user_id == user_id
                ).first()
                return simulation_from_row(row) if row else None
        except SQLAlchemyError as e:
            raise self._fail("get simulation", e, simulation_id=simulation_id) from e

    def list_simulations(self, user_id: int) -> List[Simulation]:
        try:
            with self._session() as s:
                rows = s.query(SimulationRow).options(
                    selectinload(SimulationRow.expenses)
                ).filter(
                    SimulationRow.user_id == user_id
                ).order_by(SimulationRow.created_at.desc(), SimulationRow.id.desc()).all()
                return [simulation_from_row(row) for row in rows]
        except SQLAlchemyError as e:
            raise self._fail("list simulations", e, user_id=user_id) from e

    def update_simulation(
        self,
        simulation_id: int,
        user_id: int,
        name: Optional[str] = None,
        items: Optional[Sequence[SimulatedExpense]] = None
    ) -> Optional[Simulation]:
        """Rename a simulation and/or replace all of its line items."""
        try:
            with self._session() as s:
                row = s.query(SimulationRow).filter(
                    SimulationRow.id == simulation_id,
                    SimulationRow.user_id == user_id
                ).first()
                if row is None:
                    return None
                if name is not None:
                    row.name = name
                if items is not None:
                    row.expenses.clear()
                    s.flush()
                    for position, item in enumerate(items):
                        row.expenses.append(SimulatedExpenseRow(
                            position=position,
                            amount=item.amount,
                            description=item.description,
                            category=item.category,
                            date=item.date,
                        ))
                s.flush()
                return simulation_from_row(row)
        except SQLAlchemyError as e:
            raise self._fail("update simulation", e, simulation_id=simulation_id) from e

    def delete_simulation(self, simulation_id: int, user_id: int) -> bool:
        """Delete a simulation and, through the ORM cascade, its line items."""
        try:
            with self._session() as s:
                row = s.query(SimulationRow).filter(
                    SimulationRow.id == simulation_id,
                    SimulationRow.user_id == user_id
                ).first()
                if row is None:
                    return False
                s.delete(row)
                return True
        except SQLAlchemyError as e:
            raise self._fail("delete simulation", e, simulation_id=simulation_id) from e
