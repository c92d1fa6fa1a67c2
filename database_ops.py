"""
Database operations module for expense-assistant storage.

This module handles database connections, schema creation and session
management using SQLAlchemy ORM. Supports SQLite by default with easy
migration to other databases.
"""

import logging
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Iterator

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    create_engine,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker

from domain import NotificationType

# Configure logging
logger = logging.getLogger(__name__)

MONEY = Numeric(12, 2, asdecimal=True)


def utc_now() -> datetime:
    """
    Get current UTC datetime with timezone awareness.

    Used for created/updated bookkeeping columns. Expense, income and budget
    dates are stored as naive local datetimes, the way users enter them.

    Returns:
        Current datetime in UTC with timezone info
    """
    return datetime.now(UTC)


# Base class for declarative models
Base = declarative_base()


class UserRow(Base):
    """
    SQLAlchemy model representing an application user.

    Attributes:
        id: Auto-incrementing primary key
        email: Address notification emails are sent to
        name: Optional display name used in email greetings
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self) -> str:
        return f"<UserRow(id={self.id}, email='{self.email}')>"


class BudgetRow(Base):
    """
    SQLAlchemy model representing a recurring budget.

    Attributes:
        id: Auto-incrementing primary key
        user_id: Owning user
        category: Category tag (joined to expenses by string equality)
        limit_amount: Spending limit per period
        period: Recurrence name ("daily", "weekly" or "monthly")
        start_date: Anchor of the first period
        end_date: Optional end of the budget
    """

    __tablename__ = "budgets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    category = Column(String(100), nullable=False, index=True)
    limit_amount = Column("limit", MONEY, nullable=False)
    period = Column(String(16), nullable=False, default="monthly")
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        Index('idx_budget_user_category', 'user_id', 'category'),
    )

    def __repr__(self) -> str:
        return (
            f"<BudgetRow(id={self.id}, category='{self.category}', "
            f"limit={self.limit_amount}, period={self.period})>"
        )


class ExpenseRow(Base):
    """
    SQLAlchemy model representing a recorded expense.

    Attributes:
        id: Auto-incrementing primary key
        user_id: Owning user
        amount: Positive expense amount
        description: Free-text description
        date: When the money was spent
        category: Category tag
    """

    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(MONEY, nullable=False)
    description = Column(String(500), nullable=False, default="")
    date = Column(DateTime, nullable=False, index=True)
    category = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    # Budget usage queries filter on all three
    __table_args__ = (
        Index('idx_expense_user_category_date', 'user_id', 'category', 'date'),
    )

    def __repr__(self) -> str:
        return (
            f"<ExpenseRow(id={self.id}, date={self.date}, "
            f"category='{self.category}', amount={self.amount})>"
        )


class IncomeRow(Base):
    """SQLAlchemy model representing a recorded income entry."""

    __tablename__ = "incomes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(MONEY, nullable=False)
    source = Column(String(255), nullable=False)
    description = Column(String(500), nullable=True)
    date = Column(DateTime, nullable=False, index=True)
    category = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self) -> str:
        return f"<IncomeRow(id={self.id}, source='{self.source}', amount={self.amount})>"


class NotificationRow(Base):
    """
    SQLAlchemy model representing a budget notification.

    Attributes:
        id: Auto-incrementing primary key
        user_id: Owning user
        type: NotificationType
        message: Pre-rendered message text
        is_read: Whether the user has acknowledged it
    """

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(Enum(NotificationType), nullable=False, index=True)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False, index=True)

    __table_args__ = (
        Index('idx_notification_user_read', 'user_id', 'is_read'),
    )

    def __repr__(self) -> str:
        return (
            f"<NotificationRow(id={self.id}, type={self.type.value}, "
            f"is_read={self.is_read})>"
        )


class SimulationRow(Base):
    """SQLAlchemy model representing a named what-if spending plan."""

    __tablename__ = "simulations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    # Line items are owned exclusively and kept in entry order
    expenses = relationship(
        "SimulatedExpenseRow",
        back_populates="simulation",
        cascade="all, delete-orphan",
        order_by="SimulatedExpenseRow.position",
    )

    def __repr__(self) -> str:
        return f"<SimulationRow(id={self.id}, name='{self.name}')>"


class SimulatedExpenseRow(Base):
    """SQLAlchemy model representing one hypothetical line item of a simulation."""

    __tablename__ = "simulated_expenses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    simulation_id = Column(
        Integer, ForeignKey("simulations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False, default=0)
    amount = Column(MONEY, nullable=False)
    description = Column(String(500), nullable=False, default="")
    category = Column(String(100), nullable=False)
    date = Column(DateTime, nullable=False)

    simulation = relationship("SimulationRow", back_populates="expenses")

    def __repr__(self) -> str:
        return (
            f"<SimulatedExpenseRow(id={self.id}, simulation_id={self.simulation_id}, "
            f"amount={self.amount})>"
        )


class DatabaseManager:
    """
    Manages database connections and sessions.

    Repositories obtain sessions from here. ``session_scope`` provides a
    unit of work that commits on success and rolls back on any error.
    """

    def __init__(self, connection_string: str):
        """
        Initialize the database manager.

        Args:
            connection_string: SQLAlchemy connection string (e.g., 'sqlite:///data/expense_assistant.db')

        Raises:
            SQLAlchemyError: If database connection fails
        """
        try:
            self.engine = create_engine(connection_string, echo=False)
            self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
            logger.info(f"Database manager initialized with connection: {connection_string}")
        except SQLAlchemyError as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    def create_tables(self) -> None:
        """
        Create all database tables if they don't exist.

        Raises:
            SQLAlchemyError: If table creation fails
        """
        try:
            Base.metadata.create_all(self.engine)
            logger.info("Database tables created/verified successfully")
        except SQLAlchemyError as e:
            logger.error(f"Failed to create database tables: {e}")
            raise

    def get_session(self) -> Session:
        """
        Get a new database session.

        Returns:
            SQLAlchemy session object

        Note:
            Caller is responsible for closing the session.
        """
        return self.SessionLocal()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Provide a transactional scope around a series of operations.

        Yields:
            Session that is committed when the block exits normally and
            rolled back when it raises
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        """Close the database engine connection."""
        if hasattr(self, 'engine'):
            self.engine.dispose()
            logger.info("Database connection closed")
