"""
Unified exception hierarchy for the expense-assistant project.

This module defines a comprehensive exception hierarchy with
ExpenseAssistantError as the base exception, allowing callers (the CLI or a
web layer) to map failures onto user-facing responses consistently.
"""

from typing import Optional


class ExpenseAssistantError(Exception):
    """
    Base exception class for all expense-assistant errors.

    All custom exceptions in the application should inherit from this class
    to enable unified error handling and consistent error messages.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary with additional error context
        original_error: Optional original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        original_error: Optional[Exception] = None
    ) -> None:
        """
        Initialize ExpenseAssistantError.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
            original_error: Optional original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        msg = self.message
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            msg = f"{msg} ({detail_str})"
        return msg


class ConfigError(ExpenseAssistantError):
    """Raised when configuration loading or validation fails."""
    pass


class DatabaseError(ExpenseAssistantError):
    """Raised when persistence operations fail."""
    pass


class EmailDeliveryError(ExpenseAssistantError):
    """Raised by email senders when a message cannot be delivered."""
    pass


class NotFoundError(ExpenseAssistantError):
    """Raised when a record does not exist or belongs to another user."""
    pass


class InvalidInputError(ExpenseAssistantError):
    """Raised when an amount, date, period or category is malformed."""
    pass


class SimulationError(ExpenseAssistantError):
    """Raised when simulation operations fail."""
    pass


class EmptySimulationError(SimulationError):
    """Raised when converting a simulation that has no line items."""
    pass


class AnalyticsError(ExpenseAssistantError):
    """Raised when analytics operations fail."""
    pass
