"""
Budget notifications.

The notifier checks a just-recorded expense against every budget in its
category and emits at most one warning or exceeded notification per
budget. The manager covers the reading side: listing, unread counts and
marking notifications read.
"""

import logging
import math
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from budgeting import BudgetImpactEvaluator
from config_manager import NotificationSettings
from database_ops import DatabaseManager
from domain import Budget, BudgetUsage, Expense, Notification, NotificationResult, NotificationType
from email_utils import EmailSender, SmtpEmailSender, create_email_template, send_email_notification
from exceptions import DatabaseError, InvalidInputError, NotFoundError
from repositories import BudgetRepository, ExpenseRepository, NotificationRepository, UserRepository
from utils import format_currency

logger = logging.getLogger(__name__)

WARNING_THRESHOLD_PCT = 80.0
LIMIT_PCT = 100.0

_EMAIL_CONTENT = {
    NotificationType.BUDGET_EXCEEDED: ("Budget Alert: Limit Exceeded", "Budget Exceeded", "error"),
    NotificationType.BUDGET_WARNING: ("Budget Alert: Approaching Limit", "Budget Warning", "warning"),
}

_DISPLAY = {
    NotificationType.BUDGET_EXCEEDED: {"severity": "error", "icon": "alert-circle", "title": "Budget Exceeded"},
    NotificationType.BUDGET_WARNING: {"severity": "warning", "icon": "alert-triangle", "title": "Budget Warning"},
}
_DEFAULT_DISPLAY = {"severity": "info", "icon": "info", "title": "Notification"}


def classify_usage(usage: BudgetUsage) -> Optional[NotificationType]:
    """
    Decide which notification, if any, a usage snapshot calls for.

    Over budget (spent strictly above the limit) is exceeded. An uncapped
    usage of at least 80 % and below 100 % is a warning. Spending exactly
    the limit raises nothing.
    """
    if usage.is_over_budget:
        return NotificationType.BUDGET_EXCEEDED
    if WARNING_THRESHOLD_PCT <= usage.raw_percentage < LIMIT_PCT:
        return NotificationType.BUDGET_WARNING
    return None


def render_message(notification_type: NotificationType, budget: Budget, usage: BudgetUsage) -> str:
    """Render the user-facing text for a notification."""
    if notification_type is NotificationType.BUDGET_EXCEEDED:
        return (
            f"Your {budget.category} budget has been exceeded by "
            f"{format_currency(usage.spent - usage.limit)}. You've spent "
            f"{format_currency(usage.spent)} of your {format_currency(usage.limit)} "
            f"{budget.period_name} budget."
        )
    return (
        f"You've used {usage.raw_percentage:.0f}% of your {budget.category} budget. "
        f"You have {format_currency(usage.remaining)} remaining for this "
        f"{budget.period_name} period."
    )


def format_notification(notification: Notification) -> Dict[str, Any]:
    """
    Format a notification for display with type-specific severity, icon and title.
    """
    data = {
        "id": notification.id,
        "message": notification.message,
        "is_read": notification.is_read,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
        "type": notification.type.value,
    }
    data.update(_DISPLAY.get(notification.type, _DEFAULT_DISPLAY))
    return data


class BudgetNotifier:
    """
    Emits budget notifications for newly created or updated expenses.

    Each matching budget is handled independently: a failure persisting one
    budget's notification is logged and the remaining budgets are still
    evaluated. Email is best-effort and never raises to the caller.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        settings: Optional[NotificationSettings] = None,
        email_sender: Optional[EmailSender] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize the notifier.

        Args:
            db_manager: DatabaseManager instance
            settings: Email settings (defaults to email disabled)
            email_sender: Sender to use; an SMTP sender is built from the
                settings when omitted and email is enabled
            clock: Source of "now" for period calculations
        """
        self.settings = settings or NotificationSettings()
        if email_sender is None and self.settings.email_enabled:
            email_sender = SmtpEmailSender(self.settings)
        self.email_sender = email_sender
        self.notifications = NotificationRepository(db_manager)
        self.users = UserRepository(db_manager)
        self.evaluator = BudgetImpactEvaluator(
            BudgetRepository(db_manager),
            ExpenseRepository(db_manager),
            clock=clock,
        )

    def check_budget_limits_and_notify(self, expense: Expense, user_id: int) -> NotificationResult:
        """
        Check an expense against its category's budgets and notify.

        Args:
            expense: The expense that was just created or updated
            user_id: Owning user

        Returns:
            NotificationResult with the notifications created and the usage
            of every matching budget (whether or not it notified)
        """
        result = NotificationResult()
        impacts = self.evaluator.evaluate([expense], user_id)
        if not impacts:
            return result

        recipient = self._email_recipient(user_id)

        for impact in impacts:
            result.budget_status.append(impact)
            notification_type = classify_usage(impact.usage)
            if notification_type is None:
                continue

            message = render_message(notification_type, impact.budget, impact.usage)
            try:
                notification = self.notifications.create_notification(user_id, notification_type, message)
            except DatabaseError as e:
                logger.warning(
                    f"Skipping {notification_type.value} notification for budget "
                    f"{impact.budget.id}: {e}"
                )
                continue

            result.notifications.append(notification)
            logger.info(
                f"Created {notification_type.value} notification {notification.id} "
                f"for budget {impact.budget.id} ({impact.budget.category})"
            )

            if recipient is not None:
                self._send_email(recipient, notification_type, message)

        return result

    def _email_recipient(self, user_id: int):
        if not self.settings.email_enabled or self.email_sender is None:
            return None
        try:
            user = self.users.get_user(user_id)
        except DatabaseError as e:
            logger.warning(f"Cannot look up email recipient for user {user_id}: {e}")
            return None
        if user is None or not user.email:
            return None
        return user

    def _send_email(self, user, notification_type: NotificationType, message: str) -> bool:
        subject, title, severity = _EMAIL_CONTENT[notification_type]
        body = create_email_template(
            title=title,
            message=message,
            user_name=user.name or "User",
            severity=severity,
        )
        return send_email_notification(self.email_sender, user.email, subject, body)


class NotificationManager:
    """Read-side operations on a user's notifications."""

    def __init__(self, db_manager: DatabaseManager):
        self.notifications = NotificationRepository(db_manager)

    def list_notifications(
        self,
        user_id: int,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
        notification_type: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        List notifications newest first with pagination.

        Args:
            user_id: Owning user
            page: 1-based page number
            limit: Page size
            unread_only: Only include unread notifications
            notification_type: Optional type filter ("budget_exceeded"/"budget_warning")

        Returns:
            Dictionary with ``data`` (formatted notifications) and ``pagination``
            (total, page, limit, total_pages)

        Raises:
            InvalidInputError: If page/limit are not positive or the type is unknown
        """
        if page < 1 or limit < 1:
            raise InvalidInputError("Page and limit must be positive", details={"page": page, "limit": limit})
        type_filter = None
        if notification_type:
            try:
                type_filter = NotificationType(notification_type)
            except ValueError as e:
                raise InvalidInputError(
                    "Unknown notification type",
                    details={"type": notification_type},
                    original_error=e
                ) from e

        total = self.notifications.count_notifications(user_id, unread_only, type_filter)
        items = self.notifications.list_notifications(
            user_id,
            unread_only=unread_only,
            notification_type=type_filter,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return {
            "data": [format_notification(item) for item in items],
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "total_pages": math.ceil(total / limit),
            },
        }

    def mark_as_read(self, notification_id: int, user_id: int) -> Notification:
        """
        Mark one notification read.

        Raises:
            NotFoundError: If the notification does not exist or is not the user's
        """
        notification = self.notifications.mark_read(notification_id, user_id)
        if notification is None:
            raise NotFoundError("Notification not found", details={"notification_id": notification_id})
        return notification

    def mark_all_as_read(self, user_id: int) -> int:
        count = self.notifications.mark_all_read(user_id)
        logger.info(f"Marked {count} notifications read for user {user_id}")
        return count

    def get_unread_count(self, user_id: int) -> int:
        return self.notifications.count_unread(user_id)
