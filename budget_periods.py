"""
Budget period calculations.

Works out which recurrence window of a budget contains a given instant,
and whether a budget applies at that instant at all. Everything here is
pure; "now" is always passed in or taken from the local clock.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from domain import Budget, BudgetPeriod, BudgetWindow

logger = logging.getLogger(__name__)

_PERIOD_STEPS = {
    BudgetPeriod.DAILY: relativedelta(days=1),
    BudgetPeriod.WEEKLY: relativedelta(weeks=1),
    BudgetPeriod.MONTHLY: relativedelta(months=1),
}


def period_step(period: Optional[BudgetPeriod]) -> relativedelta:
    """
    Return the length of one recurrence unit.

    Unrecognized periods (``None``) step by one month. Month steps follow
    calendar addition, so the 31st lands on the last day of shorter months.
    """
    return _PERIOD_STEPS.get(period, relativedelta(months=1))


def is_budget_active(budget: Budget, now: Optional[datetime] = None) -> bool:
    """
    Check whether a budget applies at ``now``.

    Both ends are inclusive: a budget is active from the instant it starts
    up to and including its end date.

    Args:
        budget: Budget to check
        now: Reference instant (defaults to the local clock)

    Returns:
        True if ``start_date <= now`` and (no end date or ``now <= end_date``)
    """
    if now is None:
        now = datetime.now()
    if now < budget.start_date:
        return False
    return budget.end_date is None or now <= budget.end_date


def _months_between(start: datetime, now: datetime) -> int:
    return (now.year - start.year) * 12 + (now.month - start.month)


def get_current_budget_period(budget: Budget, now: Optional[datetime] = None) -> BudgetWindow:
    """
    Compute the half-open window ``[period_start, period_end)`` for a budget.

    - Before the budget starts, the first window is returned.
    - Daily budgets use the local calendar day of ``now`` (midnight to
      midnight), not the time-of-day of the anchor.
    - Weekly budgets count whole weeks from the anchor.
    - Monthly budgets count calendar months from the anchor; when the
      anchor's day-of-month is later than ``now``'s, the previous month's
      window is used so the window contains ``now``.
    - Unrecognized periods fall back to the current calendar month.
    - A window running past ``end_date`` is clamped to it, unless that
      would leave an empty window.

    Args:
        budget: Budget whose window to compute
        now: Reference instant (defaults to the local clock)

    Returns:
        BudgetWindow with ``period_end > period_start``
    """
    if now is None:
        now = datetime.now()
    start = budget.start_date
    step = period_step(budget.period)

    if now < start:
        return BudgetWindow(period_start=start, period_end=start + step)

    if budget.period is BudgetPeriod.DAILY:
        period_start = datetime(now.year, now.month, now.day)
    elif budget.period is BudgetPeriod.WEEKLY:
        days_since_start = (now - start) // timedelta(days=1)
        period_start = start + relativedelta(weeks=days_since_start // 7)
    elif budget.period is BudgetPeriod.MONTHLY:
        months_since_start = _months_between(start, now)
        period_start = start + relativedelta(months=months_since_start)
        if period_start > now:
            period_start = start + relativedelta(months=months_since_start - 1)
    else:
        period_start = datetime(now.year, now.month, 1)
    period_end = period_start + step

    if budget.end_date is not None and budget.end_date < period_end:
        if budget.end_date > period_start:
            period_end = budget.end_date
        else:
            logger.debug(
                "Budget %s ended %s before its current window; leaving window unclamped",
                budget.id, budget.end_date
            )

    logger.debug(
        "Budget %s (%s) window: %s to %s",
        budget.id, budget.period_name, period_start, period_end
    )
    return BudgetWindow(period_start=period_start, period_end=period_end)
