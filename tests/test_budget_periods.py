"""
Unit tests for budget period windows and the activity predicate.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from budget_periods import get_current_budget_period, is_budget_active, period_step
from domain import Budget, BudgetPeriod

NOW = datetime(2023, 3, 15, 12, 0, 0)


def _budget(period=BudgetPeriod.MONTHLY, start=datetime(2023, 1, 1), end=None):
    return Budget(
        id=1,
        user_id=1,
        category="Food",
        limit=Decimal("200.00"),
        period=period,
        start_date=start,
        end_date=end,
    )


class TestCurrentBudgetPeriod:
    """Tests for get_current_budget_period."""

    def test_monthly_window_contains_now(self):
        window = get_current_budget_period(_budget(), NOW)

        assert window.period_start == datetime(2023, 3, 1)
        assert window.period_end == datetime(2023, 4, 1)

    def test_monthly_anchor_later_in_month_steps_back(self):
        """An anchor on the 20th puts the 15th in the window starting last month."""
        window = get_current_budget_period(_budget(start=datetime(2023, 1, 20)), NOW)

        assert window.period_start == datetime(2023, 2, 20)
        assert window.period_end == datetime(2023, 3, 20)

    def test_monthly_anchor_on_31st_uses_calendar_addition(self):
        window = get_current_budget_period(_budget(start=datetime(2023, 1, 31)), NOW)

        assert window.period_start == datetime(2023, 2, 28)
        assert window.period_start <= NOW < window.period_end

    def test_before_start_returns_first_window(self):
        budget = _budget(period=BudgetPeriod.WEEKLY, start=datetime(2023, 5, 1))

        window = get_current_budget_period(budget, NOW)

        assert window.period_start == datetime(2023, 5, 1)
        assert window.period_end == datetime(2023, 5, 8)

    def test_daily_uses_calendar_day_of_now(self):
        budget = _budget(period=BudgetPeriod.DAILY, start=datetime(2023, 1, 1, 8, 30))

        window = get_current_budget_period(budget, NOW)

        assert window.period_start == datetime(2023, 3, 15)
        assert window.period_end == datetime(2023, 3, 16)

    @pytest.mark.parametrize("now, expected_start", [
        (datetime(2023, 3, 15, 12, 0), datetime(2023, 3, 15)),
        (datetime(2023, 3, 14, 23, 59), datetime(2023, 3, 8)),
        (datetime(2023, 3, 1), datetime(2023, 3, 1)),
    ])
    def test_weekly_counts_whole_weeks_from_anchor(self, now, expected_start):
        budget = _budget(period=BudgetPeriod.WEEKLY, start=datetime(2023, 3, 1))

        window = get_current_budget_period(budget, now)

        assert window.period_start == expected_start
        assert (window.period_end - window.period_start).days == 7

    def test_unrecognized_period_falls_back_to_calendar_month(self):
        window = get_current_budget_period(_budget(period=None, start=datetime(2022, 11, 17)), NOW)

        assert window.period_start == datetime(2023, 3, 1)
        assert window.period_end == datetime(2023, 4, 1)

    def test_window_clamped_to_end_date(self):
        budget = _budget(end=datetime(2023, 3, 20))

        window = get_current_budget_period(budget, NOW)

        assert window.period_start == datetime(2023, 3, 1)
        assert window.period_end == datetime(2023, 3, 20)

    def test_end_date_before_window_is_not_clamped(self):
        budget = _budget(end=datetime(2023, 2, 10))

        window = get_current_budget_period(budget, NOW)

        assert window.period_end > window.period_start
        assert window.period_end == datetime(2023, 4, 1)

    def test_window_always_non_empty(self):
        for period in (BudgetPeriod.DAILY, BudgetPeriod.WEEKLY, BudgetPeriod.MONTHLY, None):
            window = get_current_budget_period(_budget(period=period), NOW)
            assert window.period_end > window.period_start

    def test_period_step_defaults_to_month(self):
        assert period_step(None) == period_step(BudgetPeriod.MONTHLY)


class TestBudgetActive:
    """Tests for is_budget_active."""

    def test_active_without_end_date(self):
        assert is_budget_active(_budget(), NOW)

    def test_inactive_before_start(self):
        assert not is_budget_active(_budget(start=datetime(2023, 4, 1)), NOW)

    def test_start_and_end_are_inclusive(self):
        budget = _budget(start=NOW, end=NOW)

        assert is_budget_active(budget, NOW)

    def test_inactive_after_end(self):
        assert not is_budget_active(_budget(end=datetime(2023, 3, 1)), NOW)
