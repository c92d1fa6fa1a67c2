"""
Unit tests for budget usage, the impact evaluator and BudgetManager.
"""

from datetime import datetime
from decimal import Decimal
from unittest.mock import Mock

import pytest

from budgeting import BudgetImpactEvaluator, BudgetManager, calculate_budget_usage, parse_amount, parse_period
from domain import Budget, BudgetPeriod, Expense
from exceptions import InvalidInputError, NotFoundError
from repositories import BudgetRepository, ExpenseRepository
from conftest import FIXED_NOW, fixed_clock


def _budget(limit="200.00", category="Food"):
    return Budget(
        id=7,
        user_id=1,
        category=category,
        limit=Decimal(limit),
        period=BudgetPeriod.MONTHLY,
        start_date=datetime(2023, 1, 1),
    )


def _expense(amount, category="Food", date=datetime(2023, 3, 10), expense_id=None):
    return Expense(
        id=expense_id,
        user_id=1,
        amount=Decimal(amount),
        description="",
        date=date,
        category=category,
    )


class TestCalculateBudgetUsage:
    """Tests for the pure usage calculator."""

    def test_sums_matching_expenses_in_window(self):
        expenses = [
            _expense("50.00"),
            _expense("25.50"),
            _expense("99.00", category="Travel"),
            _expense("10.00", date=datetime(2023, 2, 28)),
        ]

        usage = calculate_budget_usage(_budget(), expenses, FIXED_NOW)

        assert usage.spent == Decimal("75.50")
        assert usage.remaining == Decimal("124.50")
        assert usage.raw_percentage == pytest.approx(37.75)
        assert len(usage.matching_expenses) == 2
        assert usage.is_active

    def test_repeated_calls_give_equal_usage(self):
        budget = _budget()
        expenses = [_expense("50.00"), _expense("180.00", date=datetime(2023, 3, 14)), _expense("5.00", category="Travel")]

        first = calculate_budget_usage(budget, expenses, FIXED_NOW)
        second = calculate_budget_usage(budget, expenses, FIXED_NOW)

        assert first == second
        assert first.spent == Decimal("230.00")
        assert first.is_over_budget

    def test_over_budget_caps_display_percentage(self):
        usage = calculate_budget_usage(_budget(), [_expense("300.00")], FIXED_NOW)

        assert usage.is_over_budget
        assert usage.percentage == 100.0
        assert usage.raw_percentage == pytest.approx(150.0)
        assert usage.remaining == Decimal("-100.00")

    def test_spending_exactly_the_limit_is_not_over_budget(self):
        usage = calculate_budget_usage(_budget(), [_expense("200.00")], FIXED_NOW)

        assert not usage.is_over_budget
        assert usage.raw_percentage == pytest.approx(100.0)

    def test_expense_at_period_end_is_counted(self):
        usage = calculate_budget_usage(_budget(), [_expense("5.00", date=datetime(2023, 4, 1))], FIXED_NOW)

        assert usage.spent == Decimal("5.00")

    def test_category_match_is_exact(self):
        usage = calculate_budget_usage(_budget(), [_expense("5.00", category="food")], FIXED_NOW)

        assert usage.spent == Decimal("0")
        assert usage.matching_expenses == ()

    def test_to_dict_uses_plain_values(self):
        data = calculate_budget_usage(_budget(), [_expense("20.00")], FIXED_NOW).to_dict()

        assert data["spent"] == 20.0
        assert data["period_start"] == "2023-03-01T00:00:00"
        assert data["expense_count"] == 1


class TestBudgetImpactEvaluator:
    """Tests for merging candidates with persisted expenses."""

    def test_no_budgets_returns_empty_list(self, db_manager, user):
        evaluator = BudgetImpactEvaluator(
            BudgetRepository(db_manager), ExpenseRepository(db_manager), clock=fixed_clock
        )

        assert evaluator.evaluate([_expense("10.00")], user.id) == []

    def test_candidates_merge_with_persisted(self, db_manager, user, make_budget, make_expense):
        make_budget()
        make_expense("100.00")
        evaluator = BudgetImpactEvaluator(
            BudgetRepository(db_manager), ExpenseRepository(db_manager), clock=fixed_clock
        )

        impacts = evaluator.evaluate([_expense("60.00"), _expense("5.00", category="Travel")], user.id)

        assert len(impacts) == 1
        assert impacts[0].usage.spent == Decimal("160.00")

    def test_persisted_candidate_not_counted_twice(self, db_manager, user, make_budget, make_expense):
        make_budget()
        saved = make_expense("100.00")
        evaluator = BudgetImpactEvaluator(
            BudgetRepository(db_manager), ExpenseRepository(db_manager), clock=fixed_clock
        )

        first = evaluator.evaluate([saved], user.id)
        second = evaluator.evaluate([saved], user.id)

        assert first[0].usage.spent == Decimal("100.00")
        assert second[0].usage == first[0].usage

    def test_every_budget_of_category_is_evaluated(self, db_manager, user, make_budget):
        make_budget(limit="200.00")
        make_budget(limit="50.00", period=BudgetPeriod.WEEKLY, start_date=datetime(2023, 3, 1))
        evaluator = BudgetImpactEvaluator(
            BudgetRepository(db_manager), ExpenseRepository(db_manager), clock=fixed_clock
        )

        impacts = evaluator.evaluate([_expense("60.00", date=FIXED_NOW)], user.id)

        assert [impact.usage.is_over_budget for impact in impacts] == [False, True]


class TestParsing:
    """Tests for input parsing helpers."""

    @pytest.mark.parametrize("value", ["0", "-5", "abc", "NaN", None])
    def test_parse_amount_rejects_invalid(self, value):
        with pytest.raises(InvalidInputError):
            parse_amount(value)

    def test_parse_amount_quantizes(self):
        assert parse_amount("12.345") == Decimal("12.34")
        assert parse_amount(7) == Decimal("7.00")

    def test_parse_period_is_case_insensitive(self):
        assert parse_period("Weekly") is BudgetPeriod.WEEKLY

    def test_parse_period_rejects_unknown(self):
        with pytest.raises(InvalidInputError) as exc_info:
            parse_period("yearly")
        assert "valid" in exc_info.value.details


class TestBudgetManager:
    """Tests for BudgetManager CRUD and usage lookups."""

    @pytest.fixture
    def budget_manager(self, db_manager):
        return BudgetManager(db_manager, clock=fixed_clock)

    def test_create_and_get_budget(self, budget_manager, user):
        created = budget_manager.create_budget(user.id, "  Food ", "200", "MONTHLY", datetime(2023, 1, 1))

        fetched = budget_manager.get_budget(created.id, user.id)

        assert fetched.category == "Food"
        assert fetched.limit == Decimal("200.00")
        assert fetched.period is BudgetPeriod.MONTHLY

    def test_create_rejects_end_before_start(self, budget_manager, user):
        with pytest.raises(InvalidInputError):
            budget_manager.create_budget(
                user.id, "Food", "200", "monthly", datetime(2023, 2, 1), datetime(2023, 1, 1)
            )

    def test_create_rejects_blank_category(self, budget_manager, user):
        with pytest.raises(InvalidInputError):
            budget_manager.create_budget(user.id, "   ", "200", "monthly", datetime(2023, 1, 1))

    def test_get_other_users_budget_not_found(self, budget_manager, make_budget):
        budget = make_budget()

        with pytest.raises(NotFoundError):
            budget_manager.get_budget(budget.id, budget.user_id + 1)

    def test_update_and_clear_end_date(self, budget_manager, make_budget, user):
        budget = make_budget(end_date=datetime(2023, 12, 31))

        updated = budget_manager.update_budget(budget.id, user.id, limit="300", clear_end_date=True)

        assert updated.limit == Decimal("300.00")
        assert updated.end_date is None

    def test_delete_keeps_expenses(self, budget_manager, make_budget, make_expense, db_manager, user):
        budget = make_budget()
        make_expense("10.00")

        budget_manager.delete_budget(budget.id, user.id)

        assert budget_manager.list_budgets(user.id) == []
        assert len(ExpenseRepository(db_manager).list_expenses(user.id)) == 1
        with pytest.raises(NotFoundError):
            budget_manager.delete_budget(budget.id, user.id)

    def test_get_all_budget_usage(self, budget_manager, make_budget, make_expense, user):
        make_budget()
        make_budget(category="Travel", limit="100.00")
        make_expense("150.00", category="Travel")

        impacts = budget_manager.get_all_budget_usage(user.id)

        assert [impact.budget.category for impact in impacts] == ["Food", "Travel"]
        assert impacts[1].usage.is_over_budget

    def test_calculate_budget_summary(self):
        impacts = [Mock(usage=Mock(limit=Decimal("200"), spent=Decimal("50"), is_over_budget=False)),
                   Mock(usage=Mock(limit=Decimal("100"), spent=Decimal("150"), is_over_budget=True))]

        summary = BudgetManager.calculate_budget_summary(impacts)

        assert summary["total_limit"] == Decimal("300")
        assert summary["total_spent"] == Decimal("200")
        assert summary["total_remaining"] == Decimal("100")
        assert summary["budget_used_pct"] == pytest.approx(66.666, rel=1e-3)
        assert summary["over_budget_count"] == 1

    def test_calculate_budget_summary_empty(self):
        summary = BudgetManager.calculate_budget_summary([])

        assert summary["budget_used_pct"] == 0.0
        assert summary["over_budget_count"] == 0
