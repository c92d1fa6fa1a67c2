"""
Budgeting module for recurring category budgets.

This module computes how much of a budget's current period has been
spent, evaluates the impact of real or hypothetical expenses across all
matching budgets, and provides CRUD for the budgets themselves.
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterable, List, Optional, Sequence, Set

from budget_periods import get_current_budget_period, is_budget_active
from database_ops import DatabaseManager
from domain import Budget, BudgetImpact, BudgetPeriod, BudgetUsage, Expense
from exceptions import InvalidInputError, NotFoundError
from repositories import BudgetRepository, ExpenseRepository

# Configure logging
logger = logging.getLogger(__name__)

ZERO = Decimal("0")
DISPLAY_PERCENTAGE_CAP = 100.0


def calculate_budget_usage(
    budget: Budget,
    expenses: Iterable[Expense],
    now: Optional[datetime] = None
) -> BudgetUsage:
    """
    Calculate usage of a budget for its current period.

    Only expenses in the budget's category whose date falls within
    ``period_start <= date <= period_end`` are counted. The end is
    inclusive here even though the window itself is half-open.

    Args:
        budget: Budget to measure
        expenses: Candidate expense records (any category or date)
        now: Reference instant (defaults to the local clock)

    Returns:
        BudgetUsage for the window containing ``now``
    """
    if now is None:
        now = datetime.now()
    window = get_current_budget_period(budget, now)

    matching = tuple(
        expense for expense in expenses
        if expense.category == budget.category
        and window.period_start <= expense.date <= window.period_end
    )
    spent = sum((Decimal(expense.amount) for expense in matching), ZERO)
    limit = Decimal(budget.limit)

    raw_percentage = float(spent / limit * 100) if limit > 0 else 0.0

    return BudgetUsage(
        spent=spent,
        limit=limit,
        remaining=limit - spent,
        percentage=min(raw_percentage, DISPLAY_PERCENTAGE_CAP),
        raw_percentage=raw_percentage,
        is_over_budget=spent > limit,
        is_active=is_budget_active(budget, now),
        period_start=window.period_start,
        period_end=window.period_end,
        matching_expenses=matching,
    )


class BudgetImpactEvaluator:
    """
    Evaluates candidate expenses against every budget they touch.

    Persisted expenses of each budget's current period are merged with the
    candidates of the same category. A candidate whose id is already among
    the persisted expenses is not counted twice.
    """

    def __init__(
        self,
        budget_repository: BudgetRepository,
        expense_repository: ExpenseRepository,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.budget_repository = budget_repository
        self.expense_repository = expense_repository
        self.clock = clock

    def evaluate(self, candidates: Sequence[Expense], user_id: int) -> List[BudgetImpact]:
        """
        Compute per-budget usage including the candidate expenses.

        Args:
            candidates: Real or hypothetical expenses (amount, category, date)
            user_id: Owning user

        Returns:
            One BudgetImpact per matching budget, in budget order; empty
            when no budget matches the candidates' categories
        """
        categories: Set[str] = {candidate.category for candidate in candidates}
        budgets = self.budget_repository.list_budgets(user_id, categories=categories)
        if not budgets:
            logger.debug(f"No budgets for user {user_id} in categories {sorted(categories)}")
            return []

        now = self.clock()
        impacts: List[BudgetImpact] = []
        for budget in budgets:
            window = get_current_budget_period(budget, now)
            persisted = self.expense_repository.list_expenses(
                user_id, category=budget.category, date_range=window
            )
            persisted_ids = {expense.id for expense in persisted}
            additions = [
                candidate for candidate in candidates
                if candidate.category == budget.category
                and (candidate.id is None or candidate.id not in persisted_ids)
            ]
            usage = calculate_budget_usage(budget, persisted + additions, now)
            logger.debug(
                f"Budget {budget.id} ({budget.category}): spent {usage.spent} "
                f"of {usage.limit} ({usage.raw_percentage:.1f}%)"
            )
            impacts.append(BudgetImpact(budget=budget, usage=usage))
        return impacts


def parse_amount(value, field: str = "amount") -> Decimal:
    """
    Parse a positive money amount.

    Raises:
        InvalidInputError: If the value is not a positive number
    """
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidInputError(f"Invalid {field}", details={field: value}, original_error=e) from e
    if not amount.is_finite() or amount <= 0:
        raise InvalidInputError(f"{field.capitalize()} must be greater than zero", details={field: value})
    return amount.quantize(Decimal("0.01"))


def parse_period(value) -> BudgetPeriod:
    """
    Parse a budget period name.

    Raises:
        InvalidInputError: If the name is not daily, weekly or monthly
    """
    if isinstance(value, BudgetPeriod):
        return value
    period = BudgetPeriod.from_value(value)
    if period is None:
        raise InvalidInputError(
            "Invalid budget period",
            details={"period": value, "valid": [p.value for p in BudgetPeriod]}
        )
    return period


class BudgetManager:
    """
    Manages a user's recurring budgets.

    Provides CRUD with the budget invariants enforced (positive limit,
    end date not before start date) and usage lookups for existing budgets.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize the budget manager.

        Args:
            db_manager: DatabaseManager instance
            clock: Source of "now" for usage calculations
        """
        self.db_manager = db_manager
        self.budgets = BudgetRepository(db_manager)
        self.expenses = ExpenseRepository(db_manager)
        self.clock = clock
        logger.info("Budget manager initialized")

    @staticmethod
    def _normalize_category(category: Optional[str]) -> str:
        if category is None:
            return ""
        return category.strip()

    @staticmethod
    def _check_dates(start_date: datetime, end_date: Optional[datetime]) -> None:
        if end_date is not None and end_date < start_date:
            raise InvalidInputError(
                "Budget end date must not be before its start date",
                details={"start_date": start_date, "end_date": end_date}
            )

    def create_budget(
        self,
        user_id: int,
        category: str,
        limit,
        period,
        start_date: datetime,
        end_date: Optional[datetime] = None
    ) -> Budget:
        """
        Create a budget.

        Args:
            user_id: Owning user
            category: Category tag (free text)
            limit: Positive spending limit per period
            period: "daily", "weekly" or "monthly" (or a BudgetPeriod)
            start_date: Anchor of the first period
            end_date: Optional end of the budget

        Returns:
            Created Budget

        Raises:
            InvalidInputError: If an invariant is violated
        """
        normalized_category = self._normalize_category(category)
        if not normalized_category:
            raise InvalidInputError("Budget category is required")
        limit_amount = parse_amount(limit, "limit")
        budget_period = parse_period(period)
        self._check_dates(start_date, end_date)

        budget = self.budgets.create_budget(
            user_id=user_id,
            category=normalized_category,
            limit=limit_amount,
            period=budget_period,
            start_date=start_date,
            end_date=end_date,
        )
        logger.info(
            f"Created {budget_period.value} budget for '{normalized_category}': "
            f"${limit_amount} from {start_date.date()}"
        )
        return budget

    def get_budget(self, budget_id: int, user_id: int) -> Budget:
        """
        Get one of the user's budgets.

        Raises:
            NotFoundError: If the budget does not exist or is not the user's
        """
        budget = self.budgets.get_budget(budget_id, user_id)
        if budget is None:
            raise NotFoundError("Budget not found", details={"budget_id": budget_id})
        return budget

    def list_budgets(self, user_id: int, category: Optional[str] = None) -> List[Budget]:
        categories = [category] if category else None
        return self.budgets.list_budgets(user_id, categories=categories)

    def update_budget(
        self,
        budget_id: int,
        user_id: int,
        category: Optional[str] = None,
        limit=None,
        period=None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        clear_end_date: bool = False
    ) -> Budget:
        """
        Update a budget; only the given fields change.

        Raises:
            NotFoundError: If the budget does not exist or is not the user's
            InvalidInputError: If the result would violate an invariant
        """
        current = self.get_budget(budget_id, user_id)
        new_start = start_date or current.start_date
        new_end = None if clear_end_date else (end_date or current.end_date)
        self._check_dates(new_start, new_end)

        normalized_category = None
        if category is not None:
            normalized_category = self._normalize_category(category)
            if not normalized_category:
                raise InvalidInputError("Budget category is required")

        updated = self.budgets.update_budget(
            budget_id,
            user_id,
            category=normalized_category,
            limit=parse_amount(limit, "limit") if limit is not None else None,
            period=parse_period(period) if period is not None else None,
            start_date=start_date,
            end_date=end_date,
            clear_end_date=clear_end_date,
        )
        if updated is None:
            raise NotFoundError("Budget not found", details={"budget_id": budget_id})
        logger.info(f"Updated budget {budget_id}")
        return updated

    def delete_budget(self, budget_id: int, user_id: int) -> None:
        """
        Delete a budget. Expenses are independent and stay untouched.

        Raises:
            NotFoundError: If the budget does not exist or is not the user's
        """
        if not self.budgets.delete_budget(budget_id, user_id):
            raise NotFoundError("Budget not found", details={"budget_id": budget_id})
        logger.info(f"Deleted budget {budget_id}")

    def get_budget_usage(self, budget_id: int, user_id: int) -> BudgetImpact:
        """Return current-period usage of one budget from persisted expenses."""
        budget = self.get_budget(budget_id, user_id)
        return self._usage_for(budget)

    def get_all_budget_usage(self, user_id: int) -> List[BudgetImpact]:
        """Return current-period usage of every budget the user has."""
        return [self._usage_for(budget) for budget in self.budgets.list_budgets(user_id)]

    def _usage_for(self, budget: Budget) -> BudgetImpact:
        now = self.clock()
        window = get_current_budget_period(budget, now)
        expenses = self.expenses.list_expenses(
            budget.user_id, category=budget.category, date_range=window
        )
        return BudgetImpact(budget=budget, usage=calculate_budget_usage(budget, expenses, now))

    @staticmethod
    def calculate_budget_summary(impacts: Sequence[BudgetImpact]) -> dict:
        """
        Calculate totals across budget usages.

        Args:
            impacts: Budget usages to total

        Returns:
            Dictionary with total_limit, total_spent, total_remaining,
            budget_used_pct and over_budget_count
        """
        total_limit = sum((impact.usage.limit for impact in impacts), ZERO)
        total_spent = sum((impact.usage.spent for impact in impacts), ZERO)
        used_pct = float(total_spent / total_limit * 100) if total_limit > 0 else 0.0
        return {
            "total_limit": total_limit,
            "total_spent": total_spent,
            "total_remaining": total_limit - total_spent,
            "budget_used_pct": used_pct,
            "over_budget_count": sum(1 for impact in impacts if impact.usage.is_over_budget),
        }
