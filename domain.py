"""
Domain types shared by the budgeting, notification and simulation modules.

These are plain frozen dataclasses produced by the repository mapping
functions. Nothing in the core logic touches ORM rows directly.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple


class BudgetPeriod(enum.Enum):
    """Recurrence cadence of a budget."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def from_value(cls, raw: Optional[str]) -> Optional["BudgetPeriod"]:
        """
        Parse a stored period name case-insensitively.

        Args:
            raw: Stored period name (e.g. "MONTHLY", "weekly")

        Returns:
            Matching BudgetPeriod, or None when the value is not recognized
        """
        if raw is None:
            return None
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return None


class NotificationType(enum.Enum):
    """Kinds of notification the trigger can emit."""
    BUDGET_EXCEEDED = "budget_exceeded"
    BUDGET_WARNING = "budget_warning"


@dataclass(frozen=True)
class User:
    id: int
    email: str
    name: Optional[str] = None


@dataclass(frozen=True)
class Budget:
    """
    A recurring spending limit for one category.

    Attributes:
        id: Budget identifier
        user_id: Owning user
        category: Category tag matched by string equality against expenses
        limit: Spending limit per period (positive)
        period: Recurrence, or None when the stored value is unrecognized
        start_date: Anchor of the first period
        end_date: Optional last instant the budget applies to
        stored_period: Period name as stored, kept for display when
            ``period`` is None
    """
    id: Optional[int]
    user_id: int
    category: str
    limit: Decimal
    period: Optional[BudgetPeriod]
    start_date: datetime
    end_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    stored_period: Optional[str] = None

    @property
    def period_name(self) -> str:
        """Lowercase period label used in messages; unrecognized periods show their stored name."""
        if self.period is not None:
            return self.period.value
        if self.stored_period:
            return self.stored_period.strip().lower()
        return BudgetPeriod.MONTHLY.value


@dataclass(frozen=True)
class Expense:
    """A real or hypothetical expense. Hypothetical items carry ``id=None``."""
    id: Optional[int]
    user_id: int
    amount: Decimal
    description: str
    date: datetime
    category: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Income:
    id: Optional[int]
    user_id: int
    amount: Decimal
    source: str
    date: datetime
    category: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Notification:
    id: Optional[int]
    user_id: int
    type: NotificationType
    message: str
    is_read: bool = False
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class SimulatedExpense:
    id: Optional[int]
    simulation_id: Optional[int]
    amount: Decimal
    description: str
    category: str
    date: datetime


@dataclass(frozen=True)
class Simulation:
    id: Optional[int]
    user_id: int
    name: str
    created_at: Optional[datetime] = None
    expenses: Tuple[SimulatedExpense, ...] = ()


@dataclass(frozen=True)
class BudgetWindow:
    """Half-open interval ``[period_start, period_end)`` a budget is measured over."""
    period_start: datetime
    period_end: datetime


@dataclass(frozen=True)
class BudgetUsage:
    """
    Derived spending snapshot of a budget for its current period.

    ``percentage`` is capped at 100 for display; ``raw_percentage`` keeps the
    uncapped value. ``is_over_budget`` compares money, never percentages.
    """
    spent: Decimal
    limit: Decimal
    remaining: Decimal
    percentage: float
    raw_percentage: float
    is_over_budget: bool
    is_active: bool
    period_start: datetime
    period_end: datetime
    matching_expenses: Tuple[Expense, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to plain values for CLI/JSON output."""
        return {
            "spent": float(self.spent),
            "limit": float(self.limit),
            "remaining": float(self.remaining),
            "percentage": self.percentage,
            "is_over_budget": self.is_over_budget,
            "is_active": self.is_active,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "expense_count": len(self.matching_expenses),
        }


@dataclass(frozen=True)
class BudgetImpact:
    """Usage of one budget together with the budget it was computed for."""
    budget: Budget
    usage: BudgetUsage

    def to_dict(self) -> Dict[str, Any]:
        data = self.usage.to_dict()
        data.update({
            "budget_id": self.budget.id,
            "category": self.budget.category,
            "period": self.budget.period_name,
        })
        return data


@dataclass
class NotificationResult:
    """Outcome of one Notification Trigger evaluation."""
    notifications: List[Notification] = field(default_factory=list)
    budget_status: List[BudgetImpact] = field(default_factory=list)
