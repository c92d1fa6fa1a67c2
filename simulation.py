"""
What-if spending simulations.

A simulation is a named list of hypothetical expenses. Users preview how
it would affect their budgets, and can later turn it into real expenses.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from budgeting import BudgetImpactEvaluator, parse_amount
from database_ops import DatabaseManager
from domain import BudgetImpact, Expense, Notification, SimulatedExpense, Simulation
from exceptions import EmptySimulationError, InvalidInputError, NotFoundError
from notifications import BudgetNotifier
from repositories import BudgetRepository, ExpenseRepository, SimulationRepository
from utils import parse_date

logger = logging.getLogger(__name__)


@dataclass
class ConversionResult:
    """Expenses created from a simulation and the notifications they raised."""
    expenses: List[Expense] = field(default_factory=list)
    notifications: List[Notification] = field(default_factory=list)


def build_simulated_expense(amount, category: str, date, description: str = "") -> SimulatedExpense:
    """
    Validate and build one simulation line item.

    Raises:
        InvalidInputError: If the amount, category or date is malformed
    """
    category = (category or "").strip()
    if not category:
        raise InvalidInputError("Category is required")
    return SimulatedExpense(
        id=None,
        simulation_id=None,
        amount=parse_amount(amount),
        description=(description or "").strip(),
        category=category,
        date=parse_date(date),
    )


class SimulationManager:
    """
    Manages simulations and their budget impact.

    Conversion to real expenses runs in a single unit of work, so either
    every line item becomes an expense or none does.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        notifier: Optional[BudgetNotifier] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize the simulation manager.

        Args:
            db_manager: DatabaseManager instance
            notifier: Notifier used by ``convert_and_notify``
            clock: Source of "now" for budget impact previews
        """
        self.db_manager = db_manager
        self.simulations = SimulationRepository(db_manager)
        self.expenses = ExpenseRepository(db_manager)
        self.evaluator = BudgetImpactEvaluator(BudgetRepository(db_manager), self.expenses, clock=clock)
        self.notifier = notifier or BudgetNotifier(db_manager, clock=clock)
        logger.info("Simulation manager initialized")

    @staticmethod
    def _check_name(name: str) -> str:
        name = (name or "").strip()
        if not name:
            raise InvalidInputError("Simulation name is required")
        return name

    def create_simulation(self, user_id: int, name: str, items: Sequence[SimulatedExpense]) -> Simulation:
        """
        Store a new simulation.

        Raises:
            InvalidInputError: If the name is blank or there are no items
        """
        name = self._check_name(name)
        if not items:
            raise InvalidInputError("At least one expense is required")
        simulation = self.simulations.create_simulation(user_id, name, items)
        logger.info(f"Created simulation {simulation.id} '{name}' with {len(items)} items")
        return simulation

    def get_simulation(self, simulation_id: int, user_id: int) -> Simulation:
        """
        Get a simulation with its line items.

        Raises:
            NotFoundError: If it does not exist or is not the user's
        """
        simulation = self.simulations.get_simulation_with_items(simulation_id, user_id)
        if simulation is None:
            raise NotFoundError("Simulation not found", details={"simulation_id": simulation_id})
        return simulation

    def list_simulations(self, user_id: int) -> List[Simulation]:
        return self.simulations.list_simulations(user_id)

    def update_simulation(
        self,
        simulation_id: int,
        user_id: int,
        name: Optional[str] = None,
        items: Optional[Sequence[SimulatedExpense]] = None
    ) -> Simulation:
        """Rename a simulation and/or replace its line items."""
        if name is not None:
            name = self._check_name(name)
        updated = self.simulations.update_simulation(simulation_id, user_id, name=name, items=items)
        if updated is None:
            raise NotFoundError("Simulation not found", details={"simulation_id": simulation_id})
        return updated

    def delete_simulation(self, simulation_id: int, user_id: int) -> None:
        """Delete a simulation together with its line items."""
        if not self.simulations.delete_simulation(simulation_id, user_id):
            raise NotFoundError("Simulation not found", details={"simulation_id": simulation_id})
        logger.info(f"Deleted simulation {simulation_id}")

    def analyze_budget_impact(self, items: Sequence[SimulatedExpense], user_id: int) -> List[BudgetImpact]:
        """
        Preview how hypothetical expenses would affect the user's budgets.

        Nothing is persisted.

        Returns:
            One BudgetImpact per budget in the items' categories (empty if none)
        """
        candidates = [
            Expense(
                id=None,
                user_id=user_id,
                amount=item.amount,
                description=f"Simulated: {item.description or 'Expense'}",
                date=item.date,
                category=item.category,
            )
            for item in items
        ]
        return self.evaluator.evaluate(candidates, user_id)

    def analyze_simulation(self, simulation_id: int, user_id: int) -> List[BudgetImpact]:
        """Preview the budget impact of a stored simulation."""
        simulation = self.get_simulation(simulation_id, user_id)
        return self.analyze_budget_impact(simulation.expenses, user_id)

    def convert_simulation_to_expenses(self, simulation_id: int, user_id: int) -> List[Expense]:
        """
        Turn each line item of a simulation into a real expense, in order.

        Args:
            simulation_id: Simulation to convert
            user_id: Owning user

        Returns:
            Created expenses, positionally matching the line items

        Raises:
            NotFoundError: If the simulation does not exist or is not the user's
            EmptySimulationError: If the simulation has no line items
        """
        simulation = self.get_simulation(simulation_id, user_id)
        if not simulation.expenses:
            raise EmptySimulationError(
                "Simulation has no expenses to convert",
                details={"simulation_id": simulation_id}
            )

        with self.db_manager.session_scope() as session:
            created = [
                self.expenses.create_expense(
                    user_id=user_id,
                    amount=item.amount,
                    description=item.description,
                    date=item.date,
                    category=item.category,
                    session=session,
                )
                for item in simulation.expenses
            ]
        logger.info(f"Converted simulation {simulation_id} into {len(created)} expenses")
        return created

    def convert_and_notify(self, simulation_id: int, user_id: int) -> ConversionResult:
        """Convert a simulation, then run budget notifications for each new expense."""
        result = ConversionResult(expenses=self.convert_simulation_to_expenses(simulation_id, user_id))
        for expense in result.expenses:
            outcome = self.notifier.check_budget_limits_and_notify(expense, user_id)
            result.notifications.extend(outcome.notifications)
        return result
