"""
Analytics module for spending analysis.

This module provides aggregation functions over a user's expenses and
income: category breakdowns, monthly trends and a monthly report that
also includes the status of each budget.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Tuple

import pandas as pd
from dateutil.relativedelta import relativedelta
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from budgeting import BudgetManager
from database_ops import DatabaseManager, ExpenseRow, IncomeRow
from exceptions import AnalyticsError

logger = logging.getLogger(__name__)

CATEGORY_COLUMNS = ['category', 'total', 'count', 'percentage']
TREND_COLUMNS = ['year', 'month', 'period', 'income', 'expenses', 'net']


def month_bounds(year: int, month: int) -> Tuple[datetime, datetime]:
    """Return the half-open ``[start, end)`` range of a calendar month."""
    if not 1 <= month <= 12:
        raise AnalyticsError("Month must be between 1 and 12", details={"month": month})
    start = datetime(year, month, 1)
    return start, start + relativedelta(months=1)


class AnalyticsEngine:
    """
    Core analytics engine for spending data.

    Aggregations run in the database; results are returned as pandas
    DataFrames so the CLI or any other front end can render them.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize the analytics engine.

        Args:
            db_manager: Database manager instance
            clock: Source of "now" for relative time frames
        """
        self.db_manager = db_manager
        self.clock = clock
        logger.info("Analytics engine initialized")

    def parse_time_frame(self, time_frame: str) -> Tuple[datetime, datetime]:
        """
        Parse time frame string into start and end dates.

        Supports formats:
        - '1m', '3m', '6m', '12m' (calendar months back from now)
        - 'YYYY-MM-DD:YYYY-MM-DD' (custom date range, end day included)
        - 'all' (all time)

        Args:
            time_frame: Time frame string

        Returns:
            Tuple of (start_date, end_date), end exclusive

        Raises:
            AnalyticsError: If time frame format is invalid
        """
        now = self.clock()

        if time_frame.lower() == 'all':
            return datetime(1900, 1, 1), now + timedelta(microseconds=1)

        if ':' in time_frame:
            try:
                start_str, end_str = time_frame.split(':')
                start_date = datetime.strptime(start_str, '%Y-%m-%d')
                end_date = datetime.strptime(end_str, '%Y-%m-%d') + timedelta(days=1)
            except ValueError as e:
                raise AnalyticsError(
                    f"Invalid date range format. Use YYYY-MM-DD:YYYY-MM-DD: {e}",
                    details={"time_frame": time_frame},
                    original_error=e
                ) from e
            return start_date, end_date

        if time_frame.endswith('m'):
            try:
                months = int(time_frame[:-1])
            except ValueError as e:
                raise AnalyticsError(
                    f"Invalid month format: {time_frame}",
                    details={"time_frame": time_frame},
                    original_error=e
                ) from e
            return now - relativedelta(months=months), now + timedelta(microseconds=1)

        raise AnalyticsError(
            f"Invalid time frame format: {time_frame}. Use '1m', '3m', '6m', '12m', 'all', or 'YYYY-MM-DD:YYYY-MM-DD'",
            details={"time_frame": time_frame}
        )

    def get_income_expense_summary(
        self,
        user_id: int,
        start_date: datetime,
        end_date: datetime
    ) -> Dict[str, Any]:
        """
        Sum income and expenses in ``[start_date, end_date)``.

        Returns:
            Dictionary with total_income, total_expenses, net_savings,
            savings_rate (percent of income, 0 when there is no income)
            and expense_count
        """
        try:
            with self.db_manager.session_scope() as session:
                expense_total, expense_count = session.query(
                    func.coalesce(func.sum(ExpenseRow.amount), 0),
                    func.count(ExpenseRow.id)
                ).filter(
                    ExpenseRow.user_id == user_id,
                    ExpenseRow.date >= start_date,
                    ExpenseRow.date < end_date
                ).one()
                income_total = session.query(
                    func.coalesce(func.sum(IncomeRow.amount), 0)
                ).filter(
                    IncomeRow.user_id == user_id,
                    IncomeRow.date >= start_date,
                    IncomeRow.date < end_date
                ).scalar()
        except SQLAlchemyError as e:
            logger.error(f"Failed to get income/expense summary: {e}", exc_info=True)
            raise AnalyticsError(
                "Failed to get income/expense summary",
                details={"user_id": user_id},
                original_error=e
            ) from e

        total_income = Decimal(str(income_total)).quantize(Decimal("0.01"))
        total_expenses = Decimal(str(expense_total)).quantize(Decimal("0.01"))
        net = total_income - total_expenses
        savings_rate = float(net / total_income * 100) if total_income > 0 else 0.0
        return {
            "total_income": total_income,
            "total_expenses": total_expenses,
            "net_savings": net,
            "savings_rate": savings_rate,
            "expense_count": int(expense_count),
        }

    def get_category_breakdown(
        self,
        user_id: int,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> pd.DataFrame:
        """
        Get spending breakdown by category.

        Args:
            user_id: Owning user
            start_date: Inclusive lower bound (optional)
            end_date: Exclusive upper bound (optional)

        Returns:
            DataFrame with columns: category, total, count, percentage,
            sorted by total descending
        """
        try:
            with self.db_manager.session_scope() as session:
                query = session.query(
                    ExpenseRow.category.label('category'),
                    func.sum(ExpenseRow.amount).label('total'),
                    func.count(ExpenseRow.id).label('count')
                ).filter(ExpenseRow.user_id == user_id)
                if start_date is not None:
                    query = query.filter(ExpenseRow.date >= start_date)
                if end_date is not None:
                    query = query.filter(ExpenseRow.date < end_date)
                results = query.group_by(ExpenseRow.category).all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to get category breakdown: {e}", exc_info=True)
            raise AnalyticsError(
                "Failed to get category breakdown",
                details={"user_id": user_id},
                original_error=e
            ) from e

        if not results:
            return pd.DataFrame(columns=CATEGORY_COLUMNS)

        df = pd.DataFrame([tuple(row) for row in results], columns=['category', 'total', 'count'])
        df['total'] = df['total'].astype(float).round(2)

        total_sum = df['total'].sum()
        df['percentage'] = (df['total'] / total_sum * 100) if total_sum > 0 else 0.0

        df = df.sort_values('total', ascending=False).reset_index(drop=True)
        logger.info(f"Generated category breakdown with {len(df)} categories")
        return df

    def get_monthly_trends(self, user_id: int, months: int = 6) -> pd.DataFrame:
        """
        Get income and expenses per calendar month.

        Args:
            user_id: Owning user
            months: Number of months to include, ending with the current one

        Returns:
            DataFrame with columns: year, month, period ('YYYY-MM'), income,
            expenses, net; one row per month including empty ones
        """
        if months < 1:
            raise AnalyticsError("Months must be at least 1", details={"months": months})

        now = self.clock()
        first_month = datetime(now.year, now.month, 1) - relativedelta(months=months - 1)
        end = datetime(now.year, now.month, 1) + relativedelta(months=1)

        try:
            with self.db_manager.session_scope() as session:
                expense_rows = session.query(ExpenseRow.date, ExpenseRow.amount).filter(
                    ExpenseRow.user_id == user_id,
                    ExpenseRow.date >= first_month,
                    ExpenseRow.date < end
                ).all()
                income_rows = session.query(IncomeRow.date, IncomeRow.amount).filter(
                    IncomeRow.user_id == user_id,
                    IncomeRow.date >= first_month,
                    IncomeRow.date < end
                ).all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to get monthly trends: {e}", exc_info=True)
            raise AnalyticsError(
                "Failed to get monthly trends",
                details={"user_id": user_id, "months": months},
                original_error=e
            ) from e

        periods = [(first_month + relativedelta(months=i)).strftime('%Y-%m') for i in range(months)]

        def totals_by_period(rows) -> pd.Series:
            if not rows:
                return pd.Series(0.0, index=periods)
            df = pd.DataFrame([tuple(row) for row in rows], columns=['date', 'amount'])
            df['period'] = pd.to_datetime(df['date']).dt.strftime('%Y-%m')
            df['amount'] = df['amount'].astype(float)
            return df.groupby('period')['amount'].sum().reindex(periods, fill_value=0.0)

        result_df = pd.DataFrame({
            'period': periods,
            'income': totals_by_period(income_rows).values,
            'expenses': totals_by_period(expense_rows).values,
        })
        result_df['year'] = result_df['period'].str.slice(0, 4).astype(int)
        result_df['month'] = result_df['period'].str.slice(5, 7).astype(int)
        result_df['net'] = result_df['income'] - result_df['expenses']

        logger.info(f"Generated monthly trends for {months} months")
        return result_df[TREND_COLUMNS]

    def generate_monthly_report(self, user_id: int, year: int, month: int) -> Dict[str, Any]:
        """
        Build a report for one calendar month.

        Budget status is measured at the end of the month, or at the
        current time if the month is still in progress.

        Args:
            user_id: Owning user
            year: Report year
            month: Report month (1-12)

        Returns:
            Dictionary with period, summary (see
            ``get_income_expense_summary``), categories (breakdown records),
            budgets (per-budget usage dicts) and budget_summary totals
        """
        start, end = month_bounds(year, month)
        summary = self.get_income_expense_summary(user_id, start, end)
        categories = self.get_category_breakdown(user_id, start, end)

        reference = min(self.clock(), end - timedelta(microseconds=1))
        budget_manager = BudgetManager(self.db_manager, clock=lambda: reference)
        impacts = budget_manager.get_all_budget_usage(user_id)

        logger.info(f"Generated monthly report for user {user_id}: {start:%Y-%m}")
        return {
            "period": f"{start:%Y-%m}",
            "summary": summary,
            "categories": categories.to_dict(orient='records'),
            "budgets": [impact.to_dict() for impact in impacts],
            "budget_summary": BudgetManager.calculate_budget_summary(impacts),
        }
