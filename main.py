"""
Main module for the expense assistant command-line interface.

This module wires configuration, logging and the database together and
routes sub-commands to the managers:
1. Users, budgets, expenses and income
2. What-if simulations
3. Budget notifications
4. Spending reports
"""

import argparse
import logging
import logging.handlers
import sys
from datetime import datetime
from pathlib import Path
from typing import List

from sqlalchemy.exc import SQLAlchemyError

from analytics import AnalyticsEngine
from budgeting import BudgetManager
from config_manager import NotificationSettings, load_config
from database_ops import DatabaseManager
from domain import BudgetImpact
from exceptions import EmptySimulationError, ExpenseAssistantError, InvalidInputError, NotFoundError
from expense_management import ExpenseManager, IncomeManager
from notifications import BudgetNotifier, NotificationManager
from repositories import UserRepository
from simulation import SimulationManager, build_simulated_expense
from utils import ensure_data_dir, format_currency, parse_date, resolve_connection_string, resolve_log_path

# Configure module-level logger
logger = logging.getLogger(__name__)

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(config: dict) -> None:
    """
    Configure logging based on config settings.

    Console logging is always enabled. File logging and email alerts are
    optional; if either cannot be set up a warning is logged and the
    application continues without it.

    Args:
        config: Configuration dictionary with logging settings
    """
    log_config = config.get("logging") or {}

    level_name = str(log_config.get("level", "INFO")).upper()
    log_level = getattr(logging, level_name, None)
    invalid_level = not isinstance(log_level, int)
    if invalid_level:
        log_level = logging.INFO

    log_format = log_config.get("format") or DEFAULT_LOG_FORMAT
    if "%(asctime)s" not in log_format:
        log_format = f"%(asctime)s - {log_format}"

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    warnings: List[str] = []

    log_file = log_config.get("file")
    if log_file:
        try:
            handlers.append(logging.FileHandler(resolve_log_path(log_file)))
        except OSError as exc:
            warnings.append(f"File logging disabled, unable to open '{log_file}': {exc}")

    email_handler = _build_email_handler(config.get("email_alerts") or {}, warnings)
    if email_handler is not None:
        handlers.append(email_handler)

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers,
        force=True
    )

    if invalid_level:
        logger.warning(f"Invalid log level '{level_name}', defaulting to INFO")
    for message in warnings:
        logger.warning(message)


def _build_email_handler(alert_config: dict, warnings: List[str]):
    """
    Build an SMTPHandler for critical log records, or None.

    Problems are appended to ``warnings`` instead of raised.
    """
    if not alert_config.get("enabled", False):
        return None

    required = ("smtp_host", "from_address", "to_addresses")
    missing = [key for key in required if not alert_config.get(key)]
    if missing:
        warnings.append(f"Email alerts disabled, missing settings: {', '.join(missing)}")
        return None

    try:
        port = int(alert_config.get("smtp_port", 587))
        if not 0 < port < 65536:
            raise ValueError(f"invalid SMTP port {port}")
        level_name = str(alert_config.get("level", "ERROR")).upper()
        level = getattr(logging, level_name, None)
        if not isinstance(level, int):
            raise ValueError(f"invalid alert level '{level_name}'")

        to_addresses = alert_config["to_addresses"]
        if isinstance(to_addresses, str):
            to_addresses = [to_addresses]

        credentials = None
        if alert_config.get("username"):
            credentials = (alert_config["username"], alert_config.get("password", ""))

        handler = logging.handlers.SMTPHandler(
            mailhost=(alert_config["smtp_host"], port),
            fromaddr=alert_config["from_address"],
            toaddrs=to_addresses,
            subject=alert_config.get("subject", "Expense Assistant Alert"),
            credentials=credentials,
            secure=() if alert_config.get("use_tls", True) else None,
        )
        handler.setLevel(level)
        return handler
    except (ValueError, TypeError) as exc:
        warnings.append(f"Email alerts disabled, setup failed: {exc}")
        return None


def create_connection_string(config: dict) -> str:
    """
    Create SQLAlchemy connection string from config.

    Args:
        config: Configuration dictionary with database settings

    Returns:
        SQLAlchemy connection string
    """
    return resolve_connection_string(config)


def _print_usage_table(impacts: List[BudgetImpact]) -> None:
    print("\n" + "=" * 100)
    print("BUDGET STATUS")
    print("=" * 100)
    print(f"{'ID':<5} {'Category':<20} {'Period':<9} {'Limit':>12} {'Spent':>12} {'Remaining':>12} {'Used %':>8}  Window")
    print("-" * 100)
    for impact in impacts:
        usage = impact.usage
        flag = " OVER" if usage.is_over_budget else ("" if usage.is_active else " inactive")
        print(
            f"{impact.budget.id:<5} {impact.budget.category:<20} {impact.budget.period_name:<9} "
            f"{format_currency(usage.limit):>12} {format_currency(usage.spent):>12} "
            f"{format_currency(usage.remaining):>12} {usage.raw_percentage:>7.1f}%  "
            f"{usage.period_start.date()} to {usage.period_end.date()}{flag}"
        )
    print("=" * 100)


def _print_notifications(notifications) -> None:
    for notification in notifications:
        print(f"[{notification.type.value}] {notification.message}")


def _optional_date(value):
    return parse_date(value) if value else None


def handle_user_command(args: argparse.Namespace, db_manager: DatabaseManager) -> None:
    """Handle user commands."""
    users = UserRepository(db_manager)

    if args.user_action == "create":
        if users.get_user_by_email(args.email):
            raise InvalidInputError("A user with this email already exists", details={"email": args.email})
        user = users.create_user(args.email, args.name)
        print(f"Created user {user.id}: {user.email}")

    elif args.user_action == "show":
        user = users.get_user(args.id)
        if user is None:
            raise NotFoundError("User not found", details={"user_id": args.id})
        print(f"User {user.id}: {user.name or '-'} <{user.email}>")


def handle_budget_command(args: argparse.Namespace, db_manager: DatabaseManager) -> None:
    """
    Handle budget management commands.

    Args:
        args: Parsed command-line arguments
        db_manager: DatabaseManager instance
    """
    budget_manager = BudgetManager(db_manager)

    if args.budget_action == "create":
        budget = budget_manager.create_budget(
            user_id=args.user,
            category=args.category,
            limit=args.limit,
            period=args.period,
            start_date=parse_date(args.start) if args.start else datetime.now(),
            end_date=_optional_date(args.end),
        )
        print(f"Created budget {budget.id} for '{budget.category}': "
              f"{format_currency(budget.limit)} {budget.period_name}")

    elif args.budget_action == "list":
        budgets = budget_manager.list_budgets(args.user, category=args.category)
        if not budgets:
            print("No budgets found.")
            return
        print(f"{'ID':<5} {'Category':<20} {'Limit':>12} {'Period':<9} {'Start':<12} {'End':<12}")
        print("-" * 75)
        for budget in budgets:
            end = budget.end_date.date().isoformat() if budget.end_date else "-"
            print(f"{budget.id:<5} {budget.category:<20} {format_currency(budget.limit):>12} "
                  f"{budget.period_name:<9} {budget.start_date.date().isoformat():<12} {end:<12}")

    elif args.budget_action == "status":
        if args.id is not None:
            impacts = [budget_manager.get_budget_usage(args.id, args.user)]
        else:
            impacts = budget_manager.get_all_budget_usage(args.user)
        if not impacts:
            print("No budgets found.")
            return
        _print_usage_table(impacts)
        summary = BudgetManager.calculate_budget_summary(impacts)
        print(f"\nTotal Limit: {format_currency(summary['total_limit'])}")
        print(f"Total Spent: {format_currency(summary['total_spent'])}")
        print(f"Total Remaining: {format_currency(summary['total_remaining'])}")
        print(f"Over Budget: {summary['over_budget_count']}")

    elif args.budget_action == "update":
        budget_manager.update_budget(
            args.id,
            args.user,
            category=args.category,
            limit=args.limit,
            period=args.period,
            start_date=_optional_date(args.start),
            end_date=_optional_date(args.end),
            clear_end_date=args.clear_end,
        )
        print(f"Updated budget {args.id}")

    elif args.budget_action == "delete":
        budget_manager.delete_budget(args.id, args.user)
        print(f"Deleted budget {args.id}")


def handle_expense_command(
    args: argparse.Namespace,
    db_manager: DatabaseManager,
    notifier: BudgetNotifier
) -> None:
    """Handle expense commands; adding or updating prints any budget alerts."""
    expense_manager = ExpenseManager(db_manager, notifier=notifier)

    if args.expense_action == "add":
        outcome = expense_manager.create_expense(
            user_id=args.user,
            amount=args.amount,
            description=args.description,
            category=args.category,
            date=args.date,
        )
        print(f"Added expense {outcome.expense.id}: {format_currency(outcome.expense.amount)} "
              f"in '{outcome.expense.category}'")
        _print_notifications(outcome.notifications)

    elif args.expense_action == "list":
        expenses = expense_manager.list_expenses(
            args.user,
            category=args.category,
            start_date=_optional_date(args.start),
            end_date=_optional_date(args.end),
        )
        if not expenses:
            print("No expenses found.")
            return
        print(f"{'ID':<6} {'Date':<12} {'Category':<20} {'Amount':>12}  Description")
        print("-" * 80)
        for expense in expenses:
            print(f"{expense.id:<6} {expense.date.date().isoformat():<12} {expense.category:<20} "
                  f"{format_currency(expense.amount):>12}  {expense.description}")

    elif args.expense_action == "update":
        outcome = expense_manager.update_expense(
            args.id,
            args.user,
            amount=args.amount,
            description=args.description,
            category=args.category,
            date=args.date,
        )
        print(f"Updated expense {outcome.expense.id}")
        _print_notifications(outcome.notifications)

    elif args.expense_action == "delete":
        expense_manager.delete_expense(args.id, args.user)
        print(f"Deleted expense {args.id}")


def handle_income_command(args: argparse.Namespace, db_manager: DatabaseManager) -> None:
    """Handle income commands."""
    income_manager = IncomeManager(db_manager)

    if args.income_action == "add":
        income = income_manager.create_income(
            user_id=args.user,
            amount=args.amount,
            source=args.source,
            category=args.category,
            date=args.date,
            description=args.description,
        )
        print(f"Added income {income.id}: {format_currency(income.amount)} from '{income.source}'")

    elif args.income_action == "list":
        entries = income_manager.list_income(args.user)
        if not entries:
            print("No income found.")
            return
        for income in entries:
            print(f"{income.id:<6} {income.date.date().isoformat():<12} {income.source:<20} "
                  f"{format_currency(income.amount):>12}  {income.category}")

    elif args.income_action == "delete":
        income_manager.delete_income(args.id, args.user)
        print(f"Deleted income {args.id}")


def parse_simulation_item(raw: str):
    """
    Parse an ``AMOUNT:CATEGORY:YYYY-MM-DD[:DESCRIPTION]`` item argument.

    Raises:
        InvalidInputError: If the item is malformed
    """
    parts = raw.split(":", 3)
    if len(parts) < 3:
        raise InvalidInputError(
            "Simulation items must look like AMOUNT:CATEGORY:YYYY-MM-DD[:DESCRIPTION]",
            details={"item": raw}
        )
    description = parts[3] if len(parts) == 4 else ""
    return build_simulated_expense(parts[0], parts[1], parts[2], description)


def handle_simulation_command(
    args: argparse.Namespace,
    db_manager: DatabaseManager,
    notifier: BudgetNotifier
) -> None:
    """Handle what-if simulation commands."""
    simulation_manager = SimulationManager(db_manager, notifier=notifier)

    if args.simulation_action == "create":
        items = [parse_simulation_item(raw) for raw in args.item or []]
        simulation = simulation_manager.create_simulation(args.user, args.name, items)
        print(f"Created simulation {simulation.id} '{simulation.name}' with {len(simulation.expenses)} items")

    elif args.simulation_action == "list":
        simulations = simulation_manager.list_simulations(args.user)
        if not simulations:
            print("No simulations found.")
            return
        for simulation in simulations:
            total = sum(item.amount for item in simulation.expenses)
            print(f"{simulation.id:<5} {simulation.name:<30} {len(simulation.expenses):>3} items "
                  f"{format_currency(total):>12}")

    elif args.simulation_action == "show":
        simulation = simulation_manager.get_simulation(args.id, args.user)
        print(f"Simulation {simulation.id}: {simulation.name}")
        for item in simulation.expenses:
            print(f"  {item.date.date().isoformat()}  {item.category:<20} "
                  f"{format_currency(item.amount):>12}  {item.description}")

    elif args.simulation_action == "analyze":
        impacts = simulation_manager.analyze_simulation(args.id, args.user)
        if not impacts:
            print("No budgets are affected by this simulation.")
            return
        _print_usage_table(impacts)

    elif args.simulation_action == "convert":
        result = simulation_manager.convert_and_notify(args.id, args.user)
        print(f"Converted simulation {args.id} into {len(result.expenses)} expenses")
        _print_notifications(result.notifications)

    elif args.simulation_action == "delete":
        simulation_manager.delete_simulation(args.id, args.user)
        print(f"Deleted simulation {args.id}")


def handle_notification_command(args: argparse.Namespace, db_manager: DatabaseManager) -> None:
    """Handle notification commands."""
    notification_manager = NotificationManager(db_manager)

    if args.notification_action == "list":
        page = notification_manager.list_notifications(
            args.user,
            page=args.page,
            limit=args.limit,
            unread_only=args.unread,
            notification_type=args.type,
        )
        if not page["data"]:
            print("No notifications.")
            return
        for item in page["data"]:
            marker = " " if item["is_read"] else "*"
            print(f"{marker} {item['id']:<5} {item['title']:<16} {item['created_at']}  {item['message']}")
        pagination = page["pagination"]
        print(f"\nPage {pagination['page']} of {pagination['total_pages']} ({pagination['total']} total)")

    elif args.notification_action == "read":
        notification_manager.mark_as_read(args.id, args.user)
        print(f"Marked notification {args.id} as read")

    elif args.notification_action == "read-all":
        count = notification_manager.mark_all_as_read(args.user)
        print(f"Marked {count} notifications as read")

    elif args.notification_action == "count":
        print(f"Unread notifications: {notification_manager.get_unread_count(args.user)}")


def handle_report_command(args: argparse.Namespace, db_manager: DatabaseManager) -> None:
    """Handle spending report commands."""
    engine = AnalyticsEngine(db_manager)

    if args.report_action == "categories":
        start, end = engine.parse_time_frame(args.time_frame)
        df = engine.get_category_breakdown(args.user, start, end)
        if df.empty:
            print("No expenses in this time frame.")
            return
        print(f"{'Category':<25} {'Total':>12} {'Count':>6} {'Share':>8}")
        print("-" * 55)
        for row in df.to_dict(orient="records"):
            print(f"{row['category']:<25} {format_currency(row['total']):>12} "
                  f"{row['count']:>6} {row['percentage']:>7.1f}%")

    elif args.report_action == "trend":
        df = engine.get_monthly_trends(args.user, months=args.months)
        print(f"{'Month':<8} {'Income':>12} {'Expenses':>12} {'Net':>12}")
        print("-" * 48)
        for row in df.itertuples(index=False):
            print(f"{row.period:<8} {format_currency(row.income):>12} "
                  f"{format_currency(row.expenses):>12} {format_currency(row.net):>12}")

    elif args.report_action == "monthly":
        now = datetime.now()
        report = engine.generate_monthly_report(args.user, args.year or now.year, args.month or now.month)
        summary = report["summary"]
        print("=" * 60)
        print(f"MONTHLY REPORT: {report['period']}")
        print("=" * 60)
        print(f"Income: {format_currency(summary['total_income'])}")
        print(f"Expenses: {format_currency(summary['total_expenses'])}")
        print(f"Net Savings: {format_currency(summary['net_savings'])}")
        print(f"Savings Rate: {summary['savings_rate']:.1f}%")
        if report["categories"]:
            print("\nBy category:")
            for item in report["categories"]:
                print(f"  {item['category']:<25} {format_currency(item['total']):>12} {item['percentage']:>6.1f}%")
        if report["budgets"]:
            print("\nBudgets:")
            for item in report["budgets"]:
                status = "OVER" if item["is_over_budget"] else f"{item['percentage']:.0f}%"
                print(f"  {item['category']:<25} {format_currency(item['spent']):>12} of "
                      f"{format_currency(item['limit']):>12}  {status}")
        print("=" * 60)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all sub-commands."""
    parser = argparse.ArgumentParser(
        description="Personal expense assistant: budgets, alerts and what-if simulations",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Users
    user_parser = subparsers.add_parser("user", help="Manage users")
    user_sub = user_parser.add_subparsers(dest="user_action", required=True)
    user_create = user_sub.add_parser("create", help="Create a user")
    user_create.add_argument("--email", required=True)
    user_create.add_argument("--name")
    user_show = user_sub.add_parser("show", help="Show a user")
    user_show.add_argument("--id", type=int, required=True)

    # Budgets
    budget_parser = subparsers.add_parser("budget", aliases=["bud"], help="Manage budgets")
    budget_sub = budget_parser.add_subparsers(dest="budget_action", required=True)
    bud_create = budget_sub.add_parser("create", help="Create a budget")
    bud_create.add_argument("--user", type=int, required=True)
    bud_create.add_argument("--category", required=True)
    bud_create.add_argument("--limit", required=True, help="Spending limit per period")
    bud_create.add_argument("--period", default="monthly", help="daily, weekly or monthly")
    bud_create.add_argument("--start", help="Start date YYYY-MM-DD (default: now)")
    bud_create.add_argument("--end", help="Optional end date YYYY-MM-DD")
    bud_list = budget_sub.add_parser("list", help="List budgets")
    bud_list.add_argument("--user", type=int, required=True)
    bud_list.add_argument("--category")
    bud_status = budget_sub.add_parser("status", help="Show current-period usage")
    bud_status.add_argument("--user", type=int, required=True)
    bud_status.add_argument("--id", type=int, help="Only this budget")
    bud_update = budget_sub.add_parser("update", help="Update a budget")
    bud_update.add_argument("--user", type=int, required=True)
    bud_update.add_argument("--id", type=int, required=True)
    bud_update.add_argument("--category")
    bud_update.add_argument("--limit")
    bud_update.add_argument("--period")
    bud_update.add_argument("--start")
    bud_update.add_argument("--end")
    bud_update.add_argument("--clear-end", action="store_true", help="Remove the end date")
    bud_delete = budget_sub.add_parser("delete", help="Delete a budget")
    bud_delete.add_argument("--user", type=int, required=True)
    bud_delete.add_argument("--id", type=int, required=True)

    # Expenses
    expense_parser = subparsers.add_parser("expense", aliases=["exp"], help="Manage expenses")
    expense_sub = expense_parser.add_subparsers(dest="expense_action", required=True)
    exp_add = expense_sub.add_parser("add", help="Record an expense")
    exp_add.add_argument("--user", type=int, required=True)
    exp_add.add_argument("--amount", required=True)
    exp_add.add_argument("--category", required=True)
    exp_add.add_argument("--description", default="")
    exp_add.add_argument("--date", help="YYYY-MM-DD (default: now)")
    exp_list = expense_sub.add_parser("list", help="List expenses")
    exp_list.add_argument("--user", type=int, required=True)
    exp_list.add_argument("--category")
    exp_list.add_argument("--start")
    exp_list.add_argument("--end")
    exp_update = expense_sub.add_parser("update", help="Update an expense")
    exp_update.add_argument("--user", type=int, required=True)
    exp_update.add_argument("--id", type=int, required=True)
    exp_update.add_argument("--amount")
    exp_update.add_argument("--category")
    exp_update.add_argument("--description")
    exp_update.add_argument("--date")
    exp_delete = expense_sub.add_parser("delete", help="Delete an expense")
    exp_delete.add_argument("--user", type=int, required=True)
    exp_delete.add_argument("--id", type=int, required=True)

    # Income
    income_parser = subparsers.add_parser("income", help="Manage income")
    income_sub = income_parser.add_subparsers(dest="income_action", required=True)
    inc_add = income_sub.add_parser("add", help="Record income")
    inc_add.add_argument("--user", type=int, required=True)
    inc_add.add_argument("--amount", required=True)
    inc_add.add_argument("--source", required=True)
    inc_add.add_argument("--category", default="salary")
    inc_add.add_argument("--description")
    inc_add.add_argument("--date")
    inc_list = income_sub.add_parser("list", help="List income")
    inc_list.add_argument("--user", type=int, required=True)
    inc_delete = income_sub.add_parser("delete", help="Delete income")
    inc_delete.add_argument("--user", type=int, required=True)
    inc_delete.add_argument("--id", type=int, required=True)

    # Simulations
    sim_parser = subparsers.add_parser("simulation", aliases=["sim"], help="What-if simulations")
    sim_sub = sim_parser.add_subparsers(dest="simulation_action", required=True)
    sim_create = sim_sub.add_parser("create", help="Create a simulation")
    sim_create.add_argument("--user", type=int, required=True)
    sim_create.add_argument("--name", required=True)
    sim_create.add_argument(
        "--item",
        action="append",
        help="AMOUNT:CATEGORY:YYYY-MM-DD[:DESCRIPTION] (repeatable)"
    )
    sim_list = sim_sub.add_parser("list", help="List simulations")
    sim_list.add_argument("--user", type=int, required=True)
    for action, help_text in (
        ("show", "Show a simulation"),
        ("analyze", "Preview budget impact"),
        ("convert", "Turn a simulation into real expenses"),
        ("delete", "Delete a simulation"),
    ):
        sim_action = sim_sub.add_parser(action, help=help_text)
        sim_action.add_argument("--user", type=int, required=True)
        sim_action.add_argument("--id", type=int, required=True)

    # Notifications
    notif_parser = subparsers.add_parser("notifications", aliases=["notif"], help="Budget notifications")
    notif_sub = notif_parser.add_subparsers(dest="notification_action", required=True)
    notif_list = notif_sub.add_parser("list", help="List notifications")
    notif_list.add_argument("--user", type=int, required=True)
    notif_list.add_argument("--unread", action="store_true")
    notif_list.add_argument("--type", choices=["budget_exceeded", "budget_warning"])
    notif_list.add_argument("--page", type=int, default=1)
    notif_list.add_argument("--limit", type=int, default=20)
    notif_read = notif_sub.add_parser("read", help="Mark a notification read")
    notif_read.add_argument("--user", type=int, required=True)
    notif_read.add_argument("--id", type=int, required=True)
    notif_read_all = notif_sub.add_parser("read-all", help="Mark all notifications read")
    notif_read_all.add_argument("--user", type=int, required=True)
    notif_count = notif_sub.add_parser("count", help="Count unread notifications")
    notif_count.add_argument("--user", type=int, required=True)

    # Reports
    report_parser = subparsers.add_parser("report", aliases=["analyze"], help="Spending reports")
    report_sub = report_parser.add_subparsers(dest="report_action", required=True)
    rep_categories = report_sub.add_parser("categories", help="Spending by category")
    rep_categories.add_argument("--user", type=int, required=True)
    rep_categories.add_argument("--time-frame", default="1m", help="1m, 3m, 12m, all or YYYY-MM-DD:YYYY-MM-DD")
    rep_trend = report_sub.add_parser("trend", help="Monthly income and expenses")
    rep_trend.add_argument("--user", type=int, required=True)
    rep_trend.add_argument("--months", type=int, default=6)
    rep_monthly = report_sub.add_parser("monthly", help="Monthly report")
    rep_monthly.add_argument("--user", type=int, required=True)
    rep_monthly.add_argument("--year", type=int)
    rep_monthly.add_argument("--month", type=int)

    return parser


COMMAND_ALIASES = {
    "bud": "budget",
    "exp": "expense",
    "sim": "simulation",
    "notif": "notifications",
    "analyze": "report",
}


def main(argv=None) -> int:
    """Main entry point for the application."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1
    command = COMMAND_ALIASES.get(args.command, args.command)

    # Load configuration
    try:
        config = load_config(Path(args.config))
    except ExpenseAssistantError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    # Ensure data directory exists before logging/database work
    try:
        ensure_data_dir(config)
    except OSError as exc:
        print(f"Failed to prepare data directory: {exc}", file=sys.stderr)
        return 1

    setup_logging(config)

    try:
        connection_string = create_connection_string(config)
        db_manager = DatabaseManager(connection_string)
        db_manager.create_tables()
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Failed to connect to database: {e}")
        print(f"Error: Failed to connect to database: {e}", file=sys.stderr)
        return 1

    try:
        notifier = BudgetNotifier(db_manager, settings=NotificationSettings.from_config(config))
        if command == "user":
            handle_user_command(args, db_manager)
        elif command == "budget":
            handle_budget_command(args, db_manager)
        elif command == "expense":
            handle_expense_command(args, db_manager, notifier)
        elif command == "income":
            handle_income_command(args, db_manager)
        elif command == "simulation":
            handle_simulation_command(args, db_manager, notifier)
        elif command == "notifications":
            handle_notification_command(args, db_manager)
        elif command == "report":
            handle_report_command(args, db_manager)
        else:
            parser.print_help()
            return 1
    except (NotFoundError, InvalidInputError, EmptySimulationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except ExpenseAssistantError as e:
        logger.error(f"{command} command failed: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        db_manager.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
