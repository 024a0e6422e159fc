"""
Command-line interface for the budget tracker.

Subcommands:
1. transaction - add, list, update and delete ledger entries
2. goal        - manage budget goals and check their progress
3. category    - manage categories and get category suggestions
4. summary     - income, expense and balance totals
5. report      - per-category spending for a date range
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from tabulate import tabulate

from analytics import REPORT_RANGES, resolve_report_range
from config_manager import load_config
from database_ops import DatabaseManager, TimePeriod, TransactionType
from exceptions import TrackerError
from finance_service import FinanceTracker
from utils import resolve_connection_string, resolve_log_path

# Configure module-level logger
logger = logging.getLogger(__name__)

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(config: dict) -> None:
    """
    Configure logging based on config settings.

    An unknown level falls back to INFO. A log file that cannot be opened
    is reported and console logging continues.

    Args:
        config: Configuration dictionary with logging settings
    """
    log_config = config.get("logging") or {}
    level_name = str(log_config.get("level", "INFO")).upper()
    log_level = getattr(logging, level_name, None)
    level_is_valid = isinstance(log_level, int)
    if not level_is_valid:
        log_level = logging.INFO
    log_format = log_config.get("format", DEFAULT_LOG_FORMAT)
    log_file = log_config.get("file")

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    file_error = None
    if log_file:
        try:
            handlers.append(logging.FileHandler(resolve_log_path(log_file)))
        except OSError as exc:
            file_error = exc

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers,
        force=True
    )

    if not level_is_valid:
        logger.warning(f"Invalid log level '{level_name}'; using INFO")
    if file_error is not None:
        logger.warning(f"Unable to open log file '{log_file}': {file_error}")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        description="Personal budget tracker",
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
    type_choices = [t.value for t in TransactionType]
    period_choices = [p.value for p in TimePeriod]

    # Transaction command
    txn_parser = subparsers.add_parser("transaction", aliases=["txn"], help="Manage transactions")
    txn_subparsers = txn_parser.add_subparsers(dest="transaction_action", help="Transaction actions")

    txn_add = txn_subparsers.add_parser("add", help="Record a transaction")
    txn_add.add_argument("--description", "-d", type=str, required=True, help="Description")
    txn_add.add_argument("--amount", "-a", type=str, required=True, help="Amount (positive)")
    txn_add.add_argument("--date", type=str, required=True, help="Date (YYYY-MM-DD)")
    txn_add.add_argument("--type", "-t", type=str, required=True, choices=type_choices, help="Transaction type")
    txn_add.add_argument("--category-id", type=int, help="Category ID")
    txn_add.add_argument("--goal-id", type=int, help="Budget goal ID (expenses only)")

    txn_list = txn_subparsers.add_parser("list", help="List transactions")
    txn_list.add_argument("--category-id", type=int, help="Filter by category ID")
    txn_list.add_argument("--limit", type=int, help="Maximum number of transactions")

    txn_update = txn_subparsers.add_parser("update", help="Update a transaction")
    txn_update.add_argument("--id", type=int, required=True, help="Transaction ID")
    txn_update.add_argument("--description", "-d", type=str, help="New description")
    txn_update.add_argument("--amount", "-a", type=str, help="New amount")
    txn_update.add_argument("--date", type=str, help="New date (YYYY-MM-DD)")
    txn_update.add_argument("--type", "-t", type=str, choices=type_choices, help="New type")
    txn_update.add_argument("--category-id", type=int, help="New category ID")
    txn_update.add_argument("--goal-id", type=int, help="New budget goal ID")
    txn_update.add_argument("--clear-category", action="store_true", help="Remove the category link")
    txn_update.add_argument("--clear-goal", action="store_true", help="Remove the budget goal link")

    txn_delete = txn_subparsers.add_parser("delete", help="Delete a transaction")
    txn_delete.add_argument("--id", type=int, required=True, help="Transaction ID")

    # Goal command
    goal_parser = subparsers.add_parser("goal", aliases=["bud"], help="Manage budget goals")
    goal_subparsers = goal_parser.add_subparsers(dest="goal_action", help="Goal actions")

    goal_create = goal_subparsers.add_parser("create", help="Create a budget goal")
    goal_create.add_argument("--amount", "-a", type=str, required=True, help="Target amount")
    goal_create.add_argument("--period", type=str, default="monthly", choices=period_choices, help="Time period")

    goal_subparsers.add_parser("list", help="List budget goals")

    goal_update = goal_subparsers.add_parser("update", help="Update a budget goal")
    goal_update.add_argument("--id", type=int, required=True, help="Goal ID")
    goal_update.add_argument("--amount", "-a", type=str, help="New target amount")
    goal_update.add_argument("--period", type=str, choices=period_choices, help="New time period")

    goal_delete = goal_subparsers.add_parser("delete", help="Delete a budget goal")
    goal_delete.add_argument("--id", type=int, required=True, help="Goal ID")

    goal_status = goal_subparsers.add_parser("status", help="Show budget goal progress")
    goal_status.add_argument("--id", type=int, required=True, help="Goal ID")

    goal_subparsers.add_parser("reconcile", help="Recalculate goals that disagree with the ledger")

    # Category command
    cat_parser = subparsers.add_parser("category", aliases=["cat"], help="Manage categories")
    cat_subparsers = cat_parser.add_subparsers(dest="category_action", help="Category actions")

    cat_add = cat_subparsers.add_parser("add", help="Create a category")
    cat_add.add_argument("--name", type=str, required=True, help="Category name")

    cat_subparsers.add_parser("list", help="List categories")

    cat_rename = cat_subparsers.add_parser("rename", help="Rename a category")
    cat_rename.add_argument("--id", type=int, required=True, help="Category ID")
    cat_rename.add_argument("--name", type=str, required=True, help="New name")

    cat_delete = cat_subparsers.add_parser("delete", help="Delete a category")
    cat_delete.add_argument("--id", type=int, required=True, help="Category ID")

    cat_suggest = cat_subparsers.add_parser("suggest", help="Suggest a category for a description")
    cat_suggest.add_argument("--description", "-d", type=str, required=True, help="Transaction description")

    # Summary command
    summary_parser = subparsers.add_parser("summary", help="Show income, expense and balance")
    summary_parser.add_argument("--recent", type=int, help="Number of recent transactions to show")

    # Report command
    report_parser = subparsers.add_parser("report", help="Spending by category for a date range")
    report_parser.add_argument("--range", dest="range_preset", choices=REPORT_RANGES, default="current",
                               help="Preset range (ignored when --start/--end are given)")
    report_parser.add_argument("--start", type=str, help="Start date (YYYY-MM-DD)")
    report_parser.add_argument("--end", type=str, help="End date (YYYY-MM-DD)")
    report_parser.add_argument("--category", dest="categories", action="append",
                               help="Restrict to category name (can be specified multiple times)")

    return parser


def _print_transactions(tracker: FinanceTracker, transactions) -> None:
    """Print transactions as a grid table."""
    if not transactions:
        print("No transactions found.")
        return
    categories = {c.id: c.name for c in tracker.list_categories()}
    rows = [
        [
            t.id,
            t.date.isoformat(),
            t.description,
            t.type.value,
            f"{t.signed_amount:,.2f}",
            categories.get(t.category_id, ""),
            t.budget_goal_id or "",
        ]
        for t in transactions
    ]
    print(tabulate(
        rows,
        headers=["ID", "Date", "Description", "Type", "Amount", "Category", "Goal"],
        tablefmt="grid",
        disable_numparse=True
    ))


def handle_transaction_command(args: argparse.Namespace, tracker: FinanceTracker) -> int:
    """Handle transaction subcommands."""
    action = args.transaction_action
    if action == "add":
        transaction = tracker.create_transaction(
            description=args.description,
            amount=args.amount,
            date=args.date,
            type=args.type,
            category_id=args.category_id,
            budget_goal_id=args.goal_id
        )
        print(f"Created transaction {transaction.id}: {transaction.signed_amount:,.2f} on {transaction.date}")
    elif action == "list":
        _print_transactions(tracker, tracker.list_transactions(category_id=args.category_id, limit=args.limit))
    elif action == "update":
        fields = {}
        for name, attr in (("description", "description"), ("amount", "amount"), ("date", "date"), ("type", "type")):
            value = getattr(args, attr)
            if value is not None:
                fields[name] = value
        if args.clear_category:
            fields["category_id"] = None
        elif args.category_id is not None:
            fields["category_id"] = args.category_id
        if args.clear_goal:
            fields["budget_goal_id"] = None
        elif args.goal_id is not None:
            fields["budget_goal_id"] = args.goal_id
        tracker.update_transaction(args.id, **fields)
        print(f"Updated transaction {args.id}")
    elif action == "delete":
        tracker.delete_transaction(args.id)
        print(f"Deleted transaction {args.id}")
    else:
        print("Invalid transaction action", file=sys.stderr)
        return 1
    return 0


def handle_goal_command(args: argparse.Namespace, tracker: FinanceTracker) -> int:
    """Handle budget goal subcommands."""
    action = args.goal_action
    if action == "create":
        goal = tracker.create_budget_goal(args.amount, args.period)
        print(f"Created budget goal {goal.id}: ${goal.amount:,.2f} ({goal.time_period.value})")
    elif action == "list":
        goals = tracker.list_budget_goals()
        if not goals:
            print("No budget goals found.")
        else:
            rows = [
                [g.id, g.time_period.value, f"{g.amount:,.2f}", f"{g.current_spending:,.2f}"]
                for g in goals
            ]
            print(tabulate(rows, headers=["ID", "Period", "Target", "Spent"], tablefmt="grid", disable_numparse=True))
    elif action == "update":
        tracker.update_budget_goal(args.id, amount=args.amount, time_period=args.period)
        print(f"Updated budget goal {args.id}")
    elif action == "delete":
        tracker.delete_budget_goal(args.id)
        print(f"Deleted budget goal {args.id}")
    elif action == "status":
        status = tracker.get_budget_goal_status(args.id)
        print("\n" + "=" * 60)
        print(f"BUDGET GOAL {status.goal_id} ({status.time_period.value})")
        print("=" * 60)
        print(f"Target: ${status.target:,.2f}")
        print(f"Spent: ${status.spent:,.2f}")
        print(f"Remaining: ${status.remaining:,.2f}")
        print(f"Percentage Used: {status.percentage_used:.1f}%")
        if status.over_budget:
            print("Over budget!")
        print("=" * 60)
    elif action == "reconcile":
        repaired = tracker.reconcile_budget_goals()
        if repaired:
            print(f"Reconciled budget goals: {', '.join(str(goal_id) for goal_id in repaired)}")
        else:
            print("All budget goals match the ledger.")
    else:
        print("Invalid goal action", file=sys.stderr)
        return 1
    return 0


def handle_category_command(args: argparse.Namespace, tracker: FinanceTracker) -> int:
    """Handle category subcommands."""
    action = args.category_action
    if action == "add":
        category = tracker.create_category(args.name)
        print(f"Created category {category.id}: {category.name}")
    elif action == "list":
        categories = tracker.list_categories()
        if not categories:
            print("No categories found.")
        else:
            print(tabulate([[c.id, c.name] for c in categories], headers=["ID", "Name"], tablefmt="grid", disable_numparse=True))
    elif action == "rename":
        category = tracker.update_category(args.id, args.name)
        print(f"Renamed category {category.id} to {category.name}")
    elif action == "delete":
        tracker.delete_category(args.id)
        print(f"Deleted category {args.id}")
    elif action == "suggest":
        suggestion = tracker.suggest_category(args.description)
        print(suggestion if suggestion else "No matching category.")
    else:
        print("Invalid category action", file=sys.stderr)
        return 1
    return 0


def handle_summary_command(args: argparse.Namespace, tracker: FinanceTracker) -> int:
    """Print totals and the most recent transactions."""
    summary = tracker.get_summary()
    print(tabulate(
        [
            ["Total Income", f"{summary['total_income']:,.2f}"],
            ["Total Expense", f"{summary['total_expense']:,.2f}"],
            ["Balance", f"{summary['balance']:,.2f}"],
        ],
        tablefmt="simple",
        disable_numparse=True
    ))
    recent = tracker.get_recent_transactions(args.recent)
    if recent:
        print("\nRecent transactions:")
        _print_transactions(tracker, recent)
    return 0


def handle_report_command(args: argparse.Namespace, tracker: FinanceTracker) -> int:
    """Print a per-category spending report."""
    if args.start or args.end:
        if not (args.start and args.end):
            print("Both --start and --end are required for a custom range", file=sys.stderr)
            return 1
        start, end = args.start, args.end
    else:
        start, end = resolve_report_range(args.range_preset)

    report = tracker.get_monthly_report(start, end, args.categories)
    print(f"Spending {report.start_date} to {report.end_date}: ${report.total_spending:,.2f}")
    if report.spending_by_category:
        rows = [
            [entry.category, f"{entry.amount:,.2f}", f"{entry.percentage:.1f}%", entry.count]
            for entry in report.spending_by_category
        ]
        print(tabulate(rows, headers=["Category", "Amount", "Share", "Count"], tablefmt="grid", disable_numparse=True))
    return 0


HANDLERS = {
    "transaction": handle_transaction_command,
    "txn": handle_transaction_command,
    "goal": handle_goal_command,
    "bud": handle_goal_command,
    "category": handle_category_command,
    "cat": handle_category_command,
    "summary": handle_summary_command,
    "report": handle_report_command,
}


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the application.

    Returns:
        Process exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = load_config(Path(args.config))
    except TrackerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging(config)

    db_manager = None
    try:
        db_manager = DatabaseManager(resolve_connection_string(config))
        db_manager.create_tables()
        tracker = FinanceTracker(db_manager, config)
        return HANDLERS[args.command](args, tracker)
    except TrackerError as e:
        logger.error(f"Command '{args.command}' failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        if db_manager is not None:
            db_manager.close()


if __name__ == "__main__":
    sys.exit(main())
