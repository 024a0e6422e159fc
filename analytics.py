"""
Analytics module for ledger summaries and spending reports.

This module provides read-only aggregations that are recomputed from the
ledger on every call: income/expense/balance totals and per-category
spending for a date range. Nothing here is persisted.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd
from sqlalchemy import case, func, or_

from database_ops import (
    ZERO,
    Category,
    DatabaseManager,
    Transaction,
    TransactionType,
    quantize_money,
)
from exceptions import ValidationError
from data_standardization import parse_date

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"
REPORT_RANGES = ("current", "last", "last3")


@dataclass
class CategorySpending:
    """Spending for one category within a report."""
    category: str
    amount: Decimal
    percentage: float
    count: int


@dataclass
class MonthlyReport:
    """
    Expense report for a date range.

    Attributes:
        start_date: First day included
        end_date: Last day included
        total_spending: Sum of all expense amounts in range
        spending_by_category: Per-category breakdown, largest first
    """
    start_date: date
    end_date: date
    total_spending: Decimal
    spending_by_category: List[CategorySpending] = field(default_factory=list)


def get_month_period(month: date) -> Tuple[date, date]:
    """
    Get the first and last day for the provided month.

    Args:
        month: Date within the desired month (only month/year are used).

    Returns:
        Tuple of (period_start, period_end).
    """
    period_start = month.replace(day=1)
    if period_start.month == 12:
        period_end = period_start.replace(year=period_start.year + 1, month=1, day=1) - timedelta(days=1)
    else:
        period_end = period_start.replace(month=period_start.month + 1, day=1) - timedelta(days=1)
    return period_start, period_end


def resolve_report_range(preset: str, today: Optional[date] = None) -> Tuple[date, date]:
    """
    Turn a report range preset into start/end dates.

    Supports:
    - 'current': the current month
    - 'last': the previous month
    - 'last3': start of the month three months ago through end of the current month

    Raises:
        ValidationError: If the preset is unknown
    """
    today = today or date.today()
    current_start, current_end = get_month_period(today)
    if preset == "current":
        return current_start, current_end
    if preset == "last":
        return get_month_period(current_start - timedelta(days=1))
    if preset == "last3":
        start = current_start
        for _ in range(3):
            start = get_month_period(start - timedelta(days=1))[0]
        return start, current_end
    raise ValidationError(
        f"Invalid report range: {preset}. Use one of: {', '.join(REPORT_RANGES)}",
        details={"range": preset}
    )


class AnalyticsEngine:
    """
    Aggregation engine over the transaction ledger.

    Provides summary and report functions that are UI-agnostic and can be
    used from the CLI, the service facade or tests.
    """

    def __init__(self, db_manager: DatabaseManager, recent_limit: int = 5):
        """
        Initialize the analytics engine.

        Args:
            db_manager: Database manager instance
            recent_limit: Default number of rows for ``get_recent_transactions``
        """
        self.db_manager = db_manager
        self.recent_limit = recent_limit
        logger.info("Analytics engine initialized")

    def get_summary(self) -> Dict[str, Decimal]:
        """
        Get total income, total expense and balance using SQL aggregations.

        Returns:
            Dictionary with:
            - total_income: Sum of income amounts
            - total_expense: Sum of expense amounts
            - balance: total_income - total_expense

        Example:
            >>> summary = engine.get_summary()
            >>> print(f"Balance: ${summary['balance']:.2f}")
            Balance: $60.00
        """
        with self.db_manager.session_scope() as session:
            result = session.query(
                func.sum(
                    case((Transaction.type == TransactionType.INCOME, Transaction.amount), else_=0)
                ).label('total_income'),
                func.sum(
                    case((Transaction.type == TransactionType.EXPENSE, Transaction.amount), else_=0)
                ).label('total_expense')
            ).one()

        # SUM returns NULL when the ledger is empty
        total_income = quantize_money(result.total_income) if result.total_income is not None else ZERO
        total_expense = quantize_money(result.total_expense) if result.total_expense is not None else ZERO

        return {
            'total_income': total_income,
            'total_expense': total_expense,
            'balance': total_income - total_expense
        }

    def get_recent_transactions(self, limit: Optional[int] = None) -> List[Transaction]:
        """Return the most recent transactions (date, then insertion order)."""
        limit = self.recent_limit if limit is None else limit
        with self.db_manager.session_scope() as session:
            return session.query(Transaction).order_by(
                Transaction.date.desc(), Transaction.id.desc()
            ).limit(limit).all()

    def get_monthly_report(
        self,
        start_date,
        end_date,
        categories: Optional[Iterable[str]] = None
    ) -> MonthlyReport:
        """
        Get expense totals per category for an inclusive date range.

        Args:
            start_date: First day to include
            end_date: Last day to include
            categories: Optional category names to restrict to (case-insensitive);
                "Uncategorized" selects expenses without a category

        Returns:
            MonthlyReport with total and per-category amount, percentage and count

        Raises:
            ValidationError: If dates are invalid or start_date > end_date
        """
        start = parse_date(start_date)
        end = parse_date(end_date)
        if start > end:
            raise ValidationError(
                "Start date must be before or equal to end date",
                details={"start_date": start, "end_date": end}
            )

        keys = {name.strip().lower() for name in (categories or []) if name and name.strip()}

        with self.db_manager.session_scope() as session:
            query = session.query(
                func.coalesce(Category.id, 0).label('category_key'),
                func.coalesce(Category.name, UNCATEGORIZED).label('category'),
                Transaction.amount,
                Transaction.id
            ).outerjoin(
                Category, Transaction.category_id == Category.id
            ).filter(
                Transaction.type == TransactionType.EXPENSE,
                Transaction.date >= start,
                Transaction.date <= end
            )

            if keys:
                conditions = [Category.name_key.in_(sorted(keys))]
                if UNCATEGORIZED.lower() in keys:
                    conditions.append(Category.id.is_(None))
                query = query.filter(or_(*conditions))

            rows = query.all()

        if not rows:
            return MonthlyReport(start_date=start, end_date=end, total_spending=ZERO)

        df = pd.DataFrame(rows, columns=['category_key', 'category', 'amount', 'id'])
        # Integer cents keep the grouping exact
        df['cents'] = [int(quantize_money(amount) * 100) for amount in df['amount']]
        # One row per category id; expenses without a category share key 0
        grouped = df.groupby(['category_key', 'category']).agg(cents=('cents', 'sum'), txn_count=('id', 'count')).reset_index()
        grouped = grouped.sort_values(
            ['cents', 'category', 'category_key'], ascending=[False, True, True]
        ).reset_index(drop=True)

        total_cents = int(grouped['cents'].sum())
        breakdown = [
            CategorySpending(
                category=str(row.category),
                amount=quantize_money(Decimal(int(row.cents)) / 100),
                percentage=round(int(row.cents) / total_cents * 100, 2) if total_cents > 0 else 0.0,
                count=int(row.txn_count)
            )
            for row in grouped.itertuples(index=False)
        ]

        logger.info(f"Generated spending report {start} to {end} with {len(breakdown)} categories")
        return MonthlyReport(
            start_date=start,
            end_date=end,
            total_spending=quantize_money(Decimal(total_cents) / 100),
            spending_by_category=breakdown
        )
