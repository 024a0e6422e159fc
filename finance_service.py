"""
Service facade for the budget tracker.

``FinanceTracker`` is the single entry point the CLI (or any other outer
layer) calls into. It wires the ledger, goal, category and analytics
components to one injected DatabaseManager and holds no global state.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from analytics import AnalyticsEngine, MonthlyReport
from budgeting import BudgetGoalManager, GoalStatus
from categorization import CategorizationEngine
from category_management import CategoryManager
from database_ops import BudgetGoal, Category, DatabaseManager, Transaction
from ledger import TransactionLedger

logger = logging.getLogger(__name__)


class FinanceTracker:
    """
    Transaction, budget goal, category and report operations over one database.
    """

    def __init__(self, db_manager: DatabaseManager, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the tracker.

        Args:
            db_manager: DatabaseManager instance (tables must exist)
            config: Optional configuration dictionary (see config_manager.DEFAULT_CONFIG)
        """
        config = config or {}
        self.db_manager = db_manager
        self.goals = BudgetGoalManager(db_manager)
        self.ledger = TransactionLedger(db_manager, self.goals)
        self.categories = CategoryManager(
            db_manager,
            CategorizationEngine.from_config((config.get("categorization") or {}).get("rules"))
        )
        self.analytics = AnalyticsEngine(
            db_manager,
            recent_limit=(config.get("reports") or {}).get("recent_transactions_limit", 5)
        )

    # Transactions

    def create_transaction(
        self,
        description: Any,
        amount: Any,
        date: Any,
        type: Any,
        category_id: Optional[Any] = None,
        budget_goal_id: Optional[Any] = None
    ) -> Transaction:
        return self.ledger.create_transaction(
            description=description,
            amount=amount,
            date=date,
            type=type,
            category_id=category_id,
            budget_goal_id=budget_goal_id
        )

    def get_transaction(self, transaction_id: int) -> Transaction:
        return self.ledger.get_transaction(transaction_id)

    def update_transaction(self, transaction_id: int, **fields: Any) -> Transaction:
        return self.ledger.update_transaction(transaction_id, **fields)

    def delete_transaction(self, transaction_id: int) -> None:
        self.ledger.delete_transaction(transaction_id)

    def list_transactions(self, category_id: Optional[int] = None, limit: Optional[int] = None) -> List[Transaction]:
        return self.ledger.list_transactions(category_id=category_id, limit=limit)

    # Budget goals

    def create_budget_goal(self, amount: Any, time_period: Any) -> BudgetGoal:
        return self.goals.create_goal(amount, time_period)

    def get_budget_goal(self, goal_id: int) -> BudgetGoal:
        return self.goals.get_goal(goal_id)

    def update_budget_goal(self, goal_id: int, amount: Optional[Any] = None, time_period: Optional[Any] = None) -> BudgetGoal:
        return self.goals.update_goal(goal_id, amount=amount, time_period=time_period)

    def delete_budget_goal(self, goal_id: int) -> None:
        self.goals.delete_goal(goal_id)

    def list_budget_goals(self) -> List[BudgetGoal]:
        return self.goals.list_goals()

    def get_budget_goal_status(self, goal_id: int) -> GoalStatus:
        return self.goals.get_goal_status(goal_id)

    def reconcile_budget_goals(self) -> List[int]:
        """
        Recalculate every goal whose stored spending differs from the ledger.

        Returns:
            Ids of the goals that were repaired
        """
        repaired = []
        for goal_id, stored, expected in self.goals.find_inconsistencies():
            self.goals.recalculate_spending(goal_id)
            logger.warning(f"Reconciled budget goal {goal_id}: {stored} -> {expected}")
            repaired.append(goal_id)
        return repaired

    # Categories

    def create_category(self, name: str) -> Category:
        return self.categories.create_category(name)

    def get_category(self, category_id: int) -> Category:
        return self.categories.get_category(category_id)

    def update_category(self, category_id: int, name: str) -> Category:
        return self.categories.update_category(category_id, name)

    def delete_category(self, category_id: int) -> None:
        self.categories.delete_category(category_id)

    def list_categories(self) -> List[Category]:
        return self.categories.list_categories()

    def suggest_category(self, description: str) -> Optional[str]:
        return self.categories.suggest_category(description)

    # Reports

    def get_summary(self) -> Dict[str, Decimal]:
        return self.analytics.get_summary()

    def get_recent_transactions(self, limit: Optional[int] = None) -> List[Transaction]:
        return self.analytics.get_recent_transactions(limit)

    def get_monthly_report(
        self,
        start_date: date,
        end_date: date,
        categories: Optional[Iterable[str]] = None
    ) -> MonthlyReport:
        return self.analytics.get_monthly_report(start_date, end_date, categories)
