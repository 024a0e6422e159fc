"""
Budgeting module for budget goal management.

This module provides CRUD for budget goals and the spending adjustment used
by the transaction ledger to keep each goal's running total in step with the
expense transactions linked to it.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, List, Optional, Tuple

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from data_standardization import parse_amount, parse_time_period
from database_ops import (
    ZERO,
    BudgetGoal,
    DatabaseManager,
    TimePeriod,
    Transaction,
    TransactionType,
    quantize_money,
    utc_now,
)
from exceptions import ConsistencyError, NotFoundError

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class GoalStatus:
    """
    Progress of a budget goal.

    Attributes:
        goal_id: Budget goal id
        time_period: Goal period
        target: Spending cap
        spent: Current accumulated spending
        remaining: target - spent (negative when over budget)
        percentage_used: spent as a percentage of target
        over_budget: True when spent exceeds target
    """
    goal_id: int
    time_period: TimePeriod
    target: Decimal
    spent: Decimal
    remaining: Decimal
    percentage_used: float
    over_budget: bool


class BudgetGoalManager:
    """
    Manages budget goals.

    Owns the BudgetGoal lifecycle. ``adjust_spending`` is reserved for the
    transaction ledger and always runs inside the ledger's unit of work.
    """

    def __init__(self, db_manager: DatabaseManager):
        """
        Initialize the budget goal manager.

        Args:
            db_manager: DatabaseManager instance
        """
        self.db_manager = db_manager
        self.consistency_issues: List[ConsistencyError] = []
        logger.info("Budget goal manager initialized")

    @staticmethod
    def _load_goal(session: Session, goal_id: int, for_update: bool = False) -> BudgetGoal:
        """
        Load a goal inside an open session.

        Raises:
            NotFoundError: If the goal does not exist
        """
        query = session.query(BudgetGoal).filter(BudgetGoal.id == goal_id)
        if for_update:
            query = query.with_for_update()
        goal = query.first()
        if goal is None:
            raise NotFoundError(f"Budget goal {goal_id} not found", details={"goal_id": goal_id})
        return goal

    def create_goal(self, amount: Any, time_period: Any) -> BudgetGoal:
        """
        Create a budget goal with zero spending.

        Args:
            amount: Target amount (must be > 0)
            time_period: TimePeriod or "weekly"/"monthly"/"yearly"

        Returns:
            Created BudgetGoal

        Raises:
            ValidationError: If amount <= 0 or time period is unknown
        """
        target = parse_amount(amount)
        period = parse_time_period(time_period)

        with self.db_manager.session_scope() as session:
            goal = BudgetGoal(amount=target, time_period=period, current_spending=ZERO)
            session.add(goal)
            session.flush()
            logger.info(f"Created budget goal {goal.id}: {target} ({period.value})")
            return goal

    def get_goal(self, goal_id: int) -> BudgetGoal:
        """
        Get a budget goal by id.

        Raises:
            NotFoundError: If the goal does not exist
        """
        with self.db_manager.session_scope() as session:
            return self._load_goal(session, goal_id)

    def list_goals(self) -> List[BudgetGoal]:
        """Return all budget goals ordered by id."""
        with self.db_manager.session_scope() as session:
            return session.query(BudgetGoal).order_by(BudgetGoal.id).all()

    def update_goal(
        self,
        goal_id: int,
        amount: Optional[Any] = None,
        time_period: Optional[Any] = None
    ) -> BudgetGoal:
        """
        Update a goal's target amount and/or time period.

        Spending is not an updatable field; it only moves with the ledger.

        Args:
            goal_id: Budget goal id
            amount: New target amount (optional)
            time_period: New time period (optional)

        Returns:
            Updated BudgetGoal

        Raises:
            NotFoundError: If the goal does not exist
            ValidationError: If a new value is invalid
        """
        new_amount = parse_amount(amount) if amount is not None else None
        new_period = parse_time_period(time_period) if time_period is not None else None

        with self.db_manager.session_scope() as session:
            goal = self._load_goal(session, goal_id, for_update=True)
            if new_amount is not None:
                goal.amount = new_amount
            if new_period is not None:
                goal.time_period = new_period
            goal.updated_at = utc_now()
            session.flush()
            logger.info(f"Updated budget goal {goal_id}")
            return goal

    def delete_goal(self, goal_id: int) -> None:
        """
        Delete a budget goal.

        Transactions linked to the goal are kept; their goal link is cleared.

        Raises:
            NotFoundError: If the goal does not exist
        """
        with self.db_manager.session_scope() as session:
            goal = self._load_goal(session, goal_id, for_update=True)

            linked = session.query(Transaction).filter(Transaction.budget_goal_id == goal_id).count()
            if linked > 0:
                logger.warning(
                    f"Budget goal {goal_id} has {linked} linked transactions. "
                    "Clearing their goal link."
                )
                session.query(Transaction).filter(
                    Transaction.budget_goal_id == goal_id
                ).update({Transaction.budget_goal_id: None}, synchronize_session=False)

            session.delete(goal)
            logger.info(f"Deleted budget goal {goal_id}")

    def adjust_spending(self, session: Session, goal_id: int, delta: Decimal) -> BudgetGoal:
        """
        Add ``delta`` to a goal's current spending inside the caller's session.

        A result below zero means the running total and the ledger have
        drifted apart. Spending is clamped to zero, and a ConsistencyError is
        logged and appended to ``consistency_issues``; the caller's operation
        still succeeds.

        Args:
            session: Open session of the ledger's unit of work
            goal_id: Budget goal id
            delta: Signed change in spending

        Returns:
            The adjusted BudgetGoal (attached to ``session``)

        Raises:
            NotFoundError: If the goal does not exist
        """
        goal = self._load_goal(session, goal_id, for_update=True)
        previous = quantize_money(goal.current_spending)
        delta = quantize_money(delta)

        # Delta applied to the stored value in SQL, clamped at zero in the same statement
        new_spending = BudgetGoal.current_spending + delta
        session.query(BudgetGoal).filter(BudgetGoal.id == goal_id).update(
            {
                BudgetGoal.current_spending: case((new_spending < 0, ZERO), else_=new_spending),
                BudgetGoal.updated_at: utc_now(),
            },
            synchronize_session=False
        )
        session.refresh(goal)
        updated = quantize_money(goal.current_spending)

        if updated == ZERO and previous + delta < ZERO:
            issue = ConsistencyError(
                "Budget goal spending would become negative; clamped to zero",
                details={"goal_id": goal_id, "current_spending": previous, "delta": delta}
            )
            logger.error(str(issue))
            self.consistency_issues.append(issue)

        logger.debug(f"Adjusted budget goal {goal_id} spending {previous} -> {updated}")
        return goal

    def get_goal_status(self, goal_id: int) -> GoalStatus:
        """
        Get progress information for a goal.

        Raises:
            NotFoundError: If the goal does not exist
        """
        goal = self.get_goal(goal_id)
        target = quantize_money(goal.amount)
        spent = quantize_money(goal.current_spending)
        percentage = float(spent / target * 100) if target > 0 else 0.0
        return GoalStatus(
            goal_id=goal.id,
            time_period=goal.time_period,
            target=target,
            spent=spent,
            remaining=target - spent,
            percentage_used=round(percentage, 2),
            over_budget=spent > target
        )

    @staticmethod
    def _ledger_spending_by_goal(session: Session) -> dict:
        """Sum linked expense amounts per goal id straight from the ledger."""
        rows = session.query(
            Transaction.budget_goal_id,
            func.sum(
                case((Transaction.type == TransactionType.EXPENSE, Transaction.amount), else_=0)
            )
        ).filter(
            Transaction.budget_goal_id.isnot(None)
        ).group_by(Transaction.budget_goal_id).all()
        return {goal_id: quantize_money(total or ZERO) for goal_id, total in rows}

    def find_inconsistencies(self) -> List[Tuple[int, Decimal, Decimal]]:
        """
        Compare every goal's stored spending against the ledger.

        Returns:
            List of (goal_id, stored_spending, ledger_spending) for goals that differ
        """
        with self.db_manager.session_scope() as session:
            expected = self._ledger_spending_by_goal(session)
            mismatches = []
            for goal in session.query(BudgetGoal).order_by(BudgetGoal.id).all():
                stored = quantize_money(goal.current_spending)
                ledger = expected.get(goal.id, ZERO)
                if stored != ledger:
                    mismatches.append((goal.id, stored, ledger))
            if mismatches:
                logger.warning(f"Found {len(mismatches)} budget goals out of step with the ledger")
            return mismatches

    def recalculate_spending(self, goal_id: int) -> Decimal:
        """
        Recompute a goal's spending from the ledger and store it.

        Args:
            goal_id: Budget goal id

        Returns:
            The recalculated spending

        Raises:
            NotFoundError: If the goal does not exist
        """
        with self.db_manager.session_scope() as session:
            goal = self._load_goal(session, goal_id, for_update=True)
            spending = self._ledger_spending_by_goal(session).get(goal_id, ZERO)
            if quantize_money(goal.current_spending) != spending:
                logger.warning(
                    f"Recalculated budget goal {goal_id} spending: "
                    f"{goal.current_spending} -> {spending}"
                )
            goal.current_spending = spending
            goal.updated_at = utc_now()
            return spending
