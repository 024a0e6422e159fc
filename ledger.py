"""
Transaction ledger module.

The ledger owns the transaction lifecycle. Every create/update/delete runs
as one unit of work together with the matching budget goal spending
adjustment, so a goal's ``current_spending`` always equals the total of the
expense transactions linked to it.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from budgeting import BudgetGoalManager
from data_standardization import (
    parse_amount,
    parse_date,
    parse_description,
    parse_optional_id,
    parse_transaction_type,
)
from database_ops import (
    ZERO,
    BudgetGoal,
    Category,
    DatabaseManager,
    Transaction,
)
from exceptions import NotFoundError, ValidationError

# Configure logging
logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {"description", "amount", "date", "type", "category_id", "budget_goal_id"}
)


def goal_deltas(
    old_goal_id: Optional[int],
    old_contribution: Decimal,
    new_goal_id: Optional[int],
    new_contribution: Decimal
) -> Dict[int, Decimal]:
    """
    Net spending change per goal when a transaction moves from one state to another.

    The old contribution is reversed and the new one applied. A goal that is
    both old and new receives a single net delta; zero deltas are dropped.

    Args:
        old_goal_id: Goal linked before the change (or None)
        old_contribution: Amount previously counted toward ``old_goal_id``
        new_goal_id: Goal linked after the change (or None)
        new_contribution: Amount counted toward ``new_goal_id`` afterwards

    Returns:
        Mapping of goal id to signed delta
    """
    deltas: Dict[int, Decimal] = {}
    if old_goal_id is not None and old_contribution:
        deltas[old_goal_id] = deltas.get(old_goal_id, ZERO) - old_contribution
    if new_goal_id is not None and new_contribution:
        deltas[new_goal_id] = deltas.get(new_goal_id, ZERO) + new_contribution
    return {goal_id: delta for goal_id, delta in deltas.items() if delta != ZERO}


class TransactionLedger:
    """
    Authoritative collection of transactions.

    Applies amount/type normalization and propagates budget goal spending
    deltas through ``BudgetGoalManager.adjust_spending``.
    """

    def __init__(self, db_manager: DatabaseManager, goal_manager: Optional[BudgetGoalManager] = None):
        """
        Initialize the ledger.

        Args:
            db_manager: DatabaseManager instance
            goal_manager: Goal manager used for spending adjustments
                (a new one sharing ``db_manager`` when omitted)
        """
        self.db_manager = db_manager
        self.goal_manager = goal_manager or BudgetGoalManager(db_manager)
        logger.info("Transaction ledger initialized")

    @staticmethod
    def _check_references(
        session: Session,
        category_id: Optional[int],
        budget_goal_id: Optional[int]
    ) -> None:
        """
        Verify that referenced category and goal ids exist.

        Raises:
            ValidationError: If a referenced id is unknown
        """
        if category_id is not None and session.get(Category, category_id) is None:
            raise ValidationError(
                f"Category {category_id} does not exist",
                details={"category_id": category_id}
            )
        if budget_goal_id is not None and session.get(BudgetGoal, budget_goal_id) is None:
            raise ValidationError(
                f"Budget goal {budget_goal_id} does not exist",
                details={"budget_goal_id": budget_goal_id}
            )

    def _apply_goal_deltas(self, session: Session, deltas: Dict[int, Decimal]) -> None:
        """Apply per-goal deltas in id order so concurrent writers lock goals consistently."""
        for goal_id in sorted(deltas):
            self.goal_manager.adjust_spending(session, goal_id, deltas[goal_id])

    @staticmethod
    def _load_transaction(session: Session, transaction_id: int) -> Transaction:
        """
        Load a transaction inside an open session.

        Raises:
            NotFoundError: If the transaction does not exist
        """
        transaction = session.get(Transaction, transaction_id)
        if transaction is None:
            raise NotFoundError(
                f"Transaction {transaction_id} not found",
                details={"transaction_id": transaction_id}
            )
        return transaction

    def create_transaction(
        self,
        description: Any,
        amount: Any,
        date: Any,
        type: Any,
        category_id: Optional[Any] = None,
        budget_goal_id: Optional[Any] = None
    ) -> Transaction:
        """
        Record a new transaction.

        Args:
            description: Non-empty description
            amount: Positive magnitude; the sign follows ``type``
            date: Calendar date (date, datetime or YYYY-MM-DD string)
            type: TransactionType or "income"/"expense"
            category_id: Optional category link
            budget_goal_id: Optional budget goal link (counts only for expenses)

        Returns:
            The persisted Transaction including its id

        Raises:
            ValidationError: On malformed input or unknown category/goal id
        """
        clean_description = parse_description(description)
        magnitude = parse_amount(amount)
        transaction_date = parse_date(date)
        transaction_type = parse_transaction_type(type)
        category_ref = parse_optional_id(category_id, "category_id")
        goal_ref = parse_optional_id(budget_goal_id, "budget_goal_id")

        with self.db_manager.session_scope() as session:
            self._check_references(session, category_ref, goal_ref)

            transaction = Transaction(
                description=clean_description,
                amount=magnitude,
                date=transaction_date,
                type=transaction_type,
                category_id=category_ref,
                budget_goal_id=goal_ref
            )
            session.add(transaction)
            session.flush()

            self._apply_goal_deltas(
                session,
                goal_deltas(None, ZERO, transaction.budget_goal_id, transaction.goal_contribution)
            )

            logger.info(
                f"Created {transaction_type.value} transaction {transaction.id}: "
                f"{magnitude} on {transaction_date}"
            )
            return transaction

    def get_transaction(self, transaction_id: int) -> Transaction:
        """
        Get a transaction by id.

        Raises:
            NotFoundError: If the transaction does not exist
        """
        with self.db_manager.session_scope() as session:
            return self._load_transaction(session, transaction_id)

    def update_transaction(self, transaction_id: int, **fields: Any) -> Transaction:
        """
        Update a transaction and move its goal contribution accordingly.

        Only the given fields change. Passing ``category_id=None`` or
        ``budget_goal_id=None`` clears that link. The previous contribution is
        reversed from its goal and the new one applied to its goal in the
        same unit of work; a change of type and a change of goal go through
        the same path.

        Args:
            transaction_id: Transaction id
            **fields: Any of description, amount, date, type, category_id, budget_goal_id

        Returns:
            The updated Transaction

        Raises:
            NotFoundError: If the transaction does not exist
            ValidationError: On unknown field names or malformed values
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                "Unknown transaction field(s): " + ", ".join(sorted(unknown)),
                details={"fields": sorted(unknown)}
            )

        changes: Dict[str, Any] = {}
        if "description" in fields:
            changes["description"] = parse_description(fields["description"])
        if "amount" in fields:
            changes["amount"] = parse_amount(fields["amount"])
        if "date" in fields:
            changes["date"] = parse_date(fields["date"])
        if "type" in fields:
            changes["type"] = parse_transaction_type(fields["type"])
        if "category_id" in fields:
            changes["category_id"] = parse_optional_id(fields["category_id"], "category_id")
        if "budget_goal_id" in fields:
            changes["budget_goal_id"] = parse_optional_id(fields["budget_goal_id"], "budget_goal_id")

        with self.db_manager.session_scope() as session:
            transaction = self._load_transaction(session, transaction_id)
            self._check_references(session, changes.get("category_id"), changes.get("budget_goal_id"))

            old_goal_id = transaction.budget_goal_id
            old_contribution = transaction.goal_contribution

            for field, value in changes.items():
                setattr(transaction, field, value)

            deltas = goal_deltas(
                old_goal_id,
                old_contribution,
                transaction.budget_goal_id,
                transaction.goal_contribution
            )
            self._apply_goal_deltas(session, deltas)
            session.flush()

            logger.info(
                f"Updated transaction {transaction_id} "
                f"(fields: {', '.join(sorted(changes)) or 'none'}, goal deltas: {deltas or 'none'})"
            )
            return transaction

    def delete_transaction(self, transaction_id: int) -> None:
        """
        Delete a transaction after reversing its goal contribution.

        Raises:
            NotFoundError: If the transaction does not exist (including a second delete)
        """
        with self.db_manager.session_scope() as session:
            transaction = self._load_transaction(session, transaction_id)
            self._apply_goal_deltas(
                session,
                goal_deltas(transaction.budget_goal_id, transaction.goal_contribution, None, ZERO)
            )
            session.delete(transaction)
            logger.info(f"Deleted transaction {transaction_id}")

    def list_transactions(
        self,
        category_id: Optional[int] = None,
        limit: Optional[int] = None
    ) -> List[Transaction]:
        """
        List transactions, newest date first.

        Transactions on the same date are ordered by insertion, most recent first.

        Args:
            category_id: Optional category filter
            limit: Optional maximum number of rows

        Returns:
            List of Transaction objects
        """
        with self.db_manager.session_scope() as session:
            query = session.query(Transaction)
            if category_id is not None:
                query = query.filter(Transaction.category_id == category_id)
            query = query.order_by(Transaction.date.desc(), Transaction.id.desc())
            if limit is not None:
                query = query.limit(limit)
            return query.all()
