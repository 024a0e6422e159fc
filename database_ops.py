"""
Database operations module for ledger, budget goal and category storage.

This module handles database connections, schema creation and the unit of
work used by every ledger mutation, using SQLAlchemy ORM. Supports SQLite by
default with easy migration to other databases.
"""

import enum
import logging
from contextlib import contextmanager
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterator

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    create_engine,
    event,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from exceptions import DatabaseError

# Configure logging
logger = logging.getLogger(__name__)

MONEY_QUANTUM = Decimal("0.01")
ZERO = Decimal("0.00")


def utc_now() -> datetime:
    """
    Get current UTC datetime with timezone awareness.

    Returns:
        Current datetime in UTC with timezone info
    """
    return datetime.now(UTC)


def quantize_money(value: Decimal) -> Decimal:
    """Round a Decimal to cents."""
    return Decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


# Base class for declarative models
Base = declarative_base()


class TransactionType(enum.Enum):
    """Enumeration of transaction types."""
    INCOME = "income"
    EXPENSE = "expense"


class TimePeriod(enum.Enum):
    """Enumeration of budget goal periods."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Category(Base):
    """
    SQLAlchemy model representing a transaction category.

    Attributes:
        id: Auto-incrementing primary key
        name: Category name (unique, case-insensitive)
        name_key: Lowercased name used for the uniqueness constraint
        created_at: Timestamp when category was created
    """

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    name_key = Column(String(100), nullable=False, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self) -> str:
        """String representation of the category."""
        return f"<Category(id={self.id}, name='{self.name}')>"


class BudgetGoal(Base):
    """
    SQLAlchemy model representing a budget goal.

    ``current_spending`` is the running total of every expense transaction
    linked to the goal. It is only written through
    ``BudgetGoalManager.adjust_spending`` and the reconciliation path.

    Attributes:
        id: Auto-incrementing primary key
        amount: Target spending cap for the period
        time_period: Weekly, monthly or yearly
        current_spending: Accumulated linked expense total
        created_at: Timestamp when goal was created
        updated_at: Timestamp when goal was last updated
    """

    __tablename__ = "budget_goals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    amount = Column(Numeric(12, 2), nullable=False)
    time_period = Column(Enum(TimePeriod), nullable=False, default=TimePeriod.MONTHLY)
    current_spending = Column(Numeric(12, 2), nullable=False, default=ZERO)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_budget_goals_amount_positive"),
        CheckConstraint("current_spending >= 0", name="ck_budget_goals_spending_non_negative"),
    )

    def __repr__(self) -> str:
        """String representation of the budget goal."""
        return (
            f"<BudgetGoal(id={self.id}, amount={self.amount}, "
            f"period={self.time_period.value}, spending={self.current_spending})>"
        )


class Transaction(Base):
    """
    SQLAlchemy model representing a ledger transaction.

    The amount is always stored as a positive magnitude; the sign is derived
    from ``type``. Category and budget goal links are plain id columns.

    Attributes:
        id: Auto-incrementing primary key
        description: Transaction description
        amount: Positive magnitude (2 decimal places)
        date: Calendar date of the transaction
        type: Income or expense
        category_id: Optional category link
        budget_goal_id: Optional budget goal link (counts only for expenses)
        created_at: Timestamp when the record was inserted
    """

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    description = Column(String(500), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    date = Column(Date, nullable=False, index=True)
    type = Column(Enum(TransactionType), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    budget_goal_id = Column(Integer, ForeignKey("budget_goals.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        Index("idx_goal_type", "budget_goal_id", "type"),
        Index("idx_category_date", "category_id", "date"),
    )

    @property
    def signed_amount(self) -> Decimal:
        """Amount with sign applied: positive for income, negative for expense."""
        if self.type == TransactionType.EXPENSE:
            return -self.amount
        return self.amount

    @property
    def goal_contribution(self) -> Decimal:
        """Amount this transaction adds to its linked goal's spending."""
        if self.type == TransactionType.EXPENSE and self.budget_goal_id is not None:
            return self.amount
        return ZERO

    def __repr__(self) -> str:
        """String representation of the transaction."""
        return (
            f"<Transaction(id={self.id}, date={self.date}, type={self.type.value}, "
            f"description='{self.description[:30]}', amount={self.amount})>"
        )


def _configure_sqlite_connection(dbapi_connection, connection_record) -> None:
    """
    Prepare every new SQLite connection.

    Turns on foreign key enforcement and hands transaction control to
    SQLAlchemy; pysqlite would otherwise issue no BEGIN before SELECTs.
    """
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _begin_sqlite_immediate(conn) -> None:
    """Take the write lock when a transaction starts so writers serialize."""
    conn.exec_driver_sql("BEGIN IMMEDIATE")


class DatabaseManager:
    """
    Manages database connections and sessions.

    This class handles database initialization, session management and
    provides ``session_scope`` as the atomic unit of work for mutations.
    """

    def __init__(self, connection_string: str):
        """
        Initialize the database manager.

        Args:
            connection_string: SQLAlchemy connection string (e.g., 'sqlite:///data/budget.db')

        Raises:
            DatabaseError: If the engine cannot be created
        """
        try:
            self.engine = create_engine(connection_string, echo=False)
            if self.engine.dialect.name == "sqlite":
                event.listen(self.engine, "connect", _configure_sqlite_connection)
                event.listen(self.engine, "begin", _begin_sqlite_immediate)
            self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
            logger.info(f"Database manager initialized with connection: {connection_string}")
        except SQLAlchemyError as e:
            logger.error(f"Failed to initialize database: {e}")
            raise DatabaseError(
                "Failed to initialize database",
                details={"connection_string": connection_string},
                original_error=e
            ) from e

    def create_tables(self) -> None:
        """
        Create all database tables if they don't exist.

        Raises:
            DatabaseError: If table creation fails
        """
        try:
            Base.metadata.create_all(self.engine)
            logger.info("Database tables created/verified successfully")
        except SQLAlchemyError as e:
            logger.error(f"Failed to create database tables: {e}")
            raise DatabaseError("Failed to create database tables", original_error=e) from e

    def get_session(self) -> Session:
        """
        Get a new database session.

        Returns:
            SQLAlchemy session object

        Note:
            Caller is responsible for closing the session.
        """
        return self.SessionLocal()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Provide a transactional scope around a series of operations.

        Commits when the block exits normally. Any exception rolls back every
        statement issued in the block; storage errors are re-raised as
        DatabaseError, domain errors propagate unchanged.

        Yields:
            SQLAlchemy session bound to one database transaction
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database transaction rolled back: {e}")
            raise DatabaseError("Database operation failed; changes rolled back", original_error=e) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        """Close the database engine connection."""
        if hasattr(self, 'engine'):
            self.engine.dispose()
            logger.info("Database connection closed")
