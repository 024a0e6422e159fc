import pytest

from database_ops import DatabaseManager
from finance_service import FinanceTracker


@pytest.fixture
def db_manager(tmp_path):
    """Provide a DatabaseManager backed by a temporary SQLite file."""
    manager = DatabaseManager(f"sqlite:///{(tmp_path / 'budget.db').as_posix()}")
    manager.create_tables()
    try:
        yield manager
    finally:
        manager.close()


@pytest.fixture
def tracker(db_manager):
    """Return a FinanceTracker wired to the temporary database."""
    return FinanceTracker(db_manager)
