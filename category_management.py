"""
Category management module.

Provides CRUD operations for the categories transactions are labelled with.
Category names are unique regardless of case.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from categorization import CategorizationEngine
from data_standardization import normalize_category_name
from database_ops import Category, DatabaseManager, Transaction
from exceptions import ConflictError, NotFoundError

# Configure logging
logger = logging.getLogger(__name__)


class CategoryManager:
    """
    Manages transaction categories.
    """

    def __init__(self, db_manager: DatabaseManager, engine: Optional[CategorizationEngine] = None):
        """
        Initialize the category manager.

        Args:
            db_manager: DatabaseManager instance
            engine: Classifier used by ``suggest_category`` (default rules when omitted)
        """
        self.db_manager = db_manager
        self.engine = engine or CategorizationEngine()
        logger.info("Category manager initialized")

    @staticmethod
    def _load_category(session: Session, category_id: int) -> Category:
        category = session.get(Category, category_id)
        if category is None:
            raise NotFoundError(f"Category {category_id} not found", details={"category_id": category_id})
        return category

    @staticmethod
    def _ensure_name_available(session: Session, name: str, exclude_id: Optional[int] = None) -> None:
        existing = session.query(Category).filter(Category.name_key == name.lower()).first()
        if existing is not None and existing.id != exclude_id:
            raise ConflictError(f"Category with name '{name}' already exists", details={"name": name})

    def create_category(self, name: str) -> Category:
        """
        Create a new category.

        Raises:
            ValidationError: If the name is empty
            ConflictError: If the name already exists
        """
        clean_name = normalize_category_name(name)
        with self.db_manager.session_scope() as session:
            self._ensure_name_available(session, clean_name)
            category = Category(name=clean_name, name_key=clean_name.lower())
            session.add(category)
            session.flush()
            logger.info(f"Created category {category.id}: {clean_name}")
            return category

    def get_category(self, category_id: int) -> Category:
        """Get a category by id, raising NotFoundError when missing."""
        with self.db_manager.session_scope() as session:
            return self._load_category(session, category_id)

    def get_category_by_name(self, name: str) -> Optional[Category]:
        """Get a category by name (case-insensitive), or None."""
        key = (name or "").strip().lower()
        if not key:
            return None
        with self.db_manager.session_scope() as session:
            return session.query(Category).filter(Category.name_key == key).first()

    def list_categories(self) -> List[Category]:
        """Return all categories ordered by name."""
        with self.db_manager.session_scope() as session:
            return session.query(Category).order_by(Category.name_key).all()

    def update_category(self, category_id: int, name: str) -> Category:
        """
        Rename a category.

        Raises:
            NotFoundError: If the category does not exist
            ValidationError: If the name is empty
            ConflictError: If another category already uses the name
        """
        clean_name = normalize_category_name(name)
        with self.db_manager.session_scope() as session:
            category = self._load_category(session, category_id)
            self._ensure_name_available(session, clean_name, exclude_id=category_id)
            category.name = clean_name
            category.name_key = clean_name.lower()
            session.flush()
            logger.info(f"Renamed category {category_id} to {clean_name}")
            return category

    def delete_category(self, category_id: int) -> None:
        """
        Delete a category.

        Transactions labelled with it are kept and become uncategorized.

        Raises:
            NotFoundError: If the category does not exist
        """
        with self.db_manager.session_scope() as session:
            category = self._load_category(session, category_id)
            cleared = session.query(Transaction).filter(
                Transaction.category_id == category_id
            ).update({Transaction.category_id: None}, synchronize_session=False)
            if cleared:
                logger.warning(f"Category {category_id} removed from {cleared} transactions")
            session.delete(category)
            logger.info(f"Deleted category {category_id}")

    def suggest_category(self, description: str) -> Optional[str]:
        """
        Suggest an existing category name for a transaction description.

        Returns:
            Category name, or None when nothing matches
        """
        names = [category.name for category in self.list_categories()]
        suggestion = self.engine.suggest(description, names)
        logger.info(f"Suggested category for '{description}': {suggestion}")
        return suggestion
