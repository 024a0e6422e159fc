"""
Unit tests for category management and category suggestion.
"""

from datetime import date

import pytest

from categorization import CategorizationEngine, CategorizationRule
from exceptions import ConflictError, NotFoundError, ValidationError


class TestCategoryManagement:
    """Tests for CategoryManager CRUD."""

    def test_create_and_get_category(self, tracker):
        category = tracker.create_category("  Groceries ")

        assert category.name == "Groceries"
        assert tracker.get_category(category.id).name == "Groceries"
        assert tracker.categories.get_category_by_name("groceries").id == category.id

    def test_create_duplicate_name_is_conflict(self, tracker):
        tracker.create_category("Rent")

        with pytest.raises(ConflictError):
            tracker.create_category("rent")

    def test_create_empty_name_is_validation_error(self, tracker):
        with pytest.raises(ValidationError):
            tracker.create_category("   ")

    def test_list_categories_sorted_by_name(self, tracker):
        for name in ["utilities", "Dining", "car"]:
            tracker.create_category(name)

        assert [c.name for c in tracker.list_categories()] == ["car", "Dining", "utilities"]

    def test_rename_category(self, tracker):
        category = tracker.create_category("Food")

        renamed = tracker.update_category(category.id, "Groceries")

        assert renamed.name == "Groceries"
        assert tracker.categories.get_category_by_name("food") is None

    def test_rename_to_own_name_with_different_case(self, tracker):
        category = tracker.create_category("food")

        assert tracker.update_category(category.id, "Food").name == "Food"

    def test_rename_to_existing_name_is_conflict(self, tracker):
        tracker.create_category("Food")
        other = tracker.create_category("Fun")

        with pytest.raises(ConflictError):
            tracker.update_category(other.id, "FOOD")

    def test_missing_category_raises_not_found(self, tracker):
        with pytest.raises(NotFoundError):
            tracker.get_category(5)
        with pytest.raises(NotFoundError):
            tracker.update_category(5, "Anything")
        with pytest.raises(NotFoundError):
            tracker.delete_category(5)

    def test_delete_category_uncategorizes_transactions(self, tracker):
        category = tracker.create_category("Travel")
        transaction = tracker.create_transaction(
            "Train", 45, date(2024, 5, 1), "expense", category_id=category.id
        )

        tracker.delete_category(category.id)

        assert tracker.get_transaction(transaction.id).category_id is None
        assert tracker.list_categories() == []


class TestCategorySuggestion:
    """Tests for the rules-based suggestion."""

    def test_suggests_existing_category_from_rule(self, tracker):
        tracker.create_category("Groceries")
        tracker.create_category("Dining")

        assert tracker.suggest_category("WALMART SUPERCENTER #123") == "Groceries"
        assert tracker.suggest_category("Starbucks coffee") == "Dining"

    def test_rule_for_missing_category_is_skipped(self, tracker):
        tracker.create_category("Shopping")

        assert tracker.suggest_category("Grocery store run") == "Shopping"

    def test_falls_back_to_category_name_in_description(self, tracker):
        tracker.create_category("Pets")

        assert tracker.suggest_category("Vet bill for pets") == "Pets"

    def test_no_match_returns_none(self, tracker):
        tracker.create_category("Pets")

        assert tracker.suggest_category("Bank fee") is None

    def test_no_categories_returns_none(self, tracker):
        assert tracker.suggest_category("Starbucks") is None


class TestCategorizationEngine:
    """Tests for CategorizationEngine without a database."""

    def test_rules_sorted_by_priority(self):
        engine = CategorizationEngine([
            CategorizationRule("PAY", "Income", priority=1),
            CategorizationRule("PAYROLL", "Salary", priority=5),
        ])

        assert engine.suggest("ACME PAYROLL", ["Income", "Salary"]) == "Salary"

    def test_case_sensitive_rule(self):
        rule = CategorizationRule("ABC", "Letters", case_sensitive=True)

        assert rule.matches("xx ABC xx")
        assert not rule.matches("xx abc xx")

    def test_invalid_regex_falls_back_to_substring(self):
        rule = CategorizationRule("[unclosed", "Broken")

        assert rule.matches("has [UNCLOSED bracket")
        assert not rule.matches("nothing here")

    def test_from_config_builds_rules(self):
        engine = CategorizationEngine.from_config([
            {"pattern": "TRADER JOE", "category": "Groceries", "priority": 20},
            {"pattern": "", "category": "Ignored"},
        ])

        assert len(engine.rules) == 1
        assert engine.suggest("Trader Joe's #55", ["groceries"]) == "groceries"

    def test_from_config_empty_uses_defaults(self):
        engine = CategorizationEngine.from_config([])

        assert len(engine.rules) > 0
