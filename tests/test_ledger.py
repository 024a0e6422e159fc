"""
Unit tests for the transaction ledger.

Covers amount/type normalization, goal spending propagation on create,
update and delete, rollback of failed mutations and listing order.
"""

import threading
import time
from datetime import date, datetime
from decimal import Decimal

import pytest

from budgeting import BudgetGoalManager
from database_ops import TransactionType
from exceptions import DatabaseError, NotFoundError, ValidationError
from ledger import goal_deltas


def _spending(tracker, goal_id):
    return tracker.get_budget_goal(goal_id).current_spending


@pytest.fixture
def goal(tracker):
    return tracker.create_budget_goal(500, "monthly")


@pytest.fixture
def other_goal(tracker):
    return tracker.create_budget_goal(200, "weekly")


class TestGoalDeltas:
    """Tests for the reverse-then-apply delta computation."""

    def test_same_goal_gets_single_net_delta(self):
        assert goal_deltas(1, Decimal("50"), 1, Decimal("80")) == {1: Decimal("30")}

    def test_unchanged_contribution_produces_no_delta(self):
        assert goal_deltas(1, Decimal("50"), 1, Decimal("50")) == {}

    def test_goal_change_produces_two_deltas(self):
        assert goal_deltas(1, Decimal("50"), 2, Decimal("50")) == {1: Decimal("-50"), 2: Decimal("50")}

    def test_no_goals_produces_no_delta(self):
        assert goal_deltas(None, Decimal("0"), None, Decimal("0")) == {}

    def test_zero_contribution_is_ignored(self):
        assert goal_deltas(3, Decimal("0"), None, Decimal("0")) == {}


class TestCreateTransaction:
    """Tests for recording transactions."""

    def test_expense_linked_to_goal_increments_spending(self, tracker, goal):
        assert _spending(tracker, goal.id) == 0

        tracker.create_transaction("Groceries", 50, date(2024, 5, 3), "expense", budget_goal_id=goal.id)

        assert _spending(tracker, goal.id) == Decimal("50.00")

    def test_returns_persisted_transaction_with_id(self, tracker):
        transaction = tracker.create_transaction("  Salary  ", "1200.50", "2024-05-01", "Income")

        assert transaction.id is not None
        assert transaction.description == "Salary"
        assert transaction.amount == Decimal("1200.50")
        assert transaction.type == TransactionType.INCOME
        assert transaction.date == date(2024, 5, 1)
        assert tracker.get_transaction(transaction.id).description == "Salary"

    def test_expense_amount_stored_as_magnitude_with_negative_signed_amount(self, tracker):
        transaction = tracker.create_transaction("Rent", 900, date(2024, 5, 1), TransactionType.EXPENSE)

        assert transaction.amount == Decimal("900.00")
        assert transaction.signed_amount == Decimal("-900.00")

    def test_income_linked_to_goal_does_not_count(self, tracker, goal):
        tracker.create_transaction("Refund", 30, date(2024, 5, 3), "income", budget_goal_id=goal.id)

        assert _spending(tracker, goal.id) == 0

    def test_datetime_input_uses_date_part(self, tracker):
        transaction = tracker.create_transaction("Lunch", 12, datetime(2024, 5, 3, 13, 45), "expense")
        assert transaction.date == date(2024, 5, 3)

    @pytest.mark.parametrize("amount", [0, -5, "0.00", "abc", None, True, float("nan")])
    def test_invalid_amount_raises_validation_error(self, tracker, amount):
        with pytest.raises(ValidationError):
            tracker.create_transaction("Coffee", amount, date(2024, 5, 3), "expense")

        assert tracker.list_transactions() == []

    def test_empty_description_raises_validation_error(self, tracker):
        with pytest.raises(ValidationError):
            tracker.create_transaction("   ", 10, date(2024, 5, 3), "expense")

    def test_invalid_date_raises_validation_error(self, tracker):
        with pytest.raises(ValidationError):
            tracker.create_transaction("Coffee", 10, "2024-02-30", "expense")

    def test_invalid_type_raises_validation_error(self, tracker):
        with pytest.raises(ValidationError):
            tracker.create_transaction("Coffee", 10, date(2024, 5, 3), "transfer")

    def test_unknown_goal_raises_validation_error(self, tracker):
        with pytest.raises(ValidationError):
            tracker.create_transaction("Coffee", 10, date(2024, 5, 3), "expense", budget_goal_id=999)

        assert tracker.list_transactions() == []

    def test_unknown_category_raises_validation_error(self, tracker):
        with pytest.raises(ValidationError):
            tracker.create_transaction("Coffee", 10, date(2024, 5, 3), "expense", category_id=42)


class TestUpdateTransaction:
    """Tests for the reverse-then-apply update path."""

    def test_changing_linked_goal_moves_contribution(self, tracker, goal, other_goal):
        transaction = tracker.create_transaction(
            "Shoes", 50, date(2024, 5, 3), "expense", budget_goal_id=goal.id
        )

        tracker.update_transaction(transaction.id, budget_goal_id=other_goal.id)

        assert _spending(tracker, goal.id) == 0
        assert _spending(tracker, other_goal.id) == Decimal("50.00")

    def test_changing_type_to_income_removes_contribution(self, tracker, goal):
        tracker.create_transaction("Books", 20, date(2024, 5, 2), "expense", budget_goal_id=goal.id)
        transaction = tracker.create_transaction(
            "Dinner", 30, date(2024, 5, 3), "expense", budget_goal_id=goal.id
        )
        assert _spending(tracker, goal.id) == Decimal("50.00")

        updated = tracker.update_transaction(transaction.id, type="income")

        assert _spending(tracker, goal.id) == Decimal("20.00")
        assert updated.type == TransactionType.INCOME
        assert updated.goal_contribution == 0

    def test_changing_type_to_expense_adds_contribution(self, tracker, goal):
        transaction = tracker.create_transaction(
            "Gift", 40, date(2024, 5, 3), "income", budget_goal_id=goal.id
        )

        tracker.update_transaction(transaction.id, type="expense")

        assert _spending(tracker, goal.id) == Decimal("40.00")

    def test_changing_amount_applies_net_delta(self, tracker, goal):
        transaction = tracker.create_transaction(
            "Gym", 50, date(2024, 5, 3), "expense", budget_goal_id=goal.id
        )

        tracker.update_transaction(transaction.id, amount="35.25")

        assert _spending(tracker, goal.id) == Decimal("35.25")

    def test_clearing_goal_link_reverses_contribution(self, tracker, goal):
        transaction = tracker.create_transaction(
            "Taxi", 18, date(2024, 5, 3), "expense", budget_goal_id=goal.id
        )

        updated = tracker.update_transaction(transaction.id, budget_goal_id=None)

        assert updated.budget_goal_id is None
        assert _spending(tracker, goal.id) == 0

    def test_goal_type_and_amount_change_together(self, tracker, goal, other_goal):
        transaction = tracker.create_transaction(
            "Bonus", 100, date(2024, 5, 3), "income", budget_goal_id=goal.id
        )

        tracker.update_transaction(transaction.id, type="expense", amount=70, budget_goal_id=other_goal.id)

        assert _spending(tracker, goal.id) == 0
        assert _spending(tracker, other_goal.id) == Decimal("70.00")

    def test_description_only_update_leaves_spending(self, tracker, goal):
        transaction = tracker.create_transaction(
            "Typo", 25, date(2024, 5, 3), "expense", budget_goal_id=goal.id
        )

        updated = tracker.update_transaction(transaction.id, description="Fixed")

        assert updated.description == "Fixed"
        assert _spending(tracker, goal.id) == Decimal("25.00")

    def test_unknown_id_raises_not_found(self, tracker):
        with pytest.raises(NotFoundError):
            tracker.update_transaction(404, description="Nope")

    def test_unknown_field_raises_validation_error(self, tracker, goal):
        transaction = tracker.create_transaction("Tea", 3, date(2024, 5, 3), "expense")
        with pytest.raises(ValidationError):
            tracker.update_transaction(transaction.id, current_spending=0)

    def test_invalid_amount_leaves_transaction_and_goal_untouched(self, tracker, goal):
        transaction = tracker.create_transaction(
            "Tea", 3, date(2024, 5, 3), "expense", budget_goal_id=goal.id
        )

        with pytest.raises(ValidationError):
            tracker.update_transaction(transaction.id, amount=0)

        assert tracker.get_transaction(transaction.id).amount == Decimal("3.00")
        assert _spending(tracker, goal.id) == Decimal("3.00")

    def test_unknown_new_goal_rolls_back(self, tracker, goal):
        transaction = tracker.create_transaction(
            "Tea", 3, date(2024, 5, 3), "expense", budget_goal_id=goal.id
        )

        with pytest.raises(ValidationError):
            tracker.update_transaction(transaction.id, budget_goal_id=999)

        assert tracker.get_transaction(transaction.id).budget_goal_id == goal.id
        assert _spending(tracker, goal.id) == Decimal("3.00")


class TestDeleteTransaction:
    """Tests for deleting transactions."""

    def test_delete_reverses_contribution(self, tracker, goal):
        transaction = tracker.create_transaction(
            "Cinema", 20, date(2024, 5, 3), "expense", budget_goal_id=goal.id
        )
        assert _spending(tracker, goal.id) == Decimal("20.00")

        tracker.delete_transaction(transaction.id)

        assert _spending(tracker, goal.id) == 0
        with pytest.raises(NotFoundError):
            tracker.get_transaction(transaction.id)

    def test_second_delete_raises_not_found_without_reversing_again(self, tracker, goal):
        tracker.create_transaction("Kept", 15, date(2024, 5, 1), "expense", budget_goal_id=goal.id)
        transaction = tracker.create_transaction(
            "Cinema", 20, date(2024, 5, 3), "expense", budget_goal_id=goal.id
        )

        tracker.delete_transaction(transaction.id)
        with pytest.raises(NotFoundError):
            tracker.delete_transaction(transaction.id)

        assert _spending(tracker, goal.id) == Decimal("15.00")
        assert tracker.goals.consistency_issues == []


class TestAtomicity:
    """A failing goal adjustment must leave the ledger untouched."""

    def test_failed_adjustment_rolls_back_create(self, tracker, goal, monkeypatch):
        def fail(session, goal_id, delta):
            raise RuntimeError("storage went away")

        monkeypatch.setattr(tracker.goals, "adjust_spending", fail)

        with pytest.raises(RuntimeError):
            tracker.create_transaction("Lost", 10, date(2024, 5, 3), "expense", budget_goal_id=goal.id)

        assert tracker.list_transactions() == []
        assert _spending(tracker, goal.id) == 0

    def test_failed_second_adjustment_rolls_back_first(self, tracker, goal, other_goal, monkeypatch):
        transaction = tracker.create_transaction(
            "Move me", 50, date(2024, 5, 3), "expense", budget_goal_id=goal.id
        )
        original_adjust = tracker.goals.adjust_spending

        def fail_on_second_goal(session, goal_id, delta):
            if goal_id == other_goal.id:
                raise DatabaseError("lock timeout")
            return original_adjust(session, goal_id, delta)

        monkeypatch.setattr(tracker.goals, "adjust_spending", fail_on_second_goal)

        with pytest.raises(DatabaseError):
            tracker.update_transaction(transaction.id, budget_goal_id=other_goal.id)

        assert tracker.get_transaction(transaction.id).budget_goal_id == goal.id
        assert _spending(tracker, goal.id) == Decimal("50.00")
        assert _spending(tracker, other_goal.id) == 0


def _run_concurrently(*calls):
    """Run each call in its own thread and return the exceptions raised."""
    errors = []

    def worker(call):
        try:
            call()
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(call,)) for call in calls]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return errors


class TestConcurrentMutations:
    """Writers touching the same goal must not lose spending updates."""

    @pytest.fixture(autouse=True)
    def slow_goal_load(self, monkeypatch):
        load_goal = BudgetGoalManager._load_goal

        def slow_load(session, goal_id, for_update=False):
            goal = load_goal(session, goal_id, for_update)
            time.sleep(0.2)
            return goal

        monkeypatch.setattr(BudgetGoalManager, "_load_goal", staticmethod(slow_load))

    def test_concurrent_deletes_reverse_both_contributions(self, tracker, goal):
        first = tracker.create_transaction("First", 20, date(2024, 5, 3), "expense", budget_goal_id=goal.id)
        second = tracker.create_transaction("Second", 30, date(2024, 5, 4), "expense", budget_goal_id=goal.id)
        assert _spending(tracker, goal.id) == Decimal("50.00")

        errors = _run_concurrently(
            lambda: tracker.delete_transaction(first.id),
            lambda: tracker.delete_transaction(second.id),
        )

        assert errors == []
        assert tracker.list_transactions() == []
        assert _spending(tracker, goal.id) == Decimal("0.00")
        assert tracker.goals.find_inconsistencies() == []

    def test_concurrent_creates_all_count(self, tracker, goal):
        errors = _run_concurrently(*[
            lambda n=n: tracker.create_transaction(
                f"Parallel {n}", 10, date(2024, 5, 3), "expense", budget_goal_id=goal.id
            )
            for n in range(4)
        ])

        assert errors == []
        assert len(tracker.list_transactions()) == 4
        assert _spending(tracker, goal.id) == Decimal("40.00")
        assert tracker.goals.find_inconsistencies() == []

    def test_concurrent_update_and_delete(self, tracker, goal):
        kept = tracker.create_transaction("Kept", 20, date(2024, 5, 3), "expense", budget_goal_id=goal.id)
        dropped = tracker.create_transaction("Dropped", 30, date(2024, 5, 4), "expense", budget_goal_id=goal.id)

        errors = _run_concurrently(
            lambda: tracker.update_transaction(kept.id, amount=25),
            lambda: tracker.delete_transaction(dropped.id),
        )

        assert errors == []
        assert _spending(tracker, goal.id) == Decimal("25.00")
        assert tracker.goals.find_inconsistencies() == []


class TestListTransactions:
    """Tests for listing order and filters."""

    def test_ordered_by_date_desc_then_insertion_desc(self, tracker):
        first = tracker.create_transaction("A", 1, date(2024, 5, 1), "expense")
        second = tracker.create_transaction("B", 2, date(2024, 5, 3), "expense")
        third = tracker.create_transaction("C", 3, date(2024, 5, 1), "income")

        ids = [t.id for t in tracker.list_transactions()]

        assert ids == [second.id, third.id, first.id]

    def test_filter_by_category_and_limit(self, tracker):
        food = tracker.create_category("Food")
        tracker.create_transaction("A", 1, date(2024, 5, 1), "expense", category_id=food.id)
        tracker.create_transaction("B", 2, date(2024, 5, 2), "expense")
        latest = tracker.create_transaction("C", 3, date(2024, 5, 3), "expense", category_id=food.id)

        filtered = tracker.list_transactions(category_id=food.id)
        limited = tracker.list_transactions(limit=1)

        assert [t.description for t in filtered] == ["C", "A"]
        assert [t.id for t in limited] == [latest.id]
