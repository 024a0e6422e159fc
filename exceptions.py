"""
Unified exception hierarchy for the budget tracker.

This module defines the exception hierarchy with TrackerError as the base
exception, allowing callers (CLI, services, tests) to handle every error
raised by the ledger, goal and category stores in one place.
"""

from typing import Optional


class TrackerError(Exception):
    """
    Base exception class for all budget tracker errors.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary with additional error context
        original_error: Optional original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        original_error: Optional[Exception] = None
    ) -> None:
        """
        Initialize TrackerError.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
            original_error: Optional original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        msg = self.message
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            msg = f"{msg} ({detail_str})"
        return msg


class ConfigError(TrackerError):
    """Raised when configuration loading or validation fails."""
    pass


class DatabaseError(TrackerError):
    """Raised when the storage layer fails and the unit of work was rolled back."""
    pass


class ValidationError(TrackerError):
    """Raised for malformed or out-of-range input. Never retried."""
    pass


class NotFoundError(TrackerError):
    """Raised when a referenced transaction, goal or category id does not exist."""
    pass


class ConflictError(TrackerError):
    """Raised when a category name is already taken."""
    pass


class ConsistencyError(TrackerError):
    """
    Internal error: a goal adjustment would have made spending negative.

    Never raised to ledger callers. The adjustment is clamped at zero and
    the error is logged and recorded on the goal manager for investigation.
    """
    pass
