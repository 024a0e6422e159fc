"""
Input standardization for ledger, goal and category operations.

Every value coming from a caller (CLI arguments, service facade, tests) is
normalized here before it reaches the database: amounts become positive
cent-rounded Decimals, dates become ``date`` objects and enum-like strings
become TransactionType/TimePeriod members. Failures raise ValidationError.
"""

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from database_ops import TimePeriod, TransactionType, quantize_money
from exceptions import ValidationError

logger = logging.getLogger(__name__)

DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%m/%d/%Y")


def parse_amount(amount_value: Any, field: str = "amount") -> Decimal:
    """
    Parse a strictly positive money amount.

    Args:
        amount_value: int, float, Decimal or numeric string ("$1,250.00" allowed)
        field: Field name used in error details

    Returns:
        Amount as a Decimal rounded to cents

    Raises:
        ValidationError: If the value is missing, not numeric, not finite or <= 0
    """
    if amount_value is None or isinstance(amount_value, bool):
        raise ValidationError(f"{field} is required and must be a number", details={field: amount_value})

    if isinstance(amount_value, Decimal):
        amount = amount_value
    elif isinstance(amount_value, (int, float)):
        amount = Decimal(str(amount_value))
    else:
        amount_str = str(amount_value).strip().replace("$", "").replace(",", "").replace(" ", "")
        try:
            amount = Decimal(amount_str)
        except InvalidOperation as e:
            raise ValidationError(
                f"{field} must be a number",
                details={field: amount_value},
                original_error=e
            ) from e

    if not amount.is_finite():
        raise ValidationError(f"{field} must be finite", details={field: amount_value})

    amount = quantize_money(amount)
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than zero", details={field: amount_value})
    return amount


def parse_date(date_value: Any) -> date:
    """
    Parse a calendar date.

    Args:
        date_value: date, datetime (date part is used) or string in one of DATE_FORMATS

    Returns:
        Parsed date

    Raises:
        ValidationError: If the value cannot be parsed
    """
    if isinstance(date_value, datetime):
        return date_value.date()
    if isinstance(date_value, date):
        return date_value
    if isinstance(date_value, str):
        date_str = date_value.strip()
        for date_format in DATE_FORMATS:
            try:
                return datetime.strptime(date_str, date_format).date()
            except ValueError:
                continue
    raise ValidationError("date must be a valid calendar date (YYYY-MM-DD)", details={"date": date_value})


def parse_description(description: Any) -> str:
    """Strip a description and reject empty values."""
    if description is None or not str(description).strip():
        raise ValidationError("description must not be empty")
    return str(description).strip()


def parse_transaction_type(type_value: Any) -> TransactionType:
    """
    Parse a transaction type.

    Args:
        type_value: TransactionType or case-insensitive "income"/"expense"

    Raises:
        ValidationError: If the value is not a known type
    """
    if isinstance(type_value, TransactionType):
        return type_value
    if isinstance(type_value, str):
        try:
            return TransactionType(type_value.strip().lower())
        except ValueError:
            pass
    raise ValidationError(
        "type must be one of: " + ", ".join(t.value for t in TransactionType),
        details={"type": type_value}
    )


def parse_time_period(period_value: Any) -> TimePeriod:
    """
    Parse a budget goal time period.

    Args:
        period_value: TimePeriod or case-insensitive "weekly"/"monthly"/"yearly"

    Raises:
        ValidationError: If the value is not a known period
    """
    if isinstance(period_value, TimePeriod):
        return period_value
    if isinstance(period_value, str):
        try:
            return TimePeriod(period_value.strip().lower())
        except ValueError:
            pass
    raise ValidationError(
        "time_period must be one of: " + ", ".join(p.value for p in TimePeriod),
        details={"time_period": period_value}
    )


def parse_optional_id(id_value: Any, field: str) -> Optional[int]:
    """
    Parse an optional integer reference id.

    Raises:
        ValidationError: If the value is not a positive integer
    """
    if id_value is None:
        return None
    if isinstance(id_value, bool):
        raise ValidationError(f"{field} must be an integer id", details={field: id_value})
    try:
        parsed = int(id_value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field} must be an integer id", details={field: id_value}, original_error=e) from e
    if parsed <= 0 or (isinstance(id_value, float) and id_value != parsed):
        raise ValidationError(f"{field} must be a positive integer id", details={field: id_value})
    return parsed


def normalize_category_name(name: Any) -> str:
    """Strip a category name and reject empty values."""
    if name is None or not str(name).strip():
        raise ValidationError("Category name must not be empty")
    return str(name).strip()
