"""
Shared validators for mutation entry points.

Each validator returns the cleaned value or raises ValidationError (400),
so the cascade itself never sees a non-positive yield, a negative cost or
an empty name.
"""

import re
from decimal import Decimal
from typing import Any

from shared.config.constants import Limits
from shared.utils.exceptions import ValidationError
from shared.utils.money import ZERO, to_decimal


def sanitize_name(name: str | None) -> str:
    """
    Trim a display name and strip control characters.

    Returns:
        The cleaned name (may be empty)
    """
    if not name:
        return ""
    return re.sub(r"[\x00-\x1f\x7f-\x9f]", "", name).strip()


def validate_name(name: str | None, entity: str) -> str:
    """
    Raises:
        ValidationError: empty or longer than Limits.MAX_NAME_LENGTH
    """
    cleaned = sanitize_name(name)
    if not cleaned:
        raise ValidationError(f"{entity} name is required")
    if len(cleaned) > Limits.MAX_NAME_LENGTH:
        raise ValidationError(
            f"{entity} name must be at most {Limits.MAX_NAME_LENGTH} characters"
        )
    return cleaned


def parse_decimal(value: Any, field: str) -> Decimal:
    """
    Convert to Decimal, turning conversion errors into ValidationError.

    Floats are rejected, see shared.utils.money.to_decimal.
    """
    try:
        return to_decimal(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid {field}: {e}", field=field) from None


def validate_positive(value: Any, field: str) -> Decimal:
    """Decimal strictly greater than zero."""
    result = parse_decimal(value, field)
    if result <= ZERO:
        raise ValidationError(f"{field} must be greater than zero", field=field, value=str(result))
    return result


def validate_non_negative(value: Any, field: str) -> Decimal:
    """Decimal greater than or equal to zero."""
    result = parse_decimal(value, field)
    if result < ZERO:
        raise ValidationError(f"{field} cannot be negative", field=field, value=str(result))
    return result
