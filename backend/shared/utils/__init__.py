"""
Utilities module: Exceptions and decimal helpers.
"""

from shared.utils.exceptions import (
    NotFoundError,
    ValidationError,
    ConflictError,
    DuplicateEntityError,
)
from shared.utils.money import (
    to_decimal,
    quantize,
    decimals_equal,
)

__all__ = [
    # exceptions
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "DuplicateEntityError",
    # money
    "to_decimal",
    "quantize",
    "decimals_equal",
]
