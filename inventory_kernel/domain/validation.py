"""
Validation -- collect every offending field before failing.

Kernel operations re-validate all numeric invariants themselves even though
the HTTP layer validates request shapes first.  Errors are accumulated in a
``FieldErrors`` collector and raised together as one ``ValidationError``.

Money accepts ``Decimal``, ``int`` or a numeric ``str``.  ``float`` is
rejected outright: binary floating point is never allowed into a price.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from inventory_kernel.db.types import (
    MONEY_DECIMAL_PLACES,
    MONEY_INTEGER_DIGITS,
    fits_money,
)
from inventory_kernel.exceptions import ValidationError

# Quantity columns are BIGINT.
MAX_QUANTITY = 2**63 - 1


class FieldErrors:
    """Accumulates ``{"field", "message"}`` entries."""

    def __init__(self) -> None:
        self._errors: list[dict[str, str]] = []

    def add(self, field: str, message: str) -> None:
        self._errors.append({"field": field, "message": message})

    def __bool__(self) -> bool:
        return bool(self._errors)

    def __len__(self) -> int:
        return len(self._errors)

    def as_list(self) -> list[dict[str, str]]:
        return list(self._errors)

    def raise_if_any(self) -> None:
        if self._errors:
            raise ValidationError(self.as_list())

    # -------------------------------------------------------------------------
    # Typed checks.  Each returns the parsed value, or None after recording
    # an error.
    # -------------------------------------------------------------------------

    def money(self, field: str, value: Any, *, required: bool = True) -> Decimal | None:
        """Parse a non-negative monetary amount."""
        if value is None:
            if required:
                self.add(field, "is required")
            return None
        amount = parse_decimal(value)
        if amount is None:
            self.add(field, "must be a decimal amount (floats are not accepted)")
            return None
        if amount < 0:
            self.add(field, "must be non-negative")
            return None
        if -amount.as_tuple().exponent > MONEY_DECIMAL_PLACES:
            self.add(field, f"must have at most {MONEY_DECIMAL_PLACES} decimal places")
            return None
        if not fits_money(amount):
            self.add(field, f"must be less than 10^{MONEY_INTEGER_DIGITS}")
            return None
        return amount

    def positive_int(self, field: str, value: Any) -> int | None:
        if not is_integer(value) or value <= 0:
            self.add(field, "must be a positive integer")
            return None
        if value > MAX_QUANTITY:
            self.add(field, f"must be at most {MAX_QUANTITY}")
            return None
        return value

    def non_negative_int(self, field: str, value: Any) -> int | None:
        if not is_integer(value) or value < 0:
            self.add(field, "must be a non-negative integer")
            return None
        if value > MAX_QUANTITY:
            self.add(field, f"must be at most {MAX_QUANTITY}")
            return None
        return value

    def text(self, field: str, value: Any) -> str | None:
        if not isinstance(value, str) or not value.strip():
            self.add(field, "is required")
            return None
        return value.strip()


def is_integer(value: Any) -> bool:
    # bool is an int subclass; True is not a quantity.
    return isinstance(value, int) and not isinstance(value, bool)


def parse_decimal(value: Any) -> Decimal | None:
    """Return a finite Decimal for Decimal/int/str input, else None."""
    if isinstance(value, bool) or isinstance(value, float):
        return None
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, str):
        try:
            amount = Decimal(value.strip())
        except InvalidOperation:
            return None
    else:
        return None
    if not amount.is_finite():
        return None
    return amount
