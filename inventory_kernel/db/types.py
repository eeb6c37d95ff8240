"""
Module: inventory_kernel.db.types
Responsibility: Column types and helpers for money and timestamp
    columns.  Centralizes precision and time-zone normalization so that every
    model and service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    and services/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in the kernel.  All monetary amounts use Decimal
      with 9 fractional digits of storage precision and at most 29 integer
      digits.
    - Money is stored exactly on every backend.  PostgreSQL gets
      NUMERIC(38, 9); SQLite has no fixed-point storage and would coerce
      NUMERIC to a binary double, so there the column holds the decimal's
      plain text.
    - Every persisted timestamp is bound as aware UTC.  SQLite drops tzinfo
      on the way in, so values read back naive are re-tagged as UTC.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_EVEN, Decimal, localcontext

from sqlalchemy import Numeric, String
from sqlalchemy.types import TypeDecorator

MONEY_PRECISION = 38
MONEY_DECIMAL_PLACES = 9
MONEY_INTEGER_DIGITS = MONEY_PRECISION - MONEY_DECIMAL_PLACES

# Exclusive bound on the magnitude of any stored amount.
MONEY_LIMIT = Decimal(10) ** MONEY_INTEGER_DIGITS

# Wide enough for an in-range price times a 64-bit quantity, exactly.
MONEY_WORKING_PRECISION = 80

_MONEY_QUANTUM = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)


def money_context():
    """Decimal context for money arithmetic; never rounds an in-range product."""
    return localcontext(prec=MONEY_WORKING_PRECISION)


def quantize_money(value: Decimal) -> Decimal:
    """
    Quantize a monetary value to storage precision.

    This is the only place the kernel rounds money; it never rounds
    below what the column can hold.  Callers check ``fits_money`` before
    persisting a computed amount.
    """
    with money_context():
        return value.quantize(_MONEY_QUANTUM, rounding=ROUND_HALF_EVEN)


def fits_money(value: Decimal) -> bool:
    return abs(value) < MONEY_LIMIT


class Money(TypeDecorator):
    """
    Exact decimal money column.

    NUMERIC(38, 9) where the backend has fixed-point storage.  On SQLite
    the quantized amount is written as plain decimal text (no exponent),
    so ``12345678901.123456789`` reads back digit for digit.  CHECK
    constraints comparing against ``0`` still hold there because a text
    column compares a numeric literal as text and ``-`` sorts before ``0``.
    """

    impl = Numeric(MONEY_PRECISION, MONEY_DECIMAL_PLACES)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            # sign + 29 digits + point + 9 digits
            return dialect.type_descriptor(String(MONEY_PRECISION + 2))
        return dialect.type_descriptor(Numeric(MONEY_PRECISION, MONEY_DECIMAL_PLACES))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        amount = quantize_money(Decimal(value))
        if dialect.name == "sqlite":
            return format(amount, "f")
        return amount

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return quantize_money(Decimal(value))


MONEY_TYPE = Money()


def as_utc(value: datetime | None) -> datetime | None:
    """
    Normalize a datetime read from or written to the database to aware UTC.

    Naive values are assumed to already be UTC wall-clock time, which is
    how every timestamp is written.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
