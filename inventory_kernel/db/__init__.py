"""Database layer - engine, base classes, types, and immutability listeners."""

from inventory_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from inventory_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from inventory_kernel.db.types import MONEY_TYPE, Money, as_utc, fits_money, quantize_money

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "MONEY_TYPE",
    "Money",
    "fits_money",
    "as_utc",
    "quantize_money",
]
