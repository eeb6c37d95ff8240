"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that cross the kernel boundary:
    inputs (LineItemInput, BatchUpdate) and the snapshots every service
    returns (BatchInfo, SalesOrderInfo, LineItemInfo, SettlementInfo,
    SettlementPreview).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies; services convert ORM rows to these DTOs
    before returning, so callers never hold live ORM entities.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID


# =============================================================================
# Inputs
# =============================================================================


@dataclass(frozen=True)
class LineItemInput:
    """One requested line of a new sales order.

    Values are validated by SalesOrderEngine, not here, so that every
    offending field of every line can be reported together.
    """

    batch_id: UUID
    quantity_sold: Any
    selling_price_per_unit: Any


@dataclass(frozen=True)
class BatchUpdate:
    """
    The only fields an administrator may change on a batch.

    Purchase price, purchase date, initial quantity and identifier are not
    part of this shape, so no update can reach them.  ``None`` means
    "leave unchanged".
    """

    product_name: str | None = None
    current_quantity: Any = None
    default_selling_price_per_unit: Any = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> BatchUpdate:
        """Build an update from a request payload, ignoring unknown keys."""
        return cls(
            product_name=payload.get("product_name"),
            current_quantity=payload.get("current_quantity"),
            default_selling_price_per_unit=payload.get("default_selling_price_per_unit"),
        )

    @property
    def is_empty(self) -> bool:
        return (
            self.product_name is None
            and self.current_quantity is None
            and self.default_selling_price_per_unit is None
        )


# =============================================================================
# Snapshots
# =============================================================================


@dataclass(frozen=True)
class BatchInfo:
    """Immutable snapshot of a batch."""

    id: UUID
    batch_identifier: str
    product_name: str
    purchase_date: date
    purchase_price_per_unit: Decimal
    default_selling_price_per_unit: Decimal
    initial_quantity: int
    current_quantity: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_available(self) -> bool:
        return self.current_quantity > 0

    @property
    def sold_quantity(self) -> int:
        return self.initial_quantity - self.current_quantity


@dataclass(frozen=True)
class LineItemInfo:
    """
    A persisted line item, hydrated with the batch's display fields.

    ``purchase_price_per_unit`` is the batch's (immutable) cost basis that
    ``line_profit`` was computed from.
    """

    id: UUID
    batch_id: UUID
    batch_identifier: str
    product_name: str
    purchase_price_per_unit: Decimal
    quantity_sold: int
    selling_price_per_unit: Decimal
    line_profit: Decimal


@dataclass(frozen=True)
class SalesOrderInfo:
    """Immutable snapshot of a sales order and its line items."""

    id: UUID
    order_date: datetime
    customer_name: str | None
    total_profit: Decimal
    is_locked: bool
    line_items: tuple[LineItemInfo, ...] = field(default_factory=tuple)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def quantity_by_batch(self) -> dict[UUID, int]:
        totals: dict[UUID, int] = {}
        for item in self.line_items:
            totals[item.batch_id] = totals.get(item.batch_id, 0) + item.quantity_sold
        return totals


@dataclass(frozen=True)
class SettlementInfo:
    """Immutable snapshot of a monthly profit-share record."""

    id: UUID
    month: int
    year: int
    total_profit: Decimal
    amount_per_owner: Decimal
    owner_count: int
    order_count: int
    executed_at: datetime
    executed_by_id: UUID | None = None
    created_at: datetime | None = None

    @property
    def period_label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


@dataclass(frozen=True)
class SettlementPreview:
    """What ``execute(month, year)`` would produce right now (read-only)."""

    month: int
    year: int
    window_start: datetime
    window_end: datetime
    total_profit: Decimal
    amount_per_owner: Decimal
    order_ids: tuple[UUID, ...]
    already_executed: bool
