"""
Module: inventory_kernel.models.sales_order
Responsibility: ORM persistence for sales orders and their line items.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced (storage level):
    - Line items reference an existing batch; the batch FK is RESTRICT so
      a referenced batch cannot be deleted.
    - quantity_sold > 0, selling_price_per_unit >= 0.
    - There is deliberately NO ON DELETE CASCADE from orders to line
      items: SalesOrderEngine.delete() removes line items explicitly.

Invariants enforced (ORM listener, see db/immutability.py):
    - A locked order and its line items are read-only.
    - Line items never change after INSERT (batch reference, quantity,
      price and profit are fixed at creation).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import TrackedBase, UUIDString
from inventory_kernel.db.types import MONEY_TYPE

if TYPE_CHECKING:
    from inventory_kernel.models.batch import Batch


class SalesOrder(TrackedBase):
    """
    A customer transaction.

    Contract:
        total_profit is the sum of line profits, fixed at creation.
        is_locked flips to True exactly once, when a settlement includes
        the order; settlement_id records which one.
    """

    __tablename__ = "sales_orders"

    __table_args__ = (
        Index("idx_sales_order_date", "order_date"),
        Index("idx_sales_order_locked_date", "is_locked", "order_date"),
    )

    order_date: Mapped[datetime] = mapped_column(nullable=False)

    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    total_profit: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False)

    is_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    settlement_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("settlements.id", ondelete="RESTRICT"),
        nullable=True,
    )

    line_items: Mapped[list[SalesOrderLineItem]] = relationship(
        "SalesOrderLineItem",
        back_populates="sales_order",
        order_by="SalesOrderLineItem.line_number",
        passive_deletes="all",
    )

    def __repr__(self) -> str:
        state = "locked" if self.is_locked else "open"
        return f"<SalesOrder {self.id} {self.order_date:%Y-%m-%d} {state}>"


class SalesOrderLineItem(TrackedBase):
    """One product line within a sales order, drawn from exactly one batch."""

    __tablename__ = "sales_order_line_items"

    __table_args__ = (
        CheckConstraint("quantity_sold > 0", name="ck_line_quantity_positive"),
        CheckConstraint(
            "selling_price_per_unit >= 0", name="ck_line_selling_price_non_negative"
        ),
        Index("idx_line_item_order", "sales_order_id", "line_number"),
        Index("idx_line_item_batch", "batch_id"),
    )

    sales_order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("sales_orders.id"),
        nullable=False,
    )

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("batches.id", ondelete="RESTRICT"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(nullable=False)

    quantity_sold: Mapped[int] = mapped_column(nullable=False)

    selling_price_per_unit: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False)

    line_profit: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False)

    sales_order: Mapped[SalesOrder] = relationship(
        "SalesOrder",
        back_populates="line_items",
    )

    batch: Mapped[Batch] = relationship(
        "Batch",
        back_populates="line_items",
    )
