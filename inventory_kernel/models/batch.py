"""
Module: inventory_kernel.models.batch
Responsibility: ORM persistence for purchased inventory lots and their
    depleting stock quantity.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced (storage level):
    - batch_identifier is unique (uq_batch_identifier).
    - purchase_price_per_unit >= 0 and default_selling_price_per_unit >= 0.
    - initial_quantity > 0.
    - 0 <= current_quantity <= initial_quantity.  Stock can never go
      negative even if a writer bypasses BatchLedger.

Invariants enforced (ORM listener, see db/immutability.py):
    - batch_identifier, purchase_date, purchase_price_per_unit and
      initial_quantity never change after INSERT.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, Date, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import TrackedBase
from inventory_kernel.db.types import MONEY_TYPE

if TYPE_CHECKING:
    from inventory_kernel.models.sales_order import SalesOrderLineItem


# Columns frozen at creation time.
BATCH_IMMUTABLE_FIELDS = (
    "batch_identifier",
    "purchase_date",
    "purchase_price_per_unit",
    "initial_quantity",
)


class Batch(TrackedBase):
    """
    A purchased lot of a product with a fixed cost basis.

    Contract:
        current_quantity starts equal to initial_quantity and only moves
        through order fulfillment (decrement) or an administrative
        correction bounded by initial_quantity.
    """

    __tablename__ = "batches"

    __table_args__ = (
        UniqueConstraint("batch_identifier", name="uq_batch_identifier"),
        CheckConstraint(
            "purchase_price_per_unit >= 0", name="ck_batch_purchase_price_non_negative"
        ),
        CheckConstraint(
            "default_selling_price_per_unit >= 0",
            name="ck_batch_default_price_non_negative",
        ),
        CheckConstraint("initial_quantity > 0", name="ck_batch_initial_quantity_positive"),
        CheckConstraint(
            "current_quantity >= 0 AND current_quantity <= initial_quantity",
            name="ck_batch_current_quantity_bounds",
        ),
        Index("idx_batch_product_name", "product_name", "batch_identifier"),
    )

    batch_identifier: Mapped[str] = mapped_column(String(64), nullable=False)

    product_name: Mapped[str] = mapped_column(String(255), nullable=False)

    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)

    purchase_price_per_unit: Mapped[Decimal] = mapped_column(
        MONEY_TYPE, nullable=False
    )

    default_selling_price_per_unit: Mapped[Decimal] = mapped_column(
        MONEY_TYPE, nullable=False
    )

    initial_quantity: Mapped[int] = mapped_column(nullable=False)

    current_quantity: Mapped[int] = mapped_column(nullable=False)

    line_items: Mapped[list[SalesOrderLineItem]] = relationship(
        "SalesOrderLineItem",
        back_populates="batch",
        passive_deletes="all",
    )

    def __repr__(self) -> str:
        return (
            f"<Batch {self.batch_identifier}: "
            f"{self.current_quantity}/{self.initial_quantity}>"
        )

    def has_stock(self, quantity: int) -> bool:
        return self.current_quantity >= quantity
