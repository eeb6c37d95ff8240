"""
Module: inventory_kernel.models.settlement
Responsibility: ORM persistence for monthly profit-share records.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced (storage level):
    - (month, year) is unique (uq_settlement_month_year).  This is the hard
      guarantee behind "exactly once per month": of two concurrent
      executions, the loser's INSERT fails.
    - 1 <= month <= 12.

Invariants enforced (ORM listener, see db/immutability.py):
    - Settlements are never updated or deleted.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase, UUIDString
from inventory_kernel.db.types import MONEY_TYPE


class Settlement(TrackedBase):
    """Profit split for one calendar month, created exactly once."""

    __tablename__ = "settlements"

    __table_args__ = (
        UniqueConstraint("month", "year", name="uq_settlement_month_year"),
        CheckConstraint("month >= 1 AND month <= 12", name="ck_settlement_month_range"),
        CheckConstraint("owner_count > 0", name="ck_settlement_owner_count_positive"),
        Index("idx_settlement_executed_at", "executed_at"),
    )

    month: Mapped[int] = mapped_column(nullable=False)

    year: Mapped[int] = mapped_column(nullable=False)

    total_profit: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False)

    amount_per_owner: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False)

    owner_count: Mapped[int] = mapped_column(nullable=False)

    # Number of orders locked by this settlement
    order_count: Mapped[int] = mapped_column(nullable=False)

    executed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # Who ran it; None when the scheduler ran it or no identity was supplied
    executed_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Settlement {self.year:04d}-{self.month:02d}: {self.total_profit}>"
