"""
Profit -- pure arithmetic for sales and settlements.

    line_profit   = (selling_price - purchase_price) * quantity
    total_profit  = sum(line_profit)
    per_owner     = total_profit / owner_count

Losses are permitted and preserved, never clamped.  All values are Decimal,
computed in a context wide enough that no in-range product is rounded
before the final quantize.  Range checks against the column are the
caller's job (``fits_money``).
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from inventory_kernel.db.types import money_context, quantize_money
from inventory_kernel.domain.dtos import LineItemInput


def line_profit(
    selling_price_per_unit: Decimal,
    purchase_price_per_unit: Decimal,
    quantity: int,
) -> Decimal:
    with money_context():
        return quantize_money((selling_price_per_unit - purchase_price_per_unit) * quantity)


def total_profit(line_profits: Iterable[Decimal]) -> Decimal:
    with money_context():
        return quantize_money(sum(line_profits, Decimal("0")))


def aggregate_demand(items: Iterable[LineItemInput]) -> dict[UUID, int]:
    """
    Sum requested quantity per distinct batch, in first-seen order.

    Two lines against the same batch are checked against stock as one
    demand; checking them separately could let both "fit" and oversell.
    """
    demand: dict[UUID, int] = {}
    for item in items:
        demand[item.batch_id] = demand.get(item.batch_id, 0) + item.quantity_sold
    return demand


def split_profit(total: Decimal, owner_count: int) -> Decimal:
    """Divide a settlement total evenly; negative totals split as losses."""
    if owner_count < 1:
        raise ValueError(f"owner_count must be positive, got {owner_count}")
    with money_context():
        return quantize_money(total / owner_count)
