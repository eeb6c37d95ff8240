"""
SalesOrderEngine -- atomic multi-line sales with stock deduction.

Responsibility:
    Creates sales orders together with their line items and the matching
    stock decrements, reads them back hydrated with batch display fields,
    and deletes unlocked orders.

Architecture position:
    Kernel > Services -- imperative shell.  Depends on BatchLedger for
    availability and stock mutation, and on domain/profit.py for the
    arithmetic.

Invariants enforced:
    - Quantities are aggregated per batch BEFORE the availability check.
    - Availability is checked against rows locked FOR UPDATE in the same
      transaction that decrements them.
    - line_profit = (selling - purchase) * quantity, losses preserved.
    - total_profit = sum(line_profit), fixed at creation.
    - Order row, line-item rows and stock decrements are flushed together;
      the caller's rollback discards all of them.
    - Locked orders cannot be deleted.

Failure modes:
    - ValidationError: empty order or bad line fields (every line reported).
    - UnknownBatchesError: one or more batch ids do not exist.
    - InsufficientStockError: aggregated demand exceeds stock.
    - SalesOrderNotFoundError / SalesOrderLockedError on delete.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from inventory_kernel.config import EngineConfig
from inventory_kernel.db.types import as_utc, fits_money
from inventory_kernel.domain.calendar import localize
from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import LineItemInfo, LineItemInput, SalesOrderInfo
from inventory_kernel.domain.profit import aggregate_demand, line_profit, total_profit
from inventory_kernel.domain.validation import FieldErrors
from inventory_kernel.exceptions import (
    InsufficientStockError,
    SalesOrderLockedError,
    SalesOrderNotFoundError,
    UnknownBatchesError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.sales_order import SalesOrder, SalesOrderLineItem
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.batch_ledger import BatchLedger

logger = get_logger("services.sales_order")


class SalesOrderEngine(BaseService[SalesOrder]):
    """
    Service for sales order creation, reads and deletion.

    Contract:
        ``create()`` either flushes the order, all of its lines and every
        stock decrement, or raises before writing anything.

    Non-goals:
        - Does NOT restore stock on delete.  Deletion is a correction tool;
          the sale is treated as never having existed.
        - Does NOT lock orders; only ProfitSettlementEngine does that.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ledger: BatchLedger | None = None,
        config: EngineConfig | None = None,
    ):
        super().__init__(session, clock)
        self._ledger = ledger or BatchLedger(session, self._clock)
        self._config = config or EngineConfig()

    @staticmethod
    def _to_dto(order: SalesOrder) -> SalesOrderInfo:
        return SalesOrderInfo(
            id=order.id,
            order_date=as_utc(order.order_date),
            customer_name=order.customer_name,
            total_profit=order.total_profit,
            is_locked=order.is_locked,
            line_items=tuple(
                LineItemInfo(
                    id=item.id,
                    batch_id=item.batch_id,
                    batch_identifier=item.batch.batch_identifier,
                    product_name=item.batch.product_name,
                    purchase_price_per_unit=item.batch.purchase_price_per_unit,
                    quantity_sold=item.quantity_sold,
                    selling_price_per_unit=item.selling_price_per_unit,
                    line_profit=item.line_profit,
                )
                for item in order.line_items
            ),
            created_at=as_utc(order.created_at),
            updated_at=as_utc(order.updated_at),
        )

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def create(
        self,
        line_items: Sequence[LineItemInput],
        order_date: datetime | None = None,
        customer_name: str | None = None,
        actor_id: UUID | None = None,
    ) -> SalesOrderInfo:
        """
        Record a sale and deduct its stock.

        Args:
            line_items: At least one line.  Several lines may draw from the
                same batch.
            order_date: Defaults to now.  Naive values are read as wall-clock
                time in the configured reference zone.
            customer_name: Optional; blank names are stored as NULL.

        Raises:
            ValidationError: Listing every offending line field.
            UnknownBatchesError: Naming every missing batch id.
            InsufficientStockError: Naming every short batch with its
                available and required quantities.
        """
        lines = self._validate_lines(line_items)
        demand = aggregate_demand(lines)

        batches = self._ledger.lock_for_sale(demand)
        missing = [str(batch_id) for batch_id in demand if batch_id not in batches]
        if missing:
            raise UnknownBatchesError(missing)

        shortfalls = sorted(
            (
                {
                    "batch_identifier": batches[batch_id].batch_identifier,
                    "available": batches[batch_id].current_quantity,
                    "required": required,
                }
                for batch_id, required in demand.items()
                if not batches[batch_id].has_stock(required)
            ),
            key=lambda s: s["batch_identifier"],
        )
        if shortfalls:
            first = shortfalls[0]
            logger.info(
                "sales_order_rejected_insufficient_stock",
                extra={"shortfalls": shortfalls},
            )
            raise InsufficientStockError(
                first["batch_identifier"],
                first["available"],
                first["required"],
                shortfalls=shortfalls,
            )

        profits = [
            line_profit(
                line.selling_price_per_unit,
                batches[line.batch_id].purchase_price_per_unit,
                line.quantity_sold,
            )
            for line in lines
        ]
        order_profit = total_profit(profits)
        self._check_profit_range(profits, order_profit)

        order = SalesOrder(
            order_date=self._resolve_order_date(order_date),
            customer_name=(customer_name or "").strip() or None,
            total_profit=order_profit,
            is_locked=False,
            created_by_id=actor_id,
        )
        self.session.add(order)
        self.session.flush()

        for number, (line, profit) in enumerate(zip(lines, profits), start=1):
            item = SalesOrderLineItem(
                sales_order_id=order.id,
                batch_id=line.batch_id,
                line_number=number,
                quantity_sold=line.quantity_sold,
                selling_price_per_unit=line.selling_price_per_unit,
                line_profit=profit,
                created_by_id=actor_id,
            )
            order.line_items.append(item)
            item.batch = batches[line.batch_id]

        for batch_id, quantity in demand.items():
            self._ledger.deduct(batches[batch_id], quantity)

        self.session.flush()

        logger.info(
            "sales_order_created",
            extra={
                "order_id": str(order.id),
                "line_count": len(lines),
                "total_profit": str(order.total_profit),
                "stock_deducted": {
                    batches[batch_id].batch_identifier: quantity
                    for batch_id, quantity in demand.items()
                },
            },
        )
        return self._to_dto(order)

    def _validate_lines(self, line_items: Sequence[LineItemInput]) -> list[LineItemInput]:
        """Validate every line, returning normalized copies."""
        errors = FieldErrors()
        if not line_items:
            errors.add("line_items", "at least one line item is required")
            errors.raise_if_any()

        lines: list[LineItemInput] = []
        for index, item in enumerate(line_items):
            prefix = f"line_items[{index}]"
            batch_id = _as_uuid(item.batch_id)
            if batch_id is None:
                errors.add(f"{prefix}.batch_id", "must be a valid batch id")
            quantity = errors.positive_int(f"{prefix}.quantity_sold", item.quantity_sold)
            price = errors.money(
                f"{prefix}.selling_price_per_unit", item.selling_price_per_unit
            )
            if batch_id is not None and quantity is not None and price is not None:
                lines.append(LineItemInput(batch_id, quantity, price))
        errors.raise_if_any()
        return lines

    def _check_profit_range(self, profits: list[Decimal], order_profit: Decimal) -> None:
        errors = FieldErrors()
        for index, profit in enumerate(profits):
            if not fits_money(profit):
                errors.add(
                    f"line_items[{index}].selling_price_per_unit",
                    "line profit exceeds the storable money range",
                )
        if not errors and not fits_money(order_profit):
            errors.add("line_items", "order profit exceeds the storable money range")
        errors.raise_if_any()

    def _resolve_order_date(self, order_date: datetime | None) -> datetime:
        if order_date is None:
            return self._clock.now_utc()
        return localize(order_date, self._config.tzinfo).astimezone(timezone.utc)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, order_id: UUID) -> SalesOrderInfo | None:
        order = self.session.execute(
            self._hydrated().where(SalesOrder.id == order_id)
        ).scalar_one_or_none()
        return self._to_dto(order) if order else None

    def list(
        self,
        start_date: date | datetime | None = None,
        end_date: date | datetime | None = None,
        is_locked: bool | None = None,
        customer_name: str | None = None,
    ) -> list[SalesOrderInfo]:
        """
        Orders matching every given filter, newest order date first.

        A plain ``date`` bound covers that whole day in the reference zone;
        both bounds are inclusive.  ``customer_name`` is a case-insensitive
        substring match.
        """
        tz = self._config.tzinfo
        stmt = self._hydrated()
        if start_date is not None:
            if not isinstance(start_date, datetime):
                start_date = datetime.combine(start_date, time.min)
            stmt = stmt.where(
                SalesOrder.order_date >= localize(start_date, tz).astimezone(timezone.utc)
            )
        if end_date is not None:
            if not isinstance(end_date, datetime):
                end_date = datetime.combine(end_date, time.max)
            stmt = stmt.where(
                SalesOrder.order_date <= localize(end_date, tz).astimezone(timezone.utc)
            )
        if is_locked is not None:
            stmt = stmt.where(SalesOrder.is_locked == is_locked)
        if customer_name:
            stmt = stmt.where(
                func.lower(SalesOrder.customer_name).contains(customer_name.lower())
            )
        stmt = stmt.order_by(SalesOrder.order_date.desc(), SalesOrder.id)
        return [self._to_dto(o) for o in self.session.execute(stmt).scalars()]

    @staticmethod
    def _hydrated():
        return select(SalesOrder).options(
            selectinload(SalesOrder.line_items).selectinload(SalesOrderLineItem.batch)
        )

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    def delete(self, order_id: UUID) -> SalesOrderInfo:
        """
        Hard-delete an unlocked order and, explicitly, its line items.

        Stock is NOT restored.

        Returns:
            The order's final snapshot.

        Raises:
            SalesOrderNotFoundError: If the order does not exist.
            SalesOrderLockedError: If the order is locked by a settlement.
        """
        order = self.session.execute(
            self._hydrated().where(SalesOrder.id == order_id).with_for_update()
        ).scalar_one_or_none()
        if order is None:
            raise SalesOrderNotFoundError(str(order_id))
        if order.is_locked:
            logger.warning(
                "locked_sales_order_delete_rejected",
                extra={"order_id": str(order_id)},
            )
            raise SalesOrderLockedError(str(order_id))

        snapshot = self._to_dto(order)
        for item in list(order.line_items):
            self.session.delete(item)
        self.session.flush()
        self.session.delete(order)
        self.session.flush()

        logger.info(
            "sales_order_deleted",
            extra={
                "order_id": str(order_id),
                "line_items_deleted": len(snapshot.line_items),
                "stock_restored": False,
            },
        )
        return snapshot


def _as_uuid(value: Any) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None
