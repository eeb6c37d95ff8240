"""
ProfitSettlementEngine -- exactly-once monthly profit split.

Responsibility:
    Aggregates the profit of unlocked sales orders dated in a calendar
    month, persists one Settlement for that month, and locks every order
    it counted.

Architecture position:
    Kernel > Services -- imperative shell.  Reads and locks SalesOrder rows
    directly; does not go through SalesOrderEngine's creation path.

Invariants enforced:
    - One settlement per (month, year).  The application pre-check gives a
      friendly error; uq_settlement_month_year is what makes it hold under
      concurrency.
    - The orders summed are exactly the orders locked: they are selected
      once, FOR UPDATE, and both the total and the lock loop iterate that
      same result.
    - Settlement insert and order locks are flushed in one transaction; the
      caller's rollback discards both.
    - amount_per_owner = total_profit / owner_count, signed, no clamping.

Failure modes:
    - ValidationError: month outside 1..12 or year below the minimum.
    - SettlementAlreadyExecutedError: settlement exists, or a concurrent
      execution inserted it first.  The session must be rolled back.

Audit relevance:
    Owners are paid against the stored total.  Locked orders can never be
    changed or deleted afterwards, so that total can never silently drift.
"""

from __future__ import annotations

from datetime import MAXYEAR
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_kernel.config import EngineConfig
from inventory_kernel.db.types import as_utc, fits_money
from inventory_kernel.domain.calendar import SettlementWindow, month_window
from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import SettlementInfo, SettlementPreview
from inventory_kernel.domain.profit import split_profit, total_profit
from inventory_kernel.domain.validation import FieldErrors, is_integer
from inventory_kernel.exceptions import SettlementAlreadyExecutedError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.sales_order import SalesOrder
from inventory_kernel.models.settlement import Settlement
from inventory_kernel.services.base import BaseService

logger = get_logger("services.settlement")


class ProfitSettlementEngine(BaseService[Settlement]):
    """
    Service for executing and reading monthly settlements.

    Contract:
        ``execute()`` flushes a Settlement and the locks on every order it
        counted, or raises.  Never commits.

    Non-goals:
        - Does NOT support uneven split ratios; every owner gets
          ``total / owner_count``.
        - Does NOT unlock orders or delete settlements.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: EngineConfig | None = None,
    ):
        super().__init__(session, clock)
        self._config = config or EngineConfig()

    @staticmethod
    def _to_dto(settlement: Settlement) -> SettlementInfo:
        return SettlementInfo(
            id=settlement.id,
            month=settlement.month,
            year=settlement.year,
            total_profit=settlement.total_profit,
            amount_per_owner=settlement.amount_per_owner,
            owner_count=settlement.owner_count,
            order_count=settlement.order_count,
            executed_at=as_utc(settlement.executed_at),
            executed_by_id=settlement.executed_by_id,
            created_at=as_utc(settlement.created_at),
        )

    # -------------------------------------------------------------------------
    # Execute
    # -------------------------------------------------------------------------

    def execute(
        self,
        month: int,
        year: int,
        actor_id: UUID | None = None,
    ) -> SettlementInfo:
        """
        Settle one calendar month.

        Preconditions:
            ``1 <= month <= 12`` and ``year >= config.min_settlement_year``.

        Postconditions:
            - One Settlement row exists for (month, year).
            - Every order dated inside the month window that was unlocked at
              call time is locked and points at the new settlement.
            - Orders outside the window, or already locked, are untouched.

        Raises:
            ValidationError: If month or year is out of range, or
                the month total cannot be stored.
            SettlementAlreadyExecutedError: If the month was already settled.
        """
        self._validate_period(month, year)

        if self._get_orm(month, year) is not None:
            raise SettlementAlreadyExecutedError(month, year)

        window = month_window(month, year, self._config.tzinfo)
        orders = self.session.execute(
            self._unlocked_in(window).order_by(SalesOrder.id).with_for_update()
        ).scalars().all()

        total = total_profit(order.total_profit for order in orders)
        if not fits_money(total):
            errors = FieldErrors()
            errors.add("total_profit", "month profit exceeds the storable money range")
            errors.raise_if_any()
        per_owner = split_profit(total, self._config.owner_count)

        settlement = Settlement(
            month=month,
            year=year,
            total_profit=total,
            amount_per_owner=per_owner,
            owner_count=self._config.owner_count,
            order_count=len(orders),
            executed_at=self._clock.now_utc(),
            executed_by_id=actor_id,
            created_by_id=actor_id,
        )
        self.session.add(settlement)
        try:
            self.session.flush()
        except IntegrityError:
            # A concurrent execution inserted (month, year) between the
            # pre-check and this flush.
            logger.warning(
                "concurrent_settlement_conflict",
                extra={"month": month, "year": year},
            )
            raise SettlementAlreadyExecutedError(month, year)

        for order in orders:
            order.is_locked = True
            order.settlement_id = settlement.id
            order.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "settlement_executed",
            extra={
                "settlement_id": str(settlement.id),
                "month": month,
                "year": year,
                "total_profit": str(total),
                "amount_per_owner": str(per_owner),
                "owner_count": self._config.owner_count,
                "orders_locked": len(orders),
                "window_start": window.start.isoformat(),
                "window_end": window.end.isoformat(),
            },
        )
        return self._to_dto(settlement)

    def preview(self, month: int, year: int) -> SettlementPreview:
        """
        What ``execute(month, year)`` would produce right now.

        Read-only: takes no row locks and writes nothing.  Once the month has
        been settled its orders are locked, so the preview totals are zero
        and ``already_executed`` is True.
        """
        self._validate_period(month, year)
        window = month_window(month, year, self._config.tzinfo)
        orders = self.session.execute(
            self._unlocked_in(window).order_by(SalesOrder.order_date, SalesOrder.id)
        ).scalars().all()
        total = total_profit(order.total_profit for order in orders)
        return SettlementPreview(
            month=month,
            year=year,
            window_start=window.start,
            window_end=window.end,
            total_profit=total,
            amount_per_owner=split_profit(total, self._config.owner_count),
            order_ids=tuple(order.id for order in orders),
            already_executed=self._get_orm(month, year) is not None,
        )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def list(self) -> list[SettlementInfo]:
        """All settlements, most recently executed first."""
        stmt = select(Settlement).order_by(
            Settlement.executed_at.desc(), Settlement.year.desc(), Settlement.month.desc()
        )
        return [self._to_dto(s) for s in self.session.execute(stmt).scalars()]

    def get(self, settlement_id: UUID) -> SettlementInfo | None:
        settlement = self.session.get(Settlement, settlement_id)
        return self._to_dto(settlement) if settlement else None

    def get_by_month_year(self, month: int, year: int) -> SettlementInfo | None:
        settlement = self._get_orm(month, year)
        return self._to_dto(settlement) if settlement else None

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _validate_period(self, month: Any, year: Any) -> None:
        errors = FieldErrors()
        if not is_integer(month) or not 1 <= month <= 12:
            errors.add("month", "must be an integer between 1 and 12")
        minimum = self._config.min_settlement_year
        if not is_integer(year) or not minimum <= year <= MAXYEAR:
            errors.add("year", f"must be an integer between {minimum} and {MAXYEAR}")
        errors.raise_if_any()

    def _get_orm(self, month: int, year: int) -> Settlement | None:
        return self.session.execute(
            select(Settlement).where(Settlement.month == month, Settlement.year == year)
        ).scalar_one_or_none()

    @staticmethod
    def _unlocked_in(window: SettlementWindow):
        return select(SalesOrder).where(
            SalesOrder.order_date >= window.start,
            SalesOrder.order_date <= window.end,
            SalesOrder.is_locked.is_(False),
        )
