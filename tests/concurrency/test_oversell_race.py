"""
Oversell and double-settlement race tests.

These exercise FOR UPDATE row locks between real concurrent transactions,
so they only run against PostgreSQL (set DATABASE_URL).  The file-SQLite
equivalents live in test_sqlite_race.py.

Expected Behavior:
- N threads each try to sell part of one batch at the same instant.  The
  FOR UPDATE lock serializes them; total units sold never exceed the
  initial quantity and stock never goes negative.
- M threads try to settle the same month at the same instant.  Exactly one
  succeeds; every other gets SettlementAlreadyExecutedError, and the
  settlement total counts each order exactly once.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from decimal import Decimal
from threading import Barrier

import pytest
from sqlalchemy import select

from inventory_kernel.db.engine import session_scope
from inventory_kernel.domain.dtos import LineItemInput
from inventory_kernel.exceptions import (
    InsufficientStockError,
    SettlementAlreadyExecutedError,
)
from inventory_kernel.models.batch import Batch
from inventory_kernel.models.settlement import Settlement
from inventory_kernel.services.batch_ledger import BatchLedger
from inventory_kernel.services.sales_order_service import SalesOrderEngine
from inventory_kernel.services.settlement_service import ProfitSettlementEngine

pytestmark = pytest.mark.postgres


def _create_batch(session_factory, initial_quantity: int):
    with session_scope(session_factory) as session:
        return BatchLedger(session).create(
            batch_identifier="RACE-1",
            product_name="Widget",
            purchase_date=datetime(2024, 1, 1).date(),
            purchase_price_per_unit=Decimal("10"),
            initial_quantity=initial_quantity,
        )


class TestOversellRace:
    def test_concurrent_orders_never_oversell(self, session_factory):
        batch = _create_batch(session_factory, initial_quantity=100)
        num_threads = 10
        barrier = Barrier(num_threads)

        def _sell(_):
            barrier.wait()
            try:
                with session_scope(session_factory) as session:
                    SalesOrderEngine(session).create(
                        [LineItemInput(batch.id, 30, Decimal("20"))]
                    )
                return "sold"
            except InsufficientStockError:
                return "rejected"

        with ThreadPoolExecutor(max_workers=num_threads) as pool:
            results = list(pool.map(_sell, range(num_threads)))

        assert results.count("sold") == 3
        assert results.count("rejected") == num_threads - 3

        with session_scope(session_factory) as session:
            row = session.get(Batch, batch.id)
            assert row.current_quantity == 10

    def test_concurrent_lines_across_batches_do_not_deadlock(self, session_factory):
        with session_scope(session_factory) as session:
            ledger = BatchLedger(session)
            a = ledger.create("RACE-A", "Widget", datetime(2024, 1, 1).date(), Decimal("1"), 1000)
            b = ledger.create("RACE-B", "Widget", datetime(2024, 1, 1).date(), Decimal("1"), 1000)
        num_threads = 8
        barrier = Barrier(num_threads)

        def _sell(i):
            first, second = (a, b) if i % 2 else (b, a)
            barrier.wait()
            with session_scope(session_factory) as session:
                SalesOrderEngine(session).create(
                    [
                        LineItemInput(first.id, 1, Decimal("2")),
                        LineItemInput(second.id, 1, Decimal("2")),
                    ]
                )

        with ThreadPoolExecutor(max_workers=num_threads) as pool:
            list(pool.map(_sell, range(num_threads)))

        with session_scope(session_factory) as session:
            assert session.get(Batch, a.id).current_quantity == 1000 - num_threads
            assert session.get(Batch, b.id).current_quantity == 1000 - num_threads


class TestDoubleSettlementRace:
    def test_exactly_one_settlement_wins(self, session_factory):
        batch = _create_batch(session_factory, initial_quantity=100)
        with session_scope(session_factory) as session:
            engine = SalesOrderEngine(session)
            for day in (5, 15, 25):
                engine.create(
                    [LineItemInput(batch.id, 1, Decimal("20"))],
                    order_date=datetime(2024, 1, day, tzinfo=timezone.utc),
                )

        num_threads = 6
        barrier = Barrier(num_threads)

        def _settle(_):
            barrier.wait()
            try:
                with session_scope(session_factory) as session:
                    ProfitSettlementEngine(session).execute(1, 2024)
                return "executed"
            except SettlementAlreadyExecutedError:
                return "conflict"

        with ThreadPoolExecutor(max_workers=num_threads) as pool:
            results = list(pool.map(_settle, range(num_threads)))

        assert results.count("executed") == 1
        assert results.count("conflict") == num_threads - 1

        with session_scope(session_factory) as session:
            rows = session.execute(select(Settlement)).scalars().all()
            assert len(rows) == 1
            assert rows[0].total_profit == Decimal("30")
            assert rows[0].order_count == 3
