"""
Tests for ProfitSettlementEngine: exactly-once execution, window selection,
order locking, and the even split.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from inventory_kernel.config import EngineConfig
from inventory_kernel.domain.dtos import LineItemInput
from inventory_kernel.exceptions import (
    ConflictError,
    SettlementAlreadyExecutedError,
    ValidationError,
)
from inventory_kernel.models.settlement import Settlement
from inventory_kernel.services.sales_order_service import SalesOrderEngine
from inventory_kernel.services.settlement_service import ProfitSettlementEngine


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def cheap_batch(make_batch):
    return make_batch(purchase_price_per_unit=Decimal("10"), initial_quantity=1000)


# =============================================================================
# Reference scenario
# =============================================================================


class TestReferenceScenario:
    def test_january_2024(self, cheap_batch, sell, orders, settlements):
        o1 = sell(cheap_batch, 10, 20, order_date=_utc(2024, 1, 5, 10))    # +100
        o2 = sell(cheap_batch, 10, 25, order_date=_utc(2024, 1, 20, 16))   # +150
        feb = sell(cheap_batch, 10, 30, order_date=_utc(2024, 2, 1, 0))    # +200

        result = settlements.execute(1, 2024)

        assert result.total_profit == Decimal("250")
        assert result.amount_per_owner == Decimal("125")
        assert result.order_count == 2
        assert result.owner_count == 2
        assert orders.get(o1.id).is_locked is True
        assert orders.get(o2.id).is_locked is True
        assert orders.get(feb.id).is_locked is False


# =============================================================================
# Exactly once
# =============================================================================


class TestExactlyOnce:
    def test_second_execution_is_conflict(self, cheap_batch, sell, settlements):
        sell(cheap_batch, 10, 20, order_date=_utc(2024, 1, 5))
        first = settlements.execute(1, 2024)

        with pytest.raises(SettlementAlreadyExecutedError) as exc_info:
            settlements.execute(1, 2024)
        err = exc_info.value
        assert isinstance(err, ConflictError)
        assert str(err) == "Profit split already executed for 1/2024"
        assert (err.month, err.year) == (1, 2024)

        stored = settlements.get_by_month_year(1, 2024)
        assert stored.id == first.id
        assert stored.total_profit == Decimal("100")

    def test_storage_constraint_backs_the_precheck(self, db_session, settlements, monkeypatch):
        settlements.execute(3, 2024)
        db_session.commit()
        # Simulate losing the race: the pre-check sees nothing.
        monkeypatch.setattr(settlements, "_get_orm", lambda month, year: None)
        with pytest.raises(SettlementAlreadyExecutedError):
            settlements.execute(3, 2024)
        db_session.rollback()
        count = db_session.execute(
            select(Settlement).where(Settlement.month == 3, Settlement.year == 2024)
        ).scalars().all()
        assert len(count) == 1


# =============================================================================
# Window selection and locking
# =============================================================================


class TestWindow:
    def test_month_boundaries_are_inclusive(self, cheap_batch, sell, orders, settlements):
        start = sell(cheap_batch, 1, 11, order_date=_utc(2024, 1, 1, 0, 0, 0))
        end = sell(
            cheap_batch, 1, 11, order_date=_utc(2024, 1, 31, 23, 59, 59, 999999)
        )
        before = sell(cheap_batch, 1, 11, order_date=_utc(2023, 12, 31, 23, 59, 59))
        after = sell(cheap_batch, 1, 11, order_date=_utc(2024, 2, 1, 0, 0, 0))

        result = settlements.execute(1, 2024)

        assert result.order_count == 2
        assert orders.get(start.id).is_locked is True
        assert orders.get(end.id).is_locked is True
        assert orders.get(before.id).is_locked is False
        assert orders.get(after.id).is_locked is False

    def test_window_follows_reference_zone(self, db_session, clock, cheap_batch):
        config = EngineConfig(timezone="Asia/Tokyo")
        orders = SalesOrderEngine(db_session, clock, config=config)
        # 2024-01-31 20:00 UTC is already February 1st in Tokyo.
        order = orders.create(
            [LineItemInput(cheap_batch.id, 1, Decimal("11"))],
            order_date=_utc(2024, 1, 31, 20),
        )
        engine = ProfitSettlementEngine(db_session, clock, config)

        assert engine.execute(1, 2024).order_count == 0
        assert engine.execute(2, 2024).order_count == 1
        assert orders.get(order.id).is_locked is True

    def test_already_locked_orders_are_excluded(self, cheap_batch, sell, orders, settlements):
        sell(cheap_batch, 1, 20, order_date=_utc(2024, 1, 10))
        settlements.execute(1, 2024)
        sell(cheap_batch, 1, 15, order_date=_utc(2024, 2, 10))

        result = settlements.execute(2, 2024)
        assert result.total_profit == Decimal("5")
        assert result.order_count == 1

    def test_locked_orders_reference_their_settlement(
        self, db_session, cheap_batch, sell, settlements
    ):
        from inventory_kernel.models.sales_order import SalesOrder

        order = sell(cheap_batch, 1, 11, order_date=_utc(2024, 1, 10))
        result = settlements.execute(1, 2024)
        row = db_session.get(SalesOrder, order.id)
        assert row.settlement_id == result.id

    def test_actor_is_recorded(self, settlements):
        actor = uuid4()
        result = settlements.execute(4, 2024, actor_id=actor)
        assert result.executed_by_id == actor

    def test_executed_at_comes_from_clock(self, settlements, clock):
        assert settlements.execute(4, 2024).executed_at == clock.now_utc()


# =============================================================================
# Split arithmetic
# =============================================================================


class TestSplit:
    def test_empty_month_settles_to_zero(self, settlements):
        result = settlements.execute(6, 2024)
        assert result.total_profit == Decimal("0")
        assert result.amount_per_owner == Decimal("0")
        assert result.order_count == 0

    def test_loss_month_splits_negative(self, cheap_batch, sell, settlements):
        sell(cheap_batch, 3, 5, order_date=_utc(2024, 5, 2))  # -15
        result = settlements.execute(5, 2024)
        assert result.total_profit == Decimal("-15")
        assert result.amount_per_owner == Decimal("-7.5")

    def test_odd_cents_are_not_rounded_away(self, make_batch, sell, settlements):
        batch = make_batch(purchase_price_per_unit=Decimal("0"))
        sell(batch, 1, "0.01", order_date=_utc(2024, 7, 2))
        result = settlements.execute(7, 2024)
        assert result.amount_per_owner == Decimal("0.005")
        assert result.amount_per_owner * 2 == result.total_profit

    def test_month_total_beyond_column_range_rejected(self, make_batch, sell, orders, settlements):
        batch = make_batch(purchase_price_per_unit=Decimal("0"))
        big = [sell(batch, 1, "6E+28", order_date=_utc(2024, 9, day)) for day in (2, 3)]
        with pytest.raises(ValidationError) as exc_info:
            settlements.execute(9, 2024)
        assert exc_info.value.fields == ["total_profit"]
        assert settlements.get_by_month_year(9, 2024) is None
        assert all(not orders.get(o.id).is_locked for o in big)

    def test_owner_count_comes_from_config(self, db_session, clock, cheap_batch, sell):
        sell(cheap_batch, 3, 20, order_date=_utc(2024, 8, 2))  # +30
        engine = ProfitSettlementEngine(db_session, clock, EngineConfig(owner_count=3))
        result = engine.execute(8, 2024)
        assert result.owner_count == 3
        assert result.amount_per_owner == Decimal("10")


# =============================================================================
# Validation
# =============================================================================


class TestValidation:
    @pytest.mark.parametrize("month", [0, 13, -1, 1.0, "1", None])
    def test_month_out_of_range(self, settlements, month):
        with pytest.raises(ValidationError) as exc_info:
            settlements.execute(month, 2024)
        assert exc_info.value.fields == ["month"]

    @pytest.mark.parametrize("year", [2019, 0, 2024.0, None])
    def test_year_below_minimum(self, settlements, year):
        with pytest.raises(ValidationError) as exc_info:
            settlements.execute(1, year)
        assert exc_info.value.fields == ["year"]

    def test_both_errors_reported(self, settlements):
        with pytest.raises(ValidationError) as exc_info:
            settlements.execute(13, 1999)
        assert exc_info.value.fields == ["month", "year"]

    def test_minimum_year_is_configurable(self, db_session, clock):
        engine = ProfitSettlementEngine(
            db_session, clock, EngineConfig(min_settlement_year=2000)
        )
        assert engine.execute(1, 2010).year == 2010


# =============================================================================
# Reads and preview
# =============================================================================


class TestReads:
    def test_list_most_recent_first(self, settlements, clock):
        first = settlements.execute(1, 2024)
        clock.advance_days(30)
        second = settlements.execute(2, 2024)
        assert [s.id for s in settlements.list()] == [second.id, first.id]

    def test_get(self, settlements):
        result = settlements.execute(1, 2024)
        assert settlements.get(result.id) == result
        assert settlements.get(uuid4()) is None

    def test_get_by_month_year_missing(self, settlements):
        assert settlements.get_by_month_year(1, 2024) is None

    def test_period_label(self, settlements):
        assert settlements.execute(3, 2024).period_label == "2024-03"


class TestPreview:
    def test_preview_matches_execute_and_writes_nothing(
        self, cheap_batch, sell, orders, settlements
    ):
        o1 = sell(cheap_batch, 10, 20, order_date=_utc(2024, 1, 5))
        o2 = sell(cheap_batch, 10, 25, order_date=_utc(2024, 1, 20))

        preview = settlements.preview(1, 2024)
        assert preview.total_profit == Decimal("250")
        assert preview.amount_per_owner == Decimal("125")
        assert set(preview.order_ids) == {o1.id, o2.id}
        assert preview.already_executed is False
        assert preview.window_start == _utc(2024, 1, 1)
        assert preview.window_end == _utc(2024, 1, 31, 23, 59, 59, 999999)
        assert orders.get(o1.id).is_locked is False
        assert settlements.get_by_month_year(1, 2024) is None

        result = settlements.execute(1, 2024)
        assert result.total_profit == preview.total_profit

    def test_preview_after_execution(self, cheap_batch, sell, settlements):
        sell(cheap_batch, 10, 20, order_date=_utc(2024, 1, 5))
        settlements.execute(1, 2024)
        preview = settlements.preview(1, 2024)
        assert preview.already_executed is True
        assert preview.order_ids == ()
        assert preview.total_profit == Decimal("0")

    def test_preview_validates(self, settlements):
        with pytest.raises(ValidationError):
            settlements.preview(0, 2024)
