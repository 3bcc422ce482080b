"""
CalculationResultRepository tests against in-memory SQLite.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from commission_batch.domain.types import CalculationKind, CalculationResult
from commission_batch.services.results_repository import CalculationResultRepository
from commission_kernel.domain.values import PositionDirection

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _result(
    position_id,
    *,
    operation_id="op-1",
    account_id="acc-1",
    day=date(2024, 1, 1),
    is_success=True,
    amount="5",
    fx_rate=None,
):
    return CalculationResult(
        operation_id=operation_id,
        position_id=position_id,
        account_id=account_id,
        instrument="EURUSD",
        direction=PositionDirection.LONG,
        volume=Decimal("1000"),
        trading_day=day,
        time=NOW,
        is_success=is_success,
        amount=Decimal(amount) if is_success else None,
        fx_rate=Decimal(fx_rate) if fx_rate else None,
        error=None if is_success else "no quote",
        details={"quote_rate": "1"} if is_success else None,
    )


@pytest.fixture
def swaps(session):
    return CalculationResultRepository(session, CalculationKind.OVERNIGHT_SWAP)


@pytest.fixture
def pnls(session):
    return CalculationResultRepository(session, CalculationKind.DAILY_PNL)


class TestInsertAndGet:
    def test_round_trip(self, swaps, session):
        swaps.bulk_insert([_result("pos-1")])
        session.commit()

        stored = swaps.get("op-1_pos-1")

        assert stored.position_id == "pos-1"
        assert stored.direction is PositionDirection.LONG
        assert stored.amount == Decimal("5")
        assert stored.details == {"quote_rate": "1"}
        assert stored.fx_rate is None

    def test_failure_row_keeps_error(self, swaps, session):
        swaps.bulk_insert([_result("pos-1", is_success=False)])
        session.commit()

        stored = swaps.get("op-1_pos-1")

        assert stored.is_success is False
        assert stored.amount is None
        assert stored.error == "no quote"

    def test_daily_pnl_keeps_fx_rate(self, pnls, session):
        pnls.bulk_insert([_result("pos-1", fx_rate="0.85")])
        session.commit()

        assert pnls.get("op-1_pos-1").fx_rate == Decimal("0.85")

    def test_kinds_use_separate_tables(self, swaps, pnls, session):
        swaps.bulk_insert([_result("pos-1")])
        session.commit()

        assert pnls.get("op-1_pos-1") is None

    def test_empty_insert_is_noop(self, swaps, captured_logs):
        swaps.bulk_insert([])
        assert not any(r["message"] == "results_persisted" for r in captured_logs())


class TestHistory:
    @pytest.fixture
    def seeded(self, swaps, session):
        swaps.bulk_insert([
            _result("pos-1", operation_id="op-1", day=date(2024, 1, 1)),
            _result("pos-1", operation_id="op-2", day=date(2024, 1, 2)),
            _result("pos-2", operation_id="op-2", account_id="acc-2", day=date(2024, 1, 2)),
            _result("pos-1", operation_id="op-3", day=date(2024, 1, 3)),
        ])
        session.commit()
        return swaps

    def test_open_ended_range(self, seeded):
        days = [r.trading_day for r in seeded.get_history(date(2024, 1, 2))]
        assert days == [date(2024, 1, 2), date(2024, 1, 2), date(2024, 1, 3)]

    def test_closed_range_and_account(self, seeded):
        history = seeded.get_history(date(2024, 1, 1), date(2024, 1, 2), account_id="acc-1")
        assert [r.operation_id for r in history] == ["op-1", "op-2"]

    def test_for_trading_day_includes_later_days(self, seeded):
        prior = seeded.get_for_trading_day(date(2024, 1, 2))
        assert {r.operation_id for r in prior} == {"op-2", "op-3"}


class TestChargeFlag:
    def test_flag_and_counts(self, swaps, session):
        swaps.bulk_insert([
            _result("pos-1"),
            _result("pos-2"),
            _result("pos-3", is_success=False),
        ])
        session.commit()

        assert swaps.set_was_charged("op-1_pos-1", True) == 1
        state = swaps.get_operation_state("op-1")

        assert (state.total, state.failed, state.not_processed) == (3, 1, 1)
        assert swaps.get("op-1_pos-1").was_charged is True

    def test_unknown_item_reports_zero(self, swaps, captured_logs):
        assert swaps.set_was_charged("op-9_pos-9", True) == 0

        warnings = [r for r in captured_logs() if r["message"] == "result_not_found_for_charge"]
        assert warnings[0]["item_id"] == "op-9_pos-9"
        assert warnings[0]["kind"] == "overnight_swap"

    def test_empty_operation_counts_zero(self, swaps):
        state = swaps.get_operation_state("op-none")
        assert (state.total, state.failed, state.not_processed) == (0, 0, 0)
