"""
BatchCalculationEngine tests.

Covers the run contract end to end on in-memory SQLite and fakeredis:
eligibility, the trading day ordering check, anomaly reporting, per-item
fault isolation, lock conflicts and release on every exit path.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from commission_batch.domain.types import CalculationKind, CalculationResult
from commission_batch.services.calculation_engine import (
    BatchCalculationEngine,
    select_eligible,
)
from commission_batch.tasks import DAILY_PNL_LOCK_KEY, OVERNIGHT_SWAP_LOCK_KEY, TaskRegistry
from commission_kernel.exceptions import BatchAlreadyRunningError, TradingDayOrderError

DAY_1 = date(2024, 1, 1)
DAY_2 = date(2024, 1, 2)


@pytest.fixture
def build_engine(session, task_registry, position_source, distributed_lock, deterministic_clock):
    def _build(kind, *, registry=None, max_workers=1, holder_id="test-host"):
        return BatchCalculationEngine(
            session,
            kind,
            registry or task_registry,
            position_source,
            distributed_lock,
            holder_id=holder_id,
            clock=deterministic_clock,
            max_workers=max_workers,
        )

    return _build


@pytest.fixture
def pnl_engine(build_engine):
    return build_engine(CalculationKind.DAILY_PNL)


@pytest.fixture
def swap_engine(build_engine):
    return build_engine(CalculationKind.OVERNIGHT_SWAP)


class ContextFailsTask:
    """Daily PnL stand-in whose reference data load fails."""

    kind = CalculationKind.DAILY_PNL
    lock_key = DAILY_PNL_LOCK_KEY

    def prepare_context(self, parameters):
        raise ConnectionError("reference data unavailable")

    def calculate_item(self, position, context, operation_id, trading_day, now):
        raise AssertionError("not reached")


class SilentFailureTask(ContextFailsTask):
    def prepare_context(self, parameters):
        return None

    def calculate_item(self, position, context, operation_id, trading_day, now):
        raise KeyError


# =============================================================================
# Run
# =============================================================================


class TestRunBatch:
    def test_one_result_per_active_position(self, pnl_engine, position_source, make_position):
        position_source.open(make_position("pos-1", pnl="12", charged_pnl="2"))
        position_source.open(make_position("pos-2", account_id="acc-2", pnl="-5"))

        results = pnl_engine.run_batch("op-1", DAY_1)

        assert isinstance(results, list)
        assert {r.item_id for r in results} == {"op-1_pos-1", "op-1_pos-2"}
        amounts = {r.position_id: r.amount for r in results}
        assert amounts == {"pos-1": Decimal("10"), "pos-2": Decimal("-5")}
        assert all(r.is_success for r in results)

    def test_results_persisted(self, pnl_engine, position_source, make_position):
        position_source.open(make_position("pos-1", pnl="12", fx_rate="1.25"))

        pnl_engine.run_batch("op-1", DAY_1)

        stored = pnl_engine.results.get("op-1_pos-1")
        assert stored is not None
        assert stored.amount == Decimal("12")
        assert stored.fx_rate == Decimal("1.25")
        assert stored.trading_day == DAY_1
        assert stored.was_charged is None

    def test_no_positions_gives_empty_run(self, pnl_engine):
        assert pnl_engine.run_batch("op-1", DAY_1) == []

    def test_successful_positions_not_recalculated(
        self, pnl_engine, position_source, make_position,
    ):
        position_source.open(make_position("pos-1"))
        pnl_engine.run_batch("op-1", DAY_1)

        position_source.open(make_position("pos-2"))
        results = pnl_engine.run_batch("op-2", DAY_1)

        assert [r.position_id for r in results] == ["pos-2"]

    def test_next_trading_day_recalculates(self, pnl_engine, position_source, make_position):
        position_source.open(make_position("pos-1"))
        pnl_engine.run_batch("op-1", DAY_1)

        results = pnl_engine.run_batch("op-2", DAY_2)

        assert [r.item_id for r in results] == ["op-2_pos-1"]

    def test_position_opened_after_trading_day_skipped(
        self, pnl_engine, position_source, make_position,
    ):
        position_source.open(make_position("pos-1"))
        position_source.open(
            make_position("pos-late", opened=datetime(2024, 1, 2, 0, 5, tzinfo=timezone.utc)),
        )

        results = pnl_engine.run_batch("op-1", DAY_1)

        assert [r.position_id for r in results] == ["pos-1"]

    def test_swap_parameters_reach_pricing(self, swap_engine, position_source, make_position):
        position_source.open(make_position("pos-1", volume="360"))

        (result,) = swap_engine.run_batch(
            "op-1", DAY_1,
            {"number_of_financing_days": 3, "financing_days_per_year": 360},
        )

        # 360 * -0.02 * 3 / 360
        assert result.amount == Decimal("-0.06")
        assert result.details["number_of_financing_days"] == 3

    def test_run_logged_with_context(self, pnl_engine, position_source, make_position, captured_logs):
        position_source.open(make_position("pos-1"))

        pnl_engine.run_batch("op-1", DAY_1)

        finished = [r for r in captured_logs() if r["message"] == "batch_finished"]
        assert len(finished) == 1
        assert finished[0]["operation_id"] == "op-1"
        assert finished[0]["trading_day"] == "2024-01-01"
        assert finished[0]["holder_id"] == "test-host"
        assert finished[0]["succeeded"] == 1
        assert finished[0]["failed"] == 0


# =============================================================================
# Ordering
# =============================================================================


class TestTradingDayOrdering:
    def test_older_day_after_newer_day_rejected(
        self, pnl_engine, position_source, make_position, distributed_lock,
    ):
        position_source.open(make_position("pos-1"))
        pnl_engine.run_batch("op-2", DAY_2)

        with pytest.raises(TradingDayOrderError) as exc_info:
            pnl_engine.run_batch("op-1", DAY_1)

        assert exc_info.value.requested_day == "2024-01-01"
        assert exc_info.value.latest_day == "2024-01-02"
        assert distributed_lock.holder_of(DAILY_PNL_LOCK_KEY) is None
        assert pnl_engine.results.get("op-1_pos-1") is None

    def test_violation_logged(self, pnl_engine, position_source, make_position, captured_logs):
        position_source.open(make_position("pos-1"))
        pnl_engine.run_batch("op-2", DAY_2)

        with pytest.raises(TradingDayOrderError):
            pnl_engine.run_batch("op-1", DAY_1)

        assert any(
            r["message"] == "trading_day_order_violation" and r["level"] == "ERROR"
            for r in captured_logs()
        )


# =============================================================================
# Fault isolation and anomalies
# =============================================================================


class TestFaultIsolation:
    def test_item_failure_does_not_abort_run(self, swap_engine, position_source, make_position):
        position_source.open(make_position("pos-ok"))
        position_source.open(make_position("pos-bad", asset_pair_id="XAUUSD"))

        results = {r.position_id: r for r in swap_engine.run_batch("op-1", DAY_1)}

        assert results["pos-ok"].is_success
        bad = results["pos-bad"]
        assert not bad.is_success
        assert bad.amount is None
        assert bad.error == "Instrument XAUUSD does not exist in cache"
        assert swap_engine.results.get("op-1_pos-bad").is_success is False

    def test_item_failure_logged(self, swap_engine, position_source, make_position, captured_logs):
        position_source.open(make_position("pos-bad", asset_pair_id="XAUUSD"))

        swap_engine.run_batch("op-1", DAY_1)

        failures = [r for r in captured_logs() if r["message"] == "item_calculation_failed"]
        assert len(failures) == 1
        assert failures[0]["position_id"] == "pos-bad"
        assert failures[0]["exc_type"] == "AssetPairNotFoundError"

    def test_error_without_message_records_type(
        self, build_engine, position_source, make_position,
    ):
        registry = TaskRegistry()
        registry.register(SilentFailureTask())
        engine = build_engine(CalculationKind.DAILY_PNL, registry=registry)
        position_source.open(make_position("pos-1"))

        (result,) = engine.run_batch("op-1", DAY_1)

        assert result.error == "KeyError"

    def test_failed_position_retried_next_run(
        self, swap_engine, position_source, make_position,
    ):
        position_source.open(make_position("pos-1", asset_pair_id="XAUUSD"))
        (failed,) = swap_engine.run_batch("op-1", DAY_1)
        assert not failed.is_success

        position_source.close("pos-1")
        position_source.open(make_position("pos-1"))
        (retried,) = swap_engine.run_batch("op-2", DAY_1)

        assert retried.is_success
        assert retried.item_id == "op-2_pos-1"

    def test_failed_and_closed_position_reported_not_retried(
        self, swap_engine, position_source, make_position, captured_logs,
    ):
        position_source.open(make_position("pos-gone", asset_pair_id="XAUUSD"))
        swap_engine.run_batch("op-1", DAY_1)
        position_source.close("pos-gone")
        position_source.open(make_position("pos-new"))

        results = swap_engine.run_batch("op-2", DAY_1)

        assert [r.position_id for r in results] == ["pos-new"]
        anomalies = [
            r for r in captured_logs()
            if r["message"] == "failed_positions_closed_before_recalculation"
        ]
        assert len(anomalies) == 1
        assert anomalies[0]["position_ids"] == ["pos-gone"]
        assert anomalies[0]["level"] == "ERROR"


# =============================================================================
# Lock
# =============================================================================


class TestLocking:
    def test_held_lock_fails_whole_run(
        self, pnl_engine, position_source, make_position, distributed_lock,
    ):
        position_source.open(make_position("pos-1"))
        distributed_lock.try_acquire(DAILY_PNL_LOCK_KEY, "other-host", timedelta(minutes=5))

        with pytest.raises(BatchAlreadyRunningError) as exc_info:
            pnl_engine.run_batch("op-1", DAY_1)

        assert exc_info.value.holder_id == "other-host"
        assert pnl_engine.results.get("op-1_pos-1") is None
        assert distributed_lock.holder_of(DAILY_PNL_LOCK_KEY) == "other-host"

    def test_kinds_use_separate_locks(
        self, swap_engine, position_source, make_position, distributed_lock,
    ):
        position_source.open(make_position("pos-1"))
        distributed_lock.try_acquire(DAILY_PNL_LOCK_KEY, "other-host", timedelta(minutes=5))

        assert len(swap_engine.run_batch("op-1", DAY_1)) == 1

    def test_lock_released_after_success(
        self, swap_engine, position_source, make_position, distributed_lock,
    ):
        position_source.open(make_position("pos-1"))

        swap_engine.run_batch("op-1", DAY_1)

        assert distributed_lock.holder_of(OVERNIGHT_SWAP_LOCK_KEY) is None

    def test_lock_released_after_unexpected_error(
        self, build_engine, position_source, make_position, distributed_lock,
    ):
        registry = TaskRegistry()
        registry.register(ContextFailsTask())
        engine = build_engine(CalculationKind.DAILY_PNL, registry=registry)
        position_source.open(make_position("pos-1"))

        with pytest.raises(ConnectionError):
            engine.run_batch("op-1", DAY_1)

        assert distributed_lock.holder_of(DAILY_PNL_LOCK_KEY) is None


# =============================================================================
# Parallel workers
# =============================================================================


class TestParallelWorkers:
    def test_pool_matches_sequential_result_set(
        self, build_engine, position_source, make_position,
    ):
        for i in range(12):
            asset_pair_id = "BTCUSD" if i % 2 else "EURUSD"
            if i == 5:
                asset_pair_id = "XAUUSD"
            position_source.open(
                make_position(f"pos-{i}", volume=str(100 + i), asset_pair_id=asset_pair_id),
            )

        pooled = build_engine(CalculationKind.OVERNIGHT_SWAP, max_workers=4).run_batch(
            "op-pool", DAY_1,
        )
        sequential = build_engine(CalculationKind.OVERNIGHT_SWAP).run_batch(
            "op-seq", DAY_2,
        )

        def summary(results):
            return {(r.position_id, r.is_success, r.amount) for r in results}

        assert len(pooled) == 12
        assert summary(pooled) == summary(sequential)
        assert sum(1 for r in pooled if not r.is_success) == 1


# =============================================================================
# Queries
# =============================================================================


class TestOperationState:
    def test_counts_by_operation_or_item_id(
        self, swap_engine, position_source, make_position,
    ):
        position_source.open(make_position("pos-1"))
        position_source.open(make_position("pos-2"))
        position_source.open(make_position("pos-3", asset_pair_id="XAUUSD"))
        swap_engine.run_batch("op-1", DAY_1)

        by_operation = swap_engine.get_operation_state("op-1")
        by_item = swap_engine.get_operation_state("op-1_pos-2")

        assert by_operation == by_item
        assert by_operation.total == 3
        assert by_operation.failed == 1
        assert by_operation.not_processed == 2

    def test_charging_drains_not_processed(self, swap_engine, position_source, make_position):
        position_source.open(make_position("pos-1"))
        position_source.open(make_position("pos-2"))
        swap_engine.run_batch("op-1", DAY_1)

        assert swap_engine.set_was_charged("op-1_pos-1", True) == 1
        assert swap_engine.set_was_charged("op-1_pos-2", False) == 1

        assert swap_engine.get_operation_state("op-1").not_processed == 0
        assert swap_engine.results.get("op-1_pos-2").was_charged is False

    def test_operation_id_with_separator(self, swap_engine, position_source, make_position):
        position_source.open(make_position("pos-1"))
        swap_engine.run_batch("swap_2024", DAY_1)

        assert swap_engine.get_operation_state("swap_2024").total == 1
        assert swap_engine.get_operation_state("swap_2024_pos-1").total == 1

    def test_unknown_operation_is_empty(self, swap_engine):
        state = swap_engine.get_operation_state("nope")
        assert (state.total, state.failed, state.not_processed) == (0, 0, 0)

    def test_history_by_range(self, pnl_engine, position_source, make_position):
        position_source.open(make_position("pos-1"))
        pnl_engine.run_batch("op-1", DAY_1)
        pnl_engine.run_batch("op-2", DAY_2)

        assert [r.trading_day for r in pnl_engine.get_history(DAY_1)] == [DAY_1, DAY_2]
        assert [r.operation_id for r in pnl_engine.get_history(DAY_2)] == ["op-2"]
        assert [r.operation_id for r in pnl_engine.get_history(DAY_1, DAY_1)] == ["op-1"]


# =============================================================================
# Eligibility (pure)
# =============================================================================


def _result(position_id, *, operation_id="op-0", is_success=True, day=DAY_1):
    return CalculationResult(
        operation_id=operation_id,
        position_id=position_id,
        account_id="acc-1",
        instrument="EURUSD",
        direction=None,
        volume=Decimal("1"),
        trading_day=day,
        time=datetime(2024, 1, 1, 12, tzinfo=timezone.utc),
        is_success=is_success,
        error=None if is_success else "boom",
    )


class TestSelectEligible:
    def test_excludes_successful_prior(self, make_position):
        positions = [make_position("pos-1"), make_position("pos-2")]

        eligible, anomalies = select_eligible(
            positions, [_result("pos-1")], "op-1", DAY_1,
        )

        assert [p.id for p in eligible] == ["pos-2"]
        assert anomalies == []

    def test_failed_prior_is_eligible_again(self, make_position):
        eligible, _ = select_eligible(
            [make_position("pos-1")], [_result("pos-1", is_success=False)], "op-1", DAY_1,
        )
        assert [p.id for p in eligible] == ["pos-1"]

    def test_same_operation_never_records_item_twice(self, make_position):
        eligible, _ = select_eligible(
            [make_position("pos-1")],
            [_result("pos-1", operation_id="op-1", is_success=False)],
            "op-1",
            DAY_1,
        )
        assert eligible == []

    def test_anomalies_deduplicated_per_position(self, make_position):
        prior = [
            _result("pos-gone", operation_id="op-a", is_success=False),
            _result("pos-gone", operation_id="op-b", is_success=False),
        ]

        _, anomalies = select_eligible([make_position("pos-1")], prior, "op-1", DAY_1)

        assert [a.position_id for a in anomalies] == ["pos-gone"]
        assert anomalies[0].error == "boom"
