"""
BatchCalculationEngine -- fault-isolated, lock-guarded batch calculation.

Contract:
    ``run_batch()`` computes one result per eligible position for a trading
    day, persists every result (success and failure) in one write, and
    returns them for event emission.  ``get_operation_state()`` and
    ``set_was_charged()`` serve the downstream charging flow.

Architecture: commission_batch/services.  Imports from commission_batch.domain,
    commission_batch.tasks, commission_batch.services.results_repository and
    kernel services.

Invariants enforced:
    - One run per kind cluster-wide: the body runs under the task's
      distributed lock, released on every exit path.
    - Trading days are processed monotonically: a run for a day older than
      one already calculated fails with ``TradingDayOrderError``.
    - No item is calculated successfully twice for a trading day.
    - One item's exception never aborts the run; it becomes a failed result.
    - The result set is committed before the lock is released, so the next
      holder always sees it.

Failure modes:
    - BatchAlreadyRunningError when the lock is held elsewhere.
    - TradingDayOrderError on an ordering violation.
    - Any error outside the per-item fold propagates; the lock is released.
"""

from __future__ import annotations

import socket
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from typing import Any

from sqlalchemy.orm import Session

from commission_batch.domain.types import (
    BatchAnomaly,
    CalculationKind,
    CalculationResult,
    OperationStateCounts,
)
from commission_batch.services.results_repository import CalculationResultRepository
from commission_batch.tasks.base import CalculationTask, TaskRegistry
from commission_kernel.domain.clock import Clock, SystemClock
from commission_kernel.domain.sources import PositionSource
from commission_kernel.domain.values import OpenPosition
from commission_kernel.exceptions import TradingDayOrderError
from commission_kernel.logging_config import LogContext, get_logger
from commission_kernel.services.distributed_lock import RedisDistributedLock
from commission_kernel.utils.identifiers import extract_operation_id, make_item_id

logger = get_logger("batch.engine")

DEFAULT_LOCK_TTL = timedelta(minutes=10)


def select_eligible(
    positions: Sequence[OpenPosition],
    prior: Sequence[CalculationResult],
    operation_id: str,
    trading_day: date,
) -> tuple[list[OpenPosition], list[BatchAnomaly]]:
    """
    Split active positions into the ones to calculate and report anomalies.

    Eligible: not among the successful prior results, opened on or before
    ``trading_day``, and not already recorded under this operation.
    Anomalies: positions whose prior result failed and which are no longer
    active.
    """
    calculated = {r.position_id for r in prior if r.is_success}
    recorded = {r.item_id for r in prior if r.operation_id == operation_id}

    eligible = [
        p for p in positions
        if p.id not in calculated
        and p.open_timestamp.date() <= trading_day
        and make_item_id(operation_id, p.id) not in recorded
    ]

    active_ids = {p.id for p in positions}
    anomalies: dict[str, BatchAnomaly] = {}
    for r in prior:
        if not r.is_success and r.position_id not in active_ids:
            anomalies.setdefault(
                r.position_id,
                BatchAnomaly(
                    position_id=r.position_id,
                    item_id=r.item_id,
                    trading_day=r.trading_day,
                    error=r.error,
                ),
            )
    return eligible, list(anomalies.values())


class BatchCalculationEngine:
    """Batch calculation engine for one ``CalculationKind``.

    Contract:
        - ``run_batch()`` runs the full lock-guarded calculation.
        - ``get_operation_state()`` aggregates a run's persisted results.
        - ``set_was_charged()`` records the downstream charge outcome.

    Non-goals:
        - Does NOT emit events -- the command handler does.
        - Does NOT retry failed items within a run.
    """

    def __init__(
        self,
        session: Session,
        kind: CalculationKind,
        task_registry: TaskRegistry,
        position_source: PositionSource,
        lock: RedisDistributedLock,
        holder_id: str | None = None,
        lock_ttl: timedelta = DEFAULT_LOCK_TTL,
        clock: Clock | None = None,
        max_workers: int = 1,
    ):
        self._session = session
        self._task: CalculationTask = task_registry.get(kind)
        self._positions = position_source
        self._lock = lock
        self._holder_id = holder_id or socket.gethostname()
        self._lock_ttl = lock_ttl
        self._clock = clock or SystemClock()
        self._max_workers = max(1, max_workers)
        self._results = CalculationResultRepository(session, kind)

    @property
    def kind(self) -> CalculationKind:
        return self._task.kind

    @property
    def results(self) -> CalculationResultRepository:
        return self._results

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def run_batch(
        self,
        operation_id: str,
        trading_day: date,
        parameters: dict[str, Any] | None = None,
    ) -> list[CalculationResult]:
        """Calculate every eligible position for ``trading_day``.

        Raises:
            BatchAlreadyRunningError: If another holder runs this kind.
            TradingDayOrderError: If a later trading day is already calculated.
        """
        parameters = parameters or {}
        with LogContext.bind(
            operation_id=operation_id,
            trading_day=trading_day.isoformat(),
            holder_id=self._holder_id,
        ):
            with self._lock.hold(self._task.lock_key, self._holder_id, self._lock_ttl):
                start = time.monotonic()
                positions = self._positions.get_active()
                prior = self._results.get_for_trading_day(trading_day)
                self._check_ordering(prior, trading_day)

                eligible, anomalies = select_eligible(
                    positions, prior, operation_id, trading_day,
                )
                if anomalies:
                    logger.error(
                        "failed_positions_closed_before_recalculation",
                        extra={
                            "kind": self.kind.value,
                            "position_ids": [a.position_id for a in anomalies],
                        },
                    )

                logger.info(
                    "batch_started",
                    extra={
                        "kind": self.kind.value,
                        "active_positions": len(positions),
                        "eligible_positions": len(eligible),
                    },
                )

                context = self._task.prepare_context(parameters)
                results = self._calculate_all(eligible, context, operation_id, trading_day)

                self._results.bulk_insert(results)
                self._session.commit()

                failed = sum(1 for r in results if not r.is_success)
                logger.info(
                    "batch_finished",
                    extra={
                        "kind": self.kind.value,
                        "succeeded": len(results) - failed,
                        "failed": failed,
                        "duration_ms": int((time.monotonic() - start) * 1000),
                    },
                )
                return results

    def _check_ordering(
        self, prior: Sequence[CalculationResult], trading_day: date,
    ) -> None:
        if not prior:
            return
        latest = max(r.trading_day for r in prior)
        if latest > trading_day:
            logger.error(
                "trading_day_order_violation",
                extra={
                    "kind": self.kind.value,
                    "latest_trading_day": latest.isoformat(),
                },
            )
            raise TradingDayOrderError(trading_day.isoformat(), latest.isoformat())

    def _calculate_all(
        self,
        positions: list[OpenPosition],
        context: Any,
        operation_id: str,
        trading_day: date,
    ) -> list[CalculationResult]:
        def calculate(position: OpenPosition) -> CalculationResult:
            return self._calculate_one(position, context, operation_id, trading_day)

        if self._max_workers == 1 or len(positions) <= 1:
            return [calculate(p) for p in positions]

        with ThreadPoolExecutor(
            max_workers=self._max_workers,
            thread_name_prefix=f"{self.kind.value}-calc",
        ) as pool:
            return list(pool.map(calculate, positions))

    def _calculate_one(
        self,
        position: OpenPosition,
        context: Any,
        operation_id: str,
        trading_day: date,
    ) -> CalculationResult:
        now = self._clock.now()
        try:
            return self._task.calculate_item(
                position, context, operation_id, trading_day, now,
            )
        except Exception as exc:
            logger.error(
                "item_calculation_failed",
                exc_info=True,
                extra={
                    "kind": self.kind.value,
                    "position_id": position.id,
                    "asset_pair_id": position.asset_pair_id,
                },
            )
            return CalculationResult(
                operation_id=operation_id,
                position_id=position.id,
                account_id=position.account_id,
                instrument=position.asset_pair_id,
                direction=position.direction,
                volume=position.current_volume,
                trading_day=trading_day,
                time=now,
                is_success=False,
                error=str(exc) or type(exc).__name__,
            )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_operation_state(self, identifier: str) -> OperationStateCounts:
        """Counts for a run; accepts an operation id or any of its item ids.

        The identifier is first taken as an operation id, so operation ids
        containing the separator resolve to their own run.
        """
        counts = self._results.get_operation_state(identifier)
        operation_id = extract_operation_id(identifier)
        if counts.total == 0 and operation_id != identifier:
            counts = self._results.get_operation_state(operation_id)
        return counts

    def set_was_charged(self, item_id: str, was_charged: bool) -> int:
        return self._results.set_was_charged(item_id, was_charged)

    def get_history(
        self,
        from_day: date,
        to_day: date | None = None,
        account_id: str | None = None,
    ) -> list[CalculationResult]:
        return self._results.get_history(from_day, to_day, account_id)
