"""
ChargingCompletionTracker -- waits for every item of a batch run to be charged.

Responsibility:
    After a batch run publishes one charge request per item, counts down the
    per-item "finalized" signals.  When all have arrived the parent ledger
    entry moves STARTED -> FINISHED.  If the timeout fires first, the items
    still outstanding are logged as abandoned and the parent entry is left
    STARTED for inspection.

Architecture position:
    Services -- subscribes to an ``EventChannel`` of charge acknowledgements;
    finalizes through ``OperationLedger`` in its own transaction.

Invariants enforced:
    - Whichever comes first, the last signal or the timer, decides the
      outcome; the other is then a no-op.
    - Timeouts are per tracker (one per operation kind) and may be
      overridden per tracked operation.
    - A batch with no items finishes immediately.
    - Once decided, an operation leaves the active set; only its outcome is
      remembered, for the most recent ``completed_history`` operations.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum

from sqlalchemy.orm import Session

from commission_kernel.db.engine import session_scope
from commission_kernel.domain.clock import Clock, SystemClock
from commission_kernel.domain.operation import CommissionOperationState
from commission_kernel.logging_config import get_logger
from commission_kernel.services.operation_ledger import OperationLedger
from commission_kernel.utils.identifiers import extract_operation_id

logger = get_logger("services.completion_tracker")


class TrackingOutcome(str, Enum):
    FINISHED = "finished"
    TIMED_OUT = "timed_out"


@dataclass
class _Tracking:
    operation_id: str
    expected: frozenset[str]
    pending: set[str]
    done: threading.Event = field(default_factory=threading.Event)
    timer: threading.Timer | None = None
    outcome: TrackingOutcome | None = None


class ChargingCompletionTracker:
    """
    Countdown-with-timeout over the items of batch runs of one kind.

    Contract:
        - ``track_charging()`` starts tracking; repeated calls for the same
          operation are ignored.
        - ``on_item_finalized()`` / ``consume_event()`` count one item down.
        - ``wait()`` blocks until the outcome is known.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        operation_name: str,
        timeout: timedelta,
        clock: Clock | None = None,
        rank: int = 0,
        completed_history: int = 1024,
    ):
        self._session_factory = session_factory
        self._operation_name = operation_name
        self._timeout = timeout
        self._clock = clock or SystemClock()
        self._rank = rank
        self._completed_history = completed_history
        self._tracked: dict[str, _Tracking] = {}
        self._completed: OrderedDict[str, TrackingOutcome] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def rank(self) -> int:
        return self._rank

    @property
    def operation_name(self) -> str:
        return self._operation_name

    def track_charging(
        self,
        operation_id: str,
        item_ids: Iterable[str],
        timeout: timedelta | None = None,
    ) -> None:
        expected = frozenset(item_ids)
        tracking = _Tracking(
            operation_id=operation_id, expected=expected, pending=set(expected),
        )
        with self._lock:
            if operation_id in self._tracked or operation_id in self._completed:
                logger.info(
                    "charging_already_tracked",
                    extra={"operation_id": operation_id},
                )
                return
            self._tracked[operation_id] = tracking
            if expected:
                seconds = max(0.0, (timeout or self._timeout).total_seconds())
                tracking.timer = threading.Timer(
                    seconds, self._on_timeout, args=(operation_id,),
                )
                tracking.timer.daemon = True
                tracking.timer.start()

        logger.info(
            "charging_tracking_started",
            extra={
                "operation_id": operation_id,
                "operation_name": self._operation_name,
                "item_count": len(expected),
            },
        )
        if not expected:
            self._finish(tracking)

    def on_item_finalized(self, item_id: str) -> None:
        operation_id = extract_operation_id(item_id)
        with self._lock:
            tracking = self._tracked.get(operation_id)
            if tracking is None or tracking.outcome is not None:
                logger.debug(
                    "finalized_item_untracked", extra={"item_id": item_id},
                )
                return
            if item_id not in tracking.pending:
                return
            tracking.pending.discard(item_id)
            if tracking.pending:
                return
            # Claim the outcome before releasing the lock so the timer loses
            tracking.outcome = TrackingOutcome.FINISHED
            if tracking.timer is not None:
                tracking.timer.cancel()

        self._finish(tracking)

    def consume_event(self, sender: object, event: object) -> None:
        """``EventChannel`` listener: the event's ``operation_id`` is an item id."""
        self.on_item_finalized(event.operation_id)

    def wait(
        self, operation_id: str, timeout: float | None = None,
    ) -> TrackingOutcome | None:
        """Block until the outcome is known; None when unknown or still open."""
        with self._lock:
            tracking = self._tracked.get(operation_id)
            if tracking is None:
                return self._completed.get(operation_id)
        tracking.done.wait(timeout)
        return tracking.outcome if tracking.done.is_set() else None

    def pending(self, operation_id: str) -> frozenset[str]:
        """Items still awaited; empty once the operation is decided."""
        with self._lock:
            tracking = self._tracked.get(operation_id)
            return frozenset(tracking.pending) if tracking is not None else frozenset()

    def active_operations(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._tracked)

    def stop(self) -> None:
        """Cancel every running timer; outstanding operations stay STARTED."""
        with self._lock:
            for tracking in self._tracked.values():
                if tracking.timer is not None:
                    tracking.timer.cancel()

    def _on_timeout(self, operation_id: str) -> None:
        with self._lock:
            tracking = self._tracked.get(operation_id)
            if tracking is None or tracking.outcome is not None:
                return
            tracking.outcome = TrackingOutcome.TIMED_OUT
            abandoned = sorted(tracking.pending)

        logger.warning(
            "charging_timed_out",
            extra={
                "operation_id": operation_id,
                "operation_name": self._operation_name,
                "abandoned_item_ids": abandoned,
                "charged": len(tracking.expected) - len(abandoned),
            },
        )
        self._retire(tracking)

    def _retire(self, tracking: _Tracking) -> None:
        with self._lock:
            self._tracked.pop(tracking.operation_id, None)
            self._completed[tracking.operation_id] = tracking.outcome
            self._completed.move_to_end(tracking.operation_id)
            while len(self._completed) > self._completed_history:
                self._completed.popitem(last=False)
        tracking.done.set()

    def _finish(self, tracking: _Tracking) -> None:
        tracking.outcome = TrackingOutcome.FINISHED
        try:
            with session_scope(self._session_factory) as session:
                ledger = OperationLedger(session, self._clock)
                info = ledger.get(self._operation_name, tracking.operation_id)
                if info is None:
                    logger.warning(
                        "charging_finished_without_ledger_entry",
                        extra={"operation_id": tracking.operation_id},
                    )
                    return
                ledger.try_transition(
                    info,
                    CommissionOperationState.STARTED,
                    CommissionOperationState.FINISHED,
                )
            logger.info(
                "charging_finished",
                extra={
                    "operation_id": tracking.operation_id,
                    "operation_name": self._operation_name,
                    "item_count": len(tracking.expected),
                },
            )
        finally:
            self._retire(tracking)
