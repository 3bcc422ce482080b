"""
Command handling for the batch calculation workflows.

Responsibility:
    Turns a "start" command into exactly one batch run, however many times
    the command is delivered, and drives the per-item charging that follows.

Architecture position:
    Services -- the imperative shell.  Owns transaction boundaries through a
    session factory; composes ``OperationLedger``, ``BatchCalculationEngine``,
    an ``EventPublisher`` and a ``ChargingCompletionTracker``.

Control flow of ``handle()``:
    1. Ledger get-or-create of ``(operation name, operation id)`` in INITIATED.
    2. Guarded INITIATED -> STARTED; when it does not apply the command is a
       duplicate and handling ends as a no-op success.
    3. Run the batch.  Any failure publishes a "start failed" event and ends
       handling without retry.
    4. Publish the "calculated" event with total and failed counts.
    5. Save the parent ledger entry and create one sub-operation ledger entry
       in STARTED per successful item; commit.
    6. Start completion tracking over the successful items.
    7. Publish one internal "ready for charging" event per successful item.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from sqlalchemy.orm import Session

from commission_batch.domain.types import CalculationKind, CalculationResult
from commission_batch.services.calculation_engine import BatchCalculationEngine
from commission_batch.services.results_repository import CalculationResultRepository
from commission_kernel.db.engine import session_scope
from commission_kernel.domain.clock import Clock, SystemClock
from commission_kernel.domain.operation import (
    CommissionOperationState,
    OperationData,
    OperationExecutionInfo,
)
from commission_kernel.logging_config import LogContext, get_logger
from commission_kernel.services.operation_ledger import OperationLedger
from commission_services.completion_tracker import ChargingCompletionTracker
from commission_services.event_channel import EventChannel
from commission_services.events import (
    DailyPnlCalculatedInternalEvent,
    DailyPnlsCalculatedEvent,
    DailyPnlsStartFailedEvent,
    EventPublisher,
    ItemChargedEvent,
    ItemChargeFailedEvent,
    OvernightSwapCalculatedInternalEvent,
    OvernightSwapsCalculatedEvent,
    OvernightSwapsStartFailedEvent,
)

logger = get_logger("services.commands")

OVERNIGHT_SWAP_OPERATION_NAME = "OvernightSwapCommission"
DAILY_PNL_OPERATION_NAME = "DailyPnlCommission"

EngineFactory = Callable[[Session], BatchCalculationEngine]


# =============================================================================
# Commands
# =============================================================================


@dataclass(frozen=True)
class StartOvernightSwapProcessCommand:
    operation_id: str
    creation_timestamp: datetime
    number_of_financing_days: int | None = None
    financing_days_per_year: int | None = None
    trading_day: date | None = None

    @property
    def effective_trading_day(self) -> date:
        return self.trading_day or self.creation_timestamp.date()


@dataclass(frozen=True)
class StartDailyPnlProcessCommand:
    operation_id: str
    creation_timestamp: datetime
    trading_day: date | None = None

    @property
    def effective_trading_day(self) -> date:
        return self.trading_day or self.creation_timestamp.date()


# =============================================================================
# Batch command handlers
# =============================================================================


class _BatchCommandsHandler(ABC):
    """Shared control flow of the two batch "start" commands."""

    operation_name: str

    def __init__(
        self,
        session_factory: Callable[[], Session],
        engine_factory: EngineFactory,
        publisher: EventPublisher,
        tracker: ChargingCompletionTracker,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._engine_factory = engine_factory
        self._publisher = publisher
        self._tracker = tracker
        self._clock = clock or SystemClock()

    def handle(self, command: Any) -> None:
        trading_day = command.effective_trading_day
        with LogContext.bind(
            correlation_id=command.operation_id,
            operation_name=self.operation_name,
            operation_id=command.operation_id,
            trading_day=trading_day.isoformat(),
        ):
            with session_scope(self._session_factory) as session:
                ledger = OperationLedger(session, self._clock)
                info = ledger.get_or_create(
                    self.operation_name,
                    command.operation_id,
                    lambda: OperationExecutionInfo(
                        operation_name=self.operation_name,
                        operation_id=command.operation_id,
                        last_modified=self._clock.now(),
                        data=self._operation_data(
                            command, trading_day, CommissionOperationState.INITIATED,
                        ),
                    ),
                )

                if not ledger.try_transition(
                    info,
                    CommissionOperationState.INITIATED,
                    CommissionOperationState.STARTED,
                ):
                    logger.info(
                        "duplicate_command_ignored",
                        extra={"current_state": info.state.value},
                    )
                    return
                # The claim must be durable before the batch runs
                session.commit()

                engine = self._engine_factory(session)
                try:
                    results = engine.run_batch(
                        command.operation_id, trading_day, self._parameters(command),
                    )
                except Exception as exc:
                    session.rollback()
                    logger.exception("batch_start_failed")
                    self._publisher.publish(
                        self._start_failed_event(command.operation_id, str(exc))
                    )
                    return

                failed = sum(1 for r in results if not r.is_success)
                self._publisher.publish(
                    self._calculated_event(command.operation_id, len(results), failed)
                )

                charged = [r for r in results if r.is_success]
                ledger.save(info)
                for result in charged:
                    ledger.get_or_create(
                        self.operation_name,
                        result.item_id,
                        lambda result=result: OperationExecutionInfo(
                            operation_name=self.operation_name,
                            operation_id=result.item_id,
                            last_modified=self._clock.now(),
                            data=self._operation_data(
                                command, trading_day, CommissionOperationState.STARTED,
                            ),
                        ),
                    )
                # The tracker finalizes the parent in its own transaction
                session.commit()

                self._tracker.track_charging(
                    command.operation_id, [r.item_id for r in charged],
                )
                for result in charged:
                    self._publisher.publish(self._item_event(result))

                logger.info(
                    "batch_command_handled",
                    extra={"total": len(results), "failed": failed},
                )

    def _operation_data(
        self, command: Any, trading_day: date, state: CommissionOperationState,
    ) -> OperationData:
        return OperationData(state=state, trading_day=trading_day)

    def _parameters(self, command: Any) -> dict[str, Any]:
        return {}

    @abstractmethod
    def _calculated_event(self, operation_id: str, total: int, failed: int) -> object:
        ...

    @abstractmethod
    def _start_failed_event(self, operation_id: str, reason: str) -> object:
        ...

    @abstractmethod
    def _item_event(self, result: CalculationResult) -> object:
        ...


class OvernightSwapCommandsHandler(_BatchCommandsHandler):
    operation_name = OVERNIGHT_SWAP_OPERATION_NAME

    def _operation_data(
        self,
        command: StartOvernightSwapProcessCommand,
        trading_day: date,
        state: CommissionOperationState,
    ) -> OperationData:
        return OperationData(
            state=state,
            trading_day=trading_day,
            number_of_financing_days=command.number_of_financing_days,
            financing_days_per_year=command.financing_days_per_year,
        )

    def _parameters(self, command: StartOvernightSwapProcessCommand) -> dict[str, Any]:
        return {
            "number_of_financing_days": command.number_of_financing_days,
            "financing_days_per_year": command.financing_days_per_year,
        }

    def _calculated_event(self, operation_id: str, total: int, failed: int) -> object:
        return OvernightSwapsCalculatedEvent(
            operation_id=operation_id,
            creation_timestamp=self._clock.now(),
            total=total,
            failed=failed,
        )

    def _start_failed_event(self, operation_id: str, reason: str) -> object:
        return OvernightSwapsStartFailedEvent(
            operation_id=operation_id,
            creation_timestamp=self._clock.now(),
            fail_reason=reason,
        )

    def _item_event(self, result: CalculationResult) -> object:
        return OvernightSwapCalculatedInternalEvent(
            operation_id=result.item_id,
            creation_timestamp=self._clock.now(),
            account_id=result.account_id,
            position_id=result.position_id,
            asset_pair_id=result.instrument,
            swap_amount=result.amount,
            trading_day=result.trading_day,
            volume=result.volume,
        )


class DailyPnlCommandsHandler(_BatchCommandsHandler):
    operation_name = DAILY_PNL_OPERATION_NAME

    def _calculated_event(self, operation_id: str, total: int, failed: int) -> object:
        return DailyPnlsCalculatedEvent(
            operation_id=operation_id,
            creation_timestamp=self._clock.now(),
            total=total,
            failed=failed,
        )

    def _start_failed_event(self, operation_id: str, reason: str) -> object:
        return DailyPnlsStartFailedEvent(
            operation_id=operation_id,
            creation_timestamp=self._clock.now(),
            fail_reason=reason,
        )

    def _item_event(self, result: CalculationResult) -> object:
        return DailyPnlCalculatedInternalEvent(
            operation_id=result.item_id,
            creation_timestamp=self._clock.now(),
            account_id=result.account_id,
            position_id=result.position_id,
            asset_pair_id=result.instrument,
            pnl=result.amount,
            trading_day=result.trading_day,
            volume=result.volume,
            fx_rate=result.fx_rate,
        )


# =============================================================================
# Charge acknowledgements
# =============================================================================


class ChargeAcknowledgementHandler:
    """
    Records downstream charge outcomes for one calculation kind.

    Contract:
        - Sets ``was_charged`` on the item's result.
        - Moves the item's sub-operation STARTED -> FINISHED; a duplicate
          acknowledgement finds it FINISHED and stops there.
        - Forwards first-time acknowledgements to ``channel``.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        kind: CalculationKind,
        operation_name: str,
        channel: EventChannel,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._kind = kind
        self._operation_name = operation_name
        self._channel = channel
        self._clock = clock or SystemClock()

    def handle_charged(self, event: ItemChargedEvent) -> bool:
        return self._acknowledge(event, was_charged=True)

    def handle_charge_failed(self, event: ItemChargeFailedEvent) -> bool:
        logger.warning(
            "item_charge_failed",
            extra={"item_id": event.operation_id, "reason": event.reason},
        )
        return self._acknowledge(event, was_charged=False)

    def _acknowledge(self, event: Any, was_charged: bool) -> bool:
        item_id = event.operation_id
        with session_scope(self._session_factory) as session:
            CalculationResultRepository(session, self._kind).set_was_charged(
                item_id, was_charged,
            )
            ledger = OperationLedger(session, self._clock)
            info = ledger.get_or_create(
                self._operation_name,
                item_id,
                lambda: OperationExecutionInfo(
                    operation_name=self._operation_name,
                    operation_id=item_id,
                    last_modified=self._clock.now(),
                    data=OperationData(state=CommissionOperationState.STARTED),
                ),
            )
            finalized = ledger.try_transition(
                info,
                CommissionOperationState.STARTED,
                CommissionOperationState.FINISHED,
            )

        if finalized:
            self._channel.send_event(self, event)
        else:
            logger.info("duplicate_charge_ack_ignored", extra={"item_id": item_id})
        return finalized
