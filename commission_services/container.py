"""
commission_services.container -- Composition root for one service instance.

Responsibility:
    Creates every long-lived collaborator exactly once and wires them
    together: the distributed lock, the rate settings cache, the calculation
    task registry, the commission calculator, one acknowledgement channel
    and completion tracker per calculation kind, the command handlers and
    the acknowledgement handlers.

Architecture position:
    Services -- top of the service layer and the only place handlers,
    trackers and engines are constructed.

Invariants enforced:
    - One tracker per calculation kind, subscribed to that kind's
      acknowledgement channel at the tracker's rank.
    - Batch engines are built per command on the handler's session, holding
      the lock as ``settings.instance_id`` for ``distributed_lock_timeout``.

Usage:
    container = build_container(
        get_active_config(),
        positions=..., asset_pairs=..., interest_rates=..., quote_rates=...,
        publisher=bus_publisher,
    )
    container.daily_pnl_handler.handle(command)
"""

from __future__ import annotations

from collections.abc import Callable

import redis
from sqlalchemy.orm import Session

from commission_batch.domain.types import CalculationKind
from commission_batch.services.calculation_engine import BatchCalculationEngine
from commission_batch.tasks import DailyPnlTask, OvernightSwapTask, TaskRegistry
from commission_config.schema import CommissionServiceSettings
from commission_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from commission_kernel.domain.clock import Clock, SystemClock
from commission_kernel.domain.rates import (
    OnBehalfRate,
    OrderExecutionRate,
    OvernightSwapRate,
)
from commission_kernel.domain.sources import (
    AssetPairSource,
    InterestRateSource,
    PositionSource,
    QuoteRateProvider,
)
from commission_kernel.logging_config import get_logger
from commission_kernel.services.distributed_lock import RedisDistributedLock
from commission_services.commands import (
    DAILY_PNL_OPERATION_NAME,
    OVERNIGHT_SWAP_OPERATION_NAME,
    ChargeAcknowledgementHandler,
    DailyPnlCommandsHandler,
    OvernightSwapCommandsHandler,
)
from commission_services.commission_calc import CommissionCalcService
from commission_services.completion_tracker import ChargingCompletionTracker
from commission_services.event_channel import EventChannel
from commission_services.events import EventPublisher
from commission_services.rate_settings import (
    RateSettingsCache,
    RateSettingsService,
    RateSettingsStore,
)

logger = get_logger("services.container")


class ScopedRateSettings:
    """Rate lookups outside a caller's transaction, each in a short one of its own."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        open_service: Callable[[Session], RateSettingsService],
    ):
        self._session_factory = session_factory
        self._open_service = open_service

    def get_overnight_swap_rate(self, asset_pair_id: str) -> OvernightSwapRate:
        with session_scope(self._session_factory) as session:
            return self._open_service(session).get_overnight_swap_rate(asset_pair_id)

    def get_order_execution_rate(self, asset_pair_id: str) -> OrderExecutionRate:
        with session_scope(self._session_factory) as session:
            return self._open_service(session).get_order_execution_rate(asset_pair_id)

    def get_on_behalf_rate(self) -> OnBehalfRate:
        with session_scope(self._session_factory) as session:
            return self._open_service(session).get_on_behalf_rate()


class CommissionServiceContainer:
    """Wiring of one service instance.

    Non-goals:
        - Does NOT create the database engine or the Redis client; see
          ``build_container()``.
        - Does NOT subscribe handlers to a message bus.
    """

    def __init__(
        self,
        settings: CommissionServiceSettings,
        session_factory: Callable[[], Session],
        redis_client: redis.Redis,
        positions: PositionSource,
        asset_pairs: AssetPairSource,
        interest_rates: InterestRateSource,
        quote_rates: QuoteRateProvider,
        publisher: EventPublisher,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings
        self._session_factory = session_factory
        self._positions = positions
        self._publisher = publisher
        self._clock = clock or SystemClock()

        self.lock = RedisDistributedLock(redis_client)
        self.rate_cache = RateSettingsCache(redis_client)

        scoped_rates = ScopedRateSettings(session_factory, self.rate_settings)
        self.commission_calc = CommissionCalcService(scoped_rates, quote_rates)

        self.task_registry = TaskRegistry()
        self.task_registry.register(
            OvernightSwapTask(
                asset_pairs,
                interest_rates,
                quote_rates,
                scoped_rates,
                commission_asset=settings.default_rate_settings.overnight_swap.commission_asset,
            )
        )
        self.task_registry.register(DailyPnlTask())

        self.overnight_swap_acks = EventChannel("overnight_swap_charge_acks")
        self.overnight_swap_tracker = self._tracker(
            OVERNIGHT_SWAP_OPERATION_NAME,
            settings.overnight_swap_charging_timeout,
            self.overnight_swap_acks,
        )
        self.overnight_swap_handler = OvernightSwapCommandsHandler(
            session_factory,
            self._engine_factory(CalculationKind.OVERNIGHT_SWAP),
            publisher,
            self.overnight_swap_tracker,
            self._clock,
        )
        self.overnight_swap_ack_handler = ChargeAcknowledgementHandler(
            session_factory,
            CalculationKind.OVERNIGHT_SWAP,
            OVERNIGHT_SWAP_OPERATION_NAME,
            self.overnight_swap_acks,
            self._clock,
        )

        self.daily_pnl_acks = EventChannel("daily_pnl_charge_acks")
        self.daily_pnl_tracker = self._tracker(
            DAILY_PNL_OPERATION_NAME,
            settings.daily_pnl_charging_timeout,
            self.daily_pnl_acks,
        )
        self.daily_pnl_handler = DailyPnlCommandsHandler(
            session_factory,
            self._engine_factory(CalculationKind.DAILY_PNL),
            publisher,
            self.daily_pnl_tracker,
            self._clock,
        )
        self.daily_pnl_ack_handler = ChargeAcknowledgementHandler(
            session_factory,
            CalculationKind.DAILY_PNL,
            DAILY_PNL_OPERATION_NAME,
            self.daily_pnl_acks,
            self._clock,
        )

        logger.info(
            "container_built",
            extra={
                "instance_id": settings.instance_id,
                "tasks": list(self.task_registry.list_tasks()),
            },
        )

    def rate_settings(self, session: Session) -> RateSettingsService:
        """Rate settings service bound to ``session``; the caller commits."""
        return RateSettingsService(
            RateSettingsStore(session),
            self.rate_cache,
            self.settings.default_rate_settings,
            self._publisher,
            self._clock,
        )

    def engine(self, session: Session, kind: CalculationKind) -> BatchCalculationEngine:
        return BatchCalculationEngine(
            session,
            kind,
            self.task_registry,
            self._positions,
            self.lock,
            holder_id=self.settings.instance_id,
            lock_ttl=self.settings.distributed_lock_timeout,
            clock=self._clock,
            max_workers=self.settings.batch_max_workers,
        )

    def stop(self) -> None:
        """Cancel pending charging timers of both trackers."""
        self.overnight_swap_tracker.stop()
        self.daily_pnl_tracker.stop()

    def _engine_factory(
        self, kind: CalculationKind,
    ) -> Callable[[Session], BatchCalculationEngine]:
        return lambda session: self.engine(session, kind)

    def _tracker(self, operation_name, timeout, channel):
        tracker = ChargingCompletionTracker(
            self._session_factory, operation_name, timeout, self._clock,
        )
        channel.subscribe(tracker.consume_event, rank=tracker.rank)
        return tracker


def build_container(
    settings: CommissionServiceSettings,
    positions: PositionSource,
    asset_pairs: AssetPairSource,
    interest_rates: InterestRateSource,
    quote_rates: QuoteRateProvider,
    publisher: EventPublisher,
    clock: Clock | None = None,
    create_schema: bool = False,
) -> CommissionServiceContainer:
    """Connect to the configured database and Redis and wire the service."""
    init_engine_from_url(settings.db_url)
    if create_schema:
        create_tables()
    return CommissionServiceContainer(
        settings,
        get_session_factory(),
        redis.Redis.from_url(settings.redis_url),
        positions,
        asset_pairs,
        interest_rates,
        quote_rates,
        publisher,
        clock,
    )
