"""
commission_services -- Package init and public API.

Responsibility:
    Stateful orchestration: rate settings over Redis and the durable store,
    event contracts, the rank-ordered event channel, completion tracking and
    the command handlers that drive the batch calculations.

Architecture position:
    Services -- stateful orchestration over batch + engines + kernel.

    Dependency direction:
        commission_services/ -> commission_batch/   (allowed)
        commission_services/ -> commission_engines/ (allowed)
        commission_services/ -> commission_kernel/  (allowed)
        commission_kernel/   -> commission_services/ (FORBIDDEN, except the
                                ORM registry used by create_tables)
"""

from commission_services.commands import (
    DAILY_PNL_OPERATION_NAME,
    OVERNIGHT_SWAP_OPERATION_NAME,
    ChargeAcknowledgementHandler,
    DailyPnlCommandsHandler,
    OvernightSwapCommandsHandler,
    StartDailyPnlProcessCommand,
    StartOvernightSwapProcessCommand,
)
from commission_services.commission_calc import CommissionCalcService, OnBehalfCommission
from commission_services.completion_tracker import (
    ChargingCompletionTracker,
    TrackingOutcome,
)
from commission_services.container import (
    CommissionServiceContainer,
    ScopedRateSettings,
    build_container,
)
from commission_services.event_channel import EventChannel
from commission_services.events import EventPublisher, InMemoryEventPublisher
from commission_services.rate_settings import (
    RateSettingsCache,
    RateSettingsService,
    RateSettingsStore,
)

__all__ = [
    "DAILY_PNL_OPERATION_NAME",
    "OVERNIGHT_SWAP_OPERATION_NAME",
    "ChargeAcknowledgementHandler",
    "ChargingCompletionTracker",
    "CommissionCalcService",
    "CommissionServiceContainer",
    "DailyPnlCommandsHandler",
    "EventChannel",
    "EventPublisher",
    "InMemoryEventPublisher",
    "OnBehalfCommission",
    "OvernightSwapCommandsHandler",
    "RateSettingsCache",
    "RateSettingsService",
    "RateSettingsStore",
    "ScopedRateSettings",
    "StartDailyPnlProcessCommand",
    "StartOvernightSwapProcessCommand",
    "TrackingOutcome",
    "build_container",
]
