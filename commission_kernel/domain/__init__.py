"""
Pure domain layer.

Value objects and state machines with NO dependencies on the ORM, the
database, Redis, or the wall clock.
"""

from commission_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from commission_kernel.domain.operation import (
    OPERATION_WORKFLOW,
    CommissionOperationState,
    OperationData,
    OperationExecutionInfo,
    switch_state,
)
from commission_kernel.domain.rates import (
    ON_BEHALF_KEY,
    OnBehalfRate,
    OrderExecutionRate,
    OvernightSwapRate,
    RateSettingKind,
)
from commission_kernel.domain.values import AssetPair, OpenPosition, PositionDirection

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "OPERATION_WORKFLOW",
    "CommissionOperationState",
    "OperationData",
    "OperationExecutionInfo",
    "switch_state",
    "ON_BEHALF_KEY",
    "OnBehalfRate",
    "OrderExecutionRate",
    "OvernightSwapRate",
    "RateSettingKind",
    "AssetPair",
    "OpenPosition",
    "PositionDirection",
]
