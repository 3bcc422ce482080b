"""
commission_batch.tasks -- Task protocol, registry, and the two calculation flavours.
"""

from commission_batch.tasks.base import CalculationTask, TaskRegistry
from commission_batch.tasks.daily_pnl import DAILY_PNL_LOCK_KEY, DailyPnlTask
from commission_batch.tasks.overnight_swap import (
    OVERNIGHT_SWAP_LOCK_KEY,
    OvernightSwapContext,
    OvernightSwapTask,
)

__all__ = [
    "CalculationTask",
    "TaskRegistry",
    "DAILY_PNL_LOCK_KEY",
    "DailyPnlTask",
    "OVERNIGHT_SWAP_LOCK_KEY",
    "OvernightSwapContext",
    "OvernightSwapTask",
]
