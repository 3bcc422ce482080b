"""
Daily PnL calculation task.

Charges each open position the PnL accrued since its last charge, in the
account currency at the position's fx rate.  Needs no reference data.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from commission_batch.domain.types import CalculationKind, CalculationResult
from commission_engines.pricing import calculate_daily_pnl
from commission_kernel.domain.values import OpenPosition

DAILY_PNL_LOCK_KEY = "CommissionService:DailyPnlProcess"


class DailyPnlTask:
    """Daily PnL flavour of the batch calculation."""

    @property
    def kind(self) -> CalculationKind:
        return CalculationKind.DAILY_PNL

    @property
    def lock_key(self) -> str:
        return DAILY_PNL_LOCK_KEY

    def prepare_context(self, parameters: dict[str, Any]) -> None:
        return None

    def calculate_item(
        self,
        position: OpenPosition,
        context: None,
        operation_id: str,
        trading_day: date,
        now: datetime,
    ) -> CalculationResult:
        pnl, fx_rate = calculate_daily_pnl(position=position)
        return CalculationResult(
            operation_id=operation_id,
            position_id=position.id,
            account_id=position.account_id,
            instrument=position.asset_pair_id,
            direction=position.direction,
            volume=position.current_volume,
            trading_day=trading_day,
            time=now,
            is_success=True,
            amount=pnl,
            fx_rate=fx_rate,
        )
