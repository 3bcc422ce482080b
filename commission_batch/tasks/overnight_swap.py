"""
Overnight swap calculation task.

Prices the daily financing charge of every open position.  Reference data
(asset pairs, latest interest rates) is loaded once per run; the swap rate of
an instrument is resolved through the rate settings cache on first use and
memoised for the rest of the run.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol

from commission_batch.domain.types import CalculationKind, CalculationResult
from commission_engines.pricing import calculate_overnight_swap
from commission_kernel.domain.rates import OvernightSwapRate
from commission_kernel.domain.sources import (
    AssetPairSource,
    InterestRateSource,
    QuoteRateProvider,
)
from commission_kernel.domain.values import AssetPair, OpenPosition
from commission_kernel.exceptions import AssetPairNotFoundError, FxRateNotFoundError

OVERNIGHT_SWAP_LOCK_KEY = "CommissionService:OvernightSwapProcess"


class OvernightSwapRateProvider(Protocol):
    def get_overnight_swap_rate(self, asset_pair_id: str) -> OvernightSwapRate: ...


@dataclass
class OvernightSwapContext:
    """Per-run reference data."""

    asset_pairs: dict[str, AssetPair]
    interest_rates: dict[str, Decimal]
    number_of_financing_days: int | None = None
    financing_days_per_year: int | None = None
    rates: dict[str, OvernightSwapRate] = field(default_factory=dict)
    rates_lock: threading.Lock = field(default_factory=threading.Lock)


class OvernightSwapTask:
    """Overnight swap flavour of the batch calculation."""

    def __init__(
        self,
        asset_pairs: AssetPairSource,
        interest_rates: InterestRateSource,
        quote_rates: QuoteRateProvider,
        rate_provider: OvernightSwapRateProvider,
        commission_asset: str | None = None,
    ):
        self._asset_pairs = asset_pairs
        self._interest_rates = interest_rates
        self._quote_rates = quote_rates
        self._rate_provider = rate_provider
        # Used when a stored swap rate names no commission asset
        self._commission_asset = commission_asset

    @property
    def kind(self) -> CalculationKind:
        return CalculationKind.OVERNIGHT_SWAP

    @property
    def lock_key(self) -> str:
        return OVERNIGHT_SWAP_LOCK_KEY

    def prepare_context(self, parameters: dict[str, Any]) -> OvernightSwapContext:
        return OvernightSwapContext(
            asset_pairs={p.id: p for p in self._asset_pairs.list()},
            interest_rates=self._interest_rates.get_all_latest(),
            number_of_financing_days=parameters.get("number_of_financing_days"),
            financing_days_per_year=parameters.get("financing_days_per_year"),
        )

    def calculate_item(
        self,
        position: OpenPosition,
        context: OvernightSwapContext,
        operation_id: str,
        trading_day: date,
        now: datetime,
    ) -> CalculationResult:
        asset_pair = context.asset_pairs.get(position.asset_pair_id)
        if asset_pair is None:
            raise AssetPairNotFoundError(position.asset_pair_id)

        rate = self._rate_for(context, position.asset_pair_id)
        commission_asset = rate.commission_asset or self._commission_asset
        if not commission_asset:
            raise FxRateNotFoundError(
                position.asset_pair_id,
                f"No commission asset configured for {position.asset_pair_id}",
            )
        quote_rate = self._quote_rates.get_quote_rate(
            commission_asset, position.asset_pair_id, asset_pair.legal_entity,
        )

        swap, details = calculate_overnight_swap(
            position=position,
            rate=rate,
            quote_rate=quote_rate,
            interest_rates=context.interest_rates,
            number_of_financing_days=context.number_of_financing_days,
            financing_days_per_year=context.financing_days_per_year,
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
            is_success=True,
            amount=swap,
            details=details,
        )

    def _rate_for(
        self, context: OvernightSwapContext, asset_pair_id: str,
    ) -> OvernightSwapRate:
        with context.rates_lock:
            rate = context.rates.get(asset_pair_id)
        if rate is not None:
            return rate
        # Looked up unlocked; workers racing on one instrument keep the first stored
        rate = self._rate_provider.get_overnight_swap_rate(asset_pair_id)
        with context.rates_lock:
            return context.rates.setdefault(asset_pair_id, rate)
