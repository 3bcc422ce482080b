"""
CommissionCalcService -- per-order commissions priced from the rate settings.

Responsibility:
    Prices the two commissions charged outside the batch runs: order
    execution (per filled order) and on-behalf (per action an operator took
    on a client's order).  Rates come from the rate settings (cache, store,
    then defaults); conversion quotes come from the ``QuoteRateProvider``.

Architecture position:
    Services -- composes a rate lookup, a ``QuoteRateProvider`` and the pure
    engines in ``commission_engines.pricing``.

Failure modes:
    - FxRateNotFoundError when no conversion quote is available.
    - ValueError for a negative number of on-behalf actions.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from commission_engines.pricing import (
    calculate_on_behalf_commission,
    calculate_order_execution_commission,
)
from commission_kernel.domain.rates import OnBehalfRate, OrderExecutionRate
from commission_kernel.domain.sources import QuoteRateProvider
from commission_kernel.logging_config import get_logger

logger = get_logger("services.commission_calc")


class CommissionRateLookup(Protocol):
    def get_order_execution_rate(self, asset_pair_id: str) -> OrderExecutionRate: ...

    def get_on_behalf_rate(self) -> OnBehalfRate: ...


@dataclass(frozen=True)
class OnBehalfCommission:
    actions_num: int
    commission: Decimal
    commission_asset: str


class CommissionCalcService:
    """
    Contract:
        - Order execution: ``min(cap, max(floor, rate * quote * |volume|))``
          in the rate's commission asset.
        - On behalf: ``actions_num * commission`` converted from the rate's
          commission asset into the account asset.
        - Never fails for lack of configured rates; defaults apply.
    """

    def __init__(self, rates: CommissionRateLookup, quote_rates: QuoteRateProvider):
        self._rates = rates
        self._quote_rates = quote_rates

    def calculate_order_execution_commission(
        self, instrument: str, legal_entity: str, volume: Decimal,
    ) -> Decimal:
        rate = self._rates.get_order_execution_rate(instrument)
        quote_rate = self._quote_rates.get_quote_rate(
            rate.commission_asset, instrument, legal_entity,
        )
        commission = calculate_order_execution_commission(
            rate=rate, quote_rate=quote_rate, volume=volume,
        )
        logger.info(
            "order_execution_commission_calculated",
            extra={
                "instrument": instrument,
                "legal_entity": legal_entity,
                "volume": volume,
                "commission": commission,
                "commission_asset": rate.commission_asset,
            },
        )
        return commission

    def calculate_on_behalf_commission(
        self, order_id: str, actions_num: int, account_asset_id: str,
    ) -> OnBehalfCommission:
        """``actions_num`` counts the on-behalf order changes to charge for."""
        rate = self._rates.get_on_behalf_rate()
        fx_rate = self._quote_rates.get_fx_rate(
            rate.commission_asset, account_asset_id, rate.legal_entity,
        )
        commission = calculate_on_behalf_commission(
            rate=rate, actions_num=actions_num, quote_rate=fx_rate,
        )
        logger.info(
            "on_behalf_commission_calculated",
            extra={
                "order_id": order_id,
                "actions_num": actions_num,
                "commission": commission,
                "account_asset_id": account_asset_id,
            },
        )
        return OnBehalfCommission(
            actions_num=actions_num,
            commission=commission,
            commission_asset=account_asset_id,
        )
