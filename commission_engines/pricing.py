"""
Commission pricing engine (``commission_engines.pricing``).

Responsibility
--------------
Pure functions that price one position or one order: the overnight swap
(financing) charge, the order execution commission, the on-behalf
commission and the daily PnL to be charged.

Architecture position
---------------------
**Engines layer** -- pure calculation, zero I/O.  Quote rates and interest
rates are resolved by the caller and passed in.

Invariants enforced
-------------------
* Decimal-only arithmetic; no ``float`` anywhere in a price.
* Deterministic: identical inputs always produce identical outputs.
* The returned swap is charged as it is: a negative value is a debit.

Failure modes
-------------
* ``ValueError`` on a negative actions count.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from commission_engines.tracer import traced_engine
from commission_kernel.domain.rates import (
    OnBehalfRate,
    OrderExecutionRate,
    OvernightSwapRate,
)
from commission_kernel.domain.values import OpenPosition, PositionDirection

DEFAULT_FINANCING_DAYS = 1
DEFAULT_FINANCING_DAYS_PER_YEAR = 365

_ZERO = Decimal("0")


def resolve_interest_rate(
    rate_id: str | None, interest_rates: dict[str, Decimal],
) -> Decimal:
    """Latest value of an interest rate id; unknown or unset ids count as zero."""
    if not rate_id:
        return _ZERO
    return interest_rates.get(rate_id, _ZERO)


@traced_engine("overnight_swap", "1.0")
def calculate_overnight_swap(
    *,
    position: OpenPosition,
    rate: OvernightSwapRate,
    quote_rate: Decimal,
    interest_rates: dict[str, Decimal],
    number_of_financing_days: int | None = None,
    financing_days_per_year: int | None = None,
) -> tuple[Decimal, dict[str, Any]]:
    """
    Overnight financing charge of one position.

    ``basis = -fix - (repo surcharge if short) + (r_base - r_quote) * sign``
    and ``swap = quote_rate * |volume| * basis * days / days_per_year``.

    Returns:
        ``(swap, details)`` where ``details`` records every intermediate
        value as a string for the persisted result.
    """
    days = number_of_financing_days
    if days is None or days <= 0:
        days = DEFAULT_FINANCING_DAYS
    days_per_year = financing_days_per_year
    if days_per_year is None or days_per_year <= 0:
        days_per_year = DEFAULT_FINANCING_DAYS_PER_YEAR

    volume_in_asset = quote_rate * abs(position.current_volume)
    base_rate = resolve_interest_rate(rate.variable_rate_base, interest_rates)
    quote_interest = resolve_interest_rate(rate.variable_rate_quote, interest_rates)
    repo_surcharge = (
        rate.repo_surcharge_percent
        if position.direction is PositionDirection.SHORT
        else _ZERO
    )

    basis = (
        -rate.fix_rate
        - repo_surcharge
        + (base_rate - quote_interest) * position.direction.sign
    )
    swap = volume_in_asset * basis * days / days_per_year

    details = {
        "volume_in_asset": str(volume_in_asset),
        "quote_rate": str(quote_rate),
        "fix_rate": str(rate.fix_rate),
        "repo_surcharge_percent": str(repo_surcharge),
        "variable_rate_base": str(base_rate),
        "variable_rate_quote": str(quote_interest),
        "basis_of_calc": str(basis),
        "number_of_financing_days": days,
        "financing_days_per_year": days_per_year,
    }
    return swap, details


@traced_engine(
    "order_execution", "1.0",
    fingerprint_fields=("rate", "quote_rate", "volume"),
)
def calculate_order_execution_commission(
    *,
    rate: OrderExecutionRate,
    quote_rate: Decimal,
    volume: Decimal,
) -> Decimal:
    """``min(cap, max(floor, commission_rate * quote_rate * |volume|))``."""
    volume_in_asset = quote_rate * abs(volume)
    return min(
        rate.commission_cap,
        max(rate.commission_floor, rate.commission_rate * volume_in_asset),
    )


@traced_engine(
    "on_behalf", "1.0",
    fingerprint_fields=("rate", "actions_num", "quote_rate"),
)
def calculate_on_behalf_commission(
    *,
    rate: OnBehalfRate,
    actions_num: int,
    quote_rate: Decimal,
) -> Decimal:
    """Flat commission per on-behalf action, converted by ``quote_rate``."""
    if actions_num < 0:
        raise ValueError(f"actions_num cannot be negative: {actions_num}")
    return actions_num * rate.commission * quote_rate


@traced_engine("daily_pnl", "1.0", fingerprint_fields=("position",))
def calculate_daily_pnl(*, position: OpenPosition) -> tuple[Decimal, Decimal]:
    """
    PnL accrued since the last charge.

    Returns:
        ``(pnl, fx_rate)`` -- ``pnl - charged_pnl`` and the position's fx rate.
    """
    return position.pnl - position.charged_pnl, position.fx_rate
