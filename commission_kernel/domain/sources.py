"""
External data sources (``commission_kernel.domain.sources``).

Responsibility
--------------
Read-only contracts for the collaborators the batch engine queries:
active positions, asset pairs, interest rates and conversion quotes.  The
transport behind them (HTTP clients, message-fed caches) lives outside this
service; only the read contract matters here.

The ``InMemory*`` implementations back wiring in tests and local runs.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Protocol, runtime_checkable

from commission_kernel.domain.values import AssetPair, OpenPosition
from commission_kernel.exceptions import FxRateNotFoundError


@runtime_checkable
class PositionSource(Protocol):
    """Supplies the currently active positions."""

    def get_active(self) -> tuple[OpenPosition, ...]: ...


@runtime_checkable
class AssetPairSource(Protocol):
    """Supplies instrument reference data."""

    def list(self) -> tuple[AssetPair, ...]: ...


@runtime_checkable
class InterestRateSource(Protocol):
    """Supplies the latest interest rate per rate id."""

    def get_all_latest(self) -> dict[str, Decimal]: ...


@runtime_checkable
class QuoteRateProvider(Protocol):
    """Conversion quotes for commission amounts.

    ``get_quote_rate`` converts one unit of an instrument's quote asset into
    ``asset``; ``get_fx_rate`` converts one unit of ``from_asset`` into
    ``to_asset``.
    """

    def get_quote_rate(
        self, asset: str, asset_pair_id: str, legal_entity: str,
    ) -> Decimal: ...

    def get_fx_rate(
        self, from_asset: str, to_asset: str, legal_entity: str,
    ) -> Decimal: ...


class InMemoryPositionSource:
    """Position source over a mutable in-memory set."""

    def __init__(self, positions: Iterable[OpenPosition] = ()):
        self._positions: dict[str, OpenPosition] = {p.id: p for p in positions}

    def get_active(self) -> tuple[OpenPosition, ...]:
        return tuple(self._positions.values())

    def open(self, position: OpenPosition) -> None:
        self._positions[position.id] = position

    def close(self, position_id: str) -> None:
        self._positions.pop(position_id, None)


class InMemoryAssetPairSource:
    def __init__(self, asset_pairs: Iterable[AssetPair] = ()):
        self._asset_pairs = tuple(asset_pairs)

    def list(self) -> tuple[AssetPair, ...]:
        return self._asset_pairs


class InMemoryInterestRateSource:
    def __init__(self, rates: Mapping[str, Decimal] | None = None):
        self._rates = dict(rates or {})

    def get_all_latest(self) -> dict[str, Decimal]:
        return dict(self._rates)


class InMemoryQuoteRateProvider:
    """Quote table keyed by ``(asset, asset_pair_id)`` plus an fx table
    keyed by ``(from_asset, to_asset)``.

    Unknown entries raise ``FxRateNotFoundError`` unless ``default`` is set.
    Converting an asset into itself is always 1.
    """

    def __init__(
        self,
        quotes: Mapping[tuple[str, str], Decimal] | None = None,
        default: Decimal | None = None,
        fx_rates: Mapping[tuple[str, str], Decimal] | None = None,
    ):
        self._quotes = dict(quotes or {})
        self._default = default
        self._fx_rates = dict(fx_rates or {})

    def get_quote_rate(
        self, asset: str, asset_pair_id: str, legal_entity: str,
    ) -> Decimal:
        rate = self._quotes.get((asset, asset_pair_id), self._default)
        if rate is None:
            raise FxRateNotFoundError(
                asset_pair_id,
                f"There is no quote to convert {asset_pair_id} into {asset}",
            )
        return rate

    def get_fx_rate(
        self, from_asset: str, to_asset: str, legal_entity: str,
    ) -> Decimal:
        if from_asset == to_asset:
            return Decimal("1")
        rate = self._fx_rates.get((from_asset, to_asset), self._default)
        if rate is None:
            raise FxRateNotFoundError(
                f"{from_asset}{to_asset}",
                f"There is no fx rate to convert {from_asset} into {to_asset}",
            )
        return rate
