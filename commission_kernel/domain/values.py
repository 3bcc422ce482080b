"""
Market value objects (``commission_kernel.domain.values``).

Responsibility
--------------
Immutable views of the external data the calculations consume: open
positions and asset pairs.  This service never mutates them.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* All volumes, prices and rates are ``Decimal`` -- NEVER ``float``.
* All objects are ``frozen=True``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum


class PositionDirection(str, Enum):
    """Direction of an open position."""

    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> int:
        return 1 if self is PositionDirection.LONG else -1


@dataclass(frozen=True)
class OpenPosition:
    """An active position, as reported by the trading backend."""

    id: str
    account_id: str
    asset_pair_id: str
    open_timestamp: datetime
    direction: PositionDirection
    current_volume: Decimal
    open_price: Decimal = Decimal("0")
    close_price: Decimal = Decimal("0")
    pnl: Decimal = Decimal("0")
    charged_pnl: Decimal = Decimal("0")
    margin: Decimal = Decimal("0")
    fx_rate: Decimal = Decimal("1")
    trade_id: str | None = None


@dataclass(frozen=True)
class AssetPair:
    """Instrument reference data."""

    id: str
    base_asset_id: str
    quote_asset_id: str
    legal_entity: str
    name: str | None = None
