"""
Rate settings value objects (``commission_kernel.domain.rates``).

Responsibility
--------------
Immutable commission rate records read by the pricing engines and managed
by the rate settings service.  Each kind has a natural key: the asset pair
id for per-instrument kinds, a fixed key for the on-behalf singleton.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Rates are ``Decimal``; ``to_dict`` writes them as strings so the JSON
  payloads stored in the durable store and the fast cache round-trip exactly.
* ``validate()`` rejects records missing a required field before they are
  written anywhere.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from commission_kernel.exceptions import RateSettingsValidationError

ON_BEHALF_KEY = "OnBehalf"


class RateSettingKind(str, Enum):
    """Rate settings kinds; the value names the storage key of the kind."""

    ORDER_EXECUTION = "OrderExecution"
    OVERNIGHT_SWAP = "OvernightSwap"
    ON_BEHALF = "OnBehalf"


def _decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return Decimal(str(value))


def _text(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def _check_required(record: Any, kind: RateSettingKind, required: tuple[str, ...]) -> None:
    key = getattr(record, "asset_pair_id", None)
    for name in required:
        value = getattr(record, name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise RateSettingsValidationError(kind.value, name, key)


@dataclass(frozen=True)
class OrderExecutionRate:
    """Commission charged on order execution, bounded by floor and cap."""

    asset_pair_id: str
    commission_cap: Decimal
    commission_floor: Decimal
    commission_rate: Decimal
    commission_asset: str
    legal_entity: str | None = None

    kind = RateSettingKind.ORDER_EXECUTION

    @property
    def key(self) -> str:
        return self.asset_pair_id

    def validate(self) -> None:
        _check_required(self, self.kind, (
            "asset_pair_id", "commission_cap", "commission_floor",
            "commission_rate", "commission_asset",
        ))

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset_pair_id": self.asset_pair_id,
            "commission_cap": _text(self.commission_cap),
            "commission_floor": _text(self.commission_floor),
            "commission_rate": _text(self.commission_rate),
            "commission_asset": self.commission_asset,
            "legal_entity": self.legal_entity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OrderExecutionRate:
        return cls(
            asset_pair_id=data.get("asset_pair_id"),
            commission_cap=_decimal(data.get("commission_cap")),
            commission_floor=_decimal(data.get("commission_floor")),
            commission_rate=_decimal(data.get("commission_rate")),
            commission_asset=data.get("commission_asset"),
            legal_entity=data.get("legal_entity"),
        )

    @classmethod
    def from_default(cls, defaults: Any, asset_pair_id: str) -> OrderExecutionRate:
        """Build a rate from ``DefaultOrderExecutionSettings``."""
        return cls(
            asset_pair_id=asset_pair_id,
            commission_cap=defaults.commission_cap,
            commission_floor=defaults.commission_floor,
            commission_rate=defaults.commission_rate,
            commission_asset=defaults.commission_asset,
            legal_entity=defaults.legal_entity,
        )


@dataclass(frozen=True)
class OvernightSwapRate:
    """Daily financing parameters of an instrument.

    ``variable_rate_base`` / ``variable_rate_quote`` are interest rate ids
    resolved against the latest interest rates at calculation time.
    """

    asset_pair_id: str
    repo_surcharge_percent: Decimal
    fix_rate: Decimal
    commission_asset: str | None = None
    legal_entity: str | None = None
    variable_rate_base: str | None = None
    variable_rate_quote: str | None = None

    kind = RateSettingKind.OVERNIGHT_SWAP

    @property
    def key(self) -> str:
        return self.asset_pair_id

    def validate(self) -> None:
        _check_required(self, self.kind, (
            "asset_pair_id", "repo_surcharge_percent", "fix_rate",
        ))

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset_pair_id": self.asset_pair_id,
            "repo_surcharge_percent": _text(self.repo_surcharge_percent),
            "fix_rate": _text(self.fix_rate),
            "commission_asset": self.commission_asset,
            "legal_entity": self.legal_entity,
            "variable_rate_base": self.variable_rate_base,
            "variable_rate_quote": self.variable_rate_quote,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OvernightSwapRate:
        return cls(
            asset_pair_id=data.get("asset_pair_id"),
            repo_surcharge_percent=_decimal(data.get("repo_surcharge_percent")),
            fix_rate=_decimal(data.get("fix_rate")),
            commission_asset=data.get("commission_asset"),
            legal_entity=data.get("legal_entity"),
            variable_rate_base=data.get("variable_rate_base"),
            variable_rate_quote=data.get("variable_rate_quote"),
        )

    @classmethod
    def from_default(cls, defaults: Any, asset_pair_id: str) -> OvernightSwapRate:
        """Build a rate from ``DefaultOvernightSwapSettings``."""
        return cls(
            asset_pair_id=asset_pair_id,
            repo_surcharge_percent=defaults.repo_surcharge_percent,
            fix_rate=defaults.fix_rate,
            commission_asset=defaults.commission_asset,
            legal_entity=defaults.legal_entity,
            variable_rate_base=defaults.variable_rate_base,
            variable_rate_quote=defaults.variable_rate_quote,
        )


@dataclass(frozen=True)
class OnBehalfRate:
    """Flat commission per action taken on a client's behalf."""

    commission: Decimal
    commission_asset: str
    legal_entity: str | None = None

    kind = RateSettingKind.ON_BEHALF

    @property
    def key(self) -> str:
        return ON_BEHALF_KEY

    def validate(self) -> None:
        _check_required(self, self.kind, ("commission", "commission_asset"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "commission": _text(self.commission),
            "commission_asset": self.commission_asset,
            "legal_entity": self.legal_entity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OnBehalfRate:
        return cls(
            commission=_decimal(data.get("commission")),
            commission_asset=data.get("commission_asset"),
            legal_entity=data.get("legal_entity"),
        )

    @classmethod
    def from_default(cls, defaults: Any) -> OnBehalfRate:
        """Build a rate from ``DefaultOnBehalfSettings``."""
        return cls(
            commission=defaults.commission,
            commission_asset=defaults.commission_asset,
            legal_entity=defaults.legal_entity,
        )


RATE_TYPES: dict[RateSettingKind, type] = {
    RateSettingKind.ORDER_EXECUTION: OrderExecutionRate,
    RateSettingKind.OVERNIGHT_SWAP: OvernightSwapRate,
    RateSettingKind.ON_BEHALF: OnBehalfRate,
}
