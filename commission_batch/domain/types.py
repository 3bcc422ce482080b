"""
commission_batch.domain.types -- Pure frozen dataclasses for batch calculations.

ZERO I/O.  Frozen dataclasses with enum kind fields and tuples for immutable
collections.

Invariants enforced:
    - All DTOs are frozen dataclasses (immutable).
    - A result's identity is ``operation_id + "_" + position_id`` (see
      ``commission_kernel.utils.identifiers``); one result per item per run.
    - ``was_charged`` is the only field a result ever changes after creation,
      and that change happens in storage, never on the DTO.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from commission_kernel.domain.values import PositionDirection
from commission_kernel.utils.identifiers import make_item_id


class CalculationKind(str, Enum):
    """Flavour of a batch calculation run."""

    OVERNIGHT_SWAP = "overnight_swap"
    DAILY_PNL = "daily_pnl"


@dataclass(frozen=True)
class CalculationResult:
    """Immutable outcome of pricing one position in one batch run.

    ``amount`` is the swap value for overnight swaps and the accrued PnL for
    daily PnL runs.  A failed result carries ``error`` and no amount.
    """

    operation_id: str
    position_id: str
    account_id: str
    instrument: str
    direction: PositionDirection | None
    volume: Decimal
    trading_day: date
    time: datetime
    is_success: bool
    amount: Decimal | None = None
    fx_rate: Decimal | None = None
    error: str | None = None
    details: dict[str, Any] | None = None
    was_charged: bool | None = None

    @property
    def item_id(self) -> str:
        return make_item_id(self.operation_id, self.position_id)


@dataclass(frozen=True)
class OperationStateCounts:
    """Aggregate view of one batch run's persisted results.

    ``not_processed`` counts successful results whose charge has not been
    acknowledged yet (``was_charged`` is unset).
    """

    total: int
    failed: int
    not_processed: int


@dataclass(frozen=True)
class BatchAnomaly:
    """A position whose last calculation failed and which closed since.

    Such a position can never be recalculated; it is reported, not retried.
    """

    position_id: str
    item_id: str
    trading_day: date
    error: str | None = None
