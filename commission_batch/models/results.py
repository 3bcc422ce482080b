"""
ORM models for persisted calculation results.

Contract:
    ``OvernightSwapResultModel`` and ``DailyPnlResultModel`` persist one row
    per item per batch run.  Each has ``to_dto()`` / ``from_dto()``
    round-trip methods to ``CalculationResult``.

Architecture: commission_batch/models. Imports from commission_kernel.db.base only.

Invariants enforced:
    - ``item_id`` (operation id + separator + position id) is UNIQUE: an
      item is recorded at most once per run.
    - Rows are written once; only ``was_charged`` is updated afterwards.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from commission_batch.domain.types import CalculationResult


class _CalculationResultColumns:
    """Columns shared by both result tables."""

    item_id: Mapped[str] = mapped_column(String(400), nullable=False, unique=True)
    operation_id: Mapped[str] = mapped_column(String(200), nullable=False)
    position_id: Mapped[str] = mapped_column(String(200), nullable=False)
    account_id: Mapped[str] = mapped_column(String(200), nullable=False)
    instrument: Mapped[str] = mapped_column(String(100), nullable=False)
    direction: Mapped[str | None] = mapped_column(String(10), nullable=True)
    volume: Mapped[Decimal] = mapped_column(nullable=False)
    amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    trading_day: Mapped[date] = mapped_column(nullable=False)
    time: Mapped[datetime] = mapped_column(nullable=False)
    is_success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    was_charged: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    def to_dto(self) -> CalculationResult:
        from commission_batch.domain.types import CalculationResult
        from commission_kernel.domain.values import PositionDirection

        return CalculationResult(
            operation_id=self.operation_id,
            position_id=self.position_id,
            account_id=self.account_id,
            instrument=self.instrument,
            direction=PositionDirection(self.direction) if self.direction else None,
            volume=self.volume,
            trading_day=self.trading_day,
            time=self.time,
            is_success=self.is_success,
            amount=self.amount,
            fx_rate=getattr(self, "fx_rate", None),
            error=self.error,
            details=self.details,
            was_charged=self.was_charged,
        )

    @classmethod
    def _columns_from_dto(cls, dto: CalculationResult) -> dict:
        return {
            "item_id": dto.item_id,
            "operation_id": dto.operation_id,
            "position_id": dto.position_id,
            "account_id": dto.account_id,
            "instrument": dto.instrument,
            "direction": dto.direction.value if dto.direction else None,
            "volume": dto.volume,
            "amount": dto.amount,
            "trading_day": dto.trading_day,
            "time": dto.time,
            "is_success": dto.is_success,
            "error": dto.error,
            "details": dto.details,
            "was_charged": dto.was_charged,
        }


class OvernightSwapResultModel(_CalculationResultColumns, TrackedBase):
    """Overnight swap history row."""

    __tablename__ = "overnight_swap_history"

    __table_args__ = (
        Index("ix_overnight_swap_history_trading_day", "trading_day"),
        Index("ix_overnight_swap_history_operation", "operation_id"),
    )

    @classmethod
    def from_dto(cls, dto: CalculationResult) -> OvernightSwapResultModel:
        return cls(**cls._columns_from_dto(dto))


class DailyPnlResultModel(_CalculationResultColumns, TrackedBase):
    """Daily PnL history row; carries the fx rate used for the account."""

    __tablename__ = "daily_pnl_history"

    __table_args__ = (
        Index("ix_daily_pnl_history_trading_day", "trading_day"),
        Index("ix_daily_pnl_history_operation", "operation_id"),
    )

    fx_rate: Mapped[Decimal | None] = mapped_column(nullable=True)

    @classmethod
    def from_dto(cls, dto: CalculationResult) -> DailyPnlResultModel:
        return cls(fx_rate=dto.fx_rate, **cls._columns_from_dto(dto))
