"""
CalculationResultRepository -- durable store of per-item calculation results.

Contract:
    Reads and writes one kind of result table (overnight swap or daily PnL).
    Results are inserted once per batch run and afterwards only flagged as
    charged.

Architecture: commission_batch/services.  Imports from commission_batch.domain,
    commission_batch.models and kernel logging.

Invariants enforced:
    - ``bulk_insert`` writes every result of a run in ONE flush.
    - ``set_was_charged`` touches the ``was_charged`` column only.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from commission_batch.domain.types import (
    CalculationKind,
    CalculationResult,
    OperationStateCounts,
)
from commission_batch.models.results import (
    DailyPnlResultModel,
    OvernightSwapResultModel,
)
from commission_kernel.logging_config import get_logger

logger = get_logger("batch.results")

_MODELS = {
    CalculationKind.OVERNIGHT_SWAP: OvernightSwapResultModel,
    CalculationKind.DAILY_PNL: DailyPnlResultModel,
}


class CalculationResultRepository:
    """Result table access for one ``CalculationKind``.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session, kind: CalculationKind):
        self._session = session
        self._kind = kind
        self._model = _MODELS[kind]

    @property
    def kind(self) -> CalculationKind:
        return self._kind

    def get_for_trading_day(self, trading_day: date) -> list[CalculationResult]:
        """Results recorded for ``trading_day`` or any later trading day.

        Later days are included so the caller can detect a run requested for
        a day older than one already calculated.
        """
        rows = self._session.execute(
            select(self._model).where(self._model.trading_day >= trading_day)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def get_history(
        self,
        from_day: date,
        to_day: date | None = None,
        account_id: str | None = None,
    ) -> list[CalculationResult]:
        """Results with a trading day in ``[from_day, to_day]``, oldest first."""
        stmt = select(self._model).where(self._model.trading_day >= from_day)
        if to_day is not None:
            stmt = stmt.where(self._model.trading_day <= to_day)
        if account_id is not None:
            stmt = stmt.where(self._model.account_id == account_id)
        stmt = stmt.order_by(self._model.trading_day, self._model.time)
        return [row.to_dto() for row in self._session.execute(stmt).scalars()]

    def get(self, item_id: str) -> CalculationResult | None:
        row = self._session.execute(
            select(self._model).where(self._model.item_id == item_id)
        ).scalar_one_or_none()
        return row.to_dto() if row is not None else None

    def bulk_insert(self, results: Sequence[CalculationResult]) -> None:
        if not results:
            return
        self._session.add_all([self._model.from_dto(r) for r in results])
        self._session.flush()
        logger.info(
            "results_persisted",
            extra={"kind": self._kind.value, "count": len(results)},
        )

    def set_was_charged(self, item_id: str, was_charged: bool) -> int:
        """Flag one item's charge outcome; returns the affected row count."""
        result = self._session.execute(
            update(self._model)
            .where(self._model.item_id == item_id)
            .values(was_charged=was_charged)
        )
        if result.rowcount == 0:
            logger.warning(
                "result_not_found_for_charge",
                extra={"kind": self._kind.value, "item_id": item_id},
            )
        return result.rowcount

    def get_operation_state(self, operation_id: str) -> OperationStateCounts:
        m = self._model
        total, failed, not_processed = self._session.execute(
            select(
                func.count(m.id),
                func.coalesce(
                    func.sum(case((m.is_success.is_(False), 1), else_=0)), 0,
                ),
                func.coalesce(
                    func.sum(
                        case(
                            (
                                m.is_success.is_(True) & m.was_charged.is_(None),
                                1,
                            ),
                            else_=0,
                        )
                    ),
                    0,
                ),
            ).where(m.operation_id == operation_id)
        ).one()
        return OperationStateCounts(
            total=int(total), failed=int(failed), not_processed=int(not_processed),
        )
