"""
OperationLedger -- idempotency store of operation execution state.

Responsibility:
    Records every command the service acts upon, keyed by
    ``(operation_name, operation_id)``, so a redelivered command (bus retry,
    operator re-trigger) is recognised and ignored rather than executed twice.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by the command handlers, the charge acknowledgement handler and
    the completion tracker.

Invariants enforced:
    - Exactly one row per identity.  ``get_or_create`` never overwrites:
      the UNIQUE constraint decides concurrent inserts, the loser rolls back
      its SAVEPOINT and returns the winner's row.
    - Transitions are compare-and-swap: ``UPDATE ... WHERE state = :from``.
      A zero row count means another actor moved first; the in-memory record
      is restored and ``False`` returned.

Failure modes:
    - IntegrityError on concurrent create: handled (savepoint rollback + re-read).
    - OperationNotFoundError from ``save`` if the row vanished.

Audit relevance:
    Ledger rows are never deleted; creation and every transition are logged
    with the operation identity.
"""

from collections.abc import Callable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from commission_kernel.domain.clock import Clock, SystemClock
from commission_kernel.domain.operation import (
    CommissionOperationState,
    OperationExecutionInfo,
    switch_state,
)
from commission_kernel.exceptions import OperationNotFoundError
from commission_kernel.logging_config import get_logger
from commission_kernel.models.operation_execution import OperationExecutionInfoModel

logger = get_logger("services.ledger")


class OperationLedger:
    """
    Idempotency ledger over the ``operation_execution_info`` table.

    Contract:
        - ``get_or_create()`` returns the stored record, creating it via
          ``factory()`` only when absent.
        - ``try_transition()`` returns True and mutates the record only when
          its state equals ``from_state`` both in memory and in storage.
        - ``save()`` persists payload and timestamp.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT delete rows.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def get(
        self, operation_name: str, operation_id: str,
    ) -> OperationExecutionInfo | None:
        """Return the stored record, or None when the identity is unknown."""
        model = self._select(operation_name, operation_id)
        return model.to_dto() if model is not None else None

    def get_or_create(
        self,
        operation_name: str,
        operation_id: str,
        factory: Callable[[], OperationExecutionInfo],
    ) -> OperationExecutionInfo:
        """
        Return the record for the identity, creating it if absent.

        Preconditions:
            - ``factory()`` returns a record with the same identity.
            - The caller is within an active database transaction.

        Postconditions:
            - Exactly one row exists for the identity; every concurrent caller
              observes the same stored record.
        """
        existing = self._select(operation_name, operation_id)
        if existing is not None:
            logger.debug(
                "operation_found",
                extra={
                    "operation_name": operation_name,
                    "operation_id": operation_id,
                    "state": existing.state,
                },
            )
            return existing.to_dto()

        info = factory()
        if (info.operation_name, info.operation_id) != (operation_name, operation_id):
            raise ValueError(
                "Factory produced a record for "
                f"{info.operation_name}/{info.operation_id}, "
                f"expected {operation_name}/{operation_id}"
            )

        # Savepoint so a lost race does not roll back the caller's other work
        savepoint = self._session.begin_nested()
        try:
            self._session.add(OperationExecutionInfoModel.from_dto(info))
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.info(
                "operation_create_race_lost",
                extra={
                    "operation_name": operation_name,
                    "operation_id": operation_id,
                },
            )
            winner = self._select(operation_name, operation_id)
            if winner is None:
                raise
            return winner.to_dto()

        logger.info(
            "operation_created",
            extra={
                "operation_name": operation_name,
                "operation_id": operation_id,
                "state": info.state.value,
            },
        )
        return info

    def try_transition(
        self,
        info: OperationExecutionInfo,
        from_state: CommissionOperationState,
        to_state: CommissionOperationState,
    ) -> bool:
        """
        Guarded state transition.

        Returns False with no mutation when the record is not in
        ``from_state`` -- a duplicate command, not an error.
        """
        if not switch_state(info.data, from_state, to_state):
            logger.info(
                "operation_transition_skipped",
                extra={
                    "operation_name": info.operation_name,
                    "operation_id": info.operation_id,
                    "current_state": info.state.value,
                    "expected_state": from_state.value,
                },
            )
            return False

        now = self._clock.now()
        result = self._session.execute(
            update(OperationExecutionInfoModel)
            .where(
                OperationExecutionInfoModel.operation_name == info.operation_name,
                OperationExecutionInfoModel.operation_id == info.operation_id,
                OperationExecutionInfoModel.state == from_state.value,
            )
            .values(
                state=to_state.value,
                data=info.data.to_dict(),
                last_modified=now,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            info.data.state = from_state
            logger.info(
                "operation_transition_lost",
                extra={
                    "operation_name": info.operation_name,
                    "operation_id": info.operation_id,
                    "expected_state": from_state.value,
                },
            )
            return False

        info.last_modified = now
        logger.info(
            "operation_transitioned",
            extra={
                "operation_name": info.operation_name,
                "operation_id": info.operation_id,
                "from_state": from_state.value,
                "to_state": to_state.value,
            },
        )
        return True

    def save(self, info: OperationExecutionInfo) -> None:
        """
        Persist the record's payload and refresh ``last_modified``.

        Raises:
            OperationNotFoundError: If the row does not exist.
        """
        now = self._clock.now()
        result = self._session.execute(
            update(OperationExecutionInfoModel)
            .where(
                OperationExecutionInfoModel.operation_name == info.operation_name,
                OperationExecutionInfoModel.operation_id == info.operation_id,
            )
            .values(
                state=info.state.value,
                data=info.data.to_dict(),
                last_modified=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise OperationNotFoundError(info.operation_name, info.operation_id)
        info.last_modified = now

    def _select(
        self, operation_name: str, operation_id: str,
    ) -> OperationExecutionInfoModel | None:
        return self._session.execute(
            select(OperationExecutionInfoModel)
            .where(
                OperationExecutionInfoModel.operation_name == operation_name,
                OperationExecutionInfoModel.operation_id == operation_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
