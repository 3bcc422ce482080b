"""
Operation execution state (``commission_kernel.domain.operation``).

Responsibility
--------------
Value objects for the idempotency ledger: the ``CommissionOperationState``
enum, the declared operation workflow, the per-operation payload and the
guarded ``switch_state`` transition used by command handlers.

Architecture position
---------------------
**Kernel domain layer** -- pure, ZERO I/O.  Persisted by
``commission_kernel.services.operation_ledger``.

Invariants enforced
-------------------
* State only moves forward along ``OPERATION_WORKFLOW``.
* ``switch_state`` never mutates when the current state differs from the
  expected one; it returns ``False`` so duplicate commands become no-ops.

Failure modes
-------------
* ``InvalidStateTransitionError`` when asked for a transition the workflow
  does not declare (a programming error, never a duplicate delivery).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from commission_kernel.domain.workflow import Transition, Workflow
from commission_kernel.exceptions import InvalidStateTransitionError


class CommissionOperationState(str, Enum):
    """Lifecycle of a ledger-tracked operation."""

    INITIATED = "initiated"  # Command received, nothing executed yet
    STARTED = "started"  # Batch ran (or sub-operation awaiting charge)
    FINISHED = "finished"  # All downstream consequences acknowledged


OPERATION_WORKFLOW = Workflow(
    name="commission_operation",
    description="Idempotent commission operation lifecycle",
    initial_state=CommissionOperationState.INITIATED.value,
    states=tuple(s.value for s in CommissionOperationState),
    transitions=(
        Transition(
            from_state=CommissionOperationState.INITIATED.value,
            to_state=CommissionOperationState.STARTED.value,
            action="start",
        ),
        Transition(
            from_state=CommissionOperationState.STARTED.value,
            to_state=CommissionOperationState.FINISHED.value,
            action="finish",
        ),
    ),
    terminal_states=(CommissionOperationState.FINISHED.value,),
)


@dataclass
class OperationData:
    """Operation-specific payload stored in the ledger row.

    ``number_of_financing_days`` / ``financing_days_per_year`` are None for
    sub-operations and non-swap operations.
    """

    state: CommissionOperationState
    trading_day: date | None = None
    number_of_financing_days: int | None = None
    financing_days_per_year: int | None = None
    account_id: str | None = None
    order_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"state": self.state.value}
        if self.trading_day is not None:
            payload["trading_day"] = self.trading_day.isoformat()
        for name in (
            "number_of_financing_days",
            "financing_days_per_year",
            "account_id",
            "order_id",
        ):
            value = getattr(self, name)
            if value is not None:
                payload[name] = value
        if self.extra:
            payload["extra"] = dict(self.extra)
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> OperationData:
        trading_day = payload.get("trading_day")
        return cls(
            state=CommissionOperationState(payload["state"]),
            trading_day=date.fromisoformat(trading_day) if trading_day else None,
            number_of_financing_days=payload.get("number_of_financing_days"),
            financing_days_per_year=payload.get("financing_days_per_year"),
            account_id=payload.get("account_id"),
            order_id=payload.get("order_id"),
            extra=dict(payload.get("extra") or {}),
        )


@dataclass
class OperationExecutionInfo:
    """One ledger row: identity is (operation_name, operation_id)."""

    operation_name: str
    operation_id: str
    last_modified: datetime
    data: OperationData

    @property
    def state(self) -> CommissionOperationState:
        return self.data.state


def switch_state(
    data: OperationData | None,
    expected: CommissionOperationState,
    new: CommissionOperationState,
) -> bool:
    """Move ``data`` from ``expected`` to ``new`` if it is in ``expected``.

    Returns False, leaving ``data`` untouched, when ``data`` is None or is in
    any other state.  Callers treat False as "already handled".
    """
    if not OPERATION_WORKFLOW.allows(expected.value, new.value):
        raise InvalidStateTransitionError(expected.value, new.value)

    if data is None or data.state != expected:
        return False

    data.state = new
    return True
