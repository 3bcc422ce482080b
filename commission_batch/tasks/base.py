"""
CalculationTask protocol and TaskRegistry.

Contract:
    ``CalculationTask`` defines the interface every calculation flavour
    implements: the lock it runs under, the context it pre-loads once per
    run, and how it prices a single position.
    ``TaskRegistry`` stores registered tasks keyed by ``CalculationKind``.

Architecture:
    commission_batch/tasks.  Imports from commission_batch.domain and the
    kernel domain only.

Invariants enforced:
    - One task per ``CalculationKind``.
    - ``calculate_item()`` prices ONE position and may raise; the engine
      turns any exception into a failed result for that position.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Protocol, runtime_checkable

from commission_batch.domain.types import CalculationKind, CalculationResult
from commission_kernel.domain.values import OpenPosition
from commission_kernel.exceptions import TaskNotRegisteredError


@runtime_checkable
class CalculationTask(Protocol):
    """Protocol for one batch calculation flavour.

    Non-goals:
        - Does NOT persist anything -- the engine bulk-inserts results.
        - Does NOT catch item errors -- the engine isolates them.
    """

    @property
    def kind(self) -> CalculationKind: ...

    @property
    def lock_key(self) -> str: ...

    def prepare_context(self, parameters: dict[str, Any]) -> Any:
        """Load reference data shared by every item of one run."""
        ...

    def calculate_item(
        self,
        position: OpenPosition,
        context: Any,
        operation_id: str,
        trading_day: date,
        now: datetime,
    ) -> CalculationResult:
        """Price one position; raise on any lookup or pricing failure."""
        ...


class TaskRegistry:
    """Registry mapping ``CalculationKind`` to task implementations.

    Contract:
        - ``register()`` adds a task; raises ValueError on duplicate.
        - ``get()`` retrieves by kind; raises TaskNotRegisteredError if missing.
    """

    def __init__(self) -> None:
        self._tasks: dict[CalculationKind, CalculationTask] = {}

    def register(self, task: CalculationTask) -> None:
        if task.kind in self._tasks:
            raise ValueError(f"Task kind '{task.kind.value}' is already registered")
        self._tasks[task.kind] = task

    def get(self, kind: CalculationKind) -> CalculationTask:
        try:
            return self._tasks[kind]
        except KeyError:
            raise TaskNotRegisteredError(
                kind.value, self.list_tasks(),
            ) from None

    def list_tasks(self) -> tuple[str, ...]:
        """Return all registered kinds, sorted."""
        return tuple(sorted(k.value for k in self._tasks))

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, kind: CalculationKind) -> bool:
        return kind in self._tasks
