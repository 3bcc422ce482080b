"""commission_batch.domain -- Pure frozen DTOs for batch calculations (ZERO I/O)."""

from commission_batch.domain.types import (
    BatchAnomaly,
    CalculationKind,
    CalculationResult,
    OperationStateCounts,
)

__all__ = [
    "BatchAnomaly",
    "CalculationKind",
    "CalculationResult",
    "OperationStateCounts",
]
