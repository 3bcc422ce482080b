"""commission_batch.services -- Result persistence and the batch calculation engine."""

from commission_batch.services.calculation_engine import (
    BatchCalculationEngine,
    select_eligible,
)
from commission_batch.services.results_repository import CalculationResultRepository

__all__ = [
    "BatchCalculationEngine",
    "CalculationResultRepository",
    "select_eligible",
]
