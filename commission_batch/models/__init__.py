"""
commission_batch.models -- ORM models for calculation result persistence.

Architecture: commission_batch/models. Imports from commission_kernel.db.base only.
"""

from commission_batch.models.results import (
    DailyPnlResultModel,
    OvernightSwapResultModel,
)

__all__ = [
    "DailyPnlResultModel",
    "OvernightSwapResultModel",
]
