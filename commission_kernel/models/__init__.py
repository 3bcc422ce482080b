"""Kernel ORM models."""

from commission_kernel.models.operation_execution import OperationExecutionInfoModel

__all__ = ["OperationExecutionInfoModel"]
