"""Kernel services: idempotency ledger and distributed lock."""

from commission_kernel.services.distributed_lock import RedisDistributedLock
from commission_kernel.services.operation_ledger import OperationLedger

__all__ = ["OperationLedger", "RedisDistributedLock"]
