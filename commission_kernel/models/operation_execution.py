"""
ORM model for the idempotency ledger.

Contract:
    ``OperationExecutionInfoModel`` persists one row per
    ``(operation_name, operation_id)``.  ``to_dto()`` / ``from_dto()``
    round-trip to ``OperationExecutionInfo``.

Architecture: commission_kernel/models.  Imports from commission_kernel.db.base
    and commission_kernel.domain only.

Invariants enforced:
    - UNIQUE (operation_name, operation_id): the storage-level guarantee
      behind the ledger's atomic get-or-create.
    - ``state`` is duplicated out of the JSON payload into its own column so
      transitions can be guarded with ``UPDATE ... WHERE state = :expected``.
    - Rows are never deleted; they double as the audit trail.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import TrackedBase
from commission_kernel.domain.operation import (
    OperationData,
    OperationExecutionInfo,
)


class OperationExecutionInfoModel(TrackedBase):
    """Persistent ledger row."""

    __tablename__ = "operation_execution_info"

    __table_args__ = (
        UniqueConstraint(
            "operation_name", "operation_id",
            name="uq_operation_execution_identity",
        ),
        Index("ix_operation_execution_state", "operation_name", "state"),
    )

    operation_name: Mapped[str] = mapped_column(String(100), nullable=False)
    operation_id: Mapped[str] = mapped_column(String(400), nullable=False)
    state: Mapped[str] = mapped_column(String(20), nullable=False)
    data: Mapped[dict] = mapped_column(JSON, nullable=False)
    last_modified: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    def to_dto(self) -> OperationExecutionInfo:
        return OperationExecutionInfo(
            operation_name=self.operation_name,
            operation_id=self.operation_id,
            last_modified=self.last_modified,
            data=OperationData.from_dict(self.data),
        )

    @classmethod
    def from_dto(cls, dto: OperationExecutionInfo) -> OperationExecutionInfoModel:
        return cls(
            operation_name=dto.operation_name,
            operation_id=dto.operation_id,
            state=dto.data.state.value,
            data=dto.data.to_dict(),
            last_modified=dto.last_modified,
        )
