"""
Module: commission_kernel.db.base
Responsibility: declarative base for the ledger, result and settings tables.
Architecture position: Kernel > DB.  Lowest import target of the kernel;
    MUST NOT import from models/, services/, domain/, or outer layers.

Invariants enforced:
    - Every table has a uuid4 surrogate key stored as text.  Business
      identities (ledger identity, result item id, settings key) are
      separate UNIQUE columns.
    - Amounts and rates are Numeric(38, 9); never float.
    - Timestamps are timezone-aware; trading days are plain dates.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID column stored as String(36), so SQLite and PostgreSQL agree."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        date: Date,
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


def _server_timestamp(**kwargs) -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, **kwargs,
    )


class TrackedBase(Base):
    """
    Abstract base adding row timestamps.

    ``created_at`` is fixed at INSERT; ``updated_at`` moves on every UPDATE.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = _server_timestamp()
    updated_at: Mapped[datetime] = _server_timestamp(onupdate=func.now())
