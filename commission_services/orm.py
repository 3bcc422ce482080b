"""
SQLAlchemy ORM persistence model for rate settings.

Responsibility
--------------
Durable store behind the rate settings cache: one row per
``(kind, natural_key)`` holding the rate as a JSON payload.

Architecture position
---------------------
**Services layer** -- ORM model consumed by ``RateSettingsStore``.
Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* UNIQUE (kind, natural_key): writes merge by natural key, never duplicate.
* Rows are written only by an explicit replace.  Defaults synthesised on
  read never reach this table, so "never configured" stays distinguishable
  from "configured with the default value".
"""

from sqlalchemy import JSON, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import TrackedBase


class RateSettingModel(TrackedBase):
    """One configured rate."""

    __tablename__ = "rate_settings"

    __table_args__ = (
        UniqueConstraint("kind", "natural_key", name="uq_rate_setting_key"),
        Index("idx_rate_setting_kind", "kind"),
    )

    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    natural_key: Mapped[str] = mapped_column(String(200), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
