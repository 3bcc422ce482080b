"""
RateSettingsStore -- durable store of configured rates.

Contract:
    ``read_all(kind)`` returns every stored payload of a kind;
    ``merge(kind, payloads)`` upserts payloads by natural key.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
    - Does NOT delete rates missing from a merge.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from commission_kernel.domain.rates import RateSettingKind
from commission_kernel.logging_config import get_logger
from commission_services.orm import RateSettingModel

logger = get_logger("services.rate_settings.store")


class RateSettingsStore:
    def __init__(self, session: Session):
        self._session = session

    def read_all(self, kind: RateSettingKind) -> dict[str, dict[str, Any]]:
        """Payloads of ``kind`` keyed by natural key."""
        rows = self._session.execute(
            select(RateSettingModel)
            .where(RateSettingModel.kind == kind.value)
            .order_by(RateSettingModel.natural_key)
        ).scalars()
        return {row.natural_key: dict(row.payload) for row in rows}

    def read(self, kind: RateSettingKind, key: str) -> dict[str, Any] | None:
        row = self._select(kind, key)
        return dict(row.payload) if row is not None else None

    def merge(self, kind: RateSettingKind, payloads: Mapping[str, dict[str, Any]]) -> None:
        """Upsert each payload under its natural key."""
        for key, payload in payloads.items():
            existing = self._select(kind, key)
            if existing is not None:
                existing.payload = dict(payload)
                continue

            savepoint = self._session.begin_nested()
            try:
                self._session.add(
                    RateSettingModel(kind=kind.value, natural_key=key, payload=dict(payload))
                )
                self._session.flush()
                savepoint.commit()
            except IntegrityError:
                # A concurrent writer inserted the key first; last write wins
                savepoint.rollback()
                winner = self._select(kind, key)
                if winner is None:
                    raise
                winner.payload = dict(payload)

        self._session.flush()
        logger.info(
            "rate_settings_merged",
            extra={"kind": kind.value, "keys": sorted(payloads)},
        )

    def _select(self, kind: RateSettingKind, key: str) -> RateSettingModel | None:
        return self._session.execute(
            select(RateSettingModel).where(
                RateSettingModel.kind == kind.value,
                RateSettingModel.natural_key == key,
            )
        ).scalar_one_or_none()
