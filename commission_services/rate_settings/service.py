"""
RateSettingsService -- three-level read/write-through rate settings cache.

Responsibility:
    Resolves the rates feeding the pricing engines: fast cache (Redis), then
    the durable store, then the statically configured defaults.  Replaces
    write through both levels and announce the change.

Architecture position:
    Services -- composes ``RateSettingsStore`` (SQLAlchemy session) with
    ``RateSettingsCache`` (Redis) and an ``EventPublisher``.

Invariants enforced:
    - Read: a cache miss reloads the WHOLE kind from the durable store and
      fully repopulates the cache before the key is looked up again.
    - A synthesised default fills exactly one cache entry and is never
      written to the durable store.
    - Replace: every value is validated before anything is written; a
      missing legal entity is filled from the defaults; the durable store is
      merged by natural key; the cache contents of the kind are replaced by
      the merged durable contents; one ``RateSettingsChangedEvent`` is
      published.

Failure modes:
    - RateSettingsValidationError on replace with a missing required field.
    - Redis or database errors propagate.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from commission_config.schema import DefaultRateSettings
from commission_kernel.domain.clock import Clock, SystemClock
from commission_kernel.domain.rates import (
    ON_BEHALF_KEY,
    RATE_TYPES,
    OnBehalfRate,
    OrderExecutionRate,
    OvernightSwapRate,
    RateSettingKind,
)
from commission_kernel.logging_config import get_logger
from commission_services.events import EventPublisher, RateSettingsChangedEvent
from commission_services.rate_settings.cache import RateSettingsCache
from commission_services.rate_settings.store import RateSettingsStore

logger = get_logger("services.rate_settings")

R = TypeVar("R")


class RateSettingsService:
    """
    Rate lookups and replacements for all three kinds.

    Contract:
        - ``get_*_rate()`` never fails for lack of configuration.
        - ``get_*_rates()`` lists the configured rates, reloading the cache
          from the durable store when it is empty.
        - ``replace_*()`` is the only write path.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(
        self,
        store: RateSettingsStore,
        cache: RateSettingsCache,
        defaults: DefaultRateSettings,
        publisher: EventPublisher,
        clock: Clock | None = None,
    ):
        self._store = store
        self._cache = cache
        self._defaults = defaults
        self._publisher = publisher
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Order execution
    # -------------------------------------------------------------------------

    def get_order_execution_rate(self, asset_pair_id: str) -> OrderExecutionRate:
        return self._get(
            RateSettingKind.ORDER_EXECUTION,
            asset_pair_id,
            lambda: OrderExecutionRate.from_default(
                self._defaults.order_execution, asset_pair_id,
            ),
        )

    def get_order_execution_rates(self) -> list[OrderExecutionRate]:
        return self._get_all(RateSettingKind.ORDER_EXECUTION)

    def replace_order_execution_rates(
        self, rates: Sequence[OrderExecutionRate],
    ) -> None:
        self._replace(
            RateSettingKind.ORDER_EXECUTION,
            rates,
            self._defaults.order_execution.legal_entity,
        )

    # -------------------------------------------------------------------------
    # Overnight swap
    # -------------------------------------------------------------------------

    def get_overnight_swap_rate(self, asset_pair_id: str) -> OvernightSwapRate:
        return self._get(
            RateSettingKind.OVERNIGHT_SWAP,
            asset_pair_id,
            lambda: OvernightSwapRate.from_default(
                self._defaults.overnight_swap, asset_pair_id,
            ),
        )

    def get_overnight_swap_rates(self) -> list[OvernightSwapRate]:
        return self._get_all(RateSettingKind.OVERNIGHT_SWAP)

    def replace_overnight_swap_rates(
        self, rates: Sequence[OvernightSwapRate],
    ) -> None:
        self._replace(
            RateSettingKind.OVERNIGHT_SWAP,
            rates,
            self._defaults.overnight_swap.legal_entity,
        )

    # -------------------------------------------------------------------------
    # On behalf (singleton)
    # -------------------------------------------------------------------------

    def get_on_behalf_rate(self) -> OnBehalfRate:
        return self._get(
            RateSettingKind.ON_BEHALF,
            ON_BEHALF_KEY,
            lambda: OnBehalfRate.from_default(self._defaults.on_behalf),
        )

    def replace_on_behalf_rate(self, rate: OnBehalfRate) -> None:
        self._replace(
            RateSettingKind.ON_BEHALF,
            [rate],
            self._defaults.on_behalf.legal_entity,
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _get(self, kind: RateSettingKind, key: str, default: Callable[[], R]) -> R:
        rate_type = RATE_TYPES[kind]

        cached = self._cache.get(kind, key)
        if cached is not None:
            return rate_type.from_dict(cached)

        stored = self._refresh_from_store(kind)
        if key in stored:
            return rate_type.from_dict(stored[key])

        rate = default()
        self._cache.put(kind, key, rate.to_dict())
        logger.warning(
            "rate_default_used",
            extra={"kind": kind.value, "rate_key": key},
        )
        return rate

    def _get_all(self, kind: RateSettingKind) -> list[Any]:
        rate_type = RATE_TYPES[kind]
        payloads = self._cache.get_all(kind)
        if not payloads:
            payloads = self._refresh_from_store(kind)
        return [rate_type.from_dict(payloads[k]) for k in sorted(payloads)]

    def _refresh_from_store(self, kind: RateSettingKind) -> dict[str, dict[str, Any]]:
        stored = self._store.read_all(kind)
        if stored:
            self._cache.replace_all(kind, stored)
            logger.info(
                "rate_cache_refreshed",
                extra={"kind": kind.value, "count": len(stored)},
            )
        return stored

    def _replace(
        self,
        kind: RateSettingKind,
        rates: Sequence[Any],
        default_legal_entity: str,
    ) -> None:
        for rate in rates:
            rate.validate()

        payloads: dict[str, dict[str, Any]] = {}
        for rate in rates:
            if not rate.legal_entity or not rate.legal_entity.strip():
                rate = dataclasses.replace(rate, legal_entity=default_legal_entity)
            payloads[rate.key] = rate.to_dict()

        self._store.merge(kind, payloads)
        self._cache.replace_all(kind, self._store.read_all(kind))
        self._publisher.publish(
            RateSettingsChangedEvent(creation_timestamp=self._clock.now(), kind=kind)
        )
        logger.info(
            "rate_settings_replaced",
            extra={"kind": kind.value, "count": len(payloads)},
        )
