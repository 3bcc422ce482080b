"""
Event contracts and publishing (``commission_services.events``).

Responsibility
--------------
Frozen dataclasses for every notification the service emits or consumes,
and the ``EventPublisher`` contract the handlers publish through.  The
message-bus transport behind a publisher lives outside this service.

Invariants enforced
-------------------
* Events are immutable once built.
* Per-item events carry the item id (operation id + separator + position
  id) as their ``operation_id``, so downstream consumers can deduplicate.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Protocol, TypeVar, runtime_checkable

from commission_kernel.domain.rates import RateSettingKind

E = TypeVar("E")


# =============================================================================
# Batch outcome events
# =============================================================================


@dataclass(frozen=True)
class OvernightSwapsCalculatedEvent:
    operation_id: str
    creation_timestamp: datetime
    total: int
    failed: int


@dataclass(frozen=True)
class DailyPnlsCalculatedEvent:
    operation_id: str
    creation_timestamp: datetime
    total: int
    failed: int


@dataclass(frozen=True)
class OvernightSwapsStartFailedEvent:
    operation_id: str
    creation_timestamp: datetime
    fail_reason: str


@dataclass(frozen=True)
class DailyPnlsStartFailedEvent:
    operation_id: str
    creation_timestamp: datetime
    fail_reason: str


# =============================================================================
# Per-item events (ready for downstream charging)
# =============================================================================


@dataclass(frozen=True)
class OvernightSwapCalculatedInternalEvent:
    operation_id: str
    creation_timestamp: datetime
    account_id: str
    position_id: str
    asset_pair_id: str
    swap_amount: Decimal
    trading_day: date
    volume: Decimal


@dataclass(frozen=True)
class DailyPnlCalculatedInternalEvent:
    operation_id: str
    creation_timestamp: datetime
    account_id: str
    position_id: str
    asset_pair_id: str
    pnl: Decimal
    trading_day: date
    volume: Decimal
    fx_rate: Decimal


# =============================================================================
# Charge acknowledgements (consumed)
# =============================================================================


@dataclass(frozen=True)
class ItemChargedEvent:
    """Downstream charged the item identified by ``operation_id``."""

    operation_id: str
    creation_timestamp: datetime


@dataclass(frozen=True)
class ItemChargeFailedEvent:
    """Downstream rejected the charge of the item identified by ``operation_id``."""

    operation_id: str
    creation_timestamp: datetime
    reason: str | None = None


# =============================================================================
# Settings
# =============================================================================


@dataclass(frozen=True)
class RateSettingsChangedEvent:
    creation_timestamp: datetime
    kind: RateSettingKind


# =============================================================================
# Publisher
# =============================================================================


@runtime_checkable
class EventPublisher(Protocol):
    """Hands an event to the message bus."""

    def publish(self, event: object) -> None: ...


class InMemoryEventPublisher:
    """Publisher that records events in order; used for local wiring and tests."""

    def __init__(self) -> None:
        self._events: list[object] = []
        self._lock = threading.Lock()

    def publish(self, event: object) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> tuple[object, ...]:
        with self._lock:
            return tuple(self._events)

    def of_type(self, event_type: type[E]) -> list[E]:
        return [e for e in self.events if isinstance(e, event_type)]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
