"""
EventChannel -- in-process, rank-ordered fan-out of one signal type.

Contract:
    Listeners subscribe with a ``rank``; ``send_event()`` invokes them in
    ascending rank order (ties keep subscription order).  A listener that
    raises is logged and skipped; later listeners still run.

Used to route charge acknowledgements to every consumer that reacts to an
item being finalized, such as the completion trackers.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Generic, TypeVar

from commission_kernel.logging_config import get_logger

logger = get_logger("services.event_channel")

E = TypeVar("E")

Listener = Callable[[object, E], None]


class EventChannel(Generic[E]):
    def __init__(self, name: str):
        self._name = name
        self._listeners: list[tuple[int, int, Listener]] = []
        self._seq = 0
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    def subscribe(self, listener: Listener, rank: int = 0) -> None:
        with self._lock:
            self._listeners.append((rank, self._seq, listener))
            self._seq += 1
            self._listeners.sort(key=lambda entry: (entry[0], entry[1]))

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            self._listeners = [e for e in self._listeners if e[2] != listener]

    def send_event(self, sender: object, event: E) -> None:
        with self._lock:
            listeners = list(self._listeners)

        for rank, _, listener in listeners:
            try:
                listener(sender, event)
            except Exception:
                logger.exception(
                    "event_listener_failed",
                    extra={
                        "channel": self._name,
                        "rank": rank,
                        "event_type": type(event).__name__,
                    },
                )

    def __len__(self) -> int:
        return len(self._listeners)
