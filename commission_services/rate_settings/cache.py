"""
RateSettingsCache -- Redis fast cache of rate settings.

Layout:
    ``CommissionService:RateSettings:<kind>`` is a Redis hash of natural key
    to JSON payload for per-instrument kinds, and a plain string holding the
    JSON payload for the on-behalf singleton.

The cache is volatile and rebuildable from the durable store at any time.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import redis

from commission_kernel.domain.rates import ON_BEHALF_KEY, RateSettingKind

KEY_PREFIX = "CommissionService:RateSettings"


def cache_key(kind: RateSettingKind) -> str:
    return f"{KEY_PREFIX}:{kind.value}"


def _is_singleton(kind: RateSettingKind) -> bool:
    return kind is RateSettingKind.ON_BEHALF


def _dumps(payload: dict[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True)


class RateSettingsCache:
    """Fast-cache access per rate kind."""

    def __init__(self, client: redis.Redis):
        self._redis = client

    def get(self, kind: RateSettingKind, key: str) -> dict[str, Any] | None:
        if _is_singleton(kind):
            raw = self._redis.get(cache_key(kind))
        else:
            raw = self._redis.hget(cache_key(kind), key)
        return json.loads(raw) if raw is not None else None

    def get_all(self, kind: RateSettingKind) -> dict[str, dict[str, Any]]:
        if _is_singleton(kind):
            raw = self._redis.get(cache_key(kind))
            return {ON_BEHALF_KEY: json.loads(raw)} if raw is not None else {}
        return {
            _text(k): json.loads(v)
            for k, v in self._redis.hgetall(cache_key(kind)).items()
        }

    def put(self, kind: RateSettingKind, key: str, payload: dict[str, Any]) -> None:
        if _is_singleton(kind):
            self._redis.set(cache_key(kind), _dumps(payload))
        else:
            self._redis.hset(cache_key(kind), key, _dumps(payload))

    def replace_all(
        self, kind: RateSettingKind, payloads: Mapping[str, dict[str, Any]],
    ) -> None:
        """Atomically swap the whole cached contents of ``kind``."""
        name = cache_key(kind)
        with self._redis.pipeline(transaction=True) as pipe:
            pipe.delete(name)
            if _is_singleton(kind):
                if ON_BEHALF_KEY in payloads:
                    pipe.set(name, _dumps(payloads[ON_BEHALF_KEY]))
            elif payloads:
                pipe.hset(name, mapping={k: _dumps(v) for k, v in payloads.items()})
            pipe.execute()


def _text(value: bytes | str) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value
