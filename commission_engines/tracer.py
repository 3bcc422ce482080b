"""
commission_engines.tracer -- COMMISSION_ENGINE_TRACE records for pricing calls.

Responsibility:
    ``@traced_engine`` wraps a pure pricing function and, after each
    successful call, logs which engine ran, at which version, on which
    inputs (as a fingerprint) and for how long.  A call that raises emits no
    trace; the caller's error handling reports it.

Architecture position:
    Engines -- support for the pure calculation layer.  Emits a log record
    only, through the ``commission_kernel.engines.tracer`` logger, without
    importing kernel logging.

Invariants enforced:
    - Equal inputs give equal fingerprints: Decimals are normalized, mapping
      keys sorted, dataclasses expanded field by field.
    - Arguments are bound to parameter names, so positional and keyword
      calls fingerprint identically; defaults are applied before hashing.
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import inspect
import logging
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any

_logger = logging.getLogger("commission_kernel.engines.tracer")

TRACE_MESSAGE = "COMMISSION_ENGINE_TRACE"


def _canonicalize(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, Decimal):
        return str(value.normalize())
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _canonicalize(
            {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        )
    if isinstance(value, Mapping):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    """First 16 hex chars of the SHA-256 of the named arguments; absent ones hash as null."""
    canonical = "|".join(
        f"{name}={_canonicalize(arguments.get(name))}" for name in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorate a pricing function with trace logging.

    ``fingerprint_fields`` names the parameters that identify the input;
    when empty, every parameter is used.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)
        fields = fingerprint_fields or tuple(signature.parameters)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            bound = signature.bind(*args, **kwargs)
            bound.apply_defaults()

            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = (time.perf_counter() - started) * 1000

            _logger.info(
                TRACE_MESSAGE,
                extra={
                    "trace_type": TRACE_MESSAGE,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": compute_input_fingerprint(
                        fields, bound.arguments,
                    ),
                    "duration_ms": round(elapsed_ms, 3),
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
