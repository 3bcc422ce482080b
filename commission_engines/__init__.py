"""
Module: commission_engines
Responsibility:
    Package entrypoint that re-exports the pure pricing functions.  This is
    the canonical import surface for higher layers (commission_batch,
    commission_services).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import commission_kernel/domain.
    MUST NOT import commission_batch or commission_services.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or read settings.
    - Decimal-only arithmetic.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every engine invocation is traced via the ``@traced_engine`` decorator
    (see ``commission_engines.tracer``), emitting COMMISSION_ENGINE_TRACE
    log records with engine name, version, input fingerprint and duration.
"""

from commission_engines.pricing import (
    DEFAULT_FINANCING_DAYS,
    DEFAULT_FINANCING_DAYS_PER_YEAR,
    calculate_daily_pnl,
    calculate_on_behalf_commission,
    calculate_order_execution_commission,
    calculate_overnight_swap,
    resolve_interest_rate,
)

__all__ = [
    "DEFAULT_FINANCING_DAYS",
    "DEFAULT_FINANCING_DAYS_PER_YEAR",
    "calculate_daily_pnl",
    "calculate_on_behalf_commission",
    "calculate_order_execution_commission",
    "calculate_overnight_swap",
    "resolve_interest_rate",
]
