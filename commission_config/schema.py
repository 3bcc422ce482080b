"""
Commission service configuration schema.

Defines the human-authored, reviewable settings artifact.  YAML files are
parsed into these types by the loader; nothing else reads configuration
files or environment variables.

All rates and monetary values are ``Decimal``; all durations ``timedelta``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

# ---------------------------------------------------------------------------
# Default rate settings (fallback when no rate is configured for a key)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DefaultOrderExecutionSettings:
    """Fallback order-execution commission parameters."""

    commission_cap: Decimal
    commission_floor: Decimal
    commission_rate: Decimal
    commission_asset: str
    legal_entity: str

    def __post_init__(self) -> None:
        if self.commission_floor > self.commission_cap:
            raise ValueError(
                "commission_floor cannot exceed commission_cap"
            )


@dataclass(frozen=True)
class DefaultOvernightSwapSettings:
    """Fallback overnight swap parameters.

    ``variable_rate_base`` / ``variable_rate_quote`` are interest rate ids.
    """

    repo_surcharge_percent: Decimal
    fix_rate: Decimal
    commission_asset: str
    legal_entity: str
    variable_rate_base: str | None = None
    variable_rate_quote: str | None = None


@dataclass(frozen=True)
class DefaultOnBehalfSettings:
    """Fallback per-action on-behalf commission."""

    commission: Decimal
    commission_asset: str
    legal_entity: str


@dataclass(frozen=True)
class DefaultRateSettings:
    order_execution: DefaultOrderExecutionSettings
    overnight_swap: DefaultOvernightSwapSettings
    on_behalf: DefaultOnBehalfSettings


# ---------------------------------------------------------------------------
# Service settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CommissionServiceSettings:
    """Top-level settings for one service instance.

    ``distributed_lock_timeout`` must exceed the worst-case batch duration.
    Charging timeouts bound how long the completion tracker waits for
    per-item acknowledgements after a batch run.
    """

    db_url: str
    redis_url: str
    instance_id: str
    distributed_lock_timeout: timedelta
    overnight_swap_charging_timeout: timedelta
    daily_pnl_charging_timeout: timedelta
    default_rate_settings: DefaultRateSettings
    batch_max_workers: int = 1

    def __post_init__(self) -> None:
        if self.distributed_lock_timeout <= timedelta(0):
            raise ValueError("distributed_lock_timeout must be positive")
        if self.batch_max_workers < 1:
            raise ValueError("batch_max_workers must be at least 1")
