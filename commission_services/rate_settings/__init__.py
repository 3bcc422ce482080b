"""
commission_services.rate_settings -- Rate settings with a three-level fallback.

Fast cache (Redis) -> durable store (SQLAlchemy) -> static defaults
(``commission_config``).
"""

from commission_kernel.domain.rates import (
    ON_BEHALF_KEY,
    OnBehalfRate,
    OrderExecutionRate,
    OvernightSwapRate,
    RateSettingKind,
)
from commission_services.rate_settings.cache import KEY_PREFIX, RateSettingsCache, cache_key
from commission_services.rate_settings.service import RateSettingsService
from commission_services.rate_settings.store import RateSettingsStore

__all__ = [
    "KEY_PREFIX",
    "ON_BEHALF_KEY",
    "OnBehalfRate",
    "OrderExecutionRate",
    "OvernightSwapRate",
    "RateSettingKind",
    "RateSettingsCache",
    "RateSettingsService",
    "RateSettingsStore",
    "cache_key",
]
