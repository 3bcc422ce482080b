"""
Configuration Loader (``commission_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into the typed
``commission_config.schema`` dataclasses.  Runtime callers go through
``commission_config.get_active_config()``; this module is the parsing
machinery behind it.

Invariants enforced
-------------------
* No silent defaults for required fields: a missing key raises
  ``ConfigurationError`` naming the dotted path.
* Every rate or monetary value is parsed into ``Decimal`` through ``str`` so
  YAML floats never leak binary rounding into prices.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  document for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing key or unparseable value  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from commission_config.schema import (
    CommissionServiceSettings,
    DefaultOnBehalfSettings,
    DefaultOrderExecutionSettings,
    DefaultOvernightSwapSettings,
    DefaultRateSettings,
)
from commission_kernel.exceptions import ConfigurationError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _require(data: dict[str, Any], key: str, path: str) -> Any:
    if not isinstance(data, dict) or key not in data or data[key] is None:
        raise ConfigurationError(f"Missing required setting '{path}{key}'")
    return data[key]


def parse_decimal(value: Any, name: str = "value") -> Decimal:
    """Parse a Decimal from a YAML scalar (string, int or float)."""
    if isinstance(value, bool):
        raise ConfigurationError(f"Cannot parse decimal '{name}' from {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ConfigurationError(
            f"Cannot parse decimal '{name}' from {value!r}"
        ) from exc


def parse_duration(value: Any, name: str = "value") -> timedelta:
    """
    Parse a duration.

    Accepts a number of seconds or an ``HH:MM:SS`` string.

    Example:
        >>> parse_duration("00:10:00")
        datetime.timedelta(seconds=600)
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Cannot parse duration '{name}' from {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    if isinstance(value, str):
        parts = value.split(":")
        try:
            if len(parts) == 3:
                hours, minutes, seconds = parts
                return timedelta(
                    hours=int(hours), minutes=int(minutes), seconds=float(seconds),
                )
            return timedelta(seconds=float(value))
        except ValueError as exc:
            raise ConfigurationError(
                f"Cannot parse duration '{name}' from {value!r}"
            ) from exc
    raise ConfigurationError(f"Cannot parse duration '{name}' from {value!r}")


def parse_order_execution_defaults(
    data: dict[str, Any], path: str = "",
) -> DefaultOrderExecutionSettings:
    try:
        return DefaultOrderExecutionSettings(
            commission_cap=parse_decimal(
                _require(data, "commission_cap", path), "commission_cap",
            ),
            commission_floor=parse_decimal(
                _require(data, "commission_floor", path), "commission_floor",
            ),
            commission_rate=parse_decimal(
                _require(data, "commission_rate", path), "commission_rate",
            ),
            commission_asset=str(_require(data, "commission_asset", path)),
            legal_entity=str(_require(data, "legal_entity", path)),
        )
    except ValueError as exc:
        raise ConfigurationError(f"{path}{exc}") from exc


def parse_overnight_swap_defaults(
    data: dict[str, Any], path: str = "",
) -> DefaultOvernightSwapSettings:
    return DefaultOvernightSwapSettings(
        repo_surcharge_percent=parse_decimal(
            _require(data, "repo_surcharge_percent", path), "repo_surcharge_percent",
        ),
        fix_rate=parse_decimal(_require(data, "fix_rate", path), "fix_rate"),
        commission_asset=str(_require(data, "commission_asset", path)),
        legal_entity=str(_require(data, "legal_entity", path)),
        variable_rate_base=data.get("variable_rate_base"),
        variable_rate_quote=data.get("variable_rate_quote"),
    )


def parse_on_behalf_defaults(
    data: dict[str, Any], path: str = "",
) -> DefaultOnBehalfSettings:
    return DefaultOnBehalfSettings(
        commission=parse_decimal(_require(data, "commission", path), "commission"),
        commission_asset=str(_require(data, "commission_asset", path)),
        legal_entity=str(_require(data, "legal_entity", path)),
    )


def parse_default_rate_settings(data: dict[str, Any]) -> DefaultRateSettings:
    """Parse the ``default_rate_settings`` section."""
    prefix = "default_rate_settings."
    return DefaultRateSettings(
        order_execution=parse_order_execution_defaults(
            _require(data, "order_execution", prefix),
            f"{prefix}order_execution.",
        ),
        overnight_swap=parse_overnight_swap_defaults(
            _require(data, "overnight_swap", prefix),
            f"{prefix}overnight_swap.",
        ),
        on_behalf=parse_on_behalf_defaults(
            _require(data, "on_behalf", prefix),
            f"{prefix}on_behalf.",
        ),
    )


def parse_service_settings(data: dict[str, Any]) -> CommissionServiceSettings:
    """
    Parse a complete settings document.

    Raises:
        ConfigurationError: On any missing or malformed value.
    """
    try:
        return CommissionServiceSettings(
            db_url=str(_require(data, "db_url", "")),
            redis_url=str(_require(data, "redis_url", "")),
            instance_id=str(_require(data, "instance_id", "")),
            distributed_lock_timeout=parse_duration(
                _require(data, "distributed_lock_timeout", ""),
                "distributed_lock_timeout",
            ),
            overnight_swap_charging_timeout=parse_duration(
                _require(data, "overnight_swap_charging_timeout", ""),
                "overnight_swap_charging_timeout",
            ),
            daily_pnl_charging_timeout=parse_duration(
                _require(data, "daily_pnl_charging_timeout", ""),
                "daily_pnl_charging_timeout",
            ),
            default_rate_settings=parse_default_rate_settings(
                _require(data, "default_rate_settings", ""),
            ),
            batch_max_workers=int(data.get("batch_max_workers", 1)),
        )
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
