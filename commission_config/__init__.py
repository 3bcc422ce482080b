"""
commission_config -- single public entrypoint for service settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration layer.  Sits above ``commission_kernel`` and below
    ``commission_services``; the kernel never imports from this package.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``ConfigurationError`` -- a required key is missing or malformed.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``COMMISSION_CONFIG_TRACE`` log entry with the source path, checksum and
    instance id, tying each batch run to the settings that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from commission_config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_service_settings,
)
from commission_config.schema import (
    CommissionServiceSettings,
    DefaultOnBehalfSettings,
    DefaultOrderExecutionSettings,
    DefaultOvernightSwapSettings,
    DefaultRateSettings,
)

_logger = logging.getLogger("commission_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | None = None) -> CommissionServiceSettings:
    """The ONLY public configuration entrypoint.

    Args:
        path: Override path to a settings YAML file.
            Defaults to commission_config/sets/default.yaml.

    Returns:
        Frozen ``CommissionServiceSettings``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If a required key is missing or malformed.
    """
    source = Path(path) if path is not None else _DEFAULT_CONFIG_PATH
    raw = load_yaml_file(source)
    settings = parse_service_settings(raw)

    _logger.info(
        "COMMISSION_CONFIG_TRACE",
        extra={
            "trace_type": "COMMISSION_CONFIG_TRACE",
            "source": str(source),
            "checksum": compute_checksum(raw),
            "instance_id": settings.instance_id,
        },
    )
    return settings


__all__ = [
    "CommissionServiceSettings",
    "DefaultOnBehalfSettings",
    "DefaultOrderExecutionSettings",
    "DefaultOvernightSwapSettings",
    "DefaultRateSettings",
    "get_active_config",
]
