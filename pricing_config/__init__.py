"""
pricing_config -- single public entrypoint for pricing configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Party identifiers, supply-mode shares,
    tolerances and the baseline rate grid all come from here; no engine or
    runner embeds them as constants.

Architecture position:
    Configuration.  Sits above ``pricing_kernel`` (uses its exceptions and
    logging) and below ``pricing_engines`` / ``pricing_batch`` /
    ``pricing_services``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ConfigurationError`` -- schema or policy validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``PRICING_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying each priced job back to the configuration that
    governed it.
"""

from __future__ import annotations

import os
from pathlib import Path

from pricing_config.loader import load_yaml_file, parse_config
from pricing_config.schema import (
    AllocationPolicy,
    PartyConfig,
    PricingConfig,
    RateDef,
    ReconciliationDefaults,
)
from pricing_kernel.logging_config import get_logger

_logger = get_logger("config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_CONFIG_PATH = _DEFAULT_CONFIG_DIR / "default.yaml"

CONFIG_ENV_VAR = "PRICING_CONFIG"


def get_active_config(path: Path | str | None = None) -> PricingConfig:
    """The ONLY public configuration entrypoint.

    Resolution order: explicit ``path``, then the ``PRICING_CONFIG``
    environment variable, then ``pricing_config/sets/default.yaml``.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ConfigurationError: If the file fails validation.
    """
    resolved = Path(path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
    data = load_yaml_file(resolved)
    config = parse_config(data, str(resolved))

    _logger.info(
        "PRICING_CONFIG_TRACE",
        extra={
            "trace_type": "PRICING_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(resolved),
            "rate_count": len(config.rates),
        },
    )
    return config


__all__ = [
    "AllocationPolicy",
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG_PATH",
    "PartyConfig",
    "PricingConfig",
    "RateDef",
    "ReconciliationDefaults",
    "get_active_config",
]
