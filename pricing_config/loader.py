"""
Configuration Loader (``pricing_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen
``pricing_config.schema`` dataclasses.  Runtime callers go through
``pricing_config.get_active_config()``; this module is its implementation.

Invariants enforced
-------------------
* Monetary and share values become ``Decimal`` via their string form.
* Supply-mode shares must be positive and the broker, intermediary margin
  and printer shares must sum to exactly 1.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the parsed
  document for configuration identity.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys or inconsistent policy  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from pricing_config.schema import (
    AllocationPolicy,
    PartyConfig,
    PricingConfig,
    RateDef,
    ReconciliationDefaults,
)
from pricing_kernel.exceptions import ConfigurationError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, source: str, name: str) -> Decimal:
    """Parse a YAML scalar into Decimal through its string form."""
    if isinstance(value, bool) or value is None:
        raise ConfigurationError(source, f"{name} must be numeric, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ConfigurationError(source, f"{name} must be numeric, got {value!r}") from None


def parse_parties(data: dict[str, Any], source: str) -> PartyConfig:
    try:
        return PartyConfig(
            broker_id=str(data["broker"]),
            intermediary_id=str(data["intermediary"]),
            printer_id=str(data["printer"]),
        )
    except KeyError as exc:
        raise ConfigurationError(source, f"parties.{exc.args[0]} is required") from None


def parse_policy(data: dict[str, Any], source: str) -> AllocationPolicy:
    """
    Parse the allocation policy block.

    Omitted keys take the AllocationPolicy defaults.
    """
    defaults = AllocationPolicy()
    supply = data.get("supply_mode", {})
    policy = AllocationPolicy(
        supply_broker_share=parse_decimal(
            supply.get("broker_share", defaults.supply_broker_share),
            source, "supply_mode.broker_share",
        ),
        supply_intermediary_margin_share=parse_decimal(
            supply.get("intermediary_margin_share", defaults.supply_intermediary_margin_share),
            source, "supply_mode.intermediary_margin_share",
        ),
        supply_printer_share=parse_decimal(
            supply.get("printer_share", defaults.supply_printer_share),
            source, "supply_mode.printer_share",
        ),
        tolerance=parse_decimal(data.get("tolerance", defaults.tolerance), source, "tolerance"),
        cpm_decimal_places=int(data.get("cpm_decimal_places", defaults.cpm_decimal_places)),
        money_decimal_places=int(data.get("money_decimal_places", defaults.money_decimal_places)),
    )
    _validate_policy(policy, source)
    return policy


def _validate_policy(policy: AllocationPolicy, source: str) -> None:
    shares = (
        policy.supply_broker_share,
        policy.supply_intermediary_margin_share,
        policy.supply_printer_share,
    )
    if any(share <= 0 for share in shares):
        raise ConfigurationError(source, "supply_mode shares must be positive")
    if sum(shares) != Decimal("1"):
        raise ConfigurationError(
            source,
            f"supply_mode shares must sum to 1, got {sum(shares)}",
        )
    if policy.tolerance < 0:
        raise ConfigurationError(source, "tolerance must not be negative")
    if policy.cpm_decimal_places < policy.money_decimal_places:
        raise ConfigurationError(
            source, "cpm_decimal_places must be at least money_decimal_places"
        )


def parse_rate(data: dict[str, Any], source: str) -> RateDef:
    """Parse one rate grid row."""
    try:
        size_key = str(data["size"])
        minimum = data.get("minimum_customer_cpm")
        return RateDef(
            size_key=size_key,
            print_cpm=parse_decimal(data["print_cpm"], source, f"{size_key}.print_cpm"),
            paper_weight_per_m=parse_decimal(
                data["paper_weight_per_m"], source, f"{size_key}.paper_weight_per_m"
            ),
            paper_cost_per_lb=parse_decimal(
                data["paper_cost_per_lb"], source, f"{size_key}.paper_cost_per_lb"
            ),
            paper_charge_cpm=parse_decimal(
                data["paper_charge_cpm"], source, f"{size_key}.paper_charge_cpm"
            ),
            standard_customer_cpm=parse_decimal(
                data["standard_customer_cpm"], source, f"{size_key}.standard_customer_cpm"
            ),
            minimum_customer_cpm=(
                parse_decimal(minimum, source, f"{size_key}.minimum_customer_cpm")
                if minimum is not None
                else None
            ),
            paper_type=data.get("paper_type"),
        )
    except KeyError as exc:
        raise ConfigurationError(source, f"rate entry missing {exc.args[0]!r}") from None


def parse_reconciliation(data: dict[str, Any], source: str) -> ReconciliationDefaults:
    defaults = ReconciliationDefaults()
    workers = int(data.get("workers", defaults.workers))
    if workers < 1:
        raise ConfigurationError(source, "reconciliation.workers must be at least 1")
    return ReconciliationDefaults(
        workers=workers,
        actor=str(data.get("actor", defaults.actor)),
    )


def parse_config(data: dict[str, Any], source: str) -> PricingConfig:
    """
    Parse a whole configuration document.

    Raises:
        ConfigurationError: On any missing or inconsistent section.
    """
    if "parties" not in data:
        raise ConfigurationError(source, "parties section is required")
    return PricingConfig(
        config_id=str(data.get("config_id", Path(source).stem)),
        version=int(data.get("version", 1)),
        parties=parse_parties(data["parties"], source),
        policy=parse_policy(data.get("allocation_policy", {}), source),
        rates=tuple(parse_rate(r, source) for r in data.get("rates", [])),
        reconciliation=parse_reconciliation(data.get("reconciliation", {}), source),
        database_url=data.get("database_url"),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
