"""
Configuration Loader (``venue_config.loader``).

Responsibility
--------------
Loads the billing YAML file and parses it into ``venue_config.schema``
dataclasses.  Runtime callers go through
``venue_config.get_branch_billing()``; the loader is its internal tooling.

Invariants enforced
-------------------
* No silent defaults for pricing tiers: every tier must be present in the
  default block.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  configuration for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing keys or out-of-range values  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from venue_config.schema import BillingConfigSet, BranchBillingConfig
from venue_engines.pricing import SessionPricing
from venue_kernel.exceptions import ConfigurationError

PRICING_TIERS = (
    "hour_1_price",
    "hour_2_price",
    "hour_3_plus_price",
    "max_additional_charge",
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, source: str, name: str) -> Decimal:
    """Decimal from a YAML scalar.  YAML floats go through their text form."""
    if isinstance(value, bool) or value is None:
        raise ConfigurationError(source, f"{name} must be a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ConfigurationError(source, f"{name} must be a number, got {value!r}") from None


def parse_pricing(data: dict[str, Any], source: str) -> SessionPricing:
    missing = [tier for tier in PRICING_TIERS if tier not in data]
    if missing:
        raise ConfigurationError(source, f"pricing is missing {', '.join(missing)}")
    try:
        return SessionPricing(
            **{tier: parse_decimal(data[tier], source, tier) for tier in PRICING_TIERS}
        )
    except ValueError as exc:
        raise ConfigurationError(source, str(exc)) from None


def parse_branch_billing(
    data: dict[str, Any],
    source: str,
    branch_id: str | None = None,
) -> BranchBillingConfig:
    if not isinstance(data, dict):
        raise ConfigurationError(source, "billing block must be a mapping")
    if "pricing" not in data:
        raise ConfigurationError(source, "pricing block is required")
    pricing = parse_pricing(data["pricing"] or {}, source)
    try:
        return BranchBillingConfig(
            pricing=pricing,
            tax_rate=parse_decimal(data.get("tax_rate", 0), source, "tax_rate"),
            currency=str(data.get("currency", "EGP")),
            branch_id=branch_id,
        )
    except ValueError as exc:
        raise ConfigurationError(source, str(exc)) from None


def merge_override(default: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Branch override merged over the default block; pricing merges per tier."""
    merged = dict(default)
    for key, value in (override or {}).items():
        if key == "pricing":
            merged["pricing"] = {**(default.get("pricing") or {}), **(value or {})}
        else:
            merged[key] = value
    return merged


def parse_config_set(data: dict[str, Any], source: str) -> BillingConfigSet:
    if "default" not in data:
        raise ConfigurationError(source, "default block is required")
    overrides = data.get("branches") or {}
    if not isinstance(overrides, dict):
        raise ConfigurationError(source, "branches must map branch ids to overrides")
    normalized = {str(k): v or {} for k, v in overrides.items()}
    default = parse_branch_billing(data["default"], source)
    # Validate every override eagerly so a bad branch fails at load time.
    for branch_key, override in normalized.items():
        parse_branch_billing(merge_override(data["default"], override), source, branch_key)
    return BillingConfigSet(
        config_id=str(data.get("config_id", "VENUE-BILLING")),
        version=int(data.get("version", 1)),
        default=default,
        overrides=normalized,
        raw_default=data["default"],
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization; deterministic."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
