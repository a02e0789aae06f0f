"""
venue_config -- public entrypoint for branch billing configuration.

Responsibility:
    Provides the way to obtain billing settings at runtime through
    ``get_branch_billing()``.  Pricing tiers, tax rate and currency live in
    YAML under ``venue_config/sets/``; engines never carry fallback numbers.

Architecture position:
    Configuration -- sits above ``venue_kernel`` and ``venue_engines`` and
    below ``venue_services``.  The kernel MUST NEVER import from
    ``venue_config``.

Failure modes:
    - ``FileNotFoundError`` -- the billing file does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``ConfigurationError`` -- missing tiers, negative prices, tax rate
      outside [0, 1], malformed branch overrides.

Audit relevance:
    Every successful resolution emits a ``VENUE_CONFIG_TRACE`` log entry
    with the config id, version, checksum and resolved branch, tying each
    invoice back to the configuration that priced it.
"""

from __future__ import annotations

import logging
from pathlib import Path
from uuid import UUID

from venue_config.loader import (
    load_yaml_file,
    merge_override,
    parse_branch_billing,
    parse_config_set,
)
from venue_config.schema import BillingConfigSet, BranchBillingConfig

_logger = logging.getLogger("venue_kernel.config")

# Default configuration directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
BILLING_FILE = "billing.yaml"


def load_billing_config(config_dir: Path | None = None) -> BillingConfigSet:
    """Load and validate the billing configuration set."""
    path = (config_dir or _DEFAULT_CONFIG_DIR) / BILLING_FILE
    return parse_config_set(load_yaml_file(path), str(path))


def get_branch_billing(
    branch_id: UUID | str | None,
    config_dir: Path | None = None,
) -> BranchBillingConfig:
    """
    Billing settings for ``branch_id``.

    A branch without an override gets the default block.

    Args:
        branch_id: Branch identifier; ``None`` asks for the default block.
        config_dir: Override path to the configuration directory.
            Defaults to venue_config/sets/.
    """
    config_set = load_billing_config(config_dir)
    key = str(branch_id) if branch_id is not None else None
    source = str((config_dir or _DEFAULT_CONFIG_DIR) / BILLING_FILE)

    override = config_set.overrides.get(key) if key is not None else None
    if override is None:
        resolved = BranchBillingConfig(
            pricing=config_set.default.pricing,
            tax_rate=config_set.default.tax_rate,
            currency=config_set.default.currency,
            branch_id=key,
        )
    else:
        resolved = parse_branch_billing(
            merge_override(config_set.raw_default, override), source, key,
        )

    _logger.info(
        "VENUE_CONFIG_TRACE",
        extra={
            "trace_type": "VENUE_CONFIG_TRACE",
            "config_set_id": config_set.config_id,
            "config_set_version": config_set.version,
            "checksum": config_set.checksum,
            "branch_id": key,
            "branch_override": override is not None,
            "tax_rate": str(resolved.tax_rate),
            "currency": resolved.currency,
        },
    )
    return resolved


__all__ = [
    "BillingConfigSet",
    "BranchBillingConfig",
    "get_branch_billing",
    "load_billing_config",
]
