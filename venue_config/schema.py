"""
Billing configuration schema.

The human-authored source artifact for branch billing: a default block
and optional per-branch overrides.  The loader parses YAML into these
frozen types; ``get_branch_billing`` resolves one branch from them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from venue_engines.pricing import SessionPricing


@dataclass(frozen=True)
class BranchBillingConfig:
    """Resolved billing settings for one branch."""

    pricing: SessionPricing
    tax_rate: Decimal = Decimal("0")
    currency: str = "EGP"
    branch_id: str | None = None  # None for the default block

    def __post_init__(self) -> None:
        if not (Decimal("0") <= self.tax_rate <= Decimal("1")):
            raise ValueError(f"tax_rate must be within [0, 1], got {self.tax_rate}")
        if not self.currency or len(self.currency) != 3:
            raise ValueError(f"currency must be a 3-letter code, got {self.currency!r}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "branch_id": self.branch_id,
            "pricing": self.pricing.to_dict(),
            "tax_rate": str(self.tax_rate),
            "currency": self.currency,
        }


@dataclass(frozen=True)
class BillingConfigSet:
    """
    A versioned billing configuration.

    ``overrides`` maps branch id (string form) to raw override dicts that
    are merged over ``default`` on resolution.
    """

    config_id: str
    version: int
    default: BranchBillingConfig
    overrides: dict[str, dict[str, Any]] = field(default_factory=dict)
    raw_default: dict[str, Any] = field(default_factory=dict)
    checksum: str = ""
