"""
Pricing Policy -- time cost of a session cohort.

Pure functions with deterministic behavior. No I/O.

Every individual pays the first-hour price as soon as any time has elapsed.
Each started hour after the first is billed at ``hour_3_plus_price`` per
individual, and the total of those additional hours is capped at
``max_additional_charge`` across the whole cohort (the cap is aggregate,
not per person).  ``hour_2_price`` is part of the branch tier set but the
formula does not consult it.

Usage:
    from venue_engines.pricing import SessionPricing, time_cost

    pricing = SessionPricing(
        hour_1_price=Decimal("40"),
        hour_2_price=Decimal("30"),
        hour_3_plus_price=Decimal("30"),
        max_additional_charge=Decimal("100"),
    )
    time_cost(2, 3661, pricing)  # Decimal("140.00")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal
from typing import Any

from venue_engines.tracer import traced_engine
from venue_kernel.domain.values import ZERO, non_negative_seconds, quantize_amount, to_decimal
from venue_kernel.exceptions import InvalidArgumentError

SECONDS_PER_HOUR = Decimal(3600)


@dataclass(frozen=True)
class SessionPricing:
    """
    Hourly tier prices for one branch.

    All tiers must be non-negative.
    """

    hour_1_price: Decimal
    hour_2_price: Decimal
    hour_3_plus_price: Decimal
    max_additional_charge: Decimal

    def __post_init__(self) -> None:
        for attr in (
            "hour_1_price",
            "hour_2_price",
            "hour_3_plus_price",
            "max_additional_charge",
        ):
            val = to_decimal(getattr(self, attr))
            if val < 0:
                raise ValueError(f"{attr} must be non-negative")
            object.__setattr__(self, attr, val)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> SessionPricing:
        return cls(
            hour_1_price=to_decimal(data["hour_1_price"]),
            hour_2_price=to_decimal(data["hour_2_price"]),
            hour_3_plus_price=to_decimal(data["hour_3_plus_price"]),
            max_additional_charge=to_decimal(data["max_additional_charge"]),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "hour_1_price": str(self.hour_1_price),
            "hour_2_price": str(self.hour_2_price),
            "hour_3_plus_price": str(self.hour_3_plus_price),
            "max_additional_charge": str(self.max_additional_charge),
        }


@traced_engine(
    "pricing", "1.0",
    fingerprint_fields=("individual_count", "elapsed_seconds", "pricing"),
)
def time_cost(
    individual_count: int,
    elapsed_seconds: int | float | Decimal,
    pricing: SessionPricing,
) -> Decimal:
    """
    Time cost for ``individual_count`` people over ``elapsed_seconds``.

    Formula:
        base       = count x hour_1_price
        additional = count x ceil(hours - 1) x hour_3_plus_price   (hours > 1)
        cost       = base + min(additional, max_additional_charge)

    Returns:
        Non-negative amount quantized to two places.  Zero when nobody is
        billed or no time has elapsed.

    Raises:
        InvalidArgumentError: negative or non-integer count, negative or
            non-numeric elapsed time.
    """
    if isinstance(individual_count, bool) or not isinstance(individual_count, int):
        raise InvalidArgumentError("individual_count", individual_count, "must be an integer")
    if individual_count < 0:
        raise InvalidArgumentError("individual_count", individual_count, "must be non-negative")
    elapsed = non_negative_seconds("elapsed_seconds", elapsed_seconds)

    if individual_count == 0 or elapsed == ZERO:
        return quantize_amount(ZERO)

    hours = elapsed / SECONDS_PER_HOUR
    base = pricing.hour_1_price * individual_count

    if hours <= 1:
        return quantize_amount(base)

    additional_hours = (hours - 1).to_integral_value(rounding=ROUND_CEILING)
    additional = individual_count * additional_hours * pricing.hour_3_plus_price
    capped = min(additional, pricing.max_additional_charge)

    return quantize_amount(base + capped)
